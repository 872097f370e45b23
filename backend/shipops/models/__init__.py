"""
Database models
"""
from shipops.models.order import Order, OrderStatus, PaymentStatus, FulfillmentStatus
from shipops.models.shipment import (
    Carrier,
    EventSource,
    ServiceType,
    Shipment,
    ShipmentStatus,
    TrackingEvent,
)

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "FulfillmentStatus",
    "Carrier",
    "EventSource",
    "ServiceType",
    "Shipment",
    "ShipmentStatus",
    "TrackingEvent",
]

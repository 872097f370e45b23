"""
Shipment and Tracking Event Models

A shipment is one physical parcel handed to a carrier for an order.
Tracking events are its append-only history, ordered by when the carrier
says things happened (occurred_at), not by when we heard about them.
"""
import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship, validates

from shipops.core.clock import utcnow
from shipops.db.base import Base


class Carrier(str, enum.Enum):
    BLUE_DART = "blue_dart"
    FEDEX = "fedex"
    DHL = "dhl"


class ServiceType(str, enum.Enum):
    EXPRESS = "express"
    STANDARD = "standard"
    ECONOMY = "economy"
    SAME_DAY = "same_day"


class ShipmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED_DELIVERY = "FAILED_DELIVERY"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"
    EXCEPTION = "EXCEPTION"


TERMINAL_STATUSES = frozenset({
    ShipmentStatus.DELIVERED.value,
    ShipmentStatus.CANCELLED.value,
    ShipmentStatus.RETURNED.value,
})

# Still moving through the network; candidates for the delayed sweep
ACTIVE_STATUSES = (
    ShipmentStatus.PENDING.value,
    ShipmentStatus.PICKED_UP.value,
    ShipmentStatus.IN_TRANSIT.value,
    ShipmentStatus.OUT_FOR_DELIVERY.value,
)


class EventSource(str, enum.Enum):
    CARRIER = "carrier"    # pulled from or pushed by the carrier
    SYSTEM = "system"      # written by ShipOps itself (creation, cascade)
    MANUAL = "manual"      # operator action (confirm, issue, override)


class Shipment(Base):
    """Parcel dispatched through a carrier"""
    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("carrier", "tracking_number", name="uq_shipment_carrier_tracking"),
        Index("ix_shipments_status_eta", "status", "estimated_delivery"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    carrier = Column(String(20), nullable=False)
    service_type = Column(String(20), nullable=False)
    tracking_number = Column(String(100), nullable=False, index=True)
    tracking_url = Column(String(500), nullable=True)

    status = Column(String(30), nullable=False, default=ShipmentStatus.PENDING.value, index=True)

    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    estimated_delivery = Column(DateTime, nullable=True)
    # occurred_at of the newest event that was allowed to move status
    last_event_at = Column(DateTime, nullable=True)

    special_instructions = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    order = relationship("Order", back_populates="shipments")
    events = relationship(
        "TrackingEvent",
        back_populates="shipment",
        order_by="[TrackingEvent.occurred_at, TrackingEvent.id]",
    )

    def __repr__(self):
        return f"<Shipment {self.carrier}:{self.tracking_number} ({self.status})>"

    @validates("carrier", "tracking_number")
    def _freeze_identity(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"Shipment {key} cannot be changed once set")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TrackingEvent(Base):
    """One status observation in a shipment's history"""
    __tablename__ = "tracking_events"
    __table_args__ = (
        Index("ix_tracking_events_shipment_time", "shipment_id", "occurred_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), nullable=False)

    status = Column(String(30), nullable=False)
    location = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    occurred_at = Column(DateTime, nullable=False)
    delivery_attempt = Column(Integer, nullable=True)
    source = Column(String(20), nullable=False, default=EventSource.SYSTEM.value)
    carrier_payload = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    shipment = relationship("Shipment", back_populates="events")

    def __repr__(self):
        return f"<TrackingEvent {self.status} @ {self.occurred_at}>"

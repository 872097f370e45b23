"""
Carrier adapters, registry and call gateway
"""
from shipops.services.carriers.base import CarrierResponse, SandboxCarrier, ShippingCarrier
from shipops.services.carriers.gateway import CarrierGateway
from shipops.services.carriers.registry import (
    CarrierRegistry,
    build_default_registry,
    get_carrier_registry,
)

__all__ = [
    "CarrierResponse",
    "SandboxCarrier",
    "ShippingCarrier",
    "CarrierGateway",
    "CarrierRegistry",
    "build_default_registry",
    "get_carrier_registry",
]

"""
Carrier contract

Every carrier adapter implements the same four async operations. Carrier-side
business failures come back as CarrierResponse(success=False, error=...);
an adapter only raises when it could not get an answer at all (network,
bug), which the gateway reports as CarrierUnavailableError.
"""
import random
import string
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from shipops.core.clock import utcnow
from shipops.logging_config import get_logger
from shipops.schemas.shipment import ShipmentCreate, ShippingRate, ShippingRateRequest

logger = get_logger(__name__)


class CarrierResponse(BaseModel):
    """Uniform envelope returned by every carrier operation"""
    success: bool
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    carrier_response: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ShippingCarrier(ABC):
    """Carrier adapter interface"""

    key: str = ""
    display_name: str = ""

    @abstractmethod
    async def create_shipment(self, request: ShipmentCreate) -> CarrierResponse:
        """Book a shipment. No local side effects."""

    @abstractmethod
    async def track_shipment(self, tracking_number: str) -> CarrierResponse:
        """Current status, location and event history as the carrier sees it."""

    @abstractmethod
    async def cancel_shipment(self, tracking_number: str) -> CarrierResponse:
        """Cancel a booking. Cancelling twice succeeds both times."""

    @abstractmethod
    async def get_shipping_rates(self, request: ShippingRateRequest) -> List[ShippingRate]:
        """Quote every service level (or just request.service_type)."""


# (service_type, service_name, service_code, delivery_time, rate, description)
RateRow = Tuple[str, str, str, str, float, str]


class SandboxCarrier(ShippingCarrier):
    """
    Simulated carrier used until a live API client is wired in.

    Subclasses describe the carrier's documented behaviour through class
    attributes: tracking-number prefix, transit days, charges and rate card.
    The configured credentials are kept so a live client can take over
    without changing the constructor.
    """

    tracking_prefix: str = ""
    transit_days: int = 3
    track_transit_days: int = 2
    base_charge: float = 0
    fuel_surcharge: float = 0
    refund_amount: float = 0
    hub_location: str = ""
    tracking_url_template: str = ""
    rate_card: Tuple[RateRow, ...] = ()

    FUEL_SURCHARGE_RATIO = 0.10
    MIN_INSURANCE_CHARGE = 50.0
    INSURANCE_RATIO = 0.01

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    def __repr__(self):
        return f"<{type(self).__name__} base_url={self.base_url!r}>"

    def generate_tracking_number(self) -> str:
        suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
        return f"{self.tracking_prefix}{int(time.time() * 1000)}{suffix}"

    def tracking_url(self, tracking_number: str) -> str:
        return self.tracking_url_template.format(tracking_number=tracking_number)

    async def create_shipment(self, request: ShipmentCreate) -> CarrierResponse:
        logger.info(
            f"Creating {self.display_name} shipment",
            extra={"carrier": self.key, "order_id": request.order_id},
        )
        now = utcnow()
        tracking_number = self.generate_tracking_number()
        estimated_delivery = now + timedelta(days=self.transit_days)
        payload = {
            "tracking_number": tracking_number,
            "status": "PICKED_UP",
            "service_type": request.service_type,
            "estimated_delivery": estimated_delivery.isoformat(),
            "pickup_date": now.isoformat(),
            "charges": {
                "base_rate": self.base_charge,
                "fuel_surcharge": self.fuel_surcharge,
                "total": self.base_charge + self.fuel_surcharge,
            },
        }
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            tracking_url=self.tracking_url(tracking_number),
            estimated_delivery=estimated_delivery,
            carrier_response=payload,
        )

    async def track_shipment(self, tracking_number: str) -> CarrierResponse:
        logger.info(
            f"Tracking {self.display_name} shipment",
            extra={"carrier": self.key, "tracking_number": tracking_number},
        )
        now = utcnow()
        estimated_delivery = now + timedelta(days=self.track_transit_days)
        payload = {
            "tracking_number": tracking_number,
            "status": "IN_TRANSIT",
            "current_location": self.hub_location,
            "last_update": now.isoformat(),
            "tracking_events": [
                {
                    "status": "PICKED_UP",
                    "location": self.hub_location,
                    "timestamp": (now - timedelta(hours=3)).isoformat(),
                    "description": "Package picked up from origin",
                },
                {
                    "status": "IN_TRANSIT",
                    "location": self.hub_location,
                    "timestamp": (now - timedelta(hours=1)).isoformat(),
                    "description": "Package in transit to destination",
                },
            ],
            "estimated_delivery": estimated_delivery.isoformat(),
        }
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            tracking_url=self.tracking_url(tracking_number),
            estimated_delivery=estimated_delivery,
            carrier_response=payload,
        )

    async def cancel_shipment(self, tracking_number: str) -> CarrierResponse:
        logger.info(
            f"Cancelling {self.display_name} shipment",
            extra={"carrier": self.key, "tracking_number": tracking_number},
        )
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            carrier_response={
                "tracking_number": tracking_number,
                "status": "CANCELLED",
                "cancelled_at": utcnow().isoformat(),
                "refund_amount": self.refund_amount,
            },
        )

    async def get_shipping_rates(self, request: ShippingRateRequest) -> List[ShippingRate]:
        rates = []
        for service_type, name, code, delivery_time, rate, description in self.rate_card:
            if request.service_type and request.service_type != service_type:
                continue
            charges = {"fuel_surcharge": round(rate * self.FUEL_SURCHARGE_RATIO, 2)}
            if request.insurance_required:
                charges["insurance"] = round(
                    max(self.MIN_INSURANCE_CHARGE, request.package.value * self.INSURANCE_RATIO), 2
                )
            rates.append(ShippingRate(
                carrier=self.key,
                service_type=service_type,
                service_name=name,
                service_code=code,
                delivery_time=delivery_time,
                rate=rate,
                additional_charges=charges,
                total_rate=round(rate + sum(charges.values()), 2),
                description=description,
            ))
        return rates

"""
Shared test fixtures

Environment is pinned before any shipops module is imported so settings,
logging and the engine pick up test values.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_LOG_FILE", "")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("DELAYED_SWEEP_ENABLED", "false")

import asyncio
import itertools
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shipops.core.clock import utcnow
from shipops.db.base import Base
from shipops.schemas.shipment import ShippingRate
from shipops.services.carriers.base import CarrierResponse, ShippingCarrier


# In-memory SQLite shared across connections for unit tests
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    """Fresh schema for each test"""
    import shipops.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


class FakeCarrier(ShippingCarrier):
    """
    Scriptable carrier for tests.

    mode: "ok" answers like a real carrier, "reject" returns success=False,
    "raise" blows up, "hang" never answers within a short timeout.
    """

    def __init__(self, key: str = "blue_dart", mode: str = "ok", track_status: str = "IN_TRANSIT"):
        self.key = key
        self.display_name = key
        self.mode = mode
        self.track_status = track_status
        self.created: List[str] = []
        self.cancelled: List[str] = []
        self.tracked: List[str] = []
        self._counter = itertools.count(1)

    async def _behave(self):
        await asyncio.sleep(0)
        if self.mode == "raise":
            raise ConnectionError("carrier endpoint unreachable")
        if self.mode == "hang":
            await asyncio.sleep(5)

    async def create_shipment(self, request):
        await self._behave()
        if self.mode == "reject":
            return CarrierResponse(success=False, error="Pincode not serviceable")
        tracking_number = f"{self.key.upper()[:2]}TEST{next(self._counter):04d}"
        self.created.append(tracking_number)
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            tracking_url=f"https://track.example.com/{tracking_number}",
            estimated_delivery=utcnow() + timedelta(days=2),
            carrier_response={"tracking_number": tracking_number, "status": "PICKED_UP"},
        )

    async def track_shipment(self, tracking_number: str):
        await self._behave()
        self.tracked.append(tracking_number)
        if self.mode == "reject":
            return CarrierResponse(success=False, error="Tracking number not found")
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            tracking_url=f"https://track.example.com/{tracking_number}",
            estimated_delivery=utcnow() + timedelta(days=1),
            carrier_response={
                "tracking_number": tracking_number,
                "status": self.track_status,
                "current_location": "PUNE",
                "last_update": utcnow().isoformat(),
                "tracking_events": [],
            },
        )

    async def cancel_shipment(self, tracking_number: str):
        await self._behave()
        self.cancelled.append(tracking_number)
        return CarrierResponse(
            success=True,
            tracking_number=tracking_number,
            carrier_response={"status": "CANCELLED", "refund_amount": 100},
        )

    async def get_shipping_rates(self, request):
        await self._behave()
        return [
            ShippingRate(
                carrier=self.key,
                service_type="standard",
                service_name="TEST_STANDARD",
                service_code="T_STD",
                delivery_time="2-3 days",
                rate=100,
                additional_charges={"fuel_surcharge": 10},
                total_rate=110,
                description="Test delivery",
            )
        ]


@pytest.fixture
def fake_carrier():
    return FakeCarrier("blue_dart")


@pytest.fixture
def registry(fake_carrier):
    from shipops.services.carriers import CarrierRegistry

    return CarrierRegistry({"blue_dart": fake_carrier, "fedex": FakeCarrier("fedex")})


@pytest.fixture
def gateway():
    from shipops.services.carriers import CarrierGateway

    return CarrierGateway(timeout_seconds=1.0)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def dispatch(self, event, payload):
        self.sent.append((event, payload))

    @property
    def events(self):
        return [event for event, _ in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fulfillment_service(db_session, registry, gateway, notifier):
    from shipops.services.fulfillment_service import FulfillmentService

    return FulfillmentService(db_session, registry, gateway, notifier)


@pytest.fixture
def tracking_service(db_session, registry, gateway, notifier):
    from shipops.services.tracking_service import TrackingService

    return TrackingService(db_session, registry, gateway, notifier)


@pytest.fixture
def delivery_service(db_session, notifier):
    from shipops.services.delivery_service import DeliveryService

    return DeliveryService(db_session, notifier)


def _make_order(db, order_number: str = "ORD-2025-0042", status: str = "CONFIRMED",
               payment_status: str = "COMPLETED", order_id: Optional[int] = None):
    from shipops.models.order import Order

    order = Order(
        id=order_id,
        order_number=order_number,
        status=status,
        payment_status=payment_status,
        customer_name="Asha Rao",
        customer_email="asha@example.com",
        total_amount=Decimal("2499.00"),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def _shipment_payload(order_id: int, carrier: str = "blue_dart", **overrides) -> dict:
    payload = {
        "order_id": order_id,
        "order_number": "ORD-2025-0042",
        "customer_name": "Asha Rao",
        "customer_email": "asha@example.com",
        "customer_phone": "+91 98765 43210",
        "shipping_address": {
            "name": "Asha Rao",
            "address1": "12 MG Road",
            "city": "Bengaluru",
            "state": "KA",
            "postal_code": "560001",
            "country": "IN",
        },
        "package": {
            "weight": 1.5,
            "dimensions": {"length": 30, "width": 20, "height": 10},
            "description": "Printed parts",
            "value": 2499,
        },
        "carrier": carrier,
        "service_type": "express",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order(db_session):
    """Factory: make_order(order_number=..., status=..., payment_status=...)"""
    def factory(**kwargs):
        return _make_order(db_session, **kwargs)
    return factory


@pytest.fixture
def shipment_payload():
    return _shipment_payload


@pytest.fixture
def order(db_session):
    """Order #42, confirmed and paid"""
    return _make_order(db_session, order_id=42)

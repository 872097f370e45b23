"""
FastAPI dependencies

Services are built per request around the request's database session.
Tests swap the carrier registry (or anything else) through
app.dependency_overrides.
"""
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from shipops.core.settings import get_settings
from shipops.db.session import get_db
from shipops.services.carriers import CarrierGateway, CarrierRegistry, get_carrier_registry
from shipops.services.delivery_service import DeliveryService
from shipops.services.fulfillment_service import FulfillmentService
from shipops.services.notifications import NotificationDispatcher, default_dispatcher
from shipops.services.tracking_service import TrackingService


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Check X-API-Key when API_KEY is configured; open otherwise."""
    expected = get_settings().API_KEY
    if not expected:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


@lru_cache
def get_carrier_gateway() -> CarrierGateway:
    return CarrierGateway.from_settings()


def get_notifier() -> NotificationDispatcher:
    return default_dispatcher


def get_fulfillment_service(
    db: Session = Depends(get_db),
    registry: CarrierRegistry = Depends(get_carrier_registry),
    gateway: CarrierGateway = Depends(get_carrier_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> FulfillmentService:
    return FulfillmentService(db, registry, gateway, notifier)


def get_tracking_service(
    db: Session = Depends(get_db),
    registry: CarrierRegistry = Depends(get_carrier_registry),
    gateway: CarrierGateway = Depends(get_carrier_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> TrackingService:
    return TrackingService(db, registry, gateway, notifier)


def get_delivery_service(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> DeliveryService:
    return DeliveryService(db, notifier)

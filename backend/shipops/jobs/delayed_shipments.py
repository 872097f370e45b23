"""
Delayed shipment sweep

Runs DeliveryService.get_delayed_shipments() on an APScheduler interval and
writes one SHIPMENT_DELAYED audit record per late shipment. Enabled with
DELAYED_SWEEP_ENABLED=true; the API process starts it from its lifespan.
"""
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from shipops.core.settings import Settings, get_settings
from shipops.logging_config import audit_log, get_logger
from shipops.schemas.shipment import DelayedShipment
from shipops.services.delivery_service import DeliveryService

logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def run_delayed_sweep(session_factory: Optional[Callable[[], Session]] = None) -> List[DelayedShipment]:
    """One pass of the sweep in its own short-lived session."""
    if session_factory is None:
        from shipops.db.session import SessionLocal
        session_factory = SessionLocal

    db = session_factory()
    try:
        delayed = DeliveryService(db).get_delayed_shipments()
    finally:
        db.close()

    for item in delayed:
        audit_log(
            "SHIPMENT_DELAYED",
            actor="system",
            resource_type="shipment",
            resource_id=item.id,
            details={
                "order_number": item.order_number,
                "carrier": item.carrier,
                "tracking_number": item.tracking_number,
                "status": item.status,
                "days_delayed": item.days_delayed,
            },
        )
    if delayed:
        logger.warning("Delayed shipments found", extra={"count": len(delayed)})
    else:
        logger.info("Delayed shipment sweep found nothing")
    return delayed


def init_scheduler(settings: Optional[Settings] = None) -> Optional[AsyncIOScheduler]:
    """Start the sweep if enabled. Must be called with a running event loop."""
    global _scheduler
    settings = settings or get_settings()
    if not settings.DELAYED_SWEEP_ENABLED:
        return None

    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        run_delayed_sweep,
        "interval",
        minutes=settings.DELAYED_SWEEP_INTERVAL_MINUTES,
        id="delayed_shipment_sweep",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info(
        "Delayed shipment sweep scheduled",
        extra={"interval_minutes": settings.DELAYED_SWEEP_INTERVAL_MINUTES},
    )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None

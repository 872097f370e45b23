"""
Tracking Service - reconciles shipment state with carrier-reported status

Every status change, whatever its origin (carrier webhook, tracking pull,
operator override, delivery confirmation), goes through
apply_status_change() so the ordering and cascade rules live in one place:

- Events are stored in occurred_at order. An event older than the newest
  applied one (shipment.last_event_at) is kept in the history but does not
  move the shipment's status.
- The same status at the same timestamp is only stored once.
- Carrier events must follow _VALID_TRANSITIONS. A disallowed transition is
  stored and logged, not applied.
- A tracking pull whose carrier snapshot is behind local state (older, or
  not a valid transition) records nothing, so repeated polls are idempotent.
- DELIVERED stamps shipment.delivered_at with the event time and cascades to
  the order. The order update is conditional on the order not already being
  DELIVERED, which makes repeated deliveries a no-op.
- The shipment row is updated with a compare-and-set on its previous status;
  losing that race raises ConflictError and the caller rolls back.

Callers own the transaction: apply_status_change() never commits.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from shipops.core.clock import to_naive_utc, utcnow
from shipops.exceptions import ConflictError, NotFoundError, ValidationError
from shipops.logging_config import audit_log, get_logger
from shipops.models.order import Order, OrderStatus
from shipops.models.shipment import (
    EventSource,
    Shipment,
    ShipmentStatus as S,
    TrackingEvent,
)
from shipops.schemas.shipment import TrackingUpdate
from shipops.services.carriers import CarrierGateway, CarrierRegistry
from shipops.services.notifications import (
    SHIPMENT_DELIVERED,
    SHIPMENT_IN_TRANSIT,
    NotificationDispatcher,
    default_dispatcher,
    notify,
)
from shipops.services.validation import SHIPMENT_STATUSES, validate_tracking_update

logger = get_logger(__name__)

_AFTER_PICKUP = {S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERED}
_ALWAYS = {S.FAILED_DELIVERY, S.CANCELLED, S.RETURNED, S.EXCEPTION}

_VALID_TRANSITIONS = {
    S.PENDING: {S.PICKED_UP} | _AFTER_PICKUP | _ALWAYS,
    S.PICKED_UP: _AFTER_PICKUP | _ALWAYS,
    S.IN_TRANSIT: {S.OUT_FOR_DELIVERY, S.DELIVERED} | _ALWAYS,
    S.OUT_FOR_DELIVERY: {S.DELIVERED} | _ALWAYS,
    # Carriers re-attempt after a failed delivery
    S.FAILED_DELIVERY: {S.OUT_FOR_DELIVERY, S.DELIVERED, S.CANCELLED, S.RETURNED, S.EXCEPTION},
    S.EXCEPTION: {S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERED, S.FAILED_DELIVERY, S.CANCELLED, S.RETURNED},
    S.DELIVERED: set(),
    S.CANCELLED: set(),
    S.RETURNED: set(),
}


def can_transition(current: str, new: str) -> bool:
    """True if a carrier event may move a shipment from current to new."""
    return S(new) in _VALID_TRANSITIONS[S(current)]


@dataclass
class StatusChange:
    """What apply_status_change() did with one event"""
    event: TrackingEvent
    applied: bool
    previous_status: str
    duplicate: bool = False
    reason: Optional[str] = None


def apply_status_change(
    db: Session,
    shipment: Shipment,
    status: str,
    occurred_at: datetime,
    *,
    description: Optional[str] = None,
    location: Optional[str] = None,
    source: str = EventSource.CARRIER.value,
    delivery_attempt: Optional[int] = None,
    carrier_payload: Optional[Dict[str, Any]] = None,
    force: bool = False,
) -> StatusChange:
    """
    Record a tracking event and, when the rules allow, move the shipment to it.

    Args:
        force: operator authority. Skips the ordering and transition checks
            but still records the event and still cascades DELIVERED.

    Raises:
        ConflictError: the shipment's status changed underneath us
    """
    previous = shipment.status

    duplicate = (
        db.query(TrackingEvent)
        .filter(
            TrackingEvent.shipment_id == shipment.id,
            TrackingEvent.status == status,
            TrackingEvent.occurred_at == occurred_at,
        )
        .first()
    )
    if duplicate is not None:
        return StatusChange(duplicate, False, previous, duplicate=True, reason="duplicate")

    event = TrackingEvent(
        shipment_id=shipment.id,
        status=status,
        occurred_at=occurred_at,
        description=description,
        location=location,
        source=source,
        delivery_attempt=delivery_attempt,
        carrier_payload=carrier_payload,
    )
    db.add(event)
    db.flush()

    if not force and shipment.last_event_at is not None and occurred_at < shipment.last_event_at:
        logger.info(
            "Out-of-order tracking event recorded without status change",
            extra={"shipment_id": shipment.id, "status": status, "occurred_at": occurred_at},
        )
        return StatusChange(event, False, previous, reason="stale")

    if status == previous:
        if shipment.last_event_at is None or occurred_at > shipment.last_event_at:
            shipment.last_event_at = occurred_at
        return StatusChange(event, False, previous, reason="unchanged")

    if not force and not can_transition(previous, status):
        logger.warning(
            f"Rejected transition {previous} -> {status}",
            extra={"shipment_id": shipment.id, "source": source},
        )
        return StatusChange(event, False, previous, reason="invalid_transition")

    values = {
        Shipment.status: status,
        Shipment.last_event_at: (
            occurred_at if shipment.last_event_at is None or force
            else max(occurred_at, shipment.last_event_at)
        ),
        Shipment.updated_at: utcnow(),
    }
    if status == S.DELIVERED.value:
        values[Shipment.delivered_at] = occurred_at
    elif previous == S.DELIVERED.value:
        values[Shipment.delivered_at] = None

    swapped = (
        db.query(Shipment)
        .filter(Shipment.id == shipment.id, Shipment.status == previous)
        .update(values, synchronize_session="evaluate")
    )
    if not swapped:
        raise ConflictError(
            f"Shipment {shipment.id} was updated concurrently",
            details={"shipment_id": shipment.id, "expected_status": previous},
        )

    if status == S.DELIVERED.value:
        cascade_order_delivered(db, shipment.order_id, occurred_at)

    logger.info(
        f"Shipment status {previous} -> {status}",
        extra={"shipment_id": shipment.id, "source": source},
    )
    return StatusChange(event, True, previous)


def cascade_order_delivered(db: Session, order_id: int, delivered_at: datetime) -> bool:
    """Mark the order DELIVERED unless it already is. Returns True if it changed."""
    changed = (
        db.query(Order)
        .filter(Order.id == order_id, Order.status != OrderStatus.DELIVERED.value)
        .update(
            {
                Order.status: OrderStatus.DELIVERED.value,
                Order.delivered_at: delivered_at,
                Order.updated_at: utcnow(),
            },
            synchronize_session="fetch",
        )
    )
    return bool(changed)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


class TrackingService:
    """Tracking reconciliation for one database session"""

    def __init__(
        self,
        db: Session,
        registry: CarrierRegistry,
        gateway: CarrierGateway,
        notifier: NotificationDispatcher = default_dispatcher,
    ):
        self.db = db
        self.registry = registry
        self.gateway = gateway
        self.notifier = notifier

    def _get_shipment(self, shipment_id: int) -> Shipment:
        shipment = self.db.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    def _find_by_tracking_number(self, tracking_number: str, carrier: Optional[str]) -> Shipment:
        query = self.db.query(Shipment).filter(Shipment.tracking_number == tracking_number)
        if carrier:
            query = query.filter(Shipment.carrier == carrier)
        matches = query.all()
        if not matches:
            raise NotFoundError("Shipment", tracking_number)
        if len(matches) > 1:
            raise ValidationError(
                [f"Tracking number {tracking_number} is used by more than one carrier; specify carrier"]
            )
        return matches[0]

    async def track_shipment(self, tracking_number: str, carrier: Optional[str] = None) -> Dict[str, Any]:
        """
        Pull current tracking from the carrier and reconcile local state.

        Returns:
            dict with shipment, tracking (carrier payload), tracking_url, estimated_delivery
        """
        shipment = self._find_by_tracking_number(tracking_number, carrier)
        adapter = self.registry.get(shipment.carrier)

        response = await self.gateway.track_shipment(adapter, tracking_number)
        payload = response.carrier_response
        carrier_status = payload.get("status")

        if (
            carrier_status in SHIPMENT_STATUSES
            and carrier_status != shipment.status
            and not shipment.is_terminal
        ):
            now = utcnow()
            occurred_at = min(_parse_timestamp(payload.get("last_update")) or now, now)
            lagging = shipment.last_event_at is not None and occurred_at < shipment.last_event_at
            if lagging or not can_transition(shipment.status, carrier_status):
                # Snapshot behind local state: nothing is recorded for it
                logger.info(
                    f"Ignoring carrier status {carrier_status} behind local {shipment.status}",
                    extra={"shipment_id": shipment.id, "carrier": shipment.carrier},
                )
                return self._tracking_result(shipment, response)

            try:
                change = apply_status_change(
                    self.db,
                    shipment,
                    carrier_status,
                    occurred_at,
                    description=f"Carrier reported {carrier_status}",
                    location=payload.get("current_location"),
                    source=EventSource.CARRIER.value,
                    carrier_payload=payload,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(shipment)
            self._announce(shipment, change)

        return self._tracking_result(shipment, response)

    @staticmethod
    def _tracking_result(shipment: Shipment, response) -> Dict[str, Any]:
        return {
            "shipment": shipment,
            "tracking": response.carrier_response,
            "tracking_url": response.tracking_url or shipment.tracking_url,
            "estimated_delivery": response.estimated_delivery,
        }

    def add_tracking_event(self, shipment_id: int, update: TrackingUpdate) -> TrackingEvent:
        """
        Ingest one tracking event (carrier webhook or operator entry).

        Raises:
            ValidationError: malformed update, or tracking number belongs to another shipment
            NotFoundError: unknown shipment
        """
        validate_tracking_update(update)
        shipment = self._get_shipment(shipment_id)
        if update.tracking_number.strip() != shipment.tracking_number:
            raise ValidationError(["Tracking number does not match shipment"])

        occurred_at = to_naive_utc(update.timestamp) or utcnow()
        try:
            change = apply_status_change(
                self.db,
                shipment,
                update.status,
                occurred_at,
                description=update.description,
                location=update.location,
                source=EventSource.CARRIER.value,
                delivery_attempt=update.delivery_attempt,
                carrier_payload=update.carrier_data,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(change.event)
        if not change.duplicate:
            audit_log(
                "TRACKING_EVENT_RECORDED",
                actor=EventSource.CARRIER.value,
                resource_type="shipment",
                resource_id=shipment.id,
                details={
                    "status": update.status,
                    "applied": change.applied,
                    "reason": change.reason,
                    "occurred_at": occurred_at.isoformat(),
                },
            )
        self._announce(shipment, change)
        return change.event

    def get_tracking_events(self, shipment_id: int) -> List[TrackingEvent]:
        self._get_shipment(shipment_id)
        return (
            self.db.query(TrackingEvent)
            .filter(TrackingEvent.shipment_id == shipment_id)
            .order_by(TrackingEvent.occurred_at, TrackingEvent.id)
            .all()
        )

    def _announce(self, shipment: Shipment, change: StatusChange) -> None:
        if not change.applied:
            return
        payload = {
            "shipment_id": shipment.id,
            "order_id": shipment.order_id,
            "carrier": shipment.carrier,
            "tracking_number": shipment.tracking_number,
        }
        if change.event.status == S.IN_TRANSIT.value:
            notify(self.notifier, SHIPMENT_IN_TRANSIT, payload)
        elif change.event.status == S.DELIVERED.value:
            notify(self.notifier, SHIPMENT_DELIVERED, payload)



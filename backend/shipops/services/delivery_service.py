"""
Delivery Service - terminal operations, issue recovery and reporting
"""
import math
from collections import Counter
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from shipops.core.clock import to_naive_utc, utcnow
from shipops.exceptions import ConflictError, NotFoundError
from shipops.logging_config import audit_log, get_logger
from shipops.models.order import FulfillmentStatus, Order, OrderStatus
from shipops.models.shipment import ACTIVE_STATUSES, EventSource, Shipment, ShipmentStatus
from shipops.schemas.shipment import DelayedShipment, DeliverySummary
from shipops.services.notifications import (
    SHIPMENT_DELIVERED,
    NotificationDispatcher,
    default_dispatcher,
    notify,
)
from shipops.services.tracking_service import apply_status_change

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400

IN_TRANSIT_STATUSES = (
    ShipmentStatus.PICKED_UP.value,
    ShipmentStatus.IN_TRANSIT.value,
    ShipmentStatus.OUT_FOR_DELIVERY.value,
)


class DeliveryService:
    def __init__(self, db: Session, notifier: NotificationDispatcher = default_dispatcher):
        self.db = db
        self.notifier = notifier

    def _get_shipment(self, shipment_id: int) -> Shipment:
        shipment = self.db.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    @staticmethod
    def _ensure_not_delivered(shipment: Shipment, action: str) -> None:
        if shipment.status == ShipmentStatus.DELIVERED.value:
            raise ConflictError(
                f"Cannot {action}: shipment {shipment.id} is already delivered",
                details={"shipment_id": shipment.id, "delivered_at": str(shipment.delivered_at)},
            )

    def confirm_delivery(self, shipment_id: int, notes: Optional[str] = None) -> Shipment:
        """
        Mark a shipment delivered and cascade to its order, atomically.

        Raises:
            NotFoundError: unknown shipment
            ConflictError: already delivered (including by a concurrent request)
        """
        shipment = self._get_shipment(shipment_id)
        self._ensure_not_delivered(shipment, "confirm delivery")

        delivered_at = utcnow()
        try:
            apply_status_change(
                self.db,
                shipment,
                ShipmentStatus.DELIVERED.value,
                delivered_at,
                description=notes or "Delivery confirmed",
                source=EventSource.MANUAL.value,
                force=True,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(shipment)
        audit_log(
            "DELIVERY_CONFIRMED",
            actor=EventSource.MANUAL.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={"order_id": shipment.order_id, "notes": notes},
        )
        notify(self.notifier, SHIPMENT_DELIVERED, {
            "shipment_id": shipment.id,
            "order_id": shipment.order_id,
            "carrier": shipment.carrier,
            "tracking_number": shipment.tracking_number,
        })
        return shipment

    def report_delivery_issue(self, shipment_id: int, issue: str, notes: Optional[str] = None) -> Shipment:
        """
        Roll a shipment back to PENDING and its order back to PROCESSING.

        Works from any status; this is the recovery path after a failed or
        disputed delivery.
        """
        shipment = self._get_shipment(shipment_id)
        description = f"Delivery issue reported: {issue}"
        if notes:
            description += f" ({notes})"

        try:
            apply_status_change(
                self.db,
                shipment,
                ShipmentStatus.PENDING.value,
                utcnow(),
                description=description,
                source=EventSource.MANUAL.value,
                force=True,
            )
            self.db.query(Order).filter(Order.id == shipment.order_id).update(
                {
                    Order.status: OrderStatus.PROCESSING.value,
                    Order.fulfillment_status: FulfillmentStatus.UNFULFILLED.value,
                    Order.delivered_at: None,
                    Order.updated_at: utcnow(),
                },
                synchronize_session="fetch",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(shipment)
        logger.warning(
            "Delivery issue reported",
            extra={"shipment_id": shipment.id, "order_id": shipment.order_id, "issue": issue},
        )
        audit_log(
            "DELIVERY_ISSUE_REPORTED",
            actor=EventSource.MANUAL.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={"order_id": shipment.order_id, "issue": issue, "notes": notes},
        )
        return shipment

    def reschedule_delivery(self, shipment_id: int, new_date: datetime, reason: str) -> Shipment:
        """Move the estimated delivery date. Status is untouched."""
        shipment = self._get_shipment(shipment_id)
        self._ensure_not_delivered(shipment, "reschedule delivery")

        previous = shipment.estimated_delivery
        shipment.estimated_delivery = to_naive_utc(new_date)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(shipment)
        audit_log(
            "DELIVERY_RESCHEDULED",
            actor=EventSource.MANUAL.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={
                "previous_date": previous.isoformat() if previous else None,
                "new_date": shipment.estimated_delivery.isoformat(),
                "reason": reason,
            },
        )
        return shipment

    def get_delivery_summary(self, order_id: Optional[int] = None) -> DeliverySummary:
        query = self.db.query(Shipment.status, Shipment.shipped_at, Shipment.delivered_at)
        if order_id is not None:
            query = query.filter(Shipment.order_id == order_id)
        rows = query.all()

        status_summary = Counter(row.status for row in rows)
        durations = [
            (row.delivered_at - row.shipped_at).total_seconds() / SECONDS_PER_DAY
            for row in rows
            if row.shipped_at is not None and row.delivered_at is not None
        ]
        average = round(sum(durations) / len(durations), 1) if durations else 0.0

        return DeliverySummary(
            total_shipments=len(rows),
            delivered_shipments=status_summary[ShipmentStatus.DELIVERED.value],
            in_transit_shipments=sum(status_summary[s] for s in IN_TRANSIT_STATUSES),
            failed_deliveries=status_summary[ShipmentStatus.FAILED_DELIVERY.value],
            average_delivery_time_days=average,
            status_summary=dict(status_summary),
        )

    def get_delayed_shipments(self, now: Optional[datetime] = None) -> List[DelayedShipment]:
        """
        Active shipments whose estimated delivery has passed, most delayed first.

        Read-only. days_delayed rounds up, so one second late is one day late.
        """
        now = to_naive_utc(now) or utcnow()
        rows = (
            self.db.query(Shipment, Order.order_number)
            .join(Order, Shipment.order_id == Order.id)
            .filter(
                Shipment.status.in_(ACTIVE_STATUSES),
                Shipment.estimated_delivery.isnot(None),
                Shipment.estimated_delivery < now,
            )
            .order_by(Shipment.estimated_delivery.asc(), Shipment.id.asc())
            .all()
        )
        return [
            DelayedShipment(
                id=shipment.id,
                order_id=shipment.order_id,
                order_number=order_number,
                tracking_number=shipment.tracking_number,
                carrier=shipment.carrier,
                status=shipment.status,
                estimated_delivery=shipment.estimated_delivery,
                days_delayed=math.ceil(
                    (now - shipment.estimated_delivery).total_seconds() / SECONDS_PER_DAY
                ),
            )
            for shipment, order_number in rows
        ]

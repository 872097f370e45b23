"""
Fulfillment Service - turns a paid order into a carrier shipment

create_shipment() is the only way a Shipment row comes into existence:

1. validate the request (all violations at once)
2. check the order is fulfillable (CONFIRMED/PROCESSING and paid)
3. resolve the carrier and book the shipment with it
4. in one transaction: claim the order with a conditional UPDATE, insert
   the shipment and its creation event, commit

If the claim matches no row another request fulfilled the order first. The
local transaction is rolled back and the carrier booking is cancelled.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from shipops.core.clock import to_naive_utc, utcnow
from shipops.exceptions import ConflictError, InvalidStateError, NotFoundError
from shipops.logging_config import audit_log, get_logger
from shipops.models.order import (
    FULFILLABLE_ORDER_STATUSES,
    FulfillmentStatus,
    Order,
    OrderStatus,
    PaymentStatus,
)
from shipops.models.shipment import EventSource, Shipment, ShipmentStatus, TrackingEvent
from shipops.schemas.shipment import (
    ShipmentCreate,
    ShipmentStatusUpdate,
    ShippingRate,
    ShippingRateRequest,
)
from shipops.services.carriers import CarrierGateway, CarrierRegistry, CarrierResponse, ShippingCarrier
from shipops.services.notifications import (
    SHIPMENT_CREATED,
    NotificationDispatcher,
    default_dispatcher,
    notify,
)
from shipops.services.tracking_service import apply_status_change
from shipops.services.validation import (
    validate_rate_request,
    validate_shipment_request,
    validate_status,
)

logger = get_logger(__name__)


class FulfillmentService:
    """Shipment creation, lookup and administrative changes"""

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

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_shipment(self, request: ShipmentCreate) -> Shipment:
        """
        Book a shipment with the requested carrier and record it.

        Raises:
            ValidationError: request failed validation (carrier not called)
            NotFoundError: order does not exist
            InvalidStateError: order not fulfillable, or another request won the race
            UnsupportedCarrierError: carrier key not registered
            CarrierError: carrier rejected, failed or timed out (nothing recorded)
        """
        validate_shipment_request(request)

        order = self.db.get(Order, request.order_id)
        if order is None:
            raise NotFoundError("Order", request.order_id)
        if not order.can_fulfill:
            raise InvalidStateError(
                f"Order {order.order_number} cannot be fulfilled "
                f"(status={order.status}, payment_status={order.payment_status})",
                details={
                    "order_id": order.id,
                    "status": order.status,
                    "payment_status": order.payment_status,
                },
            )

        carrier = self.registry.get(request.carrier)
        response = await self.gateway.create_shipment(carrier, request)

        try:
            shipment = self._record_shipment(request, response)
        except Exception:
            self.db.rollback()
            await self._compensate(carrier, response.tracking_number)
            raise
        self.db.refresh(shipment)

        logger.info(
            "Shipment created",
            extra={
                "shipment_id": shipment.id,
                "order_id": shipment.order_id,
                "carrier": shipment.carrier,
                "tracking_number": shipment.tracking_number,
            },
        )
        audit_log(
            "SHIPMENT_CREATED",
            actor=EventSource.SYSTEM.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={
                "order_id": shipment.order_id,
                "carrier": shipment.carrier,
                "service_type": shipment.service_type,
                "tracking_number": shipment.tracking_number,
            },
        )
        notify(self.notifier, SHIPMENT_CREATED, {
            "shipment_id": shipment.id,
            "order_id": shipment.order_id,
            "carrier": shipment.carrier,
            "tracking_number": shipment.tracking_number,
        })
        return shipment

    def _record_shipment(self, request: ShipmentCreate, response: CarrierResponse) -> Shipment:
        now = utcnow()

        claimed = (
            self.db.query(Order)
            .filter(
                Order.id == request.order_id,
                Order.status.in_(FULFILLABLE_ORDER_STATUSES),
                Order.payment_status == PaymentStatus.COMPLETED.value,
            )
            .update(
                {
                    Order.status: OrderStatus.SHIPPED.value,
                    Order.fulfillment_status: FulfillmentStatus.FULFILLED.value,
                    Order.shipped_at: now,
                    Order.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if not claimed:
            raise InvalidStateError(
                f"Order {request.order_id} was fulfilled by another request",
                details={"order_id": request.order_id},
            )

        shipment = Shipment(
            order_id=request.order_id,
            carrier=request.carrier,
            service_type=request.service_type,
            tracking_number=response.tracking_number,
            tracking_url=response.tracking_url,
            status=ShipmentStatus.PENDING.value,
            shipped_at=now,
            estimated_delivery=to_naive_utc(response.estimated_delivery),
            last_event_at=now,
            special_instructions=request.special_instructions,
        )
        self.db.add(shipment)
        self.db.flush()

        self.db.add(TrackingEvent(
            shipment_id=shipment.id,
            status=ShipmentStatus.PENDING.value,
            occurred_at=now,
            description=f"Shipment booked with {request.carrier} ({request.service_type})",
            source=EventSource.SYSTEM.value,
            carrier_payload=response.carrier_response,
        ))
        self.db.commit()
        return shipment

    async def _compensate(self, carrier: ShippingCarrier, tracking_number: Optional[str]) -> None:
        """Cancel a carrier booking we could not record locally."""
        if not tracking_number:
            return
        logger.warning(
            "Cancelling carrier booking after failed local write",
            extra={"carrier": carrier.key, "tracking_number": tracking_number},
        )
        try:
            await self.gateway.cancel_shipment(carrier, tracking_number)
        except Exception:
            # The original error is what the caller needs to see
            logger.error(
                "Compensating cancellation failed; carrier booking left open",
                exc_info=True,
                extra={"carrier": carrier.key, "tracking_number": tracking_number},
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_shipment(self, shipment_id: int) -> Shipment:
        shipment = self.db.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    def get_shipments_by_order(self, order_id: int) -> List[Shipment]:
        """Shipments for an order, newest first."""
        return (
            self.db.query(Shipment)
            .filter(Shipment.order_id == order_id)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Administrative changes
    # ------------------------------------------------------------------

    def update_shipment_status(self, shipment_id: int, update: ShipmentStatusUpdate) -> Shipment:
        """
        Operator override of a shipment's status.

        Bypasses the carrier transition rules but still records the event
        and still cascades DELIVERED to the order.
        """
        validate_status(update.status)
        shipment = self.get_shipment(shipment_id)

        try:
            change = apply_status_change(
                self.db,
                shipment,
                update.status,
                utcnow(),
                description=update.description or f"Status set to {update.status} by operator",
                location=update.location,
                source=EventSource.MANUAL.value,
                force=True,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(shipment)
        audit_log(
            "SHIPMENT_STATUS_OVERRIDDEN",
            actor=EventSource.MANUAL.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={"from": change.previous_status, "to": update.status},
        )
        return shipment

    async def cancel_shipment(self, shipment_id: int, reason: Optional[str] = None) -> Shipment:
        """
        Cancel a shipment with its carrier and locally.

        The order goes back to PROCESSING so it can be shipped again.

        Raises:
            ConflictError: shipment already delivered, cancelled or returned
        """
        shipment = self.get_shipment(shipment_id)
        if shipment.is_terminal:
            raise ConflictError(
                f"Shipment {shipment.id} is already {shipment.status}",
                details={"shipment_id": shipment.id, "status": shipment.status},
            )

        carrier = self.registry.get(shipment.carrier)
        response = await self.gateway.cancel_shipment(carrier, shipment.tracking_number)
        booking = {
            "shipment_id": shipment.id,
            "carrier": shipment.carrier,
            "tracking_number": shipment.tracking_number,
        }

        try:
            apply_status_change(
                self.db,
                shipment,
                ShipmentStatus.CANCELLED.value,
                utcnow(),
                description=f"Shipment cancelled: {reason or 'no reason given'}",
                source=EventSource.MANUAL.value,
                carrier_payload=response.carrier_response,
                force=True,
            )
            self.db.query(Order).filter(
                Order.id == shipment.order_id,
                Order.status == OrderStatus.SHIPPED.value,
            ).update(
                {
                    Order.status: OrderStatus.PROCESSING.value,
                    Order.fulfillment_status: FulfillmentStatus.UNFULFILLED.value,
                    Order.updated_at: utcnow(),
                },
                synchronize_session="fetch",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(
                "Carrier cancelled the booking but the local cancellation failed",
                exc_info=True,
                extra=booking,
            )
            raise

        self.db.refresh(shipment)
        audit_log(
            "SHIPMENT_CANCELLED",
            actor=EventSource.MANUAL.value,
            resource_type="shipment",
            resource_id=shipment.id,
            details={"reason": reason, "refund_amount": response.carrier_response.get("refund_amount")},
        )
        return shipment

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    async def get_shipping_rates(self, request: ShippingRateRequest) -> List[ShippingRate]:
        """Quote the carrier's service levels. Nothing is booked or stored."""
        validate_rate_request(request)
        carrier = self.registry.get(request.carrier)
        return await self.gateway.get_shipping_rates(carrier, request)

"""
Shipment endpoints

Fulfillment, tracking and delivery operations. Service errors (validation,
not found, conflicts, carrier failures) propagate as ShipOpsException and
are rendered by the handler in shipops.main.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from shipops.api.deps import (
    get_delivery_service,
    get_fulfillment_service,
    get_tracking_service,
    require_api_key,
)
from shipops.schemas.shipment import (
    CarrierListResponse,
    DelayedShipment,
    DeliveryConfirmation,
    DeliveryIssueReport,
    DeliveryReschedule,
    DeliverySummary,
    ShipmentCancel,
    ShipmentCreate,
    ShipmentResponse,
    ShipmentStatusUpdate,
    ShippingRate,
    ShippingRateRequest,
    TrackingEventResponse,
    TrackingResponse,
    TrackingUpdate,
)
from shipops.services.delivery_service import DeliveryService
from shipops.services.fulfillment_service import FulfillmentService
from shipops.services.tracking_service import TrackingService

router = APIRouter(
    prefix="/shipments",
    tags=["Shipments"],
    dependencies=[Depends(require_api_key)],
)


# ============================================================================
# CREATE / QUOTE
# ============================================================================

@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    request: ShipmentCreate,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    Book a shipment with a carrier for a paid, confirmed order.

    The order moves to SHIPPED and the new shipment starts in PENDING.
    """
    return await service.create_shipment(request)


@router.post("/rates", response_model=List[ShippingRate])
async def get_shipping_rates(
    request: ShippingRateRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Quote a carrier's service levels. Nothing is booked."""
    return await service.get_shipping_rates(request)


@router.get("/carriers", response_model=CarrierListResponse)
async def list_carriers(service: FulfillmentService = Depends(get_fulfillment_service)):
    return CarrierListResponse(carriers=service.registry.keys())


# ============================================================================
# REPORTING
# ============================================================================

@router.get("/summary", response_model=DeliverySummary)
async def get_delivery_summary(
    order_id: Optional[int] = Query(None, description="Limit to one order"),
    service: DeliveryService = Depends(get_delivery_service),
):
    return service.get_delivery_summary(order_id)


@router.get("/delayed", response_model=List[DelayedShipment])
async def get_delayed_shipments(service: DeliveryService = Depends(get_delivery_service)):
    """Active shipments past their estimated delivery date, most delayed first."""
    return service.get_delayed_shipments()


# ============================================================================
# LOOKUP
# ============================================================================

@router.get("/track/{tracking_number}", response_model=TrackingResponse)
async def track_shipment(
    tracking_number: str,
    carrier: Optional[str] = Query(None, description="Disambiguates a tracking number shared by carriers"),
    service: TrackingService = Depends(get_tracking_service),
):
    """Fetch live tracking from the carrier and reconcile the stored status."""
    result = await service.track_shipment(tracking_number, carrier)
    return TrackingResponse(
        shipment=ShipmentResponse.model_validate(result["shipment"]),
        tracking=result["tracking"],
        tracking_url=result["tracking_url"],
        estimated_delivery=result["estimated_delivery"],
    )


@router.get("/order/{order_id}", response_model=List[ShipmentResponse])
async def get_shipments_by_order(
    order_id: int,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    return service.get_shipments_by_order(order_id)


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: int,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    return service.get_shipment(shipment_id)


# ============================================================================
# STATUS & TRACKING EVENTS
# ============================================================================

@router.put("/{shipment_id}/status", response_model=ShipmentResponse)
async def update_shipment_status(
    shipment_id: int,
    update: ShipmentStatusUpdate,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Administrative override. Carrier and tracking number cannot be changed."""
    return service.update_shipment_status(shipment_id, update)


@router.post(
    "/{shipment_id}/tracking-events",
    response_model=TrackingEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_tracking_event(
    shipment_id: int,
    update: TrackingUpdate,
    service: TrackingService = Depends(get_tracking_service),
):
    """
    Record a tracking event.

    Events older than the latest applied one are stored but do not change
    the shipment's status. Re-sending the same event is harmless.
    """
    return service.add_tracking_event(shipment_id, update)


@router.get("/{shipment_id}/tracking-events", response_model=List[TrackingEventResponse])
async def get_tracking_events(
    shipment_id: int,
    service: TrackingService = Depends(get_tracking_service),
):
    return service.get_tracking_events(shipment_id)


# ============================================================================
# DELIVERY
# ============================================================================

@router.post("/{shipment_id}/confirm-delivery", response_model=ShipmentResponse)
async def confirm_delivery(
    shipment_id: int,
    confirmation: Optional[DeliveryConfirmation] = None,
    service: DeliveryService = Depends(get_delivery_service),
):
    notes = confirmation.notes if confirmation else None
    return service.confirm_delivery(shipment_id, notes)


@router.post("/{shipment_id}/report-issue", response_model=ShipmentResponse)
async def report_delivery_issue(
    shipment_id: int,
    report: DeliveryIssueReport,
    service: DeliveryService = Depends(get_delivery_service),
):
    """Roll the shipment back to PENDING and the order to PROCESSING."""
    return service.report_delivery_issue(shipment_id, report.issue, report.notes)


@router.post("/{shipment_id}/reschedule", response_model=ShipmentResponse)
async def reschedule_delivery(
    shipment_id: int,
    reschedule: DeliveryReschedule,
    service: DeliveryService = Depends(get_delivery_service),
):
    return service.reschedule_delivery(shipment_id, reschedule.new_date, reschedule.reason)


@router.post("/{shipment_id}/cancel", response_model=ShipmentResponse)
async def cancel_shipment(
    shipment_id: int,
    cancel: Optional[ShipmentCancel] = None,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    reason = cancel.reason if cancel else None
    return await service.cancel_shipment(shipment_id, reason)

"""
Unit tests for tracking reconciliation

Transition rules, event ordering, duplicate suppression and the
DELIVERED cascade.
"""
from datetime import timedelta, timezone

import pytest

from shipops.schemas.shipment import ShipmentCreate, ShipmentStatusUpdate, TrackingUpdate


def ago(**delta):
    """Whole-second UTC time in the recent past"""
    from shipops.core.clock import utcnow

    return (utcnow() - timedelta(**delta)).replace(microsecond=0)


@pytest.fixture
def shipment(db_session, order):
    """Blue Dart shipment for order #42, booked five days ago"""
    from shipops.models.shipment import Shipment, TrackingEvent

    booked_at = ago(days=5)
    order.status = "SHIPPED"
    record = Shipment(
        order_id=order.id,
        carrier="blue_dart",
        service_type="express",
        tracking_number="BD1735000000000QX7K2P",
        status="PENDING",
        shipped_at=booked_at,
        last_event_at=booked_at,
        estimated_delivery=booked_at + timedelta(days=2),
    )
    db_session.add(record)
    db_session.flush()
    db_session.add(TrackingEvent(shipment_id=record.id, status="PENDING", occurred_at=booked_at, source="system"))
    db_session.commit()
    return record


def update_for(shipment, status, when=None, description=None, **extra):
    return TrackingUpdate(
        tracking_number=shipment.tracking_number,
        status=status,
        description=description or f"Carrier reports {status.lower()}",
        timestamp=when,
        **extra,
    )


class TestTransitionRules:
    def test_happy_path_forward(self):
        from shipops.services.tracking_service import can_transition

        assert can_transition("PENDING", "PICKED_UP")
        assert can_transition("PICKED_UP", "IN_TRANSIT")
        assert can_transition("IN_TRANSIT", "OUT_FOR_DELIVERY")
        assert can_transition("OUT_FOR_DELIVERY", "DELIVERED")

    def test_forward_skips_allowed(self):
        from shipops.services.tracking_service import can_transition

        assert can_transition("PENDING", "DELIVERED")
        assert can_transition("PICKED_UP", "OUT_FOR_DELIVERY")

    def test_no_regression(self):
        from shipops.services.tracking_service import can_transition

        assert not can_transition("IN_TRANSIT", "PICKED_UP")
        assert not can_transition("OUT_FOR_DELIVERY", "IN_TRANSIT")
        assert not can_transition("IN_TRANSIT", "PENDING")

    @pytest.mark.parametrize("terminal", ["DELIVERED", "CANCELLED", "RETURNED"])
    def test_terminal_states_are_final(self, terminal):
        from shipops.services.tracking_service import can_transition

        for target in ["PENDING", "IN_TRANSIT", "DELIVERED", "EXCEPTION", "CANCELLED"]:
            if target != terminal:
                assert not can_transition(terminal, target)

    def test_exception_is_recoverable(self):
        from shipops.services.tracking_service import can_transition

        assert can_transition("IN_TRANSIT", "EXCEPTION")
        assert can_transition("EXCEPTION", "IN_TRANSIT")
        assert can_transition("EXCEPTION", "DELIVERED")

    def test_failed_delivery_can_be_reattempted(self):
        from shipops.services.tracking_service import can_transition

        assert can_transition("OUT_FOR_DELIVERY", "FAILED_DELIVERY")
        assert can_transition("FAILED_DELIVERY", "OUT_FOR_DELIVERY")
        assert not can_transition("FAILED_DELIVERY", "PENDING")


class TestAddTrackingEvent:
    def test_event_moves_status(self, tracking_service, shipment, notifier):
        event = tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "IN_TRANSIT", location="MUMBAI HUB")
        )

        assert event.id is not None
        assert event.status == "IN_TRANSIT"
        assert event.location == "MUMBAI HUB"
        assert event.source == "carrier"
        assert shipment.status == "IN_TRANSIT"
        assert "shipment.in_transit" in notifier.events

    def test_delivered_event_cascades_to_order(self, tracking_service, shipment, db_session, notifier):
        """DELIVERED at T: shipment and order delivered at T"""
        from shipops.models.order import Order

        delivered_at = ago(days=1)
        tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "DELIVERED", delivered_at, "Delivered to recipient")
        )

        db_session.expire_all()
        assert shipment.status == "DELIVERED"
        assert shipment.delivered_at == delivered_at
        order = db_session.get(Order, 42)
        assert order.status == "DELIVERED"
        assert order.delivered_at == delivered_at
        assert "shipment.delivered" in notifier.events

    def test_delivered_twice_is_idempotent(self, tracking_service, shipment, db_session):
        from shipops.models.order import Order
        from shipops.models.shipment import TrackingEvent

        first_at = ago(days=1)
        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "DELIVERED", first_at))
        # Same event redelivered by the carrier, then a later duplicate notice
        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "DELIVERED", first_at))
        tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "DELIVERED", first_at + timedelta(hours=2))
        )

        db_session.expire_all()
        assert shipment.status == "DELIVERED"
        assert shipment.delivered_at == first_at
        order = db_session.get(Order, 42)
        assert order.status == "DELIVERED"
        assert order.delivered_at == first_at
        delivered_events = (
            db_session.query(TrackingEvent)
            .filter(TrackingEvent.shipment_id == shipment.id, TrackingEvent.status == "DELIVERED")
            .count()
        )
        assert delivered_events == 2

    def test_duplicate_event_stored_once(self, tracking_service, shipment):
        when = ago(days=3)
        first = tracking_service.add_tracking_event(shipment.id, update_for(shipment, "IN_TRANSIT", when))
        second = tracking_service.add_tracking_event(shipment.id, update_for(shipment, "IN_TRANSIT", when))

        assert first.id == second.id
        assert len(tracking_service.get_tracking_events(shipment.id)) == 2

    def test_out_of_order_event_recorded_but_not_applied(self, tracking_service, shipment):
        """A late PICKED_UP callback must not drag status back from OUT_FOR_DELIVERY"""
        base = ago(days=2)
        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "OUT_FOR_DELIVERY", base))
        tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "PICKED_UP", base - timedelta(days=1))
        )

        assert shipment.status == "OUT_FOR_DELIVERY"
        assert shipment.last_event_at == base
        statuses = [e.status for e in tracking_service.get_tracking_events(shipment.id)]
        # History is ordered by when things happened
        assert statuses.index("PICKED_UP") < statuses.index("OUT_FOR_DELIVERY")

    def test_disallowed_transition_recorded_not_applied(self, tracking_service, shipment):
        base = ago(days=2)
        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "DELIVERED", base))
        tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "IN_TRANSIT", base + timedelta(hours=1))
        )

        assert shipment.status == "DELIVERED"
        assert [e.status for e in tracking_service.get_tracking_events(shipment.id)][-1] == "IN_TRANSIT"

    def test_timezone_aware_timestamp_normalised(self, tracking_service, shipment):
        ist = timezone(timedelta(hours=5, minutes=30))
        when = ago(days=3)
        local = when.replace(tzinfo=timezone.utc).astimezone(ist)

        event = tracking_service.add_tracking_event(shipment.id, update_for(shipment, "IN_TRANSIT", local))

        assert event.occurred_at == when

    def test_future_timestamp_rejected(self, tracking_service, shipment, db_session):
        """A far-future event must not hold later real events back"""
        from shipops.core.clock import utcnow
        from shipops.exceptions import ValidationError
        from shipops.models.order import Order

        with pytest.raises(ValidationError) as exc_info:
            tracking_service.add_tracking_event(
                shipment.id, update_for(shipment, "IN_TRANSIT", utcnow() + timedelta(days=365))
            )
        assert exc_info.value.errors == ["Event timestamp cannot be in the future"]

        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "DELIVERED", ago(minutes=1)))

        db_session.expire_all()
        assert shipment.status == "DELIVERED"
        assert db_session.get(Order, 42).status == "DELIVERED"
        assert [e.status for e in tracking_service.get_tracking_events(shipment.id)] == ["PENDING", "DELIVERED"]

    def test_small_clock_skew_tolerated(self, tracking_service, shipment):
        from shipops.core.clock import utcnow

        event = tracking_service.add_tracking_event(
            shipment.id, update_for(shipment, "IN_TRANSIT", utcnow() + timedelta(minutes=1))
        )

        assert event.status == "IN_TRANSIT"
        assert shipment.status == "IN_TRANSIT"

    def test_invalid_update_rejected_with_all_errors(self, tracking_service, shipment):
        from shipops.exceptions import ValidationError

        update = TrackingUpdate(tracking_number="X", status="LOST", description="no", delivery_attempt=0)

        with pytest.raises(ValidationError) as exc_info:
            tracking_service.add_tracking_event(shipment.id, update)

        assert len(exc_info.value.errors) == 4

    def test_tracking_number_must_match_shipment(self, tracking_service, shipment):
        from shipops.exceptions import ValidationError

        update = TrackingUpdate(tracking_number="FX00000000", status="IN_TRANSIT", description="Arrived at hub")

        with pytest.raises(ValidationError):
            tracking_service.add_tracking_event(shipment.id, update)

    def test_unknown_shipment(self, tracking_service):
        from shipops.exceptions import NotFoundError

        update = TrackingUpdate(tracking_number="BD123456", status="IN_TRANSIT", description="Arrived at hub")

        with pytest.raises(NotFoundError):
            tracking_service.add_tracking_event(999, update)

    def test_delivery_attempt_and_payload_stored(self, tracking_service, shipment):
        event = tracking_service.add_tracking_event(
            shipment.id,
            update_for(
                shipment, "FAILED_DELIVERY", ago(days=2),
                "Recipient not available", delivery_attempt=2, carrier_data={"ndr_code": "CNA"},
            ),
        )

        assert event.delivery_attempt == 2
        assert event.carrier_payload == {"ndr_code": "CNA"}
        assert shipment.status == "FAILED_DELIVERY"


class TestGetTrackingEvents:
    def test_history_has_creation_and_current(self, tracking_service, shipment):
        tracking_service.add_tracking_event(shipment.id, update_for(shipment, "IN_TRANSIT", ago(days=3)))

        events = tracking_service.get_tracking_events(shipment.id)

        assert events[0].status == "PENDING"
        assert events[-1].status == shipment.status == "IN_TRANSIT"

    def test_unknown_shipment(self, tracking_service):
        from shipops.exceptions import NotFoundError

        with pytest.raises(NotFoundError):
            tracking_service.get_tracking_events(404)


class TestTrackShipment:
    @pytest.mark.asyncio
    async def test_track_applies_carrier_status(self, tracking_service, fulfillment_service, order,
                                                shipment_payload, fake_carrier):
        created = await fulfillment_service.create_shipment(ShipmentCreate(**shipment_payload(42)))

        result = await tracking_service.track_shipment(created.tracking_number)

        assert result["tracking"]["status"] == "IN_TRANSIT"
        assert result["shipment"].status == "IN_TRANSIT"
        assert result["tracking_url"].endswith(created.tracking_number)
        assert result["estimated_delivery"] is not None
        assert fake_carrier.tracked == [created.tracking_number]
        statuses = [e.status for e in tracking_service.get_tracking_events(created.id)]
        assert statuses == ["PENDING", "IN_TRANSIT"]

    @pytest.mark.asyncio
    async def test_track_same_status_changes_nothing(self, tracking_service, fulfillment_service, order,
                                                     shipment_payload):
        created = await fulfillment_service.create_shipment(ShipmentCreate(**shipment_payload(42)))
        await tracking_service.track_shipment(created.tracking_number)

        await tracking_service.track_shipment(created.tracking_number)

        assert len(tracking_service.get_tracking_events(created.id)) == 2

    @pytest.mark.asyncio
    async def test_lagging_carrier_status_leaves_history_alone(self, tracking_service, fulfillment_service,
                                                              order, shipment_payload, fake_carrier):
        """Carrier still says IN_TRANSIT while we already know OUT_FOR_DELIVERY"""
        created = await fulfillment_service.create_shipment(ShipmentCreate(**shipment_payload(42)))
        fulfillment_service.update_shipment_status(created.id, ShipmentStatusUpdate(status="OUT_FOR_DELIVERY"))
        before = len(tracking_service.get_tracking_events(created.id))

        for _ in range(5):
            result = await tracking_service.track_shipment(created.tracking_number)

        events = tracking_service.get_tracking_events(created.id)
        assert before == 2
        assert len(events) == before
        assert events[-1].status == "OUT_FOR_DELIVERY"
        assert result["shipment"].status == "OUT_FOR_DELIVERY"
        assert result["tracking"]["status"] == "IN_TRANSIT"
        assert len(fake_carrier.tracked) == 5

    @pytest.mark.asyncio
    async def test_track_does_not_reopen_delivered_shipment(self, tracking_service, fulfillment_service,
                                                            delivery_service, order, shipment_payload):
        created = await fulfillment_service.create_shipment(ShipmentCreate(**shipment_payload(42)))
        delivery_service.confirm_delivery(created.id)

        result = await tracking_service.track_shipment(created.tracking_number)

        assert result["shipment"].status == "DELIVERED"

    @pytest.mark.asyncio
    async def test_track_unknown_number(self, tracking_service):
        from shipops.exceptions import NotFoundError

        with pytest.raises(NotFoundError):
            await tracking_service.track_shipment("BD000000")

    @pytest.mark.asyncio
    async def test_track_carrier_failure_propagates(self, tracking_service, fulfillment_service, order,
                                                    shipment_payload, fake_carrier):
        from shipops.exceptions import CarrierError

        created = await fulfillment_service.create_shipment(ShipmentCreate(**shipment_payload(42)))
        fake_carrier.mode = "reject"

        with pytest.raises(CarrierError) as exc_info:
            await tracking_service.track_shipment(created.tracking_number)

        assert exc_info.value.message == "Tracking number not found"

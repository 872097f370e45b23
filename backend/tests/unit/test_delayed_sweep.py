"""
Tests for the scheduled delayed shipment sweep
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker


class TestRunDelayedSweep:
    def test_sweep_reports_overdue_shipments(self, db_session, order):
        from shipops.core.clock import utcnow
        from shipops.jobs.delayed_shipments import run_delayed_sweep
        from shipops.models.shipment import Shipment

        db_session.add(Shipment(
            order_id=order.id,
            carrier="dhl",
            service_type="economy",
            tracking_number="DHL1700000000001",
            status="IN_TRANSIT",
            estimated_delivery=utcnow() - timedelta(hours=30),
        ))
        db_session.commit()

        delayed = run_delayed_sweep(sessionmaker(bind=db_session.get_bind()))

        assert len(delayed) == 1
        assert delayed[0].tracking_number == "DHL1700000000001"
        assert delayed[0].days_delayed == 2

    def test_sweep_with_nothing_late(self, db_session):
        from shipops.jobs.delayed_shipments import run_delayed_sweep

        assert run_delayed_sweep(sessionmaker(bind=db_session.get_bind())) == []


class TestScheduler:
    def test_disabled_by_default(self):
        from shipops.core.settings import Settings
        from shipops.jobs.delayed_shipments import init_scheduler

        assert init_scheduler(Settings(DELAYED_SWEEP_ENABLED=False)) is None

    @pytest.mark.asyncio
    async def test_enabled_schedules_interval_job(self):
        from shipops.core.settings import Settings
        from shipops.jobs.delayed_shipments import init_scheduler, shutdown_scheduler

        scheduler = init_scheduler(Settings(DELAYED_SWEEP_ENABLED=True, DELAYED_SWEEP_INTERVAL_MINUTES=15))
        try:
            job = scheduler.get_job("delayed_shipment_sweep")
            assert job is not None
            assert job.trigger.interval == timedelta(minutes=15)
        finally:
            shutdown_scheduler()

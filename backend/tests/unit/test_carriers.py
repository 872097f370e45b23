"""
Unit tests for carrier adapters, the registry and the call gateway
"""
import asyncio

import pytest


def rate_request(**overrides):
    from shipops.schemas.shipment import ShippingRateRequest

    data = {
        "carrier": "blue_dart",
        "shipping_address": {
            "address1": "12 MG Road", "city": "Bengaluru", "state": "KA",
            "postal_code": "560001", "country": "IN",
        },
        "package": {"weight": 2, "value": 10000},
    }
    data.update(overrides)
    return ShippingRateRequest(**data)


def create_request():
    from shipops.schemas.shipment import ShipmentCreate

    return ShipmentCreate(
        order_id=42,
        customer_phone="+919876543210",
        customer_email="asha@example.com",
        shipping_address={
            "address1": "12 MG Road", "city": "Bengaluru", "state": "KA",
            "postal_code": "560001", "country": "IN",
        },
        package={"weight": 1.5},
        carrier="fedex",
        service_type="express",
    )


class TestSandboxCarriers:
    """Simulated Blue Dart / FedEx / DHL behaviour"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("carrier_cls_path,prefix,days", [
        ("shipops.services.carriers.blue_dart.BlueDartCarrier", "BD", 2),
        ("shipops.services.carriers.fedex.FedExCarrier", "FX", 3),
        ("shipops.services.carriers.dhl.DHLCarrier", "DHL", 4),
    ])
    async def test_create_shipment(self, carrier_cls_path, prefix, days):
        import importlib
        from shipops.core.clock import utcnow

        module_name, cls_name = carrier_cls_path.rsplit(".", 1)
        carrier = getattr(importlib.import_module(module_name), cls_name)()

        before = utcnow()
        response = await carrier.create_shipment(create_request())

        assert response.success is True
        assert response.tracking_number.startswith(prefix)
        assert response.tracking_url.endswith(response.tracking_number)
        delta = response.estimated_delivery - before
        assert days - 0.01 < delta.total_seconds() / 86400 < days + 0.01
        assert response.carrier_response["charges"]["total"] == (
            carrier.base_charge + carrier.fuel_surcharge
        )

    @pytest.mark.asyncio
    async def test_tracking_numbers_are_unique(self):
        from shipops.services.carriers.blue_dart import BlueDartCarrier

        carrier = BlueDartCarrier()
        numbers = {carrier.generate_tracking_number() for _ in range(50)}

        assert len(numbers) == 50

    @pytest.mark.asyncio
    async def test_track_shipment_reports_in_transit(self):
        from shipops.services.carriers.fedex import FedExCarrier

        response = await FedExCarrier().track_shipment("FX123456")

        assert response.success is True
        assert response.carrier_response["status"] == "IN_TRANSIT"
        assert response.carrier_response["current_location"] == "NEW DELHI"
        statuses = [e["status"] for e in response.carrier_response["tracking_events"]]
        assert statuses == ["PICKED_UP", "IN_TRANSIT"]

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self):
        from shipops.services.carriers.dhl import DHLCarrier

        carrier = DHLCarrier()
        first = await carrier.cancel_shipment("DHL999")
        second = await carrier.cancel_shipment("DHL999")

        assert first.success and second.success
        assert second.carrier_response["status"] == "CANCELLED"
        assert second.carrier_response["refund_amount"] == 200

    @pytest.mark.asyncio
    async def test_rates_cover_every_service_level(self):
        from shipops.services.carriers.blue_dart import BlueDartCarrier

        rates = await BlueDartCarrier().get_shipping_rates(rate_request())

        assert [(r.service_type, r.rate) for r in rates] == [
            ("express", 200), ("standard", 150), ("economy", 100),
        ]
        express = rates[0]
        assert express.additional_charges == {"fuel_surcharge": 20.0}
        assert express.total_rate == 220.0

    @pytest.mark.asyncio
    async def test_rates_filtered_and_insured(self):
        from shipops.services.carriers.fedex import FedExCarrier

        rates = await FedExCarrier().get_shipping_rates(
            rate_request(carrier="fedex", service_type="economy", insurance_required=True)
        )

        assert len(rates) == 1
        assert rates[0].service_name == "FEDEX_ECONOMY"
        # 1% of 10,000 declared value beats the 50 minimum
        assert rates[0].additional_charges == {"fuel_surcharge": 15.0, "insurance": 100.0}
        assert rates[0].total_rate == 265.0


class TestCarrierRegistry:
    def test_default_registry_has_all_carriers(self):
        from shipops.core.settings import Settings
        from shipops.services.carriers import build_default_registry
        from shipops.services.carriers.fedex import FedExCarrier

        registry = build_default_registry(Settings(FEDEX_API_KEY="fx-key"))

        assert registry.keys() == ["blue_dart", "dhl", "fedex"]
        fedex = registry.get("fedex")
        assert isinstance(fedex, FedExCarrier)
        assert fedex.api_key == "fx-key"

    def test_enabled_carriers_limits_registry(self):
        from shipops.core.settings import Settings
        from shipops.services.carriers import build_default_registry

        registry = build_default_registry(Settings(ENABLED_CARRIERS=["dhl"]))

        assert registry.keys() == ["dhl"]
        assert "fedex" not in registry

    def test_unknown_configured_carrier_fails_fast(self):
        from shipops.core.settings import Settings
        from shipops.services.carriers import build_default_registry

        with pytest.raises(ValueError, match="ups"):
            build_default_registry(Settings(ENABLED_CARRIERS=["ups"]))

    def test_unknown_key_raises_unsupported_carrier(self):
        from shipops.exceptions import UnsupportedCarrierError
        from shipops.services.carriers import CarrierRegistry
        from shipops.services.carriers.dhl import DHLCarrier

        registry = CarrierRegistry({"dhl": DHLCarrier()})

        with pytest.raises(UnsupportedCarrierError) as exc_info:
            registry.get("ups")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"carrier": "ups", "supported": ["dhl"]}

    def test_registry_cannot_be_mutated(self):
        from shipops.services.carriers import CarrierRegistry
        from shipops.services.carriers.dhl import DHLCarrier

        source = {"dhl": DHLCarrier()}
        registry = CarrierRegistry(source)
        source["ups"] = DHLCarrier()

        assert "ups" not in registry
        with pytest.raises(TypeError):
            registry._carriers["ups"] = DHLCarrier()


class TestCarrierGateway:
    """Timeout, failure and retry handling around adapter calls"""

    @pytest.mark.asyncio
    async def test_business_failure_becomes_carrier_error(self, fake_carrier):
        from shipops.exceptions import CarrierError
        from shipops.services.carriers import CarrierGateway

        fake_carrier.mode = "reject"
        with pytest.raises(CarrierError) as exc_info:
            await CarrierGateway().create_shipment(fake_carrier, create_request())

        assert exc_info.value.message == "Pincode not serviceable"
        assert exc_info.value.error_code == "CARRIER_ERROR"

    @pytest.mark.asyncio
    async def test_adapter_exception_becomes_unavailable(self, fake_carrier):
        from shipops.exceptions import CarrierUnavailableError
        from shipops.services.carriers import CarrierGateway

        fake_carrier.mode = "raise"
        with pytest.raises(CarrierUnavailableError) as exc_info:
            await CarrierGateway().track_shipment(fake_carrier, "BDTEST0001")

        assert "unreachable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_slow_carrier_times_out(self, fake_carrier):
        from shipops.exceptions import CarrierTimeoutError
        from shipops.services.carriers import CarrierGateway

        fake_carrier.mode = "hang"
        with pytest.raises(CarrierTimeoutError) as exc_info:
            await CarrierGateway(timeout_seconds=0.05).create_shipment(fake_carrier, create_request())

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, fake_carrier):
        from shipops.exceptions import CarrierUnavailableError
        from shipops.services.carriers import CarrierGateway

        calls = []

        async def flaky():
            calls.append(1)
            raise ConnectionError("reset by peer")

        with pytest.raises(CarrierUnavailableError):
            await CarrierGateway().call(fake_carrier, "create_shipment", flaky)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transient_failures_retried_when_enabled(self, fake_carrier):
        from shipops.services.carriers import CarrierGateway

        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset by peer")
            return "booked"

        gateway = CarrierGateway(max_retries=2, backoff_seconds=0)
        result = await gateway.call(fake_carrier, "create_shipment", flaky)

        assert result == "booked"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted_reraises_last_error(self, fake_carrier):
        from shipops.exceptions import CarrierTimeoutError
        from shipops.services.carriers import CarrierGateway

        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(1)

        gateway = CarrierGateway(timeout_seconds=0.01, max_retries=1, backoff_seconds=0)
        with pytest.raises(CarrierTimeoutError):
            await gateway.call(fake_carrier, "track_shipment", slow)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_business_failure_never_retried(self, fake_carrier):
        from shipops.exceptions import CarrierError
        from shipops.services.carriers import CarrierGateway

        fake_carrier.mode = "reject"
        gateway = CarrierGateway(max_retries=3, backoff_seconds=0)

        with pytest.raises(CarrierError):
            await gateway.create_shipment(fake_carrier, create_request())

        assert fake_carrier.created == []

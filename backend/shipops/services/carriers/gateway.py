"""
Carrier call gateway

Runs adapter coroutines under a timeout and turns the three ways a carrier
call can go wrong into distinct exceptions:

    timed out                   -> CarrierTimeoutError
    adapter raised              -> CarrierUnavailableError
    carrier said success=False  -> CarrierError (via require_success)

With CARRIER_MAX_RETRIES > 0 the first two are retried with exponential
backoff. A carrier's business rejection is never retried.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shipops.core.settings import Settings, get_settings
from shipops.exceptions import (
    CarrierError,
    CarrierTimeoutError,
    CarrierUnavailableError,
    ShipOpsException,
)
from shipops.logging_config import get_logger
from shipops.services.carriers.base import CarrierResponse, ShippingCarrier

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_CARRIER_ERRORS = (CarrierTimeoutError, CarrierUnavailableError)


class CarrierGateway:
    """Bounded, optionally retried carrier calls"""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        max_retries: int = 0,
        backoff_seconds: float = 0.5,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CarrierGateway":
        settings = settings or get_settings()
        return cls(
            timeout_seconds=settings.CARRIER_TIMEOUT_SECONDS,
            max_retries=settings.CARRIER_MAX_RETRIES,
            backoff_seconds=settings.CARRIER_RETRY_BACKOFF_SECONDS,
        )

    async def call(
        self,
        carrier: ShippingCarrier,
        operation: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        if self.max_retries <= 0:
            return await self._call_once(carrier, operation, func, *args)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
            retry=retry_if_exception_type(TRANSIENT_CARRIER_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying {carrier.key}.{operation}",
                        extra={"attempt": attempt.retry_state.attempt_number},
                    )
                return await self._call_once(carrier, operation, func, *args)

    async def _call_once(self, carrier, operation, func, *args):
        try:
            return await asyncio.wait_for(func(*args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                f"Carrier call timed out: {carrier.key}.{operation}",
                extra={"carrier": carrier.key, "timeout_seconds": self.timeout_seconds},
            )
            raise CarrierTimeoutError(
                carrier.key,
                f"{carrier.key} did not respond within {self.timeout_seconds}s",
                details={"operation": operation},
            ) from None
        except ShipOpsException:
            raise
        except Exception as e:
            logger.error(
                f"Carrier call failed: {carrier.key}.{operation}: {e}",
                exc_info=True,
                extra={"carrier": carrier.key},
            )
            raise CarrierUnavailableError(
                carrier.key,
                f"{carrier.key} {operation} failed: {e}",
                details={"operation": operation},
            ) from e

    async def create_shipment(self, carrier: ShippingCarrier, request) -> CarrierResponse:
        response = await self.call(carrier, "create_shipment", carrier.create_shipment, request)
        return require_success(carrier, response, "Shipment creation failed")

    async def track_shipment(self, carrier: ShippingCarrier, tracking_number: str) -> CarrierResponse:
        response = await self.call(carrier, "track_shipment", carrier.track_shipment, tracking_number)
        return require_success(carrier, response, "Tracking failed")

    async def cancel_shipment(self, carrier: ShippingCarrier, tracking_number: str) -> CarrierResponse:
        response = await self.call(carrier, "cancel_shipment", carrier.cancel_shipment, tracking_number)
        return require_success(carrier, response, "Cancellation failed")

    async def get_shipping_rates(self, carrier: ShippingCarrier, request):
        return await self.call(carrier, "get_shipping_rates", carrier.get_shipping_rates, request)


def require_success(carrier: ShippingCarrier, response: CarrierResponse, fallback: str) -> CarrierResponse:
    if not response.success:
        raise CarrierError(carrier.key, response.error or fallback)
    return response

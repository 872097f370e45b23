"""
Carrier registry

Lookup table from carrier key to adapter instance. Built once at startup
from settings and read-only afterwards, so concurrent requests can share it.
"""
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Type

from shipops.core.settings import Settings, get_settings
from shipops.exceptions import UnsupportedCarrierError
from shipops.logging_config import get_logger
from shipops.services.carriers.base import SandboxCarrier, ShippingCarrier
from shipops.services.carriers.blue_dart import BlueDartCarrier
from shipops.services.carriers.dhl import DHLCarrier
from shipops.services.carriers.fedex import FedExCarrier

logger = get_logger(__name__)

CARRIER_CLASSES: Dict[str, Type[SandboxCarrier]] = {
    BlueDartCarrier.key: BlueDartCarrier,
    FedExCarrier.key: FedExCarrier,
    DHLCarrier.key: DHLCarrier,
}


class CarrierRegistry:
    """Immutable carrier lookup"""

    def __init__(self, carriers: Mapping[str, ShippingCarrier]):
        self._carriers = MappingProxyType(dict(carriers))

    def get(self, key: str) -> ShippingCarrier:
        """
        Resolve a carrier adapter.

        Raises:
            UnsupportedCarrierError: key is not registered
        """
        try:
            return self._carriers[key]
        except KeyError:
            raise UnsupportedCarrierError(key, self.keys()) from None

    def keys(self) -> List[str]:
        return sorted(self._carriers)

    def __contains__(self, key: object) -> bool:
        return key in self._carriers

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._carriers)


def build_default_registry(settings: Settings) -> CarrierRegistry:
    """Instantiate every carrier listed in ENABLED_CARRIERS."""
    credentials = {
        "blue_dart": (settings.BLUE_DART_API_KEY, settings.BLUE_DART_BASE_URL),
        "fedex": (settings.FEDEX_API_KEY, settings.FEDEX_BASE_URL),
        "dhl": (settings.DHL_API_KEY, settings.DHL_BASE_URL),
    }

    carriers = {}
    for key in settings.ENABLED_CARRIERS:
        if key not in CARRIER_CLASSES:
            raise ValueError(
                f"ENABLED_CARRIERS lists unknown carrier '{key}'. "
                f"Known carriers: {', '.join(sorted(CARRIER_CLASSES))}"
            )
        api_key, base_url = credentials[key]
        carriers[key] = CARRIER_CLASSES[key](api_key=api_key, base_url=base_url)

    logger.info("Carrier registry built", extra={"carriers": sorted(carriers)})
    return CarrierRegistry(carriers)


@lru_cache
def get_carrier_registry() -> CarrierRegistry:
    """Process-wide registry, built on first use."""
    return build_default_registry(get_settings())

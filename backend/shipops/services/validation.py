"""
Request validation for shipments and tracking updates

Checks run before any carrier call or database write. Each function
collects every violation and raises a single ValidationError.
"""
import re
from datetime import datetime, timedelta
from typing import List, Optional

from shipops.core.clock import to_naive_utc, utcnow
from shipops.exceptions import ValidationError
from shipops.models.shipment import ServiceType, ShipmentStatus
from shipops.schemas.shipment import (
    PackageDetails,
    ShipmentCreate,
    ShippingAddress,
    ShippingRateRequest,
    TrackingUpdate,
)

MAX_PACKAGE_WEIGHT_KG = 30
MAX_PACKAGE_DIMENSIONS_CM = 300
MAX_PACKAGE_VALUE = 100_000

MIN_TRACKING_NUMBER_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 10
# Carrier clocks drift; anything further ahead than this is a bad timestamp
MAX_EVENT_CLOCK_SKEW = timedelta(minutes=5)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")

REQUIRED_ADDRESS_FIELDS = ("address1", "city", "state", "postal_code", "country")

SERVICE_TYPES = frozenset(s.value for s in ServiceType)
SHIPMENT_STATUSES = frozenset(s.value for s in ShipmentStatus)


def package_errors(package: PackageDetails) -> List[str]:
    errors = []
    if package.weight <= 0:
        errors.append("Package weight must be greater than 0kg")
    elif package.weight > MAX_PACKAGE_WEIGHT_KG:
        errors.append(f"Package weight cannot exceed {MAX_PACKAGE_WEIGHT_KG}kg")

    dims = package.dimensions
    if min(dims.length, dims.width, dims.height) < 0:
        errors.append("Package dimensions cannot be negative")
    if dims.total > MAX_PACKAGE_DIMENSIONS_CM:
        errors.append(f"Total package dimensions cannot exceed {MAX_PACKAGE_DIMENSIONS_CM}cm")

    if package.value < 0:
        errors.append("Package value cannot be negative")
    elif package.value > MAX_PACKAGE_VALUE:
        errors.append("Package value cannot exceed ₹1,00,000")
    return errors


def address_errors(address: ShippingAddress) -> List[str]:
    errors = []
    for field in REQUIRED_ADDRESS_FIELDS:
        value = getattr(address, field)
        if value is None or not value.strip():
            errors.append(f"Shipping address {field} is required")
    return errors


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_PATTERN.match(_PHONE_SEPARATORS.sub("", phone)))


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email))


def validate_shipment_request(request: ShipmentCreate) -> None:
    """Validate a create-shipment request.

    Raises:
        ValidationError: with every violation found
    """
    errors = package_errors(request.package) + address_errors(request.shipping_address)

    if request.service_type not in SERVICE_TYPES:
        errors.append(f"Invalid service type: {request.service_type}")
    if not is_valid_phone(request.customer_phone):
        errors.append("Invalid phone number format")
    if not is_valid_email(request.customer_email):
        errors.append("Invalid email format")

    if errors:
        raise ValidationError(errors)


def validate_rate_request(request: ShippingRateRequest) -> None:
    """Rates need a shippable package and a complete address, nothing else."""
    errors = package_errors(request.package) + address_errors(request.shipping_address)
    if request.service_type is not None and request.service_type not in SERVICE_TYPES:
        errors.append(f"Invalid service type: {request.service_type}")
    if errors:
        raise ValidationError(errors)


def validate_tracking_update(update: TrackingUpdate, now: Optional[datetime] = None) -> None:
    errors = []
    if not update.tracking_number or len(update.tracking_number.strip()) < MIN_TRACKING_NUMBER_LENGTH:
        errors.append("Invalid tracking number")
    if update.status not in SHIPMENT_STATUSES:
        errors.append("Invalid tracking status")
    if not update.description or len(update.description.strip()) < MIN_DESCRIPTION_LENGTH:
        errors.append(f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters")
    if update.delivery_attempt is not None and update.delivery_attempt < 1:
        errors.append("Delivery attempt must be at least 1")
    if update.timestamp is not None:
        latest = (to_naive_utc(now) or utcnow()) + MAX_EVENT_CLOCK_SKEW
        if to_naive_utc(update.timestamp) > latest:
            errors.append("Event timestamp cannot be in the future")
    if errors:
        raise ValidationError(errors)


def validate_status(status: str) -> None:
    if status not in SHIPMENT_STATUSES:
        raise ValidationError([f"Invalid shipment status: {status}"])

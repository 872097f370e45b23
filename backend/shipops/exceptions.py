"""
ShipOps exception hierarchy

Every error the services raise derives from ShipOpsException. The FastAPI
handler in shipops.main turns them into a uniform JSON body:

    {"error": "CONFLICT", "message": "...", "details": {...}}
"""
from typing import Any, Dict, List, Optional


class ShipOpsException(Exception):
    """Base exception for all ShipOps errors."""

    error_code = "SHIPOPS_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ShipOpsException):
    """One or more request fields are malformed or out of bounds.

    Carries every violation, not just the first.
    """

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        self.errors = list(errors)
        super().__init__(message, details={"errors": self.errors})


class NotFoundError(ShipOpsException):
    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} not found: {identifier}",
            details={"resource": resource, "id": identifier},
        )


class UnsupportedCarrierError(ShipOpsException):
    error_code = "UNSUPPORTED_CARRIER"
    status_code = 400

    def __init__(self, carrier: str, supported: Optional[List[str]] = None):
        self.carrier = carrier
        details = {"carrier": carrier}
        if supported is not None:
            details["supported"] = sorted(supported)
        super().__init__(f"Unsupported carrier: {carrier}", details=details)


class InvalidStateError(ShipOpsException):
    """Order not eligible for fulfillment, or a concurrent request got there first."""

    error_code = "INVALID_STATE"
    status_code = 409


class ConflictError(ShipOpsException):
    """Operation not allowed against the shipment's current (usually terminal) state."""

    error_code = "CONFLICT"
    status_code = 409


class CarrierError(ShipOpsException):
    """The carrier reported a business failure. Message is the carrier's own."""

    error_code = "CARRIER_ERROR"
    status_code = 502

    def __init__(self, carrier: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.carrier = carrier
        super().__init__(message, details={"carrier": carrier, **(details or {})})


class CarrierUnavailableError(CarrierError):
    """The adapter raised instead of answering."""

    error_code = "CARRIER_UNAVAILABLE"
    status_code = 502


class CarrierTimeoutError(CarrierError):
    error_code = "CARRIER_TIMEOUT"
    status_code = 504

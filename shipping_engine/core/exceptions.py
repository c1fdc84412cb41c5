"""
Shipping Engine Exception Hierarchy

All exceptions carry code, message, and details so callers can branch on
`code` and log `to_dict()` without parsing messages.

Exception Hierarchy:
    ShippingEngineError
    ├── CarrierError
    │   ├── CarrierAuthFailure
    │   ├── InvalidAddress
    │   ├── TransientCarrierFailure
    │   ├── LabelCreationFailed
    │   ├── ShipmentVoidFailed
    │   └── TrackingNotFound
    └── NoRatesAvailable

A packing "no fit" is not an exception: the selector returns None and the
packer lists the item as unpacked. Hub routing always returns a hub.
"""
from typing import Any, Dict, List, Optional


class ShippingEngineError(Exception):
    """
    Base exception for all shipping engine errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "SHIPPING_ERROR"
    default_severity: str = "P2"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# CARRIER ERRORS
# =============================================================================

class CarrierError(ShippingEngineError):
    """Base exception for a failed carrier API call."""
    default_code = "CARRIER_ERROR"

    def __init__(
        self,
        message: str,
        carrier: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "carrier": carrier,
            "status_code": status_code,
        })
        self.carrier = carrier
        self.status_code = status_code
        super().__init__(message, details=details, **kwargs)


class CarrierAuthFailure(CarrierError):
    """Carrier rejected our credentials or the OAuth token."""
    default_code = "CARRIER_AUTH_FAILED"
    default_severity = "P0"


class InvalidAddress(CarrierError):
    """Carrier rejected the origin or destination address."""
    default_code = "INVALID_ADDRESS"
    default_severity = "P3"


class TransientCarrierFailure(CarrierError):
    """Network error, timeout, rate limit or 5xx. Safe to retry with backoff."""
    default_code = "CARRIER_UNAVAILABLE"
    retryable = True


class LabelCreationFailed(CarrierError):
    """Carrier refused to create a label. Never retried automatically."""
    default_code = "LABEL_CREATION_FAILED"
    default_severity = "P1"


class ShipmentVoidFailed(CarrierError):
    """Carrier refused to void a shipment, e.g. one already picked up."""
    default_code = "VOID_FAILED"
    default_severity = "P2"


class TrackingNotFound(CarrierError):
    """Carrier has no record of the tracking number."""
    default_code = "TRACKING_NOT_FOUND"
    default_severity = "P3"

    def __init__(self, message: str, tracking_number: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["tracking_number"] = tracking_number
        self.tracking_number = tracking_number
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RATE SHOPPING
# =============================================================================

class NoRatesAvailable(ShippingEngineError):
    """Every requested service level failed or timed out."""
    default_code = "NO_RATES_AVAILABLE"
    default_severity = "P1"

    def __init__(self, message: str, failures: Optional[List[Dict[str, Any]]] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["failures"] = failures or []
        self.failures = failures or []
        super().__init__(message, details=details, **kwargs)

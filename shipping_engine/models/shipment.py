"""
Carrier-agnostic shipment value types

Carrier clients translate these into and out of their own wire formats.
All of them are frozen; a quote, label or event is never edited after it
is built.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shipping_engine.models.carrier import CarrierCode


class ShipmentStatus(str, enum.Enum):
    """Shipment lifecycle status"""
    LABEL_CREATED = "label_created"  # Label ready, carrier has not scanned it
    PICKED_UP = "picked_up"  # Carrier has package
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"  # Delivery issue
    RETURNED = "returned"


@dataclass(frozen=True)
class Address:
    """A postal address. `region` is the state/province code."""
    street: str
    city: str
    region: str
    postal_code: str
    country: str = "US"
    residential: bool = True
    street2: Optional[str] = None
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    def is_domestic(self, origin_country: str = "US") -> bool:
        return self.country.upper() == origin_country.upper()


@dataclass(frozen=True)
class Package:
    """Package weight (pounds) and optional dimensions (inches)."""
    weight: float
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    declared_value: Decimal = Decimal("0")
    packaging_type: Optional[str] = None

    def __post_init__(self):
        if self.weight is None or self.weight <= 0:
            raise ValueError(f"Package weight must be greater than zero, got {self.weight}")
        if self.declared_value < 0:
            raise ValueError(f"Declared value cannot be negative, got {self.declared_value}")
        for name in ("length", "width", "height"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"Package {name} must be greater than zero, got {value}")

    @property
    def has_dimensions(self) -> bool:
        return None not in (self.length, self.width, self.height)


@dataclass(frozen=True)
class RateQuote:
    """Shipping rate quote for one (carrier, service) pair."""
    carrier: CarrierCode
    service_code: str
    service_name: str
    amount: Decimal
    estimated_days: int
    currency: str = "USD"
    guaranteed: bool = False
    delivery_date: Optional[datetime] = None
    hub_id: Optional[str] = None
    ttl_seconds: int = 1800  # 30 minutes default

    def __post_init__(self):
        if self.estimated_days is None or self.estimated_days < 0:
            raise ValueError(f"estimated_days must be >= 0, got {self.estimated_days}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier.value,
            "service_code": self.service_code,
            "service_name": self.service_name,
            "amount": str(self.amount),
            "currency": self.currency,
            "estimated_days": self.estimated_days,
            "guaranteed": self.guaranteed,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "hub_id": self.hub_id,
            "ttl_seconds": self.ttl_seconds,
        }


@dataclass(frozen=True)
class Label:
    """Result of a successful label creation."""
    tracking_number: str
    carrier: CarrierCode
    service_code: str
    label_reference: str  # base64 document or URL
    label_format: str = "PDF"
    cost: Decimal = Decimal("0.00")
    currency: str = "USD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracking_number": self.tracking_number,
            "carrier": self.carrier.value,
            "service_code": self.service_code,
            "label_reference": self.label_reference,
            "label_format": self.label_format,
            "cost": str(self.cost),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class VoidResult:
    """Result of voiding a shipment."""
    success: bool
    tracking_number: str
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tracking_number": self.tracking_number,
            "error_message": self.error_message,
        }


class AddressValidationStatus(str, enum.Enum):
    VALID = "VALID"
    CORRECTED = "CORRECTED"  # Not deliverable as given; carrier suggested a fix
    INVALID = "INVALID"


@dataclass(frozen=True)
class AddressValidationResult:
    """Carrier verdict on an address, with its suggested correction if any."""
    is_valid: bool
    original_address: Address
    status: AddressValidationStatus
    corrected_address: Optional[Address] = None
    messages: Tuple[str, ...] = ()

    @classmethod
    def from_check(
        cls,
        original: Address,
        is_valid: bool,
        corrected: Optional[Address] = None,
        messages: Sequence[str] = (),
    ) -> "AddressValidationResult":
        if is_valid:
            status = AddressValidationStatus.VALID
        elif corrected is not None:
            status = AddressValidationStatus.CORRECTED
        else:
            status = AddressValidationStatus.INVALID
        return cls(
            is_valid=is_valid,
            original_address=original,
            status=status,
            corrected_address=corrected,
            messages=tuple(messages),
        )


@dataclass(frozen=True)
class TrackingEvent:
    """A single tracking scan."""
    timestamp: datetime
    status: ShipmentStatus
    location: Optional[str] = None
    carrier_status: Optional[str] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "location": self.location,
            "carrier_status": self.carrier_status,
            "description": self.description,
        }


def sort_events(events: List[TrackingEvent]) -> List[TrackingEvent]:
    """Order tracking events oldest first."""
    return sorted(events, key=lambda e: e.timestamp)

"""
Shipping Schemas

Pydantic models that validate inbound shipping payloads and convert them
into the engine's domain types.
"""
from decimal import Decimal
from typing import List, Optional
import re

from pydantic import BaseModel, Field, field_validator, model_validator

from shipping_engine.models.carrier import CarrierCode
from shipping_engine.models.shipment import Address, Package
from shipping_engine.modules.shipping.packing import PackItem
from shipping_engine.modules.shipping.services import ServiceLevelRequest


# ==================== Address Schemas ====================


class AddressIn(BaseModel):
    """A postal address."""
    name: Optional[str] = Field(None, max_length=100)
    company: Optional[str] = Field(None, max_length=100)
    street: str = Field(..., min_length=1, max_length=100)
    street2: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    region: str = Field(..., min_length=2, max_length=50, description="State/province code")
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field("US", min_length=2, max_length=2)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)
    residential: bool = True

    @field_validator("country", "region")
    @classmethod
    def upper_case_codes(cls, v):
        return v.strip().upper()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            # Remove non-digits for normalization
            digits = re.sub(r'\D', '', v)
            if len(digits) < 10 or len(digits) > 15:
                raise ValueError("Phone number must be 10-15 digits")
        return v

    def to_domain(self) -> Address:
        return Address(
            street=self.street,
            street2=self.street2,
            city=self.city,
            region=self.region,
            postal_code=self.postal_code,
            country=self.country,
            residential=self.residential,
            name=self.name,
            company=self.company,
            phone=self.phone,
            email=self.email,
        )


# ==================== Package Schemas ====================


class PackageIn(BaseModel):
    """Package details for rate quoting and shipping."""
    weight: float = Field(..., gt=0, le=150, description="Weight in LBS")
    length: Optional[float] = Field(None, gt=0, le=108, description="Length in inches")
    width: Optional[float] = Field(None, gt=0, le=108, description="Width in inches")
    height: Optional[float] = Field(None, gt=0, le=108, description="Height in inches")
    declared_value: Decimal = Field(Decimal("0"), ge=0, description="Declared value for insurance")
    packaging_type: Optional[str] = None

    @model_validator(mode="after")
    def dimensions_all_or_none(self):
        dims = [self.length, self.width, self.height]
        if any(d is not None for d in dims) and None in dims:
            raise ValueError("length, width and height must be given together")
        return self

    def to_domain(self) -> Package:
        return Package(
            weight=self.weight,
            length=self.length,
            width=self.width,
            height=self.height,
            declared_value=self.declared_value,
            packaging_type=self.packaging_type,
        )


class ItemIn(BaseModel):
    """An item to be packed by the engine."""
    name: str = Field(..., min_length=1, max_length=200)
    length: float = Field(..., gt=0, description="Length in inches")
    width: float = Field(..., gt=0, description="Width in inches")
    height: float = Field(..., gt=0, description="Height in inches")
    weight: float = Field(..., gt=0, description="Weight in LBS")
    quantity: int = Field(1, ge=1, le=1000)
    product_type: Optional[str] = None
    fragile: bool = False
    rollable: bool = False

    def to_domain(self) -> PackItem:
        return PackItem(
            name=self.name,
            length=self.length,
            width=self.width,
            height=self.height,
            weight=self.weight,
            quantity=self.quantity,
            product_type=self.product_type,
            fragile=self.fragile,
            rollable=self.rollable,
        )


class ServiceLevelIn(BaseModel):
    carrier: CarrierCode
    service_code: str = Field(..., min_length=1, max_length=50)

    def to_domain(self) -> ServiceLevelRequest:
        return ServiceLevelRequest(carrier=self.carrier, service_code=self.service_code)


# ==================== Rate Schemas ====================


class RateShopRequest(BaseModel):
    """
    Request shipping rates.

    Give either ready-made packages or items to pack, not both.
    """
    origin: AddressIn
    destination: AddressIn
    packages: Optional[List[PackageIn]] = None
    items: Optional[List[ItemIn]] = None
    product_type: Optional[str] = Field(None, max_length=50)
    service_levels: Optional[List[ServiceLevelIn]] = None

    @model_validator(mode="after")
    def packages_or_items(self):
        if bool(self.packages) == bool(self.items):
            raise ValueError("Provide either packages or items")
        if self.service_levels is not None and not self.service_levels:
            raise ValueError("service_levels cannot be empty")
        return self

    def service_level_requests(self) -> Optional[List[ServiceLevelRequest]]:
        if self.service_levels is None:
            return None
        return [s.to_domain() for s in self.service_levels]


# ==================== Label Schemas ====================


class LabelRequest(BaseModel):
    """Create a shipping label for a chosen service."""
    origin: AddressIn
    destination: AddressIn
    packages: List[PackageIn] = Field(..., min_length=1)
    carrier: CarrierCode
    service_code: str = Field(..., min_length=1, max_length=50)
    label_format: Optional[str] = Field(None, description="PDF, PNG, ZPL, GIF, EPL")

    @field_validator("label_format")
    @classmethod
    def upper_label_format(cls, v):
        return v.upper() if v else v

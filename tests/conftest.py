"""
Pytest configuration and fixtures for shipping engine tests.
"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

import httpx
import pytest

# Set test environment before importing engine modules
os.environ["ENVIRONMENT"] = "test"
os.environ["SHIPPING_ENABLED_CARRIERS"] = "FEDEX,UPS"

from shipping_engine.core.exceptions import TrackingNotFound  # noqa: E402
from shipping_engine.models.carrier import CarrierCode, CarrierCredentials  # noqa: E402
from shipping_engine.models.shipment import (  # noqa: E402
    Address,
    AddressValidationResult,
    Label,
    Package,
    RateQuote,
    ShipmentStatus,
    TrackingEvent,
    VoidResult,
)
from shipping_engine.modules.shipping.boxes import (  # noqa: E402
    Box,
    BoxCatalog,
    BoxCategory,
    default_box_catalog,
)
from shipping_engine.modules.shipping.carriers.base import BaseCarrier  # noqa: E402
from shipping_engine.modules.shipping.hubs import Hub, HubRouter, default_hub_router  # noqa: E402

# (delay seconds, amount, exception to raise, or None for no quotes)
Behavior = Tuple[float, Union[Decimal, Exception, None]]


def _unused_transport(request: httpx.Request) -> httpx.Response:
    return httpx.Response(599, json={"error": "fake carriers never make HTTP calls"})


class FakeCarrier(BaseCarrier):
    """
    In-memory carrier.

    `behaviors` maps service code to (delay, outcome); unknown services quote
    10.00 immediately. Labels are remembered so track() can find them.
    """

    def __init__(self, code: CarrierCode, behaviors: Optional[Dict[str, Behavior]] = None):
        super().__init__(
            CarrierCredentials("fake-id", "fake-secret", "000000"),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_unused_transport)),
            hub_router=default_hub_router(),
        )
        self._code = code
        self.behaviors = behaviors or {}
        self.rate_calls: List[Optional[str]] = []
        self.cancelled: List[str] = []
        self.labels: Dict[str, str] = {}
        self.track_failures: List[Exception] = []
        self.track_calls = 0

    @property
    def carrier_code(self) -> CarrierCode:
        return self._code

    @property
    def carrier_name(self) -> str:
        return f"Fake {self._code.value}"

    async def get_rates(self, origin, destination, packages, service_code=None):
        self.rate_calls.append(service_code)
        delay, outcome = self.behaviors.get(service_code, (0, Decimal("10.00")))
        try:
            if delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(service_code)
            raise
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return []
        return [
            RateQuote(
                carrier=self._code,
                service_code=service_code,
                service_name=f"{self._code.value} {service_code}",
                amount=outcome,
                estimated_days=2,
            )
        ]

    async def create_label(self, origin, destination, packages, service_code, label_format=None):
        tracking_number = f"{self._code.value}{len(self.labels) + 1:08d}"
        self.labels[tracking_number] = service_code
        return Label(
            tracking_number=tracking_number,
            carrier=self._code,
            service_code=service_code,
            label_reference="JVBERi0xLjQK",
            label_format=label_format or "PDF",
            cost=Decimal("12.34"),
        )

    async def track(self, tracking_number):
        self.track_calls += 1
        if self.track_failures:
            raise self.track_failures.pop(0)
        if tracking_number not in self.labels:
            raise TrackingNotFound(
                "unknown tracking number", tracking_number=tracking_number, carrier=self._code.value
            )
        created = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        return [
            TrackingEvent(timestamp=created, status=ShipmentStatus.LABEL_CREATED, description="Label created"),
            TrackingEvent(
                timestamp=created + timedelta(hours=6),
                status=ShipmentStatus.PICKED_UP,
                location="Memphis, TN",
                description="Picked up",
            ),
        ]

    async def void_shipment(self, tracking_number):
        if self.labels.pop(tracking_number, None) is None:
            return VoidResult(False, tracking_number, error_message="unknown tracking number")
        return VoidResult(True, tracking_number)

    async def validate_address(self, address):
        return AddressValidationResult.from_check(address, bool(address.postal_code))

    def get_tracking_url(self, tracking_number):
        return f"https://example.com/track/{tracking_number}"

    def map_status(self, carrier_status):
        return ShipmentStatus.IN_TRANSIT


@pytest.fixture
def fake_carrier_factory():
    """Build FakeCarrier instances inside a test."""
    return FakeCarrier


@pytest.fixture
def credentials() -> CarrierCredentials:
    return CarrierCredentials(
        client_id="test-client-id",
        client_secret="test-client-secret",
        account_number="740561073",
        use_sandbox=True,
    )


@pytest.fixture
def origin() -> Address:
    return Address(
        street="500 Warehouse Way",
        city="Memphis",
        region="TN",
        postal_code="38118",
        residential=False,
        name="Shipping Dept",
        company="Print Shop",
        phone="9015550100",
    )


@pytest.fixture
def destination() -> Address:
    return Address(
        street="123 Main St",
        city="Los Angeles",
        region="CA",
        postal_code="90012",
        name="Jane Customer",
        email="jane@example.com",
    )


@pytest.fixture
def package() -> Package:
    return Package(weight=3.0, length=10.0, width=8.0, height=2.0)


@pytest.fixture
def box_catalog() -> BoxCatalog:
    return default_box_catalog()


@pytest.fixture
def small_catalog() -> BoxCatalog:
    """Three plain boxes, easy to reason about."""
    def box(box_id, l, w, h, max_weight, tare=0.5):
        return Box(
            id=box_id,
            name=box_id,
            display_name=box_id,
            category=BoxCategory.SMALL,
            length=l,
            width=w,
            height=h,
            max_weight=max_weight,
            tare_weight=tare,
            one_rate_eligible=False,
            packaging_type="YOUR_PACKAGING",
        )

    return BoxCatalog([
        box("LARGE", 20, 20, 20, 50),
        box("SMALL", 6, 6, 6, 5),
        box("MEDIUM", 12, 10, 8, 20),
    ])


@pytest.fixture
def hub_router() -> HubRouter:
    return default_hub_router()


@pytest.fixture
def tiny_hub_router() -> HubRouter:
    hubs = [
        Hub("H1", "WEST", "Reno", "NV", "89502", frozenset({"NV", "CA"})),
        Hub("H2", "EAST", "Newark", "NJ", "07114", frozenset({"NJ", "NY"})),
        Hub("H3", "MIDDLE", "Omaha", "NE", "68102", frozenset({"NE", "CA"})),
    ]
    return HubRouter(hubs, fallback_hub_id="H3")

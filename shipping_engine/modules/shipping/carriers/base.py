"""
Base Carrier Interface

All carriers implement this interface. Each carrier provides its own:
  - Rate calculation
  - Label creation
  - Tracking
  - Shipment voiding
  - Address validation
  - Status mapping

Quote post-processing is shared: every carrier drops services outside its
enabled list and applies the configured markup through `finalize_quotes`.

The carrier-agnostic value types live in shipping_engine.models.shipment and
are re-exported here for carrier implementations.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

import httpx

from shipping_engine.core.config import settings
from shipping_engine.models.carrier import CarrierCode, CarrierCredentials
from shipping_engine.models.shipment import (  # noqa: F401
    Address,
    AddressValidationResult,
    Label,
    Package,
    RateQuote,
    ShipmentStatus,
    TrackingEvent,
    VoidResult,
    sort_events,
)
from shipping_engine.modules.shipping.hubs import HubRouter, default_hub_router
from shipping_engine.modules.shipping.services import get_service

logger = logging.getLogger(__name__)


# =============================================================================
# Base Carrier Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for all shipping carriers.

    A carrier either borrows an httpx.AsyncClient from the caller or creates
    its own; only an owned client is closed by `close()`.
    """

    def __init__(
        self,
        credentials: CarrierCredentials,
        http_client: Optional[httpx.AsyncClient] = None,
        hub_router: Optional[HubRouter] = None,
        markup_percent: Optional[float] = None,
        enabled_services: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the carrier.

        Args:
            credentials: Opaque client id/secret/account for the carrier API
            http_client: Optional shared client; one is created when omitted
            hub_router: Router for hub-based services
            markup_percent: Added to every quote; SHIPPING_RATE_MARKUP_PERCENT when omitted
            enabled_services: Service codes this carrier may quote; read from
                <CARRIER>_ENABLED_SERVICES when omitted, empty means all
        """
        if markup_percent is None:
            markup_percent = settings.SHIPPING_RATE_MARKUP_PERCENT
        if markup_percent < 0:
            raise ValueError("markup_percent cannot be negative")
        self._markup_percent = markup_percent
        self._enabled_services = list(enabled_services) if enabled_services is not None else None
        self._credentials = credentials
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.SHIPPING_HTTP_TIMEOUT_SECONDS
        )
        self._hub_router = hub_router or default_hub_router()

    @property
    @abstractmethod
    def carrier_code(self) -> CarrierCode:
        """Return the carrier code enum value."""
        pass

    @property
    @abstractmethod
    def carrier_name(self) -> str:
        """Return the human-readable carrier name."""
        pass

    @property
    def credentials(self) -> CarrierCredentials:
        return self._credentials

    @property
    def hub_router(self) -> HubRouter:
        return self._hub_router

    @property
    def markup_percent(self) -> float:
        return self._markup_percent

    @property
    def enabled_services(self) -> List[str]:
        if self._enabled_services is not None:
            return self._enabled_services
        return list(getattr(settings, f"{self.carrier_code.value}_ENABLED_SERVICES", []))

    def is_service_enabled(self, service_code: str) -> bool:
        enabled = self.enabled_services
        return not enabled or service_code in enabled

    def apply_markup(self, amount: Decimal) -> Decimal:
        if not self._markup_percent:
            return amount
        factor = Decimal(1) + Decimal(str(self._markup_percent)) / Decimal(100)
        return (amount * factor).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def finalize_quotes(self, quotes: List[RateQuote]) -> List[RateQuote]:
        """Drop quotes for disabled services and apply the markup to the rest."""
        kept = [q for q in quotes if self.is_service_enabled(q.service_code)]
        if len(kept) < len(quotes):
            logger.debug(
                f"{self.carrier_code.value}: dropped {len(quotes) - len(kept)} quote(s) for disabled services"
            )
        if not self._markup_percent:
            return kept
        return [replace(q, amount=self.apply_markup(q.amount)) for q in kept]

    def get_rate_ttl(self) -> int:
        """Return the rate quote TTL in seconds."""
        return settings.SHIPPING_RATE_QUOTE_TTL_MINUTES * 60

    def resolve_transit_days(
        self,
        service_code: str,
        reported_days: Optional[int],
        delivery_date: Optional[datetime] = None,
    ) -> int:
        """
        Transit days for a quote.

        Uses the carrier-reported value, then the days until the reported
        delivery date, then the catalog's upper bound for the service.
        """
        if reported_days is not None and reported_days >= 0:
            return reported_days
        if delivery_date is not None:
            now = datetime.now(delivery_date.tzinfo)
            return max(0, (delivery_date.date() - now.date()).days)
        service = get_service(self.carrier_code, service_code)
        if service is not None:
            return service.estimated_days_max
        logger.debug(f"No transit estimate for {self.carrier_code.value} {service_code}")
        return 0

    @abstractmethod
    async def get_rates(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: Optional[str] = None,
    ) -> List[RateQuote]:
        """
        Get shipping rates from the carrier.

        Args:
            origin: Origin address
            destination: Destination address
            packages: Packages to ship
            service_code: Restrict the quote to one service when given

        Returns:
            List of RateQuote objects for available services

        Raises:
            CarrierAuthFailure, InvalidAddress, TransientCarrierFailure, CarrierError
        """
        pass

    @abstractmethod
    async def create_label(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: str,
        label_format: Optional[str] = None,
    ) -> Label:
        """
        Create a shipment and generate its label. Never retried.

        `label_format` defaults to SHIPPING_LABEL_FORMAT.

        Raises:
            LabelCreationFailed, InvalidAddress, CarrierAuthFailure, TransientCarrierFailure
        """
        pass

    @abstractmethod
    async def track(self, tracking_number: str) -> List[TrackingEvent]:
        """
        Get tracking events for a shipment, oldest first.

        Raises:
            TrackingNotFound, TransientCarrierFailure
        """
        pass

    @abstractmethod
    async def void_shipment(self, tracking_number: str) -> VoidResult:
        """
        Void/cancel a shipment whose label has not been tendered.

        A carrier refusal comes back as VoidResult(success=False); auth and
        transient failures are raised.
        """
        pass

    @abstractmethod
    async def validate_address(self, address: Address) -> AddressValidationResult:
        """
        Validate an address with the carrier's API.

        An address the carrier rejects is an INVALID result, not an error.
        """
        pass

    @abstractmethod
    def get_tracking_url(self, tracking_number: str) -> str:
        """Public tracking page URL for a shipment."""
        pass

    @abstractmethod
    def map_status(self, carrier_status: str) -> ShipmentStatus:
        """Map a carrier-specific status code to the normalized ShipmentStatus."""
        pass

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

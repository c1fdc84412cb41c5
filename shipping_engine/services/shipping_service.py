"""
Shipping Service

Entry point for callers: packs items into packages, picks default service
levels, shops rates across carriers, validates addresses, creates and voids
labels, and tracks shipments.

Usage:
    async with ShippingService() as service:
        shipment_quote = await service.quote_items(origin, destination, items)
        cheapest = min(shipment_quote.rates.quotes, key=lambda q: q.amount)
        label = await service.create_label_for_quote(
            origin, destination, shipment_quote.packages, cheapest
        )
        events = await service.track(label.carrier, label.tracking_number, retries=2)
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shipping_engine.core.exceptions import CarrierError
from shipping_engine.core.retry import RetryConfig, with_retry
from shipping_engine.models.carrier import CarrierCode
from shipping_engine.models.shipment import (
    Address,
    AddressValidationResult,
    Label,
    Package,
    RateQuote,
    TrackingEvent,
    VoidResult,
)
from shipping_engine.modules.shipping.boxes import BoxCatalog, default_box_catalog
from shipping_engine.modules.shipping.carriers import CarrierFactory
from shipping_engine.modules.shipping.carriers.base import BaseCarrier
from shipping_engine.modules.shipping.hubs import Hub, HubRouter, default_hub_router
from shipping_engine.modules.shipping.packing import (
    PackItem,
    PackingOptions,
    PackingResult,
    pack_items,
)
from shipping_engine.modules.shipping.services import (
    ServiceLevelRequest,
    recommend_services,
)
from shipping_engine.services.rate_shopping import (
    RateShoppingOrchestrator,
    RateShoppingResult,
)

logger = logging.getLogger(__name__)


@dataclass
class ShipmentQuote:
    """Rates for an item set, with the packing they were quoted against."""
    packing: PackingResult
    packages: List[Package]
    rates: RateShoppingResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boxes": [
                {"box_id": b.box.id, "items": [i.name for i in b.items], "weight": round(b.total_weight, 2)}
                for b in self.packing.boxes
            ],
            "unpacked_items": [i.name for i in self.packing.unpacked_items],
            "warnings": list(self.packing.warnings),
            **self.rates.to_dict(),
        }


class ShippingService:
    """
    Facade over packing, hub routing, rate shopping, labels and tracking.

    Carriers passed in are borrowed; carriers the service builds from
    settings are closed by `close()`.
    """

    def __init__(
        self,
        carriers: Optional[Mapping[CarrierCode, BaseCarrier]] = None,
        box_catalog: Optional[BoxCatalog] = None,
        hub_router: Optional[HubRouter] = None,
        deadline_seconds: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.box_catalog = box_catalog or default_box_catalog()
        self.hub_router = hub_router or default_hub_router()
        self._owns_carriers = carriers is None
        if carriers is None:
            carriers = CarrierFactory.get_enabled_carriers(hub_router=self.hub_router)
        self.carriers: Dict[CarrierCode, BaseCarrier] = dict(carriers)
        self.orchestrator = RateShoppingOrchestrator(self.carriers, deadline_seconds)
        self.retry_config = retry_config or RetryConfig.from_settings()

    async def close(self) -> None:
        if self._owns_carriers:
            for carrier in self.carriers.values():
                await carrier.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _get_carrier(self, carrier_code: CarrierCode) -> BaseCarrier:
        carrier = self.carriers.get(CarrierCode(carrier_code))
        if carrier is None:
            raise CarrierError(
                f"Carrier {CarrierCode(carrier_code).value} is not configured",
                carrier=CarrierCode(carrier_code).value,
                code="CARRIER_NOT_CONFIGURED",
            )
        return carrier

    # ==================== Packing & Routing ====================

    def pack(self, items: Sequence[PackItem], options: Optional[PackingOptions] = None) -> PackingResult:
        """Pack items into boxes from this service's catalog."""
        return pack_items(items, self.box_catalog, options)

    def resolve_hub(self, destination: Address) -> Hub:
        return self.hub_router.resolve_hub(destination.region)

    def default_service_levels(
        self,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
        needs_guarantee: bool = False,
        max_days: Optional[int] = None,
    ) -> List[ServiceLevelRequest]:
        """Every catalog service level the configured carriers can use for these packages."""
        services = recommend_services(
            weight=max(p.weight for p in packages),
            international=not destination.is_domestic(origin.country),
            residential=destination.residential,
            needs_guarantee=needs_guarantee,
            max_days=max_days,
            carriers=list(self.carriers),
        )
        return [s.request() for s in services]

    # ==================== Rating ====================

    async def quote(
        self,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
        service_levels: Optional[Sequence[ServiceLevelRequest]] = None,
    ) -> RateShoppingResult:
        """
        Shop rates for ready-made packages.

        Without explicit service levels, every applicable catalog level for
        the configured carriers is shopped.
        """
        if not packages:
            raise ValueError("At least one package is required")
        if service_levels is None:
            service_levels = self.default_service_levels(origin, destination, packages)
        return await self.orchestrator.shop_rates(origin, destination, packages, service_levels)

    async def quote_items(
        self,
        origin: Address,
        destination: Address,
        items: Sequence[PackItem],
        service_levels: Optional[Sequence[ServiceLevelRequest]] = None,
        product_type: Optional[str] = None,
        declared_value_per_box: float = 0.0,
        packing_options: Optional[PackingOptions] = None,
    ) -> ShipmentQuote:
        """
        Pack items, then shop rates for the resulting packages.

        `product_type` applies to items that do not carry their own. Items
        that fit no box stay in `packing.unpacked_items` and are not quoted.
        """
        if product_type:
            items = [i if i.product_type else replace(i, product_type=product_type) for i in items]

        packing = self.pack(items, packing_options)
        if not packing.boxes:
            raise ValueError(
                f"None of the {len(items)} items could be packed: " + "; ".join(packing.warnings)
            )

        packages = packing.to_packages(declared_value_per_box)
        rates = await self.quote(origin, destination, packages, service_levels)
        return ShipmentQuote(packing=packing, packages=packages, rates=rates)

    # ==================== Labels ====================

    async def create_label(
        self,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
        carrier_code: CarrierCode,
        service_code: str,
        label_format: Optional[str] = None,
    ) -> Label:
        """Create a label with one carrier. A single call; never retried."""
        carrier = self._get_carrier(carrier_code)
        label = await carrier.create_label(
            origin, destination, list(packages), service_code, label_format=label_format
        )
        logger.info(f"Label created: {label.carrier.value} {label.tracking_number}")
        return label

    async def create_label_for_quote(
        self,
        origin: Address,
        destination: Address,
        packages: Sequence[Package],
        quote: RateQuote,
        label_format: Optional[str] = None,
    ) -> Label:
        return await self.create_label(
            origin, destination, packages, quote.carrier, quote.service_code, label_format
        )

    async def void_shipment(self, carrier_code: CarrierCode, tracking_number: str) -> VoidResult:
        """Void a label that has not been tendered. Never retried."""
        result = await self._get_carrier(carrier_code).void_shipment(tracking_number)
        if result.success:
            logger.info(f"Shipment voided: {CarrierCode(carrier_code).value} {tracking_number}")
        else:
            logger.warning(
                f"Void refused for {CarrierCode(carrier_code).value} {tracking_number}: {result.error_message}"
            )
        return result

    # ==================== Addresses ====================

    async def validate_address(self, carrier_code: CarrierCode, address: Address) -> AddressValidationResult:
        return await self._get_carrier(carrier_code).validate_address(address)

    # ==================== Tracking ====================

    async def track(
        self,
        carrier_code: CarrierCode,
        tracking_number: str,
        retries: int = 0,
    ) -> List[TrackingEvent]:
        """
        Tracking events for a shipment, oldest first.

        With `retries` > 0 a TransientCarrierFailure is retried that many
        times with backoff; TrackingNotFound is never retried.
        """
        if retries < 0:
            raise ValueError("retries cannot be negative")
        carrier = self._get_carrier(carrier_code)

        if retries == 0:
            return await carrier.track(tracking_number)

        config = replace(self.retry_config, max_attempts=retries + 1)
        return await with_retry(
            lambda: carrier.track(tracking_number),
            config=config,
            context=f"{carrier.carrier_name} tracking",
        )

    def get_tracking_url(self, carrier_code: CarrierCode, tracking_number: str) -> str:
        return self._get_carrier(carrier_code).get_tracking_url(tracking_number)

"""
FedEx Carrier Implementation

- Implements BaseCarrier on top of FedExClient
- Registered via @register_carrier decorator
- SMART_POST (Ground Economy) is hub-based: its requests carry the hub id
  the HubRouter resolves from the destination region
"""
import logging
from dataclasses import replace
from typing import List, Optional, Sequence

import httpx

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import InvalidAddress, ShipmentVoidFailed
from shipping_engine.models.carrier import CarrierCode, CarrierCredentials
from shipping_engine.models.shipment import ShipmentStatus
from shipping_engine.modules.shipping.carriers import register_carrier
from shipping_engine.modules.shipping.carriers.base import (
    Address,
    AddressValidationResult,
    BaseCarrier,
    Label,
    Package,
    RateQuote,
    TrackingEvent,
    VoidResult,
    sort_events,
)
from shipping_engine.modules.shipping.hubs import HubRouter
from shipping_engine.modules.shipping.services import get_service
from shipping_engine.services.fedex_client import FedExClient

logger = logging.getLogger(__name__)

SMART_POST = "SMART_POST"

# FedEx derived status codes to ShipmentStatus
FEDEX_STATUS_MAP = {
    "OC": ShipmentStatus.LABEL_CREATED,   # Order created / label created
    "IN": ShipmentStatus.LABEL_CREATED,   # Initiated
    "PU": ShipmentStatus.PICKED_UP,
    "PX": ShipmentStatus.PICKED_UP,
    "IT": ShipmentStatus.IN_TRANSIT,
    "AR": ShipmentStatus.IN_TRANSIT,
    "DP": ShipmentStatus.IN_TRANSIT,
    "AF": ShipmentStatus.IN_TRANSIT,
    "CC": ShipmentStatus.IN_TRANSIT,      # Cleared customs
    "HL": ShipmentStatus.IN_TRANSIT,      # Hold at location
    "OD": ShipmentStatus.OUT_FOR_DELIVERY,
    "DL": ShipmentStatus.DELIVERED,
    "DE": ShipmentStatus.EXCEPTION,
    "SE": ShipmentStatus.EXCEPTION,
    "CA": ShipmentStatus.EXCEPTION,       # Cancelled
    "DY": ShipmentStatus.EXCEPTION,       # Delay
    "RS": ShipmentStatus.RETURNED,
    "RP": ShipmentStatus.RETURNED,
}


@register_carrier(CarrierCode.FEDEX)
class FedExCarrier(BaseCarrier):
    """FedEx shipping carrier implementation."""

    def __init__(
        self,
        credentials: CarrierCredentials,
        http_client: Optional[httpx.AsyncClient] = None,
        hub_router: Optional[HubRouter] = None,
        markup_percent: Optional[float] = None,
        enabled_services: Optional[Sequence[str]] = None,
    ):
        super().__init__(
            credentials,
            http_client=http_client,
            hub_router=hub_router,
            markup_percent=markup_percent,
            enabled_services=enabled_services,
        )
        self._client = FedExClient(credentials, http_client=self._http_client)

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.FEDEX

    @property
    def carrier_name(self) -> str:
        return "FedEx"

    def _hub_for(self, service_code: Optional[str], destination: Address) -> Optional[str]:
        service = get_service(CarrierCode.FEDEX, service_code) if service_code else None
        if service is None or not service.hub_based:
            return None
        return self.hub_router.resolve_hub(destination.region).id

    async def get_rates(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: Optional[str] = None,
    ) -> List[RateQuote]:
        """Get shipping rates from FedEx."""
        hub_id = self._hub_for(service_code, destination)
        fedex_rates = await self._client.get_rates(
            origin, destination, packages, service_type=service_code, hub_id=hub_id
        )

        quotes = []
        for rate in fedex_rates:
            service = get_service(CarrierCode.FEDEX, rate.service_type)
            guaranteed = rate.guaranteed
            if guaranteed is None:
                guaranteed = service.guaranteed if service else False

            quote_hub = None
            if rate.service_type == SMART_POST:
                quote_hub = hub_id or self.hub_router.resolve_hub(destination.region).id

            quotes.append(RateQuote(
                carrier=CarrierCode.FEDEX,
                service_code=rate.service_type,
                service_name=service.display_name if service else rate.service_name,
                amount=rate.total_charge,
                currency=rate.currency,
                estimated_days=self.resolve_transit_days(
                    rate.service_type, rate.transit_days, rate.delivery_date
                ),
                guaranteed=guaranteed,
                delivery_date=rate.delivery_date,
                hub_id=quote_hub,
                ttl_seconds=self.get_rate_ttl(),
            ))

        if service_code:
            quotes = [q for q in quotes if q.service_code == service_code]

        return self.finalize_quotes(quotes)

    async def create_label(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: str,
        label_format: Optional[str] = None,
    ) -> Label:
        """Create a shipment and generate label via FedEx."""
        result = await self._client.create_shipment(
            origin,
            destination,
            packages,
            service_type=service_code,
            label_format=label_format or settings.SHIPPING_LABEL_FORMAT,
            hub_id=self._hub_for(service_code, destination),
        )

        return Label(
            tracking_number=result.tracking_number,
            carrier=CarrierCode.FEDEX,
            service_code=result.service_type,
            label_reference=result.label_data,
            label_format=result.label_format,
            cost=result.total_charge,
            currency=result.currency,
        )

    async def track(self, tracking_number: str) -> List[TrackingEvent]:
        """Get tracking events from FedEx, oldest first."""
        result = await self._client.track_shipment(tracking_number)

        events = [
            TrackingEvent(
                timestamp=scan.event_time,
                status=self.map_status(scan.derived_status),
                location=scan.location,
                carrier_status=scan.derived_status,
                description=scan.description,
            )
            for scan in result.events
        ]
        return sort_events(events)

    async def void_shipment(self, tracking_number: str) -> VoidResult:
        """Cancel a FedEx shipment before it is tendered."""
        try:
            cancelled = await self._client.cancel_shipment(tracking_number)
        except ShipmentVoidFailed as e:
            return VoidResult(success=False, tracking_number=tracking_number, error_message=e.message)

        return VoidResult(
            success=cancelled,
            tracking_number=tracking_number,
            error_message=None if cancelled else "FedEx did not confirm the cancellation",
        )

    async def validate_address(self, address: Address) -> AddressValidationResult:
        """Validate an address with FedEx Address Resolution."""
        try:
            resolved = await self._client.resolve_address(address)
        except InvalidAddress as e:
            return AddressValidationResult.from_check(address, False, messages=[e.message])

        corrected = None
        if resolved.street_lines:
            residential = address.residential
            if resolved.classification in ("BUSINESS", "RESIDENTIAL"):
                residential = resolved.classification == "RESIDENTIAL"
            corrected = replace(
                address,
                street=resolved.street_lines[0],
                street2=resolved.street_lines[1] if len(resolved.street_lines) > 1 else None,
                city=resolved.city or address.city,
                region=resolved.state or address.region,
                postal_code=resolved.postal_code or address.postal_code,
                country=resolved.country or address.country,
                residential=residential,
            )

        messages = list(resolved.messages)
        if not resolved.deliverable:
            messages.append(f"FedEx could not classify the address ({resolved.classification})")
        return AddressValidationResult.from_check(address, resolved.deliverable, corrected, messages)

    def get_tracking_url(self, tracking_number: str) -> str:
        """Get public FedEx tracking URL."""
        return f"https://www.fedex.com/fedextrack/?trknbr={tracking_number}"

    def map_status(self, carrier_status: str) -> ShipmentStatus:
        """Map FedEx status code to normalized ShipmentStatus."""
        status_upper = (carrier_status or "").upper().strip()

        if status_upper in FEDEX_STATUS_MAP:
            return FEDEX_STATUS_MAP[status_upper]

        logger.warning(f"Unknown FedEx status: {carrier_status}, defaulting to IN_TRANSIT")
        return ShipmentStatus.IN_TRANSIT

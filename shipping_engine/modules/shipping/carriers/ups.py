"""
UPS Carrier Implementation

- Implements BaseCarrier interface
- Wraps UPSClient
- Registered via @register_carrier decorator
"""
import logging
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
from shipping_engine.services.ups_client import UPSClient

logger = logging.getLogger(__name__)

# UPS Status to ShipmentStatus mapping
UPS_STATUS_MAP = {
    # Delivered
    "D": ShipmentStatus.DELIVERED,
    "DELIVERED": ShipmentStatus.DELIVERED,
    # In Transit
    "I": ShipmentStatus.IN_TRANSIT,
    "IN TRANSIT": ShipmentStatus.IN_TRANSIT,
    "IN_TRANSIT": ShipmentStatus.IN_TRANSIT,
    # Out for Delivery
    "O": ShipmentStatus.OUT_FOR_DELIVERY,
    "OUT FOR DELIVERY": ShipmentStatus.OUT_FOR_DELIVERY,
    # Picked Up
    "P": ShipmentStatus.PICKED_UP,
    "PICKED UP": ShipmentStatus.PICKED_UP,
    "PICKUP": ShipmentStatus.PICKED_UP,
    # Exception
    "X": ShipmentStatus.EXCEPTION,
    "EXCEPTION": ShipmentStatus.EXCEPTION,
    # Returned
    "RS": ShipmentStatus.RETURNED,
    "RETURNED": ShipmentStatus.RETURNED,
    # Label Created (Manifest)
    "M": ShipmentStatus.LABEL_CREATED,
    "MV": ShipmentStatus.LABEL_CREATED,
    "LABEL CREATED": ShipmentStatus.LABEL_CREATED,
    "MANIFEST": ShipmentStatus.LABEL_CREATED,
    "BILLING INFORMATION RECEIVED": ShipmentStatus.LABEL_CREATED,
}


@register_carrier(CarrierCode.UPS)
class UPSCarrier(BaseCarrier):
    """
    UPS shipping carrier implementation.

    UPS has no hub-based services; the hub router is accepted for interface
    symmetry and never consulted.
    """

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
        self._ups_client = UPSClient(credentials, http_client=self._http_client)

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.UPS

    @property
    def carrier_name(self) -> str:
        return "UPS"

    async def get_rates(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: Optional[str] = None,
    ) -> List[RateQuote]:
        """Get shipping rates from UPS."""
        ups_rates = await self._ups_client.get_rates(
            origin, destination, packages, service_code=service_code
        )

        rates = []
        for ups_rate in ups_rates:
            service = get_service(CarrierCode.UPS, ups_rate.service_code)
            rates.append(RateQuote(
                carrier=CarrierCode.UPS,
                service_code=ups_rate.service_code,
                service_name=ups_rate.service_name,
                amount=ups_rate.total_charges,
                currency=ups_rate.currency,
                estimated_days=self.resolve_transit_days(
                    ups_rate.service_code, ups_rate.estimated_days, ups_rate.estimated_delivery
                ),
                guaranteed=ups_rate.guaranteed_delivery or bool(service and service.guaranteed),
                delivery_date=ups_rate.estimated_delivery,
                ttl_seconds=self.get_rate_ttl(),
            ))

        return self.finalize_quotes(rates)

    async def create_label(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: str,
        label_format: Optional[str] = None,
    ) -> Label:
        """Create a shipment and generate label via UPS."""
        ups_result = await self._ups_client.create_shipment(
            origin=origin,
            destination=destination,
            packages=packages,
            service_code=service_code,
            label_format=label_format or settings.SHIPPING_LABEL_FORMAT,
        )

        return Label(
            tracking_number=ups_result.tracking_number,
            carrier=CarrierCode.UPS,
            service_code=service_code,
            label_reference=ups_result.label_data,
            label_format=ups_result.label_format,
            cost=ups_result.total_charges,
            currency=ups_result.currency,
        )

    async def track(self, tracking_number: str) -> List[TrackingEvent]:
        """Get tracking events from UPS, oldest first."""
        ups_result = await self._ups_client.track_shipment(tracking_number)

        events = [
            TrackingEvent(
                timestamp=ups_event.event_time,
                status=self.map_status(ups_event.event_type or ups_event.description),
                location=ups_event.location,
                carrier_status=ups_event.event_type,
                description=ups_event.description,
            )
            for ups_event in ups_result.events
        ]
        # UPS lists activity newest first
        return sort_events(events)

    async def void_shipment(self, tracking_number: str) -> VoidResult:
        """
        Void/cancel a UPS shipment.

        The UPS void API takes the shipment id, which is the tracking number
        for single-package shipments.
        """
        try:
            success = await self._ups_client.void_shipment(shipment_id=tracking_number)
        except ShipmentVoidFailed as e:
            logger.error(f"UPS void shipment error: {e.message}")
            return VoidResult(success=False, tracking_number=tracking_number, error_message=e.message)

        return VoidResult(
            success=success,
            tracking_number=tracking_number,
            error_message=None if success else "UPS did not confirm the void",
        )

    async def validate_address(self, address: Address) -> AddressValidationResult:
        """Validate address using UPS Address Validation API."""
        try:
            is_valid, corrected, messages = await self._ups_client.validate_address(address)
        except InvalidAddress as e:
            logger.error(f"UPS address validation error: {e.message}")
            return AddressValidationResult.from_check(
                address, False, messages=[f"Validation error: {e.message}"]
            )

        return AddressValidationResult.from_check(address, is_valid, corrected, messages)

    def get_tracking_url(self, tracking_number: str) -> str:
        """Get public UPS tracking URL."""
        return f"https://www.ups.com/track?tracknum={tracking_number}"

    def map_status(self, carrier_status: str) -> ShipmentStatus:
        """Map UPS status to normalized ShipmentStatus."""
        status_upper = (carrier_status or "").upper().strip()

        # Check direct mapping
        if status_upper in UPS_STATUS_MAP:
            return UPS_STATUS_MAP[status_upper]

        # Check partial matches on the longer descriptive keys
        for key, value in UPS_STATUS_MAP.items():
            if len(key) > 2 and key in status_upper:
                return value

        # Default to in_transit for unknown statuses
        logger.warning(f"Unknown UPS status: {carrier_status}, defaulting to IN_TRANSIT")
        return ShipmentStatus.IN_TRANSIT

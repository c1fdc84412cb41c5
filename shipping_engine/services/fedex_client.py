"""
FedEx API Client

Implements FedEx OAuth 2.0 client-credentials authentication and the REST
APIs the engine needs:
- Rate and Transit Times (get shipping quotes)
- Ship (create labels)
- Track
- Address Resolution (address validation)
- Cancel Shipment

Errors are raised as the shipping engine's carrier exceptions; nothing in
here retries.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import CarrierError, LabelCreationFailed, TrackingNotFound
from shipping_engine.core.utils import to_money
from shipping_engine.models.carrier import CarrierCredentials
from shipping_engine.models.shipment import Address, Package
from shipping_engine.services.carrier_http import (
    Endpoint,
    error_body,
    raise_for_response,
    response_json,
    transport_failure,
)

logger = logging.getLogger(__name__)

CARRIER = "FEDEX"

# FedEx API URLs
FEDEX_PRODUCTION_URL = "https://apis.fedex.com"
FEDEX_SANDBOX_URL = "https://apis-sandbox.fedex.com"

OAUTH_TOKEN_PATH = "/oauth/token"
RATE_PATH = "/rate/v1/rates/quotes"
SHIP_PATH = "/ship/v1/shipments"
TRACK_PATH = "/track/v1/trackingnumbers"
CANCEL_PATH = "/ship/v1/shipments/cancel"
ADDRESS_RESOLVE_PATH = "/address/v1/addresses/resolve"

# Refresh the token this long before FedEx says it expires
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)

# FedEx error codes that mean the address itself was rejected
ADDRESS_ERROR_CODES = frozenset({
    "INVALID.ADDRESS",
    "INVALID.CITY.STATE.ZIP",
    "INVALID.POSTAL.CODE",
})

TRACKING_NOT_FOUND_CODES = frozenset({
    "TRACKING.TRACKINGNUMBER.NOTFOUND",
    "TRACKING.TRACKINGNUMBER.INVALID",
})

_TRANSIT_WORDS = {
    "ONE_DAY": 1, "TWO_DAYS": 2, "THREE_DAYS": 3, "FOUR_DAYS": 4,
    "FIVE_DAYS": 5, "SIX_DAYS": 6, "SEVEN_DAYS": 7, "EIGHT_DAYS": 8,
    "NINE_DAYS": 9, "TEN_DAYS": 10,
}

_IMAGE_TYPES = {"PDF": "PDF", "PNG": "PNG", "ZPL": "ZPLII", "ZPLII": "ZPLII"}

DEFAULT_PACKAGING = "YOUR_PACKAGING"

# Classifications FedEx gives an address it could resolve to a delivery point
DELIVERABLE_CLASSIFICATIONS = frozenset({"BUSINESS", "RESIDENTIAL", "MIXED"})


def base_url(credentials: CarrierCredentials) -> str:
    return FEDEX_SANDBOX_URL if credentials.use_sandbox else FEDEX_PRODUCTION_URL


@dataclass
class FedExRate:
    """One rateReplyDetails entry."""
    service_type: str
    service_name: str
    total_charge: Decimal
    currency: str
    transit_days: Optional[int] = None
    delivery_date: Optional[datetime] = None
    guaranteed: Optional[bool] = None


@dataclass
class FedExShipmentResult:
    tracking_number: str
    service_type: str
    label_data: str  # base64 document or URL
    label_format: str
    total_charge: Decimal
    currency: str


@dataclass
class FedExResolvedAddress:
    """First resolvedAddresses entry of an address resolution reply."""
    classification: str
    street_lines: List[str]
    city: str
    state: str
    postal_code: str
    country: str
    messages: List[str] = field(default_factory=list)

    @property
    def deliverable(self) -> bool:
        return self.classification in DELIVERABLE_CLASSIFICATIONS


@dataclass
class FedExScanEvent:
    event_time: datetime
    event_type: str
    description: str
    derived_status: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        parts = [p for p in (self.city, self.state, self.country) if p]
        return ", ".join(parts) or None


@dataclass
class FedExTrackingResult:
    tracking_number: str
    status: str
    status_description: str
    events: List[FedExScanEvent] = field(default_factory=list)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable FedEx timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _fedex_address(address: Address) -> Dict[str, Any]:
    street_lines = [address.street]
    if address.street2:
        street_lines.append(address.street2)
    return {
        "streetLines": street_lines,
        "city": address.city,
        "stateOrProvinceCode": address.region,
        "postalCode": address.postal_code,
        "countryCode": address.country,
        "residential": address.residential,
    }


def _fedex_contact(address: Address) -> Dict[str, Any]:
    contact = {"personName": (address.name or "Shipping")[:35]}
    if address.company:
        contact["companyName"] = address.company[:35]
    if address.phone:
        contact["phoneNumber"] = address.phone[:15]
    if address.email:
        contact["emailAddress"] = address.email
    return contact


def _fedex_package(sequence: int, package: Package) -> Dict[str, Any]:
    line_item = {
        "sequenceNumber": sequence,
        "weight": {"units": "LB", "value": round(package.weight, 1)},
    }
    if package.has_dimensions:
        line_item["dimensions"] = {
            "length": round(package.length),
            "width": round(package.width),
            "height": round(package.height),
            "units": "IN",
        }
    if package.declared_value > 0:
        line_item["declaredValue"] = {"amount": float(package.declared_value), "currency": "USD"}
    return line_item


def shipment_packaging_type(packages: Sequence[Package]) -> Optional[str]:
    """
    Packaging type for a whole shipment.

    FedEx declares one packaging type per shipment, so pieces that disagree
    ship as YOUR_PACKAGING. None when no package names a type.
    """
    types = {p.packaging_type for p in packages}
    if not types or types == {None}:
        return None
    if len(types) == 1:
        return types.pop()
    return DEFAULT_PACKAGING


def _error_details(data: Dict[str, Any], default: str) -> tuple:
    errors = data.get("errors") or []
    if errors:
        return errors[0].get("code"), errors[0].get("message", default)
    return None, default


class FedExClient:
    """
    FedEx REST client with a cached OAuth token.

    The token is reused until TOKEN_REFRESH_MARGIN before its expiry.
    """

    def __init__(self, credentials: CarrierCredentials, http_client: Optional[httpx.AsyncClient] = None):
        self.credentials = credentials
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.SHIPPING_HTTP_TIMEOUT_SECONDS
        )

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def _ensure_token(self) -> str:
        """Ensure we have a valid OAuth token."""
        if self._access_token and self._token_expires_at:
            if datetime.now(timezone.utc) < self._token_expires_at - TOKEN_REFRESH_MARGIN:
                return self._access_token

        url = f"{base_url(self.credentials)}{OAUTH_TOKEN_PATH}"
        try:
            response = await self._http_client.post(
                url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.credentials.client_id,
                    "client_secret": self.credentials.client_secret,
                },
            )
        except httpx.RequestError as e:
            raise transport_failure(CARRIER, Endpoint.AUTH, e)

        if response.status_code >= 400:
            code, message = _error_details(error_body(response), "Failed to authenticate with FedEx")
            raise_for_response(CARRIER, Endpoint.AUTH, response, code, message)

        data = response_json(CARRIER, Endpoint.AUTH, response)
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        logger.info(f"FedEx OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    def invalidate_token(self) -> None:
        self._access_token = None
        self._token_expires_at = None

    async def _make_request(
        self,
        endpoint: Endpoint,
        path: str,
        data: Dict[str, Any],
        tracking_number: Optional[str] = None,
        method: str = "POST",
    ) -> Dict[str, Any]:
        """Send an authenticated JSON request and return the decoded body."""
        token = await self._ensure_token()
        url = f"{base_url(self.credentials)}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-locale": "en_US",
        }

        try:
            response = await self._http_client.request(method, url, headers=headers, json=data)
        except httpx.RequestError as e:
            raise transport_failure(CARRIER, endpoint, e)

        logger.debug(f"FedEx API {method} {path} -> {response.status_code}")

        if response.status_code >= 400:
            if response.status_code == 401:
                self.invalidate_token()
            code, message = _error_details(error_body(response), f"FedEx API error {response.status_code}")
            raise_for_response(
                CARRIER,
                endpoint,
                response,
                code,
                message,
                address_error_codes=ADDRESS_ERROR_CODES,
                tracking_number=tracking_number,
            )

        return response_json(CARRIER, endpoint, response)

    # ==================== Rating ====================

    async def get_rates(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_type: Optional[str] = None,
        hub_id: Optional[str] = None,
    ) -> List[FedExRate]:
        """
        Get shipping rates.

        Args:
            origin: Origin address
            destination: Destination address
            packages: Packages to rate
            service_type: Optional specific service (None for all available)
            hub_id: SmartPost hub for SMART_POST requests
        """
        requested_shipment = {
            "shipper": {"address": _fedex_address(origin)},
            "recipient": {"address": _fedex_address(destination)},
            "shipDateStamp": date.today().isoformat(),
            "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
            "rateRequestType": ["ACCOUNT", "LIST"],
            "requestedPackageLineItems": [
                _fedex_package(i, p) for i, p in enumerate(packages, start=1)
            ],
        }
        if service_type:
            requested_shipment["serviceType"] = service_type
        packaging_type = shipment_packaging_type(packages)
        if packaging_type:
            requested_shipment["packagingType"] = packaging_type
        if hub_id:
            requested_shipment["smartPostInfoDetail"] = {
                "hubId": hub_id,
                "indicia": "PARCEL_SELECT",
            }

        request_data = {
            "accountNumber": {"value": self.credentials.account_number},
            "rateRequestControlParameters": {"returnTransitTimes": True},
            "requestedShipment": requested_shipment,
        }

        response = await self._make_request(Endpoint.RATE, RATE_PATH, request_data)

        rates = []
        for detail in response.get("output", {}).get("rateReplyDetails", []):
            rated = (detail.get("ratedShipmentDetails") or [{}])[0]
            operational = detail.get("operationalDetail", {})
            commit = detail.get("commit", {})

            transit_days = _TRANSIT_WORDS.get(
                operational.get("transitTime") or commit.get("transitDays", {}).get("minimumTransitTime", "")
            )
            delivery_date = _parse_timestamp(
                operational.get("deliveryDate") or commit.get("dateDetail", {}).get("dayFormat")
            )

            guaranteed = None
            if "ineligibleForMoneyBackGuarantee" in operational:
                guaranteed = not operational["ineligibleForMoneyBackGuarantee"]

            rates.append(FedExRate(
                service_type=detail.get("serviceType", ""),
                service_name=detail.get("serviceName") or detail.get("serviceType", ""),
                total_charge=to_money(rated.get("totalNetCharge")),
                currency=rated.get("currency") or rated.get("shipmentRateDetail", {}).get("currency", "USD"),
                transit_days=transit_days,
                delivery_date=delivery_date,
                guaranteed=guaranteed,
            ))

        return rates

    # ==================== Ship (Label Creation) ====================

    async def create_shipment(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_type: str,
        label_format: str = "PDF",
        hub_id: Optional[str] = None,
    ) -> FedExShipmentResult:
        """Create a shipment and get its label."""
        image_type = _IMAGE_TYPES.get(label_format.upper(), "PDF")
        requested_shipment = {
            "shipper": {"address": _fedex_address(origin), "contact": _fedex_contact(origin)},
            "recipients": [
                {"address": _fedex_address(destination), "contact": _fedex_contact(destination)}
            ],
            "shipDatestamp": date.today().isoformat(),
            "serviceType": service_type,
            "packagingType": shipment_packaging_type(packages) or DEFAULT_PACKAGING,
            "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
            "shippingChargesPayment": {"paymentType": "SENDER"},
            "labelSpecification": {
                "labelFormatType": "COMMON2D",
                "imageType": image_type,
                "labelStockType": "PAPER_4X6" if image_type != "PDF" else "PAPER_85X11_TOP_HALF_LABEL",
            },
            "requestedPackageLineItems": [
                _fedex_package(i, p) for i, p in enumerate(packages, start=1)
            ],
        }
        if hub_id:
            requested_shipment["smartPostInfoDetail"] = {
                "hubId": hub_id,
                "indicia": "PARCEL_SELECT",
            }

        request_data = {
            "labelResponseOptions": "LABEL",
            "accountNumber": {"value": self.credentials.account_number},
            "requestedShipment": requested_shipment,
        }

        response = await self._make_request(Endpoint.SHIP, SHIP_PATH, request_data)

        shipments = response.get("output", {}).get("transactionShipments", [])
        if not shipments:
            raise LabelCreationFailed("FedEx ship response contained no shipment", carrier=CARRIER)
        shipment = shipments[0]

        pieces = shipment.get("pieceResponses") or [{}]
        piece = pieces[0]
        tracking_number = shipment.get("masterTrackingNumber") or piece.get("trackingNumber")
        if not tracking_number:
            raise LabelCreationFailed(
                "FedEx ship response contained no tracking number", carrier=CARRIER
            )

        documents = piece.get("packageDocuments") or shipment.get("shipmentDocuments") or [{}]
        document = documents[0]
        label_data = document.get("encodedLabel") or document.get("url", "")

        rating = shipment.get("completedShipmentDetail", {}).get("shipmentRating", {})
        rate_details = rating.get("shipmentRateDetails") or [{}]
        total = rate_details[0].get("totalNetCharge", piece.get("netChargeAmount"))
        currency = rate_details[0].get("currency", "USD")

        logger.info(f"FedEx shipment created: {tracking_number} ({service_type})")

        return FedExShipmentResult(
            tracking_number=tracking_number,
            service_type=shipment.get("serviceType", service_type),
            label_data=label_data,
            label_format=label_format.upper(),
            total_charge=to_money(total),
            currency=currency,
        )

    # ==================== Tracking ====================

    async def track_shipment(self, tracking_number: str) -> FedExTrackingResult:
        """Get tracking information for a shipment."""
        request_data = {
            "includeDetailedScans": True,
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
        }

        response = await self._make_request(
            Endpoint.TRACK, TRACK_PATH, request_data, tracking_number=tracking_number
        )

        complete = response.get("output", {}).get("completeTrackResults", [])
        results = complete[0].get("trackResults", []) if complete else []
        if not results:
            raise TrackingNotFound(
                "No tracking information found",
                tracking_number=tracking_number,
                carrier=CARRIER,
            )

        result = results[0]
        error = result.get("error")
        if error:
            if error.get("code") in TRACKING_NOT_FOUND_CODES:
                raise TrackingNotFound(
                    error.get("message", "Tracking number not found"),
                    tracking_number=tracking_number,
                    carrier=CARRIER,
                )
            raise CarrierError(
                f"FedEx tracking error: {error.get('message', error.get('code'))}",
                carrier=CARRIER,
            )

        latest = result.get("latestStatusDetail", {})

        events = []
        for scan in result.get("scanEvents", []):
            location = scan.get("scanLocation", {})
            event_time = _parse_timestamp(scan.get("date"))
            if event_time is None:
                continue
            events.append(FedExScanEvent(
                event_time=event_time,
                event_type=scan.get("eventType", ""),
                description=scan.get("eventDescription", ""),
                derived_status=scan.get("derivedStatusCode") or scan.get("eventType", ""),
                city=location.get("city"),
                state=location.get("stateOrProvinceCode"),
                country=location.get("countryCode"),
            ))

        return FedExTrackingResult(
            tracking_number=tracking_number,
            status=latest.get("code", ""),
            status_description=latest.get("description", ""),
            events=events,
        )

    # ==================== Address Resolution ====================

    async def resolve_address(self, address: Address) -> FedExResolvedAddress:
        """Resolve an address to its standardized form and classification."""
        request_data = {"addressesToValidate": [{"address": _fedex_address(address)}]}

        response = await self._make_request(Endpoint.ADDRESS, ADDRESS_RESOLVE_PATH, request_data)

        resolved = response.get("output", {}).get("resolvedAddresses") or []
        if not resolved:
            return FedExResolvedAddress(
                classification="UNKNOWN",
                street_lines=[],
                city="",
                state="",
                postal_code="",
                country="",
                messages=["No matching address found"],
            )

        result = resolved[0]
        messages = [
            m.get("message") or m.get("code", "")
            for m in result.get("customerMessages", [])
        ]
        return FedExResolvedAddress(
            classification=(result.get("classification") or "UNKNOWN").upper(),
            street_lines=list(result.get("streetLinesToken") or result.get("streetLines") or []),
            city=result.get("city", ""),
            state=result.get("stateOrProvinceCode", ""),
            postal_code=result.get("postalCode", ""),
            country=result.get("countryCode", ""),
            messages=messages,
        )

    # ==================== Cancel Shipment ====================

    async def cancel_shipment(self, tracking_number: str) -> bool:
        """
        Cancel a shipment that has not been tendered yet.

        Returns:
            True if FedEx confirmed the cancellation
        """
        request_data = {
            "accountNumber": {"value": self.credentials.account_number},
            "deletionControl": "DELETE_ALL_PACKAGES",
            "trackingNumber": tracking_number,
        }

        response = await self._make_request(
            Endpoint.VOID, CANCEL_PATH, request_data, tracking_number=tracking_number, method="PUT"
        )

        cancelled = bool(response.get("output", {}).get("cancelledShipment"))
        if cancelled:
            logger.info(f"FedEx shipment {tracking_number} cancelled")
        else:
            logger.warning(f"FedEx did not cancel shipment {tracking_number}: {response.get('output')}")
        return cancelled

"""
UPS API Client

Implements UPS OAuth 2.0 authentication and core shipping APIs:
- Rating (get shipping quotes, one service or Shop for all)
- Shipping (create labels)
- Tracking
- Address Validation (street level)
- Void Shipment

All external API calls are logged; error text passes through
sanitize_for_logging first.
"""
import base64
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import LabelCreationFailed, TrackingNotFound
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

CARRIER = "UPS"

# UPS API URLs
UPS_PRODUCTION_URL = "https://onlinetools.ups.com"
UPS_SANDBOX_URL = "https://wwwcie.ups.com"

# OAuth endpoints
OAUTH_TOKEN_PATH = "/security/v1/oauth/token"

# API endpoints
RATING_PATH = "/api/rating/v2403/Rate"
SHIPPING_PATH = "/api/shipments/v2403/ship"
TRACKING_PATH = "/api/track/v1/details"
ADDRESS_VALIDATION_PATH = "/api/addressvalidation/v1/1"  # 1 = street level validation
VOID_PATH = "/api/shipments/v2403/void/cancel"

# UPS service codes
UPS_SERVICE_CODES = {
    "01": "UPS Next Day Air",
    "02": "UPS 2nd Day Air",
    "03": "UPS Ground",
    "12": "UPS 3 Day Select",
    "13": "UPS Next Day Air Saver",
    "14": "UPS Next Day Air Early",
    "59": "UPS 2nd Day Air A.M.",
    "07": "UPS Worldwide Express",
    "08": "UPS Worldwide Expedited",
    "11": "UPS Standard",
    "54": "UPS Worldwide Express Plus",
    "65": "UPS Saver",
}

# Customer Supplied Package
DEFAULT_PACKAGE_TYPE = "02"

# UPS error codes for a missing or invalid ship-to/ship-from address
ADDRESS_ERROR_CODES = frozenset({
    "111285",  # postal code invalid for state
    "111286",  # state/province invalid
    "120200",  # ship-to address missing
    "120201",  # ship-to country invalid
    "120202",  # ship-to state/province invalid
    "120802",  # address validation failed
})

_IMAGE_FORMATS = {
    "ZPL": {"Code": "ZPL", "Description": "ZPL"},
    "GIF": {"Code": "GIF", "Description": "GIF"},
    "PNG": {"Code": "PNG", "Description": "PNG"},
    "EPL": {"Code": "EPL", "Description": "EPL2"},
}


def base_url(credentials: CarrierCredentials) -> str:
    return UPS_SANDBOX_URL if credentials.use_sandbox else UPS_PRODUCTION_URL


def ups_address(address: Address) -> Dict[str, Any]:
    """Convert to UPS API format."""
    name = address.name or "Shipping"
    result = {
        "Name": name[:35],  # UPS limit
        "Address": {
            "AddressLine": [address.street],
            "City": address.city,
            "StateProvinceCode": address.region[:5] if address.region else "",
            "PostalCode": address.postal_code,
            "CountryCode": address.country,
        },
    }

    if address.street2:
        result["Address"]["AddressLine"].append(address.street2)
    if address.company:
        result["AttentionName"] = name[:35]
        result["Name"] = address.company[:35]
    if address.phone:
        result["Phone"] = {"Number": address.phone[:15]}
    if address.email:
        result["EMailAddress"] = address.email[:50]
    if address.residential:
        result["Address"]["ResidentialAddressIndicator"] = ""

    return result


def ups_package(package: Package) -> Dict[str, Any]:
    """Convert to UPS API format."""
    result = {
        # Carrier box codes like FEDEX_SMALL_BOX mean nothing to UPS
        "PackagingType": {"Code": DEFAULT_PACKAGE_TYPE},
        "PackageWeight": {
            "UnitOfMeasurement": {"Code": "LBS"},
            "Weight": str(round(package.weight, 1)),
        },
    }

    if package.has_dimensions:
        result["Dimensions"] = {
            "UnitOfMeasurement": {"Code": "IN"},
            "Length": str(round(package.length, 1)),
            "Width": str(round(package.width, 1)),
            "Height": str(round(package.height, 1)),
        }

    if package.declared_value > 0:
        result["PackageServiceOptions"] = {
            "DeclaredValue": {
                "CurrencyCode": "USD",
                "MonetaryValue": str(package.declared_value.quantize(Decimal("0.01"))),
            }
        }

    return result


@dataclass
class UPSRate:
    """Shipping rate from UPS."""
    service_code: str
    service_name: str
    total_charges: Decimal
    currency: str
    guaranteed_delivery: bool = False
    estimated_delivery: Optional[datetime] = None
    estimated_days: Optional[int] = None


@dataclass
class UPSShipmentResult:
    """Result of creating a shipment."""
    shipment_id: str
    tracking_number: str
    label_data: str  # Base64 encoded
    label_format: str
    total_charges: Decimal
    currency: str


@dataclass
class UPSTrackingEvent:
    """Tracking event from UPS."""
    event_type: str
    description: str
    event_time: datetime
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    event_code: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        if not self.city:
            return None
        return f"{self.city}, {self.state}" if self.state else self.city


@dataclass
class UPSTrackingResult:
    """Complete tracking result."""
    tracking_number: str
    status: str
    status_description: str
    events: List[UPSTrackingEvent] = field(default_factory=list)


def _error_details(data: Dict[str, Any], default: str) -> tuple:
    errors = data.get("response", {}).get("errors", [])
    if errors:
        return errors[0].get("code"), errors[0].get("message", default)
    return None, default


class UPSClient:
    """
    UPS API Client with OAuth 2.0 authentication.

    Handles token refresh and provides methods for all shipping operations.
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
        """Close HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def _ensure_token(self) -> str:
        """Ensure we have a valid OAuth token."""
        if self._access_token and self._token_expires_at:
            # Refresh 5 minutes before expiry
            if datetime.now(timezone.utc) < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        url = f"{base_url(self.credentials)}{OAUTH_TOKEN_PATH}"

        # Basic auth header
        auth_string = f"{self.credentials.client_id}:{self.credentials.client_secret}"
        auth_header = base64.b64encode(auth_string.encode()).decode()

        try:
            response = await self._http_client.post(
                url,
                headers={
                    "Authorization": f"Basic {auth_header}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={"grant_type": "client_credentials"},
            )
        except httpx.RequestError as e:
            raise transport_failure(CARRIER, Endpoint.AUTH, e)

        if response.status_code != 200:
            code, message = _error_details(error_body(response), "Failed to authenticate with UPS")
            raise_for_response(CARRIER, Endpoint.AUTH, response, code, message)

        data = response_json(CARRIER, Endpoint.AUTH, response)
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        logger.info(f"UPS OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    async def _make_request(
        self,
        method: str,
        endpoint: Endpoint,
        path: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        tracking_number: Optional[str] = None,
    ) -> Dict:
        """Make authenticated API request."""
        token = await self._ensure_token()
        url = f"{base_url(self.credentials)}{path}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "transId": f"se_{datetime.now().strftime('%Y%m%d%H%M%S%f')}",
            "transactionSrc": "shipping-engine",
        }

        try:
            if method.upper() == "GET":
                response = await self._http_client.get(url, headers=headers, params=params)
            elif method.upper() == "POST":
                response = await self._http_client.post(url, headers=headers, json=data)
            elif method.upper() == "DELETE":
                response = await self._http_client.delete(url, headers=headers, params=params)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
        except httpx.RequestError as e:
            raise transport_failure(CARRIER, endpoint, e)

        logger.debug(f"UPS API {method} {path} -> {response.status_code}")

        if response.status_code >= 400:
            if response.status_code == 401:
                self._access_token = None
            code, message = _error_details(error_body(response), "UPS API error")
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
        service_code: Optional[str] = None,
    ) -> List[UPSRate]:
        """
        Get shipping rates for a shipment.

        Args:
            origin: Origin address
            destination: Destination address
            packages: List of packages
            service_code: Optional specific service (None for all available)

        Returns:
            List of available rates in response order
        """
        shipper = ups_address(origin)
        shipper["ShipperNumber"] = self.credentials.account_number
        package_list = [ups_package(pkg) for pkg in packages]
        if not package_list:
            raise ValueError("At least one package is required")

        request_data = {
            "RateRequest": {
                "Request": {
                    "SubVersion": "2403",
                    "TransactionReference": {
                        "CustomerContext": f"Rate {datetime.now().isoformat()}",
                    },
                },
                "Shipment": {
                    "Shipper": shipper,
                    "ShipTo": ups_address(destination),
                    "ShipFrom": ups_address(origin),
                    "Package": package_list if len(package_list) > 1 else package_list[0],
                    "DeliveryTimeInformation": {"PackageBillType": "03"},
                },
            }
        }

        if service_code:
            request_data["RateRequest"]["Shipment"]["Service"] = {"Code": service_code}
            request_data["RateRequest"]["Request"]["RequestOption"] = "Ratetimeintransit"
        else:
            # Request Shop rates (all available services)
            request_data["RateRequest"]["Request"]["RequestOption"] = "Shoptimeintransit"

        response = await self._make_request("POST", Endpoint.RATE, RATING_PATH, data=request_data)

        rated_shipments = response.get("RateResponse", {}).get("RatedShipment", [])
        if isinstance(rated_shipments, dict):
            rated_shipments = [rated_shipments]

        rates = []
        for rs in rated_shipments:
            service = rs.get("Service", {})
            total = rs.get("TotalCharges", {})
            code = service.get("Code", "")

            est_delivery = None
            est_days = None
            guaranteed = rs.get("GuaranteedDelivery") is not None

            service_summary = rs.get("TimeInTransit", {}).get("ServiceSummary", {})
            est_arrival = service_summary.get("EstimatedArrival", {})
            if est_arrival:
                date_str = est_arrival.get("Arrival", {}).get("Date", "")
                time_str = est_arrival.get("Arrival", {}).get("Time", "")
                if date_str:
                    try:
                        est_delivery = datetime.strptime(
                            f"{date_str} {(time_str or '180000')[:4]}",
                            "%Y%m%d %H%M"
                        ).replace(tzinfo=timezone.utc)
                    except ValueError:
                        logger.debug(f"Unparseable UPS arrival date: {date_str!r}")
                business_days = est_arrival.get("BusinessDaysInTransit")
                if business_days:
                    est_days = int(business_days)
            if service_summary.get("GuaranteedIndicator") is not None:
                guaranteed = True

            rates.append(UPSRate(
                service_code=code,
                service_name=UPS_SERVICE_CODES.get(
                    code, service.get("Description") or f"UPS Service {code or 'Unknown'}"
                ),
                total_charges=to_money(total.get("MonetaryValue")),
                currency=total.get("CurrencyCode", "USD"),
                guaranteed_delivery=guaranteed,
                estimated_delivery=est_delivery,
                estimated_days=est_days,
            ))

        return rates

    # ==================== Shipping (Label Creation) ====================

    async def create_shipment(
        self,
        origin: Address,
        destination: Address,
        packages: List[Package],
        service_code: str,
        label_format: str = "ZPL",
        reference: Optional[str] = None,
    ) -> UPSShipmentResult:
        """
        Create a shipment and get shipping label.

        Args:
            origin: Origin address
            destination: Destination address
            packages: List of packages
            service_code: UPS service code
            label_format: Label format (ZPL, GIF, PNG, EPL); anything else falls back to ZPL
            reference: Optional reference number

        Returns:
            Shipment result with tracking number and label
        """
        shipper = ups_address(origin)
        shipper["ShipperNumber"] = self.credentials.account_number
        package_list = [ups_package(pkg) for pkg in packages]
        if not package_list:
            raise ValueError("At least one package is required")

        image_format = _IMAGE_FORMATS.get(label_format.upper(), _IMAGE_FORMATS["ZPL"])

        request_data = {
            "ShipmentRequest": {
                "Request": {
                    "SubVersion": "2403",
                    "TransactionReference": {
                        "CustomerContext": reference or f"Ship {datetime.now().isoformat()}",
                    },
                },
                "Shipment": {
                    "Shipper": shipper,
                    "ShipTo": ups_address(destination),
                    "ShipFrom": ups_address(origin),
                    "PaymentInformation": {
                        "ShipmentCharge": {
                            "Type": "01",  # Transportation
                            "BillShipper": {
                                "AccountNumber": self.credentials.account_number,
                            },
                        },
                    },
                    "Service": {"Code": service_code},
                    "Package": package_list if len(package_list) > 1 else package_list[0],
                },
                "LabelSpecification": {
                    "LabelImageFormat": image_format,
                    "LabelStockSize": {"Height": "6", "Width": "4"},
                },
            }
        }

        if reference:
            request_data["ShipmentRequest"]["Shipment"]["ReferenceNumber"] = {
                "Code": "01",  # Customer Reference
                "Value": reference[:35],
            }

        response = await self._make_request("POST", Endpoint.SHIP, SHIPPING_PATH, data=request_data)

        shipment_results = response.get("ShipmentResponse", {}).get("ShipmentResults", {})
        if not shipment_results:
            raise LabelCreationFailed("UPS ship response contained no shipment results", carrier=CARRIER)

        package_results = shipment_results.get("PackageResults", {})
        if isinstance(package_results, list):
            package_results = package_results[0]

        tracking_number = package_results.get("TrackingNumber")
        if not tracking_number:
            raise LabelCreationFailed("UPS ship response contained no tracking number", carrier=CARRIER)
        label_data = package_results.get("ShippingLabel", {}).get("GraphicImage", "")

        charges = shipment_results.get("ShipmentCharges", {}).get("TotalCharges", {})

        logger.info(f"UPS shipment created: {tracking_number} (service {service_code})")

        return UPSShipmentResult(
            shipment_id=shipment_results.get("ShipmentIdentificationNumber", ""),
            tracking_number=tracking_number,
            label_data=label_data,
            label_format=image_format["Code"],
            total_charges=to_money(charges.get("MonetaryValue")),
            currency=charges.get("CurrencyCode", "USD"),
        )

    # ==================== Tracking ====================

    async def track_shipment(self, tracking_number: str) -> UPSTrackingResult:
        """
        Get tracking information for a shipment.

        Args:
            tracking_number: UPS tracking number

        Returns:
            Tracking result with events in the order UPS sent them
        """
        params = {"locale": "en_US", "returnSignature": "false"}

        response = await self._make_request(
            "GET",
            Endpoint.TRACK,
            f"{TRACKING_PATH}/{tracking_number}",
            params=params,
            tracking_number=tracking_number,
        )

        shipments = response.get("trackResponse", {}).get("shipment", [])
        if not shipments:
            raise TrackingNotFound(
                "No tracking information found", tracking_number=tracking_number, carrier=CARRIER
            )

        shipment = shipments[0] if isinstance(shipments, list) else shipments
        packages = shipment.get("package", [])
        if not packages:
            raise TrackingNotFound(
                "No package information found", tracking_number=tracking_number, carrier=CARRIER
            )

        package = packages[0] if isinstance(packages, list) else packages

        current_status = package.get("currentStatus", {})

        activities = package.get("activity", [])
        if isinstance(activities, dict):
            activities = [activities]

        events = []
        for activity in activities:
            status_info = activity.get("status", {})
            location = activity.get("location", {}).get("address", {})

            date_str = activity.get("date", "")
            time_str = activity.get("time", "")
            if not date_str:
                continue
            try:
                event_time = datetime.strptime(
                    f"{date_str} {time_str or '000000'}",
                    "%Y%m%d %H%M%S"
                ).replace(tzinfo=timezone.utc)
            except ValueError:
                logger.debug(f"Skipping UPS activity with bad timestamp: {date_str} {time_str}")
                continue

            events.append(UPSTrackingEvent(
                event_type=status_info.get("type", ""),
                description=status_info.get("description", ""),
                event_time=event_time,
                city=location.get("city") or None,
                state=location.get("stateProvince") or None,
                country=location.get("country") or None,
                event_code=status_info.get("code", ""),
            ))

        return UPSTrackingResult(
            tracking_number=tracking_number,
            status=current_status.get("code", ""),
            status_description=current_status.get("description", ""),
            events=events,
        )

    # ==================== Address Validation ====================

    async def validate_address(self, address: Address) -> Tuple[bool, Optional[Address], List[str]]:
        """
        Validate an address using UPS Address Validation API.

        Returns:
            Tuple of (is_valid, corrected_address, messages)
        """
        address_lines = [address.street]
        if address.street2:
            address_lines.append(address.street2)

        request_data = {
            "XAVRequest": {
                "AddressKeyFormat": {
                    "ConsigneeName": address.name or "",
                    "AddressLine": address_lines,
                    "PoliticalDivision2": address.city,
                    "PoliticalDivision1": address.region,
                    "PostcodePrimaryLow": address.postal_code,
                    "CountryCode": address.country,
                }
            }
        }

        response = await self._make_request(
            "POST", Endpoint.ADDRESS, ADDRESS_VALIDATION_PATH, data=request_data
        )

        xav_response = response.get("XAVResponse", {})
        messages = []

        if xav_response.get("NoCandidatesIndicator") is not None:
            messages.append("No valid address found for the provided information")
            return False, None, messages

        candidates = xav_response.get("Candidate", [])
        if isinstance(candidates, dict):
            candidates = [candidates]

        classification = xav_response.get("AddressClassification", {}).get("Code")
        if classification == "1":
            messages.append("Address classified as commercial")
        elif classification == "2":
            messages.append("Address classified as residential")

        corrected = None
        if candidates:
            corrected = _candidate_address(address, candidates[0].get("AddressKeyFormat", {}), classification)

        if xav_response.get("ValidAddressIndicator") is not None:
            return True, corrected, messages

        if xav_response.get("AmbiguousAddressIndicator") is not None:
            messages.append("Multiple addresses match - please verify")
        return False, corrected, messages

    # ==================== Void Shipment ====================

    async def void_shipment(self, shipment_id: str) -> bool:
        """
        Void a shipment (before pickup).

        Args:
            shipment_id: UPS shipment identification number; for a
                single-package shipment this is the tracking number

        Returns:
            True if voided successfully
        """
        response = await self._make_request(
            "DELETE", Endpoint.VOID, f"{VOID_PATH}/{shipment_id}", tracking_number=shipment_id
        )

        summary = response.get("VoidShipmentResponse", {}).get("SummaryResult", {})
        if summary.get("Status", {}).get("Code") == "1":
            logger.info(f"Shipment {shipment_id} voided successfully")
            return True

        logger.warning(f"Void shipment returned non-success: {summary}")
        return False


def _candidate_address(
    original: Address,
    addr_key: Dict[str, Any],
    classification: Optional[str],
) -> Address:
    """Build the suggested address from an XAV candidate, keeping the contact fields."""
    lines = addr_key.get("AddressLine") or []
    if isinstance(lines, str):
        lines = [lines]
    postal_code = f"{addr_key.get('PostcodePrimaryLow', '')}-{addr_key.get('PostcodeExtendedLow', '')}"

    residential = original.residential
    if classification == "1":
        residential = False
    elif classification == "2":
        residential = True

    return replace(
        original,
        street=lines[0] if lines else original.street,
        street2=lines[1] if len(lines) > 1 else None,
        city=addr_key.get("PoliticalDivision2") or original.city,
        region=addr_key.get("PoliticalDivision1") or original.region,
        postal_code=postal_code.strip("-") or original.postal_code,
        country=addr_key.get("CountryCode") or original.country,
        residential=residential,
    )

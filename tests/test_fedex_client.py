"""
Tests for the FedEx client and carrier against a mocked FedEx API.
"""
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import (
    CarrierAuthFailure,
    InvalidAddress,
    LabelCreationFailed,
    TrackingNotFound,
    TransientCarrierFailure,
)
from shipping_engine.models.carrier import CarrierCode
from shipping_engine.models.shipment import AddressValidationStatus, Package, ShipmentStatus
from shipping_engine.modules.shipping.carriers.fedex import FedExCarrier
from shipping_engine.modules.shipping.packing import PackItem, pack_items
from shipping_engine.services.fedex_client import (
    ADDRESS_RESOLVE_PATH,
    CANCEL_PATH,
    OAUTH_TOKEN_PATH,
    RATE_PATH,
    SHIP_PATH,
    TRACK_PATH,
    FedExClient,
    shipment_packaging_type,
)

TOKEN_RESPONSE = {"access_token": "fedex-token", "token_type": "bearer", "expires_in": 3599}

RATE_RESPONSE = {
    "output": {
        "rateReplyDetails": [
            {
                "serviceType": "FEDEX_GROUND",
                "serviceName": "FedEx Ground",
                "ratedShipmentDetails": [{"totalNetCharge": 14.2, "currency": "USD"}],
                "operationalDetail": {
                    "transitTime": "FOUR_DAYS",
                    "ineligibleForMoneyBackGuarantee": False,
                },
            },
            {
                "serviceType": "FEDEX_2_DAY",
                "serviceName": "FedEx 2Day",
                "ratedShipmentDetails": [{"totalNetCharge": "31.07", "currency": "USD"}],
                "operationalDetail": {"deliveryDate": "2030-01-03T20:00:00"},
            },
        ]
    }
}


class FakeFedExApi:
    """MockTransport handler routing by path, recording every request."""

    def __init__(self):
        self.responses = {
            OAUTH_TOKEN_PATH: httpx.Response(200, json=TOKEN_RESPONSE),
            RATE_PATH: httpx.Response(200, json=RATE_RESPONSE),
        }
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses[request.url.path]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def hits(self, path):
        return sum(1 for r in self.requests if r.url.path == path)

    def last_json(self, path):
        request = [r for r in self.requests if r.url.path == path][-1]
        return json.loads(request.content)


@pytest.fixture
def api():
    return FakeFedExApi()


@pytest.fixture
def http_client(api):
    return httpx.AsyncClient(transport=httpx.MockTransport(api))


@pytest.fixture
def client(credentials, http_client):
    return FedExClient(credentials, http_client=http_client)


class TestFedExAuth:

    @pytest.mark.asyncio
    async def test_token_is_cached(self, client, api, origin, destination, package):
        await client.get_rates(origin, destination, [package])
        await client.get_rates(origin, destination, [package])

        assert api.hits(OAUTH_TOKEN_PATH) == 1
        assert api.hits(RATE_PATH) == 2
        rate_request = [r for r in api.requests if r.url.path == RATE_PATH][0]
        assert rate_request.headers["Authorization"] == "Bearer fedex-token"
        assert rate_request.url.host == "apis-sandbox.fedex.com"

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, client, api, origin, destination, package):
        api.responses[OAUTH_TOKEN_PATH] = httpx.Response(
            401, json={"errors": [{"code": "NOT.AUTHORIZED.ERROR", "message": "bad client"}]}
        )
        with pytest.raises(CarrierAuthFailure) as exc_info:
            await client.get_rates(origin, destination, [package])
        assert exc_info.value.details["carrier_error_code"] == "NOT.AUTHORIZED.ERROR"
        assert api.hits(RATE_PATH) == 0

    @pytest.mark.asyncio
    async def test_token_endpoint_rate_limit_is_transient(self, client, api, origin, destination, package):
        api.responses[OAUTH_TOKEN_PATH] = httpx.Response(429, json={})
        with pytest.raises(TransientCarrierFailure):
            await client.get_rates(origin, destination, [package])

    @pytest.mark.asyncio
    async def test_401_drops_cached_token(self, client, api, origin, destination, package):
        await client.get_rates(origin, destination, [package])
        api.responses[RATE_PATH] = httpx.Response(401, json={})
        with pytest.raises(CarrierAuthFailure):
            await client.get_rates(origin, destination, [package])

        api.responses[RATE_PATH] = httpx.Response(200, json=RATE_RESPONSE)
        await client.get_rates(origin, destination, [package])
        assert api.hits(OAUTH_TOKEN_PATH) == 2


class TestFedExRates:

    @pytest.mark.asyncio
    async def test_parses_rate_reply(self, client, origin, destination, package):
        rates = await client.get_rates(origin, destination, [package])

        assert [r.service_type for r in rates] == ["FEDEX_GROUND", "FEDEX_2_DAY"]
        ground, two_day = rates
        assert ground.total_charge == Decimal("14.20")
        assert ground.transit_days == 4
        assert ground.guaranteed is True
        assert two_day.total_charge == Decimal("31.07")
        assert two_day.transit_days is None
        assert two_day.delivery_date == datetime(2030, 1, 3, 20, 0, tzinfo=timezone.utc)
        assert two_day.guaranteed is None

    @pytest.mark.asyncio
    async def test_request_body(self, client, api, origin, destination, package):
        await client.get_rates(origin, destination, [package], service_type="FEDEX_GROUND")

        body = api.last_json(RATE_PATH)
        shipment = body["requestedShipment"]
        assert body["accountNumber"] == {"value": "740561073"}
        assert shipment["serviceType"] == "FEDEX_GROUND"
        assert shipment["recipient"]["address"]["stateOrProvinceCode"] == "CA"
        assert shipment["requestedPackageLineItems"][0]["dimensions"] == {
            "length": 10, "width": 8, "height": 2, "units": "IN",
        }
        assert "smartPostInfoDetail" not in shipment

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, client, api, origin, destination, package):
        api.responses[RATE_PATH] = httpx.Response(503, text="Service Unavailable")
        with pytest.raises(TransientCarrierFailure) as exc_info:
            await client.get_rates(origin, destination, [package])
        assert exc_info.value.retryable
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_address(self, client, api, origin, destination, package):
        api.responses[RATE_PATH] = httpx.Response(400, json={
            "errors": [{"code": "INVALID.CITY.STATE.ZIP", "message": "City/state/zip mismatch"}]
        })
        with pytest.raises(InvalidAddress) as exc_info:
            await client.get_rates(origin, destination, [package])
        assert exc_info.value.code == "INVALID_ADDRESS"
        assert exc_info.value.carrier == "FEDEX"

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, client, api, origin, destination, package):
        api.responses[RATE_PATH] = httpx.ConnectError("connection refused")
        with pytest.raises(TransientCarrierFailure, match="network error"):
            await client.get_rates(origin, destination, [package])

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, client, api, origin, destination, package):
        api.responses[RATE_PATH] = httpx.ReadTimeout("read timed out")
        with pytest.raises(TransientCarrierFailure, match="timed out"):
            await client.get_rates(origin, destination, [package])


class TestFedExShip:

    @pytest.mark.asyncio
    async def test_parses_shipment(self, client, api, origin, destination, package):
        api.responses[SHIP_PATH] = httpx.Response(200, json={
            "output": {
                "transactionShipments": [{
                    "masterTrackingNumber": "794644790138",
                    "serviceType": "FEDEX_GROUND",
                    "pieceResponses": [{
                        "trackingNumber": "794644790138",
                        "packageDocuments": [{"contentType": "LABEL", "encodedLabel": "JVBERi0x"}],
                    }],
                    "completedShipmentDetail": {
                        "shipmentRating": {
                            "shipmentRateDetails": [{"totalNetCharge": 23.5, "currency": "USD"}]
                        }
                    },
                }]
            }
        })

        result = await client.create_shipment(
            origin, destination, [package], service_type="FEDEX_GROUND", label_format="zpl"
        )

        assert result.tracking_number == "794644790138"
        assert result.label_data == "JVBERi0x"
        assert result.label_format == "ZPL"
        assert result.total_charge == Decimal("23.50")
        spec = api.last_json(SHIP_PATH)["requestedShipment"]["labelSpecification"]
        assert spec["imageType"] == "ZPLII"

    @pytest.mark.asyncio
    async def test_rejected_shipment(self, client, api, origin, destination, package):
        api.responses[SHIP_PATH] = httpx.Response(400, json={
            "errors": [{"code": "SHIPMENT.VALIDATION.FAILED", "message": "Weight exceeds limit"}]
        })
        with pytest.raises(LabelCreationFailed) as exc_info:
            await client.create_shipment(origin, destination, [package], service_type="FEDEX_GROUND")
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_missing_tracking_number_fails_label(self, client, api, origin, destination, package):
        api.responses[SHIP_PATH] = httpx.Response(200, json={
            "output": {"transactionShipments": [{"serviceType": "FEDEX_GROUND", "pieceResponses": [{}]}]}
        })
        with pytest.raises(LabelCreationFailed, match="no tracking number"):
            await client.create_shipment(origin, destination, [package], service_type="FEDEX_GROUND")

    @pytest.mark.asyncio
    async def test_empty_shipment_list_fails_label(self, client, api, origin, destination, package):
        api.responses[SHIP_PATH] = httpx.Response(200, json={"output": {"transactionShipments": []}})
        with pytest.raises(LabelCreationFailed) as exc_info:
            await client.create_shipment(origin, destination, [package], service_type="FEDEX_GROUND")
        assert exc_info.value.code == "LABEL_CREATION_FAILED"


class TestFedExTrack:

    @pytest.mark.asyncio
    async def test_not_found_error_code(self, client, api):
        api.responses[TRACK_PATH] = httpx.Response(200, json={
            "output": {"completeTrackResults": [{
                "trackingNumber": "000000000000",
                "trackResults": [{"error": {
                    "code": "TRACKING.TRACKINGNUMBER.NOTFOUND",
                    "message": "Tracking number cannot be found.",
                }}],
            }]}
        })
        with pytest.raises(TrackingNotFound) as exc_info:
            await client.track_shipment("000000000000")
        assert exc_info.value.tracking_number == "000000000000"

    @pytest.mark.asyncio
    async def test_empty_results(self, client, api):
        api.responses[TRACK_PATH] = httpx.Response(200, json={"output": {"completeTrackResults": []}})
        with pytest.raises(TrackingNotFound):
            await client.track_shipment("123")


class TestFedExCarrier:

    @pytest.fixture
    def carrier(self, credentials, http_client, hub_router):
        return FedExCarrier(credentials, http_client=http_client, hub_router=hub_router)

    @pytest.mark.asyncio
    async def test_smart_post_request_carries_hub(self, carrier, api, origin, destination, package):
        api.responses[RATE_PATH] = httpx.Response(200, json={"output": {"rateReplyDetails": [{
            "serviceType": "SMART_POST",
            "serviceName": "FedEx Ground Economy",
            "ratedShipmentDetails": [{"totalNetCharge": 8.42, "currency": "USD"}],
        }]}})

        quotes = await carrier.get_rates(origin, destination, [package], service_code="SMART_POST")

        detail = api.last_json(RATE_PATH)["requestedShipment"]["smartPostInfoDetail"]
        assert detail == {"hubId": "5902", "indicia": "PARCEL_SELECT"}
        assert len(quotes) == 1
        quote = quotes[0]
        assert quote.hub_id == "5902"
        assert quote.service_name == "FedEx Ground Economy"
        assert quote.amount == Decimal("8.42")
        # No transit time in the reply: catalog upper bound
        assert quote.estimated_days == 7
        assert quote.guaranteed is False

    @pytest.mark.asyncio
    async def test_quotes_filtered_to_requested_service(self, carrier, origin, destination, package):
        quotes = await carrier.get_rates(origin, destination, [package], service_code="FEDEX_GROUND")
        assert [q.service_code for q in quotes] == ["FEDEX_GROUND"]
        assert quotes[0].carrier == CarrierCode.FEDEX
        assert quotes[0].hub_id is None
        assert quotes[0].ttl_seconds == 1800

    @pytest.mark.asyncio
    async def test_track_returns_oldest_first(self, carrier, api):
        api.responses[TRACK_PATH] = httpx.Response(200, json={"output": {"completeTrackResults": [{
            "trackResults": [{
                "latestStatusDetail": {"code": "DL", "description": "Delivered"},
                "scanEvents": [
                    {
                        "date": "2024-03-03T14:02:00-08:00",
                        "eventType": "DL",
                        "eventDescription": "Delivered",
                        "derivedStatusCode": "DL",
                        "scanLocation": {"city": "LOS ANGELES", "stateOrProvinceCode": "CA"},
                    },
                    {
                        "date": "2024-03-01T18:30:00-06:00",
                        "eventType": "PU",
                        "eventDescription": "Picked up",
                        "derivedStatusCode": "PU",
                        "scanLocation": {"city": "MEMPHIS", "stateOrProvinceCode": "TN"},
                    },
                    {"date": "", "eventType": "IT", "eventDescription": "no timestamp"},
                ],
            }],
        }]}})

        events = await carrier.track("794644790138")

        assert [e.status for e in events] == [ShipmentStatus.PICKED_UP, ShipmentStatus.DELIVERED]
        assert events[0].location == "MEMPHIS, TN"
        assert events[1].carrier_status == "DL"
        assert events[0].timestamp < events[1].timestamp

    def test_map_status_unknown_defaults_to_in_transit(self, carrier):
        assert carrier.map_status("od") == ShipmentStatus.OUT_FOR_DELIVERY
        assert carrier.map_status("ZZ") == ShipmentStatus.IN_TRANSIT

    def test_tracking_url(self, carrier):
        assert carrier.get_tracking_url("123") == "https://www.fedex.com/fedextrack/?trknbr=123"


class TestFedExPackagingType:

    def test_no_named_type(self, package):
        assert shipment_packaging_type([package, package]) is None

    def test_shared_type_is_kept(self):
        tubes = [Package(weight=1.0, length=38, width=6, height=6, packaging_type="FEDEX_TUBE")] * 2
        assert shipment_packaging_type(tubes) == "FEDEX_TUBE"

    def test_disagreeing_types_ship_as_your_packaging(self, package):
        tube = Package(weight=1.0, length=38, width=6, height=6, packaging_type="FEDEX_TUBE")
        assert shipment_packaging_type([tube, package]) == "YOUR_PACKAGING"

    @pytest.mark.asyncio
    async def test_mixed_packing_result(self, client, api, origin, destination, box_catalog):
        packing = pack_items(
            [
                PackItem("poster", 36, 3, 3, weight=0.5, rollable=True),
                PackItem("booklet", 10, 8, 2, weight=3.0),
            ],
            box_catalog,
        )
        packages = packing.to_packages()
        assert len({p.packaging_type for p in packages}) == 2

        await client.get_rates(origin, destination, packages)
        rate_shipment = api.last_json(RATE_PATH)["requestedShipment"]
        assert rate_shipment["packagingType"] == "YOUR_PACKAGING"
        assert len(rate_shipment["requestedPackageLineItems"]) == 2

        api.responses[SHIP_PATH] = httpx.Response(200, json={
            "output": {"transactionShipments": [{"masterTrackingNumber": "794644790140"}]}
        })
        await client.create_shipment(origin, destination, packages, service_type="FEDEX_GROUND")
        assert api.last_json(SHIP_PATH)["requestedShipment"]["packagingType"] == "YOUR_PACKAGING"


class TestFedExCancel:

    @pytest.fixture
    def carrier(self, credentials, http_client, hub_router):
        return FedExCarrier(credentials, http_client=http_client, hub_router=hub_router)

    @pytest.mark.asyncio
    async def test_cancel_confirmed(self, carrier, api):
        api.responses[CANCEL_PATH] = httpx.Response(200, json={
            "output": {"cancelledShipment": True, "successMessage": "Success"}
        })

        result = await carrier.void_shipment("794644790138")

        assert result.success is True
        assert result.error_message is None
        request = [r for r in api.requests if r.url.path == CANCEL_PATH][-1]
        assert request.method == "PUT"
        body = api.last_json(CANCEL_PATH)
        assert body["trackingNumber"] == "794644790138"
        assert body["deletionControl"] == "DELETE_ALL_PACKAGES"

    @pytest.mark.asyncio
    async def test_cancel_not_confirmed(self, carrier, api):
        api.responses[CANCEL_PATH] = httpx.Response(200, json={"output": {"cancelledShipment": False}})

        result = await carrier.void_shipment("794644790138")

        assert result.success is False
        assert "did not confirm" in result.error_message

    @pytest.mark.asyncio
    async def test_cancel_refused(self, carrier, api):
        api.responses[CANCEL_PATH] = httpx.Response(400, json={
            "errors": [{"code": "SHIPMENT.CANCEL.NOTALLOWED", "message": "Shipment already tendered"}]
        })

        result = await carrier.void_shipment("794644790138")

        assert result.success is False
        assert "already tendered" in result.error_message

    @pytest.mark.asyncio
    async def test_cancel_outage_is_transient(self, carrier, api):
        api.responses[CANCEL_PATH] = httpx.Response(503, text="Service Unavailable")
        with pytest.raises(TransientCarrierFailure):
            await carrier.void_shipment("794644790138")


class TestFedExAddressResolution:

    @pytest.fixture
    def carrier(self, credentials, http_client, hub_router):
        return FedExCarrier(credentials, http_client=http_client, hub_router=hub_router)

    @staticmethod
    def resolved(classification, **overrides):
        address = {
            "streetLinesToken": ["123 MAIN ST"],
            "city": "LOS ANGELES",
            "stateOrProvinceCode": "CA",
            "postalCode": "90012-3100",
            "countryCode": "US",
            "classification": classification,
            "customerMessages": [],
        }
        address.update(overrides)
        return httpx.Response(200, json={"output": {"resolvedAddresses": [address]}})

    @pytest.mark.asyncio
    async def test_residential_address_is_valid(self, carrier, api, destination):
        api.responses[ADDRESS_RESOLVE_PATH] = self.resolved("RESIDENTIAL")

        result = await carrier.validate_address(destination)

        assert result.is_valid
        assert result.status == AddressValidationStatus.VALID
        assert result.corrected_address.street == "123 MAIN ST"
        assert result.corrected_address.postal_code == "90012-3100"
        assert result.corrected_address.residential is True
        assert result.corrected_address.name == "Jane Customer"
        sent = api.last_json(ADDRESS_RESOLVE_PATH)["addressesToValidate"][0]["address"]
        assert sent["city"] == "Los Angeles"

    @pytest.mark.asyncio
    async def test_unknown_classification_offers_correction(self, carrier, api, destination):
        api.responses[ADDRESS_RESOLVE_PATH] = self.resolved(
            "UNKNOWN", customerMessages=[{"code": "STANDARDIZED.ADDRESS.NOTFOUND", "message": "Not found"}]
        )

        result = await carrier.validate_address(destination)

        assert not result.is_valid
        assert result.status == AddressValidationStatus.CORRECTED
        assert "Not found" in result.messages
        assert "FedEx could not classify the address (UNKNOWN)" in result.messages

    @pytest.mark.asyncio
    async def test_no_match_is_invalid(self, carrier, api, destination):
        api.responses[ADDRESS_RESOLVE_PATH] = httpx.Response(200, json={"output": {"resolvedAddresses": []}})

        result = await carrier.validate_address(destination)

        assert result.status == AddressValidationStatus.INVALID
        assert result.corrected_address is None

    @pytest.mark.asyncio
    async def test_rejected_address_is_invalid(self, carrier, api, destination):
        api.responses[ADDRESS_RESOLVE_PATH] = httpx.Response(400, json={
            "errors": [{"code": "INVALID.ADDRESS", "message": "Address is not valid"}]
        })

        result = await carrier.validate_address(destination)

        assert result.status == AddressValidationStatus.INVALID
        assert result.original_address == destination


class TestFedExQuoteAdjustments:

    @pytest.mark.asyncio
    async def test_markup_applied_to_every_quote(self, credentials, http_client, hub_router, origin, destination, package):
        carrier = FedExCarrier(credentials, http_client=http_client, hub_router=hub_router, markup_percent=10)

        quotes = await carrier.get_rates(origin, destination, [package])

        assert {q.service_code: q.amount for q in quotes} == {
            "FEDEX_GROUND": Decimal("15.62"),
            "FEDEX_2_DAY": Decimal("34.18"),
        }

    @pytest.mark.asyncio
    async def test_only_enabled_services_are_quoted(self, credentials, http_client, hub_router, origin, destination, package):
        carrier = FedExCarrier(
            credentials, http_client=http_client, hub_router=hub_router, enabled_services=["FEDEX_2_DAY"]
        )

        quotes = await carrier.get_rates(origin, destination, [package])

        assert [q.service_code for q in quotes] == ["FEDEX_2_DAY"]
        assert quotes[0].amount == Decimal("31.07")

    @pytest.mark.asyncio
    async def test_enabled_services_from_settings(self, monkeypatch, credentials, http_client, hub_router, origin, destination, package):
        monkeypatch.setattr(settings, "FEDEX_ENABLED_SERVICES", ["FEDEX_GROUND"])
        carrier = FedExCarrier(credentials, http_client=http_client, hub_router=hub_router)

        quotes = await carrier.get_rates(origin, destination, [package])

        assert [q.service_code for q in quotes] == ["FEDEX_GROUND"]

    def test_negative_markup_rejected(self, credentials, http_client, hub_router):
        with pytest.raises(ValueError, match="cannot be negative"):
            FedExCarrier(credentials, http_client=http_client, hub_router=hub_router, markup_percent=-5)

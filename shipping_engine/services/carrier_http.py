"""
HTTP error translation shared by the carrier API clients

Every carrier client funnels non-2xx responses and httpx transport errors
through here so both carriers raise the same exception types:

    401/403                      -> CarrierAuthFailure
    408/429/5xx, timeouts, conns -> TransientCarrierFailure
    404 on tracking              -> TrackingNotFound
    400/422 + address error code -> InvalidAddress
    other 4xx on label creation  -> LabelCreationFailed
    other 4xx on void            -> ShipmentVoidFailed
    other 4xx                    -> CarrierError
"""
import enum
import logging
from typing import Collection, Optional

import httpx

from shipping_engine.core.exceptions import (
    CarrierAuthFailure,
    CarrierError,
    InvalidAddress,
    LabelCreationFailed,
    ShipmentVoidFailed,
    TrackingNotFound,
    TransientCarrierFailure,
)
from shipping_engine.core.utils import sanitize_for_logging

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class Endpoint(str, enum.Enum):
    AUTH = "auth"
    RATE = "rate"
    SHIP = "ship"
    TRACK = "track"
    VOID = "void"
    ADDRESS = "address"


def map_http_error(
    carrier: str,
    endpoint: Endpoint,
    status_code: int,
    error_code: Optional[str],
    message: str,
    address_error_codes: Collection[str] = (),
    tracking_number: Optional[str] = None,
) -> CarrierError:
    """Build the typed exception for a failed carrier response."""
    kwargs = {"carrier": carrier, "status_code": status_code}
    if error_code:
        kwargs["details"] = {"carrier_error_code": error_code}

    if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return TransientCarrierFailure(f"{carrier} temporarily unavailable: {message}", **kwargs)

    # The token endpoint answers bad credentials with a plain 400
    if status_code in (401, 403) or endpoint == Endpoint.AUTH:
        return CarrierAuthFailure(f"{carrier} rejected credentials: {message}", **kwargs)

    if endpoint == Endpoint.TRACK and status_code == 404:
        return TrackingNotFound(
            f"{carrier} has no record of tracking number {tracking_number}",
            tracking_number=tracking_number,
            **kwargs,
        )

    if status_code in (400, 422) and error_code in address_error_codes:
        return InvalidAddress(f"{carrier} rejected address: {message}", **kwargs)

    if endpoint == Endpoint.SHIP:
        return LabelCreationFailed(f"{carrier} label creation failed: {message}", **kwargs)

    if endpoint == Endpoint.VOID:
        return ShipmentVoidFailed(f"{carrier} could not void shipment: {message}", **kwargs)

    return CarrierError(f"{carrier} API error: {message}", **kwargs)


def raise_for_response(
    carrier: str,
    endpoint: Endpoint,
    response: httpx.Response,
    error_code: Optional[str],
    message: str,
    address_error_codes: Collection[str] = (),
    tracking_number: Optional[str] = None,
) -> None:
    """Log and raise for a response with status >= 400. No-op otherwise."""
    if response.status_code < 400:
        return

    logger.error(
        f"{carrier} {endpoint.value} API error: {response.status_code} "
        f"{error_code or ''} - {sanitize_for_logging(message)}"
    )
    raise map_http_error(
        carrier,
        endpoint,
        response.status_code,
        error_code,
        message,
        address_error_codes=address_error_codes,
        tracking_number=tracking_number,
    )


def transport_failure(carrier: str, endpoint: Endpoint, exc: httpx.RequestError) -> TransientCarrierFailure:
    """Translate an httpx timeout or connection error."""
    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "network error"
    logger.error(f"{carrier} {endpoint.value} request {kind}: {exc}")
    return TransientCarrierFailure(f"{carrier} request {kind}: {exc}", carrier=carrier)


def error_body(response: httpx.Response) -> dict:
    """Best-effort decode of an error response body."""
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text[:500]}
    return body if isinstance(body, dict) else {"raw": body}


def response_json(carrier: str, endpoint: Endpoint, response: httpx.Response) -> dict:
    """Decode a JSON body, treating an unreadable body as a carrier error."""
    try:
        return response.json()
    except ValueError:
        logger.error(f"{carrier} {endpoint.value} returned non-JSON body: {response.text[:200]}")
        raise CarrierError(
            f"{carrier} returned an unreadable response",
            carrier=carrier,
            status_code=response.status_code,
        )

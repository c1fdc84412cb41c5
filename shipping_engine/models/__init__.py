from shipping_engine.models.carrier import CarrierCode, CarrierCredentials, credentials_for
from shipping_engine.models.shipment import (
    Address,
    Label,
    Package,
    RateQuote,
    ShipmentStatus,
    TrackingEvent,
)

__all__ = [
    "CarrierCode",
    "CarrierCredentials",
    "credentials_for",
    "Address",
    "Label",
    "Package",
    "RateQuote",
    "ShipmentStatus",
    "TrackingEvent",
]

"""
Shipping Module

- Box catalog and packing selector
- SmartPost hub routing
- Service level catalog
- BaseCarrier interface and CarrierFactory for carrier implementations
"""
from shipping_engine.modules.shipping.carriers import CarrierFactory, get_carrier
from shipping_engine.modules.shipping.carriers.base import BaseCarrier

__all__ = [
    "CarrierFactory",
    "get_carrier",
    "BaseCarrier",
]

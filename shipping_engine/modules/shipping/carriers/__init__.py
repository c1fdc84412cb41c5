"""
Carrier Registry and Factory

- CarrierFactory creates carrier instances based on CarrierCode
- Only returns enabled carriers (SHIPPING_ENABLED_CARRIERS)
- Carriers can share code internally (codependent, not isolated)
"""
from typing import Dict, List, Optional, Type
import logging

import httpx

from shipping_engine.core.config import settings
from shipping_engine.models.carrier import CarrierCode, CarrierCredentials, credentials_for
from shipping_engine.modules.shipping.carriers.base import BaseCarrier
from shipping_engine.modules.shipping.hubs import HubRouter

logger = logging.getLogger(__name__)

# Registry of carrier implementations
_CARRIER_REGISTRY: Dict[CarrierCode, Type[BaseCarrier]] = {}


def register_carrier(carrier_code: CarrierCode):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier(CarrierCode.UPS)
        class UPSCarrier(BaseCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        _CARRIER_REGISTRY[carrier_code] = cls
        logger.debug(f"Registered carrier: {carrier_code.value} -> {cls.__name__}")
        return cls
    return decorator


def is_carrier_enabled(carrier_code: CarrierCode) -> bool:
    return CarrierCode(carrier_code).value in settings.SHIPPING_ENABLED_CARRIERS


class CarrierFactory:
    """
    Factory for creating carrier instances.

    Returns None for disabled or unregistered carriers.
    """

    @classmethod
    def get_carrier(
        cls,
        carrier_code: CarrierCode,
        credentials: Optional[CarrierCredentials] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        hub_router: Optional[HubRouter] = None,
    ) -> Optional[BaseCarrier]:
        """
        Get a carrier instance if enabled.

        Args:
            carrier_code: The carrier to get
            credentials: Credentials to use; read from settings when omitted
            http_client: Optional shared HTTP client
            hub_router: Optional hub router for hub-based services

        Returns:
            BaseCarrier instance or None if disabled/not found
        """
        if not is_carrier_enabled(carrier_code):
            logger.debug(f"Carrier {CarrierCode(carrier_code).value} is disabled")
            return None

        carrier_cls = _CARRIER_REGISTRY.get(carrier_code)
        if not carrier_cls:
            logger.warning(f"No implementation registered for carrier: {CarrierCode(carrier_code).value}")
            return None

        return carrier_cls(
            credentials or credentials_for(carrier_code),
            http_client=http_client,
            hub_router=hub_router,
        )

    @classmethod
    def get_enabled_carriers(
        cls,
        credentials: Optional[Dict[CarrierCode, CarrierCredentials]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        hub_router: Optional[HubRouter] = None,
    ) -> Dict[CarrierCode, BaseCarrier]:
        """
        Get all enabled carrier instances keyed by code.

        Args:
            credentials: Optional dict of CarrierCode -> credentials
        """
        carriers = {}
        for code in cls.get_registered_carriers():
            creds = credentials.get(code) if credentials else None
            carrier = cls.get_carrier(code, creds, http_client=http_client, hub_router=hub_router)
            if carrier:
                carriers[code] = carrier
        return carriers

    @classmethod
    def get_registered_carriers(cls) -> List[CarrierCode]:
        """Get list of all registered carrier codes."""
        return list(_CARRIER_REGISTRY.keys())


def get_carrier(
    carrier_code: CarrierCode,
    credentials: Optional[CarrierCredentials] = None,
) -> Optional[BaseCarrier]:
    """
    Convenience function to get a carrier.

    Equivalent to CarrierFactory.get_carrier().
    """
    return CarrierFactory.get_carrier(carrier_code, credentials)


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from shipping_engine.modules.shipping.carriers.fedex import FedExCarrier  # noqa: E402, F401
from shipping_engine.modules.shipping.carriers.ups import UPSCarrier  # noqa: E402, F401

"""
Service Level Catalog

Static table of the carrier service levels the engine knows how to shop,
with transit-time ranges used as the fallback estimate when a carrier
response omits one, and the filters used to pick default levels for a
shipment.

Freight (LTL) services are deliberately absent.
"""
import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from shipping_engine.models.carrier import CarrierCode


class ServiceCategory(str, enum.Enum):
    EXPRESS = "express"
    GROUND = "ground"
    SMARTPOST = "smartpost"
    INTERNATIONAL = "international"


@dataclass(frozen=True)
class ServiceLevel:
    carrier: CarrierCode
    code: str
    name: str
    display_name: str
    category: ServiceCategory
    domestic: bool
    international: bool
    estimated_days_min: int
    estimated_days_max: int
    guaranteed: bool
    max_weight: float
    allows_residential: bool = True
    hub_based: bool = False

    def request(self) -> "ServiceLevelRequest":
        return ServiceLevelRequest(carrier=self.carrier, service_code=self.code)


@dataclass(frozen=True)
class ServiceLevelRequest:
    """One (carrier, service) pair for the rate shopping fan-out."""
    carrier: CarrierCode
    service_code: str

    def __str__(self) -> str:
        return f"{self.carrier.value}:{self.service_code}"


def _fedex(code, name, category, days, guaranteed, max_weight=150.0, domestic=True,
           allows_residential=True, hub_based=False) -> ServiceLevel:
    return ServiceLevel(
        carrier=CarrierCode.FEDEX,
        code=code,
        name=name,
        display_name=f"FedEx {name}",
        category=category,
        domestic=domestic,
        international=not domestic,
        estimated_days_min=days[0],
        estimated_days_max=days[1],
        guaranteed=guaranteed,
        max_weight=max_weight,
        allows_residential=allows_residential,
        hub_based=hub_based,
    )


def _ups(code, name, category, days, guaranteed, max_weight=150.0, domestic=True) -> ServiceLevel:
    return ServiceLevel(
        carrier=CarrierCode.UPS,
        code=code,
        name=name,
        display_name=name,
        category=category,
        domestic=domestic,
        international=not domestic,
        estimated_days_min=days[0],
        estimated_days_max=days[1],
        guaranteed=guaranteed,
        max_weight=max_weight,
    )


_EXPRESS = ServiceCategory.EXPRESS
_GROUND = ServiceCategory.GROUND
_INTL = ServiceCategory.INTERNATIONAL

SERVICE_LEVELS: Tuple[ServiceLevel, ...] = (
    # FedEx Express domestic
    _fedex("FIRST_OVERNIGHT", "First Overnight", _EXPRESS, (1, 1), True),
    _fedex("PRIORITY_OVERNIGHT", "Priority Overnight", _EXPRESS, (1, 1), True),
    _fedex("STANDARD_OVERNIGHT", "Standard Overnight", _EXPRESS, (1, 1), False),
    _fedex("FEDEX_2_DAY_AM", "2Day A.M.", _EXPRESS, (2, 2), True),
    _fedex("FEDEX_2_DAY", "2Day", _EXPRESS, (2, 2), True),
    _fedex("FEDEX_EXPRESS_SAVER", "Express Saver", _EXPRESS, (3, 3), True),
    # FedEx Ground domestic
    _fedex("FEDEX_GROUND", "Ground", _GROUND, (1, 5), False),
    _fedex("GROUND_HOME_DELIVERY", "Ground Home Delivery", _GROUND, (1, 5), False),
    _fedex("FEDEX_REGIONAL_ECONOMY", "Regional Economy", _GROUND, (2, 7), False, max_weight=70.0),
    # FedEx Ground Economy: USPS last mile via a regional hub
    _fedex("SMART_POST", "Ground Economy", ServiceCategory.SMARTPOST, (2, 7), False,
           max_weight=70.0, hub_based=True),
    # FedEx international
    _fedex("INTERNATIONAL_FIRST", "International First", _INTL, (1, 3), True, domestic=False),
    _fedex("FEDEX_INTERNATIONAL_PRIORITY_EXPRESS", "International Priority Express", _INTL,
           (1, 2), True, domestic=False),
    _fedex("INTERNATIONAL_PRIORITY", "International Priority", _INTL, (3, 5), False, domestic=False),
    _fedex("FEDEX_INTERNATIONAL_CONNECT_PLUS", "International Connect Plus", _INTL, (3, 6), False,
           domestic=False),
    _fedex("INTERNATIONAL_ECONOMY", "International Economy", _INTL, (5, 7), False, domestic=False),
    _fedex("INTERNATIONAL_GROUND", "International Ground", _INTL, (2, 7), False, domestic=False),
    # UPS domestic
    _ups("14", "UPS Next Day Air Early", _EXPRESS, (1, 1), True),
    _ups("01", "UPS Next Day Air", _EXPRESS, (1, 1), True),
    _ups("13", "UPS Next Day Air Saver", _EXPRESS, (1, 1), True),
    _ups("59", "UPS 2nd Day Air A.M.", _EXPRESS, (2, 2), True),
    _ups("02", "UPS 2nd Day Air", _EXPRESS, (2, 2), True),
    _ups("12", "UPS 3 Day Select", _EXPRESS, (3, 3), True),
    _ups("03", "UPS Ground", _GROUND, (1, 5), False),
    # UPS international
    _ups("54", "UPS Worldwide Express Plus", _INTL, (1, 3), True, domestic=False),
    _ups("07", "UPS Worldwide Express", _INTL, (1, 3), True, domestic=False),
    _ups("65", "UPS Saver", _INTL, (1, 3), True, domestic=False),
    _ups("08", "UPS Worldwide Expedited", _INTL, (2, 5), False, domestic=False),
    _ups("11", "UPS Standard", _INTL, (1, 5), False, domestic=False),
)

_BY_KEY: Dict[Tuple[CarrierCode, str], ServiceLevel] = {
    (s.carrier, s.code): s for s in SERVICE_LEVELS
}


def get_service(carrier: CarrierCode, code: str) -> Optional[ServiceLevel]:
    return _BY_KEY.get((CarrierCode(carrier), code))


def get_services_for_carrier(carrier: CarrierCode) -> List[ServiceLevel]:
    return [s for s in SERVICE_LEVELS if s.carrier == carrier]


def get_services_by_category(category: ServiceCategory) -> List[ServiceLevel]:
    return [s for s in SERVICE_LEVELS if s.category == category]


def recommend_services(
    weight: float,
    international: bool = False,
    residential: bool = True,
    needs_guarantee: bool = False,
    max_days: Optional[int] = None,
    prefer_economy: bool = False,
    carriers: Optional[List[CarrierCode]] = None,
) -> List[ServiceLevel]:
    """
    Service levels that can carry a shipment, fastest first.

    With prefer_economy the slowest (cheapest) levels come first instead.
    `weight` is the heaviest single package, since carrier limits are per package.
    """
    services = [s for s in SERVICE_LEVELS if s.max_weight >= weight]

    if carriers is not None:
        services = [s for s in services if s.carrier in carriers]
    if international:
        services = [s for s in services if s.international]
    else:
        services = [s for s in services if s.domestic]
    if residential:
        services = [s for s in services if s.allows_residential]
    if needs_guarantee:
        services = [s for s in services if s.guaranteed]
    if max_days is not None:
        services = [s for s in services if s.estimated_days_max <= max_days]

    if prefer_economy:
        services.sort(key=lambda s: (-s.estimated_days_max, -s.estimated_days_min))
    else:
        services.sort(key=lambda s: (s.estimated_days_min, s.estimated_days_max))

    return services

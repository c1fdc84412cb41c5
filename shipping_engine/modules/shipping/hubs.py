"""
Hub Router

Maps a destination region (US state code) to the FedEx Ground Economy
(SmartPost) hub that performs the discounted last-mile handoff.

The coverage table is a static state list per hub, not a distance
computation. It is a routing heuristic rather than a guarantee of the
nearest hub; rebuild the router from a different table to change it.
Lookup is a linear scan in table order, so when two hubs list the same
region the earlier one wins.
"""
import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hub:
    id: str
    name: str
    city: str
    region: str
    postal_code: str
    serves_regions: FrozenSet[str]

    def serves(self, region: str) -> bool:
        return region in self.serves_regions


def _hub(hub_id: str, name: str, city: str, region: str, postal_code: str, serves: str) -> Hub:
    return Hub(
        id=hub_id,
        name=name,
        city=city,
        region=region,
        postal_code=postal_code,
        serves_regions=frozenset(serves.split()),
    )


SMARTPOST_HUBS: Tuple[Hub, ...] = (
    _hub("5015", "NOMA", "Northborough", "MA", "01532", "ME NH VT MA RI CT"),
    _hub("5087", "EDNJ", "Edison", "NJ", "08817", "NJ"),
    _hub("5110", "NENY", "Newburgh", "NY", "12550", "NY"),
    _hub("5185", "ALPA", "Allentown", "PA", "18106", "PA DE"),
    _hub("5208", "BAMA", "Baltimore", "MD", "21226", "MD DC VA"),
    _hub("5281", "CHNC", "Charlotte", "NC", "28214", "NC SC"),
    _hub("5303", "ATGA", "Atlanta", "GA", "30336", "GA AL"),
    _hub("5327", "ORFL", "Orlando", "FL", "32809", "FL"),
    _hub("5379", "METN", "Memphis", "TN", "38118", "TN MS AR KY"),
    _hub("5431", "GCOH", "Grove City", "OH", "43123", "OH WV"),
    _hub("5436", "GPIL", "Chicago", "IL", "60638", "IL"),
    _hub("5465", "ININ", "Indianapolis", "IN", "46241", "IN"),
    _hub("5481", "DTMI", "Detroit", "MI", "48174", "MI"),
    _hub("5531", "NBWI", "New Berlin", "WI", "53151", "WI"),
    _hub("5552", "MPMN", "Minneapolis", "MN", "55121", "MN ND SD IA"),
    _hub("5648", "KCKS", "Kansas City", "KS", "66106", "KS MO NE OK"),
    _hub("5751", "DLTX", "Dallas", "TX", "75241", "TX"),
    _hub("5771", "HOTX", "Houston", "TX", "77075", "TX LA"),
    _hub("5802", "DNCO", "Denver", "CO", "80216", "CO WY NM"),
    _hub("5843", "SCUT", "Salt Lake City", "UT", "84104", "UT ID MT"),
    _hub("5854", "PHAZ", "Phoenix", "AZ", "85043", "AZ NM"),
    _hub("5902", "LACA", "Los Angeles", "CA", "90640", "CA HI"),
    _hub("5958", "SACA", "Sacramento", "CA", "95652", "CA NV"),
    _hub("5983", "SEWA", "Seattle", "WA", "98032", "WA OR AK"),
)

# Kansas City sits closest to the geographic center of the table
CENTRAL_HUB_ID = "5648"


class HubRouter:
    """
    Total lookup from region code to hub.

    Any region without an explicit coverage entry (territories, foreign
    provinces, typos) resolves to the fallback hub.
    """

    def __init__(self, hubs: Iterable[Hub], fallback_hub_id: str):
        self._hubs: Tuple[Hub, ...] = tuple(hubs)
        fallback = self.get_hub(fallback_hub_id)
        if fallback is None:
            raise ValueError(f"Fallback hub {fallback_hub_id!r} is not in the hub table")
        self._fallback = fallback

    @property
    def hubs(self) -> Tuple[Hub, ...]:
        return self._hubs

    @property
    def fallback_hub(self) -> Hub:
        return self._fallback

    def __contains__(self, hub_id: object) -> bool:
        return any(h.id == hub_id for h in self._hubs)

    def get_hub(self, hub_id: str) -> Optional[Hub]:
        return next((h for h in self._hubs if h.id == hub_id), None)

    def resolve_hub(self, destination_region: Optional[str]) -> Hub:
        """Return the first hub covering the region, else the fallback hub."""
        region = (destination_region or "").strip().upper()
        for hub in self._hubs:
            if hub.serves(region):
                return hub

        logger.info(f"No hub covers region {region!r}, using fallback hub {self._fallback.id}")
        return self._fallback

    def covered_regions(self) -> List[str]:
        regions = set()
        for hub in self._hubs:
            regions.update(hub.serves_regions)
        return sorted(regions)


def default_hub_router() -> HubRouter:
    """Router over the built-in SmartPost hub table with the central fallback."""
    return HubRouter(SMARTPOST_HUBS, CENTRAL_HUB_ID)

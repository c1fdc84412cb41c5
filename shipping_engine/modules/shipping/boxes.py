"""
Box Catalog

Static reference data for every container the engine can ship in: FedEx
envelopes, paks, the S/M/L/XL box tiers, the tube, and the international
10kg/25kg boxes.

The product-affinity tags in `best_for` are keyword heuristics used by
`recommend_for_product_type`. They are not a dimensional guarantee; the
packing selector still checks fit and weight. Swap the table by building a
BoxCatalog from a different iterable of Box records.
"""
import enum
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

# Fraction of a box's interior volume that can realistically be filled
USABLE_VOLUME_RATIO = 0.85


class BoxCategory(str, enum.Enum):
    ENVELOPE = "envelope"
    PAK = "pak"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"
    TUBE = "tube"
    INTERNATIONAL = "international"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Box:
    """A shippable container. Dimensions in inches, weights in pounds."""
    id: str
    name: str
    display_name: str
    category: BoxCategory
    length: float
    width: float
    height: float
    max_weight: float
    tare_weight: float
    one_rate_eligible: bool
    packaging_type: str
    best_for: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height

    @property
    def sorted_dimensions(self) -> Tuple[float, float, float]:
        """Dimensions sorted longest first."""
        return tuple(sorted((self.length, self.width, self.height), reverse=True))

    @property
    def payload_capacity(self) -> float:
        """Item weight the box can carry once its own weight is counted."""
        return self.max_weight - self.tare_weight


def usable_volume(box: Box) -> float:
    """Interior volume available for items after padding and dunnage."""
    return box.volume * USABLE_VOLUME_RATIO


FEDEX_BOXES: Tuple[Box, ...] = (
    Box(
        id="FEDEX_ENVELOPE",
        name="Envelope",
        display_name="FedEx Envelope",
        category=BoxCategory.ENVELOPE,
        length=12.5, width=9.5, height=0.5,
        max_weight=1.0, tare_weight=0.1,
        one_rate_eligible=True,
        packaging_type="FEDEX_ENVELOPE",
        best_for=("documents", "letters", "certificates", "postcards"),
    ),
    Box(
        id="FEDEX_SMALL_PAK",
        name="Small Pak",
        display_name="FedEx Small Pak",
        category=BoxCategory.PAK,
        length=12.75, width=10.25, height=1.5,
        max_weight=5.5, tare_weight=0.15,
        one_rate_eligible=True,
        packaging_type="FEDEX_PAK",
        best_for=("documents", "flyers", "postcards", "stickers"),
    ),
    Box(
        id="FEDEX_PAK",
        name="Large Pak",
        display_name="FedEx Pak",
        category=BoxCategory.PAK,
        length=15.5, width=12.0, height=1.5,
        max_weight=5.5, tare_weight=0.2,
        one_rate_eligible=True,
        packaging_type="FEDEX_PAK",
        best_for=("documents", "flyers", "brochures", "letterhead"),
    ),
    Box(
        id="FEDEX_SMALL_BOX_S1",
        name="Small Box (S1)",
        display_name="FedEx Small Box",
        category=BoxCategory.SMALL,
        length=12.375, width=10.875, height=1.5,
        max_weight=20.0, tare_weight=0.28,
        one_rate_eligible=True,
        packaging_type="FEDEX_SMALL_BOX",
        best_for=("business-cards", "postcards", "stickers", "flyers"),
    ),
    Box(
        id="FEDEX_SMALL_BOX_S2",
        name="Small Box (S2)",
        display_name="FedEx Small Box",
        category=BoxCategory.SMALL,
        length=11.25, width=8.75, height=2.625,
        max_weight=20.0, tare_weight=0.35,
        one_rate_eligible=True,
        packaging_type="FEDEX_SMALL_BOX",
        best_for=("business-cards", "postcards", "envelopes"),
    ),
    Box(
        id="FEDEX_MEDIUM_BOX_M1",
        name="Medium Box (M1)",
        display_name="FedEx Medium Box",
        category=BoxCategory.MEDIUM,
        length=13.25, width=11.5, height=2.375,
        max_weight=20.0, tare_weight=0.4,
        one_rate_eligible=True,
        packaging_type="FEDEX_MEDIUM_BOX",
        best_for=("flyers", "brochures", "booklets", "letterhead"),
    ),
    Box(
        id="FEDEX_MEDIUM_BOX_M2",
        name="Medium Box (M2)",
        display_name="FedEx Medium Box",
        category=BoxCategory.MEDIUM,
        length=11.25, width=8.75, height=4.375,
        max_weight=20.0, tare_weight=0.45,
        one_rate_eligible=True,
        packaging_type="FEDEX_MEDIUM_BOX",
        best_for=("business-cards", "envelopes", "brochures"),
    ),
    Box(
        id="FEDEX_LARGE_BOX_L1",
        name="Large Box (L1)",
        display_name="FedEx Large Box",
        category=BoxCategory.LARGE,
        length=17.5, width=12.365, height=3.0,
        max_weight=30.0, tare_weight=0.9,
        one_rate_eligible=True,
        packaging_type="FEDEX_LARGE_BOX",
        best_for=("catalogs", "booklets", "letterhead", "flyers"),
    ),
    Box(
        id="FEDEX_LARGE_BOX_L2",
        name="Large Box (L2)",
        display_name="FedEx Large Box",
        category=BoxCategory.LARGE,
        length=11.25, width=8.75, height=7.75,
        max_weight=30.0, tare_weight=0.85,
        one_rate_eligible=True,
        packaging_type="FEDEX_LARGE_BOX",
        best_for=("business-cards", "envelopes", "booklets"),
    ),
    Box(
        id="FEDEX_EXTRA_LARGE_BOX_X1",
        name="Extra Large Box (X1)",
        display_name="FedEx Extra Large Box",
        category=BoxCategory.XLARGE,
        length=11.875, width=11.0, height=10.75,
        max_weight=50.0, tare_weight=1.25,
        one_rate_eligible=True,
        packaging_type="FEDEX_EXTRA_LARGE_BOX",
        best_for=("catalogs", "booklets", "bulk-flyers"),
    ),
    Box(
        id="FEDEX_EXTRA_LARGE_BOX_X2",
        name="Extra Large Box (X2)",
        display_name="FedEx Extra Large Box",
        category=BoxCategory.XLARGE,
        length=15.75, width=14.125, height=6.0,
        max_weight=50.0, tare_weight=1.4,
        one_rate_eligible=True,
        packaging_type="FEDEX_EXTRA_LARGE_BOX",
        best_for=("catalogs", "bulk-flyers", "brochures"),
    ),
    Box(
        id="FEDEX_TUBE",
        name="Tube",
        display_name="FedEx Tube",
        category=BoxCategory.TUBE,
        length=38.0, width=6.0, height=6.0,
        max_weight=20.0, tare_weight=1.0,
        one_rate_eligible=True,
        packaging_type="FEDEX_TUBE",
        best_for=("posters", "banners", "blueprints", "maps"),
    ),
    Box(
        id="FEDEX_10KG_BOX",
        name="10kg Box",
        display_name="FedEx 10kg Box",
        category=BoxCategory.INTERNATIONAL,
        length=15.81, width=12.94, height=10.19,
        max_weight=22.0, tare_weight=1.9,
        one_rate_eligible=False,
        packaging_type="FEDEX_10KG_BOX",
        best_for=("international", "catalogs", "booklets"),
    ),
    Box(
        id="FEDEX_25KG_BOX",
        name="25kg Box",
        display_name="FedEx 25kg Box",
        category=BoxCategory.INTERNATIONAL,
        length=21.56, width=16.56, height=13.19,
        max_weight=55.0, tare_weight=3.5,
        one_rate_eligible=False,
        packaging_type="FEDEX_25KG_BOX",
        best_for=("international", "bulk-flyers", "catalogs"),
    ),
)


class BoxCatalog:
    """
    Read-only lookup over a fixed set of boxes.

    Built once and passed to the packing functions; never mutated.
    """

    def __init__(self, boxes: Iterable[Box]):
        self._boxes: Tuple[Box, ...] = tuple(boxes)
        self._by_id: Dict[str, Box] = {}
        for box in self._boxes:
            if box.id in self._by_id:
                raise ValueError(f"Duplicate box id in catalog: {box.id}")
            self._by_id[box.id] = box

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self):
        return iter(self._boxes)

    def __contains__(self, box_id: object) -> bool:
        return box_id in self._by_id

    def get_all(self) -> List[Box]:
        return list(self._boxes)

    def get_by_id(self, box_id: str) -> Optional[Box]:
        return self._by_id.get(box_id)

    def get_by_category(self, category: BoxCategory) -> List[Box]:
        category = BoxCategory(category)
        return [b for b in self._boxes if b.category == category]

    def recommend_for_product_type(self, product_type: str, weight: float) -> List[Box]:
        """
        Boxes tagged for a product type that can carry the given weight.

        Matching is a case-insensitive tag lookup. Results are ordered
        smallest volume first.
        """
        tag = product_type.strip().lower()
        if not tag:
            return []
        matches = [
            b for b in self._boxes
            if tag in (t.lower() for t in b.best_for) and b.max_weight >= weight
        ]
        return sorted(matches, key=lambda b: b.volume)


def default_box_catalog() -> BoxCatalog:
    """Build a catalog from the built-in FedEx box table."""
    return BoxCatalog(FEDEX_BOXES)

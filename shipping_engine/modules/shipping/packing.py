"""
Packing Selector

Rotation-invariant box fitting against a BoxCatalog, plus a multi-item
first-fit-decreasing packer.

Fit rule: an item fits a box when its dimensions sorted longest-first are
each <= the box's sorted dimensions, and item weight + box tare weight is
within the box's max weight. "No fit" is a normal outcome (None / unpacked
items), never an exception: forcing a fit would break carrier limits.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from shipping_engine.modules.shipping.boxes import (
    Box,
    BoxCatalog,
    BoxCategory,
    usable_volume,
)
from shipping_engine.models.shipment import Package

logger = logging.getLogger(__name__)

# Poster heuristic thresholds (inches)
POSTER_MIN_LENGTH = 24.0
POSTER_ASPECT_RATIO = 2.0

# Custom box fallback
CUSTOM_BOX_PADDING = 2.0
CUSTOM_BOX_MAX_WEIGHT = 150.0
CUSTOM_BOX_TARE_WEIGHT = 2.0

# Rough cost model used to compare packing outcomes
COST_PER_LB = 0.50
COST_PER_DIM_LB = 0.30
COST_BASE_PER_BOX = 5.00
DIM_WEIGHT_DIVISOR = 166


def _sorted_dims(length: float, width: float, height: float) -> Tuple[float, float, float]:
    return tuple(sorted((length, width, height), reverse=True))


def box_fits(box: Box, length: float, width: float, height: float, weight: float) -> bool:
    """True when the item fits the box in some rotation and within weight capacity."""
    if weight + box.tare_weight > box.max_weight:
        return False
    item_dims = _sorted_dims(length, width, height)
    return all(i <= b for i, b in zip(item_dims, box.sorted_dimensions))


def find_suitable_boxes(
    catalog: BoxCatalog,
    length: float,
    width: float,
    height: float,
    weight: float,
) -> List[Box]:
    """Every catalog box that can hold the item, in catalog order."""
    return [b for b in catalog if box_fits(b, length, width, height, weight)]


def find_smallest_box(
    catalog: BoxCatalog,
    length: float,
    width: float,
    height: float,
    weight: float,
) -> Optional[Box]:
    """
    Minimum-volume box that can hold the item.

    Returns None when nothing in the catalog fits; the caller falls back
    to custom packaging.
    """
    candidates = find_suitable_boxes(catalog, length, width, height, weight)
    if not candidates:
        return None
    return min(candidates, key=lambda b: b.volume)


def is_poster_like(length: float, width: float, height: float) -> bool:
    """
    Long, narrow parcels that ship better rolled in a tube.

    Heuristic only: longest side >= 24in and at least twice the next one.
    """
    longest, second, _ = _sorted_dims(length, width, height)
    return longest >= POSTER_MIN_LENGTH and longest >= POSTER_ASPECT_RATIO * second


# =============================================================================
# Multi-item packing
# =============================================================================

@dataclass
class PackItem:
    """An item to pack. Dimensions in inches, weight in pounds."""
    name: str
    length: float
    width: float
    height: float
    weight: float
    quantity: int = 1
    product_type: Optional[str] = None
    fragile: bool = False
    rollable: bool = False

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height


@dataclass
class PackedBox:
    """A box being filled. Mutated only while pack_items runs."""
    box: Box
    items: List[PackItem] = field(default_factory=list)
    total_weight: float = 0.0
    used_volume: float = 0.0
    remaining_weight: float = 0.0
    remaining_volume: float = 0.0

    @classmethod
    def open(cls, box: Box, item: PackItem) -> "PackedBox":
        return cls(
            box=box,
            items=[item],
            total_weight=box.tare_weight + item.weight,
            used_volume=item.volume,
            remaining_weight=box.max_weight - box.tare_weight - item.weight,
            remaining_volume=usable_volume(box) - item.volume,
        )

    def can_take(self, item: PackItem) -> bool:
        if self.remaining_weight < item.weight:
            return False
        if self.remaining_volume < item.volume:
            return False
        item_dims = _sorted_dims(item.length, item.width, item.height)
        return all(i <= b for i, b in zip(item_dims, self.box.sorted_dimensions))

    def add(self, item: PackItem) -> None:
        self.items.append(item)
        self.total_weight += item.weight
        self.remaining_weight -= item.weight
        self.used_volume += item.volume
        self.remaining_volume -= item.volume


@dataclass
class PackingOptions:
    allow_custom_boxes: bool = True
    prefer_fewer_boxes: bool = False
    prefer_tubes: bool = True  # route rollable poster-like items to the tube
    max_boxes: int = 50
    custom_box_dimensions: Optional[Tuple[float, float, float]] = None


@dataclass
class PackingResult:
    boxes: List[PackedBox] = field(default_factory=list)
    unpacked_items: List[PackItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    estimated_cost: float = 0.0

    @property
    def total_boxes(self) -> int:
        return len(self.boxes)

    @property
    def total_weight(self) -> float:
        return sum(b.total_weight for b in self.boxes)

    def to_packages(self, declared_value_per_box: float = 0.0) -> List[Package]:
        """Convert packed boxes into carrier-ready packages."""
        return [
            Package(
                weight=round(b.total_weight, 2),
                length=b.box.length,
                width=b.box.width,
                height=b.box.height,
                declared_value=Decimal(str(declared_value_per_box)),
                packaging_type=b.box.packaging_type,
            )
            for b in self.boxes
        ]


def create_custom_box(base_dimensions: Tuple[float, float, float], item: PackItem) -> Box:
    """Non-catalog box sized to at least the item plus padding on every side."""
    base = _sorted_dims(*base_dimensions)
    item_dims = _sorted_dims(item.length, item.width, item.height)
    length, width, height = (max(b, i + CUSTOM_BOX_PADDING) for b, i in zip(base, item_dims))
    return Box(
        id="CUSTOM_BOX",
        name="Custom Box",
        display_name="Custom Box",
        category=BoxCategory.CUSTOM,
        length=length,
        width=width,
        height=height,
        max_weight=CUSTOM_BOX_MAX_WEIGHT,
        tare_weight=CUSTOM_BOX_TARE_WEIGHT,
        one_rate_eligible=False,
        packaging_type="YOUR_PACKAGING",
        best_for=("oversized items",),
    )


def estimate_shipping_cost(boxes: Sequence[PackedBox]) -> float:
    """Relative cost estimate: billable weight (actual vs dimensional) plus a per-box base."""
    cost = 0.0
    for packed in boxes:
        weight_cost = packed.total_weight * COST_PER_LB
        dim_weight = packed.box.volume / DIM_WEIGHT_DIVISOR
        cost += max(weight_cost, dim_weight * COST_PER_DIM_LB) + COST_BASE_PER_BOX
    return round(cost, 2)


def _expand_by_quantity(items: Sequence[PackItem]) -> List[PackItem]:
    expanded = []
    for item in items:
        expanded.extend(replace(item, quantity=1) for _ in range(item.quantity))
    return expanded


def _find_tube(catalog: BoxCatalog, item: PackItem) -> Optional[Box]:
    # A rolled item only needs its longest side to fit the tube length
    longest = max(item.length, item.width, item.height)
    for tube in catalog.get_by_category(BoxCategory.TUBE):
        if longest <= tube.length and item.weight + tube.tare_weight <= tube.max_weight:
            return tube
    return None


def _consolidate(result: PackingResult) -> None:
    """Empty the least-full boxes into others when every item has a home."""
    boxes = sorted(result.boxes, key=lambda b: b.remaining_volume, reverse=True)

    for i in range(len(boxes) - 1, 0, -1):
        small = boxes[i]
        targets = boxes[:i]
        moves = []
        for item in small.items:
            target = next((t for t in targets if t.can_take(item)), None)
            if target is None:
                break
            target.add(item)
            moves.append((target, item))
        else:
            del boxes[i]
            continue

        # Roll back a partial move
        for target, item in moves:
            target.items.remove(item)
            target.total_weight -= item.weight
            target.remaining_weight += item.weight
            target.used_volume -= item.volume
            target.remaining_volume += item.volume

    result.boxes = boxes


def pack_items(
    items: Sequence[PackItem],
    catalog: BoxCatalog,
    options: Optional[PackingOptions] = None,
) -> PackingResult:
    """
    Pack items into catalog boxes using first-fit decreasing.

    Order of preference per item: tube (rollable posters), an already-open
    box, the smallest recommended box for the item's product type that
    fits, the smallest new box, a custom box.
    Items that fit none of these end up in `unpacked_items`.
    """
    options = options or PackingOptions()
    result = PackingResult()

    expanded = _expand_by_quantity(items)
    expanded.sort(key=lambda i: i.volume, reverse=True)

    for item in expanded:
        if item.weight <= 0:
            result.unpacked_items.append(item)
            result.warnings.append(f"Could not pack {item.name}: weight must be greater than zero")
            continue

        if options.prefer_tubes and item.rollable and is_poster_like(item.length, item.width, item.height):
            tube = _find_tube(catalog, item)
            if tube:
                result.boxes.append(PackedBox.open(tube, item))
                continue

        open_box = next((b for b in result.boxes if b.can_take(item)), None)
        if open_box:
            open_box.add(item)
            continue

        new_box = None
        if item.product_type:
            new_box = next(
                (
                    b for b in catalog.recommend_for_product_type(item.product_type, item.weight)
                    if box_fits(b, item.length, item.width, item.height, item.weight)
                ),
                None,
            )
        if new_box is None:
            new_box = find_smallest_box(catalog, item.length, item.width, item.height, item.weight)
        if new_box:
            result.boxes.append(PackedBox.open(new_box, item))
            continue

        if options.allow_custom_boxes and options.custom_box_dimensions:
            custom = create_custom_box(options.custom_box_dimensions, item)
            if box_fits(custom, item.length, item.width, item.height, item.weight):
                result.boxes.append(PackedBox.open(custom, item))
                result.warnings.append(
                    f"Using custom box for {item.name} ({item.length}x{item.width}x{item.height})"
                )
                continue

        result.unpacked_items.append(item)
        result.warnings.append(
            f"Could not pack {item.name}: dimensions {item.length}x{item.width}x{item.height}, "
            f"weight {item.weight} lbs"
        )

    if options.prefer_fewer_boxes and len(result.boxes) > 1:
        _consolidate(result)

    if result.total_boxes > options.max_boxes:
        result.warnings.append(
            f"Exceeded maximum boxes ({options.max_boxes}). Consider freight shipping."
        )

    result.estimated_cost = estimate_shipping_cost(result.boxes)

    if result.unpacked_items:
        logger.warning(f"Packing left {len(result.unpacked_items)} item(s) unpacked")

    return result

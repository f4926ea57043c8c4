"""Weight and price calculations used for display and booking."""

import math
from collections.abc import Mapping

from src.domain.shipment import Dimensions, WeightBreakdown

VOLUMETRIC_DIVISOR = 5000

# Internal estimate only; the courier's own charge is outside our control.
BASE_RATE = 50
PER_KG_RATE = 30


def _parse_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def compute_weights(
    dimensions: Dimensions | Mapping[str, object], actual_weight: object
) -> WeightBreakdown:
    """Return volumetric, actual and billable weight in kg.

    ``dimensions`` may be a ``Dimensions`` model or a raw mapping with
    ``length`` / ``width`` / ``height`` (as typed into a form). Any dimension
    that is missing or not numeric makes the volumetric weight 0.
    """
    if isinstance(dimensions, Dimensions):
        raw = (dimensions.length, dimensions.width, dimensions.height)
    else:
        raw = (dimensions.get("length"), dimensions.get("width"), dimensions.get("height"))

    sides = [_parse_number(v) for v in raw]
    if any(s is None for s in sides):
        volumetric = 0.0
    else:
        length, width, height = sides
        volumetric = round((length * width * height) / VOLUMETRIC_DIVISOR, 2)

    actual = _parse_number(actual_weight) or 0.0
    return WeightBreakdown(
        volumetric=volumetric, actual=actual, billable=max(volumetric, actual)
    )


def compute_price(weight: float) -> int:
    """Estimated price in INR: base rate plus a per-kg rate, rounded half up."""
    return math.floor(BASE_RATE + weight * PER_KG_RATE + 0.5)

"""Validation helpers used by the search clients.

Malformed input is adjusted rather than rejected: a user-drawn box that strays
outside the globe still produces a valid query.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from ..geometry import normalize_bbox

logger = logging.getLogger(__name__)

# Planetary Computer rejects page sizes above this
MAX_SEARCH_LIMIT = 1000

WORLD_BBOX = (-180.0, -90.0, 180.0, 90.0)

# (default, min, max) for west, south, east, north
_BBOX_BOUNDS = (
    (-180.0, -180.0, 180.0),
    (-90.0, -90.0, 90.0),
    (180.0, -180.0, 180.0),
    (90.0, -90.0, 90.0),
)


def _safe_value(value: object, default: float, lo: float, hi: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(lo, min(hi, number))


def clamp_bbox(bbox: Sequence[float]) -> List[float]:
    """Clamp a ``[west, south, east, north]`` box to valid geographic ranges.

    A 6-element box with elevation is first reduced to its horizontal extent.
    Non-finite components take the world-extent default for their slot, every
    component is clamped to its axis range and reversed pairs are reordered.

    Raises:
        ValueError: If *bbox* has neither four nor six components.
    """
    box = normalize_bbox(bbox)
    west, south, east, north = (
        _safe_value(value, *bounds) for value, bounds in zip(box, _BBOX_BOUNDS)
    )
    if west > east:
        west, east = east, west
    if south > north:
        south, north = north, south

    clamped = [west, south, east, north]
    if clamped != box:
        logger.debug("Adjusted bbox %s to %s", list(bbox), clamped)
    return clamped


def cap_limit(limit: Optional[int], maximum: int = MAX_SEARCH_LIMIT) -> Optional[int]:
    """Cap a page size at *maximum*; ``None`` is passed through."""
    if limit is None:
        return None
    if limit > maximum:
        logger.debug("Capping limit %s to %s", limit, maximum)
        return maximum
    return limit

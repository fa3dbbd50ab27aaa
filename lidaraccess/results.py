"""Unified search results.

STAC items and spatial index features describe the same kind of thing in
different shapes. The converters here map both onto :class:`UnifiedItem`,
which keeps a typed reference to the original so URL resolution can be routed
back to the client that produced it.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from .geometry import bbox_from_geometry, normalize_bbox

__all__ = [
    "StacSource",
    "SpatialIndexSource",
    "ItemSource",
    "UnifiedItem",
    "SearchResults",
    "stac_to_unified",
    "spatial_index_to_unified",
    "format_point_count",
    "short_name",
    "item_metadata",
    "POINT_COUNT_PROPERTIES",
    "ID_PREFIXES",
]

# Candidate point count properties, in priority order
POINT_COUNT_PROPERTIES: Tuple[str, ...] = (
    "pc:count",
    "pointcloud:count",
)

# Prefixes stripped from STAC item ids for display
ID_PREFIXES: Tuple[str, ...] = (
    "USGS_LPC_",
    "3DEP_",
)

SOURCE_LABELS = {
    "stac": "COPC",
    "spatial-index": "EPT",
}


@dataclass(frozen=True)
class StacSource:
    """Back-reference to the STAC item a result came from."""

    item: Dict[str, Any]
    source_type: ClassVar[str] = "stac"


@dataclass(frozen=True)
class SpatialIndexSource:
    """Back-reference to the spatial index feature a result came from."""

    feature: Dict[str, Any]
    source_type: ClassVar[str] = "spatial-index"


ItemSource = Union[StacSource, SpatialIndexSource]


@dataclass(frozen=True)
class UnifiedItem:
    """A search result independent of the catalog it came from.

    Attributes:
        id: Item identifier
        geometry: GeoJSON footprint
        bbox: ``[west, south, east, north]``
        properties: ``name``, ``point_count``, ``datetime`` and, for spatial
            index results, ``url``
        source: The original item, tagged with the catalog it belongs to
    """

    id: str
    geometry: Optional[Dict[str, Any]]
    bbox: List[float]
    properties: Dict[str, Any]
    source: ItemSource = field(repr=False)

    @property
    def source_type(self) -> str:
        return self.source.source_type

    @property
    def original_item(self) -> Dict[str, Any]:
        if isinstance(self.source, StacSource):
            return self.source.item
        return self.source.feature

    @property
    def name(self) -> str:
        return self.properties["name"]

    @property
    def point_count(self) -> Optional[int]:
        return self.properties.get("point_count")

    def to_feature(self) -> Dict[str, Any]:
        """Return the item as a GeoJSON Feature, e.g. for drawing footprints."""
        return {
            "type": "Feature",
            "id": self.id,
            "geometry": self.geometry,
            "bbox": list(self.bbox),
            "properties": {**self.properties, "sourceType": self.source_type},
        }


@dataclass(frozen=True)
class SearchResults:
    """Unified items plus the total the source reported as matching."""

    items: List[UnifiedItem]
    total_matched: int

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def to_feature_collection(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [item.to_feature() for item in self.items],
            "numberMatched": self.total_matched,
        }


def _first_present(properties: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = properties.get(key)
        if value is not None:
            return value
    return None


def _display_name(item_id: str) -> str:
    name = item_id
    for prefix in ID_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
    return name


def stac_to_unified(item: Dict[str, Any]) -> UnifiedItem:
    """Convert a STAC item to a :class:`UnifiedItem`.

    Example:
        >>> unified = stac_to_unified(item)
        >>> unified.original_item is item
        True
    """
    props = item.get("properties") or {}
    bbox = item.get("bbox")
    if bbox:
        bbox = normalize_bbox(bbox)
    else:
        bbox = bbox_from_geometry(item.get("geometry") or {})

    item_id = item.get("id", "")
    return UnifiedItem(
        id=item_id,
        geometry=item.get("geometry"),
        bbox=bbox,
        properties={
            "name": _display_name(item_id),
            "point_count": _first_present(props, POINT_COUNT_PROPERTIES),
            "datetime": props.get("datetime"),
        },
        source=StacSource(item),
    )


def spatial_index_to_unified(feature: Dict[str, Any]) -> UnifiedItem:
    """Convert a spatial index feature to a :class:`UnifiedItem`.

    The index has no separate identifier or acquisition time, so the name
    doubles as id and ``datetime`` is always ``None``.
    """
    props = feature.get("properties") or {}
    bbox = feature.get("bbox")
    if bbox:
        bbox = normalize_bbox(bbox)
    else:
        bbox = bbox_from_geometry(feature.get("geometry") or {})

    name = props.get("name", "")
    return UnifiedItem(
        id=name,
        geometry=feature.get("geometry"),
        bbox=bbox,
        properties={
            "name": name,
            "point_count": props.get("count"),
            "url": props.get("url"),
            "datetime": None,
        },
        source=SpatialIndexSource(feature),
    )


def format_point_count(count: Optional[int]) -> str:
    """Format a point count like ``"11.4M pts"``, ``"500K pts"`` or ``"42 pts"``."""
    if count is None:
        return ""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M pts"
    if count >= 1_000:
        return f"{count / 1_000:.0f}K pts"
    return f"{count} pts"


def short_name(item: UnifiedItem, max_length: int = 30) -> str:
    """Return the display name of *item*, truncated with ``...`` if needed."""
    name = item.name
    if len(name) > max_length:
        return name[: max_length - 3] + "..."
    return name


def item_metadata(item: UnifiedItem) -> str:
    """Summarize point count, acquisition year and source, bullet separated."""
    parts = []
    if item.point_count:
        parts.append(format_point_count(item.point_count))

    year = _year(item.properties.get("datetime"))
    if year is not None:
        parts.append(str(year))

    parts.append(SOURCE_LABELS[item.source_type])
    return " • ".join(parts)


def _year(value: Any) -> Optional[int]:
    if not value:
        return None
    try:
        return dt.datetime.fromisoformat(str(value).replace("Z", "+00:00")).year
    except ValueError:
        return None

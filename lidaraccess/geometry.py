"""Geometry handling for lidaraccess.

Bounding-box arithmetic over GeoJSON geometries, plus loading of search
geometries from GeoJSON dicts, WKT strings and shapely objects.
"""

import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from shapely import wkt as shapely_wkt
from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.ops import unary_union

logger = logging.getLogger(__name__)

__all__ = [
    "bbox_from_geometry",
    "bboxes_intersect",
    "is_finite_bbox",
    "normalize_bbox",
    "load_geometry",
]

# GeoJSON mapping, WKT text, path to a GeoJSON file, or any object with
# ``__geo_interface__``
SearchGeometry = Union[Mapping[str, Any], str, Path, Any]

_WKT_KEYWORD = re.compile(
    r"\s*(MULTI)?(POINT|LINESTRING|POLYGON)\b|\s*GEOMETRYCOLLECTION\b",
    re.IGNORECASE,
)


def bbox_from_geometry(geometry: Dict[str, Any]) -> List[float]:
    """Compute ``[minX, minY, maxX, maxY]`` for a GeoJSON geometry.

    Coordinate arrays are walked to any depth, so points, rings, polygons and
    multipolygons all work. A geometry with no coordinates returns
    ``[inf, inf, -inf, -inf]``; check the result with :func:`is_finite_bbox`
    when the input may be empty.

    Example:
        >>> bbox_from_geometry({"type": "Point", "coordinates": [1, 2]})
        [1.0, 2.0, 1.0, 2.0]
    """
    bounds = [math.inf, math.inf, -math.inf, -math.inf]

    def visit(coords: Any) -> None:
        if not isinstance(coords, (list, tuple)) or not coords:
            return
        if isinstance(coords[0], (int, float)):
            if len(coords) < 2:
                return
            x, y = float(coords[0]), float(coords[1])
            bounds[0] = min(bounds[0], x)
            bounds[1] = min(bounds[1], y)
            bounds[2] = max(bounds[2], x)
            bounds[3] = max(bounds[3], y)
            return
        for child in coords:
            visit(child)

    def visit_geometry(geom: Any) -> None:
        if not isinstance(geom, dict):
            return
        if geom.get("type") == "GeometryCollection":
            for member in geom.get("geometries") or []:
                visit_geometry(member)
            return
        visit(geom.get("coordinates"))

    visit_geometry(geometry)
    return bounds


def is_finite_bbox(bbox: Sequence[float]) -> bool:
    """Return True if every component of *bbox* is a finite number."""
    return len(bbox) >= 4 and all(math.isfinite(v) for v in bbox)


def bboxes_intersect(a: Sequence[float], b: Sequence[float]) -> bool:
    """Separating-axis test for two ``[west, south, east, north]`` boxes.

    Touching edges count as intersecting.
    """
    a_west, a_south, a_east, a_north = a[:4]
    b_west, b_south, b_east, b_north = b[:4]
    return not (
        a_east < b_west or a_west > b_east or a_north < b_south or a_south > b_north
    )


def normalize_bbox(bbox: Sequence[float]) -> List[float]:
    """Reduce a 6-element bbox (with elevation) to ``[west, south, east, north]``."""
    if len(bbox) == 6:
        return [bbox[0], bbox[1], bbox[3], bbox[4]]
    if len(bbox) == 4:
        return list(bbox)
    raise ValueError(f"bbox must have 4 or 6 components, got {len(bbox)}")


def load_geometry(geometry: SearchGeometry) -> Dict[str, Any]:
    """Load a search geometry and return it as a GeoJSON geometry dict.

    Features resolve to their geometry; a FeatureCollection with several
    features is unioned into one geometry. Strings are parsed as WKT when they
    start with a WKT keyword and are otherwise read as a GeoJSON file path.

    Raises:
        ValueError: If the input cannot be converted.

    Examples:
        >>> load_geometry("POINT (-122 44)")
        {'type': 'Point', 'coordinates': (-122.0, 44.0)}

        >>> from shapely.geometry import box
        >>> load_geometry(box(-123, 44, -122, 45))["type"]
        'Polygon'
    """
    if isinstance(geometry, Mapping):
        result = _from_geojson(geometry)
    elif isinstance(geometry, (str, Path)):
        result = _from_text(geometry)
    elif hasattr(geometry, "__geo_interface__"):
        result = dict(geometry.__geo_interface__)
    else:
        raise ValueError(f"Cannot convert {type(geometry).__name__} to a geometry")

    if not isinstance(result, dict) or "type" not in result:
        raise ValueError(f"Not a GeoJSON geometry: {result!r}")
    return result


def _from_geojson(obj: Any) -> Any:
    if not isinstance(obj, Mapping):
        raise ValueError(f"Not a GeoJSON object: {obj!r}")

    kind = obj.get("type")
    if kind == "Feature":
        return obj.get("geometry")
    if kind != "FeatureCollection":
        return obj if isinstance(obj, dict) else dict(obj)

    geometries = [f.get("geometry") for f in obj.get("features") or []]
    geometries = [g for g in geometries if g]
    if not geometries:
        raise ValueError("FeatureCollection has no features with a geometry")
    if len(geometries) == 1:
        return geometries[0]
    logger.debug("Unioning %d features into one search geometry", len(geometries))
    return dict(unary_union([shape(g) for g in geometries]).__geo_interface__)


def _from_text(value: Union[str, Path]) -> Any:
    if isinstance(value, str) and _WKT_KEYWORD.match(value):
        try:
            return dict(shapely_wkt.loads(value).__geo_interface__)
        except ShapelyError as exc:
            raise ValueError(f"Invalid WKT: {value}") from exc

    path = Path(value)
    if not path.is_file():
        raise ValueError(f"File not found or invalid WKT: {value}")
    with open(path) as f:
        return _from_geojson(json.load(f))

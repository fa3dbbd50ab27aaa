"""TopoJSON to GeoJSON conversion.

TopoJSON stores shared boundaries once as arcs; geometries reference arcs by
index, with ``~i`` (``-i - 1``) meaning arc ``i`` walked backwards. Quantized
topologies carry a ``transform`` and delta-encode arc positions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

Position = List[float]

__all__ = ["to_features", "single_object_name"]


def single_object_name(topology: Mapping[str, Any]) -> str:
    """Return the name of the first object of *topology*.

    Raises:
        ValueError: If the document is not a topology or holds no objects.
    """
    if topology.get("type") != "Topology":
        raise ValueError(f"Expected a Topology, got {topology.get('type')!r}")
    objects = topology.get("objects") or {}
    if not objects:
        raise ValueError("Topology has no objects")
    return next(iter(objects))


def to_features(
    topology: Mapping[str, Any], name: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Convert the object *name* of *topology* to a list of GeoJSON features.

    A ``GeometryCollection`` object yields one feature per member; any other
    object yields a single feature. *name* defaults to the first object.
    """
    name = name or single_object_name(topology)
    obj = topology["objects"][name]
    decoder = _Decoder(topology)
    if obj.get("type") == "GeometryCollection":
        return [decoder.feature(child) for child in obj.get("geometries") or []]
    return [decoder.feature(obj)]


class _Decoder:
    def __init__(self, topology: Mapping[str, Any]) -> None:
        transform = topology.get("transform")
        if transform:
            self._scale: Optional[Sequence[float]] = transform["scale"]
            self._translate: Sequence[float] = transform["translate"]
        else:
            self._scale = None
            self._translate = (0.0, 0.0)
        self._arcs = [self._decode_arc(arc) for arc in topology.get("arcs") or []]

    def _decode_arc(self, arc: Sequence[Sequence[float]]) -> List[Position]:
        if self._scale is None:
            return [[float(v) for v in p] for p in arc]
        kx, ky = self._scale
        dx, dy = self._translate
        x = y = 0.0
        decoded = []
        for p in arc:
            x += p[0]
            y += p[1]
            decoded.append([x * kx + dx, y * ky + dy, *p[2:]])
        return decoded

    def _point(self, p: Sequence[float]) -> Position:
        if self._scale is None:
            return [float(v) for v in p]
        kx, ky = self._scale
        dx, dy = self._translate
        return [p[0] * kx + dx, p[1] * ky + dy, *p[2:]]

    def _line(self, arc_indexes: Sequence[int]) -> List[Position]:
        points: List[Position] = []
        for i in arc_indexes:
            arc = self._arcs[~i if i < 0 else i]
            if i < 0:
                arc = arc[::-1]
            if points:
                # consecutive arcs share their joining position
                points.pop()
            points.extend(list(p) for p in arc)
        if len(points) < 2 and points:
            points.append(list(points[0]))
        return points

    def _ring(self, arc_indexes: Sequence[int]) -> List[Position]:
        points = self._line(arc_indexes)
        while points and len(points) < 4:
            points.append(list(points[0]))
        return points

    def _polygon(self, rings: Sequence[Sequence[int]]) -> List[List[Position]]:
        return [self._ring(r) for r in rings]

    def geometry(self, obj: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        kind = obj.get("type")
        if kind == "GeometryCollection":
            return {
                "type": kind,
                "geometries": [
                    g
                    for g in (self.geometry(o) for o in obj.get("geometries") or [])
                    if g is not None
                ],
            }
        if kind == "Point":
            coordinates: Any = self._point(obj["coordinates"])
        elif kind == "MultiPoint":
            coordinates = [self._point(p) for p in obj["coordinates"]]
        elif kind == "LineString":
            coordinates = self._line(obj["arcs"])
        elif kind == "MultiLineString":
            coordinates = [self._line(a) for a in obj["arcs"]]
        elif kind == "Polygon":
            coordinates = self._polygon(obj["arcs"])
        elif kind == "MultiPolygon":
            coordinates = [self._polygon(p) for p in obj["arcs"]]
        else:
            return None
        return {"type": kind, "coordinates": coordinates}

    def feature(self, obj: Mapping[str, Any]) -> Dict[str, Any]:
        feature: Dict[str, Any] = {
            "type": "Feature",
            "properties": dict(obj.get("properties") or {}),
            "geometry": self.geometry(obj),
        }
        if "id" in obj:
            feature["id"] = obj["id"]
        if "bbox" in obj:
            feature["bbox"] = list(obj["bbox"])
        return feature

"""Spatial index search over USGS 3DEP LiDAR EPT resources.

The whole index is one static TopoJSON file of dataset boundaries. It is
downloaded once, converted to features with precomputed bounding boxes, kept
in memory and persisted in an :class:`~lidaraccess.cache.ExpiringCache` so
later sessions skip the download until the cache window closes.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .._core._request import RequestConfig, request
from .._core._validators import clamp_bbox
from ..cache import ExpiringCache
from ..config import DEFAULT_CACHE_TTL_MS, DEFAULT_EPT_BOUNDARY_URL
from ..exceptions import BoundaryLoadError
from ..geometry import (
    bbox_from_geometry,
    bboxes_intersect,
    is_finite_bbox,
    normalize_bbox,
)
from .topology import single_object_name, to_features

logger = logging.getLogger(__name__)

__all__ = ["SpatialIndexClient", "SpatialIndexResponse", "CACHE_KEY"]

CACHE_KEY = "usgs-lidar-ept-boundaries"


@dataclass(frozen=True)
class SpatialIndexResponse:
    """Matches of a spatial index search.

    Attributes:
        features: Matching features, largest point count first, truncated to
            the requested limit
        number_matched: Number of matches before truncation
    """

    features: List[Dict[str, Any]]
    number_matched: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": self.features,
            "numberMatched": self.number_matched,
        }


def _point_count(feature: Mapping[str, Any]) -> int:
    return (feature.get("properties") or {}).get("count") or 0


def _is_feature_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(f, dict) for f in value)


class SpatialIndexClient:
    """Search EPT resources by extent using the hobuinc/usgs-lidar boundaries.

    Concurrent searches issued before the index is resident share a single
    download: the first caller performs the load and the others wait on its
    future.

    Example:
        >>> client = SpatialIndexClient()
        >>> response = client.search_by_extent([-123.1, 44.0, -123.0, 44.1], 25)
        >>> client.get_resource_url(response.features[0])
    """

    def __init__(
        self,
        boundary_url: str = DEFAULT_EPT_BOUNDARY_URL,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        *,
        cache: Optional[ExpiringCache] = None,
        cache_key: str = CACHE_KEY,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the spatial index client.

        Parameters:
            boundary_url: URL of the TopoJSON boundaries file
            cache_ttl_ms: How long a downloaded index stays valid
            cache: Persistent cache; defaults to one under ``~/.cache/lidaraccess``
            cache_key: Key the index is persisted under
            session: HTTP session to reuse
            timeout: Download timeout in seconds; none by default
        """
        self._boundary_url = boundary_url
        self._cache_ttl_ms = cache_ttl_ms
        self._cache = cache if cache is not None else ExpiringCache()
        self._cache_key = cache_key
        self._session = session or requests.Session()
        self._timeout = timeout

        self._features: Optional[List[Dict[str, Any]]] = None
        self._load_future: Optional[Future] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def boundary_url(self) -> str:
        return self._boundary_url

    @property
    def is_loaded(self) -> bool:
        return self._features is not None

    def search_by_extent(
        self, bbox: Sequence[float], limit: int = 50
    ) -> SpatialIndexResponse:
        """Find resources whose bounds intersect *bbox*.

        Raises:
            BoundaryLoadError: If the index is not resident and cannot be loaded.
        """
        features = self._ensure_loaded()
        query = clamp_bbox(bbox)

        matching = [
            f for f in features if f.get("bbox") and bboxes_intersect(f["bbox"], query)
        ]
        ranked = sorted(matching, key=_point_count, reverse=True)
        logger.debug(
            "%d of %d EPT resources intersect %s", len(matching), len(features), query
        )
        return SpatialIndexResponse(
            features=ranked[: max(limit, 0)], number_matched=len(matching)
        )

    def get_resource_url(self, feature: Mapping[str, Any]) -> str:
        """Return the EPT URL of *feature*; these URLs need no signing."""
        return (feature.get("properties") or {}).get("url", "")

    def get_all_features(self) -> List[Dict[str, Any]]:
        """Return every resource in the index."""
        return list(self._ensure_loaded())

    def get_count(self) -> int:
        """Return the number of resources in the index."""
        return len(self._ensure_loaded())

    def clear_cache(self) -> None:
        """Forget the index, in memory and on disk.

        A load already in flight finishes for its waiting callers but its
        result is neither kept nor written back to the cache.
        """
        with self._lock:
            self._generation += 1
            self._features = None
            self._load_future = None
            self._cache.clear(self._cache_key)

    def _ensure_loaded(self) -> List[Dict[str, Any]]:
        """Return the resident index, loading it at most once at a time."""
        with self._lock:
            if self._features is not None:
                return self._features
            future = self._load_future
            owner = future is None
            if future is None:
                future = self._load_future = Future()
            generation = self._generation

        if not owner:
            return future.result()

        try:
            features, fetched = self._load_boundaries()
        except BaseException as exc:
            with self._lock:
                if self._load_future is future:
                    self._load_future = None
            future.set_exception(exc)
            raise

        with self._lock:
            if self._generation == generation:
                self._features = features
                if fetched:
                    self._cache.put(self._cache_key, features, self._cache_ttl_ms)
            else:
                logger.debug("EPT cache cleared during load; discarding result")
            if self._load_future is future:
                self._load_future = None
        future.set_result(features)
        return features

    def _load_boundaries(self) -> Tuple[List[Dict[str, Any]], bool]:
        """Return the index and whether it came from the network."""
        cached = self._cache.get(self._cache_key)
        if cached is not None:
            if _is_feature_list(cached):
                logger.debug("Loaded %d EPT resources from cache", len(cached))
                return cached, False
            logger.warning(
                "Ignoring malformed EPT cache entry %r; fetching boundaries again",
                self._cache_key,
            )
            self._cache.clear(self._cache_key)

        try:
            topology = self._fetch_topology()
        except requests.RequestException as exc:
            raise BoundaryLoadError(f"Failed to fetch EPT boundaries: {exc}") from exc

        try:
            name = single_object_name(topology)
            features = [self._to_index_feature(f) for f in to_features(topology, name)]
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
            raise BoundaryLoadError(f"Failed to parse EPT boundaries: {exc}") from exc

        logger.info(
            "Fetched %d EPT resources from %s", len(features), self._boundary_url
        )
        return features, True

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(requests.ConnectionError),
    )
    def _fetch_topology(self) -> Dict[str, Any]:
        resp = request(
            RequestConfig(url=self._boundary_url, timeout=self._timeout), self._session
        )
        if not resp.ok:
            raise BoundaryLoadError(
                f"Failed to fetch EPT boundaries: {resp.status_code} {resp.reason}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise BoundaryLoadError(
                f"EPT boundaries are not valid JSON: {exc}"
            ) from exc

    @staticmethod
    def _to_index_feature(feature: Mapping[str, Any]) -> Dict[str, Any]:
        props = feature.get("properties") or {}
        geometry = feature.get("geometry")

        bbox: Optional[List[float]] = None
        source_bbox = feature.get("bbox") or props.get("bbox")
        if source_bbox:
            bbox = normalize_bbox(source_bbox)
        elif geometry:
            derived = bbox_from_geometry(geometry)
            bbox = derived if is_finite_bbox(derived) else None

        return {
            "type": "Feature",
            "properties": {
                "name": props.get("name") or "Unknown",
                "count": props.get("count") or 0,
                "url": props.get("url") or "",
            },
            "geometry": geometry,
            "bbox": bbox,
        }

"""One search interface over both LiDAR catalogs.

``LidarDiscovery`` dispatches an extent search to the STAC catalog or to the
EPT spatial index, converts the hits to :class:`~lidaraccess.results.UnifiedItem`
and later resolves an item's access URL through the client it came from.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .cache import ExpiringCache, FileSystemStorage
from .config import Settings
from .download import download_files
from .ept import SpatialIndexClient
from .exceptions import NoAssetError
from .results import (
    SearchResults,
    SpatialIndexSource,
    StacSource,
    UnifiedItem,
    spatial_index_to_unified,
    stac_to_unified,
)
from .stac import CatalogClient, matched_count

logger = logging.getLogger(__name__)

__all__ = ["LidarDiscovery", "SOURCES"]

SOURCES = ("stac", "spatial-index")


class LidarDiscovery:
    """Search STAC (COPC) and spatial index (EPT) LiDAR sources by extent.

    Example:
        >>> discovery = LidarDiscovery()
        >>> results = discovery.search_by_extent([-123.1, 44.0, -123.0, 44.1])
        >>> results.total_matched
        12
        >>> discovery.get_asset_url(results[0])
        'https://...copc.laz?st=...'
    """

    def __init__(
        self,
        catalog: Optional[CatalogClient] = None,
        spatial_index: Optional[SpatialIndexClient] = None,
        max_results: int = 50,
    ) -> None:
        self.catalog = catalog or CatalogClient()
        self.spatial_index = spatial_index or SpatialIndexClient()
        self.max_results = max_results

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LidarDiscovery":
        """Build both clients from *settings* (``Settings.from_env()`` by default)."""
        settings = settings or Settings.from_env()
        cache = ExpiringCache(FileSystemStorage(settings.cache_dir))
        return cls(
            catalog=CatalogClient(
                settings.stac_url,
                settings.sas_url,
                settings.collection,
                timeout=settings.timeout,
            ),
            spatial_index=SpatialIndexClient(
                settings.boundary_url,
                settings.cache_ttl_ms,
                cache=cache,
                timeout=settings.timeout,
            ),
            max_results=settings.max_results,
        )

    def search_by_extent(
        self,
        bbox: Sequence[float],
        source: str = "stac",
        limit: Optional[int] = None,
    ) -> SearchResults:
        """Search *source* for datasets intersecting *bbox*.

        Parameters:
            bbox: Bounding box [west, south, east, north]
            source: ``"stac"`` or ``"spatial-index"``
            limit: Maximum items returned; defaults to ``max_results``

        Raises:
            ValueError: If *source* is unknown.
            CatalogError: If the STAC search fails.
            BoundaryLoadError: If the spatial index cannot be loaded.
        """
        limit = self.max_results if limit is None else limit
        _check_source(source)

        if source == "stac":
            response = self.catalog.search_by_extent(bbox, limit)
            items = [stac_to_unified(f) for f in response.get("features") or []]
            total = matched_count(response)
        else:
            index_response = self.spatial_index.search_by_extent(bbox, limit)
            items = [spatial_index_to_unified(f) for f in index_response.features]
            total = index_response.number_matched

        logger.debug("%s search returned %d items", source, len(items))
        return SearchResults(
            items=items, total_matched=total if total is not None else len(items)
        )

    def get_count(self, bbox: Sequence[float], source: str = "stac") -> int:
        """Return how many datasets of *source* intersect *bbox*."""
        _check_source(source)
        if source == "stac":
            return self.catalog.get_count(bbox=bbox)
        return self.spatial_index.search_by_extent(bbox, 0).number_matched

    def get_asset_url(self, item: UnifiedItem) -> str:
        """Resolve the point cloud URL of *item*, signing STAC assets.

        Raises:
            NoAssetError: If a STAC item has no data asset.
        """
        source = item.source
        if isinstance(source, StacSource):
            return self.catalog.get_asset_url(source.item)
        if isinstance(source, SpatialIndexSource):
            return self.spatial_index.get_resource_url(source.feature)
        raise TypeError(f"Unsupported item source: {type(source).__name__}")

    def get_asset_urls(self, items: Iterable[UnifiedItem]) -> List[str]:
        """Resolve the URLs of several *items*.

        Items without a data asset are logged and skipped, so the result can
        be shorter than *items*.
        """
        return [url for _, url in self._resolve_urls(items)]

    def download(
        self,
        items: Iterable[UnifiedItem],
        local_path: Union[str, Path],
        *,
        max_workers: Optional[int] = None,
    ) -> List[Path]:
        """Download the COPC files of STAC *items* into *local_path*.

        Each file is saved as ``<item id>.copc.laz``; files already present
        are not fetched again. Spatial index items are skipped because an EPT
        resource is a tree of tiles rather than a single file.

        Returns:
            Paths of the downloaded files.

        Raises:
            requests.HTTPError: If a file cannot be downloaded.
        """
        stac_items = []
        for item in items:
            if isinstance(item.source, StacSource):
                stac_items.append(item)
            else:
                logger.warning(
                    "Skipping %s: only STAC COPC items can be downloaded", item.id
                )

        downloads = [
            (url, f"{item.id}.copc.laz")
            for item, url in self._resolve_urls(stac_items)
        ]
        logger.info("Downloading %d files to %s", len(downloads), local_path)
        return download_files(
            downloads,
            local_path,
            self.catalog.session,
            max_workers=max_workers,
            timeout=self.catalog.timeout,
        )

    def _resolve_urls(
        self, items: Iterable[UnifiedItem]
    ) -> List[Tuple[UnifiedItem, str]]:
        resolved = []
        for item in items:
            try:
                url = self.get_asset_url(item)
            except NoAssetError as exc:
                logger.warning("Skipping %s: %s", item.id, exc)
                continue
            if not url:
                logger.warning("Skipping %s: no URL", item.id)
                continue
            resolved.append((item, url))
        return resolved

    def clear_cache(self) -> None:
        """Drop the cached spatial index so the next search re-downloads it."""
        self.spatial_index.clear_cache()


def _check_source(source: str) -> None:
    if source not in SOURCES:
        raise ValueError(f"Unknown source {source!r}, expected one of {SOURCES}")

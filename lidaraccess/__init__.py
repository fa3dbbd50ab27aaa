"""lidaraccess: discover and access USGS 3DEP aerial LiDAR point clouds.

lidaraccess searches two catalogs of LiDAR datasets and returns their hits in
one shape:

- the Microsoft Planetary Computer STAC API, whose COPC files are signed with
  short-lived SAS tokens;
- the hobuinc/usgs-lidar EPT boundary index, a static TopoJSON file cached
  locally for a few days.

Quick Start:
    ```python
    import lidaraccess

    discovery = lidaraccess.LidarDiscovery()

    # Search COPC datasets from the STAC catalog
    copc = discovery.search_by_extent([-123.1, 44.0, -123.0, 44.1], limit=25)
    print(copc.total_matched)

    # Download them as <item id>.copc.laz
    paths = discovery.download(copc, "./lidar")

    # Or EPT resources from the spatial index
    results = discovery.search_by_extent(
        [-123.1, 44.0, -123.0, 44.1], source="spatial-index"
    )

    # Resolve a streamable URL
    url = discovery.get_asset_url(results[0])
    ```

Main Classes:
    - `LidarDiscovery`: unified search across both sources
    - `CatalogClient`: STAC search, paging, counts and URL signing
    - `SpatialIndexClient`: cached EPT boundary index search
    - `ExpiringCache`: TTL cache over a pluggable key-value storage
"""

import logging
from importlib.metadata import version

from .cache import ExpiringCache, FileSystemStorage, MemoryStorage, Storage
from .config import Settings
from .discovery import SOURCES, LidarDiscovery
from .download import download_file, download_files
from .ept import SpatialIndexClient, SpatialIndexResponse
from .exceptions import (
    BoundaryLoadError,
    CatalogError,
    LidarAccessError,
    NoAssetError,
    SigningError,
    StorageError,
)
from .geometry import bbox_from_geometry, bboxes_intersect, load_geometry
from .results import (
    SearchResults,
    SpatialIndexSource,
    StacSource,
    UnifiedItem,
    spatial_index_to_unified,
    stac_to_unified,
)
from .stac import CatalogClient

logger = logging.getLogger(__name__)

__all__ = [
    # discovery.py
    "LidarDiscovery",
    "SOURCES",
    # download.py
    "download_file",
    "download_files",
    # stac
    "CatalogClient",
    # ept
    "SpatialIndexClient",
    "SpatialIndexResponse",
    # results.py
    "UnifiedItem",
    "SearchResults",
    "StacSource",
    "SpatialIndexSource",
    "stac_to_unified",
    "spatial_index_to_unified",
    # cache.py
    "ExpiringCache",
    "Storage",
    "MemoryStorage",
    "FileSystemStorage",
    # geometry.py
    "bbox_from_geometry",
    "bboxes_intersect",
    "load_geometry",
    # config.py
    "Settings",
    # exceptions.py
    "LidarAccessError",
    "CatalogError",
    "NoAssetError",
    "SigningError",
    "BoundaryLoadError",
    "StorageError",
]

__version__ = version("lidaraccess")

"""EPT spatial index access.

Clients:
    - SpatialIndexClient: search the USGS LiDAR EPT boundary index by extent

Utilities:
    - to_features: convert a TopoJSON object to GeoJSON features
"""

from .client import CACHE_KEY, SpatialIndexClient, SpatialIndexResponse
from .topology import to_features

__all__ = [
    "SpatialIndexClient",
    "SpatialIndexResponse",
    "CACHE_KEY",
    "to_features",
]

"""STAC catalog access for COPC point clouds.

Clients:
    - CatalogClient: search a STAC API and sign asset URLs with SAS tokens
"""

from .client import CatalogClient, matched_count

__all__ = [
    "CatalogClient",
    "matched_count",
]

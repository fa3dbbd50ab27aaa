"""Runtime configuration for lidaraccess.

Defaults point at Microsoft Planetary Computer for COPC data and at the
hobuinc/usgs-lidar boundary file for EPT data. Every field can be overridden
through a ``LIDARACCESS_*`` environment variable via :meth:`Settings.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from .cache import DEFAULT_CACHE_DIR

PLANETARY_COMPUTER_STAC_API = "https://planetarycomputer.microsoft.com/api/stac/v1"
PLANETARY_COMPUTER_SAS_API = "https://planetarycomputer.microsoft.com/api/sas/v1"
COLLECTION_ID = "3dep-lidar-copc"

DEFAULT_EPT_BOUNDARY_URL = (
    "https://raw.githubusercontent.com/hobuinc/usgs-lidar/master/"
    "boundaries/boundaries.topojson"
)
DEFAULT_CACHE_TTL_MS = 3 * 24 * 60 * 60 * 1000  # 3 days
DEFAULT_MAX_RESULTS = 50

ENV_PREFIX = "LIDARACCESS_"


@dataclass(frozen=True)
class Settings:
    """Endpoints, cache and search defaults."""

    stac_url: str = PLANETARY_COMPUTER_STAC_API
    sas_url: str = PLANETARY_COMPUTER_SAS_API
    collection: str = COLLECTION_ID
    boundary_url: str = DEFAULT_EPT_BOUNDARY_URL
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    cache_dir: str = str(DEFAULT_CACHE_DIR)
    max_results: int = DEFAULT_MAX_RESULTS
    timeout: Optional[float] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings, taking overrides from ``LIDARACCESS_<FIELD>`` variables.

        Example:
            ``LIDARACCESS_CACHE_TTL_MS=3600000`` caches boundaries for an hour.
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name in ("cache_ttl_ms", "max_results"):
                overrides[f.name] = int(raw)
            elif f.name == "timeout":
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)

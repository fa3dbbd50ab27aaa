"""Tests for Settings."""

import pytest
from lidaraccess.config import (
    COLLECTION_ID,
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_EPT_BOUNDARY_URL,
    PLANETARY_COMPUTER_STAC_API,
    Settings,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.stac_url == PLANETARY_COMPUTER_STAC_API
        assert settings.collection == COLLECTION_ID
        assert settings.boundary_url == DEFAULT_EPT_BOUNDARY_URL
        assert settings.cache_ttl_ms == DEFAULT_CACHE_TTL_MS == 259_200_000
        assert settings.max_results == 50
        assert settings.timeout is None

    def test_overrides(self):
        settings = Settings.from_env(
            {
                "LIDARACCESS_STAC_URL": "https://stac.example.com",
                "LIDARACCESS_CACHE_TTL_MS": "3600000",
                "LIDARACCESS_MAX_RESULTS": "100",
                "LIDARACCESS_TIMEOUT": "2.5",
                "LIDARACCESS_CACHE_DIR": "memory://cache",
            }
        )

        assert settings.stac_url == "https://stac.example.com"
        assert settings.cache_ttl_ms == 3_600_000
        assert settings.max_results == 100
        assert settings.timeout == 2.5
        assert settings.cache_dir == "memory://cache"

    def test_empty_values_are_ignored(self):
        assert Settings.from_env({"LIDARACCESS_COLLECTION": ""}).collection == (
            COLLECTION_ID
        )

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("LIDARACCESS_COLLECTION", "3dep-lidar-dsm")

        assert Settings.from_env().collection == "3dep-lidar-dsm"

    def test_invalid_number(self):
        with pytest.raises(ValueError):
            Settings.from_env({"LIDARACCESS_MAX_RESULTS": "lots"})

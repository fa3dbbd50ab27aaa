"""Pytest configuration and shared fixtures for unit tests."""

import copy
import json
from pathlib import Path

import pytest
from lidaraccess.cache import ExpiringCache, MemoryStorage

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(relative_path: str):
    """Load a JSON fixture relative to ``tests/unit/fixtures``."""
    with open(FIXTURES_DIR / relative_path) as f:
        return json.load(f)


# =============================================================================
# Fixture Utilities
# =============================================================================


@pytest.fixture
def fixtures_dir():
    """Return the path to the fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def boundary_topology():
    """A four-dataset EPT boundary topology (three in Oregon, one in Texas)."""
    return load_fixture("topology/boundaries.topojson")


@pytest.fixture
def stac_search_response():
    """A three-item page from the 3dep-lidar-copc collection."""
    return load_fixture("stac/search_oregon.json")


@pytest.fixture
def stac_item(stac_search_response):
    """A single STAC item with a 6-element bbox and a ``data`` asset."""
    return copy.deepcopy(stac_search_response["features"][0])


@pytest.fixture
def memory_cache():
    """An expiring cache that never touches the filesystem."""
    return ExpiringCache(MemoryStorage())


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()

"""Tests for ExpiringCache and its storage backends."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest
from lidaraccess._core._models import CacheEntry, SignedToken
from lidaraccess.cache import ExpiringCache, FileSystemStorage, MemoryStorage, Storage

HOUR_MS = 60 * 60 * 1000


class BrokenStorage(Storage):
    """Storage whose every call fails, like a read-only or full disk."""

    def get_item(self, key):
        raise OSError("disk unavailable")

    def set_item(self, key, value):
        raise OSError("disk full")

    def remove_item(self, key):
        raise PermissionError("read-only")


class TestExpiringCache:
    """Tests for TTL semantics."""

    def test_get_within_ttl(self, clock):
        cache = ExpiringCache(MemoryStorage(), clock=clock)
        cache.put("k", {"a": 1}, ttl_ms=HOUR_MS)

        clock.advance(HOUR_MS - 1)

        assert cache.get("k") == {"a": 1}

    def test_get_at_expiry_boundary(self, clock):
        cache = ExpiringCache(MemoryStorage(), clock=clock)
        cache.put("k", "v", ttl_ms=HOUR_MS)

        clock.advance(HOUR_MS)

        assert cache.get("k") == "v"

    def test_get_after_ttl_returns_none_and_removes(self, clock):
        storage = MemoryStorage()
        cache = ExpiringCache(storage, clock=clock)
        cache.put("k", [1, 2, 3], ttl_ms=HOUR_MS)

        clock.advance(HOUR_MS + 1)

        assert cache.get("k") is None
        assert len(storage) == 0

    def test_missing_key(self, memory_cache):
        assert memory_cache.get("nope") is None

    def test_put_replaces(self, memory_cache):
        memory_cache.put("k", 1, ttl_ms=HOUR_MS)
        memory_cache.put("k", 2, ttl_ms=HOUR_MS)

        assert memory_cache.get("k") == 2

    def test_clear(self, memory_cache):
        memory_cache.put("k", 1, ttl_ms=HOUR_MS)
        memory_cache.clear("k")

        assert memory_cache.get("k") is None

    def test_clear_missing_key_is_noop(self, memory_cache):
        memory_cache.clear("never-set")

    def test_stored_envelope(self, clock):
        storage = MemoryStorage()
        cache = ExpiringCache(storage, clock=clock)

        cache.put("k", {"x": 1}, ttl_ms=1000)

        assert json.loads(storage.get_item("k")) == {
            "data": {"x": 1},
            "timestamp": clock.now,
            "expiresAt": clock.now + 1000,
        }


class TestStorageFailures:
    """Storage failures never propagate out of the cache."""

    def test_get_is_a_miss(self, caplog):
        cache = ExpiringCache(BrokenStorage())

        with caplog.at_level(logging.WARNING, logger="lidaraccess.cache"):
            assert cache.get("k") is None

        assert "treating as miss" in caplog.text

    def test_put_is_logged(self, caplog):
        cache = ExpiringCache(BrokenStorage())

        with caplog.at_level(logging.WARNING, logger="lidaraccess.cache"):
            cache.put("k", 1, ttl_ms=HOUR_MS)

        assert "disk full" in caplog.text

    def test_clear_is_logged(self, caplog):
        cache = ExpiringCache(BrokenStorage())

        with caplog.at_level(logging.WARNING, logger="lidaraccess.cache"):
            cache.clear("k")

        assert "read-only" in caplog.text

    @pytest.mark.parametrize(
        "raw", ["{not json", json.dumps({"data": 1}), json.dumps([1, 2])]
    )
    def test_corrupt_entry_is_a_miss(self, raw):
        storage = MemoryStorage()
        storage.set_item("k", raw)

        assert ExpiringCache(storage).get("k") is None


class TestFileSystemStorage:
    """Tests for the fsspec-backed storage."""

    def test_round_trip_on_disk(self, tmp_path):
        storage = FileSystemStorage(tmp_path / "cache")

        storage.set_item("usgs-lidar-ept-boundaries", '{"a": 1}')

        assert (tmp_path / "cache" / "usgs-lidar-ept-boundaries.json").exists()
        assert storage.get_item("usgs-lidar-ept-boundaries") == '{"a": 1}'

    def test_missing_key(self, tmp_path):
        assert FileSystemStorage(tmp_path).get_item("missing") is None

    def test_remove(self, tmp_path):
        storage = FileSystemStorage(tmp_path)
        storage.set_item("k", "v")

        storage.remove_item("k")
        storage.remove_item("k")

        assert storage.get_item("k") is None

    def test_unsafe_key_characters(self, tmp_path):
        storage = FileSystemStorage(tmp_path)

        storage.set_item("a/b:c", "v")

        assert (tmp_path / "a_b_c.json").exists()

    def test_memory_filesystem(self):
        storage = FileSystemStorage("memory://lidaraccess-test-cache")
        try:
            storage.set_item("k", "v")
            assert storage.get_item("k") == "v"
        finally:
            storage.remove_item("k")

    def test_cache_persists_across_instances(self, tmp_path, clock):
        ExpiringCache(FileSystemStorage(tmp_path), clock=clock).put(
            "k", {"n": 1}, ttl_ms=HOUR_MS
        )

        fresh = ExpiringCache(FileSystemStorage(tmp_path), clock=clock)

        assert fresh.get("k") == {"n": 1}


class TestCacheEntry:
    def test_is_expired(self):
        entry = CacheEntry(data=None, timestamp=0, expires_at=100)

        assert not entry.is_expired(100)
        assert entry.is_expired(101)


class TestSignedToken:
    """Tests for SAS token parsing and expiry."""

    def test_from_json(self):
        token = SignedToken.from_json(
            {"token": "sig=abc", "msft:expiry": "2024-05-01T12:00:00Z"}
        )

        assert token.token == "sig=abc"
        assert token.expiry == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    def test_naive_expiry_is_utc(self):
        token = SignedToken.from_json(
            {"token": "sig=abc", "msft:expiry": "2024-05-01T12:00:00"}
        )

        assert token.expiry.tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "payload",
        [{}, {"token": "sig=abc"}, {"msft:expiry": "2024-05-01T12:00:00Z"}, []],
    )
    def test_malformed(self, payload):
        with pytest.raises(ValueError, match="Malformed"):
            SignedToken.from_json(payload)

    def test_expiry_buffer(self):
        expiry = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        token = SignedToken(token="sig=abc", expiry=expiry)

        assert not token.is_expired(now=expiry - timedelta(minutes=6))
        assert token.is_expired(now=expiry - timedelta(minutes=4))
        assert token.is_expired(buffer_seconds=0, now=expiry)

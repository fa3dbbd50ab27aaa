"""Client-side persistence with expiration.

``ExpiringCache`` stores JSON payloads in a key-value ``Storage`` backend and
expires them lazily on read. Every backend call may fail (full disk, read-only
or missing directory); such failures are logged and treated as a cache miss so
callers simply fetch again.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

import fsspec
from fsspec.core import url_to_fs

from ._core._models import CacheEntry
from .exceptions import StorageError

logger = logging.getLogger(__name__)

__all__ = [
    "Storage",
    "MemoryStorage",
    "FileSystemStorage",
    "ExpiringCache",
    "DEFAULT_CACHE_DIR",
]

T = TypeVar("T")

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "lidaraccess"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class Storage:
    """Key-value storage primitive.

    Implementations return ``None`` from :meth:`get_item` for unknown keys and
    may raise from any method.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    """Process-local storage, lost when the interpreter exits."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class FileSystemStorage(Storage):
    """Storage keeping one JSON document per key on an fsspec filesystem.

    Parameters:
        root: Directory or URL (``"memory://cache"``, ``"s3://bucket/prefix"``)
            holding the documents. Defaults to ``~/.cache/lidaraccess``.
        fs: Explicit filesystem; inferred from *root* when omitted.
    """

    def __init__(
        self,
        root: Union[str, Path, None] = None,
        fs: Optional[fsspec.AbstractFileSystem] = None,
    ) -> None:
        root = str(root if root is not None else DEFAULT_CACHE_DIR)
        if fs is None:
            fs, root = url_to_fs(root)
        self.fs = fs
        self.root = root.rstrip("/")
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _path(self, key: str) -> str:
        return f"{self.root}/{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not self.fs.exists(path):
            return None
        with self.fs.open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set_item(self, key: str, value: str) -> None:
        self.fs.makedirs(self.root, exist_ok=True)
        path = self._path(key)
        with self.fs.open(path, "w", encoding="utf-8") as f:
            f.write(value)
        self._logger.debug("Wrote %d bytes to %s", len(value), path)

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        if self.fs.exists(path):
            self.fs.rm(path)

    def __repr__(self) -> str:
        return f"FileSystemStorage(root={self.root!r})"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExpiringCache(Generic[T]):
    """Time-to-live cache over a :class:`Storage` backend.

    Entries are JSON encoded, so payloads must be JSON serializable. Expiry is
    checked on read; there is no background eviction.

    Example:
        >>> cache = ExpiringCache(MemoryStorage())
        >>> cache.put("boundaries", [1, 2, 3], ttl_ms=60_000)
        >>> cache.get("boundaries")
        [1, 2, 3]
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the cache.

        Parameters:
            storage: Backend to persist into; defaults to a
                :class:`FileSystemStorage` under ``~/.cache/lidaraccess``.
            clock: Returns the current time in epoch milliseconds.
        """
        self.storage = storage if storage is not None else FileSystemStorage()
        self._clock = clock

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or ``None`` if missing, expired or unreadable."""
        try:
            entry = self._read(key)
        except StorageError as exc:
            logger.warning("Cache read for %r failed, treating as miss: %s", key, exc)
            return None

        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry %r expired", key)
            self.clear(key)
            return None
        return entry.data

    def put(self, key: str, value: T, ttl_ms: int) -> None:
        """Store *value* under *key* for *ttl_ms* milliseconds.

        Failures are logged and ignored.
        """
        now = self._clock()
        entry = CacheEntry(data=value, timestamp=now, expires_at=now + ttl_ms)
        try:
            self._write(key, entry)
        except StorageError as exc:
            logger.warning("Failed to cache %r: %s", key, exc)

    def clear(self, key: str) -> None:
        """Remove *key*; failures are logged and ignored."""
        try:
            self.storage.remove_item(key)
        except Exception as exc:
            logger.warning("Failed to clear cache entry %r: %s", key, exc)

    def _read(self, key: str) -> Optional[CacheEntry[T]]:
        try:
            raw = self.storage.get_item(key)
            if raw is None:
                return None
            return CacheEntry.from_json(json.loads(raw))
        except Exception as exc:
            raise StorageError(str(exc)) from exc

    def _write(self, key: str, entry: CacheEntry[T]) -> None:
        try:
            self.storage.set_item(key, json.dumps(entry.to_json()))
        except Exception as exc:
            raise StorageError(str(exc)) from exc

    def __repr__(self) -> str:
        return f"ExpiringCache(storage={self.storage!r})"

"""Exception types raised by lidaraccess.

Failures that would otherwise yield wrong or empty results surface as one of
these exceptions. Signing and storage failures are raised internally and then
recovered where they occur.
"""

from typing import Optional

__all__ = [
    "LidarAccessError",
    "CatalogError",
    "NoAssetError",
    "SigningError",
    "BoundaryLoadError",
    "StorageError",
]


class LidarAccessError(Exception):
    """Base class for all lidaraccess errors."""


class CatalogError(LidarAccessError):
    """A STAC search or paging request returned a non-success status."""

    def __init__(
        self,
        status_code: int,
        reason: str = "",
        body: str = "",
        *,
        operation: str = "STAC search",
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        message = f"{operation} failed: {status_code} {reason}".rstrip()
        if body:
            message = f"{message} - {body}"
        super().__init__(message)


class NoAssetError(LidarAccessError):
    """A catalog item has no ``data`` asset to resolve."""

    def __init__(self, item_id: Optional[str]) -> None:
        self.item_id = item_id
        super().__init__(f"No data asset found for item {item_id}")


class SigningError(LidarAccessError):
    """The SAS token endpoint could not provide a token."""


class BoundaryLoadError(LidarAccessError):
    """The spatial index boundary file could not be fetched or decoded."""


class StorageError(LidarAccessError):
    """A persistent storage backend failed to read or write."""

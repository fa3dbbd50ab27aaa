"""Simple data models shared across the package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, Mapping, TypeVar

T = TypeVar("T")

# Tokens are treated as stale this long before they actually expire
TOKEN_EXPIRY_BUFFER_SECONDS = 5 * 60


@dataclass(frozen=True)
class SignedToken:
    """A SAS token and the moment it stops being accepted."""

    token: str
    expiry: datetime

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "SignedToken":
        if not isinstance(payload, Mapping):
            raise ValueError(f"Malformed token response: {payload!r}")
        token = payload.get("token")
        expiry = payload.get("msft:expiry")
        if not token or not expiry:
            raise ValueError(f"Malformed token response: {dict(payload)!r}")
        parsed = datetime.fromisoformat(str(expiry).replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return cls(token=token, expiry=parsed)

    def is_expired(
        self,
        buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS,
        now: datetime | None = None,
    ) -> bool:
        """Return True if the token has expired or will within *buffer_seconds*."""
        now = now or datetime.now(timezone.utc)
        return now >= self.expiry - timedelta(seconds=buffer_seconds)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached payload with its creation and expiration times (epoch ms)."""

    data: T
    timestamp: int
    expires_at: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at

    def to_json(self) -> dict:
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "CacheEntry[Any]":
        return cls(
            data=payload["data"],
            timestamp=int(payload.get("timestamp", 0)),
            expires_at=int(payload["expiresAt"]),
        )

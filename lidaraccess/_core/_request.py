"""HTTP plumbing shared by the catalog and spatial index clients."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, MutableMapping, Optional

import requests

log = logging.getLogger(__name__)

# Gateway and throttling statuses worth another attempt
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RequestConfig:
    """One HTTP call: target, payload and retry policy.

    ``max_retries`` counts attempts after the first; the default of 0 sends
    exactly once.
    """

    method: str = "GET"
    url: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)
    json: Optional[Any] = None
    headers: MutableMapping[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    max_retries: int = 0
    backoff_factor: float = 0.5

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return self.backoff_factor * (2 ** (attempt - 1))

    def request_kwargs(self) -> Dict[str, Any]:
        headers = dict(self.headers)
        if self.json is not None:
            headers.setdefault("Content-Type", "application/json")
        return {
            "method": self.method,
            "url": self.url,
            "params": dict(self.params) or None,
            "json": self.json,
            "headers": headers,
            "timeout": self.timeout,
        }


def request(
    config: RequestConfig, session: Optional[requests.Session] = None
) -> requests.Response:
    """Send *config* and return the last response received.

    Non-success responses are returned rather than raised so callers can put
    the status and body into their own error. Transient statuses and
    connection failures are retried up to ``config.max_retries`` times.

    Raises:
        requests.RequestException: If no response arrived on the final attempt.
    """
    sender = session if session is not None else requests
    kwargs = config.request_kwargs()
    attempts = config.max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            resp = sender.request(**kwargs)
        except requests.RequestException as exc:
            if attempt == attempts:
                raise
            log.warning(
                "%s %s failed (attempt %d/%d): %s",
                config.method, config.url, attempt, attempts, exc,
            )
        else:
            if resp.status_code not in TRANSIENT_STATUSES or attempt == attempts:
                return resp
            log.info(
                "%s %s returned %d (attempt %d/%d)",
                config.method, config.url, resp.status_code, attempt, attempts,
            )
        time.sleep(config.backoff(attempt))

    # Should never reach here
    raise RuntimeError("Exceeded maximum retry attempts")

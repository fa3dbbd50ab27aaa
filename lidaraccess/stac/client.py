"""STAC catalog search for USGS 3DEP LiDAR COPC data.

Queries a STAC API item search endpoint (Microsoft Planetary Computer by
default) and signs asset URLs with short-lived SAS tokens.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from pystac_client import ItemSearch
from pystac_client.exceptions import APIError
from pystac_client.stac_api_io import StacApiIO
from pystac_client.warnings import DoesNotConformTo

from .._core._models import SignedToken
from .._core._request import RequestConfig, request
from .._core._validators import cap_limit, clamp_bbox
from ..config import (
    COLLECTION_ID,
    PLANETARY_COMPUTER_SAS_API,
    PLANETARY_COMPUTER_STAC_API,
)
from ..exceptions import CatalogError, NoAssetError, SigningError
from ..geometry import load_geometry

logger = logging.getLogger(__name__)

__all__ = ["CatalogClient", "matched_count"]

DEFAULT_SEARCH_ALL_MAX_ITEMS = 500


def matched_count(response: Mapping[str, Any]) -> Optional[int]:
    """Return the total matched count reported by a search response.

    STAC APIs report it either as ``numberMatched`` or through the older
    context extension as ``context.matched``.
    """
    if response.get("numberMatched") is not None:
        return response["numberMatched"]
    context = response.get("context") or {}
    return context.get("matched")


class CatalogClient:
    """Client for a STAC item search API and its SAS token companion.

    Example:
        >>> client = CatalogClient()
        >>> response = client.search_by_extent([-123.1, 44.0, -123.0, 44.1], 25)
        >>> url = client.get_asset_url(response["features"][0])
    """

    def __init__(
        self,
        stac_url: str = PLANETARY_COMPUTER_STAC_API,
        sas_url: str = PLANETARY_COMPUTER_SAS_API,
        collection: str = COLLECTION_ID,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the catalog client.

        Parameters:
            stac_url: STAC API base URL
            sas_url: SAS token API base URL
            collection: Collection searched and signed for
            session: HTTP session to reuse; a new one is created when omitted
            timeout: Per-request timeout in seconds; none by default
        """
        self._stac_url = stac_url.rstrip("/")
        self._sas_url = sas_url.rstrip("/")
        self._collection = collection
        self._session = session or requests.Session()
        self._timeout = timeout
        self._cached_token: Optional[SignedToken] = None

    @property
    def base_url(self) -> str:
        return self._stac_url

    @property
    def sas_url(self) -> str:
        return self._sas_url

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def session(self) -> requests.Session:
        return self._session

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def search(
        self,
        bbox: Optional[Sequence[float]] = None,
        datetime: Optional[str] = None,
        intersects: Optional[Any] = None,
        limit: Optional[int] = None,
        sortby: Optional[List[Dict[str, str]]] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        """Search the collection.

        The bbox is clamped to valid coordinates instead of being rejected and
        the limit is capped at the API maximum of 1000.

        Parameters:
            bbox: Bounding box [west, south, east, north]
            datetime: ISO 8601 datetime or interval
            intersects: GeoJSON geometry, WKT string or shapely geometry
            limit: Maximum number of items per page
            sortby: STAC sort specification, e.g.
                ``[{"field": "datetime", "direction": "desc"}]``
            **extra: Additional search body fields passed through verbatim

        Returns:
            The raw FeatureCollection response, including ``links`` for paging.

        Raises:
            CatalogError: If the API responds with a non-success status.
        """
        body: Dict[str, Any] = {"collections": [self._collection]}
        if bbox is not None:
            body["bbox"] = clamp_bbox(bbox)
        if datetime is not None:
            body["datetime"] = datetime
        if intersects is not None:
            body["intersects"] = load_geometry(intersects)
        if limit is not None:
            body["limit"] = cap_limit(limit)
        if sortby is not None:
            body["sortby"] = sortby
        body.update(extra)

        logger.debug("Searching STAC catalog %s with %s", self._stac_url, body)
        resp = request(
            RequestConfig(
                method="POST",
                url=f"{self._stac_url}/search",
                json=body,
                timeout=self._timeout,
            ),
            self._session,
        )
        return self._json_or_raise(resp, "STAC search")

    def search_by_extent(
        self, bbox: Sequence[float], limit: int = 50
    ) -> Dict[str, Any]:
        """Search using bounding box coordinates."""
        return self.search(bbox=bbox, limit=limit)

    def fetch_next_page(
        self, response: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Fetch the page after *response* by following its ``next`` link.

        Returns:
            The next page, or ``None`` when *response* is the last page.

        Raises:
            CatalogError: If the API responds with a non-success status.
        """
        next_link = next(
            (link for link in response.get("links") or [] if link.get("rel") == "next"),
            None,
        )
        if next_link is None:
            return None

        method = str(next_link.get("method", "POST")).upper()
        body = next_link.get("body")

        config = RequestConfig(
            method=method,
            url=next_link["href"],
            headers=dict(next_link.get("headers") or {}),
            timeout=self._timeout,
        )
        if method == "POST":
            config.json = body if body is not None else {}
        resp = request(config, self._session)
        return self._json_or_raise(resp, "Fetching next page")

    def search_all(
        self, max_items: int = DEFAULT_SEARCH_ALL_MAX_ITEMS, **params: Any
    ) -> List[Dict[str, Any]]:
        """Gather items across pages, up to exactly *max_items*.

        Use with care: this can transfer many pages.
        """
        response = self.search(**params)
        items = list(response.get("features") or [])

        while len(items) < max_items:
            next_response = self.fetch_next_page(response)
            if not next_response or not next_response.get("features"):
                break
            items.extend(next_response["features"])
            response = next_response

        return items[:max_items]

    def get_count(
        self,
        bbox: Optional[Sequence[float]] = None,
        datetime: Optional[str] = None,
        intersects: Optional[Any] = None,
        **params: Any,
    ) -> int:
        """Return the number of items matching the search without fetching them.

        The API is asked for a one-item page through
        :meth:`pystac_client.ItemSearch.matched` and its reported total is
        returned; APIs that report no total count as 0.

        Raises:
            CatalogError: If the API responds with a non-success status.
        """
        params.pop("limit", None)
        search = ItemSearch(
            f"{self._stac_url}/search",
            method="POST",
            stac_io=StacApiIO(
                headers=dict(self._session.headers), timeout=self._timeout
            ),
            collections=[self._collection],
            bbox=clamp_bbox(bbox) if bbox is not None else None,
            datetime=datetime,
            intersects=load_geometry(intersects) if intersects is not None else None,
            **params,
        )
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", DoesNotConformTo)
                found = search.matched()
        except APIError as exc:
            raise CatalogError(
                getattr(exc, "status_code", None) or 0,
                body=str(exc),
                operation="STAC count",
            ) from exc

        if found is None:
            logger.warning("%s does not report matched counts", self._stac_url)
        return found or 0

    def get_asset_url(self, item: Mapping[str, Any]) -> str:
        """Return the COPC URL of *item*, signed when a SAS token is available.

        Signing failures are logged and the unsigned URL is returned.

        Raises:
            NoAssetError: If the item has no ``data`` asset.
        """
        asset = (item.get("assets") or {}).get("data")
        if not asset or not asset.get("href"):
            raise NoAssetError(item.get("id"))
        href = asset["href"]

        try:
            token = self._get_sas_token()
        except SigningError as exc:
            logger.warning("Failed to get SAS token, returning unsigned URL: %s", exc)
            return href

        separator = "&" if "?" in href else "?"
        return f"{href}{separator}{token}"

    def _get_sas_token(self) -> str:
        """Return the cached SAS token, refreshing it when near expiry."""
        cached = self._cached_token
        if cached is not None and not cached.is_expired():
            return cached.token

        token_url = f"{self._sas_url}/token/{self._collection}"
        try:
            resp = request(
                RequestConfig(url=token_url, timeout=self._timeout), self._session
            )
        except requests.RequestException as exc:
            raise SigningError(f"Failed to reach token endpoint: {exc}") from exc
        if not resp.ok:
            raise SigningError(
                f"Failed to get SAS token: {resp.status_code} {resp.reason}"
            )

        try:
            token = SignedToken.from_json(resp.json())
        except ValueError as exc:
            raise SigningError(str(exc)) from exc

        self._cached_token = token
        logger.debug(
            "Refreshed SAS token for %s, expires %s", self._collection, token.expiry
        )
        return token.token

    def _json_or_raise(
        self, resp: requests.Response, operation: str
    ) -> Dict[str, Any]:
        if not resp.ok:
            raise CatalogError(
                resp.status_code, resp.reason or "", resp.text, operation=operation
            )
        return resp.json()

    def __repr__(self) -> str:
        return (
            f"CatalogClient(stac_url={self._stac_url!r}, "
            f"collection={self._collection!r})"
        )

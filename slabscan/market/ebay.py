"""
eBay sold-listing client.

Fetches completed sales for a search query from the eBay Finding API,
authenticating with an OAuth client-credentials bearer token.

The token is cached on an EbayTokenCache instance owned by the
application. Concurrent requests that find the token expired wait on one
refresh instead of each fetching their own.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from slabscan.config import TOKEN_REFRESH_MARGIN_SECONDS, settings
from slabscan.models.failure import MalformedUpstreamResponseError, UpstreamUnavailableError
from slabscan.models.scan import SoldComp

logger = logging.getLogger(__name__)

EBAY_TOKEN_URL = "https://api.ebay.com/identity/v1/oauth2/token"
EBAY_TOKEN_SCOPE = "https://api.ebay.com/oauth/api_scope"
EBAY_FINDING_URL = "https://svcs.ebay.com/services/search/FindingService/v1"

# Finding API page size; also the most comps one valuation ever sees
MAX_COMPS = 100


class EbayTokenCache:
    """
    In-memory OAuth token cache for one set of client credentials.

    A cached token is reused until it is within TOKEN_REFRESH_MARGIN_SECONDS
    of expiry. Refreshes are serialized by a lock and re-check freshness
    after acquiring it.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._expires_at > self._clock() + TOKEN_REFRESH_MARGIN_SECONDS
        )

    async def get_token(self, client: httpx.AsyncClient) -> str | None:
        """
        Get a valid bearer token, refreshing it if needed.

        Args:
            client: httpx client used for the token request

        Returns:
            Access token, or None when no credentials are configured

        Raises:
            UpstreamUnavailableError: If the token endpoint fails
            MalformedUpstreamResponseError: If the token response is unreadable
        """
        if not self.is_configured():
            return None

        if self._is_fresh():
            return self._token

        async with self._lock:
            # Another request may have refreshed while we waited
            if self._is_fresh():
                return self._token

            token, expires_in = await self._request_token(client)
            self._token = token
            self._expires_at = self._clock() + expires_in
            logger.info("EBAY_TOKEN_REFRESHED", extra={"expires_in": expires_in})
            return token

    async def _request_token(self, client: httpx.AsyncClient) -> tuple[str, float]:
        try:
            response = await client.post(
                EBAY_TOKEN_URL,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials", "scope": EBAY_TOKEN_SCOPE},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError("ebay_oauth", detail=str(e)) from e

        try:
            payload = response.json()
            return str(payload["access_token"]), float(payload["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedUpstreamResponseError("ebay_oauth", detail=str(e)) from e


def build_finding_params(query: str) -> dict[str, str]:
    """Query parameters for a findCompletedItems call."""
    return {
        "OPERATION-NAME": "findCompletedItems",
        "SERVICE-VERSION": "1.13.0",
        "RESPONSE-DATA-FORMAT": "JSON",
        "REST-PAYLOAD": "",
        "keywords": query,
        "itemFilter(0).name": "SoldItemsOnly",
        "itemFilter(0).value": "true",
        "itemFilter(1).name": "LocatedIn",
        "itemFilter(1).value": "US",
        "paginationInput.entriesPerPage": str(MAX_COMPS),
    }


def _first(value: Any) -> Any:
    """Finding API wraps every field in a single-element list."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _first_dict(value: Any) -> dict[str, Any]:
    value = _first(value)
    return value if isinstance(value, dict) else {}


def _parse_sold_at(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_item(item: Any) -> SoldComp | None:
    if not isinstance(item, dict):
        return None

    title = _first(item.get("title"))
    current_price = _first_dict(_first_dict(item.get("sellingStatus")).get("currentPrice"))
    price_str = _first(current_price.get("__value__"))
    end_time = _first(_first_dict(item.get("listingInfo")).get("endTime"))

    if not isinstance(title, str) or not title or not price_str or not end_time:
        return None

    try:
        price = float(price_str)
        sold_at = _parse_sold_at(end_time)
    except (TypeError, ValueError):
        return None

    # float() accepts "NaN" and "Infinity"
    if not math.isfinite(price):
        return None

    return SoldComp(title=title, price=price, sold_at=sold_at)


def parse_completed_items(payload: dict[str, Any]) -> list[SoldComp]:
    """
    Parse a findCompletedItems response into sold comps.

    Items missing a title, price or end time, or whose price or end time
    cannot be parsed, are skipped. So are non-finite prices.

    Raises:
        MalformedUpstreamResponseError: If the response envelope is not
            shaped like a Finding API response
    """
    if not isinstance(payload, dict):
        raise MalformedUpstreamResponseError("ebay_finding", detail="expected a JSON object")

    response = _first(payload.get("findCompletedItemsResponse")) or {}
    if not isinstance(response, dict):
        raise MalformedUpstreamResponseError("ebay_finding", detail="bad response envelope")

    search_result = _first(response.get("searchResult")) or {}
    if not isinstance(search_result, dict):
        raise MalformedUpstreamResponseError("ebay_finding", detail="bad searchResult")

    items = search_result.get("item") or []
    if not isinstance(items, list):
        raise MalformedUpstreamResponseError("ebay_finding", detail="bad item list")

    comps: list[SoldComp] = []
    for item in items:
        comp = _parse_item(item)
        if comp is not None:
            comps.append(comp)

    return comps


class EbayCompsClient:
    """
    Client for eBay completed-item searches.

    Returns no comps when credentials are not configured.
    """

    def __init__(
        self,
        token_cache: EbayTokenCache,
        marketplace_id: str = "EBAY-US",
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.token_cache = token_cache
        self.marketplace_id = marketplace_id
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.client = client

    async def fetch_sold_comps(self, query: str) -> list[SoldComp]:
        """
        Fetch up to MAX_COMPS sold listings for a query.

        Raises:
            UpstreamUnavailableError: If the token or search request fails
            MalformedUpstreamResponseError: If a response is unreadable
        """
        if not self.token_cache.is_configured():
            return []

        if self.client:
            return await self._fetch(self.client, query)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._fetch(client, query)

    async def _fetch(self, client: httpx.AsyncClient, query: str) -> list[SoldComp]:
        token = await self.token_cache.get_token(client)
        if not token:
            return []

        try:
            response = await client.get(
                EBAY_FINDING_URL,
                params=build_finding_params(query),
                headers={
                    "X-EBAY-SOA-SECURITY-APPNAME": self.token_cache.client_id,
                    "X-EBAY-SOA-GLOBAL-ID": self.marketplace_id,
                    "Authorization": f"Bearer {token}",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError("ebay_finding", detail=str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedUpstreamResponseError("ebay_finding", detail=str(e)) from e

        comps = parse_completed_items(payload)
        logger.info("EBAY_COMPS_FETCHED", extra={"query": query, "count": len(comps)})
        return comps

"""Tests for the eBay token cache and sold-listing client."""

import asyncio
from datetime import UTC, datetime

import httpx
import pytest
import respx

from slabscan.market.ebay import (
    EBAY_FINDING_URL,
    EBAY_TOKEN_URL,
    EbayCompsClient,
    EbayTokenCache,
    parse_completed_items,
)
from slabscan.models.failure import MalformedUpstreamResponseError, UpstreamUnavailableError


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _token_response(token: str, expires_in: int = 7200) -> httpx.Response:
    return httpx.Response(200, json={"access_token": token, "expires_in": expires_in})


def _item(title: str | None, price: str | None, end_time: str | None) -> dict:
    item: dict = {}
    if title is not None:
        item["title"] = [title]
    if price is not None:
        item["sellingStatus"] = [{"currentPrice": [{"@currencyId": "USD", "__value__": price}]}]
    if end_time is not None:
        item["listingInfo"] = [{"endTime": [end_time]}]
    return item


def _finding_payload(items: list[dict]) -> dict:
    return {"findCompletedItemsResponse": [{"ack": ["Success"], "searchResult": [{"item": items}]}]}


class TestEbayTokenCache:
    @respx.mock
    async def test_token_reused_while_fresh(self) -> None:
        """A fresh token is not requested again."""
        route = respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        cache = EbayTokenCache("id", "secret", clock=FakeClock())

        async with httpx.AsyncClient() as client:
            first = await cache.get_token(client)
            second = await cache.get_token(client)

        assert first == second == "tok-1"
        assert route.call_count == 1

    @respx.mock
    async def test_refreshes_inside_margin(self) -> None:
        """Tokens within 30 seconds of expiry are replaced."""
        route = respx.post(EBAY_TOKEN_URL).mock(
            side_effect=[_token_response("tok-1", 100), _token_response("tok-2", 100)]
        )
        clock = FakeClock()
        cache = EbayTokenCache("id", "secret", clock=clock)

        async with httpx.AsyncClient() as client:
            assert await cache.get_token(client) == "tok-1"

            clock.now += 69
            assert await cache.get_token(client) == "tok-1"

            clock.now += 2
            assert await cache.get_token(client) == "tok-2"

        assert route.call_count == 2

    @respx.mock
    async def test_concurrent_callers_share_one_refresh(self) -> None:
        """Callers racing past expiry trigger a single token request."""
        route = respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        cache = EbayTokenCache("id", "secret", clock=FakeClock())

        async with httpx.AsyncClient() as client:
            tokens = await asyncio.gather(*(cache.get_token(client) for _ in range(5)))

        assert tokens == ["tok-1"] * 5
        assert route.call_count == 1

    async def test_unconfigured_returns_none(self) -> None:
        cache = EbayTokenCache("", "")

        async with httpx.AsyncClient() as client:
            assert await cache.get_token(client) is None

    @respx.mock
    async def test_sends_client_credentials(self) -> None:
        route = respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        cache = EbayTokenCache("id", "secret")

        async with httpx.AsyncClient() as client:
            await cache.get_token(client)

        request = route.calls.last.request
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"grant_type=client_credentials" in request.content

    @respx.mock
    async def test_token_endpoint_failure(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=httpx.Response(500))
        cache = EbayTokenCache("id", "secret")

        async with httpx.AsyncClient() as client:
            with pytest.raises(UpstreamUnavailableError):
                await cache.get_token(client)

    @respx.mock
    async def test_token_response_missing_fields(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=httpx.Response(200, json={"token": "x"}))
        cache = EbayTokenCache("id", "secret")

        async with httpx.AsyncClient() as client:
            with pytest.raises(MalformedUpstreamResponseError):
                await cache.get_token(client)


class TestParseCompletedItems:
    def test_parses_items(self) -> None:
        payload = _finding_payload(
            [_item("PSA 10 Charizard 4/102", "2100.00", "2025-01-30T12:00:00.000Z")]
        )

        comps = parse_completed_items(payload)

        assert len(comps) == 1
        assert comps[0].title == "PSA 10 Charizard 4/102"
        assert comps[0].price == 2100.0
        assert comps[0].sold_at == datetime(2025, 1, 30, 12, 0, tzinfo=UTC)

    def test_skips_incomplete_items(self) -> None:
        """Items missing a field or with unparseable values are dropped."""
        payload = _finding_payload(
            [
                _item(None, "10.00", "2025-01-30T12:00:00.000Z"),
                _item("No price", None, "2025-01-30T12:00:00.000Z"),
                _item("No end time", "10.00", None),
                _item("Bad price", "ten dollars", "2025-01-30T12:00:00.000Z"),
                _item("Bad end time", "10.00", "last tuesday"),
                _item("Good", "10.00", "2025-01-30T12:00:00.000Z"),
            ]
        )

        comps = parse_completed_items(payload)

        assert [c.title for c in comps] == ["Good"]

    def test_empty_response(self) -> None:
        assert parse_completed_items({}) == []

    @pytest.mark.parametrize("price", ["NaN", "nan", "Infinity", "inf", "-Infinity"])
    def test_skips_non_finite_prices(self, price: str) -> None:
        payload = _finding_payload(
            [
                _item("PSA 10 Charizard 4/102", price, "2025-01-30T12:00:00.000Z"),
                _item("Good", "10.00", "2025-01-30T12:00:00.000Z"),
            ]
        )

        comps = parse_completed_items(payload)

        assert [c.title for c in comps] == ["Good"]

    def test_skips_items_that_are_not_objects(self) -> None:
        payload = _finding_payload(
            ["oops", 42, None, _item("Good", "10.00", "2025-01-30T12:00:00.000Z")]
        )

        comps = parse_completed_items(payload)

        assert [c.title for c in comps] == ["Good"]

    def test_skips_items_with_misshapen_fields(self) -> None:
        payload = _finding_payload(
            [
                {"title": ["A"], "sellingStatus": ["oops"], "listingInfo": [{"endTime": ["x"]}]},
                {
                    "title": [{"text": "B"}],
                    "sellingStatus": [{"currentPrice": [{"__value__": "10.00"}]}],
                    "listingInfo": [{"endTime": ["2025-01-30T12:00:00.000Z"]}],
                },
                {
                    "title": ["C"],
                    "sellingStatus": [{"currentPrice": [{"__value__": {"amount": 10}}]}],
                    "listingInfo": [{"endTime": ["2025-01-30T12:00:00.000Z"]}],
                },
                _item("Good", "10.00", "2025-01-30T12:00:00.000Z"),
            ]
        )

        comps = parse_completed_items(payload)

        assert [c.title for c in comps] == ["Good"]

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"findCompletedItemsResponse": ["oops"]},
            {"findCompletedItemsResponse": [{"searchResult": ["oops"]}]},
            {"findCompletedItemsResponse": [{"searchResult": [{"item": "oops"}]}]},
            {"findCompletedItemsResponse": [{"searchResult": [{"item": {"title": ["A"]}}]}]},
        ],
    )
    def test_misshapen_envelope_is_malformed(self, payload: object) -> None:
        with pytest.raises(MalformedUpstreamResponseError):
            parse_completed_items(payload)  # type: ignore[arg-type]


class TestEbayCompsClient:
    async def test_no_credentials_returns_no_comps(self) -> None:
        """Without credentials no request is made."""
        client = EbayCompsClient(EbayTokenCache("", ""))

        assert await client.fetch_sold_comps("Charizard") == []

    @respx.mock
    async def test_fetches_sold_comps(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        search = respx.get(url__startswith=EBAY_FINDING_URL).mock(
            return_value=httpx.Response(
                200,
                json=_finding_payload(
                    [_item("PSA 10 Charizard 4/102", "2100.00", "2025-01-30T12:00:00.000Z")]
                ),
            )
        )
        client = EbayCompsClient(EbayTokenCache("app-id", "secret"), marketplace_id="EBAY-US")

        comps = await client.fetch_sold_comps("Charizard 4/102 PSA 10")

        assert len(comps) == 1
        request = search.calls.last.request
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert request.headers["X-EBAY-SOA-SECURITY-APPNAME"] == "app-id"
        assert request.headers["X-EBAY-SOA-GLOBAL-ID"] == "EBAY-US"
        assert request.url.params["keywords"] == "Charizard 4/102 PSA 10"
        assert request.url.params["OPERATION-NAME"] == "findCompletedItems"
        assert request.url.params["itemFilter(0).name"] == "SoldItemsOnly"
        assert request.url.params["paginationInput.entriesPerPage"] == "100"

    @respx.mock
    async def test_search_failure_is_upstream_unavailable(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        respx.get(url__startswith=EBAY_FINDING_URL).mock(return_value=httpx.Response(503))
        client = EbayCompsClient(EbayTokenCache("app-id", "secret"))

        with pytest.raises(UpstreamUnavailableError):
            await client.fetch_sold_comps("Charizard")

    @respx.mock
    async def test_search_timeout_is_upstream_unavailable(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        respx.get(url__startswith=EBAY_FINDING_URL).mock(
            side_effect=httpx.ConnectTimeout("timed out")
        )
        client = EbayCompsClient(EbayTokenCache("app-id", "secret"))

        with pytest.raises(UpstreamUnavailableError):
            await client.fetch_sold_comps("Charizard")

    @respx.mock
    async def test_non_json_is_malformed(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        respx.get(url__startswith=EBAY_FINDING_URL).mock(
            return_value=httpx.Response(200, text="<html>maintenance</html>")
        )
        client = EbayCompsClient(EbayTokenCache("app-id", "secret"))

        with pytest.raises(MalformedUpstreamResponseError):
            await client.fetch_sold_comps("Charizard")

    @respx.mock
    async def test_misshapen_json_is_malformed(self) -> None:
        """Valid JSON that is not a Finding API response is rejected."""
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        respx.get(url__startswith=EBAY_FINDING_URL).mock(
            return_value=httpx.Response(
                200, json={"findCompletedItemsResponse": [{"searchResult": ["oops"]}]}
            )
        )
        client = EbayCompsClient(EbayTokenCache("app-id", "secret"))

        with pytest.raises(MalformedUpstreamResponseError):
            await client.fetch_sold_comps("Charizard")

    @respx.mock
    async def test_uses_injected_client(self) -> None:
        respx.post(EBAY_TOKEN_URL).mock(return_value=_token_response("tok-1"))
        respx.get(url__startswith=EBAY_FINDING_URL).mock(
            return_value=httpx.Response(200, json=_finding_payload([]))
        )

        async with httpx.AsyncClient() as http_client:
            client = EbayCompsClient(EbayTokenCache("app-id", "secret"), client=http_client)
            assert await client.fetch_sold_comps("Charizard") == []

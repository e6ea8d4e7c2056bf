"""Tests for the Tavily web search client (httpx MockTransport, no network)."""

import json

import httpx
import pytest

from api.tools.web_search import TRUSTED_DOMAINS, DisabledWebSearch, TavilyWebSearch
from libs.common.errors import CircuitOpenError, TransientExternalError
from libs.resilience.retry import transient_retry
from tests.factories import make_breaker


def tavily_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_search_parses_results():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={
            "results": [
                {
                    "title": "Section 9 Arbitration",
                    "url": "https://www.usopc.org/section-9",
                    "content": "Athletes may file a Section 9 claim.",
                    "score": 0.91,
                },
                {"title": "No URL", "content": "dropped"},
                {"url": "https://www.usathlete.org/ombuds", "content": "Ombuds services"},
            ]
        })

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-test", make_breaker("web_search"), max_results=5, client=client)
        results = await search.search("section 9 arbitration")

    assert [r.url for r in results] == ["https://www.usopc.org/section-9", "https://www.usathlete.org/ombuds"]
    assert results[0].score == 0.91
    assert results[1].title == "https://www.usathlete.org/ombuds"

    payload = json.loads(requests[0].content)
    assert payload["query"] == "section 9 arbitration"
    assert payload["max_results"] == 5
    assert payload["include_domains"] == list(TRUSTED_DOMAINS)
    assert requests[0].headers["Authorization"] == "Bearer tvly-test"


@pytest.mark.asyncio
async def test_rate_limit_is_transient():
    def handler(request):
        return httpx.Response(429, json={"detail": "rate limited"})

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-test", make_breaker("web_search"), client=client)
        with pytest.raises(TransientExternalError) as exc_info:
            await search.search("usada whereabouts")

    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_client_error_raises_http_error():
    def handler(request):
        return httpx.Response(401, json={"detail": "bad key"})

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-bad", make_breaker("web_search"), client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await search.search("usada whereabouts")


@pytest.mark.asyncio
async def test_open_breaker_skips_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"results": []})

    breaker = make_breaker("web_search")
    breaker.trip()

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-test", breaker, client=client)
        with pytest.raises(CircuitOpenError):
            await search.search("usada whereabouts")

    assert calls == []


@pytest.mark.asyncio
async def test_disabled_web_search():
    assert await DisabledWebSearch().search("anything") == []


@pytest.mark.asyncio
async def test_transient_status_retried_then_succeeds():
    responses = [
        httpx.Response(503, json={"detail": "unavailable"}),
        httpx.Response(200, json={"results": [{"title": "USADA", "url": "https://www.usada.org", "content": "ok"}]}),
    ]
    calls = []

    def handler(request):
        calls.append(request)
        return responses[len(calls) - 1]

    retrying = transient_retry(max_attempts=3, initial_wait_s=0.0, max_wait_s=0.0)
    breaker = make_breaker("web_search")

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-test", breaker, client=client, retrying=retrying)
        results = await search.search("usada whereabouts")

    assert len(calls) == 2
    assert [r.url for r in results] == ["https://www.usada.org"]
    assert breaker.metrics().total_failures == 0


@pytest.mark.asyncio
async def test_client_error_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"detail": "bad key"})

    retrying = transient_retry(max_attempts=3, initial_wait_s=0.0, max_wait_s=0.0)

    async with tavily_client(handler) as client:
        search = TavilyWebSearch("tvly-bad", make_breaker("web_search"), client=client, retrying=retrying)
        with pytest.raises(httpx.HTTPStatusError):
            await search.search("usada whereabouts")

    assert len(calls) == 1

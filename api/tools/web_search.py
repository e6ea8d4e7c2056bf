"""Web search fallback restricted to trusted governance domains (Tavily)."""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, runtime_checkable

import httpx
import structlog
from tenacity import AsyncRetrying

from api.schemas.agent_state import WebSearchResult
from libs.common.errors import TransientExternalError
from libs.resilience.circuit_breaker import CircuitBreaker
from libs.resilience.retry import TRANSIENT_STATUS_CODES, run_with_retry

logger = structlog.get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"

TRUSTED_DOMAINS: tuple[str, ...] = (
    "usopc.org",
    "teamusa.org",
    "teamusa.com",
    "usathlete.org",
    "uscenterforsafesport.org",
    "usada.org",
    "wada-ama.org",
    "tas-cas.org",
    "teamusa-ac.org",
)


@runtime_checkable
class WebSearch(Protocol):
    async def search(self, query: str) -> List[WebSearchResult]:
        ...


class TavilyWebSearch:
    """Tavily search client behind the web-search circuit breaker.

    Transient responses (429, 5xx) and network errors are retried inside the
    breaker when a retry policy is given.
    """

    def __init__(
        self,
        api_key: str,
        breaker: CircuitBreaker,
        *,
        max_results: int = 5,
        include_domains: Sequence[str] = TRUSTED_DOMAINS,
        client: Optional[httpx.AsyncClient] = None,
        retrying: Optional[AsyncRetrying] = None,
    ):
        self.api_key = api_key
        self.breaker = breaker
        self.max_results = max_results
        self.include_domains = list(include_domains)
        self._client = client
        self.retrying = retrying

    async def _post(self, query: str) -> List[WebSearchResult]:
        payload = {
            "query": query,
            "max_results": self.max_results,
            "include_domains": self.include_domains,
            "search_depth": "basic",
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        if self._client is not None:
            response = await self._client.post(TAVILY_SEARCH_URL, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.breaker.request_timeout_s) as client:
                response = await client.post(TAVILY_SEARCH_URL, json=payload, headers=headers)

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientExternalError(
                f"Tavily returned HTTP {response.status_code}", status_code=response.status_code
            )
        response.raise_for_status()

        results = []
        for item in response.json().get("results", [])[: self.max_results]:
            url = item.get("url")
            if not url:
                continue
            results.append(
                WebSearchResult(
                    title=item.get("title") or url,
                    url=url,
                    content=item.get("content") or "",
                    score=item.get("score"),
                )
            )
        return results

    async def search(self, query: str) -> List[WebSearchResult]:
        results = await self.breaker.execute(
            lambda: run_with_retry(lambda: self._post(query), retrying=self.retrying)
        )
        logger.info("Web search completed", result_count=len(results))
        return results


class DisabledWebSearch:
    """Used when no Tavily key is configured; always returns no results."""

    async def search(self, query: str) -> List[WebSearchResult]:
        logger.debug("Web search disabled, returning no results")
        return []

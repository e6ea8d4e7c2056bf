"""researcher: web search fallback when the knowledge base comes up short."""

import time
from typing import Any, Dict, List, Optional

import structlog
from langsmith import traceable

from api.schemas.agent_state import RunState, WebSearchResult
from api.tools.web_search import WebSearch

logger = structlog.get_logger(__name__)

DOMAIN_LABELS: Dict[str, str] = {
    "team_selection": "USOPC team selection procedures",
    "dispute_resolution": "USOPC athlete dispute resolution arbitration",
    "safesport": "SafeSport policy reporting",
    "anti_doping": "USADA anti-doping testing",
    "eligibility": "athlete eligibility requirements",
    "governance": "USOPC NGB governance",
    "athlete_rights": "athlete rights representation USOPC",
}


def _no_results() -> Dict[str, Any]:
    return {"web_search_results": [], "web_search_result_urls": []}


def build_search_query(user_message: str, topic_domain: Optional[str]) -> str:
    label = DOMAIN_LABELS.get(topic_domain or "")
    return f"{label} {user_message}" if label else user_message


def format_web_result(result: WebSearchResult) -> str:
    return f"Title: {result.title}\nURL: {result.url}\nContent: {result.content}"


class ResearcherNode:
    def __init__(self, web_search: WebSearch):
        self.web_search = web_search

    @traceable(
        run_type="tool",
        name="researcher",
        tags=["web-search", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        user_message = state.last_user_message()
        if not user_message:
            logger.warning("researcher received empty user message", trace_id=state.trace_id)
            return _no_results()

        query = build_search_query(user_message, state.topic_domain)
        logger.info("researcher start", query=query[:200], trace_id=state.trace_id)

        try:
            results: List[WebSearchResult] = await self.web_search.search(query)
        except Exception as e:
            logger.error("researcher failed", error=str(e), trace_id=state.trace_id)
            return _no_results()

        logger.info(
            "researcher completed",
            result_count=len(results),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return {
            "web_search_results": [format_web_result(r) for r in results],
            "web_search_result_urls": results,
        }

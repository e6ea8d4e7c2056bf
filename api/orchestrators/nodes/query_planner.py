"""query_planner: split multi-domain questions into targeted sub-queries."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Tuple

import structlog
from langsmith import traceable

from api.composer.prompts import build_query_planner_messages
from api.llm.llm_service import LLMService, ModelRole
from api.schemas.agent_state import VALID_QUERY_INTENTS, VALID_TOPIC_DOMAINS, RunState, SubQuery
from libs.common.errors import CircuitOpenError
from libs.utils.json_parse import parse_llm_json_object

logger = structlog.get_logger(__name__)

MAX_SUB_QUERIES = 4
MIN_SUB_QUERIES = 2

_SIMPLE: Dict[str, Any] = {"is_complex_query": False, "sub_queries": []}


def parse_query_plan(raw: str) -> Tuple[List[SubQuery], List[str]]:
    """Return ``(sub_queries, warnings)``.

    An empty list means the question is simple: either the model said so,
    or fewer than two sub-queries survived validation.
    """
    data = parse_llm_json_object(raw)
    warnings: List[str] = []

    if data.get("isComplex") is not True:
        return [], warnings

    raw_items = data.get("subQueries")
    if not isinstance(raw_items, list):
        raw_items = []

    sub_queries: List[SubQuery] = []
    for item in raw_items[:MAX_SUB_QUERIES]:
        if not isinstance(item, dict):
            warnings.append("Skipped non-object sub-query")
            continue
        query = item.get("query")
        if not isinstance(query, str) or not query.strip():
            warnings.append("Skipped sub-query with missing query")
            continue
        domain = item.get("domain")
        if domain not in VALID_TOPIC_DOMAINS:
            warnings.append(f"Invalid sub-query domain: {domain!r}")
            continue
        intent = item.get("intent")
        if intent not in VALID_QUERY_INTENTS:
            if intent is not None:
                warnings.append(f"Invalid sub-query intent: {intent!r}")
            intent = "general"
        ngb_ids = item.get("ngbIds")
        ngb_ids = [i for i in ngb_ids if isinstance(i, str) and i] if isinstance(ngb_ids, list) else []
        sub_queries.append(SubQuery(query=query.strip(), domain=domain, intent=intent, ngb_ids=ngb_ids))

    if len(sub_queries) < MIN_SUB_QUERIES:
        warnings.append(f"Complex query flagged but only {len(sub_queries)} valid sub-queries")
        return [], warnings
    return sub_queries, warnings


class QueryPlannerNode:
    def __init__(self, llm: LLMService):
        self.llm = llm

    @traceable(
        run_type="llm",
        name="query_planner",
        tags=["planning", "decomposition", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        user_message = state.last_user_message()
        if not user_message:
            return dict(_SIMPLE)

        logger.info("query_planner start", trace_id=state.trace_id)
        try:
            raw = await self.llm.invoke(
                ModelRole.PLANNER,
                build_query_planner_messages(user_message, state.topic_domain, state.query_intent),
            )
            sub_queries, warnings = parse_query_plan(raw)
        except CircuitOpenError:
            logger.warning("query_planner circuit open, passing through", trace_id=state.trace_id)
            return dict(_SIMPLE)
        except Exception as e:
            logger.error("query_planner failed", error=str(e), trace_id=state.trace_id)
            return dict(_SIMPLE)

        if warnings:
            logger.warning("query_planner output had issues", warnings=warnings, trace_id=state.trace_id)

        logger.info(
            "query_planner completed",
            is_complex=bool(sub_queries),
            sub_query_count=len(sub_queries),
            domains=[sq.domain for sq in sub_queries],
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return {"is_complex_query": bool(sub_queries), "sub_queries": sub_queries}

"""
retrieval_expander: a second retrieval pass for low-confidence results.

The expander model rewrites the question into a few alternative search
queries; each one is searched concurrently with the narrow metadata filter
and the new documents are appended after the existing ones (exact-content
dedupe). Confidence is recomputed over the merged set.

Fail-open: any failure only marks the expansion as attempted so routing
falls through to the web researcher.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Sequence

import structlog
from langsmith import traceable

from api.composer.prompts import build_retrieval_expander_messages
from api.llm.llm_service import LLMService, ModelRole
from api.orchestrators.nodes.retriever import build_narrow_filter
from api.schemas.agent_state import RetrievedDocument, RunState
from api.tools.fusion import compute_confidence
from api.tools.retrieval_engine import HybridRetriever, merge_documents
from libs.common.errors import CircuitOpenError, MalformedModelOutputError
from libs.common.settings import Settings
from libs.utils.json_parse import parse_llm_json

logger = structlog.get_logger(__name__)

MIN_REFORMULATIONS = 2
MAX_REFORMULATIONS = 4


def parse_reformulations(raw: str, original_query: str) -> List[str]:
    """Distinct reformulated queries from the model's JSON array.

    Entries equal to the original query (ignoring case) are dropped.
    Raises ``MalformedModelOutputError`` when fewer than two survive.
    """
    data = parse_llm_json(raw)
    if not isinstance(data, list):
        raise MalformedModelOutputError("Expected a JSON array of queries")

    seen = {original_query.strip().lower()}
    queries: List[str] = []
    for item in data:
        if not isinstance(item, str):
            continue
        query = item.strip()
        if not query or query.lower() in seen:
            continue
        seen.add(query.lower())
        queries.append(query)

    if len(queries) < MIN_REFORMULATIONS:
        raise MalformedModelOutputError(f"Only {len(queries)} usable reformulations")
    return queries[:MAX_REFORMULATIONS]


def _existing_titles(documents: Sequence[RetrievedDocument]) -> List[str]:
    titles: List[str] = []
    for doc in documents:
        title = doc.metadata.document_title
        if title and title not in titles:
            titles.append(title)
    return titles


class RetrievalExpanderNode:
    def __init__(self, llm: LLMService, retriever: HybridRetriever, settings: Settings):
        self.llm = llm
        self.retriever = retriever
        self.settings = settings

    async def _search_all(self, queries: Sequence[str], state: RunState) -> List[RetrievedDocument]:
        metadata_filter = build_narrow_filter(state)
        k = self.settings.expansion_results_per_query
        outcomes = await asyncio.gather(
            *(self.retriever.retrieve(query, k, metadata_filter) for query in queries),
            return_exceptions=True,
        )

        groups = []
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Reformulated query search failed", query=query, error=str(outcome))
                continue
            groups.append(outcome.documents)
        return merge_documents(*groups)

    @traceable(
        run_type="retriever",
        name="retrieval_expander",
        tags=["retrieval", "expansion", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        query = state.last_user_message()
        if not query:
            logger.warning("retrieval_expander received empty query", trace_id=state.trace_id)
            return {"expansion_attempted": True}

        logger.info(
            "retrieval_expander start",
            original_confidence=round(state.retrieval_confidence, 3),
            trace_id=state.trace_id,
        )

        try:
            raw = await self.llm.invoke(
                ModelRole.EXPANDER,
                build_retrieval_expander_messages(
                    query,
                    state.topic_domain,
                    _existing_titles(state.retrieved_documents),
                ),
            )
            queries = parse_reformulations(raw, query)
            new_documents = await self._search_all(queries, state)
        except CircuitOpenError:
            logger.warning("retrieval_expander circuit open, skipping expansion", trace_id=state.trace_id)
            return {"expansion_attempted": True}
        except Exception as e:
            logger.error("retrieval_expander failed", error=str(e), trace_id=state.trace_id)
            return {"expansion_attempted": True}

        merged = merge_documents(state.retrieved_documents, new_documents)
        confidence = compute_confidence([d.distance for d in merged if d.distance is not None])

        logger.info(
            "retrieval_expander completed",
            reformulated_queries=queries,
            original_docs=len(state.retrieved_documents),
            merged_docs=len(merged),
            original_confidence=round(state.retrieval_confidence, 3),
            new_confidence=round(confidence, 3),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return {
            "retrieved_documents": merged,
            "retrieval_confidence": confidence,
            "expansion_attempted": True,
            "reformulated_queries": queries,
        }

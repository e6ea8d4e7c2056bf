"""
retriever: hybrid search over the governance corpus.

Two modes:
- Sub-query mode (planner decomposed the question): one hybrid retrieval
  per sub-query, run concurrently, each filtered to its own domain and NGBs.
- Single-query mode: a narrow search filtered by detected NGBs and topic
  domain, broadened to NGB-or-universal documents when the narrow search
  returns fewer than ``min_narrow_results`` hits.

Results are merged by exact content, re-ranked with an authority-level
boost and cut to ``retrieval_top_k``. Confidence is computed from the raw
vector distances of the kept documents.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, get_args

import structlog
from langsmith import traceable

from api.composer.context import build_enriched_query
from api.schemas.agent_state import AuthorityLevel, RetrievedDocument, RunState, SubQuery
from api.tools.fusion import compute_confidence
from api.tools.retrieval_engine import HybridRetriever, MetadataFilter, merge_documents
from libs.common.settings import Settings

logger = structlog.get_logger(__name__)

AUTHORITY_LEVELS = get_args(AuthorityLevel)
MAX_AUTHORITY_BOOST = 0.3


def authority_boost(level: Optional[str]) -> float:
    """0.3 for ``law`` down to 0 for ``educational_guidance``; 0 when unknown."""
    if level not in AUTHORITY_LEVELS:
        return 0.0
    index = AUTHORITY_LEVELS.index(level)
    return MAX_AUTHORITY_BOOST * (1 - index / (len(AUTHORITY_LEVELS) - 1))


def rank_by_authority(documents: Sequence[RetrievedDocument], limit: int) -> List[RetrievedDocument]:
    """Sort by ``score * (1 + boost)`` descending, keeping input order on ties."""
    ranked = sorted(
        documents,
        key=lambda doc: doc.score * (1 + authority_boost(doc.metadata.authority_level)),
        reverse=True,
    )
    return ranked[:limit]


def _ngb_condition(ngb_ids: Sequence[str]) -> Any:
    return ngb_ids[0] if len(ngb_ids) == 1 else {"$in": list(ngb_ids)}


def build_narrow_filter(state: RunState) -> Optional[MetadataFilter]:
    conditions: MetadataFilter = {}
    if state.detected_ngb_ids:
        conditions["ngb_id"] = _ngb_condition(state.detected_ngb_ids)
    if state.topic_domain:
        conditions["topic_domain"] = state.topic_domain
    return conditions or None


def build_broad_filter(state: RunState) -> Optional[MetadataFilter]:
    """NGB-specific or universal (no NGB) documents; unfiltered without NGBs."""
    if not state.detected_ngb_ids:
        return None
    return {"$or": [{"ngb_id": _ngb_condition(state.detected_ngb_ids)}, {"ngb_id": None}]}


def build_sub_query_filter(sub_query: SubQuery) -> MetadataFilter:
    conditions: MetadataFilter = {"topic_domain": sub_query.domain}
    if sub_query.ngb_ids:
        conditions["ngb_id"] = _ngb_condition(sub_query.ngb_ids)
    return conditions


class RetrieverNode:
    def __init__(self, retriever: HybridRetriever, settings: Settings):
        self.retriever = retriever
        self.settings = settings

    async def _sub_query_documents(self, sub_queries: Sequence[SubQuery], trace_id: str) -> List[RetrievedDocument]:
        outcomes = await asyncio.gather(
            *(
                self.retriever.retrieve(sq.query, self.settings.narrow_filter_top_k, build_sub_query_filter(sq))
                for sq in sub_queries
            ),
            return_exceptions=True,
        )
        groups = []
        for sub_query, outcome in zip(sub_queries, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "Sub-query retrieval failed",
                    domain=sub_query.domain,
                    error=str(outcome),
                    trace_id=trace_id,
                )
                continue
            groups.append(outcome.documents)

        if not groups:
            # Every sub-query failed; surface the first error
            raise next(o for o in outcomes if isinstance(o, Exception))
        return merge_documents(*groups)

    async def _single_query_documents(self, state: RunState) -> List[RetrievedDocument]:
        query = build_enriched_query(state.messages)
        narrow_filter = build_narrow_filter(state)

        documents: List[RetrievedDocument] = []
        if narrow_filter:
            narrow = await self.retriever.retrieve(query, self.settings.narrow_filter_top_k, narrow_filter)
            documents = narrow.documents
            logger.info("Narrow retrieval finished", filter=narrow_filter, hits=len(documents), trace_id=state.trace_id)

        if len(documents) < self.settings.min_narrow_results:
            broad_filter = build_broad_filter(state)
            logger.info(
                "Broadening retrieval",
                narrow_hits=len(documents),
                filter=broad_filter,
                top_k=self.settings.broaden_filter_top_k,
                trace_id=state.trace_id,
            )
            broad = await self.retriever.retrieve(query, self.settings.broaden_filter_top_k, broad_filter)
            documents = merge_documents(documents, broad.documents)

        return documents

    @traceable(
        run_type="retriever",
        name="retriever",
        tags=["retrieval", "hybrid", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        logger.info(
            "retriever start",
            sub_query_count=len(state.sub_queries),
            topic_domain=state.topic_domain,
            trace_id=state.trace_id,
        )

        try:
            if state.sub_queries:
                candidates = await self._sub_query_documents(state.sub_queries, state.trace_id)
            else:
                candidates = await self._single_query_documents(state)

            documents = rank_by_authority(candidates, self.settings.retrieval_top_k)
            confidence = compute_confidence([d.distance for d in documents if d.distance is not None])

            logger.info(
                "retriever completed",
                candidates=len(candidates),
                document_count=len(documents),
                confidence=round(confidence, 3),
                duration_ms=round((time.time() - start_time) * 1000, 2),
                trace_id=state.trace_id,
            )
            return {
                "retrieved_documents": documents,
                "retrieval_confidence": confidence,
                "retrieval_status": "success",
            }

        except Exception as e:
            logger.error("retriever failed", error=str(e), trace_id=state.trace_id)
            return {
                "retrieved_documents": [],
                "retrieval_confidence": 0.0,
                "retrieval_status": "error",
            }

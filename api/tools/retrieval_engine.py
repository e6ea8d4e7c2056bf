"""Hybrid retrieval for governance documents.

Runs a vector similarity search and a lexical (BM25) search concurrently
against the same metadata filter, fuses the two rankings with Reciprocal
Rank Fusion and scores the accepted evidence set from the raw vector
distances. Each backend is wrapped in its own circuit breaker; when one
side fails the other is used alone. Transient failures are retried inside
the breaker when a retry policy is given.
"""

from __future__ import annotations

import asyncio
import time
from itertools import chain
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import structlog
from langchain_core.vectorstores import VectorStore
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying

from api.schemas.agent_state import DocumentMetadata, RetrievedDocument
from api.tools.fusion import (
    DEFAULT_RRF_K,
    DEFAULT_VECTOR_WEIGHT,
    LexicalHit,
    VectorHit,
    compute_confidence,
    rrf_fuse,
)
from libs.resilience.circuit_breaker import CircuitBreaker
from libs.resilience.retry import run_with_retry
from libs.utils.dedupe import dedupe_exact

logger = structlog.get_logger(__name__)

MetadataFilter = Dict[str, Any]


@runtime_checkable
class VectorSearch(Protocol):
    async def similarity_search(
        self, query: str, k: int, filter: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        ...


@runtime_checkable
class LexicalSearch(Protocol):
    async def search(
        self, query: str, k: int, filter: Optional[MetadataFilter] = None
    ) -> List[LexicalHit]:
        ...


class RetrievalResult(BaseModel):
    """Fused documents and the confidence of the evidence set."""

    documents: List[RetrievedDocument] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class LangChainVectorSearch:
    """Adapts a LangChain ``VectorStore`` to :class:`VectorSearch`.

    Stores such as pgvector and Chroma return distances (lower is closer)
    from ``asimilarity_search_with_score``. Stores that return cosine
    similarities instead (``InMemoryVectorStore``) need
    ``scores_are_similarities=True``; their scores become ``1 - similarity``.
    ``filter_adapter`` converts metadata filters for stores that do not take
    dict filters.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        *,
        scores_are_similarities: bool = False,
        filter_adapter: Optional[Callable[[MetadataFilter], Any]] = None,
    ):
        self.vector_store = vector_store
        self.scores_are_similarities = scores_are_similarities
        self.filter_adapter = filter_adapter

    async def similarity_search(
        self, query: str, k: int, filter: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        kwargs: Dict[str, Any] = {"k": k}
        if filter:
            kwargs["filter"] = self.filter_adapter(filter) if self.filter_adapter else filter
        pairs = await self.vector_store.asimilarity_search_with_score(query, **kwargs)
        return [
            VectorHit(
                content=doc.page_content,
                metadata=dict(doc.metadata or {}),
                distance=1.0 - float(score) if self.scores_are_similarities else float(score),
            )
            for doc, score in pairs
        ]


def to_retrieved_document(
    content: str,
    metadata: Dict[str, Any],
    score: float,
    distance: Optional[float] = None,
) -> RetrievedDocument:
    return RetrievedDocument(
        content=content,
        metadata=DocumentMetadata.model_validate(metadata or {}),
        score=score,
        distance=distance,
    )


class HybridRetriever:
    """Concurrent vector + lexical retrieval fused with RRF."""

    def __init__(
        self,
        vector_search: VectorSearch,
        vector_breaker: CircuitBreaker,
        lexical_search: Optional[LexicalSearch] = None,
        lexical_breaker: Optional[CircuitBreaker] = None,
        *,
        rrf_k: int = DEFAULT_RRF_K,
        vector_weight: float = DEFAULT_VECTOR_WEIGHT,
        retrying: Optional[AsyncRetrying] = None,
    ):
        if lexical_search is not None and lexical_breaker is None:
            raise ValueError("lexical_breaker is required when lexical_search is provided")
        self.vector_search = vector_search
        self.vector_breaker = vector_breaker
        self.lexical_search = lexical_search
        self.lexical_breaker = lexical_breaker
        self.rrf_k = rrf_k
        self.vector_weight = vector_weight
        self.retrying = retrying

    async def _vector(self, query: str, k: int, filter: Optional[MetadataFilter]) -> List[VectorHit]:
        return await self.vector_breaker.execute(
            lambda: run_with_retry(
                lambda: self.vector_search.similarity_search(query, k, filter),
                retrying=self.retrying,
            )
        )

    async def _lexical(self, query: str, k: int, filter: Optional[MetadataFilter]) -> List[LexicalHit]:
        if self.lexical_search is None:
            return []
        return await self.lexical_breaker.execute(
            lambda: run_with_retry(
                lambda: self.lexical_search.search(query, k, filter),
                retrying=self.retrying,
            )
        )

    async def retrieve(
        self,
        query: str,
        k: int,
        filter: Optional[MetadataFilter] = None,
    ) -> RetrievalResult:
        """Retrieve up to ``k`` fused documents for ``query``.

        Raises the vector-side error when both searches fail.
        """
        start_time = time.time()
        vector_out, lexical_out = await asyncio.gather(
            self._vector(query, k, filter),
            self._lexical(query, k, filter),
            return_exceptions=True,
        )

        for outcome in (vector_out, lexical_out):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        vector_failed = isinstance(vector_out, Exception)
        lexical_failed = isinstance(lexical_out, Exception)

        if vector_failed and lexical_failed:
            logger.error(
                "Hybrid retrieval failed on both backends",
                vector_error=str(vector_out),
                lexical_error=str(lexical_out),
            )
            raise vector_out
        if vector_failed:
            logger.warning("Vector search failed, using lexical results only", error=str(vector_out))
            vector_out = []
        if lexical_failed:
            logger.warning("Lexical search failed, using vector results only", error=str(lexical_out))
            lexical_out = []

        fused = rrf_fuse(
            vector_out,
            lexical_out,
            vector_weight=self.vector_weight,
            rrf_k=self.rrf_k,
            limit=k,
        )
        documents = [
            to_retrieved_document(c.content, c.metadata, c.score, c.distance) for c in fused
        ]
        confidence = compute_confidence([d.distance for d in documents if d.distance is not None])

        logger.info(
            "Hybrid retrieval completed",
            vector_hits=len(vector_out),
            lexical_hits=len(lexical_out),
            fused=len(documents),
            confidence=round(confidence, 3),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return RetrievalResult(documents=documents, confidence=confidence)


def merge_documents(*groups: Sequence[RetrievedDocument]) -> List[RetrievedDocument]:
    """Concatenate document groups, keeping the first occurrence of each exact content."""
    return dedupe_exact(chain.from_iterable(groups), key=lambda doc: doc.content)

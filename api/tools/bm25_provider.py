"""
BM25 lexical search over the governance document corpus.

Implements the keyword half of hybrid retrieval with the rank-bm25 library.
The index is built lazily from an in-memory corpus on first search and
rebuilt when the corpus is replaced.

Key features:
- BM25Okapi scoring with a governance-aware tokenizer
- Async-safe lazy index build behind an asyncio.Lock
- Metadata filtering (equality, ``$in``, ``$or``, null matches)
- Zero-score hits dropped
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from rank_bm25 import BM25Okapi

from api.tools.fusion import LexicalHit

logger = structlog.get_logger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:[-'][a-z0-9]+)*")

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "for", "from",
        "how", "i", "if", "in", "is", "it", "my", "of", "on", "or", "the", "to",
        "what", "when", "where", "which", "who", "with", "you",
    }
)


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens with stopwords removed.

    Keeps hyphenated terms such as ``anti-doping`` and ``section-9`` intact.
    """
    return [t for t in _TOKEN_RE.findall(text.lower()) if t not in STOPWORDS]


def matches_filter(metadata: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a metadata filter against a document's metadata.

    Supported forms::

        {"ngb_id": "usa-swimming"}                  # equality
        {"ngb_id": None}                            # missing or null
        {"ngb_id": {"$in": ["a", "b"]}}             # membership
        {"$or": [{"ngb_id": "a"}, {"ngb_id": None}]}
    """
    if not filter:
        return True
    for key, condition in filter.items():
        if key == "$or":
            if not any(matches_filter(metadata, sub) for sub in condition):
                return False
            continue
        value = metadata.get(key)
        if isinstance(condition, dict) and "$in" in condition:
            if value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


@dataclass
class CorpusDocument:
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class BM25LexicalSearch:
    """
    In-memory BM25 search provider.

    Usage:
        search = BM25LexicalSearch(documents)
        hits = await search.search("team selection appeal", k=10, filter={"ngb_id": "usa-swimming"})
    """

    def __init__(self, documents: Optional[Sequence[CorpusDocument]] = None):
        self._documents: List[CorpusDocument] = list(documents or [])
        self._index: Optional[BM25Okapi] = None
        self._build_lock = asyncio.Lock()

    @property
    def corpus_size(self) -> int:
        return len(self._documents)

    def replace_corpus(self, documents: Sequence[CorpusDocument]) -> None:
        """Swap the corpus; the index is rebuilt on the next search."""
        self._documents = list(documents)
        self._index = None

    async def _ensure_index(self) -> Optional[BM25Okapi]:
        if self._index is not None:
            return self._index

        async with self._build_lock:
            # Double-check after acquiring the lock
            if self._index is not None:
                return self._index
            if not self._documents:
                return None

            start_time = time.time()
            tokenized = [tokenize(doc.content) for doc in self._documents]
            self._index = BM25Okapi(tokenized)
            logger.info(
                "BM25 index built",
                corpus_size=len(self._documents),
                build_time_ms=round((time.time() - start_time) * 1000, 2),
            )
            return self._index

    async def search(
        self,
        query: str,
        k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[LexicalHit]:
        """Return up to ``k`` hits ranked by BM25 score (highest first)."""
        if not query.strip():
            return []

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        index = await self._ensure_index()
        if index is None:
            logger.warning("BM25 corpus is empty, returning no results")
            return []

        start_time = time.time()
        scores = index.get_scores(query_tokens)

        ranked = sorted(range(len(self._documents)), key=lambda i: float(scores[i]), reverse=True)
        hits: List[LexicalHit] = []
        for idx in ranked:
            score = float(scores[idx])
            if score <= 0:
                break
            doc = self._documents[idx]
            if not matches_filter(doc.metadata, filter):
                continue
            hits.append(LexicalHit(id=doc.id, content=doc.content, metadata=doc.metadata, score=score))
            if len(hits) >= k:
                break

        logger.debug(
            "BM25 search completed",
            query_tokens=len(query_tokens),
            results_count=len(hits),
            search_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return hits

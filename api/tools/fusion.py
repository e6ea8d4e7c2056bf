"""Reciprocal Rank Fusion and retrieval confidence.

Pure functions with no I/O so the ranking math is easy to test in isolation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

DEFAULT_RRF_K = 60
DEFAULT_VECTOR_WEIGHT = 0.5

BEST_MATCH_WEIGHT = 0.6
AVERAGE_MATCH_WEIGHT = 0.4


@dataclass
class VectorHit:
    """Vector search hit; ``distance`` is the raw store distance (lower is closer)."""

    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    distance: float = 0.0


@dataclass
class LexicalHit:
    """Keyword search hit; ``score`` is the engine's relevance score (higher is better)."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    score: float = 0.0


@dataclass
class FusedCandidate:
    content: str
    metadata: Dict[str, Any]
    score: float
    distance: Optional[float] = None
    vector_rank: Optional[int] = None
    lexical_rank: Optional[int] = None


def rrf_fuse(
    vector_hits: Sequence[VectorHit],
    lexical_hits: Sequence[LexicalHit],
    *,
    vector_weight: float = DEFAULT_VECTOR_WEIGHT,
    rrf_k: int = DEFAULT_RRF_K,
    limit: Optional[int] = None,
) -> List[FusedCandidate]:
    """Fuse two ranked lists with weighted Reciprocal Rank Fusion.

    Per document (keyed by exact content)::

        score = w * 1/(rrf_k + vector_rank) + (1 - w) * 1/(rrf_k + lexical_rank)

    Ranks are 1-based; a document absent from a list contributes 0 for that
    list. Results are sorted by score descending; ties keep first-seen order
    (vector list first, then lexical list).
    """
    if not 0.0 <= vector_weight <= 1.0:
        raise ValueError(f"vector_weight must be within [0, 1], got {vector_weight}")

    candidates: Dict[str, FusedCandidate] = {}

    for rank, hit in enumerate(vector_hits, start=1):
        if hit.content in candidates:
            continue
        candidates[hit.content] = FusedCandidate(
            content=hit.content,
            metadata=hit.metadata,
            score=0.0,
            distance=hit.distance,
            vector_rank=rank,
        )

    for rank, hit in enumerate(lexical_hits, start=1):
        existing = candidates.get(hit.content)
        if existing is None:
            candidates[hit.content] = FusedCandidate(
                content=hit.content,
                metadata=hit.metadata,
                score=0.0,
                lexical_rank=rank,
            )
        elif existing.lexical_rank is None:
            existing.lexical_rank = rank

    for candidate in candidates.values():
        vector_term = vector_weight / (rrf_k + candidate.vector_rank) if candidate.vector_rank else 0.0
        lexical_term = (1 - vector_weight) / (rrf_k + candidate.lexical_rank) if candidate.lexical_rank else 0.0
        candidate.score = vector_term + lexical_term

    # sorted() is stable, so equal scores keep insertion (first-seen) order
    fused = sorted(candidates.values(), key=lambda c: c.score, reverse=True)
    return fused[:limit] if limit is not None else fused


def _clip(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_confidence(distances: Sequence[float]) -> float:
    """Confidence in [0, 1] from raw vector distances of the accepted matches.

    ``0.6 * clip(1 - best) + 0.4 * clip(1 - mean)``, where ``best`` is the
    smallest distance. Closer matches yield higher confidence; an empty set
    yields 0.
    """
    if not distances:
        return 0.0
    best = min(distances)
    average = sum(distances) / len(distances)
    return BEST_MATCH_WEIGHT * _clip(1 - best) + AVERAGE_MATCH_WEIGHT * _clip(1 - average)

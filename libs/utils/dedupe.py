"""Document de-duplication helpers.

Exact content matching is the merge policy used by retrieval. The
near-duplicate grouping is exposed for analysis of overlapping chunk windows
and is not applied to retrieval results.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, List, Sequence, Set, Tuple, TypeVar

T = TypeVar("T")

NEAR_DUPLICATE_THRESHOLD = 0.85

_WORD_RE = re.compile(r"\w+")


def dedupe_exact(items: Iterable[T], key: Callable[[T], str]) -> List[T]:
    """Keep the first occurrence of each exact key, preserving order."""
    seen: Set[str] = set()
    unique: List[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


def word_trigrams(text: str) -> Set[Tuple[str, ...]]:
    words = [w.lower() for w in _WORD_RE.findall(text)]
    if len(words) < 3:
        return {tuple(words)} if words else set()
    return {tuple(words[i:i + 3]) for i in range(len(words) - 2)}


def jaccard(a: Set, b: Set) -> float:
    if not a and not b:
        return 1.0
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def near_duplicate_groups(
    texts: Sequence[str],
    *,
    threshold: float = NEAR_DUPLICATE_THRESHOLD,
) -> List[List[int]]:
    """Group indices of texts whose trigram Jaccard similarity meets ``threshold``.

    Each index appears in exactly one group; groups keep input order.
    """
    shingles = [word_trigrams(t) for t in texts]
    assigned: Set[int] = set()
    groups: List[List[int]] = []
    for i in range(len(texts)):
        if i in assigned:
            continue
        group = [i]
        assigned.add(i)
        for j in range(i + 1, len(texts)):
            if j not in assigned and jaccard(shingles[i], shingles[j]) >= threshold:
                group.append(j)
                assigned.add(j)
        groups.append(group)
    return groups

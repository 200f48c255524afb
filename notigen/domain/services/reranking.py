"""Pure domain functions for score normalization and re-scoring.

Deterministic, no I/O. The retrieval engine composes these after the
vector index returns raw similarities.

Functions:
- minmax_normalize: scale a result set's scores linearly to [0,1]
- fixed_range_normalize: map cosine similarity [-1,1] to [0,1] independent of the set
- keyword_boost: hybrid re-scoring by keyword matches in content or tags
- blend_scores: weighted combination of original and custom scores
- merge_by_id: combine several result lists by id with a merge strategy
- sort_by_scores_desc: stable descending sort
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from notigen.domain.errors import ValidationError
from notigen.domain.models import SearchResult

T = TypeVar("T")

MERGE_STRATEGIES = ("max", "avg", "sum")


def minmax_normalize(scores: Sequence[float]) -> list[float]:
    """Pure function: scales scores linearly to [0,1].

    Returns:
        Normalized scores. Empty input returns empty list.
        All-equal scores map to 1.0 (every hit is the best hit).

    Examples:
        >>> minmax_normalize([1.0, 2.0, 3.0])
        [0.0, 0.5, 1.0]
        >>> minmax_normalize([0.8, 0.8])
        [1.0, 1.0]

    Note:
        Relative to the set only; the same raw similarity can normalize
        differently in two queries.
    """
    if not scores:
        return []
    lo, hi = min(scores), max(scores)
    if hi == lo:
        return [1.0] * len(scores)
    return [(s - lo) / (hi - lo) for s in scores]


def fixed_range_normalize(scores: Sequence[float]) -> list[float]:
    """Map cosine similarity from [-1,1] to [0,1], clamped; comparable across queries."""
    return [min(1.0, max(0.0, (s + 1.0) / 2.0)) for s in scores]


def count_keyword_matches(result: SearchResult, keywords: Iterable[str]) -> int:
    content = result.payload.content.lower()
    tags = [t.lower() for t in result.payload.tags]
    matches = 0
    for kw in keywords:
        needle = kw.lower()
        if needle in content or any(needle in tag for tag in tags):
            matches += 1
    return matches


def keyword_boost(
    results: Sequence[SearchResult],
    keywords: Sequence[str],
    boost_factor: float = 1.2,
    require_all: bool = False,
) -> list[SearchResult]:
    """Hybrid re-scoring: ``score * boost_factor ** matches`` capped at 1.0.

    With ``require_all`` partial matches are dropped before boosting. Boosted
    results carry ``matched_keywords`` and ``keyword_boost`` in payload metadata
    and come back re-sorted by boosted score.
    """
    boosted: list[SearchResult] = []
    for r in results:
        matches = count_keyword_matches(r, keywords)
        if require_all and matches < len(keywords):
            continue
        factor = boost_factor**matches
        boosted.append(
            r.rescored(
                min(r.score * factor, 1.0),
                matched_keywords=matches,
                keyword_boost=factor,
            )
        )
    return sorted(boosted, key=lambda r: r.score, reverse=True)


def blend_scores(original: float, custom: float, original_weight: float = 0.6) -> float:
    """finalScore = w * original + (1 - w) * custom."""
    return original_weight * original + (1.0 - original_weight) * custom


def _merge(existing: float, incoming: float, strategy: str) -> float:
    if strategy == "max":
        return max(existing, incoming)
    if strategy == "avg":
        return (existing + incoming) / 2.0
    return min(existing + incoming, 1.0)


def merge_by_id(
    result_lists: Iterable[Sequence[SearchResult]],
    strategy: str = "max",
    deduplicate_by_id: bool = True,
) -> list[SearchResult]:
    """Merge several result lists by id, then sort descending.

    Without ``deduplicate_by_id`` the first occurrence of each id wins
    unchanged. ``avg`` folds pairwise ((a + b) / 2) in list order.
    """
    if strategy not in MERGE_STRATEGIES:
        raise ValidationError(f"unknown merge strategy: {strategy}")
    merged: dict[str, SearchResult] = {}
    for results in result_lists:
        for r in results:
            existing = merged.get(r.id)
            if existing is None:
                merged[r.id] = r
            elif deduplicate_by_id:
                merged[r.id] = existing.rescored(_merge(existing.score, r.score, strategy))
    return sorted(merged.values(), key=lambda r: r.score, reverse=True)


def sort_by_scores_desc(items: Sequence[T], scores: Sequence[float]) -> list[T]:
    """Stable sort (descending) by scores, pure & deterministic."""
    pairs: list[tuple[float, T]] = list(zip(scores, items, strict=False))
    pairs.sort(key=lambda p: p[0], reverse=True)
    return [it for _, it in pairs]

# notigen/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

import math
from collections.abc import Sequence

from notigen.domain.models import SearchResult
from notigen.domain.similarity import jaccard, tokenize

TOKENS_PER_CHAR = 0.25
FORMATTING_OVERHEAD_TOKENS = 10


def deduplicate_by_content(
    results: Sequence[SearchResult],
    threshold: float = 0.95,
) -> list[SearchResult]:
    """
    Remove repeated ids and lexical near-duplicates (Jaccard >= threshold).

    - Keeps the first occurrence; later items are compared against kept ones only.
    - Idempotent: running it on its own output returns the same list.
    """
    kept: list[SearchResult] = []
    kept_tokens: list[frozenset[str]] = []
    seen_ids: set[str] = set()
    for r in results:
        if r.id in seen_ids:
            continue
        tokens = tokenize(r.payload.content)
        if any(jaccard(tokens, other) >= threshold for other in kept_tokens):
            continue
        seen_ids.add(r.id)
        kept.append(r)
        kept_tokens.append(tokens)
    return kept


def mmr_rank(
    results: Sequence[SearchResult],
    diversity_weight: float = 0.3,
) -> list[SearchResult]:
    """
    Maximal Marginal Relevance ordering of the whole candidate set.

    mmr(c) = (1 - λ) * relevance(c) - λ * max_{s in selected} sim(c, s)

    Starts from the highest-scoring result. Ties keep input order (strict ``>``),
    so λ = 0 degenerates to a stable score-descending sort.
    """
    if not results:
        return []
    remaining = sorted(results, key=lambda r: r.score, reverse=True)
    tokens = {id(r): tokenize(r.payload.content) for r in remaining}

    selected = [remaining.pop(0)]
    while remaining:
        best_idx = 0
        best_score = -math.inf
        for idx, cand in enumerate(remaining):
            max_sim = max(jaccard(tokens[id(cand)], tokens[id(s)]) for s in selected)
            score = (1.0 - diversity_weight) * cand.score - diversity_weight * max_sim
            if score > best_score:
                best_score = score
                best_idx = idx
        selected.append(remaining.pop(best_idx))
    return selected


def estimate_tokens(text: str, tokens_per_char: float = TOKENS_PER_CHAR) -> int:
    return math.ceil(len(text) * tokens_per_char)


def fit_to_budget(
    results: Sequence[SearchResult],
    max_tokens: int,
    tokens_per_char: float = TOKENS_PER_CHAR,
) -> tuple[list[SearchResult], int]:
    """Greedy prefix of ``results`` whose estimated cost stays within ``max_tokens``.

    Stops at the first item that would overflow; later, smaller items are not
    considered so the ranked order is preserved.
    """
    selected: list[SearchResult] = []
    total = 0
    for r in results:
        cost = estimate_tokens(r.payload.content, tokens_per_char) + FORMATTING_OVERHEAD_TOKENS
        if total + cost > max_tokens:
            break
        selected.append(r)
        total += cost
    return selected, total

"""Pure similarity functions over template content and vectors.

Jaccard over lowercase whitespace tokens longer than two characters for
content comparison (lexical only: two paraphrases of the same template
score low), plus cosine for raw vector similarity.
"""

from collections.abc import Sequence
from itertools import combinations
from math import sqrt

from .models import ContextCoverage, SearchResult


def tokenize(text: str) -> frozenset[str]:
    """Lowercase whitespace tokens with more than 2 characters."""
    return frozenset(w for w in text.lower().split() if len(w) > 2)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    """|A ∩ B| / |A ∪ B|; an empty union yields 0.0."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def content_similarity(text_a: str, text_b: str) -> float:
    return jaccard(tokenize(text_a), tokenize(text_b))


def context_diversity(results: Sequence[SearchResult]) -> float:
    """1 - mean pairwise similarity; sets of 0 or 1 items are fully diverse."""
    if len(results) <= 1:
        return 1.0
    tokens = [tokenize(r.payload.content) for r in results]
    pairs = list(combinations(tokens, 2))
    mean_sim = sum(jaccard(a, b) for a, b in pairs) / len(pairs)
    return 1.0 - mean_sim


def context_coverage(results: Sequence[SearchResult]) -> ContextCoverage:
    """Distinct facet counts across a selected set."""
    return ContextCoverage(
        channels=len({r.payload.channel for r in results if r.payload.channel}),
        categories=len({r.payload.category for r in results if r.payload.category}),
        tones=len({r.payload.tone for r in results if r.payload.tone}),
        languages=len({r.payload.language for r in results if r.payload.language}),
        unique_tags=len({t for r in results for t in r.payload.tags}),
        total_templates=len(results),
    )


def cosine(u: Sequence[float], v: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; zero vectors are treated as norm 1."""
    dot = sum(a * b for a, b in zip(u, v, strict=False))
    nu = sqrt(sum(a * a for a in u)) or 1.0
    nv = sqrt(sum(b * b for b in v)) or 1.0
    return dot / (nu * nv)

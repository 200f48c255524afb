"""Tests for lexical (Jaccard) and vector (cosine) similarity."""

import math

from notigen.domain.models import SearchResult, TemplatePayload
from notigen.domain.similarity import (
    content_similarity,
    context_coverage,
    context_diversity,
    cosine,
    jaccard,
    tokenize,
)


def make_result(id_: str, content: str, **facets) -> SearchResult:
    return SearchResult(
        id=id_, score=0.9, payload=TemplatePayload(template_id=id_, content=content, **facets)
    )


def test_tokenize_lowercases_and_drops_short_words():
    """Tokens of length <= 2 are ignored."""
    assert tokenize("Your Order is on the WAY") == frozenset({"your", "order", "the", "way"})


def test_jaccard_identical_and_disjoint():
    a = frozenset({"order", "shipped"})
    assert jaccard(a, a) == 1.0
    assert jaccard(a, frozenset({"password", "reset"})) == 0.0


def test_jaccard_empty_union_is_zero():
    """Two texts made only of short words have no tokens at all."""
    assert jaccard(frozenset(), frozenset()) == 0.0
    assert content_similarity("a b", "to of") == 0.0


def test_content_similarity_partial_overlap():
    sim = content_similarity("order shipped today", "order delivered today")
    assert math.isclose(sim, 2 / 4)


def test_context_diversity_single_item_is_fully_diverse():
    assert context_diversity([]) == 1.0
    assert context_diversity([make_result("a", "anything here")]) == 1.0


def test_context_diversity_is_one_minus_mean_similarity():
    same = [make_result("a", "order shipped today"), make_result("b", "order shipped today")]
    assert context_diversity(same) == 0.0
    apart = [make_result("a", "order shipped"), make_result("b", "password reset")]
    assert context_diversity(apart) == 1.0


def test_context_coverage_counts_distinct_facets():
    results = [
        make_result("a", "x", channel="email", category="order", tone="formal", tags=("a", "b")),
        make_result("b", "y", channel="sms", category="order", tone="formal", tags=("b", "c")),
    ]
    cov = context_coverage(results)
    assert cov.channels == 2
    assert cov.categories == 1
    assert cov.tones == 1
    assert cov.languages == 0
    assert cov.unique_tags == 3
    assert cov.total_templates == 2


def test_cosine_parallel_orthogonal_opposite():
    assert math.isclose(cosine((1.0, 0.0), (2.0, 0.0)), 1.0)
    assert math.isclose(cosine((1.0, 0.0), (0.0, 1.0)), 0.0)
    assert math.isclose(cosine((1.0, 0.0), (-1.0, 0.0)), -1.0)

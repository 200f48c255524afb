"""Tests for pure score normalization and re-scoring functions."""

import math

import pytest

from notigen.domain.errors import ValidationError
from notigen.domain.models import SearchResult, TemplatePayload
from notigen.domain.services.reranking import (
    blend_scores,
    count_keyword_matches,
    fixed_range_normalize,
    keyword_boost,
    merge_by_id,
    minmax_normalize,
    sort_by_scores_desc,
)


def make_result(id_: str, score: float, content: str = "text", tags=()) -> SearchResult:
    return SearchResult(
        id=id_,
        score=score,
        payload=TemplatePayload(template_id=id_, content=content, tags=tuple(tags)),
    )


def test_minmax_normalize_basic():
    """Scores scale linearly to [0,1]."""
    assert minmax_normalize([1.0, 2.0, 3.0]) == [0.0, 0.5, 1.0]


def test_minmax_normalize_empty():
    assert minmax_normalize([]) == []


def test_minmax_normalize_equal_values_map_to_one():
    """A set of equally good hits are all the best hit."""
    assert minmax_normalize([0.8, 0.8, 0.8]) == [1.0, 1.0, 1.0]
    assert minmax_normalize([0.42]) == [1.0]


def test_minmax_depends_on_the_rest_of_the_set():
    """The same raw score normalizes differently in two queries."""
    assert minmax_normalize([0.7, 0.9])[0] == 0.0
    assert minmax_normalize([0.5, 0.7, 0.9])[1] == pytest.approx(0.5)


def test_fixed_range_normalize_is_set_independent():
    assert fixed_range_normalize([-1.0, 0.0, 1.0]) == [0.0, 0.5, 1.0]
    assert fixed_range_normalize([0.7]) == fixed_range_normalize([0.7, 0.1])[:1]


def test_count_keyword_matches_content_and_tags_case_insensitive():
    r = make_result("a", 0.5, content="Your ORDER has shipped", tags=["Express"])
    assert count_keyword_matches(r, ["order", "express", "refund"]) == 2


def test_keyword_boost_multiplies_and_caps():
    results = [
        make_result("plain", 0.9, content="nothing relevant"),
        make_result("two", 0.5, content="order shipped"),
        make_result("capped", 0.95, content="order shipped"),
    ]
    boosted = keyword_boost(results, ["order", "shipped"], boost_factor=1.2)
    by_id = {r.id: r for r in boosted}
    assert math.isclose(by_id["two"].score, 0.5 * 1.44)
    assert by_id["capped"].score == 1.0
    assert by_id["plain"].score == 0.9
    assert by_id["two"].payload.metadata["matched_keywords"] == 2
    assert [r.id for r in boosted] == ["capped", "plain", "two"]


def test_keyword_boost_require_all_drops_partial_matches():
    results = [
        make_result("both", 0.5, content="order shipped"),
        make_result("one", 0.9, content="order placed"),
    ]
    boosted = keyword_boost(results, ["order", "shipped"], require_all=True)
    assert [r.id for r in boosted] == ["both"]


def test_blend_scores_default_weights():
    assert math.isclose(blend_scores(1.0, 0.0), 0.6)
    assert math.isclose(blend_scores(0.5, 1.0), 0.6 * 0.5 + 0.4 * 1.0)


class TestMergeById:
    lists = [
        [make_result("1", 0.9), make_result("2", 0.8)],
        [make_result("1", 0.7), make_result("3", 0.6)],
    ]

    def test_max(self) -> None:
        merged = merge_by_id(self.lists, "max")
        assert [(r.id, r.score) for r in merged] == [("1", 0.9), ("2", 0.8), ("3", 0.6)]

    def test_avg(self) -> None:
        merged = {r.id: r.score for r in merge_by_id(self.lists, "avg")}
        assert math.isclose(merged["1"], 0.8)

    def test_sum_is_capped(self) -> None:
        merged = {r.id: r.score for r in merge_by_id(self.lists, "sum")}
        assert merged["1"] == 1.0

    def test_without_dedup_first_occurrence_wins(self) -> None:
        lists = [[make_result("1", 0.4)], [make_result("1", 0.9)]]
        merged = merge_by_id(lists, "max", deduplicate_by_id=False)
        assert [(r.id, r.score) for r in merged] == [("1", 0.4)]

    def test_merge_is_order_independent_for_max_and_sum(self) -> None:
        for strategy in ("max", "sum"):
            forward = merge_by_id(self.lists, strategy)
            backward = merge_by_id(list(reversed(self.lists)), strategy)
            assert {r.id: r.score for r in forward} == {r.id: r.score for r in backward}

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValidationError):
            merge_by_id(self.lists, "median")


def test_sort_by_scores_desc_is_stable():
    assert sort_by_scores_desc(["a", "b", "c"], [0.5, 0.9, 0.5]) == ["b", "a", "c"]

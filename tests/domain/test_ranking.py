"""Tests for dedup, MMR ordering and token-budget fitting."""

from notigen.domain.models import SearchResult, TemplatePayload
from notigen.domain.services.ranking import (
    FORMATTING_OVERHEAD_TOKENS,
    deduplicate_by_content,
    estimate_tokens,
    fit_to_budget,
    mmr_rank,
)
from notigen.domain.similarity import content_similarity


def make_result(id_: str, score: float, content: str) -> SearchResult:
    return SearchResult(
        id=id_, score=score, payload=TemplatePayload(template_id=id_, content=content)
    )


# 17 shared tokens + 1 differing token each -> Jaccard 17/19 ~= 0.894 (< 0.95)
# 40 shared tokens + 1 differing token each -> Jaccard 40/42 ~= 0.952 (>= 0.95)
def _words(n: int) -> str:
    return " ".join(f"word{i:03d}" for i in range(n))


class TestDeduplicate:
    def test_removes_repeated_ids(self) -> None:
        """Same id twice keeps only the first occurrence."""
        items = [make_result("a", 0.9, "order shipped"), make_result("a", 0.8, "other text")]
        assert [r.id for r in deduplicate_by_content(items)] == ["a"]

    def test_exact_match_and_near_duplicate_keep_one(self) -> None:
        """An exact hit and a near-duplicate above the threshold collapse into one."""
        exact = make_result("exact", 0.95, _words(40) + " shipped")
        near = make_result("near", 0.94, _words(40) + " dispatched")
        assert content_similarity(exact.payload.content, near.payload.content) >= 0.95

        kept = deduplicate_by_content([exact, near], threshold=0.95)
        assert [r.id for r in kept] == ["exact"]

    def test_keeps_items_below_threshold(self) -> None:
        a = make_result("a", 0.9, _words(17) + " shipped")
        b = make_result("b", 0.8, _words(17) + " delivered")
        assert len(deduplicate_by_content([a, b], threshold=0.95)) == 2

    def test_idempotent(self) -> None:
        """Running dedup on its own output yields the same list."""
        items = [
            make_result("a", 0.9, _words(40) + " one"),
            make_result("b", 0.8, _words(40) + " two"),
            make_result("c", 0.7, "password reset instructions"),
            make_result("a", 0.6, "duplicate id"),
        ]
        once = deduplicate_by_content(items)
        assert deduplicate_by_content(once) == once

    def test_no_pair_at_or_above_threshold_survives(self) -> None:
        items = [make_result(str(i), 1.0 - i / 10, _words(30 + i)) for i in range(6)]
        kept = deduplicate_by_content(items, threshold=0.9)
        for i, x in enumerate(kept):
            for y in kept[i + 1 :]:
                assert content_similarity(x.payload.content, y.payload.content) < 0.9


class TestMMR:
    def test_lambda_zero_is_score_descending(self) -> None:
        items = [
            make_result("low", 0.2, "alpha beta gamma"),
            make_result("high", 0.9, "alpha beta gamma"),
            make_result("mid", 0.5, "delta epsilon zeta"),
        ]
        assert [r.id for r in mmr_rank(items, diversity_weight=0.0)] == ["high", "mid", "low"]

    def test_diversity_promotes_dissimilar_candidate(self) -> None:
        """A slightly lower but novel result overtakes a redundant one."""
        items = [
            make_result("top", 0.90, "order shipped tracking number available"),
            make_result("redundant", 0.85, "order shipped tracking number available now"),
            make_result("novel", 0.80, "password reset link expires soon"),
        ]
        ranked = mmr_rank(items, diversity_weight=0.5)
        assert [r.id for r in ranked] == ["top", "novel", "redundant"]

    def test_starts_from_highest_score_and_keeps_all(self) -> None:
        items = [make_result(str(i), s, f"text number{i}") for i, s in enumerate([0.3, 0.8, 0.5])]
        ranked = mmr_rank(items, diversity_weight=0.3)
        assert ranked[0].id == "1"
        assert sorted(r.id for r in ranked) == ["0", "1", "2"]

    def test_empty(self) -> None:
        assert mmr_rank([]) == []


class TestBudget:
    def test_estimate_tokens_rounds_up(self) -> None:
        assert estimate_tokens("abcde") == 2  # ceil(5 * 0.25)
        assert estimate_tokens("") == 0

    def test_stops_at_first_overflow(self) -> None:
        """Greedy prefix; a later, smaller item is not squeezed in."""
        items = [
            make_result("a", 0.9, "x" * 400),  # 100 + 10
            make_result("b", 0.8, "x" * 400),  # 100 + 10
            make_result("c", 0.7, "x" * 4),  # 1 + 10
        ]
        selected, total = fit_to_budget(items, max_tokens=150)
        assert [r.id for r in selected] == ["a"]
        assert total == 100 + FORMATTING_OVERHEAD_TOKENS

    def test_total_never_exceeds_budget(self) -> None:
        items = [make_result(str(i), 0.9, "y" * (37 * i + 5)) for i in range(20)]
        for budget in (0, 11, 50, 333, 1000, 8000):
            selected, total = fit_to_budget(items, max_tokens=budget)
            assert total <= budget
            assert total == sum(
                estimate_tokens(r.payload.content) + FORMATTING_OVERHEAD_TOKENS for r in selected
            )

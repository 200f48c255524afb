"""Tests for ContextAssembler: filtering, dedup, budget and compression."""

import pytest

from notigen.application.dto.generation_dto import AssemblyOptions
from notigen.application.services.context_assembler import ContextAssembler
from notigen.domain.errors import ValidationError
from notigen.domain.models import SearchResult, TemplatePayload
from notigen.domain.services.prompting import DEFAULT_ASSEMBLY_SYSTEM_PROMPT


def make_result(id_: str, score: float, content: str, channel: str = "email") -> SearchResult:
    return SearchResult(
        id=id_,
        score=score,
        payload=TemplatePayload(template_id=id_, content=content, channel=channel),
    )


def shared(n: int) -> str:
    return " ".join(f"token{i:03d}" for i in range(n))


class TestAssemble:
    def test_pipeline_counts_each_stage(self) -> None:
        results = [
            make_result("a", 0.9, shared(40) + " shipped"),
            make_result("b", 0.85, shared(40) + " dispatched"),  # near-duplicate of a
            make_result("c", 0.7, "password reset link expires soon"),
            make_result("d", 0.2, "irrelevant low score"),
        ]
        ctx = ContextAssembler().assemble_context(results, "Order shipped email")
        meta = ctx.metadata
        assert meta.total_results == 4
        assert meta.relevant_results == 3
        assert meta.deduplicated_results == 2
        assert meta.selected_results == 2
        assert meta.compressed is True
        assert [r.id for r in ctx.selected_results] == ["a", "c"]
        assert ctx.prompt.endswith("# User Request\n\nOrder shipped email")

    def test_budget_is_respected(self) -> None:
        results = [make_result(str(i), 0.9 - i / 100, f"unique{i} " + "x" * 400) for i in range(10)]
        ctx = ContextAssembler().assemble_context(
            results, "q", AssemblyOptions(max_tokens=300, similarity_threshold=1.1)
        )
        assert ctx.metadata.total_tokens <= 300
        assert ctx.metadata.selected_results == 2
        assert ctx.metadata.utilization_percent == pytest.approx(
            ctx.metadata.total_tokens / 300 * 100, abs=0.01
        )

    def test_empty_results_give_bare_prompt(self) -> None:
        ctx = ContextAssembler().assemble_context([], "Hello")
        assert ctx.selected_results == []
        assert ctx.prompt == f"{DEFAULT_ASSEMBLY_SYSTEM_PROMPT}\n\n# User Request\n\nHello"
        assert ctx.metadata.compressed is False

    def test_invalid_budget(self) -> None:
        with pytest.raises(ValidationError):
            ContextAssembler().assemble_context([], "q", AssemblyOptions(max_tokens=0))

    def test_custom_system_prompt(self) -> None:
        ctx = ContextAssembler().assemble_context(
            [], "q", AssemblyOptions(system_prompt="Be brief.")
        )
        assert ctx.prompt.startswith("Be brief.\n")


class TestCompress:
    results = [
        make_result("a", 0.9, "order shipped tracking"),
        make_result("b", 0.8, "order shipped tracking today"),
        make_result("c", 0.7, "password reset"),
        make_result("d", 0.6, "invoice available"),
    ]

    def test_zero_reduction_returns_input(self) -> None:
        assert ContextAssembler().compress_context(self.results, 0.0) == self.results

    def test_keeps_ceiling_of_remaining_share(self) -> None:
        kept = ContextAssembler().compress_context(self.results, 0.5)
        assert len(kept) == 2
        assert kept[0].id == "a"
        assert len(ContextAssembler().compress_context(self.results[:3], 0.5)) == 2

    def test_full_reduction_keeps_nothing(self) -> None:
        assert ContextAssembler().compress_context(self.results, 1.0) == []

    def test_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            ContextAssembler().compress_context(self.results, 1.5)
        with pytest.raises(ValidationError):
            ContextAssembler().compress_context(self.results, -0.1)


def test_config_and_stats():
    assembler = ContextAssembler(AssemblyOptions(max_tokens=1234))
    assert assembler.get_config()["max_tokens"] == 1234
    assert assembler.with_defaults(min_score=0.1).min_score == 0.1
    assembler.assemble_context([make_result("a", 0.9, "hello world")], "q")
    stats = assembler.get_stats()
    assert stats["total_assemblies"] == 1
    assert stats["avg_context_size"] == 1.0
    assembler.reset_stats()
    assert assembler.get_stats()["total_assemblies"] == 0


def test_diversity_and_coverage_passthrough():
    assembler = ContextAssembler()
    results = [make_result("a", 0.9, "order shipped", "email"), make_result("b", 0.8, "password reset", "sms")]
    assert assembler.calculate_context_diversity(results) == 1.0
    assert assembler.calculate_context_coverage(results).channels == 2

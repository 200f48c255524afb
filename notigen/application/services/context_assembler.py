"""Turns retrieved templates into one token-budgeted prompt.

Pipeline: relevance filter -> dedup -> MMR -> budget fit -> prompt.
Each stage's output size lands in ``AssemblyMetadata``.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence
from dataclasses import asdict, replace

from notigen.application.dto.generation_dto import AssemblyOptions
from notigen.application.services.stats import Counters
from notigen.domain.errors import ValidationError
from notigen.domain.models import (
    AssembledContext,
    AssemblyMetadata,
    ContextCoverage,
    SearchResult,
)
from notigen.domain.services.prompting import build_context_prompt
from notigen.domain.services.ranking import deduplicate_by_content, fit_to_budget, mmr_rank
from notigen.domain.similarity import context_coverage, context_diversity

logger = logging.getLogger(__name__)

COMPRESSION_DIVERSITY_WEIGHT = 0.5


class ContextAssembler:
    def __init__(self, defaults: AssemblyOptions | None = None) -> None:
        self.defaults = defaults or AssemblyOptions()
        self._counters = Counters("total_assemblies", "total_tokens_used", "total_context_size")

    def assemble_context(
        self,
        results: Sequence[SearchResult],
        user_query: str,
        options: AssemblyOptions | None = None,
    ) -> AssembledContext:
        opts = options or self.defaults
        if opts.max_tokens <= 0:
            raise ValidationError("max_tokens must be > 0")
        start = time.perf_counter()

        relevant = [r for r in results if r.score >= opts.min_score]
        deduped = deduplicate_by_content(relevant, opts.similarity_threshold)
        ranked = mmr_rank(deduped, opts.diversity_weight)
        selected, total_tokens = fit_to_budget(ranked, opts.max_tokens, opts.tokens_per_char)
        prompt = build_context_prompt(selected, user_query, opts.system_prompt)

        elapsed_ms = (time.perf_counter() - start) * 1000
        metadata = AssemblyMetadata(
            total_results=len(results),
            relevant_results=len(relevant),
            deduplicated_results=len(deduped),
            selected_results=len(selected),
            total_tokens=total_tokens,
            max_tokens=opts.max_tokens,
            utilization_percent=round(total_tokens / opts.max_tokens * 100, 2),
            assembly_time_ms=elapsed_ms,
            compressed=len(deduped) < len(relevant),
        )
        self._counters.incr("total_assemblies")
        self._counters.incr("total_tokens_used", total_tokens)
        self._counters.incr("total_context_size", len(selected))
        logger.debug(
            "Context assembled: %d -> %d relevant -> %d unique -> %d selected, %d/%d tokens",
            len(results),
            len(relevant),
            len(deduped),
            len(selected),
            total_tokens,
            opts.max_tokens,
        )
        return AssembledContext(prompt=prompt, selected_results=selected, metadata=metadata)

    def compress_context(
        self, results: Sequence[SearchResult], target_reduction: float
    ) -> list[SearchResult]:
        """Re-rank at high diversity and keep ceil(n * (1 - target_reduction)) items."""
        if not 0.0 <= target_reduction <= 1.0:
            raise ValidationError("target_reduction must be within [0, 1]")
        if target_reduction == 0.0 or not results:
            return list(results)
        keep = math.ceil(len(results) * (1.0 - target_reduction))
        return mmr_rank(results, COMPRESSION_DIVERSITY_WEIGHT)[:keep]

    def calculate_context_diversity(self, results: Sequence[SearchResult]) -> float:
        return context_diversity(results)

    def calculate_context_coverage(self, results: Sequence[SearchResult]) -> ContextCoverage:
        return context_coverage(results)

    def with_defaults(self, **overrides: object) -> AssemblyOptions:
        return replace(self.defaults, **overrides)  # type: ignore[arg-type]

    def get_config(self) -> dict[str, object]:
        return asdict(self.defaults)

    def get_stats(self) -> dict[str, float]:
        c = self._counters.snapshot()
        n = c["total_assemblies"]
        return {
            "total_assemblies": n,
            "total_tokens_used": c["total_tokens_used"],
            "avg_context_size": c["total_context_size"] / n if n else 0.0,
            "avg_tokens_per_assembly": c["total_tokens_used"] / n if n else 0.0,
        }

    def reset_stats(self) -> None:
        self._counters.reset()

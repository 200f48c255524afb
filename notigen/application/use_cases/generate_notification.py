# notigen/application/use_cases/generate_notification.py
from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

from notigen.application.dto.generation_dto import GenerationOptions, SearchQuery
from notigen.application.ports.llm_port import CompletionParams
from notigen.application.ports.telemetry_port import TelemetryPort
from notigen.application.services.background import BackgroundWrites
from notigen.application.services.context_assembler import ContextAssembler
from notigen.application.services.llm_invoker import LLMInvoker
from notigen.application.services.response_cache import ResponseCache
from notigen.application.services.retrieval_engine import RetrievalEngine
from notigen.application.services.stats import Counters, RunningMean
from notigen.domain.errors import LLMError, ValidationError
from notigen.domain.models import (
    AssembledContext,
    CachedResponse,
    CompletionResult,
    GenerationMetadata,
    GenerationResult,
    SearchResult,
    SourceCitation,
    StreamEvent,
    TokenUsage,
    sources_to_dicts,
)
from notigen.domain.services.prompting import DEFAULT_GENERATION_SYSTEM_PROMPT, make_excerpt
from notigen.domain.services.ranking import estimate_tokens

logger = logging.getLogger(__name__)


def extract_sources(results: Sequence[SearchResult]) -> list[SourceCitation]:
    """Citations in assembled order; rank is 1-based."""
    return [
        SourceCitation(
            id=r.id,
            channel=r.payload.channel,
            category=r.payload.category,
            score=r.score,
            rank=i + 1,
            excerpt=make_excerpt(r.payload.content),
            metadata={
                "tone": r.payload.tone,
                "language": r.payload.language,
                "tags": list(r.payload.tags),
            },
        )
        for i, r in enumerate(results)
    ]


def error_code_for(ex: BaseException) -> str:
    if isinstance(ex, LLMError):
        return ex.code.value
    return type(ex).__name__


def _ms_since(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class GenerateNotification:
    """
    Application use case composing retrieval, assembly, response cache and
    the LLM into one grounded, cost-tracked generation.

    The response cache and telemetry are optional: each is used only when
    injected and reporting itself available. Cache writes are scheduled in
    the background and never delay or fail the response.
    """

    def __init__(
        self,
        retrieval: RetrievalEngine,
        assembler: ContextAssembler,
        llm: LLMInvoker,
        response_cache: ResponseCache | None = None,
        telemetry: TelemetryPort | None = None,
        default_system_prompt: str = DEFAULT_GENERATION_SYSTEM_PROMPT,
    ) -> None:
        self.retrieval = retrieval
        self.assembler = assembler
        self.llm = llm
        self.response_cache = response_cache
        self.telemetry = telemetry
        self.default_system_prompt = default_system_prompt
        self._writes = BackgroundWrites("response cache")
        self._counters = Counters(
            "total_generations",
            "failed_generations",
            "total_tokens_used",
            "response_cache_hits",
            "total_cost",
        )
        self._latency = RunningMean()

    # ----- public API -----

    async def generate(
        self, query: str, options: GenerationOptions | None = None
    ) -> GenerationResult:
        opts = options or GenerationOptions()
        self._validate(query, opts)
        start = time.perf_counter()
        logger.info("Starting generation for query: %r", query[:80])
        try:
            t0 = time.perf_counter()
            retrieved = await self._retrieve(query, opts)
            retrieval_ms = _ms_since(t0)

            t0 = time.perf_counter()
            assembled = self._assemble(retrieved, query, opts)
            assembly_ms = _ms_since(t0)

            t0 = time.perf_counter()
            completion, cached = await self._complete(assembled.prompt, opts)
            generation_ms = _ms_since(t0)
        except Exception as ex:
            self._record_failure(ex, start)
            raise

        total_ms = _ms_since(start)
        result = GenerationResult(
            content=completion.content,
            sources=extract_sources(assembled.selected_results),
            metadata=self._metadata(
                opts,
                retrieved,
                assembled,
                completion,
                cached,
                total_ms=total_ms,
                retrieval_ms=retrieval_ms,
                assembly_ms=assembly_ms,
                generation_ms=generation_ms,
            ),
        )
        self._record_success(completion, cached, total_ms)
        logger.info(
            "Generation complete: %.0fms, %d tokens, cached=%s",
            total_ms,
            completion.usage.total_tokens,
            cached,
        )
        return result

    async def generate_stream(
        self, query: str, options: GenerationOptions | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Same pipeline as ``generate`` emitted as staged events.

        Order: retrieval, assembly, content*, sources, complete. On failure a
        single ``error`` event is emitted and the exception re-raised.
        """
        opts = options or GenerationOptions()
        try:
            self._validate(query, opts)
        except ValidationError as ex:
            yield StreamEvent("error", {"message": str(ex), "code": error_code_for(ex)})
            raise
        start = time.perf_counter()
        try:
            t0 = time.perf_counter()
            retrieved = await self._retrieve(query, opts)
            retrieval_ms = _ms_since(t0)
            yield StreamEvent(
                "retrieval", {"count": len(retrieved), "time_ms": retrieval_ms}
            )

            t0 = time.perf_counter()
            assembled = self._assemble(retrieved, query, opts)
            assembly_ms = _ms_since(t0)
            yield StreamEvent(
                "assembly",
                {
                    "context_count": len(assembled.selected_results),
                    "tokens": assembled.metadata.total_tokens,
                    "time_ms": assembly_ms,
                },
            )

            t0 = time.perf_counter()
            cache = self._available_cache(opts)
            key = self._cache_key(assembled.prompt, opts) if cache else ""
            hit = await cache.get(key) if cache else None
            if hit is not None:
                completion = self._from_cache(hit)
                yield StreamEvent(
                    "content", {"chunk": hit.response, "tokens": hit.usage.output_tokens}
                )
            else:
                parts: list[str] = []
                usage: TokenUsage | None = None
                approx = 0
                async with aclosing(
                    self.llm.stream(assembled.prompt, self._params(opts))
                ) as deltas:
                    async for delta in deltas:
                        if delta.usage is not None:
                            usage = delta.usage
                        if delta.content:
                            parts.append(delta.content)
                            approx = delta.approx_tokens
                            yield StreamEvent(
                                "content", {"chunk": delta.content, "tokens": approx}
                            )
                if usage is None:
                    usage = TokenUsage(
                        input_tokens=estimate_tokens(assembled.prompt), output_tokens=approx
                    )
                completion = CompletionResult(
                    content="".join(parts),
                    usage=usage,
                    cost=self.llm.calculate_cost(usage),
                    model=self.llm.model,
                    finish_reason="stop",
                    latency_ms=_ms_since(t0),
                )
                if cache and completion.content:
                    self._writes.schedule(cache.set(key, assembled.prompt, completion))
            generation_ms = _ms_since(t0)

            sources = sources_to_dicts(extract_sources(assembled.selected_results))
            yield StreamEvent("sources", {"sources": sources})

            total_ms = _ms_since(start)
            self._record_success(completion, hit is not None, total_ms)
            yield StreamEvent(
                "complete",
                {
                    "timings": {
                        "total_ms": total_ms,
                        "retrieval_ms": retrieval_ms,
                        "assembly_ms": assembly_ms,
                        "generation_ms": generation_ms,
                    },
                    "tokens_used": completion.usage.total_tokens,
                    "cost": completion.cost,
                    "cached": hit is not None,
                    "sources": sources,
                },
            )
        except Exception as ex:
            self._record_failure(ex, start)
            yield StreamEvent("error", {"message": str(ex), "code": error_code_for(ex)})
            raise

    def get_stats(self) -> dict[str, float]:
        c = self._counters.snapshot()
        n = c["total_generations"]
        return {
            "total_generations": n,
            "failed_generations": c["failed_generations"],
            "total_tokens_used": c["total_tokens_used"],
            "avg_generation_time_ms": self._latency.mean,
            "avg_tokens_per_generation": c["total_tokens_used"] / n if n else 0.0,
            "response_cache_hits": c["response_cache_hits"],
            "total_cost": c["total_cost"],
        }

    def reset_stats(self) -> None:
        self._counters.reset()
        self._latency.reset()

    async def wait_for_pending_writes(self) -> None:
        """Await scheduled cache writes (shutdown hooks and tests)."""
        await self._writes.drain()
        await self.retrieval.wait_for_pending_writes()

    # ----- pipeline stages -----

    @staticmethod
    def _validate(query: str, opts: GenerationOptions) -> None:
        if not query or not query.strip():
            raise ValidationError("query must not be empty")
        if opts.top_k <= 0:
            raise ValidationError("top_k must be > 0")

    async def _retrieve(self, query: str, opts: GenerationOptions) -> list[SearchResult]:
        response = await self.retrieval.search(
            SearchQuery(
                query_text=query,
                top_k=opts.top_k,
                score_threshold=opts.score_threshold,
                filter=opts.filter,
            )
        )
        logger.debug("Retrieved %d templates", len(response.results))
        return response.results

    def _assemble(
        self, results: list[SearchResult], query: str, opts: GenerationOptions
    ) -> AssembledContext:
        return self.assembler.assemble_context(
            results,
            query,
            self.assembler.with_defaults(
                max_tokens=opts.max_context_tokens,
                min_score=opts.min_relevance_score,
                diversity_weight=opts.diversity_weight,
                system_prompt=opts.system_prompt or self.default_system_prompt,
            ),
        )

    @staticmethod
    def _params(opts: GenerationOptions) -> CompletionParams:
        return CompletionParams(
            temperature=opts.temperature, max_tokens=opts.max_output_tokens, top_p=opts.top_p
        )

    def _available_cache(self, opts: GenerationOptions) -> ResponseCache | None:
        if not opts.use_cache or self.response_cache is None:
            return None
        if not self.response_cache.is_available():
            logger.debug("Response cache unavailable; calling the LLM directly")
            return None
        return self.response_cache

    @staticmethod
    def _cache_key(prompt: str, opts: GenerationOptions) -> str:
        return ResponseCache.make_key(None, prompt, opts.temperature, opts.max_output_tokens)

    @staticmethod
    def _from_cache(hit: CachedResponse) -> CompletionResult:
        return CompletionResult(
            content=hit.response,
            usage=hit.usage,
            cost=0.0,
            model=hit.model,
            finish_reason="cached",
            latency_ms=hit.latency_ms,
        )

    async def _complete(
        self, prompt: str, opts: GenerationOptions
    ) -> tuple[CompletionResult, bool]:
        cache = self._available_cache(opts)
        key = self._cache_key(prompt, opts) if cache else ""
        if cache:
            hit = await cache.get(key)
            if hit is not None:
                return self._from_cache(hit), True

        completion = await self.llm.complete(prompt, self._params(opts))
        if cache and completion.content:
            self._writes.schedule(cache.set(key, prompt, completion))
        return completion, False

    def _metadata(
        self,
        opts: GenerationOptions,
        retrieved: list[SearchResult],
        assembled: AssembledContext,
        completion: CompletionResult,
        cached: bool,
        *,
        total_ms: float,
        retrieval_ms: float,
        assembly_ms: float,
        generation_ms: float,
    ) -> GenerationMetadata:
        return GenerationMetadata(
            total_time_ms=total_ms,
            retrieval_time_ms=retrieval_ms,
            assembly_time_ms=assembly_ms,
            generation_time_ms=generation_ms,
            retrieved_count=len(retrieved),
            context_count=len(assembled.selected_results),
            tokens_used=completion.usage.total_tokens,
            input_tokens=completion.usage.input_tokens,
            output_tokens=completion.usage.output_tokens,
            cost=completion.cost,
            context_tokens=assembled.metadata.total_tokens,
            context_utilization=assembled.metadata.utilization_percent,
            model=completion.model,
            temperature=opts.temperature,
            top_k=opts.top_k,
            score_threshold=opts.score_threshold,
            cached=cached,
            retry_count=completion.retry_count,
            prompt=assembled.prompt,
        )

    # ----- stats & telemetry -----

    def _telemetry(self) -> TelemetryPort | None:
        if self.telemetry is not None and self.telemetry.is_available():
            return self.telemetry
        return None

    def _record_success(self, completion: CompletionResult, cached: bool, total_ms: float) -> None:
        self._counters.incr("total_generations")
        self._latency.add(total_ms)
        if cached:
            self._counters.incr("response_cache_hits")
        else:
            self._counters.incr("total_tokens_used", completion.usage.total_tokens)
            self._counters.incr("total_cost", completion.cost)

        tel = self._telemetry()
        if tel is not None:
            tags = {"status": "success", "cached": str(cached).lower()}
            tel.incr("rag.generations.total", tags)
            tel.observe("rag.generation.latency_ms", total_ms, tags)
            tel.observe("rag.tokens.used", completion.usage.total_tokens, tags)
            if cached:
                tel.incr("rag.response_cache.hits", {})

    def _record_failure(self, ex: BaseException, start: float) -> None:
        self._counters.incr("failed_generations")
        logger.error("Generation failed: %s", ex)
        tel = self._telemetry()
        if tel is not None:
            tags = {"status": "error", "error_type": error_code_for(ex)}
            tel.incr("rag.generations.total", tags)
            tel.observe("rag.generation.latency_ms", _ms_since(start), tags)

"""Semantic and hybrid search over the template index.

Base ``search`` is: result-set cache lookup, query embedding, vector index
search, score normalization, cache write. Every variant (hybrid, expansion,
re-ranking, multi-query, find-similar) reuses it.

Failure semantics: embedding and index errors propagate; result-cache
errors are counted, logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

from notigen.application.dto.generation_dto import SearchQuery
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.application.ports.vector_index_port import VectorIndexPort
from notigen.application.services.background import BackgroundWrites
from notigen.application.services.embedding_cache import EmbeddingCache
from notigen.application.services.stats import Counters, RunningMean
from notigen.domain.errors import (
    DocumentNotFoundError,
    DomainError,
    ValidationError,
    VectorStoreError,
)
from notigen.domain.models import SearchMetadata, SearchResponse, SearchResult
from notigen.domain.services.reranking import (
    MERGE_STRATEGIES,
    blend_scores,
    fixed_range_normalize,
    keyword_boost,
    merge_by_id,
    minmax_normalize,
    sort_by_scores_desc,
)

logger = logging.getLogger(__name__)

SEARCH_CACHE_PREFIX = "search:"
NORMALIZATIONS = ("minmax", "fixed")

CustomScorer = Callable[[SearchResult], float]


def search_cache_key(query: SearchQuery) -> str:
    filter_json = json.dumps(query.filter.to_dict() if query.filter else {}, sort_keys=True)
    digest = hashlib.sha256(f"{query.query_text}:{filter_json}".encode()).hexdigest()[:32]
    return f"{SEARCH_CACHE_PREFIX}{digest}:{query.top_k}:{query.score_threshold}"


class RetrievalEngine:
    def __init__(
        self,
        embeddings: EmbeddingCache,
        index: VectorIndexPort,
        store: KeyValueStorePort | None = None,
        cache_ttl_s: int = 3600,
        max_cached_results: int = 50,
        normalization: str = "minmax",
    ) -> None:
        if normalization not in NORMALIZATIONS:
            raise ValidationError(f"unknown score normalization: {normalization}")
        self.embeddings = embeddings
        self.index = index
        self.store = store
        self.cache_ttl_s = cache_ttl_s
        self.max_cached_results = max_cached_results
        self.normalization = normalization
        self._writes = BackgroundWrites("search cache")
        self._counters = Counters("total_searches", "cache_hits", "cache_misses", "cache_errors")
        self._latency = RunningMean()

    # ----- base search -----

    async def search(self, query: SearchQuery, use_cache: bool = True) -> SearchResponse:
        if not query.query_text or not query.query_text.strip():
            raise ValidationError("query_text must not be empty")
        if query.top_k <= 0:
            raise ValidationError("top_k must be > 0")

        start = time.perf_counter()
        self._counters.incr("total_searches")
        caching = use_cache and self.store is not None
        key = search_cache_key(query)

        if caching:
            cached = await self._read_cache(key)
            if cached is not None:
                self._counters.incr("cache_hits")
                return self._respond(query, cached, start, cached=True)
            self._counters.incr("cache_misses")

        vector = await self.embeddings.embed(query.query_text)
        try:
            raw = await self.index.search(
                vector.values, query.top_k, query.score_threshold, query.filter
            )
        except DomainError:
            raise
        except Exception as ex:
            raise VectorStoreError(f"vector search failed: {ex}") from ex

        results = self._normalize(raw)
        if caching and results:
            self._writes.schedule(self._write_cache(key, results[: self.max_cached_results]))

        response = self._respond(query, results, start, cached=False)
        logger.debug(
            "Search complete: %d results in %.1fms",
            len(results),
            response.metadata.search_time_ms,
        )
        return response

    # ----- variants -----

    async def hybrid_search(
        self,
        query: SearchQuery,
        keywords: Sequence[str],
        boost_factor: float = 1.2,
        require_all: bool = False,
    ) -> SearchResponse:
        """Semantic search, then boost by keyword matches in content or tags."""
        base = await self.search(query)
        if not keywords:
            return base
        boosted = keyword_boost(base.results, keywords, boost_factor, require_all)
        extra = {
            "hybrid": {
                "semantic_results": len(base.results),
                "keyword_filtered": len(boosted),
                "keywords": list(keywords),
                "require_all": require_all,
            }
        }
        return SearchResponse(
            results=boosted,
            metadata=replace(base.metadata, total_results=len(boosted), extra=extra),
        )

    async def search_with_expansion(
        self, query: SearchQuery, expansion_terms: Sequence[str]
    ) -> SearchResponse:
        terms = [t for t in expansion_terms if t.strip()]
        if not terms:
            return await self.search(query)
        expanded = replace(query, query_text=f"{query.query_text} {' '.join(terms)}")
        response = await self.search(expanded)
        extra = {"query_expanded": True, "expansion_terms": terms}
        return SearchResponse(
            results=response.results, metadata=replace(response.metadata, extra=extra)
        )

    async def search_with_reranking(
        self,
        query: SearchQuery,
        scorer: CustomScorer,
        original_weight: float = 0.6,
    ) -> SearchResponse:
        """Over-fetch 3x top_k, blend in a caller-supplied score, keep top_k."""
        candidates = await self.search(replace(query, top_k=query.top_k * 3))
        rescored: list[SearchResult] = []
        for r in candidates.results:
            custom = float(scorer(r))
            final = blend_scores(r.score, custom, original_weight)
            rescored.append(r.rescored(final, original_score=r.score, custom_score=custom))
        ranked = sort_by_scores_desc(rescored, [r.score for r in rescored])[: query.top_k]
        return SearchResponse(
            results=ranked,
            metadata=replace(
                candidates.metadata,
                top_k=query.top_k,
                total_results=len(ranked),
                extra={"reranked": True, "candidates": len(candidates.results)},
            ),
        )

    async def multi_query_search(
        self,
        queries: Sequence[SearchQuery],
        merge_strategy: str = "max",
        deduplicate_by_id: bool = True,
    ) -> SearchResponse:
        if not queries:
            raise ValidationError("at least one query is required")
        if merge_strategy not in MERGE_STRATEGIES:
            raise ValidationError(f"unknown merge strategy: {merge_strategy}")
        start = time.perf_counter()
        responses = await asyncio.gather(*(self.search(q) for q in queries))
        merged = merge_by_id((r.results for r in responses), merge_strategy, deduplicate_by_id)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Multi-query search complete: %d queries -> %d results in %.1fms",
            len(queries),
            len(merged),
            elapsed_ms,
        )
        return SearchResponse(
            results=merged,
            metadata=SearchMetadata(
                query=" | ".join(q.query_text for q in queries),
                total_results=len(merged),
                search_time_ms=elapsed_ms,
                cached=False,
                top_k=max(q.top_k for q in queries),
                score_threshold=min(q.score_threshold for q in queries),
                extra={
                    "multi_query": {
                        "queries": len(queries),
                        "merge_strategy": merge_strategy,
                        "deduplicated": deduplicate_by_id,
                    }
                },
            ),
        )

    async def find_similar(
        self,
        template_id: str,
        top_k: int = 5,
        score_threshold: float = 0.7,
        exclude_original: bool = True,
    ) -> SearchResponse:
        try:
            original = await self.index.get(template_id)
        except DomainError:
            raise
        except Exception as ex:
            raise VectorStoreError(f"template lookup failed: {ex}") from ex
        if original is None:
            raise DocumentNotFoundError(f"Template not found: {template_id}")

        fetch_k = top_k + 1 if exclude_original else top_k
        response = await self.search(
            SearchQuery(
                query_text=original.payload.content,
                top_k=fetch_k,
                score_threshold=score_threshold,
            )
        )
        results = response.results
        if exclude_original:
            results = [r for r in results if r.id != template_id]
        results = results[:top_k]
        return SearchResponse(
            results=results,
            metadata=replace(
                response.metadata,
                top_k=top_k,
                total_results=len(results),
                extra={"similar_to": template_id},
            ),
        )

    # ----- stats & cache admin -----

    def get_stats(self) -> dict[str, float]:
        c = self._counters.snapshot()
        lookups = c["cache_hits"] + c["cache_misses"]
        return {
            **c,
            "cache_hit_rate": c["cache_hits"] / lookups if lookups else 0.0,
            "avg_search_time_ms": self._latency.mean,
        }

    def reset_stats(self) -> None:
        self._counters.reset()
        self._latency.reset()

    async def clear_cache(self) -> int:
        if self.store is None:
            return 0
        keys = await self.store.keys(f"{SEARCH_CACHE_PREFIX}*")
        if not keys.ok or keys.value is None:
            logger.warning("Search cache clear failed: %s", keys.error)
            return 0
        removed = 0
        for key in keys.value:
            res = await self.store.delete(key)
            if res.ok and res.value:
                removed += res.value
        logger.info("Cleared %d cached searches", removed)
        return removed

    async def wait_for_pending_writes(self) -> None:
        await self._writes.drain()

    # ----- internals -----

    def _normalize(self, raw: Sequence[SearchResult]) -> list[SearchResult]:
        scores = [r.score for r in raw]
        if self.normalization == "fixed":
            normalized = fixed_range_normalize(scores)
        else:
            normalized = minmax_normalize(scores)
        return [r.rescored(s) for r, s in zip(raw, normalized, strict=True)]

    def _respond(
        self, query: SearchQuery, results: list[SearchResult], start: float, cached: bool
    ) -> SearchResponse:
        elapsed_ms = (time.perf_counter() - start) * 1000
        self._latency.add(elapsed_ms)
        return SearchResponse(
            results=results,
            metadata=SearchMetadata(
                query=query.query_text,
                total_results=len(results),
                search_time_ms=elapsed_ms,
                cached=cached,
                top_k=query.top_k,
                score_threshold=query.score_threshold,
            ),
        )

    async def _read_cache(self, key: str) -> list[SearchResult] | None:
        assert self.store is not None
        res = await self.store.get(key)
        if not res.ok:
            self._counters.incr("cache_errors")
            logger.warning("Search cache read failed: %s", res.error)
            return None
        if res.value is None:
            return None
        try:
            return [SearchResult.from_dict(d) for d in json.loads(res.value)]
        except (ValueError, KeyError, TypeError) as ex:
            self._counters.incr("cache_errors")
            logger.warning("Discarding corrupt search cache entry: %s", ex)
            return None

    async def _write_cache(self, key: str, results: list[SearchResult]) -> None:
        assert self.store is not None
        payload = json.dumps([r.to_dict() for r in results])
        res = await self.store.set(key, payload, self.cache_ttl_s)
        if not res.ok:
            self._counters.incr("cache_errors")
            logger.warning("Search cache write failed: %s", res.error)

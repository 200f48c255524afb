"""Embedding memoization keyed by model + content hash."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import random
import time
from collections.abc import Callable, Sequence

from notigen.application.ports.embedding_port import EmbeddingProviderPort
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.application.services.retrying import Sleep, retry_async
from notigen.domain.errors import EmbeddingError, ValidationError
from notigen.domain.models import BatchEmbeddingResult, EmbeddingVector

logger = logging.getLogger(__name__)

EMBEDDING_TTL_S = 7 * 24 * 3600
PRICE_PER_MILLION_TOKENS = 0.02


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Turns text into vectors, memoizing by exact (model, text).

    Embeddings of identical text never change, so entries live for 7 days.
    Store failures degrade to a miss; provider failures are retried a bounded
    number of times and then raised as ``EmbeddingError``.
    """

    def __init__(
        self,
        provider: EmbeddingProviderPort,
        store: KeyValueStorePort,
        batch_size: int = 100,
        ttl_seconds: int = EMBEDDING_TTL_S,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        if batch_size <= 0:
            raise ValidationError("batch_size must be > 0")
        self.provider = provider
        self.store = store
        self.batch_size = batch_size
        self.ttl_seconds = ttl_seconds
        self._max_attempts = max_attempts
        self._base_delay_s = base_delay_s
        self._sleep = sleep
        self._rng = rng
        self.reset_stats()

    @property
    def model(self) -> str:
        return self.provider.model

    def cache_key(self, text: str) -> str:
        return f"embedding:{self.model}:{text_hash(text)}"

    async def embed(self, text: str, use_cache: bool = True) -> EmbeddingVector:
        self._validate(text)
        self._total_texts += 1
        if use_cache:
            hit = await self._lookup(text)
            if hit is not None:
                self._cache_hits += 1
                return hit
        self._cache_misses += 1

        values = await self._call_provider(lambda: self.provider.embed(text), "embed")
        vector = self._make_vector(text, values)
        if use_cache:
            await self._store(vector)
        return vector

    async def embed_batch(
        self, texts: Sequence[str], use_cache: bool = True
    ) -> BatchEmbeddingResult:
        """Embed many texts; output order matches input order.

        Only cache misses reach the provider, chunked to ``batch_size``.
        """
        start = time.perf_counter()
        for t in texts:
            self._validate(t)

        out: list[EmbeddingVector | None] = [None] * len(texts)
        missing: list[int] = []
        for idx, text in enumerate(texts):
            hit = await self._lookup(text) if use_cache else None
            if hit is None:
                missing.append(idx)
            else:
                out[idx] = hit

        for offset in range(0, len(missing), self.batch_size):
            chunk = missing[offset : offset + self.batch_size]
            chunk_texts = [texts[i] for i in chunk]
            values = await self._call_provider(
                lambda ct=chunk_texts: self.provider.embed_batch(ct), "embed_batch"
            )
            if len(values) != len(chunk):
                raise EmbeddingError(
                    f"provider returned {len(values)} vectors for {len(chunk)} texts"
                )
            for idx, vals in zip(chunk, values, strict=True):
                vector = self._make_vector(texts[idx], vals)
                out[idx] = vector
                if use_cache:
                    await self._store(vector)

        hits = len(texts) - len(missing)
        self._total_texts += len(texts)
        self._cache_hits += hits
        self._cache_misses += len(missing)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "Embedded batch of %d texts (%d cached, %d computed) in %.1fms",
            len(texts),
            hits,
            len(missing),
            elapsed_ms,
        )
        return BatchEmbeddingResult(
            embeddings=[v for v in out if v is not None],
            cache_hits=hits,
            cache_misses=len(missing),
            processing_time_ms=elapsed_ms,
        )

    def estimate_cost(self, token_count: int) -> float:
        return token_count / 1_000_000 * PRICE_PER_MILLION_TOKENS

    def get_stats(self) -> dict[str, float]:
        lookups = self._cache_hits + self._cache_misses
        return {
            "total_texts": self._total_texts,
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "hit_rate": self._cache_hits / lookups if lookups else 0.0,
        }

    def reset_stats(self) -> None:
        self._total_texts = 0
        self._cache_hits = 0
        self._cache_misses = 0

    # ----- internals -----

    @staticmethod
    def _validate(text: str) -> None:
        if not text or not text.strip():
            raise ValidationError("text to embed must not be empty")

    def _make_vector(self, text: str, values: Sequence[float]) -> EmbeddingVector:
        return EmbeddingVector(
            text_hash=text_hash(text),
            model=self.model,
            dimensions=len(values),
            values=tuple(float(v) for v in values),
            cached=False,
        )

    async def _call_provider(self, call, label: str):  # type: ignore[no-untyped-def]
        try:
            return await retry_async(
                call,
                attempts=self._max_attempts,
                base_delay=self._base_delay_s,
                jitter_ratio=0.1,
                sleep=self._sleep,
                rng=self._rng,
                label=f"embedding provider {label}",
            )
        except EmbeddingError:
            raise
        except Exception as ex:
            raise EmbeddingError(f"embedding failed: {ex}") from ex

    async def _lookup(self, text: str) -> EmbeddingVector | None:
        res = await self.store.get(self.cache_key(text))
        if not res.ok:
            logger.warning("Embedding cache read failed: %s", res.error)
            return None
        if res.value is None:
            return None
        try:
            return EmbeddingVector.from_dict(json.loads(res.value), cached=True)
        except (ValueError, KeyError, TypeError) as ex:
            logger.warning("Discarding corrupt embedding cache entry: %s", ex)
            return None

    async def _store(self, vector: EmbeddingVector) -> None:
        key = f"embedding:{vector.model}:{vector.text_hash}"
        res = await self.store.set(key, json.dumps(vector.to_dict()), self.ttl_seconds)
        if not res.ok:
            logger.warning("Embedding cache write failed: %s", res.error)

"""Memoization of complete LLM answers keyed by prompt and sampling parameters."""

from __future__ import annotations

import hashlib
import json
import logging

from notigen.application.ports.clock_port import ClockPort
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.application.services.stats import Counters
from notigen.domain.models import CachedResponse, CompletionResult

logger = logging.getLogger(__name__)

RESPONSE_PREFIX = "ai:response:"
RESPONSE_TTL_S = 24 * 3600


class ResponseCache:
    """Response cache over the key-value store.

    Read and write failures count as errors and behave as a miss; the caller
    always falls back to a live completion. A hit reports zero additional cost.
    """

    def __init__(
        self,
        store: KeyValueStorePort,
        clock: ClockPort,
        ttl_seconds: int = RESPONSE_TTL_S,
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._counters = Counters("hits", "misses", "errors", "cost_saved")

    def is_available(self) -> bool:
        return self.enabled and self.store.is_available()

    @staticmethod
    def make_key(
        system_prompt: str | None,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Prompt text (trimmed, lowercased) hashed for key length; params appended plainly."""
        text = f"{system_prompt or ''}\n{user_prompt}".strip().lower()
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{RESPONSE_PREFIX}{digest}:t={temperature}:m={max_tokens}"

    async def get(self, key: str) -> CachedResponse | None:
        res = await self.store.get(key)
        if not res.ok:
            self._counters.incr("errors")
            logger.warning("Response cache read failed: %s", res.error)
            return None
        if res.value is None:
            self._counters.incr("misses")
            return None
        try:
            cached = CachedResponse.from_dict(json.loads(res.value))
        except (ValueError, KeyError, TypeError) as ex:
            self._counters.incr("errors")
            logger.warning("Discarding corrupt response cache entry %s: %s", key, ex)
            return None
        self._counters.incr("hits")
        self._counters.incr("cost_saved", cached.cost)
        logger.debug("Response cache hit: %s", key)
        return cached

    async def set(self, key: str, prompt: str, completion: CompletionResult) -> bool:
        entry = CachedResponse(
            key=key,
            prompt=prompt,
            response=completion.content,
            usage=completion.usage,
            cost=completion.cost,
            model=completion.model,
            latency_ms=completion.latency_ms,
            cached_at=self.clock.now_iso(),
        )
        res = await self.store.set(key, json.dumps(entry.to_dict()), self.ttl_seconds)
        if not res.ok:
            self._counters.incr("errors")
            logger.warning("Response cache write failed: %s", res.error)
            return False
        return True

    async def invalidate(self, key: str) -> bool:
        res = await self.store.delete(key)
        if not res.ok:
            self._counters.incr("errors")
            logger.warning("Response cache invalidate failed: %s", res.error)
            return False
        return bool(res.value)

    async def clear_all(self) -> int:
        keys = await self.store.keys(f"{RESPONSE_PREFIX}*")
        if not keys.ok or keys.value is None:
            self._counters.incr("errors")
            logger.warning("Response cache clear failed: %s", keys.error)
            return 0
        removed = 0
        for key in keys.value:
            res = await self.store.delete(key)
            if res.ok and res.value:
                removed += res.value
        logger.info("Cleared %d cached responses", removed)
        return removed

    async def get_cache_size(self) -> int:
        keys = await self.store.keys(f"{RESPONSE_PREFIX}*")
        return len(keys.value or []) if keys.ok else 0

    def get_cost_savings(self) -> float:
        return self._counters["cost_saved"]

    def get_stats(self) -> dict[str, object]:
        c = self._counters.snapshot()
        lookups = c["hits"] + c["misses"]
        return {
            "hits": c["hits"],
            "misses": c["misses"],
            "errors": c["errors"],
            "hit_rate": c["hits"] / lookups if lookups else 0.0,
            "available": self.is_available(),
        }

    def reset_stats(self) -> None:
        self._counters.reset()

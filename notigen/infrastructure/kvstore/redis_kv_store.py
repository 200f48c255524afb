"""Redis-backed key-value store (async client).

Backs the embedding cache, search cache, response cache and conversation
memory. Every call returns a Result; redis exceptions never escape.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.domain.errors import DomainError, KeyValueStoreError
from notigen.domain.types import Result

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Configuration for Redis connection."""

    url: str = "redis://localhost:6379/0"
    socket_timeout_s: float = 5.0
    decode_responses: bool = True
    retry_after_s: float = 30.0


class RedisKeyValueStore(KeyValueStorePort):
    """Async Redis adapter.

    After a failed call ``is_available`` is False for ``retry_after_s``, so
    optional consumers (the response cache) skip the store for a while. Once
    the window has passed the next call tries Redis again; a success clears
    the outage, a failure restarts the window.
    """

    def __init__(
        self,
        cfg: RedisConfig,
        client: Any | None = None,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the adapter.

        Args:
            cfg: RedisConfig with connection parameters
            client: pre-built ``redis.asyncio`` client (tests inject fakes here)
            time_fn: monotonic clock for the unavailability window

        Raises:
            KeyValueStoreError: If redis-py is missing or client init fails
        """
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)
        self._now = time_fn
        self._failed_at: float | None = None

    def _init_client(self, cfg: RedisConfig) -> Any:
        try:
            redis_asyncio = import_module("redis.asyncio")
            return redis_asyncio.from_url(
                cfg.url,
                decode_responses=cfg.decode_responses,
                socket_timeout=cfg.socket_timeout_s,
            )
        except Exception as ex:
            raise KeyValueStoreError(f"Redis init failed: {ex}") from ex

    @property
    def backend_name(self) -> str:
        return "redis"

    def is_available(self) -> bool:
        if self._failed_at is None:
            return True
        return self._now() - self._failed_at >= self._cfg.retry_after_s

    def _ok(self) -> None:
        if self._failed_at is not None:
            logger.info("Redis reachable again")
        self._failed_at = None

    def _fail(self, op: str, ex: Exception) -> Result[Any, DomainError]:
        if self._failed_at is None:
            logger.warning("Redis %s failed, marking store unavailable: %s", op, ex)
        self._failed_at = self._now()
        return Result.failure(KeyValueStoreError(f"redis {op} failed: {ex}"))

    async def get(self, key: str) -> Result[str | None, DomainError]:
        try:
            value = await self._client.get(key)
        except Exception as ex:
            return self._fail("get", ex)
        self._ok()
        return Result.success(value)

    async def set(self, key: str, value: str, ttl_seconds: int) -> Result[None, DomainError]:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except Exception as ex:
            return self._fail("set", ex)
        self._ok()
        return Result.success(None)

    async def delete(self, key: str) -> Result[int, DomainError]:
        try:
            removed = await self._client.delete(key)
        except Exception as ex:
            return self._fail("delete", ex)
        self._ok()
        return Result.success(int(removed))

    async def keys(self, pattern: str) -> Result[list[str], DomainError]:
        """SCAN-based listing; never blocks the server like KEYS would."""
        try:
            found = [k async for k in self._client.scan_iter(match=pattern)]
        except Exception as ex:
            return self._fail("keys", ex)
        self._ok()
        return Result.success(found)

    async def ping(self) -> bool:
        try:
            await self._client.ping()
        except Exception as ex:
            self._fail("ping", ex)
            return False
        self._ok()
        return True

    async def close(self) -> None:
        await self._client.aclose()

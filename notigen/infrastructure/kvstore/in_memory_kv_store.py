"""Process-local key-value store with TTL, selected when no Redis is configured."""

import time
from collections.abc import Callable
from fnmatch import fnmatchcase

from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.domain.errors import DomainError
from notigen.domain.types import Result


class InMemoryKeyValueStore(KeyValueStorePort):
    """Dict of key -> (value, expires_at). Expired keys are purged lazily on access.

    ``keys`` takes Redis-style glob patterns (``conversation:*``).
    """

    def __init__(self, time_fn: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._now = time_fn

    @property
    def backend_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._now():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Result[str | None, DomainError]:
        return Result.success(self._live(key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> Result[None, DomainError]:
        self._data[key] = (value, self._now() + ttl_seconds)
        return Result.success(None)

    async def delete(self, key: str) -> Result[int, DomainError]:
        existed = self._live(key) is not None
        self._data.pop(key, None)
        return Result.success(1 if existed else 0)

    async def keys(self, pattern: str) -> Result[list[str], DomainError]:
        return Result.success(
            [k for k in list(self._data) if fnmatchcase(k, pattern) and self._live(k) is not None]
        )

    def __len__(self) -> int:
        return sum(1 for k in list(self._data) if self._live(k) is not None)

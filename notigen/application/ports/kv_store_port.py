from typing import Protocol, runtime_checkable

from notigen.domain.errors import DomainError
from notigen.domain.types import Result


@runtime_checkable
class KeyValueStorePort(Protocol):
    """String key-value store with per-key TTL.

    Every operation returns a Result so callers choose between degrading
    (caches) and propagating (conversation memory).
    """

    async def get(self, key: str) -> Result[str | None, DomainError]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> Result[None, DomainError]: ...

    async def delete(self, key: str) -> Result[int, DomainError]: ...

    async def keys(self, pattern: str) -> Result[list[str], DomainError]: ...

    def is_available(self) -> bool: ...

    @property
    def backend_name(self) -> str: ...

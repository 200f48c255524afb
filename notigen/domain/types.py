from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Explicit success/failure value returned by storage adapters.

    Callers decide per call site whether a failure degrades (caches) or
    propagates (conversation memory, via ``unwrap``).
    """

    ok: bool
    value: T | None = None
    error: E | None = None

    @staticmethod
    def success(v: T) -> "Result[T, E]":
        return Result(ok=True, value=v)

    @staticmethod
    def failure(e: E) -> "Result[T, E]":
        return Result(ok=False, error=e)

    def unwrap(self) -> T | None:
        if not self.ok and self.error is not None:
            raise self.error
        return self.value


Vector = tuple[float, ...]  # dimensionality is validated by the embedding adapters
Score = float  # normalized to [0, 1] per result set
JSONDict = dict[str, Any]

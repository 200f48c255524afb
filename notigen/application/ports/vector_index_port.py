from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from notigen.domain.models import SearchFilter, SearchResult, TemplatePayload

__all__ = ["SearchResult", "VectorIndexPort"]


@runtime_checkable
class VectorIndexPort(Protocol):
    """Vector index over notification templates.

    ``search`` returns raw similarities; normalization happens in the retrieval engine.
    """

    async def upsert(self, id: str, vector: Sequence[float], payload: TemplatePayload) -> None: ...

    async def search(
        self,
        vector: Sequence[float],
        top_k: int,
        score_threshold: float | None = None,
        filter: SearchFilter | None = None,
    ) -> list[SearchResult]: ...

    async def get(self, id: str) -> SearchResult | None: ...

from collections.abc import Sequence

from notigen.application.ports.vector_index_port import VectorIndexPort
from notigen.domain.errors import VectorStoreError
from notigen.domain.models import SearchFilter, SearchResult, TemplatePayload
from notigen.domain.similarity import cosine


class InMemoryVectorIndex(VectorIndexPort):
    """Brute-force cosine index for local runs and tests."""

    def __init__(self) -> None:
        self._vectors: dict[str, tuple[float, ...]] = {}
        self._payloads: dict[str, TemplatePayload] = {}
        self._dim: int | None = None

    async def upsert(self, id: str, vector: Sequence[float], payload: TemplatePayload) -> None:
        if self._dim is None:
            self._dim = len(vector)
        elif len(vector) != self._dim:
            raise VectorStoreError(f"dimension mismatch: {len(vector)} != {self._dim}")
        self._vectors[id] = tuple(float(x) for x in vector)
        self._payloads[id] = payload

    async def search(
        self,
        vector: Sequence[float],
        top_k: int,
        score_threshold: float | None = None,
        filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        hits: list[SearchResult] = []
        for id_, vec in self._vectors.items():
            payload = self._payloads[id_]
            if filter is not None and not filter.matches(payload):
                continue
            score = cosine(vector, vec)
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(SearchResult(id=id_, score=score, payload=payload))
        hits.sort(key=lambda r: r.score, reverse=True)
        return hits[:top_k]

    async def get(self, id: str) -> SearchResult | None:
        payload = self._payloads.get(id)
        if payload is None:
            return None
        return SearchResult(id=id, score=1.0, payload=payload)

    def __len__(self) -> int:
        return len(self._vectors)

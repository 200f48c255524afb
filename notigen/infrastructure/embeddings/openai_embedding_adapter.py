from collections.abc import Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any

from notigen.application.ports.embedding_port import EmbeddingProviderPort
from notigen.domain.errors import EmbeddingError


@dataclass
class OpenAIEmbeddingAdapter(EmbeddingProviderPort):
    """OpenAI embeddings with reduced dimensionality (text-embedding-3-*)."""

    model: str = "text-embedding-3-small"
    dimensions: int = 512
    api_key: str = "EMPTY"
    base_url: str | None = None
    client: Any | None = field(default=None, repr=False)

    def _ensure_client(self) -> Any:
        if self.client is None:
            module = import_module("openai")
            self.client = module.AsyncOpenAI(
                base_url=self.base_url, api_key=self.api_key, max_retries=0
            )
        return self.client

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            resp: Any = await self._ensure_client().embeddings.create(
                model=self.model,
                input=list(texts),
                dimensions=self.dimensions,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"OpenAI embedding failed: {ex}") from ex
        ordered = sorted(resp.data, key=lambda d: d.index)
        vectors = [list(d.embedding) for d in ordered]
        for v in vectors:
            if len(v) != self.dimensions:
                raise EmbeddingError(f"expected {self.dimensions} dimensions, got {len(v)}")
        return vectors

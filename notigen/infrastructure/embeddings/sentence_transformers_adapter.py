import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from notigen.application.ports.embedding_port import EmbeddingProviderPort
from notigen.domain.errors import EmbeddingError


@dataclass
class SentenceTransformersEmbeddingAdapter(EmbeddingProviderPort):
    """Local embeddings; encoding runs in a worker thread to keep the loop free."""

    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"  # "cuda" if available

    def __post_init__(self) -> None:
        self._model: Any | None = None

    def _get(self) -> Any:
        if self._model is None:
            try:
                module = import_module("sentence_transformers")
            except Exception as ex:  # pragma: no cover
                raise EmbeddingError("sentence-transformers not installed") from ex
            self._model = module.SentenceTransformer(self.model, device=self.device)
        return self._model

    @property
    def dimensions(self) -> int:
        return int(self._get().get_sentence_embedding_dimension())

    def _encode(self, texts: list[str]) -> list[list[float]]:
        vectors = self._get().encode(texts, normalize_embeddings=True, convert_to_numpy=True)
        return [v.tolist() for v in vectors]

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            return await asyncio.to_thread(self._encode, list(texts))
        except EmbeddingError:
            raise
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"sentence-transformers encode failed: {ex}") from ex

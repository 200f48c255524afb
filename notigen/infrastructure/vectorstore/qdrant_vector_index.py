"""Qdrant vector index adapter (async client).

Encapsulates qdrant-client, converts its exceptions to VectorStoreError and
its points to domain SearchResults. Template ids are arbitrary strings, so
point ids are derived with uuid5 and the template id travels in the payload.
"""

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from notigen.application.ports.vector_index_port import VectorIndexPort
from notigen.domain.errors import VectorStoreError
from notigen.domain.models import SearchFilter, SearchResult, TemplatePayload

logger = logging.getLogger(__name__)

_POINT_NAMESPACE = uuid.UUID("6f1c4c1e-8a59-4d0e-9a53-2f6d4b8e7c10")


def point_id(template_id: str) -> str:
    return str(uuid.uuid5(_POINT_NAMESPACE, template_id))


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection."""

    url: str = "http://localhost:6333"
    api_key: str | None = None
    collection: str = "notification_templates"
    timeout_s: int = 30


class QdrantVectorIndex(VectorIndexPort):
    """Template index on Qdrant with cosine distance."""

    def __init__(self, cfg: QdrantConfig, client: Any | None = None) -> None:
        """Initialize the adapter.

        Args:
            cfg: QdrantConfig with connection parameters
            client: pre-built AsyncQdrantClient (tests inject fakes here)

        Raises:
            VectorStoreError: If qdrant-client is missing or init fails
        """
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)

    def _init_client(self, cfg: QdrantConfig) -> Any:
        try:
            qdrant_client = import_module("qdrant_client")
            return qdrant_client.AsyncQdrantClient(
                url=cfg.url,
                api_key=cfg.api_key or None,
                timeout=cfg.timeout_s,
            )
        except Exception as ex:
            raise VectorStoreError(f"Qdrant init failed: {ex}") from ex

    @property
    def collection(self) -> str:
        return self._cfg.collection

    async def ensure_collection(self, dim: int) -> None:
        """Create the collection with cosine distance unless it already exists."""
        try:
            models = import_module("qdrant_client.models")
            if await self._client.collection_exists(self.collection):
                return
            await self._client.create_collection(
                collection_name=self.collection,
                vectors_config=models.VectorParams(size=dim, distance=models.Distance.COSINE),
            )
            logger.info("Created Qdrant collection %s (dim=%d)", self.collection, dim)
        except Exception as ex:
            raise VectorStoreError(f"ensure_collection failed: {ex}") from ex

    async def upsert(self, id: str, vector: Sequence[float], payload: TemplatePayload) -> None:
        try:
            models = import_module("qdrant_client.models")
            body = payload.to_dict()
            body["template_id"] = id
            await self._client.upsert(
                collection_name=self.collection,
                points=[models.PointStruct(id=point_id(id), vector=list(vector), payload=body)],
            )
        except Exception as ex:
            raise VectorStoreError(f"upsert failed: {ex}") from ex

    async def search(
        self,
        vector: Sequence[float],
        top_k: int,
        score_threshold: float | None = None,
        filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        try:
            resp = await self._client.query_points(
                collection_name=self.collection,
                query=list(vector),
                limit=top_k,
                score_threshold=score_threshold,
                query_filter=build_filter(filter),
                with_payload=True,
            )
        except Exception as ex:
            raise VectorStoreError(f"search failed: {ex}") from ex
        return [_to_result(p) for p in resp.points]

    async def get(self, id: str) -> SearchResult | None:
        try:
            points = await self._client.retrieve(
                collection_name=self.collection, ids=[point_id(id)], with_payload=True
            )
        except Exception as ex:
            raise VectorStoreError(f"retrieve failed: {ex}") from ex
        if not points:
            return None
        return _to_result(points[0], score=1.0)


def build_filter(filter: SearchFilter | None) -> Any:
    """Facets become must-match conditions; tags match any of the given values."""
    if filter is None or filter.is_empty():
        return None
    models = import_module("qdrant_client.models")
    must = [
        models.FieldCondition(key=key, match=models.MatchValue(value=value))
        for key, value in filter.to_dict().items()
        if key != "tags"
    ]
    if filter.tags:
        must.append(models.FieldCondition(key="tags", match=models.MatchAny(any=list(filter.tags))))
    return models.Filter(must=must)


def _to_result(point: Any, score: float | None = None) -> SearchResult:
    payload = TemplatePayload.from_dict(point.payload or {})
    return SearchResult(
        id=payload.template_id or str(point.id),
        score=float(score if score is not None else point.score),
        payload=payload,
    )

"""Tests for the process-local key-value store and vector index."""

import asyncio

import pytest

from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.domain.errors import VectorStoreError
from notigen.domain.models import SearchFilter, TemplatePayload
from notigen.infrastructure.kvstore.in_memory_kv_store import InMemoryKeyValueStore
from notigen.infrastructure.vectorstore.in_memory_vector_index import InMemoryVectorIndex


class TestInMemoryKeyValueStore:
    def test_satisfies_port(self) -> None:
        assert isinstance(InMemoryKeyValueStore(), KeyValueStorePort)

    def test_set_get_delete(self) -> None:
        store = InMemoryKeyValueStore()

        async def scenario():
            await store.set("a", "1", 60)
            got = await store.get("a")
            deleted = await store.delete("a")
            missing = await store.get("a")
            deleted_again = await store.delete("a")
            return got.value, deleted.value, missing.value, deleted_again.value

        assert asyncio.run(scenario()) == ("1", 1, None, 0)

    def test_ttl_expiry(self) -> None:
        now = [100.0]
        store = InMemoryKeyValueStore(time_fn=lambda: now[0])
        asyncio.run(store.set("k", "v", 10))
        now[0] = 109.9
        assert asyncio.run(store.get("k")).value == "v"
        now[0] = 110.0
        assert asyncio.run(store.get("k")).value is None
        assert len(store) == 0

    def test_keys_glob(self) -> None:
        store = InMemoryKeyValueStore()

        async def scenario():
            await store.set("conversation:1", "x", 60)
            await store.set("conversation:2", "x", 60)
            await store.set("search:abc", "x", 60)
            return sorted((await store.keys("conversation:*")).value)

        assert asyncio.run(scenario()) == ["conversation:1", "conversation:2"]


class TestInMemoryVectorIndex:
    def _index(self) -> InMemoryVectorIndex:
        index = InMemoryVectorIndex()

        async def fill():
            await index.upsert(
                "email", [1.0, 0.0], TemplatePayload(template_id="email", content="a",
                                                      channel="email", tags=("x",))
            )
            await index.upsert(
                "sms", [0.6, 0.8], TemplatePayload(template_id="sms", content="b",
                                                    channel="sms", tags=("y",))
            )

        asyncio.run(fill())
        return index

    def test_search_orders_by_cosine(self) -> None:
        hits = asyncio.run(self._index().search([1.0, 0.0], top_k=5))
        assert [h.id for h in hits] == ["email", "sms"]
        assert hits[1].score == pytest.approx(0.6)

    def test_threshold_and_top_k(self) -> None:
        index = self._index()
        assert [h.id for h in asyncio.run(index.search([1.0, 0.0], 5, score_threshold=0.7))] == [
            "email"
        ]
        assert len(asyncio.run(index.search([1.0, 0.0], 1))) == 1

    def test_filter(self) -> None:
        index = self._index()
        hits = asyncio.run(index.search([1.0, 0.0], 5, filter=SearchFilter(tags=("y", "z"))))
        assert [h.id for h in hits] == ["sms"]

    def test_dimension_mismatch(self) -> None:
        index = self._index()
        with pytest.raises(VectorStoreError):
            asyncio.run(index.upsert("bad", [1.0, 0.0, 0.0], TemplatePayload("bad", "c")))

    def test_get(self) -> None:
        index = self._index()
        assert asyncio.run(index.get("sms")).payload.channel == "sms"
        assert asyncio.run(index.get("nope")) is None
        assert len(index) == 2

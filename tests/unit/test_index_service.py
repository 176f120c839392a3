"""Unit tests for the async IndexService orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from docindex_server.domain.model import FieldMapping
from docindex_server.domain.search import StructuredQuery, TextQuery, VectorQuery
from docindex_server.errors import CorruptDataError, IOFailureError, NotFoundError
from docindex_server.registry import IndexRegistry
from docindex_server.search.index import Durability
from docindex_server.search.store import IndexFileStore
from docindex_server.service_layer.index_service import IndexService


class BrokenStore(IndexFileStore):
    def save(self, name, state):
        raise IOFailureError("read-only file system")


@pytest.fixture
def service(registry: IndexRegistry) -> IndexService:
    return IndexService(registry)


@pytest.mark.unit
class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_creates_index(self, service, store):
        result = await service.insert_document("docs", {"title": "hello world"})
        assert result.id == 0
        assert result.durability is Durability.PERSISTED
        assert store.exists("docs")

    @pytest.mark.asyncio
    async def test_bulk_and_get(self, service):
        result = await service.bulk_insert("docs", [{"n": 0}, {"n": 1}])
        assert result.ids == (0, 1)
        document = await service.get_document("docs", 1)
        assert document.body == {"n": 1}

    @pytest.mark.asyncio
    async def test_mapping_round_trip(self, service):
        await service.set_mapping("docs", FieldMapping.from_dict({"embedding": "vector"}))
        mapping = await service.get_mapping("docs")
        assert mapping.to_dict() == {"embedding": "vector"}

    @pytest.mark.asyncio
    async def test_failed_persistence_is_reported(self, data_dir):
        service = IndexService(IndexRegistry(BrokenStore(data_dir)))
        result = await service.insert_document("docs", {"a": 1})
        assert result.durability is Durability.FAILED
        assert (await service.get_document("docs", result.id)).body == {"a": 1}

    @pytest.mark.asyncio
    async def test_concurrent_inserts_on_different_indexes(self, service):
        results = await asyncio.gather(
            *(service.insert_document(f"idx{n % 3}", {"n": n}) for n in range(30)),
        )
        assert sorted(result.id for result in results) == sorted(list(range(10)) * 3)
        assert await service.list_indexes() == ["idx0", "idx1", "idx2"]


@pytest.mark.unit
class TestReads:
    @pytest.mark.asyncio
    async def test_unknown_index_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.search_text("missing", TextQuery(q="x"))

    @pytest.mark.asyncio
    async def test_three_modalities(self, service):
        await service.bulk_insert(
            "docs",
            [
                {"title": "apple pie", "views": 5, "vector": [0.0, 0.0]},
                {"title": "banana", "views": 10, "vector": [1.0, 1.0]},
            ],
        )
        text_hits = await service.search_text("docs", TextQuery(q="aple", fuzz=1))
        structured = await service.query("docs", StructuredQuery(range={"views": {"gte": 6}}))
        vector_hits = await service.search_vector("docs", VectorQuery(vector=[0.9, 0.9], limit=1))

        assert [hit.document.id for hit in text_hits] == [0]
        assert [hit.document.id for hit in structured.hits] == [1]
        assert [hit.document.id for hit in vector_hits] == [1]

    @pytest.mark.asyncio
    async def test_vector_defaults_come_from_service(self, registry):
        service = IndexService(registry, default_vector_limit=1, default_vector_field="emb")
        await service.bulk_insert("docs", [{"emb": [0.0]}, {"emb": [1.0]}])
        hits = await service.search_vector("docs", VectorQuery(vector=[0.0]))
        assert [hit.document.id for hit in hits] == [0]


@pytest.mark.unit
class TestFlushAndHealth:
    @pytest.mark.asyncio
    async def test_flush_in_deferred_mode(self, store):
        service = IndexService(IndexRegistry(store, persist_on_write=False))
        result = await service.insert_document("docs", {"a": 1})
        assert result.durability is Durability.PENDING
        assert not store.exists("docs")

        assert await service.flush() == {}
        assert store.load("docs").documents[0].body == {"a": 1}

    @pytest.mark.asyncio
    async def test_flusher_runs_until_cancelled(self, store):
        service = IndexService(IndexRegistry(store, persist_on_write=False))
        await service.insert_document("docs", {"a": 1})

        task = asyncio.create_task(service.run_flusher(0.01))
        for _ in range(100):
            if store.exists("docs"):
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.exists("docs")

    @pytest.mark.asyncio
    async def test_health_reports_unavailable(self, service, data_dir):
        (data_dir / "broken.bin").write_bytes(b"junk")
        await service.insert_document("ok", {})
        with pytest.raises(CorruptDataError):
            await service.search_text("broken", TextQuery(q="x"))

        health = service.health()
        assert health["status"] == "degraded"
        assert health["indexes"]["ok"]["documents"] == 1
        assert "broken" in health["unavailable"]

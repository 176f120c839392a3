"""Index service orchestration layer.

Async facade over the registry and the three query engines. Every core call
runs on a worker thread, so one index's disk write never blocks the event loop
or requests for other indexes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from typing import Any

from docindex_server.domain.model import Document, FieldMapping, JsonValue
from docindex_server.domain.search import SearchHit, StructuredQuery, StructuredResult, TextQuery, VectorQuery
from docindex_server.observability.metrics import (
    DOCUMENTS_INSERTED,
    INDEX_DOC_COUNT,
    PERSIST_FAILURES,
    SEARCH_LATENCY,
    track_latency,
)
from docindex_server.registry import IndexRegistry
from docindex_server.search.index import Durability, Index, WriteResult
from docindex_server.search.structured import structured_search
from docindex_server.search.text_search import text_search
from docindex_server.search.vector_search import DEFAULT_VECTOR_FIELD, DEFAULT_VECTOR_LIMIT, vector_search


logger = logging.getLogger(__name__)


class IndexService:
    """High-level document and query API consumed by the HTTP adapter."""

    def __init__(
        self,
        registry: IndexRegistry,
        *,
        default_vector_limit: int = DEFAULT_VECTOR_LIMIT,
        default_vector_field: str = DEFAULT_VECTOR_FIELD,
    ) -> None:
        self.registry = registry
        self.default_vector_limit = default_vector_limit
        self.default_vector_field = default_vector_field

    # Writes

    async def insert_document(self, name: str, body: JsonValue) -> WriteResult:
        index = await asyncio.to_thread(self.registry.get_or_create, name)
        result = await asyncio.to_thread(index.insert_document, body)
        self._record_write(index, result)
        return result

    async def bulk_insert(self, name: str, bodies: Sequence[JsonValue]) -> WriteResult:
        index = await asyncio.to_thread(self.registry.get_or_create, name)
        result = await asyncio.to_thread(index.bulk_insert, bodies)
        self._record_write(index, result)
        return result

    async def set_mapping(self, name: str, mapping: FieldMapping) -> WriteResult:
        index = await asyncio.to_thread(self.registry.get_or_create, name)
        result = await asyncio.to_thread(index.set_mapping, mapping)
        self._record_write(index, result)
        return result

    # Reads

    async def get_document(self, name: str, doc_id: int) -> Document:
        index = await asyncio.to_thread(self.registry.get, name)
        return index.get(doc_id)

    async def get_mapping(self, name: str) -> FieldMapping:
        index = await asyncio.to_thread(self.registry.get, name)
        return index.mapping

    async def list_indexes(self) -> list[str]:
        return await asyncio.to_thread(self.registry.names)

    async def search_text(self, name: str, query: TextQuery) -> list[SearchHit]:
        index = await asyncio.to_thread(self.registry.get, name)
        return await asyncio.to_thread(self._run_text, index, query)

    async def query(self, name: str, query: StructuredQuery) -> StructuredResult:
        index = await asyncio.to_thread(self.registry.get, name)
        return await asyncio.to_thread(self._run_structured, index, query)

    async def search_vector(self, name: str, query: VectorQuery) -> list[SearchHit]:
        index = await asyncio.to_thread(self.registry.get, name)
        return await asyncio.to_thread(self._run_vector, index, query)

    # Persistence

    async def flush(self) -> dict[str, str]:
        failures = await asyncio.to_thread(self.registry.flush)
        for name in failures:
            PERSIST_FAILURES.labels(index=name).inc()
        return failures

    async def run_flusher(self, interval: float) -> None:
        """Flush dirty indexes every ``interval`` seconds until cancelled."""
        logger.info("Background flusher started (interval %.2fs)", interval)
        try:
            while True:
                await asyncio.sleep(interval)
                await self.flush()
        except asyncio.CancelledError:
            logger.info("Background flusher stopped")
            raise

    def health(self) -> dict[str, Any]:
        unavailable = self.registry.unavailable()
        return {
            "status": "degraded" if unavailable else "healthy",
            "persist_mode": "sync" if self.registry.persist_on_write else "deferred",
            "indexes": {
                index.name: {"documents": index.document_count, "next_id": index.next_id, "dirty": index.dirty}
                for index in self.registry.loaded()
            },
            "unavailable": unavailable,
        }

    # Internals

    def _run_text(self, index: Index, query: TextQuery) -> list[SearchHit]:
        with track_latency(SEARCH_LATENCY, index=index.name, kind="text"):
            return text_search(index.snapshot(), query)

    def _run_structured(self, index: Index, query: StructuredQuery) -> StructuredResult:
        with track_latency(SEARCH_LATENCY, index=index.name, kind="structured"):
            return structured_search(index.snapshot(), query)

    def _run_vector(self, index: Index, query: VectorQuery) -> list[SearchHit]:
        with track_latency(SEARCH_LATENCY, index=index.name, kind="vector"):
            return vector_search(
                index.snapshot(),
                query,
                default_limit=self.default_vector_limit,
                default_field=self.default_vector_field,
            )

    def _record_write(self, index: Index, result: WriteResult) -> None:
        if result.ids:
            DOCUMENTS_INSERTED.labels(index=index.name).inc(len(result.ids))
        INDEX_DOC_COUNT.labels(index=index.name).set(index.document_count)
        if result.durability is Durability.FAILED:
            PERSIST_FAILURES.labels(index=index.name).inc()

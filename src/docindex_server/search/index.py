"""A single named index: documents, field mapping, id counter and its file.

Concurrency model:

* All mutations take ``_write_lock``, so inserts, bulk inserts and mapping
  replacements never interleave and ids are handed out without gaps.
* Documents live in an append-only list. A mutation appends first and then
  publishes a new ``_Published`` record (count, mapping, next id, version) with
  one attribute assignment. Readers take that record and slice the list up to
  ``count``, so a query sees either all of a bulk insert or none of it and never
  needs a lock.
* Persistence takes ``_persist_lock`` and always writes the latest published
  state; a write that finds the file already at or past its version is skipped.
  Disk I/O therefore never holds up inserts, and a slow write on one index never
  touches another.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import logging
import threading
from typing import Any

from docindex_server.domain.model import Document, FieldMapping, IndexState, JsonValue, ensure_json_value
from docindex_server.errors import InvalidInputError, IOFailureError, NotFoundError
from docindex_server.search.codec import dumps_document
from docindex_server.search.store import IndexFileStore


logger = logging.getLogger(__name__)


class Durability(str, Enum):
    """How far an acknowledged mutation has made it towards disk."""

    PERSISTED = "persisted"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of a mutation.

    The mutation is always visible to queries; ``durability`` says whether the
    file reflects it yet. ``FAILED`` is the partial-success case: the in-memory
    state is the source of truth until a later write succeeds.
    """

    ids: tuple[int, ...]
    version: int
    durability: Durability
    error: str | None = None

    @property
    def id(self) -> int:
        return self.ids[0]

    @property
    def persisted(self) -> bool:
        return self.durability is Durability.PERSISTED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"durability": self.durability.value}
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class _Published:
    count: int
    mapping: FieldMapping
    next_id: int
    version: int


class Index:
    """One named document collection backed by ``<data_dir>/<name>.bin``."""

    def __init__(
        self,
        name: str,
        store: IndexFileStore,
        state: IndexState | None = None,
        *,
        persist_on_write: bool = True,
    ) -> None:
        state = state or IndexState()
        self.name = name
        self._store = store
        self._persist_on_write = persist_on_write
        self._write_lock = threading.Lock()
        self._persist_lock = threading.Lock()

        self._documents: list[Document] = list(state.documents)
        self._positions: dict[int, int] = {document.id: pos for pos, document in enumerate(self._documents)}
        next_id = max([state.next_id, *(document.id + 1 for document in self._documents)])
        self._published = _Published(count=len(self._documents), mapping=state.mapping, next_id=next_id, version=0)
        self._persisted_version = 0

    # Reads

    def snapshot(self) -> IndexState:
        """Consistent view of the latest published state."""
        published = self._published
        return IndexState(
            documents=tuple(self._documents[: published.count]),
            mapping=published.mapping,
            next_id=published.next_id,
            version=published.version,
        )

    def get(self, doc_id: int) -> Document:
        published = self._published
        position = self._positions.get(doc_id)
        if position is None or position >= published.count:
            raise NotFoundError(f"Document {doc_id} not found in index '{self.name}'")
        return self._documents[position]

    @property
    def mapping(self) -> FieldMapping:
        return self._published.mapping

    @property
    def next_id(self) -> int:
        return self._published.next_id

    @property
    def document_count(self) -> int:
        return self._published.count

    @property
    def version(self) -> int:
        return self._published.version

    @property
    def dirty(self) -> bool:
        return self._published.version > self._persisted_version

    # Mutations

    def insert_document(self, body: JsonValue) -> WriteResult:
        """Assign the next id to ``body`` and store it."""
        _validate_body(body)
        with self._write_lock:
            published = self._published
            doc_id = published.next_id
            self._append(Document(id=doc_id, body=body))
            version = self._publish(published, count=published.count + 1, next_id=doc_id + 1)
        return self._after_write((doc_id,), version)

    def bulk_insert(self, bodies: Sequence[JsonValue]) -> WriteResult:
        """Insert ``bodies`` in order with consecutive ids; all become visible at once."""
        if isinstance(bodies, (str, bytes, Mapping)) or not isinstance(bodies, Sequence):
            raise InvalidInputError("Bulk insert expects a sequence of documents")
        for body in bodies:
            _validate_body(body)
        with self._write_lock:
            published = self._published
            first_id = published.next_id
            ids = tuple(range(first_id, first_id + len(bodies)))
            for doc_id, body in zip(ids, bodies, strict=True):
                self._append(Document(id=doc_id, body=body))
            version = self._publish(published, count=published.count + len(ids), next_id=first_id + len(ids))
        return self._after_write(ids, version)

    def set_mapping(self, mapping: FieldMapping | Mapping[str, Any]) -> WriteResult:
        """Replace the whole field mapping; existing documents are not revalidated."""
        if not isinstance(mapping, FieldMapping):
            mapping = FieldMapping.from_dict(mapping)
        with self._write_lock:
            published = self._published
            version = self._publish(published, mapping=mapping)
        logger.info("Index %s mapping replaced: %s", self.name, mapping.to_dict())
        return self._after_write((), version)

    # Persistence

    def persist(self) -> bool:
        """Write the latest state to disk.

        Returns ``False`` when the file was already up to date. Raises
        ``IOFailureError`` when the write fails; the in-memory state is untouched.
        """
        with self._persist_lock:
            state = self.snapshot()
            if state.version <= self._persisted_version:
                return False
            self._store.save(self.name, state)
            self._persisted_version = state.version
            return True

    # Internals

    def _append(self, document: Document) -> None:
        self._positions[document.id] = len(self._documents)
        self._documents.append(document)

    def _publish(
        self,
        published: _Published,
        *,
        count: int | None = None,
        mapping: FieldMapping | None = None,
        next_id: int | None = None,
    ) -> int:
        version = published.version + 1
        self._published = _Published(
            count=published.count if count is None else count,
            mapping=published.mapping if mapping is None else mapping,
            next_id=published.next_id if next_id is None else next_id,
            version=version,
        )
        return version

    def _after_write(self, ids: tuple[int, ...], version: int) -> WriteResult:
        if not self._persist_on_write:
            return WriteResult(ids=ids, version=version, durability=Durability.PENDING)
        try:
            self.persist()
        except IOFailureError as exc:
            logger.error("Index %s: mutation %d applied in memory but not persisted: %s", self.name, version, exc)
            return WriteResult(ids=ids, version=version, durability=Durability.FAILED, error=exc.message)
        return WriteResult(ids=ids, version=version, durability=Durability.PERSISTED)

    def __repr__(self) -> str:
        return f"Index(name={self.name!r}, documents={self.document_count}, next_id={self.next_id})"


def _validate_body(body: JsonValue) -> None:
    ensure_json_value(body)
    dumps_document(body)

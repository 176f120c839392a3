"""Process-wide registry of named indexes."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import TYPE_CHECKING

from docindex_server.domain.model import IndexState, validate_index_name
from docindex_server.errors import CorruptDataError, IOFailureError, NotFoundError
from docindex_server.search.index import Index
from docindex_server.search.store import IndexFileStore


if TYPE_CHECKING:
    from docindex_server.config import Settings


logger = logging.getLogger(__name__)


@dataclass
class _NameLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class IndexRegistry:
    """Owns every ``Index`` instance of the process.

    Indexes are loaded lazily on first use. Creation is serialized per name so
    that concurrent first requests for one name share a single instance while
    unrelated names never wait on each other. Per-name locks only live while a
    load is in flight. An index whose file exists but does not decode is
    recorded as unavailable and reported on every access instead of presenting
    an empty index; a failed read of the file is retried on the next access.

    Usage:
        registry = IndexRegistry(IndexFileStore(Path("data")))
        index = registry.get_or_create("products")
        index.insert_document({"title": "apple pie"})
        registry.flush()
    """

    def __init__(self, store: IndexFileStore, *, persist_on_write: bool = True) -> None:
        self._store = store
        self._persist_on_write = persist_on_write
        self._indexes: dict[str, Index] = {}
        self._failures: dict[str, CorruptDataError] = {}
        self._locks: dict[str, _NameLock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> IndexRegistry:
        store = IndexFileStore(Path(settings.data_dir))
        store.ensure_directory()
        return cls(store, persist_on_write=settings.persist_mode == "sync")

    @property
    def store(self) -> IndexFileStore:
        return self._store

    @property
    def persist_on_write(self) -> bool:
        return self._persist_on_write

    def get_or_create(self, name: str) -> Index:
        """Return the index called ``name``, loading or creating it on first use."""
        index = self._indexes.get(name)
        if index is not None:
            return index
        validate_index_name(name)
        with self._name_lock(name):
            index = self._indexes.get(name)
            if index is None:
                index = self._load(name)
            if index is None:
                logger.info("Creating index %s", name)
                index = self._register(name, None)
            return index

    def get(self, name: str) -> Index:
        """Return an existing index, loading it from disk if needed; never creates one."""
        index = self._indexes.get(name)
        if index is not None:
            return index
        validate_index_name(name)
        with self._name_lock(name):
            index = self._indexes.get(name)
            if index is None:
                index = self._load(name)
            if index is None:
                raise NotFoundError(f"Index '{name}' not found")
            return index

    def names(self) -> list[str]:
        """All known index names: loaded, unavailable and present on disk."""
        known = set(self._indexes) | set(self._failures)
        try:
            known.update(self._store.names())
        except IOFailureError as exc:
            logger.warning("Could not list data directory: %s", exc)
        return sorted(known)

    def loaded_names(self) -> list[str]:
        return sorted(self._indexes)

    def loaded(self) -> list[Index]:
        return [self._indexes[name] for name in sorted(self._indexes)]

    def unavailable(self) -> dict[str, str]:
        return {name: error.message for name, error in sorted(self._failures.items())}

    def flush(self) -> dict[str, str]:
        """Persist every dirty index; returns ``{name: error}`` for writes that failed."""
        failures: dict[str, str] = {}
        written = 0
        for index in list(self._indexes.values()):
            try:
                if index.persist():
                    written += 1
            except IOFailureError as exc:
                failures[index.name] = exc.message
                logger.error("Flush of index %s failed: %s", index.name, exc)
        if written or failures:
            logger.info("Flushed %d indexes (%d failed)", written, len(failures))
        return failures

    def __contains__(self, name: str) -> bool:
        return name in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)

    @contextmanager
    def _name_lock(self, name: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = _NameLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[name]

    def _load(self, name: str) -> Index | None:
        # caller holds the per-name lock
        failure = self._failures.get(name)
        if failure is not None:
            raise CorruptDataError(failure.message) from None
        try:
            state = self._store.load(name)
        except CorruptDataError as exc:
            logger.error("Index %s is unavailable: %s", name, exc)
            self._failures[name] = CorruptDataError(exc.message)
            raise
        except IOFailureError as exc:
            logger.error("Could not read index %s: %s", name, exc)
            raise
        if state is None:
            return None
        return self._register(name, state)

    def _register(self, name: str, state: IndexState | None) -> Index:
        index = Index(name, self._store, state, persist_on_write=self._persist_on_write)
        self._indexes[name] = index
        return index

"""Unit tests for a single named index: ids, bulk inserts, snapshots and persistence."""

from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from docindex_server.domain.model import FieldMapping, FieldType, IndexState
from docindex_server.errors import InvalidInputError, IOFailureError, NotFoundError
from docindex_server.search.index import Durability, Index
from docindex_server.search.store import IndexFileStore


class FailingStore(IndexFileStore):
    """Store whose writes fail until ``healthy`` is set."""

    def __init__(self, directory) -> None:
        super().__init__(directory)
        self.healthy = False
        self.saves = 0

    def save(self, name, state):
        self.saves += 1
        if not self.healthy:
            raise IOFailureError("disk full")
        return super().save(name, state)


@pytest.mark.unit
class TestIdAssignment:
    def test_sequential_inserts_are_strictly_increasing(self, index):
        ids = [index.insert_document({"n": n}).id for n in range(20)]
        assert ids == list(range(20))
        assert index.next_id == 20

    def test_ids_continue_after_reload(self, index, store):
        for n in range(3):
            index.insert_document({"n": n})
        reloaded = Index("products", store, store.load("products"))
        assert reloaded.insert_document({"n": 3}).id == 3

    def test_counter_is_never_below_stored_ids(self, store):
        state = IndexState(next_id=10)
        index = Index("idx", store, state)
        assert index.insert_document({}).id == 10

    def test_concurrent_inserts_never_share_an_id(self, index):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda n: index.insert_document({"n": n}), range(200)))
        ids = sorted(result.id for result in results)
        assert ids == list(range(200))
        assert index.document_count == 200


@pytest.mark.unit
class TestBulkInsert:
    def test_ids_are_contiguous_and_ordered(self, index):
        index.insert_document({"first": True})
        result = index.bulk_insert([{"d": 0}, {"d": 1}, {"d": 2}])
        assert result.ids == (1, 2, 3)
        assert [index.get(doc_id).body for doc_id in result.ids] == [{"d": 0}, {"d": 1}, {"d": 2}]

    def test_empty_bulk(self, index):
        result = index.bulk_insert([])
        assert result.ids == ()
        assert index.next_id == 0

    def test_concurrent_bulks_do_not_interleave(self, index):
        batches = [[{"batch": b, "n": n} for n in range(25)] for b in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(index.bulk_insert, batches))

        for result in results:
            assert list(result.ids) == list(range(result.ids[0], result.ids[0] + 25))
            batch_numbers = {index.get(doc_id).body["batch"] for doc_id in result.ids}
            assert len(batch_numbers) == 1
        all_ids = sorted(doc_id for result in results for doc_id in result.ids)
        assert all_ids == list(range(200))

    @pytest.mark.parametrize("payload", [{"documents": []}, "text", b"bytes", 5])
    def test_non_sequence_payload_is_rejected(self, index, payload):
        with pytest.raises(InvalidInputError):
            index.bulk_insert(payload)

    def test_invalid_document_rejects_whole_batch(self, index):
        with pytest.raises(InvalidInputError):
            index.bulk_insert([{"ok": 1}, {"bad": float("nan")}])
        assert index.document_count == 0
        assert index.next_id == 0


@pytest.mark.unit
class TestSnapshots:
    def test_snapshot_is_isolated_from_later_writes(self, index):
        index.insert_document({"n": 0})
        snapshot = index.snapshot()
        index.bulk_insert([{"n": 1}, {"n": 2}])

        assert len(snapshot.documents) == 1
        assert snapshot.next_id == 1
        assert len(index.snapshot().documents) == 3

    def test_readers_never_see_partial_bulk(self, index):
        stop = threading.Event()
        observed: list[int] = []

        def reader():
            while not stop.is_set():
                observed.append(len(index.snapshot().documents))

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for _ in range(20):
                index.bulk_insert([{"n": n} for n in range(10)])
        finally:
            stop.set()
            thread.join()

        assert all(count % 10 == 0 for count in observed)

    def test_snapshot_ids_below_counter(self, index):
        index.bulk_insert([{}, {}, {}])
        snapshot = index.snapshot()
        assert all(document.id < snapshot.next_id for document in snapshot.documents)

    def test_get_unknown_id(self, index):
        index.insert_document({})
        with pytest.raises(NotFoundError):
            index.get(5)


@pytest.mark.unit
class TestMapping:
    def test_set_mapping_replaces_wholesale(self, index):
        index.set_mapping({"views": "numeric", "title": "string"})
        index.set_mapping(FieldMapping.from_dict({"embedding": "vector"}))
        assert index.mapping.to_dict() == {"embedding": "vector"}
        assert index.mapping.type_of("embedding") is FieldType.VECTOR

    def test_mapping_does_not_reject_documents(self, index):
        index.set_mapping({"views": "numeric"})
        assert index.insert_document({"views": "lots"}).durability is Durability.PERSISTED

    def test_mapping_is_persisted(self, index, store):
        index.set_mapping({"views": "numeric"})
        assert store.load("products").mapping.to_dict() == {"views": "numeric"}


@pytest.mark.unit
class TestPersistence:
    def test_sync_write_is_persisted(self, index, store):
        result = index.insert_document({"title": "persist"})
        assert result.durability is Durability.PERSISTED
        assert result.persisted
        assert store.load("products") == index.snapshot()
        assert not index.dirty

    def test_deferred_write_is_pending_until_persist(self, store):
        index = Index("deferred", store, persist_on_write=False)
        result = index.insert_document({"title": "later"})

        assert result.durability is Durability.PENDING
        assert index.dirty
        assert store.load("deferred") is None

        assert index.persist() is True
        assert not index.dirty
        assert store.load("deferred").documents[0].body == {"title": "later"}

    def test_persist_skips_when_clean(self, index):
        index.insert_document({})
        assert index.persist() is False

    def test_failed_write_keeps_mutation_visible(self, data_dir):
        store = FailingStore(data_dir)
        index = Index("flaky", store)

        result = index.insert_document({"title": "kept"})

        assert result.durability is Durability.FAILED
        assert result.error == "disk full"
        assert result.to_dict() == {"durability": "failed", "error": "disk full"}
        assert index.get(result.id).body == {"title": "kept"}
        assert index.dirty

    def test_later_write_catches_up_after_failure(self, data_dir):
        store = FailingStore(data_dir)
        index = Index("flaky", store)
        index.insert_document({"n": 0})

        store.healthy = True
        result = index.insert_document({"n": 1})

        assert result.persisted
        assert len(store.load("flaky").documents) == 2

    def test_explicit_persist_raises_on_failure(self, data_dir):
        index = Index("flaky", FailingStore(data_dir), persist_on_write=False)
        index.insert_document({})
        with pytest.raises(IOFailureError):
            index.persist()
        assert index.dirty

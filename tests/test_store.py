"""
tests/test_store.py — Document store contract: filters, chunked `in` queries,
subscriptions, atomic batches and the JSON file backend.
"""

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from shift_roster.exceptions import StoreUnavailable
from shift_roster.store import (
    BatchWrite,
    Filter,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    chunked,
)


class FailingWriteStore(InMemoryDocumentStore):
    """Fails on the n-th write applied (1-based), counting across commits."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.applied = 0

    def _apply_write(self, write):
        self.applied += 1
        if self.applied == self.fail_on:
            raise IOError("disk full")
        super()._apply_write(write)


class CountingStore(InMemoryDocumentStore):
    """Records the size of every `in` filter sent to the backend."""

    def __init__(self):
        super().__init__()
        self.in_sizes = []

    def _run_query(self, path, filters):
        self.in_sizes += [len(f.value) for f in filters if f.op == "in"]
        return super()._run_query(path, filters)


@pytest.fixture
def store():
    s = InMemoryDocumentStore()
    s.set_document("Holidays", "h1", {"Date": "2024-03-01", "Name": "A"})
    s.set_document("Holidays", "h2", {"Date": "2024-03-15", "Name": "B"})
    s.set_document("Holidays", "h3", {"Date": "2024-04-01", "Name": "C"})
    return s


# ---------------------------------------------------------------------------
# Documents & filters
# ---------------------------------------------------------------------------

class TestDocuments:

    def test_get_missing(self, store):
        assert store.get_document("Holidays", "nope") is None

    def test_get_missing_collection(self, store):
        assert store.get_document("Users/ghost/Schedule", "Rotation") is None

    def test_get_returns_copy(self, store):
        doc = store.get_document("Holidays", "h1")
        doc.data["Name"] = "changed"
        assert store.get_document("Holidays", "h1").data["Name"] == "A"

    def test_add_generates_id(self, store):
        doc_id = store.add_document("Holidays", {"Date": "2024-05-01"})
        assert doc_id
        assert store.get_document("Holidays", doc_id).data == {"Date": "2024-05-01"}

    def test_merge_keeps_other_fields(self, store):
        store.set_document("Holidays", "h1", {"Name": "New"}, merge=True)
        assert store.get_document("Holidays", "h1").data == {"Date": "2024-03-01", "Name": "New"}

    def test_set_without_merge_replaces(self, store):
        store.set_document("Holidays", "h1", {"Name": "New"})
        assert store.get_document("Holidays", "h1").data == {"Name": "New"}

    def test_range_filters(self, store):
        docs = store.query_documents("Holidays", [
            Filter("Date", ">=", "2024-03-01"), Filter("Date", "<=", "2024-03-31"),
        ])
        assert sorted(d.id for d in docs) == ["h1", "h2"]

    def test_equality_and_strict_ops(self, store):
        assert [d.id for d in store.query_documents("Holidays", [Filter("Name", "==", "B")])] == ["h2"]
        assert [d.id for d in store.query_documents("Holidays", [Filter("Date", ">", "2024-03-15")])] == ["h3"]
        assert [d.id for d in store.query_documents("Holidays", [Filter("Date", "<", "2024-03-15")])] == ["h1"]

    def test_missing_field_never_matches(self, store):
        store.set_document("Holidays", "h4", {"Name": "no date"})
        docs = store.query_documents("Holidays", [Filter("Date", "<=", "2099-01-01")])
        assert "h4" not in [d.id for d in docs]

    def test_unknown_op_rejected(self):
        with pytest.raises(ValueError):
            Filter("Date", "!=", "x")

    def test_empty_collection(self, store):
        assert store.query_documents("Users/u1/Leaves") == []


class TestInQueries:

    def test_chunked_helper(self):
        assert chunked(list(range(23)), 10) == [list(range(10)), list(range(10, 20)), [20, 21, 22]]

    def test_in_query_split_into_chunks_of_ten(self):
        store = CountingStore()
        for i in range(25):
            store.set_document("CustomShifts", f"d{i}", {"Date": f"2024-01-{i + 1:02d}"})
        wanted = [f"2024-01-{i + 1:02d}" for i in range(25)]
        docs = store.query_documents("CustomShifts", [Filter("Date", "in", wanted)])
        assert len(docs) == 25
        assert store.in_sizes == [10, 10, 5]

    def test_in_query_deduplicates(self, store):
        docs = store.query_documents("Holidays", [Filter("Date", "in", ["2024-03-01"] * 12)])
        assert [d.id for d in docs] == ["h1"]

    def test_empty_in_list(self, store):
        assert store.query_documents("Holidays", [Filter("Date", "in", [])]) == []

    def test_two_in_filters_rejected(self, store):
        with pytest.raises(ValueError):
            store.query_documents("Holidays", [Filter("Date", "in", ["a"]), Filter("Name", "in", ["b"])])


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class TestSubscriptions:

    def test_initial_snapshot_and_updates(self, store):
        snapshots = []
        store.subscribe("Holidays", [Filter("Date", "<", "2024-04-01")],
                        lambda docs: snapshots.append(sorted(d.id for d in docs)))
        assert snapshots == [["h1", "h2"]]
        store.set_document("Holidays", "h5", {"Date": "2024-03-20"})
        assert snapshots[-1] == ["h1", "h2", "h5"]

    def test_other_paths_do_not_notify(self, store):
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        store.add_document("Users/u1/Leaves", {"StartDate": "2024-03-01"})
        assert len(snapshots) == 1

    def test_unsubscribe_stops_updates(self, store):
        snapshots = []
        sub = store.subscribe("Holidays", [], snapshots.append)
        sub.unsubscribe()
        store.add_document("Holidays", {"Date": "2024-06-01"})
        assert len(snapshots) == 1
        assert not sub.active
        assert store.subscription_count == 0

    def test_one_notification_per_batch(self, store):
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        store.commit_batch([
            BatchWrite("Holidays", {"Date": "2024-07-01"}),
            BatchWrite("Holidays", {"Date": "2024-07-02"}),
        ])
        assert len(snapshots) == 2
        assert len(snapshots[-1]) == 5

    def test_unsubscribe_inside_callback(self, store):
        calls = []

        def once(docs):
            calls.append(len(docs))
            if len(calls) == 2:
                sub.unsubscribe()

        sub = store.subscribe("Holidays", [], once)
        store.add_document("Holidays", {"Date": "2024-08-01"})
        store.add_document("Holidays", {"Date": "2024-08-02"})
        assert calls == [3, 4]

    def test_failing_callback_does_not_block_others(self, store):
        calls = []
        seen = []

        def broken(docs):
            calls.append(len(docs))
            if len(calls) > 1:
                raise RuntimeError("listener bug")

        store.subscribe("Holidays", [], broken)
        store.subscribe("Holidays", [], lambda docs: seen.append(len(docs)))
        store.commit_batch([BatchWrite("Holidays", {"Date": "2024-09-01"}, document_id="h9")])
        assert calls == [3, 4]
        assert seen == [3, 4]
        assert store.get_document("Holidays", "h9").data == {"Date": "2024-09-01"}


# ---------------------------------------------------------------------------
# Atomic batches
# ---------------------------------------------------------------------------

class TestAtomicBatch:

    def test_failed_batch_rolls_back(self):
        store = FailingWriteStore(fail_on=2)
        with pytest.raises(StoreUnavailable):
            store.commit_batch([
                BatchWrite("Users/u1/Leaves", {"StartDate": "2024-03-01"}, document_id="l1"),
                BatchWrite("Users/u1/Leaves", {"StartDate": "2024-03-02"}, document_id="l2"),
                BatchWrite("Users/u2/Leaves", {"StartDate": "2024-03-03"}, document_id="l3"),
            ])
        assert store.query_documents("Users/u1/Leaves") == []
        assert store.query_documents("Users/u2/Leaves") == []

    def test_failed_batch_does_not_notify(self):
        store = FailingWriteStore(fail_on=1)
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        with pytest.raises(StoreUnavailable):
            store.commit_batch([BatchWrite("Holidays", {"Date": "2024-01-01"})])
        assert len(snapshots) == 1

    def test_empty_batch_is_noop(self, store):
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        store.commit_batch([])
        assert len(snapshots) == 1


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------

class TestJsonFileStore:

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        first = JsonFileDocumentStore(path)
        first.set_document("Users/u1/Schedule", "s1", {"Active Days": 4})
        second = JsonFileDocumentStore(path)
        assert second.get_document("Users/u1/Schedule", "s1").data == {"Active Days": 4}
        assert json.loads(path.read_text())["Users/u1/Schedule"]["s1"]["Active Days"] == 4

    def test_missing_file_starts_empty(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path / "nested" / "store.json")
        assert store.query_documents("Holidays") == []
        store.add_document("Holidays", {"Date": "2024-01-01"})
        assert (tmp_path / "nested" / "store.json").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StoreUnavailable):
            JsonFileDocumentStore(path)

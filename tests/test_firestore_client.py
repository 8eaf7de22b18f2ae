"""
tests/test_firestore_client.py — Firestore REST store: value codec, query
building, batch payloads and HTTP failure handling (no network).
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from shift_roster.exceptions import StoreUnavailable
from shift_roster.firestore_client import (
    FirestoreRestStore,
    decode_fields,
    decode_value,
    encode_fields,
    encode_value,
    field_path,
)
from shift_roster.store import BatchWrite, Filter

ROOT = "projects/demo/databases/(default)/documents"


class FakeResponse:

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    """Records requests and answers from a queue of (status, payload)."""

    def __init__(self, responses=None):
        self.headers = {}
        self.calls = []
        self.responses = list(responses or [])

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            return FakeResponse(200, {})
        status, payload = self.responses.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return FakeResponse(status, payload)


def make_store(responses=None):
    session = FakeSession(responses)
    store = FirestoreRestStore("demo", token="t0k", base_url="http://emulator/v1", session=session)
    return store, session


# ---------------------------------------------------------------------------
# Value codec
# ---------------------------------------------------------------------------

class TestValueCodec:

    def test_encode_scalars(self):
        assert encode_value(5) == {"integerValue": "5"}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(1.5) == {"doubleValue": 1.5}
        assert encode_value("WD") == {"stringValue": "WD"}
        assert encode_value(None) == {"nullValue": None}

    def test_encode_nested(self):
        encoded = encode_fields({"Window": {"Start": "08:00"}, "Codes": ["MS", "NS"]})
        assert encoded["Window"] == {"mapValue": {"fields": {"Start": {"stringValue": "08:00"}}}}
        assert encoded["Codes"]["arrayValue"]["values"][1] == {"stringValue": "NS"}

    def test_encode_unsupported(self):
        with pytest.raises(TypeError):
            encode_value(object())

    def test_decode_document_fields(self):
        fields = {
            "Active Days": {"integerValue": "5"},
            "Shift Start": {"stringValue": "2024-03-01"},
            "Tags": {"arrayValue": {}},
        }
        assert decode_fields(fields) == {"Active Days": 5, "Shift Start": "2024-03-01", "Tags": []}

    def test_decode_timestamp_nanoseconds(self):
        ts = decode_value({"timestampValue": "2024-03-01T08:30:00.123456789Z"})
        assert ts == datetime(2024, 3, 1, 8, 30, 0, 123456, tzinfo=timezone.utc)

    def test_decode_unknown(self):
        with pytest.raises(ValueError):
            decode_value({"geoPointValue": {}})

    def test_field_path_quoting(self):
        assert field_path("Shift") == "Shift"
        assert field_path("Active Days") == "`Active Days`"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestRequests:

    def test_auth_header(self):
        _, session = make_store()
        assert session.headers["Authorization"] == "Bearer t0k"

    def test_get_document(self):
        store, session = make_store([(200, {
            "name": f"{ROOT}/Users/p1/Schedule/s1",
            "fields": {"Active Days": {"integerValue": "4"}},
        })])
        doc = store.get_document("Users/p1/Schedule", "s1")
        assert doc.id == "s1"
        assert doc.data == {"Active Days": 4}
        method, url, _ = session.calls[0]
        assert (method, url) == ("GET", f"http://emulator/v1/{ROOT}/Users/p1/Schedule/s1")

    def test_get_missing_document(self):
        store, _ = make_store([(404, {"error": {"code": 404}})])
        assert store.get_document("Holidays", "nope") is None

    def test_merge_sets_update_mask(self):
        store, session = make_store([(200, {"name": f"{ROOT}/Users/p1/CustomShifts/c1"})])
        store.set_document("Users/p1/CustomShifts", "c1", {"Shift": "NS"}, merge=True)
        method, _, kwargs = session.calls[0]
        assert method == "PATCH"
        assert kwargs["params"] == [("updateMask.fieldPaths", "Shift")]
        assert kwargs["json"] == {"fields": {"Shift": {"stringValue": "NS"}}}

    def test_add_document_returns_id(self):
        store, session = make_store([(200, {"name": f"{ROOT}/Holidays/abc", "fields": {}})])
        assert store.add_document("Holidays", {"Date": "2024-01-01"}) == "abc"
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", f"http://emulator/v1/{ROOT}/Holidays")
        assert "documentId" in kwargs["params"]

    def test_http_error_becomes_store_unavailable(self):
        store, _ = make_store([(503, {})])
        with pytest.raises(StoreUnavailable):
            store.get_document("Holidays", "h1")

    def test_connection_error_becomes_store_unavailable(self):
        store, _ = make_store([(0, requests.exceptions.ConnectionError("refused"))])
        with pytest.raises(StoreUnavailable) as exc:
            store.query_documents("Holidays")
        assert isinstance(exc.value.__cause__, requests.exceptions.ConnectionError)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:

    def test_single_filter(self):
        store, _ = make_store()
        query = store.build_query("Users/p1/Leaves", [Filter("StartDate", "<=", "2024-03-31")])
        where = query["structuredQuery"]["where"]["fieldFilter"]
        assert where["op"] == "LESS_THAN_OR_EQUAL"
        assert query["structuredQuery"]["from"] == [{"collectionId": "Leaves"}]

    def test_range_filters_composite(self):
        store, _ = make_store()
        query = store.build_query("Users/p1/CustomShifts", [
            Filter("Date", ">=", "2024-03-01"), Filter("Date", "<=", "2024-03-31"),
        ])
        composite = query["structuredQuery"]["where"]["compositeFilter"]
        assert composite["op"] == "AND"
        assert len(composite["filters"]) == 2

    def test_no_filters(self):
        store, _ = make_store()
        assert "where" not in store.build_query("Holidays", [])["structuredQuery"]

    def test_document_path_rejected(self):
        store, _ = make_store()
        with pytest.raises(ValueError):
            store.build_query("Users/p1", [])

    def test_run_query_posts_to_parent(self):
        store, session = make_store([(200, [
            {"readTime": "2024-03-01T00:00:00Z"},
            {"document": {"name": f"{ROOT}/Users/p1/Leaves/l1",
                          "fields": {"StartDate": {"stringValue": "2024-03-02"}}}},
        ])])
        docs = store.query_documents("Users/p1/Leaves")
        assert [d.id for d in docs] == ["l1"]
        _, url, _ = session.calls[0]
        assert url == f"http://emulator/v1/{ROOT}/Users/p1:runQuery"

    def test_in_query_chunked(self):
        store, session = make_store([(200, []), (200, []), (200, [])])
        dates = [f"2024-03-{d:02d}" for d in range(1, 24)]
        store.query_documents("Users/p1/CustomShifts", [Filter("Date", "in", dates)])
        sizes = [
            len(kwargs["json"]["structuredQuery"]["where"]["fieldFilter"]["value"]["arrayValue"]["values"])
            for _, _, kwargs in session.calls
        ]
        assert sizes == [10, 10, 3]


# ---------------------------------------------------------------------------
# Batches & subscriptions
# ---------------------------------------------------------------------------

class TestBatch:

    def test_commit_payload(self):
        store, session = make_store()
        store.commit_batch([
            BatchWrite("Users/p1/Leaves", {"StartDate": "2024-03-04"}, document_id="l1"),
            BatchWrite("Users/p1/CustomShifts", {"Shift": "LV"}, document_id="c1", merge=True),
        ])
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", f"http://emulator/v1/{ROOT}:commit")
        writes = kwargs["json"]["writes"]
        assert writes[0]["update"]["name"] == f"{ROOT}/Users/p1/Leaves/l1"
        assert "updateMask" not in writes[0]
        assert writes[1]["updateMask"] == {"fieldPaths": ["Shift"]}

    def test_empty_batch_sends_nothing(self):
        store, session = make_store()
        store.commit_batch([])
        assert session.calls == []

    def test_commit_notifies_subscribers(self):
        store, session = make_store([(200, []), (200, {}), (200, [
            {"document": {"name": f"{ROOT}/Holidays/h1", "fields": {"Date": {"stringValue": "2024-01-01"}}}},
        ])])
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        store.commit_batch([BatchWrite("Holidays", {"Date": "2024-01-01"}, document_id="h1")])
        assert [len(s) for s in snapshots] == [0, 1]

    def test_failed_commit_does_not_notify(self):
        store, _ = make_store([(200, []), (500, {})])
        snapshots = []
        store.subscribe("Holidays", [], snapshots.append)
        with pytest.raises(StoreUnavailable):
            store.commit_batch([BatchWrite("Holidays", {"Date": "2024-01-01"})])
        assert len(snapshots) == 1

"""
store.py — Document Store Contract & Local Backends

Contract consumed by the roster core (collections of id → document, grouped
by slash-separated collection paths such as "Users/u1/Leaves"):

  get_document(path, id)                  → Document | None
  set_document(path, id, data, merge)
  add_document(path, data)                → generated id
  query_documents(path, [Filter, ...])    ops: == < <= > >= in
  subscribe(path, filters, on_snapshot)   → Subscription (fires now + on every change)
  commit_batch([BatchWrite, ...])         atomic: all writes or none

Backends here:
  - InMemoryDocumentStore: reference implementation, rollback on failed commit
  - JsonFileDocumentStore: in-memory store persisted to one JSON file

`in` filters are split into chunks of `max_in_values` when a backend caps
them (Firestore allows 10 values per `in`).
"""

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from shift_roster.exceptions import StoreUnavailable
from shift_roster.roster_config import IN_QUERY_LIMIT

logger = logging.getLogger(__name__)

SUPPORTED_OPS = ("==", "<", "<=", ">", ">=", "in")


@dataclass
class Document:
    id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in SUPPORTED_OPS:
            raise ValueError(f"Unsupported filter op {self.op!r} (expected one of {SUPPORTED_OPS})")

    def matches(self, data: Dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        try:
            if self.op == "==":
                return actual == self.value
            if self.op == "in":
                return actual in self.value
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            # Mixed types never match (e.g. None vs date string)
            return False


@dataclass
class BatchWrite:
    """One write inside an atomic batch. document_id=None → generated id."""
    path: str
    data: Dict[str, Any]
    document_id: Optional[str] = None
    merge: bool = False


SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[StoreUnavailable], None]


class Subscription:
    """Live query handle. Call unsubscribe() to stop receiving snapshots."""

    def __init__(
        self,
        store: "DocumentStore",
        path: str,
        filters: List[Filter],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.store = store
        self.path = path
        self.filters = filters
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._remove_subscription(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.path} filters={len(self.filters)} {state}>"


def chunked(values: List[Any], size: int) -> List[List[Any]]:
    """Split values into lists of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [values[i:i + size] for i in range(0, len(values), size)]


# ---------------------------------------------------------------------------
# Abstract contract
# ---------------------------------------------------------------------------

class DocumentStore(ABC):
    """
    Base class for document stores.

    Subclasses implement the raw operations; query chunking and change
    notification to subscribers live here.
    """

    max_in_values: Optional[int] = IN_QUERY_LIMIT

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    @abstractmethod
    def get_document(self, path: str, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def set_document(self, path: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    def add_document(self, path: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def commit_batch(self, writes: List[BatchWrite]) -> None:
        ...

    @abstractmethod
    def _run_query(self, path: str, filters: List[Filter]) -> List[Document]:
        """Run one query with at most one `in` filter of acceptable size."""

    def new_document_id(self) -> str:
        return uuid.uuid4().hex[:20]

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def query_documents(self, path: str, filters: Optional[Iterable[Filter]] = None) -> List[Document]:
        """
        Run a query, splitting an oversized `in` filter into chunks.

        Results of chunked queries are merged in chunk order, de-duplicated
        by document id.
        """
        filters = list(filters or [])
        in_filters = [f for f in filters if f.op == "in"]
        if len(in_filters) > 1:
            raise ValueError("At most one 'in' filter per query")
        if not in_filters:
            return self._run_query(path, filters)

        in_filter = in_filters[0]
        values = list(in_filter.value)
        if not values:
            return []
        limit = self.max_in_values or len(values)
        others = [f for f in filters if f is not in_filter]

        seen: Set[str] = set()
        results: List[Document] = []
        chunks = chunked(values, limit)
        if len(chunks) > 1:
            logger.debug(f"Splitting 'in' query on {path}.{in_filter.field} into {len(chunks)} chunks")
        for chunk in chunks:
            for doc in self._run_query(path, others + [Filter(in_filter.field, "in", chunk)]):
                if doc.id not in seen:
                    seen.add(doc.id)
                    results.append(doc)
        return results

    # -----------------------------------------------------------------------
    # Subscriptions
    # -----------------------------------------------------------------------

    def subscribe(
        self,
        path: str,
        filters: Optional[Iterable[Filter]],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Deliver the current matches now and again after every change to `path`."""
        sub = Subscription(self, path, list(filters or []), on_snapshot, on_error)
        self._subscriptions.append(sub)
        logger.debug(f"Subscribed to {path} ({len(sub.filters)} filters)")
        self._deliver(sub)
        return sub

    def _remove_subscription(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)
            logger.debug(f"Unsubscribed from {sub.path}")

    def _deliver(self, sub: Subscription) -> None:
        try:
            docs = self.query_documents(sub.path, sub.filters)
        except StoreUnavailable as e:
            logger.error(f"Snapshot for {sub.path} failed: {e}")
            if sub.on_error is None:
                raise
            sub.on_error(e)
            return
        try:
            sub.on_snapshot(docs)
        except Exception:
            # Logged only; the write has committed and other listeners still run
            logger.exception(f"Snapshot callback for {sub.path} raised")

    def _notify(self, paths: Iterable[str]) -> None:
        changed = set(paths)
        for sub in list(self._subscriptions):
            if sub.active and sub.path in changed:
                self._deliver(sub)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store. commit_batch applies writes in order and restores
    the previous state if any write fails, so readers never see half a batch.
    """

    max_in_values = IN_QUERY_LIMIT

    def __init__(self, initial: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(initial or {})

    def get_document(self, path: str, document_id: str) -> Optional[Document]:
        data = self._collections.get(path, {}).get(document_id)
        if data is None:
            return None
        return Document(document_id, copy.deepcopy(data))

    def set_document(self, path: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.commit_batch([BatchWrite(path, data, document_id=document_id, merge=merge)])

    def add_document(self, path: str, data: Dict[str, Any]) -> str:
        document_id = self.new_document_id()
        self.commit_batch([BatchWrite(path, data, document_id=document_id)])
        return document_id

    def _run_query(self, path: str, filters: List[Filter]) -> List[Document]:
        docs = self._collections.get(path, {})
        return [
            Document(doc_id, copy.deepcopy(data))
            for doc_id, data in docs.items()
            if all(f.matches(data) for f in filters)
        ]

    def commit_batch(self, writes: List[BatchWrite]) -> None:
        if not writes:
            return
        before = copy.deepcopy(self._collections)
        try:
            for write in writes:
                self._apply_write(write)
            self._persist()
        except Exception as e:
            self._collections = before
            logger.error(f"Batch of {len(writes)} writes rolled back: {e}")
            raise StoreUnavailable(f"Batch commit failed: {e}") from e
        self._notify(w.path for w in writes)

    def _apply_write(self, write: BatchWrite) -> None:
        collection = self._collections.setdefault(write.path, {})
        document_id = write.document_id or self.new_document_id()
        if write.merge and document_id in collection:
            collection[document_id].update(copy.deepcopy(write.data))
        else:
            collection[document_id] = copy.deepcopy(write.data)

    def _persist(self) -> None:
        """Hook for durable subclasses; runs inside the commit."""

    def collection_size(self, path: str) -> int:
        return len(self._collections.get(path, {}))


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------

class JsonFileDocumentStore(InMemoryDocumentStore):
    """
    In-memory store loaded from / saved to a single JSON file.

    Layout: {"collection/path": {"doc_id": {...fields}}}. The file is
    rewritten through a temp file + replace after every commit.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        initial: Dict[str, Dict[str, Dict[str, Any]]] = {}
        if self.path.exists():
            raw = self.path.read_text(encoding="utf-8").strip()
            if raw:
                try:
                    initial = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise StoreUnavailable(f"Store file {self.path} is not valid JSON: {e}") from e
            logger.info(f"Loaded document store {self.path}: {len(initial)} collections")
        else:
            logger.info(f"Document store {self.path} not found, starting empty")
        super().__init__(initial)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._collections, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

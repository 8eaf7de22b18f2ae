"""
Firestore REST Client
Document store backed by the Google Cloud Firestore REST API

Documentation: https://firebase.google.com/docs/firestore/reference/rest

Collections map 1:1 onto store paths ("Users/u1/Leaves" is the Leaves
subcollection of document Users/u1). Subscriptions are served by
re-running the query after every write issued through this client; changes
made by other clients are picked up on the next write or refresh().
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from shift_roster.exceptions import StoreUnavailable
from shift_roster.roster_config import IN_QUERY_LIMIT
from shift_roster.store import BatchWrite, Document, DocumentStore, Filter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://firestore.googleapis.com/v1"

OPERATORS = {
    "==": "EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_OR_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_OR_EQUAL",
    "in": "IN",
}

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")
_FRACTION = re.compile(r"\.(\d+)")


# ---------------------------------------------------------------------------
# Value encoding
# ---------------------------------------------------------------------------

def encode_value(value: Any) -> Dict[str, Any]:
    """Convert a Python value to a Firestore Value object."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(val) for key, val in data.items()}


def _parse_timestamp(raw: str) -> datetime:
    # Firestore sends up to nanosecond precision; datetime holds microseconds
    text = raw.replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


def decode_value(value: Dict[str, Any]) -> Any:
    """Convert a Firestore Value object back to a Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "referenceValue" in value:
        return value["referenceValue"]
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


def field_path(name: str) -> str:
    """Quote a field name for updateMask / query use ("Active Days" → `Active Days`)."""
    if _SIMPLE_FIELD.match(name):
        return name
    return "`" + name.replace("\\", "\\\\").replace("`", "\\`") + "`"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class FirestoreRestStore(DocumentStore):
    """
    Document store talking to Firestore over HTTPS
    """

    max_in_values = IN_QUERY_LIMIT

    def __init__(
        self,
        project_id: str,
        token: Optional[str] = None,
        database: str = "(default)",
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        """
        Initialize Firestore client

        Args:
            project_id: Google Cloud project id
            token: OAuth2 access token (None for the local emulator)
            database: Firestore database id
            base_url: REST root, e.g. http://localhost:8080/v1 for the emulator
            session: Pre-configured requests session
            timeout: Per-request timeout (seconds)
        """
        super().__init__()
        self.project_id = project_id
        self.base_url = base_url.rstrip('/')
        self.documents_root = f"projects/{project_id}/databases/{database}/documents"
        self.timeout = timeout

        self.session = session if session is not None else requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if token:
            self.session.headers.update({'Authorization': f'Bearer {token}'})

    # -----------------------------------------------------------------------
    # HTTP plumbing
    # -----------------------------------------------------------------------

    def _url(self, resource: str) -> str:
        return f"{self.base_url}/{resource}"

    def _document_name(self, path: str, document_id: str) -> str:
        return f"{self.documents_root}/{path.strip('/')}/{document_id}"

    def _request(self, method: str, url: str, allow_missing: bool = False, **kwargs) -> Optional[Any]:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Firestore {method} {url} failed: {e}")
            raise StoreUnavailable(f"Firestore {method} failed: {e}") from e

    @staticmethod
    def _to_document(raw: Dict[str, Any]) -> Document:
        document_id = raw["name"].rsplit("/", 1)[-1]
        return Document(document_id, decode_fields(raw.get("fields", {})))

    # -----------------------------------------------------------------------
    # Single documents
    # -----------------------------------------------------------------------

    def get_document(self, path: str, document_id: str) -> Optional[Document]:
        raw = self._request("GET", self._url(self._document_name(path, document_id)), allow_missing=True)
        if raw is None:
            return None
        return self._to_document(raw)

    def set_document(self, path: str, document_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        params = None
        if merge:
            params = [("updateMask.fieldPaths", field_path(k)) for k in data]
        logger.info(f"Writing {path}/{document_id} (merge={merge})")
        self._request(
            "PATCH", self._url(self._document_name(path, document_id)),
            params=params, json={"fields": encode_fields(data)},
        )
        self._notify([path])

    def add_document(self, path: str, data: Dict[str, Any]) -> str:
        parent, collection_id = self._split_path(path)
        raw = self._request(
            "POST", self._url(f"{parent}/{collection_id}"),
            params={"documentId": self.new_document_id()},
            json={"fields": encode_fields(data)},
        )
        document_id = self._to_document(raw).id
        logger.info(f"Created {path}/{document_id}")
        self._notify([path])
        return document_id

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def _split_path(self, path: str):
        """'Users/u1/Leaves' → (documents_root + '/Users/u1', 'Leaves')"""
        parts = path.strip("/").split("/")
        if len(parts) % 2 == 0:
            raise ValueError(f"{path!r} is a document path, not a collection")
        parent = "/".join([self.documents_root] + parts[:-1])
        return parent, parts[-1]

    @staticmethod
    def _encode_filter(f: Filter) -> Dict[str, Any]:
        value = list(f.value) if f.op == "in" else f.value
        return {
            "fieldFilter": {
                "field": {"fieldPath": field_path(f.field)},
                "op": OPERATORS[f.op],
                "value": encode_value(value),
            }
        }

    def build_query(self, path: str, filters: Iterable[Filter]) -> Dict[str, Any]:
        _, collection_id = self._split_path(path)
        query: Dict[str, Any] = {"from": [{"collectionId": collection_id}]}
        encoded = [self._encode_filter(f) for f in filters]
        if len(encoded) == 1:
            query["where"] = encoded[0]
        elif encoded:
            query["where"] = {"compositeFilter": {"op": "AND", "filters": encoded}}
        return {"structuredQuery": query}

    def _run_query(self, path: str, filters: List[Filter]) -> List[Document]:
        parent, _ = self._split_path(path)
        rows = self._request("POST", self._url(f"{parent}:runQuery"), json=self.build_query(path, filters))
        docs = [self._to_document(row["document"]) for row in rows or [] if "document" in row]
        logger.debug(f"Query on {path} returned {len(docs)} documents")
        return docs

    # -----------------------------------------------------------------------
    # Atomic batch
    # -----------------------------------------------------------------------

    def commit_batch(self, writes: List[BatchWrite]) -> None:
        """Commit all writes in one documents:commit call (all or nothing)."""
        if not writes:
            return
        payload = []
        for write in writes:
            document_id = write.document_id or self.new_document_id()
            entry: Dict[str, Any] = {
                "update": {
                    "name": self._document_name(write.path, document_id),
                    "fields": encode_fields(write.data),
                }
            }
            if write.merge:
                entry["updateMask"] = {"fieldPaths": [field_path(k) for k in write.data]}
            payload.append(entry)

        logger.info(f"Committing batch of {len(payload)} writes")
        self._request("POST", self._url(f"{self.documents_root}:commit"), json={"writes": payload})
        self._notify(w.path for w in writes)

    def refresh(self) -> None:
        """Re-deliver every active subscription (pick up remote changes)."""
        self._notify(sub.path for sub in list(self._subscriptions))

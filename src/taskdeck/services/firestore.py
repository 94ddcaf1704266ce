from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import threading
from typing import Any
import uuid

from google.oauth2.credentials import Credentials  # type: ignore[import]
from googleapiclient.discovery import build  # type: ignore[import]
from googleapiclient.errors import HttpError  # type: ignore[import]

from ..errors import StoreError
from ..ports import ErrorCallback, SnapshotCallback, SnapshotRecord
from ..timeutils import from_iso, to_iso

logger = logging.getLogger(__name__)


def encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": to_iso(value)}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    return {"stringValue": str(value)}


def encode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in fields.items()}


def decode_value(payload: Mapping[str, Any]) -> Any:
    if "stringValue" in payload:
        return payload["stringValue"]
    if "timestampValue" in payload:
        return from_iso(payload["timestampValue"])
    if "booleanValue" in payload:
        return bool(payload["booleanValue"])
    if "integerValue" in payload:
        return int(payload["integerValue"])
    if "doubleValue" in payload:
        return float(payload["doubleValue"])
    if "mapValue" in payload:
        return decode_fields(payload["mapValue"].get("fields", {}))
    if "arrayValue" in payload:
        return [decode_value(item) for item in payload["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def document_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


@dataclass(slots=True, frozen=True)
class FirestoreQuery:
    owner_id: str
    collection: str

    def structured(self) -> dict[str, Any]:
        return {
            "from": [{"collectionId": self.collection}],
            "where": {
                "fieldFilter": {
                    "field": {"fieldPath": "userId"},
                    "op": "EQUAL",
                    "value": {"stringValue": self.owner_id},
                }
            },
        }


class PollingListener:
    """Re-runs a query on a daemon thread and reports complete result sets.

    A snapshot is delivered for the first poll and afterwards only when the
    result set changed. Any failed poll ends the listener.
    """

    def __init__(
        self,
        fetch: Callable[[], list[SnapshotRecord]],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        interval: float,
    ) -> None:
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self.interval = interval
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="taskdeck-listen")

    def start(self) -> "PollingListener":
        self._thread.start()
        return self

    @property
    def running(self) -> bool:
        return not self._stopped.is_set()

    def cancel(self) -> None:
        self._stopped.set()

    def _run(self) -> None:
        last_signature: str | None = None
        while not self._stopped.is_set():
            try:
                records = self._fetch()
            except Exception as exc:
                if not self._stopped.is_set():
                    logger.warning("Task listener stopped: %s", exc)
                    self._stopped.set()
                    self._on_error(exc)
                return
            signature = json.dumps(records, sort_keys=True, default=str)
            if signature != last_signature and not self._stopped.is_set():
                last_signature = signature
                self._on_snapshot(records)
            self._stopped.wait(self.interval)


class FirestoreTaskStore:
    """Cloud Firestore task collection over the REST API.

    The discovery client is not thread-safe, so each thread (listener,
    mutation workers) builds its own service object.
    """

    def __init__(
        self,
        project_id: str,
        credentials: Callable[[], Credentials],
        *,
        database: str = "(default)",
        collection: str = "tasks",
        poll_interval: float = 2.0,
    ) -> None:
        if not project_id:
            raise ValueError("A Firestore project id is required")
        self.project_id = project_id
        self.database = database
        self.collection = collection
        self.poll_interval = poll_interval
        self._credentials = credentials
        self._local = threading.local()

    @property
    def database_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database}"

    @property
    def documents_path(self) -> str:
        return f"{self.database_path}/documents"

    def document_name(self, task_id: str) -> str:
        return f"{self.documents_path}/{self.collection}/{task_id}"

    def _documents(self):
        service = getattr(self._local, "service", None)
        if service is None:
            service = build("firestore", "v1", credentials=self._credentials(), cache_discovery=False)
            self._local.service = service
        return service.projects().databases().documents()

    def query(self, owner_id: str) -> FirestoreQuery:
        return FirestoreQuery(owner_id=owner_id, collection=self.collection)

    def fetch(self, query: FirestoreQuery) -> list[SnapshotRecord]:
        results = self._documents().runQuery(
            parent=self.documents_path,
            body={"structuredQuery": query.structured()},
        ).execute()
        records: list[SnapshotRecord] = []
        for entry in results or []:
            document = entry.get("document")
            if not document:
                continue
            records.append((document_id(document["name"]), decode_fields(document.get("fields", {}))))
        return records

    def listen(self, query: FirestoreQuery, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> PollingListener:
        logger.debug("Listening to %s for %s every %.1fs", self.collection, query.owner_id, self.poll_interval)
        return PollingListener(lambda: self.fetch(query), on_snapshot, on_error, self.poll_interval).start()

    def create(self, fields: Mapping[str, Any]) -> str:
        task_id = uuid.uuid4().hex[:20]
        write = {
            "update": {"name": self.document_name(task_id), "fields": encode_fields(fields)},
            "updateTransforms": [{"fieldPath": "createdAt", "setToServerValue": "REQUEST_TIME"}],
            "currentDocument": {"exists": False},
        }
        try:
            self._documents().commit(database=self.database_path, body={"writes": [write]}).execute()
        except HttpError as exc:
            raise StoreError(f"Could not create task: {exc}") from exc
        return task_id

    def update(self, task_id: str, fields: Mapping[str, Any]) -> None:
        # Fields set to None are listed in the mask but left out of the body,
        # which removes them from the document.
        present = {key: value for key, value in fields.items() if value is not None}
        try:
            self._documents().patch(
                name=self.document_name(task_id),
                body={"fields": encode_fields(present)},
                updateMask_fieldPaths=list(fields.keys()),
                currentDocument_exists=True,
            ).execute()
        except HttpError as exc:
            raise StoreError(f"Could not update task {task_id}: {exc}") from exc

    def remove(self, task_id: str) -> None:
        try:
            self._documents().delete(name=self.document_name(task_id)).execute()
        except HttpError as exc:
            raise StoreError(f"Could not delete task {task_id}: {exc}") from exc


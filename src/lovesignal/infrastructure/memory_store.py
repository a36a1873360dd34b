"""In-memory implementation of DocumentStore (no DB). Thread-safe."""

import copy
import threading
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from lovesignal.application.ports import (
    SERVER_TIMESTAMP,
    Change,
    ChangeCallback,
    KeyExistsError,
    Query,
    RecordNotFoundError,
    WriteOp,
)
from lovesignal.infrastructure.listeners import ListenerRegistry, ListenerSubscription


def order_records(records: list[dict], query: Query) -> list[dict]:
    """Sort by query.order_by; records missing the field go last."""
    if not query.order_by:
        return records
    present = [r for r in records if r.get(query.order_by) is not None]
    missing = [r for r in records if r.get(query.order_by) is None]
    present.sort(key=lambda r: r[query.order_by], reverse=query.descending)
    return present + missing


class MonotonicClock:
    """UTC wall clock. Readings strictly increase."""

    def __init__(self) -> None:
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


class InMemoryDocumentStore:
    """Stores records per collection in dicts. Insertion order preserved.
    Listeners see committed writes in commit order; with no concurrent writer
    they are called before the write returns.
    """

    def __init__(self, clock: MonotonicClock | None = None) -> None:
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = threading.RLock()
        self._clock = clock or MonotonicClock()
        self._listeners = ListenerRegistry()

    def get(self, collection: str, record_id: str) -> dict | None:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def query(self, collection: str, query: Query) -> list[dict]:
        with self._lock:
            records = [
                copy.deepcopy(r)
                for r in self._collections.get(collection, {}).values()
                if query.matches(r)
            ]
        return order_records(records, query)

    def create(self, collection: str, record_id: str | None, fields: dict) -> dict:
        with self._lock:
            change = self._create(collection, record_id, fields)
            self._listeners.enqueue(collection, change)
        self._listeners.drain()
        return copy.deepcopy(change.record)

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        with self._lock:
            change = self._update(collection, record_id, fields)
            self._listeners.enqueue(collection, change)
        self._listeners.drain()
        return copy.deepcopy(change.record)

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            change = self._delete(collection, record_id)
            self._listeners.enqueue(collection, change)
        self._listeners.drain()

    def batch(self, ops: Sequence[WriteOp]) -> None:
        """All ops or none: every precondition is checked before anything is applied."""
        with self._lock:
            present: dict[tuple[str, str], bool] = {}
            for op in ops:
                key = (op.collection, op.record_id)
                exists = present.get(
                    key, op.record_id in self._collections.get(op.collection, {})
                )
                if op.kind == "create" and exists:
                    raise KeyExistsError(op.collection, op.record_id)
                if op.kind in ("update", "delete") and not exists:
                    raise RecordNotFoundError(op.collection, op.record_id)
                present[key] = op.kind != "delete"
            for op in ops:
                if op.kind == "create":
                    change = self._create(op.collection, op.record_id, op.fields)
                elif op.kind == "update":
                    change = self._update(op.collection, op.record_id, op.fields)
                else:
                    change = self._delete(op.collection, op.record_id)
                self._listeners.enqueue(op.collection, change)
        self._listeners.drain()

    def subscribe(
        self, collection: str, query: Query, on_change: ChangeCallback
    ) -> ListenerSubscription:
        with self._lock:
            snapshot = self.query(collection, query)
            return self._listeners.add(collection, query, on_change, snapshot)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _resolve(self, fields: dict) -> dict:
        now = None
        resolved = {}
        for name, value in fields.items():
            if value is SERVER_TIMESTAMP:
                now = now or self._clock.now()
                resolved[name] = now
            else:
                resolved[name] = copy.deepcopy(value)
        return resolved

    def _create(self, collection: str, record_id: str | None, fields: dict) -> Change:
        records = self._collections.setdefault(collection, {})
        if record_id is None:
            record_id = uuid.uuid4().hex
        elif record_id in records:
            raise KeyExistsError(collection, record_id)
        record = {**self._resolve(fields), "id": record_id}
        records[record_id] = record
        return Change("added", copy.deepcopy(record))

    def _update(self, collection: str, record_id: str, fields: dict) -> Change:
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(collection, record_id)
        records[record_id].update(self._resolve(fields))
        records[record_id]["id"] = record_id
        return Change("modified", copy.deepcopy(records[record_id]))

    def _delete(self, collection: str, record_id: str) -> Change:
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(collection, record_id)
        return Change("removed", records.pop(record_id))

"""Neo4j implementation of DocumentStore.

Every record is one (:Document {collection, id, ...fields}) node. A composite
uniqueness constraint on (collection, id) makes explicit-id creates
conditional, which is what closes the username-reservation race.

Change notifications are fanned out in-process after each committed write,
so listeners only observe writes made through this adapter instance. Writes
through one instance are serialized so listeners see them in commit order.
"""

import logging
import threading
import uuid
from collections.abc import Sequence

from neo4j.exceptions import ConstraintError, ServiceUnavailable, SessionExpired, TransientError

from lovesignal.application.ports import (
    SERVER_TIMESTAMP,
    Change,
    ChangeCallback,
    KeyExistsError,
    Query,
    RecordNotFoundError,
    StoreUnavailableError,
    WriteOp,
)
from lovesignal.infrastructure.listeners import ListenerRegistry, ListenerSubscription
from lovesignal.infrastructure.memory_store import MonotonicClock

logger = logging.getLogger(__name__)

_UNAVAILABLE = (ServiceUnavailable, SessionExpired, TransientError)

_CONSTRAINT_QUERY = """
CREATE CONSTRAINT document_key IF NOT EXISTS
FOR (d:Document) REQUIRE (d.collection, d.id) IS UNIQUE
"""

_GET_QUERY = """
MATCH (d:Document {collection: $collection, id: $id})
RETURN properties(d) AS props
"""

_CREATE_QUERY = """
CREATE (d:Document {collection: $collection, id: $id})
SET d += $fields
RETURN properties(d) AS props
"""

_UPDATE_QUERY = """
MATCH (d:Document {collection: $collection, id: $id})
SET d += $fields
RETURN properties(d) AS props
"""

_DELETE_QUERY = """
MATCH (d:Document {collection: $collection, id: $id})
WITH d, properties(d) AS props
DELETE d
RETURN props
"""


def ensure_document_constraint(driver) -> None:
    """Create unique constraint on Document(collection, id) if missing."""
    with driver.session() as session:
        session.run(_CONSTRAINT_QUERY)


def _to_record(props: dict) -> dict:
    record = dict(props)
    record.pop("collection", None)
    return record


def build_match_query(collection_param: str, query: Query) -> tuple[str, dict]:
    """Return (cypher, params) selecting documents matching query."""
    clauses = ["d.collection = $" + collection_param]
    params: dict = {}
    for i, f in enumerate(query.filters):
        params[f"f{i}"] = f.field
        params[f"v{i}"] = f.value
        if f.op == "array_contains":
            clauses.append(f"$v{i} IN coalesce(d[$f{i}], [])")
        else:
            clauses.append(f"d[$f{i}] = $v{i}")
    cypher = "MATCH (d:Document)\nWHERE " + "\n  AND ".join(clauses) + "\nRETURN properties(d) AS props"
    if query.order_by:
        params["order_by"] = query.order_by
        cypher += "\nORDER BY d[$order_by]" + (" DESC" if query.descending else "")
    return cypher, params


class Neo4jDocumentStore:
    """DocumentStore over a neo4j driver. Call ensure_document_constraint at startup."""

    def __init__(self, driver: object, clock: MonotonicClock | None = None) -> None:
        self._driver = driver
        self._clock = clock or MonotonicClock()
        self._listeners = ListenerRegistry()
        # Held across commit + enqueue, and across a subscribe's snapshot + registration.
        self._write_lock = threading.RLock()

    def get(self, collection: str, record_id: str) -> dict | None:
        try:
            with self._driver.session() as session:
                record = session.run(_GET_QUERY, collection=collection, id=record_id).single()
        except _UNAVAILABLE as e:
            raise StoreUnavailableError(str(e)) from e
        return _to_record(record["props"]) if record else None

    def query(self, collection: str, query: Query) -> list[dict]:
        cypher, params = build_match_query("collection", query)
        try:
            with self._driver.session() as session:
                result = session.run(cypher, collection=collection, **params)
                return [_to_record(r["props"]) for r in result]
        except _UNAVAILABLE as e:
            raise StoreUnavailableError(str(e)) from e

    def create(self, collection: str, record_id: str | None, fields: dict) -> dict:
        op = WriteOp("create", collection, record_id or uuid.uuid4().hex, fields)
        return self._apply([op])[0][1].record

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        return self._apply([WriteOp("update", collection, record_id, fields)])[0][1].record

    def delete(self, collection: str, record_id: str) -> None:
        self._apply([WriteOp("delete", collection, record_id)])

    def batch(self, ops: Sequence[WriteOp]) -> None:
        self._apply(list(ops))

    def subscribe(
        self, collection: str, query: Query, on_change: ChangeCallback
    ) -> ListenerSubscription:
        with self._write_lock:
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
                value = now
            resolved[name] = value
        return resolved

    def _apply(self, ops: list[WriteOp]) -> list[tuple[str, Change]]:
        """Run ops in one explicit transaction; notify listeners after commit."""
        applied: list[tuple[str, Change]] = []
        with self._write_lock:
            try:
                with self._driver.session() as session:
                    with session.begin_transaction() as tx:
                        for op in ops:
                            applied.append((op.collection, self._run_op(tx, op)))
                        tx.commit()
            except _UNAVAILABLE as e:
                logger.warning("Neo4j write failed: %s", e)
                raise StoreUnavailableError(str(e)) from e
            for collection, change in applied:
                self._listeners.enqueue(collection, change)
        self._listeners.drain()
        return applied

    def _run_op(self, tx, op: WriteOp) -> Change:
        params = {"collection": op.collection, "id": op.record_id}
        if op.kind == "create":
            try:
                record = tx.run(_CREATE_QUERY, fields=self._resolve(op.fields), **params).single()
            except ConstraintError as e:
                raise KeyExistsError(op.collection, op.record_id) from e
            return Change("added", _to_record(record["props"]))
        if op.kind == "update":
            record = tx.run(_UPDATE_QUERY, fields=self._resolve(op.fields), **params).single()
            if record is None:
                raise RecordNotFoundError(op.collection, op.record_id)
            return Change("modified", _to_record(record["props"]))
        record = tx.run(_DELETE_QUERY, **params).single()
        if record is None:
            raise RecordNotFoundError(op.collection, op.record_id)
        return Change("removed", _to_record(record["props"]))

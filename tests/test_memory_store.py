"""InMemoryDocumentStore: conditional creates, atomic batches, ordering, change feed."""

import threading

import pytest

from lovesignal.application.ports import (
    SERVER_TIMESTAMP,
    Change,
    Filter,
    KeyExistsError,
    Query,
    RecordNotFoundError,
    WriteOp,
    array_contains,
    where,
)
from lovesignal.infrastructure import InMemoryDocumentStore
from lovesignal.infrastructure.memory_store import MonotonicClock


def test_create_is_conditional(store) -> None:
    store.create("things", "a", {"n": 1})
    with pytest.raises(KeyExistsError) as exc:
        store.create("things", "a", {"n": 2})
    assert exc.value.collection == "things"
    assert exc.value.record_id == "a"
    assert store.get("things", "a") == {"n": 1, "id": "a"}


def test_create_without_id_generates_one(store) -> None:
    first = store.create("things", None, {"n": 1})
    second = store.create("things", None, {"n": 1})
    assert first["id"] != second["id"]
    assert len(store.query("things", where())) == 2


def test_update_and_delete_missing_raise(store) -> None:
    with pytest.raises(RecordNotFoundError):
        store.update("things", "ghost", {"n": 1})
    with pytest.raises(RecordNotFoundError):
        store.delete("things", "ghost")


def test_returned_records_are_copies(store) -> None:
    store.create("things", "a", {"tags": ["x"]})
    record = store.get("things", "a")
    record["tags"].append("y")
    assert store.get("things", "a")["tags"] == ["x"]


def test_server_timestamp_resolved_once_per_write(store) -> None:
    record = store.create(
        "things", "a", {"createdAt": SERVER_TIMESTAMP, "seenAt": SERVER_TIMESTAMP}
    )
    assert record["createdAt"] == record["seenAt"]
    later = store.update("things", "a", {"seenAt": SERVER_TIMESTAMP})
    assert later["seenAt"] > later["createdAt"]


def test_monotonic_clock_strictly_increases() -> None:
    clock = MonotonicClock()
    readings = [clock.now() for _ in range(50)]
    assert all(a < b for a, b in zip(readings, readings[1:]))
    assert all(r.tzinfo is not None for r in readings)


def test_query_filters_and_orders(store) -> None:
    store.create("things", "a", {"owner": "x", "rank": 2, "tags": ["red"]})
    store.create("things", "b", {"owner": "x", "rank": 3, "tags": ["blue"]})
    store.create("things", "c", {"owner": "y", "rank": 1, "tags": ["red", "blue"]})
    store.create("things", "d", {"owner": "x"})

    by_rank = Query(filters=(Filter("owner", "x"),), order_by="rank", descending=True)
    ordered = store.query("things", by_rank)
    assert [r["id"] for r in ordered] == ["b", "a", "d"]

    blue = store.query("things", array_contains("tags", "blue"))
    assert [r["id"] for r in blue] == ["b", "c"]


def test_batch_is_all_or_nothing(store) -> None:
    store.create("usernames", "taken", {"identityId": "uid-1"})
    ops = [
        WriteOp("create", "profiles", "uid-2", {"username": "taken"}),
        WriteOp("create", "usernames", "taken", {"identityId": "uid-2"}),
    ]
    with pytest.raises(KeyExistsError):
        store.batch(ops)
    assert store.get("profiles", "uid-2") is None
    assert store.get("usernames", "taken") == {"identityId": "uid-1", "id": "taken"}


def test_batch_rejects_duplicate_creates_within_itself(store) -> None:
    ops = [
        WriteOp("create", "things", "a", {"n": 1}),
        WriteOp("create", "things", "a", {"n": 2}),
    ]
    with pytest.raises(KeyExistsError):
        store.batch(ops)
    assert store.get("things", "a") is None


def test_batch_applies_mixed_ops(store) -> None:
    store.create("things", "old", {"n": 0})
    store.batch(
        [
            WriteOp("create", "things", "new", {"n": 1}),
            WriteOp("update", "things", "old", {"n": 5}),
            WriteOp("delete", "things", "new"),
        ]
    )
    assert store.get("things", "new") is None
    assert store.get("things", "old")["n"] == 5


def test_subscribe_delivers_snapshot_then_changes(store) -> None:
    store.create("things", "a", {"owner": "x"})
    changes: list[Change] = []
    subscription = store.subscribe("things", where(owner="x"), changes.append)
    assert [(c.kind, c.record["id"]) for c in changes] == [("added", "a")]

    store.create("things", "b", {"owner": "x"})
    store.create("things", "other", {"owner": "y"})
    store.update("things", "a", {"note": "hi"})
    store.delete("things", "b")
    assert [(c.kind, c.record["id"]) for c in changes[1:]] == [
        ("added", "b"),
        ("modified", "a"),
        ("removed", "b"),
    ]
    subscription.unsubscribe()


def test_update_moving_record_across_filter(store) -> None:
    store.create("things", "a", {"owner": "x"})
    changes: list[Change] = []
    with store.subscribe("things", where(owner="y"), changes.append):
        store.update("things", "a", {"owner": "y"})
        store.update("things", "a", {"owner": "z"})
    assert [c.kind for c in changes] == ["added", "removed"]
    assert store.listener_count == 0


def test_failing_listener_does_not_block_others(store, caplog) -> None:
    seen: list[Change] = []

    def broken(change: Change) -> None:
        if change.kind == "modified":
            raise RuntimeError("boom")

    store.subscribe("things", where(), broken)
    store.subscribe("things", where(), seen.append)
    store.create("things", "a", {"n": 1})
    store.update("things", "a", {"n": 2})
    assert [c.kind for c in seen] == ["added", "modified"]
    assert "Change listener failed" in caplog.text


def test_stores_are_isolated() -> None:
    one, two = InMemoryDocumentStore(), InMemoryDocumentStore()
    one.create("things", "a", {})
    assert two.get("things", "a") is None


def test_changes_are_delivered_in_commit_order_across_threads(store) -> None:
    store.create("things", "a", {"n": 1})
    seen: list[str] = []
    in_update = threading.Event()
    release = threading.Event()

    def slow_on_modify(change: Change) -> None:
        if change.kind == "modified":
            in_update.set()
            release.wait(timeout=5)
        seen.append(change.kind)

    store.subscribe("things", where(), slow_on_modify)
    updater = threading.Thread(target=store.update, args=("things", "a", {"n": 2}))
    updater.start()
    assert in_update.wait(timeout=5)

    deleter = threading.Thread(target=store.delete, args=("things", "a"))
    deleter.start()
    deleter.join(timeout=5)
    release.set()
    updater.join(timeout=5)

    assert seen == ["added", "modified", "removed"]


def test_write_racing_a_subscribe_is_delivered(store, monkeypatch) -> None:
    real_query = store.query
    written = threading.Event()

    def write() -> None:
        store.create("things", "late", {"owner": "x"})
        written.set()

    def query_with_racing_write(collection, query):
        records = real_query(collection, query)
        threading.Thread(target=write).start()
        written.wait(timeout=0.5)
        return records

    monkeypatch.setattr(store, "query", query_with_racing_write)
    changes: list[Change] = []
    with store.subscribe("things", where(owner="x"), changes.append):
        assert written.wait(timeout=5)
        assert [(c.kind, c.record["id"]) for c in changes] == [("added", "late")]


def test_listener_writing_to_the_store_sees_its_write_next(store) -> None:
    seen: list[tuple[str, str]] = []

    def echo(change: Change) -> None:
        seen.append((change.kind, change.record["id"]))
        if change.record["id"] == "a" and change.kind == "added":
            store.create("things", "b", {})

    store.subscribe("things", where(), echo)
    store.create("things", "a", {})
    assert seen == [("added", "a"), ("added", "b")]

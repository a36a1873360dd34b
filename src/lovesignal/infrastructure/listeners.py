"""In-process change fan-out shared by the store adapters.

Each listener tracks which record ids currently match its query, so an
update that moves a record in or out of the filter is reported as
'added' or 'removed' rather than 'modified'.

Adapters enqueue() each change while still holding their write lock and
drain() after releasing it. Changes are delivered one at a time in commit
order, whichever thread ends up draining.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from lovesignal.application.ports import Change, ChangeCallback, Query

logger = logging.getLogger(__name__)


@dataclass
class _Listener:
    collection: str
    query: Query
    on_change: ChangeCallback
    matching: set[str] = field(default_factory=set)
    # Commits up to and including this sequence number are already in the snapshot.
    since: int = 0


class ListenerSubscription:
    """Handle returned by subscribe(). unsubscribe() is idempotent."""

    def __init__(self, registry: "ListenerRegistry", key: int) -> None:
        self._registry = registry
        self._key = key
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._registry.remove(self._key)

    def __enter__(self) -> "ListenerSubscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: dict[int, _Listener] = {}
        self._next_key = 0
        self._seq = 0
        self._pending: deque[tuple[int, str, Change]] = deque()
        self._delivering = False
        self._lock = threading.RLock()

    def add(
        self, collection: str, query: Query, on_change: ChangeCallback, snapshot: list[dict]
    ) -> ListenerSubscription:
        """Register a listener and deliver the initial snapshot as 'added' changes.

        The caller must hold its write lock from taking the snapshot until this
        returns, so the snapshot and the sequence number agree.
        """
        with self._lock:
            key = self._next_key
            self._next_key += 1
            listener = _Listener(
                collection, query, on_change, {r["id"] for r in snapshot}, since=self._seq
            )
            self._listeners[key] = listener
        for record in snapshot:
            on_change(Change("added", record))
        return ListenerSubscription(self, key)

    def remove(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def enqueue(self, collection: str, change: Change) -> None:
        """Record one committed change. Call while holding the adapter's write lock."""
        with self._lock:
            self._seq += 1
            self._pending.append((self._seq, collection, change))

    def drain(self) -> None:
        """Deliver queued changes in commit order. Only one thread delivers at a time."""
        with self._lock:
            if self._delivering:
                return
            self._delivering = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._delivering = False
                        return
                    seq, collection, change = self._pending.popleft()
                    deliveries = self._translate(seq, collection, change)
                self._deliver(collection, change.record["id"], deliveries)
        except BaseException:
            with self._lock:
                self._delivering = False
            raise

    def _translate(
        self, seq: int, collection: str, change: Change
    ) -> list[tuple[ChangeCallback, Change]]:
        deliveries: list[tuple[ChangeCallback, Change]] = []
        record_id = change.record["id"]
        for listener in self._listeners.values():
            if listener.collection != collection or seq <= listener.since:
                continue
            was = record_id in listener.matching
            now = change.kind != "removed" and listener.query.matches(change.record)
            if now:
                listener.matching.add(record_id)
                kind = "modified" if was else "added"
            elif was:
                listener.matching.discard(record_id)
                kind = "removed"
            else:
                continue
            deliveries.append((listener.on_change, Change(kind, dict(change.record))))
        return deliveries

    def _deliver(
        self, collection: str, record_id: str, deliveries: list[tuple[ChangeCallback, Change]]
    ) -> None:
        for on_change, delivered in deliveries:
            try:
                on_change(delivered)
            except Exception:
                logger.exception("Change listener failed on %s/%s", collection, record_id)

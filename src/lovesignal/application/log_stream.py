"""Live love log: merged sent + received signals of one identity."""

import logging
from collections.abc import Callable, Sequence

from lovesignal.application.dto import UNKNOWN_USERNAME, LogEntry, SignalCounts
from lovesignal.application.ports import (
    SIGNALS,
    Change,
    DocumentStore,
    StoreUnavailableError,
    Subscription,
    where,
)
from lovesignal.application.profile_cache import ProfileCache
from lovesignal.domain import Signal, SignalDirection
from lovesignal.domain.love_index import LoveIndexPolicy, bounded_growth
from lovesignal.domain.report import CategoryBreakdown, breakdown_by_category

logger = logging.getLogger(__name__)


class LogStream:
    """
    Two store subscriptions (senderId == X, recipientId == X) tracked
    independently and merged on every change. Each emission is the full
    view sorted by timestamp, newest first.

    The owner must call unsubscribe() (or use it as a context manager);
    otherwise the store keeps both listeners alive.
    """

    def __init__(
        self,
        store: DocumentStore,
        profiles: ProfileCache,
        identity_id: str,
        on_update: Callable[[list[LogEntry]], None] | None = None,
        *,
        categories: Sequence[str] = (),
        policy: LoveIndexPolicy = bounded_growth,
    ) -> None:
        self._profiles = profiles
        self._identity_id = identity_id
        self._on_update = on_update
        self._categories = tuple(categories)
        self._policy = policy
        self._sent: dict[str, Signal] = {}
        self._received: dict[str, Signal] = {}
        self._entries: list[LogEntry] = []
        self._ready = False
        self._subscriptions: list[Subscription] = []
        try:
            self._subscriptions.append(
                store.subscribe(
                    SIGNALS,
                    where(senderId=identity_id),
                    lambda change: self._apply(self._sent, change),
                )
            )
            self._subscriptions.append(
                store.subscribe(
                    SIGNALS,
                    where(recipientId=identity_id),
                    lambda change: self._apply(self._received, change),
                )
            )
            self._ready = True
            self._refresh()
        except StoreUnavailableError:
            self.unsubscribe()
            raise

    def _apply(self, subset: dict[str, Signal], change: Change) -> None:
        record_id = change.record["id"]
        if change.kind == "removed":
            subset.pop(record_id, None)
        else:
            subset[record_id] = Signal.from_record(change.record)
        if self._ready:
            self._refresh()

    def _refresh(self) -> None:
        merged = [self._entry(s, SignalDirection.SENT) for s in self._sent.values()]
        merged += [self._entry(s, SignalDirection.RECEIVED) for s in self._received.values()]
        merged.sort(key=lambda e: e.timestamp, reverse=True)
        self._entries = merged
        if self._on_update is not None:
            self._on_update(list(merged))

    def _entry(self, signal: Signal, direction: SignalDirection) -> LogEntry:
        other_id = signal.recipient_id if direction is SignalDirection.SENT else signal.sender_id
        profile = self._profiles.get(other_id)
        return LogEntry(
            signal_id=signal.id,
            direction=direction,
            counterpart_id=other_id,
            counterpart_username=profile.username if profile else UNKNOWN_USERNAME,
            message=signal.message,
            type=signal.type,
            timestamp=signal.timestamp,
        )

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def counts(self) -> SignalCounts:
        return SignalCounts(sent=len(self._sent), received=len(self._received))

    def love_index(self) -> int:
        counts = self.counts()
        return self._policy(counts.sent, counts.received)

    def breakdown(self) -> list[CategoryBreakdown]:
        signals = [*self._sent.values(), *self._received.values()]
        return breakdown_by_category(signals, self._identity_id, self._categories)

    @property
    def active(self) -> bool:
        return any(s.active for s in self._subscriptions)

    def unsubscribe(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        logger.debug("Log stream for %s closed", self._identity_id)

    def __enter__(self) -> "LogStream":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()

"""Read-side aggregation of signals into per-category sent/received counts."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from lovesignal.domain.entities import Signal, SignalDirection


@dataclass(frozen=True)
class CategoryBreakdown:
    """Signals of one category, split by direction relative to one identity."""

    category: str
    sent: int = 0
    received: int = 0


def count_directions(signals: Iterable[Signal], identity_id: str) -> tuple[int, int]:
    """Return (sent_count, received_count) for identity_id."""
    sent = received = 0
    for signal in signals:
        if signal.sender_id == identity_id:
            sent += 1
        elif signal.recipient_id == identity_id:
            received += 1
    return sent, received


def breakdown_by_category(
    signals: Iterable[Signal], identity_id: str, categories: Sequence[str]
) -> list[CategoryBreakdown]:
    """Group signals by category over the fixed set, in the given order.

    Signals whose type is outside the set (e.g. after a config change) are skipped.
    """
    sent = {c: 0 for c in categories}
    received = {c: 0 for c in categories}
    for signal in signals:
        if signal.type not in sent:
            continue
        direction = signal.direction_for(identity_id)
        if direction is SignalDirection.SENT:
            sent[signal.type] += 1
        else:
            received[signal.type] += 1
    return [
        CategoryBreakdown(category=c, sent=sent[c], received=received[c])
        for c in categories
    ]

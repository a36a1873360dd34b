"""Love index policies: pure functions of (sent_count, received_count) -> 0..100.

Two formulas exist and neither is canonical; a deployment selects one by name.
"""

import math
from collections.abc import Callable

LOVE_INDEX_MIN = 0
LOVE_INDEX_MAX = 100

BOUNDED_GROWTH = "bounded_growth"
PENALIZED_RATIO = "penalized_ratio"

LoveIndexPolicy = Callable[[int, int], int]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _check_counts(sent_count: int, received_count: int) -> None:
    if sent_count < 0 or received_count < 0:
        raise ValueError("Signal counts must be non-negative.")


def bounded_growth(sent_count: int, received_count: int) -> int:
    """Square-root growth capped at 100. (0, 0) -> 0."""
    _check_counts(sent_count, received_count)
    raw = math.sqrt(sent_count * 10 + received_count * 15)
    return min(LOVE_INDEX_MAX, _round_half_up(raw))


def penalized_ratio(sent_count: int, received_count: int) -> int:
    """Baseline 50, rewards giving, penalizes receiving. Clamped to [0, 100]."""
    _check_counts(sent_count, received_count)
    ratio = sent_count / received_count if received_count > 0 else sent_count
    raw = 50 + sent_count * 5 - received_count * 2 + ratio * 5
    return max(LOVE_INDEX_MIN, min(LOVE_INDEX_MAX, _round_half_up(raw)))


LOVE_INDEX_POLICIES: dict[str, LoveIndexPolicy] = {
    BOUNDED_GROWTH: bounded_growth,
    PENALIZED_RATIO: penalized_ratio,
}


def get_policy(name: str | None) -> LoveIndexPolicy:
    """Return the policy registered under name (default bounded_growth)."""
    key = (name or BOUNDED_GROWTH).strip().lower()
    try:
        return LOVE_INDEX_POLICIES[key]
    except KeyError:
        raise ValueError(
            f"Unknown love index policy '{name}'. "
            f"Expected one of: {', '.join(sorted(LOVE_INDEX_POLICIES))}."
        ) from None


def compute_love_index(
    sent_count: int, received_count: int, policy: str | LoveIndexPolicy = BOUNDED_GROWTH
) -> int:
    fn = policy if callable(policy) else get_policy(policy)
    return fn(sent_count, received_count)

"""Domain layer: entities, lifecycle machine, pure aggregations. No dependencies on outer layers."""

from lovesignal.domain.entities import (
    DEFAULT_SIGNAL_CATEGORIES,
    Contact,
    ContactStatus,
    Profile,
    Signal,
    SignalDirection,
    contact_key,
    normalize_username,
)
from lovesignal.domain.love_index import compute_love_index, get_policy
from lovesignal.domain.report import CategoryBreakdown

__all__ = [
    "DEFAULT_SIGNAL_CATEGORIES",
    "CategoryBreakdown",
    "Contact",
    "ContactStatus",
    "Profile",
    "Signal",
    "SignalDirection",
    "compute_love_index",
    "contact_key",
    "get_policy",
    "normalize_username",
]

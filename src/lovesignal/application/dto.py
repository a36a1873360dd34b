"""Input DTOs and result types. Failures are returned as values, never raised."""

from dataclasses import dataclass, field
from datetime import datetime

from lovesignal.domain import ContactStatus, Profile, SignalDirection

# --- failures (shared by all services) ---


@dataclass(frozen=True)
class NotFound:
    """A username, profile, or record lookup found nothing."""

    what: str
    key: str = ""


@dataclass(frozen=True)
class AlreadyExists:
    """A unique key (username reservation, profile) is already taken."""

    what: str
    key: str = ""


@dataclass(frozen=True)
class PermissionDenied:
    """The caller is not allowed to perform this mutation."""

    reason: str


@dataclass(frozen=True)
class SelfReferenceError:
    """A contact request or signal targeted the caller's own identity."""

    reason: str = "You cannot target yourself."


@dataclass(frozen=True)
class ValidationError:
    """Input failed validation (empty message, short username, unknown category)."""

    reason: str


@dataclass(frozen=True)
class StoreUnavailable:
    """The document store failed transiently. Not retried; invoke again."""

    reason: str = "Store unavailable, please try again."


@dataclass(frozen=True)
class AuthFailed:
    """Identity provider rejected the request. message is safe to display."""

    message: str


Failure = (
    NotFound
    | AlreadyExists
    | PermissionDenied
    | SelfReferenceError
    | ValidationError
    | StoreUnavailable
    | AuthFailed
)

FAILURE_TYPES = (
    NotFound,
    AlreadyExists,
    PermissionDenied,
    SelfReferenceError,
    ValidationError,
    StoreUnavailable,
    AuthFailed,
)


def is_failure(result: object) -> bool:
    return isinstance(result, FAILURE_TYPES)


# --- accounts ---


@dataclass(frozen=True)
class Registered:
    profile: Profile


@dataclass(frozen=True)
class SignedIn:
    identity_id: str
    profile: Profile | None = None


# --- contacts ---


@dataclass(frozen=True)
class ContactRequested:
    """Request stored (created=True) or already present for the pair (created=False)."""

    contact_id: str
    status: ContactStatus
    created: bool = True


@dataclass(frozen=True)
class ContactAccepted:
    contact_id: str


@dataclass(frozen=True)
class ContactDeclined:
    contact_id: str


@dataclass(frozen=True)
class ContactView:
    """A contact record resolved to the counterpart's profile."""

    contact_id: str
    status: ContactStatus
    counterpart: Profile | None
    counterpart_id: str
    requester_id: str
    created_at: datetime | None = None

    @property
    def username(self) -> str:
        return self.counterpart.username if self.counterpart else UNKNOWN_USERNAME


@dataclass(frozen=True)
class ContactBook:
    """Everything one identity sees about its contacts at a point in time."""

    contacts: list[ContactView] = field(default_factory=list)
    incoming: list[ContactView] = field(default_factory=list)
    outgoing: list[ContactView] = field(default_factory=list)


# --- signals ---


@dataclass(frozen=True)
class ByUsername:
    """Target a recipient by exact (case-folded) username."""

    username: str


@dataclass(frozen=True)
class ByContact:
    """Target a recipient picked from the sender's accepted contacts."""

    identity_id: str


@dataclass(frozen=True)
class ByIdentity:
    """Target a recipient by raw identity id (anonymous identities)."""

    identity_id: str


RecipientTarget = ByUsername | ByContact | ByIdentity


@dataclass(frozen=True)
class SignalPatch:
    """Fields the sender may change on an existing signal. None = unchanged."""

    message: str | None = None
    type: str | None = None
    recipient_id: str | None = None

    def is_empty(self) -> bool:
        return self.message is None and self.type is None and self.recipient_id is None


@dataclass(frozen=True)
class SignalSent:
    signal_id: str
    recipient_id: str


@dataclass(frozen=True)
class SignalUpdated:
    signal_id: str


@dataclass(frozen=True)
class SignalDeleted:
    signal_id: str


@dataclass(frozen=True)
class SignalCounts:
    sent: int = 0
    received: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.received


@dataclass(frozen=True)
class LogEntry:
    """One signal as seen by one identity in the live log."""

    signal_id: str
    direction: SignalDirection
    counterpart_id: str
    counterpart_username: str
    message: str
    type: str
    timestamp: datetime


UNKNOWN_USERNAME = "unknown user"

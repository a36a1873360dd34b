"""Domain entities: Profile, Contact, and Signal."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

USERNAME_MIN_LENGTH = 3

# Closed set of signal categories; deployments may override via config.
DEFAULT_SIGNAL_CATEGORIES = (
    "praise",
    "listening",
    "help",
    "companionship",
    "gift",
    "affirmation",
    "giving",
)


class ContactStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class SignalDirection(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


def normalize_username(raw: str | None) -> str:
    """Return the canonical (stripped, lowercased) form of a username."""
    return (raw or "").strip().lower()


def contact_key(a: str, b: str) -> str:
    """Storage key for the unordered pair (a, b). Same for (b, a)."""
    first, second = sorted((a, b))
    return f"{first}_{second}"


def as_datetime(value: datetime | str | None) -> datetime | None:
    """Accept a datetime or ISO string from a store record."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if hasattr(value, "to_native"):
        return value.to_native()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Profile:
    """
    Public profile of a registered identity.
    Created once at registration; immutable afterwards.
    """

    identity_id: str
    username: str
    email: str = ""

    def __post_init__(self):
        if not self.identity_id or not self.identity_id.strip():
            raise ValueError("Profile identity_id must be non-empty.")
        username = normalize_username(self.username)
        if len(username) < USERNAME_MIN_LENGTH:
            raise ValueError(
                f"Username must be at least {USERNAME_MIN_LENGTH} characters."
            )
        object.__setattr__(self, "username", username)
        object.__setattr__(self, "email", (self.email or "").strip())

    @classmethod
    def from_record(cls, record: dict) -> "Profile":
        return cls(
            identity_id=record.get("identityId") or record["id"],
            username=record["username"],
            email=record.get("email") or "",
        )


@dataclass(frozen=True)
class Contact:
    """
    Relationship between exactly two identities.
    Addressed by contact_key of its participants, so one record per pair.
    """

    requester_id: str
    requestee_id: str
    status: ContactStatus = ContactStatus.PENDING
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    id: str = field(default="")

    def __post_init__(self):
        if not self.requester_id or not self.requestee_id:
            raise ValueError("Contact participants must be non-empty.")
        if self.requester_id == self.requestee_id:
            raise ValueError("Contact participants must differ.")
        object.__setattr__(self, "status", ContactStatus(self.status))
        expected = contact_key(self.requester_id, self.requestee_id)
        if not self.id:
            object.__setattr__(self, "id", expected)
        elif self.id != expected:
            raise ValueError("Contact id must be derived from its participants.")

    @property
    def participants(self) -> tuple[str, str]:
        first, second = sorted((self.requester_id, self.requestee_id))
        return (first, second)

    def other(self, identity_id: str) -> str:
        """Return the participant that is not identity_id."""
        if identity_id == self.requester_id:
            return self.requestee_id
        if identity_id == self.requestee_id:
            return self.requester_id
        raise ValueError(f"{identity_id} does not participate in {self.id}.")

    @classmethod
    def from_record(cls, record: dict) -> "Contact":
        return cls(
            id=record["id"],
            requester_id=record["requesterId"],
            requestee_id=record["requesteeId"],
            status=record.get("status") or ContactStatus.PENDING,
            created_at=as_datetime(record.get("createdAt")),
            accepted_at=as_datetime(record.get("acceptedAt")),
        )


@dataclass(frozen=True)
class Signal:
    """
    A directed, timestamped act of appreciation from sender to recipient.
    """

    id: str
    sender_id: str
    recipient_id: str
    message: str
    type: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.message or not self.message.strip():
            raise ValueError("Signal message must be non-empty.")
        if self.sender_id == self.recipient_id:
            raise ValueError("Signal sender and recipient must differ.")

    @classmethod
    def from_record(cls, record: dict) -> "Signal":
        return cls(
            id=record["id"],
            sender_id=record["senderId"],
            recipient_id=record["recipientId"],
            message=record.get("message") or "",
            type=record.get("type") or "",
            timestamp=as_datetime(record.get("timestamp"))
            or datetime.min.replace(tzinfo=timezone.utc),
        )

    def direction_for(self, identity_id: str) -> SignalDirection:
        if identity_id == self.sender_id:
            return SignalDirection.SENT
        if identity_id == self.recipient_id:
            return SignalDirection.RECEIVED
        raise ValueError(f"{identity_id} is neither sender nor recipient of {self.id}.")

    def counterpart(self, identity_id: str) -> str:
        if self.direction_for(identity_id) is SignalDirection.SENT:
            return self.recipient_id
        return self.sender_id

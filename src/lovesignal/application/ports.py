"""Application ports (interfaces). Implemented by infrastructure adapters."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

PROFILES = "profiles"
USERNAMES = "usernames"
CONTACTS = "contacts"
SIGNALS = "signals"


class _ServerTimestamp:
    """Sentinel field value; the store replaces it with its clock at write time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


# --- store errors ---


class StoreError(Exception):
    """Base class for document store failures."""


class StoreUnavailableError(StoreError):
    """Transient backend failure. Callers surface it; nothing retries."""


class KeyExistsError(StoreError):
    """A conditional create hit an existing key."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id} already exists")
        self.collection = collection
        self.record_id = record_id


class RecordNotFoundError(StoreError):
    """Update or delete addressed a record that does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


# --- queries ---


@dataclass(frozen=True)
class Filter:
    field: str
    value: Any
    op: Literal["==", "array_contains"] = "=="

    def matches(self, record: dict) -> bool:
        actual = record.get(self.field)
        if self.op == "array_contains":
            return isinstance(actual, list | tuple) and self.value in actual
        return actual == self.value


@dataclass(frozen=True)
class Query:
    """Conjunction of filters with optional ordering."""

    filters: tuple[Filter, ...] = ()
    order_by: str | None = None
    descending: bool = False

    def matches(self, record: dict) -> bool:
        return all(f.matches(record) for f in self.filters)


def where(**equals: Any) -> Query:
    """Query with one equality filter per keyword."""
    return Query(filters=tuple(Filter(k, v) for k, v in equals.items()))


def array_contains(field_name: str, value: Any, *more: Filter) -> Query:
    return Query(filters=(Filter(field_name, value, "array_contains"), *more))


# --- writes and changes ---


@dataclass(frozen=True)
class WriteOp:
    """One operation of an atomic batch. 'create' is conditional on the key being free."""

    kind: Literal["create", "update", "delete"]
    collection: str
    record_id: str
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Change:
    kind: Literal["added", "modified", "removed"]
    record: dict


ChangeCallback = Callable[[Change], None]


class Subscription(Protocol):
    """Live listener handle. Must be unsubscribed by its owner."""

    @property
    def active(self) -> bool: ...

    def unsubscribe(self) -> None: ...


class DocumentStore(Protocol):
    """Keyed records in named collections, filtered queries, change notifications."""

    def get(self, collection: str, record_id: str) -> dict | None:
        """Return the record (with 'id') or None."""
        ...

    def query(self, collection: str, query: Query) -> list[dict]:
        """Return records matching query, ordered if query.order_by is set."""
        ...

    def create(self, collection: str, record_id: str | None, fields: dict) -> dict:
        """Create a record. With an explicit id this is conditional and raises KeyExistsError."""
        ...

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        """Merge fields into a record. Raises RecordNotFoundError."""
        ...

    def delete(self, collection: str, record_id: str) -> None:
        """Remove a record. Raises RecordNotFoundError."""
        ...

    def batch(self, ops: Sequence[WriteOp]) -> None:
        """Apply all ops or none. Raises KeyExistsError / RecordNotFoundError."""
        ...

    def subscribe(
        self, collection: str, query: Query, on_change: ChangeCallback
    ) -> Subscription:
        """Deliver current matches as 'added', then every change until unsubscribed."""
        ...


# --- identity ---


class AuthError(Exception):
    """Identity provider failure with a provider-neutral code."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    UNKNOWN = "unknown"

    def __init__(self, code: str, detail: str = "") -> None:
        super().__init__(detail or code)
        self.code = code


AuthCallback = Callable[[str | None], None]


class IdentityProvider(Protocol):
    """Issues and authenticates opaque identity ids. One active identity per session."""

    def sign_up(self, email: str, password: str) -> str: ...

    def sign_in(self, email: str, password: str) -> str: ...

    def sign_out(self) -> None: ...

    def sign_in_anonymously(self) -> str: ...

    def current_identity(self) -> str | None: ...

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        """Call back with the current identity (or None) now and on every change."""
        ...

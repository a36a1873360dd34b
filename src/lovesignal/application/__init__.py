"""Application layer: use cases, ports, and DTOs. Depends only on domain."""

from lovesignal.application.account_service import AccountService
from lovesignal.application.contact_service import ContactService, ContactWatch
from lovesignal.application.dto import (
    AlreadyExists,
    AuthFailed,
    ByContact,
    ByIdentity,
    ByUsername,
    ContactAccepted,
    ContactBook,
    ContactDeclined,
    ContactRequested,
    ContactView,
    LogEntry,
    NotFound,
    PermissionDenied,
    Registered,
    SelfReferenceError,
    SignalCounts,
    SignalDeleted,
    SignedIn,
    SignalPatch,
    SignalSent,
    SignalUpdated,
    StoreUnavailable,
    ValidationError,
    is_failure,
)
from lovesignal.application.log_stream import LogStream
from lovesignal.application.ports import DocumentStore, IdentityProvider
from lovesignal.application.profile_cache import ProfileCache
from lovesignal.application.signal_ledger import SignalLedger

__all__ = [
    "AccountService",
    "AlreadyExists",
    "AuthFailed",
    "ByContact",
    "ByIdentity",
    "ByUsername",
    "ContactAccepted",
    "ContactBook",
    "ContactDeclined",
    "ContactRequested",
    "ContactService",
    "ContactView",
    "ContactWatch",
    "DocumentStore",
    "IdentityProvider",
    "LogEntry",
    "LogStream",
    "NotFound",
    "PermissionDenied",
    "ProfileCache",
    "Registered",
    "SelfReferenceError",
    "SignalCounts",
    "SignalDeleted",
    "SignalLedger",
    "SignalPatch",
    "SignalSent",
    "SignalUpdated",
    "SignedIn",
    "StoreUnavailable",
    "ValidationError",
    "is_failure",
]

"""
Love signal core: clean-architecture layout.

- domain: entities (Profile, Contact, Signal), contact lifecycle machine, love index policies.
- application: use cases (AccountService, ContactService, SignalLedger), ports (DocumentStore, IdentityProvider), DTOs.
- infrastructure: adapters (InMemoryDocumentStore, Neo4jDocumentStore, InMemoryIdentityProvider), settings.
"""

from lovesignal.application import (
    AccountService,
    ByContact,
    ByIdentity,
    ByUsername,
    ContactService,
    LogStream,
    ProfileCache,
    SignalLedger,
    SignalPatch,
)
from lovesignal.domain import Contact, ContactStatus, Profile, Signal, SignalDirection
from lovesignal.infrastructure import (
    InMemoryDocumentStore,
    InMemoryIdentityProvider,
    Neo4jDocumentStore,
)

__all__ = [
    "AccountService",
    "ByContact",
    "ByIdentity",
    "ByUsername",
    "Contact",
    "ContactService",
    "ContactStatus",
    "InMemoryDocumentStore",
    "InMemoryIdentityProvider",
    "LogStream",
    "Neo4jDocumentStore",
    "Profile",
    "ProfileCache",
    "Signal",
    "SignalDirection",
    "SignalLedger",
    "SignalPatch",
]

"""Infrastructure layer: concrete implementations of application ports."""

from lovesignal.infrastructure.memory_identity import InMemoryIdentityProvider
from lovesignal.infrastructure.memory_store import InMemoryDocumentStore
from lovesignal.infrastructure.persistence.neo4j_store import (
    Neo4jDocumentStore,
    ensure_document_constraint,
)
from lovesignal.infrastructure.settings import Settings, load_categories, load_settings

__all__ = [
    "InMemoryDocumentStore",
    "InMemoryIdentityProvider",
    "Neo4jDocumentStore",
    "Settings",
    "ensure_document_constraint",
    "load_categories",
    "load_settings",
]

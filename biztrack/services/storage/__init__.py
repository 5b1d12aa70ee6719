"""
Storage Services Package

Provides the document-store contract and its implementations.
Firestore is the production backend; the in-memory store backs local
development and the test suite.
"""

from biztrack.services.storage.interface import (
    SERVER_TIMESTAMP,
    AccessDeniedError,
    AlreadyExistsError,
    ConnectionError,
    DocumentStoreInterface,
    NotFoundError,
    QuerySpec,
    StorageError,
    StoredDocument,
    Subscription,
)
from biztrack.services.storage.memory import InMemoryDocumentStore
from biztrack.services.storage.firestore import (
    FirestoreClient,
    FirestoreDocumentStore,
)

__all__ = [
    # Interface
    "SERVER_TIMESTAMP",
    "DocumentStoreInterface",
    "QuerySpec",
    "StoredDocument",
    "Subscription",
    # Exceptions
    "AccessDeniedError",
    "AlreadyExistsError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
]

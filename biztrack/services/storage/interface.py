"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for store operations.
This allows us to:
1. Run against Firestore in production
2. Use in-memory storage for local development and testing
3. Keep record books, the merger and the session shell decoupled
   from any particular database client

The interface is intentionally small - we're not building an ORM.
It is exactly the handful of operations the application needs:
live queries, live documents, and five kinds of write.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger(__name__)


class _ServerTimestamp:
    """Sentinel resolved to the write time by each store implementation."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class QuerySpec(BaseModel):
    """
    Identity of a live collection query.

    Two queries that compare equal describe the same subscription, so a
    watcher only re-subscribes when the query actually changes.
    """
    model_config = ConfigDict(frozen=True)

    collection_path: str = Field(
        ...,
        min_length=1,
        description="Slash-separated collection path, e.g. users/{uid}/expenses"
    )
    order_by: Optional[str] = Field(
        default=None,
        description="Stored field name to order by"
    )
    descending: bool = False
    limit: Optional[int] = Field(
        default=None,
        ge=1,
    )


class StoredDocument(BaseModel):
    """One document as delivered in a snapshot."""
    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    data: dict[str, Any] = Field(default_factory=dict)


QueryCallback = Callable[[list[StoredDocument]], None]
DocumentCallback = Callable[[Optional[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """
    Handle for one live listener.

    `unsubscribe()` must be called exactly once by the owner; repeated
    calls are ignored and logged.
    """

    def __init__(self, path: str, cancel: Callable[[], None]):
        self.path = path
        self._cancel = cancel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            logger.warning("subscription_already_closed", path=self.path)
            return
        self._closed = True
        self._cancel()


class DocumentStoreInterface(ABC):
    """
    Abstract interface for document store operations.

    Listener callbacks are always invoked on the application's event
    loop, never on the caller's stack.
    """

    @abstractmethod
    def subscribe_query(
        self,
        query: QuerySpec,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """
        Listen to a collection query.

        `on_snapshot` receives the full ordered result set each time it
        changes; the first call delivers the initial state.
        """
        pass

    @abstractmethod
    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """
        Listen to one document.

        `on_snapshot(None)` means the document is confirmed absent.
        """
        pass

    @abstractmethod
    async def add_document(self, collection_path: str, data: dict[str, Any]) -> str:
        """
        Create a document with a store-assigned ID.

        Returns:
            The new document's ID
        """
        pass

    @abstractmethod
    async def create_document(self, path: str, data: dict[str, Any]) -> None:
        """
        Create a document at an exact path.

        Raises:
            AlreadyExistsError: If a document is already there
        """
        pass

    @abstractmethod
    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete_document(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write a document, replacing it or (with merge) upserting fields.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class AlreadyExistsError(StorageError):
    """Attempted to create a document that already exists."""
    pass


class AccessDeniedError(StorageError):
    """The store's security rules rejected the operation."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass

"""
Live Watchers

A watcher owns at most one store subscription and turns its callbacks
into a `SubscriptionState` triple that views and the aggregation merger
read from.

DESIGN DECISION: The query (or document path) is the watcher's identity.
Retargeting to an equal query is a no-op; retargeting to a different one
cancels the old subscription before opening the new one, so a watcher
never holds two listeners and never leaks one.
"""

from typing import Any, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from biztrack.audit import AuditLogger
from biztrack.services.storage import (
    DocumentStoreInterface,
    QuerySpec,
    StoredDocument,
    Subscription,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class SubscriptionState(BaseModel):
    """
    The {data, is_loading, error} triple of one live subscription.

    `is_loading` stays True until the first snapshot or error arrives.
    A watcher with no target is idle: no data, not loading, no error.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: Any = None
    is_loading: bool = True
    error: Optional[Exception] = None

    @classmethod
    def loading(cls) -> "SubscriptionState":
        return cls(data=None, is_loading=True, error=None)

    @classmethod
    def idle(cls) -> "SubscriptionState":
        return cls(data=None, is_loading=False, error=None)


StateListener = Callable[[SubscriptionState], None]


def parser_for(model: Any) -> Callable[[StoredDocument], Any]:
    """Parse stored documents with a model's `from_document`."""
    return lambda document: model.from_document(document.id, document.data)


class _Watcher:
    """Listener bookkeeping shared by both watcher kinds."""

    def __init__(self, audit: Optional[AuditLogger] = None):
        self._audit = audit
        self._state = SubscriptionState.idle()
        self._subscription: Optional[Subscription] = None
        self._listeners: dict[int, StateListener] = {}
        self._next_key = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call `listener` on every state change. Returns a remover."""
        key = self._next_key
        self._next_key += 1
        self._listeners[key] = listener
        return lambda: self._listeners.pop(key, None)

    def _set_state(self, state: SubscriptionState) -> None:
        self._state = state
        for listener in list(self._listeners.values()):
            listener(state)

    def _cancel(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_error(self, path: str, error: Exception) -> None:
        logger.error("subscription_error", path=path, error=str(error))
        if self._audit is not None:
            self._audit.log_subscription_error(path, str(error))
        self._set_state(SubscriptionState(data=None, is_loading=False, error=error))


class CollectionWatcher(_Watcher, Generic[T]):
    """
    Live view of one collection query.

    Usage:
        watcher = CollectionWatcher(store, parse=parser_for(IncomeRecord))
        watcher.open(QuerySpec(collection_path="users/u1/incomes", order_by="date"))
        ...
        watcher.close()
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        parse: Callable[[StoredDocument], T],
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(audit)
        self._store = store
        self._parse = parse
        self._query: Optional[QuerySpec] = None

    @property
    def query(self) -> Optional[QuerySpec]:
        return self._query

    def open(self, query: QuerySpec) -> None:
        self.retarget(query)

    def retarget(self, query: Optional[QuerySpec]) -> None:
        """Point the watcher at `query`; None closes it."""
        if query == self._query:
            return
        self._cancel()
        self._query = query
        if query is None:
            self._set_state(SubscriptionState.idle())
            return

        self._set_state(SubscriptionState.loading())
        self._subscription = self._store.subscribe_query(
            query,
            on_snapshot=self._on_snapshot,
            on_error=lambda e: self._on_error(query.collection_path, e),
        )

    def close(self) -> None:
        self.retarget(None)

    def _on_snapshot(self, documents: list[StoredDocument]) -> None:
        records: list[T] = []
        for document in documents:
            try:
                records.append(self._parse(document))
            except ValidationError as e:
                # Skip malformed documents but log them
                logger.warning(
                    "document_parse_failed",
                    path=document.path,
                    errors=e.error_count(),
                )
        self._set_state(SubscriptionState(data=records, is_loading=False, error=None))


class DocumentWatcher(_Watcher, Generic[T]):
    """
    Live view of one document.

    `data is None` with `is_loading=False` and no error means the
    document is confirmed absent.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        parse: Callable[[StoredDocument], T],
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(audit)
        self._store = store
        self._parse = parse
        self._path: Optional[str] = None

    @property
    def path(self) -> Optional[str]:
        return self._path

    def open(self, path: str) -> None:
        self.retarget(path)

    def retarget(self, path: Optional[str]) -> None:
        if path == self._path:
            return
        self._cancel()
        self._path = path
        if path is None:
            self._set_state(SubscriptionState.idle())
            return

        self._set_state(SubscriptionState.loading())
        self._subscription = self._store.subscribe_document(
            path,
            on_snapshot=self._on_snapshot,
            on_error=lambda e: self._on_error(path, e),
        )

    def close(self) -> None:
        self.retarget(None)

    @property
    def confirmed_absent(self) -> bool:
        state = self._state
        return (
            self._path is not None
            and not state.is_loading
            and state.error is None
            and state.data is None
        )

    def _on_snapshot(self, document: Optional[StoredDocument]) -> None:
        if document is None:
            self._set_state(SubscriptionState(data=None, is_loading=False, error=None))
            return
        try:
            value = self._parse(document)
        except ValidationError as e:
            logger.warning("document_parse_failed", path=document.path, errors=e.error_count())
            self._on_error(document.path, e)
            return
        self._set_state(SubscriptionState(data=value, is_loading=False, error=None))

"""
In-Memory Document Store

DESIGN DECISION: Local development and the test suite run against this
store instead of Firestore. It honours the same contract as the real
thing where the application can observe it:
1. Listeners get the initial state first, then every change
2. Callbacks are delivered on the event loop, never on the writer's stack
3. Query results are filtered, ordered and limited the way Firestore does
   (documents missing the order field are left out)

It also lets tests inject listener errors and write failures.
"""

import asyncio
import copy
import itertools
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from biztrack.runtime import EventLoopRunner
from biztrack.services.storage import paths
from biztrack.services.storage.interface import (
    SERVER_TIMESTAMP,
    AlreadyExistsError,
    DocumentCallback,
    DocumentStoreInterface,
    ErrorCallback,
    NotFoundError,
    QueryCallback,
    QuerySpec,
    StoredDocument,
    Subscription,
)


logger = structlog.get_logger(__name__)


class _QueryListener:
    def __init__(self, query: QuerySpec, on_snapshot: QueryCallback, on_error: ErrorCallback):
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True


class _DocumentListener:
    def __init__(self, path: str, on_snapshot: DocumentCallback, on_error: ErrorCallback):
        self.path = path
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True


def _resolve_sentinels(data: dict[str, Any]) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        key: now if value is SERVER_TIMESTAMP else copy.deepcopy(value)
        for key, value in data.items()
    }


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dictionary-backed store keyed by full document path.

    Usage:
        store = InMemoryDocumentStore(EventLoopRunner.current())
        doc_id = await store.add_document("users/u1/incomes", {...})
    """

    def __init__(self, runner: EventLoopRunner):
        self._runner = runner
        self._documents: dict[str, dict[str, Any]] = {}
        self._query_listeners: dict[int, _QueryListener] = {}
        self._document_listeners: dict[int, _DocumentListener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._write_failure: Optional[Exception] = None

    # =========================================================================
    # TEST HOOKS
    # =========================================================================

    def seed(self, path: str, data: dict[str, Any]) -> None:
        """Put a document in place and notify listeners, without going through a write."""
        with self._lock:
            self._documents[path] = _resolve_sentinels(data)
        self._notify(path)

    def get(self, path: str) -> Optional[dict[str, Any]]:
        """Current field map at a path (a copy), or None."""
        with self._lock:
            data = self._documents.get(path)
            return copy.deepcopy(data) if data is not None else None

    def list_ids(self, collection_path: str) -> list[str]:
        with self._lock:
            return sorted(
                paths.split(path)[1]
                for path in self._documents
                if paths.split(path)[0] == collection_path
            )

    def fail_writes(self, error: Optional[Exception]) -> None:
        """Make every following write raise `error` (None restores normal writes)."""
        self._write_failure = error

    def emit_error(self, path: str, error: Exception) -> None:
        """Deliver a listener error to everything watching a collection or document path."""
        with self._lock:
            targets: list[Callable[[], None]] = []
            for listener in self._query_listeners.values():
                if listener.query.collection_path == path:
                    targets.append(self._guarded(listener, listener.on_error, error))
            for listener in self._document_listeners.values():
                if listener.path == path:
                    targets.append(self._guarded(listener, listener.on_error, error))
        for target in targets:
            self._runner.call_soon(target)

    def listener_count(self, path: Optional[str] = None) -> int:
        """Active listeners, optionally only those on one collection or document path."""
        with self._lock:
            queries = [
                l for l in self._query_listeners.values()
                if path is None or l.query.collection_path == path
            ]
            documents = [
                l for l in self._document_listeners.values()
                if path is None or l.path == path
            ]
            return len(queries) + len(documents)

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def subscribe_query(
        self,
        query: QuerySpec,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        key = next(self._ids)
        listener = _QueryListener(query, on_snapshot, on_error)
        with self._lock:
            self._query_listeners[key] = listener
            initial = self._run_query(query)
        self._runner.call_soon(self._guarded(listener, on_snapshot, initial))
        logger.debug("memory_query_subscribed", path=query.collection_path)
        return Subscription(query.collection_path, lambda: self._remove(key))

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        key = next(self._ids)
        listener = _DocumentListener(path, on_snapshot, on_error)
        with self._lock:
            self._document_listeners[key] = listener
            initial = self._snapshot(path)
        self._runner.call_soon(self._guarded(listener, on_snapshot, initial))
        logger.debug("memory_document_subscribed", path=path)
        return Subscription(path, lambda: self._remove(key))

    def _remove(self, key: int) -> None:
        with self._lock:
            listener = self._query_listeners.pop(key, None) or self._document_listeners.pop(key, None)
        if listener is not None:
            listener.active = False

    @staticmethod
    def _guarded(listener, callback: Callable[[Any], None], arg: Any) -> Callable[[], None]:
        # Deliveries already queued when a listener is removed are dropped.
        def deliver() -> None:
            if listener.active:
                callback(arg)
        return deliver

    def _snapshot(self, path: str) -> Optional[StoredDocument]:
        data = self._documents.get(path)
        if data is None:
            return None
        _, doc_id = paths.split(path)
        return StoredDocument(id=doc_id, path=path, data=copy.deepcopy(data))

    def _run_query(self, query: QuerySpec) -> list[StoredDocument]:
        docs = [
            self._snapshot(path)
            for path in self._documents
            if paths.split(path)[0] == query.collection_path
        ]
        if query.order_by:
            docs = [d for d in docs if d.data.get(query.order_by) is not None]
            docs.sort(key=lambda d: d.data[query.order_by], reverse=query.descending)
        if query.limit is not None:
            docs = docs[:query.limit]
        return docs

    def _notify(self, path: str) -> None:
        collection_path, _ = paths.split(path)
        with self._lock:
            deliveries: list[Callable[[], None]] = []
            for listener in self._query_listeners.values():
                if listener.query.collection_path == collection_path:
                    deliveries.append(
                        self._guarded(listener, listener.on_snapshot, self._run_query(listener.query))
                    )
            for listener in self._document_listeners.values():
                if listener.path == path:
                    deliveries.append(
                        self._guarded(listener, listener.on_snapshot, self._snapshot(path))
                    )
        for deliver in deliveries:
            self._runner.call_soon(deliver)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _before_write(self, operation: str, path: str) -> None:
        # Writes always complete after the caller has returned control.
        await asyncio.sleep(0)
        if self._write_failure is not None:
            logger.warning("memory_write_failed", operation=operation, path=path)
            raise self._write_failure

    async def add_document(self, collection_path: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex[:20]
        path = paths.join(*collection_path.split("/"), doc_id)
        await self._before_write("add", path)
        with self._lock:
            self._documents[path] = _resolve_sentinels(data)
        self._notify(path)
        return doc_id

    async def create_document(self, path: str, data: dict[str, Any]) -> None:
        await self._before_write("create", path)
        with self._lock:
            if path in self._documents:
                raise AlreadyExistsError(f"Document already exists: {path}")
            self._documents[path] = _resolve_sentinels(data)
        self._notify(path)

    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        await self._before_write("update", path)
        with self._lock:
            if path not in self._documents:
                raise NotFoundError(f"Document not found: {path}")
            self._documents[path].update(_resolve_sentinels(data))
        self._notify(path)

    async def delete_document(self, path: str) -> None:
        await self._before_write("delete", path)
        with self._lock:
            existed = self._documents.pop(path, None) is not None
        if existed:
            self._notify(path)

    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self._before_write("set", path)
        with self._lock:
            if merge and path in self._documents:
                self._documents[path].update(_resolve_sentinels(data))
            else:
                self._documents[path] = _resolve_sentinels(data)
        self._notify(path)

"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production store because:
1. Listeners push changes to every open page in real time
2. Owner namespaces map directly onto nested collections
3. Security rules enforce per-owner writes server-side

TRADEOFFS:
- The Python client delivers snapshots on its own watch threads, so every
  callback is handed over to the event loop before touching state
- The client is synchronous; writes and listener start-up run in worker
  threads so a slow connect never stalls the loop
- Listener failures are not reported through a callback by the client,
  so conversion errors are the ones we can route to `on_error`
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import structlog
from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from biztrack.config import get_settings
from biztrack.runtime import EventLoopRunner
from biztrack.services.storage.interface import (
    SERVER_TIMESTAMP,
    AccessDeniedError,
    AlreadyExistsError,
    ConnectionError,
    DocumentCallback,
    DocumentStoreInterface,
    ErrorCallback,
    NotFoundError,
    QueryCallback,
    QuerySpec,
    StorageError,
    StoredDocument,
    Subscription,
)


logger = structlog.get_logger(__name__)


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[firestore.Client] = None
        self._settings = get_settings().firebase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firestore.Client:
        """
        Establish the Firestore client.

        Uses service account credentials when a path is configured,
        application default credentials otherwise.
        """
        if self._client is None:
            try:
                if self._settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                    )
                    self._client = firestore.Client(
                        project=self._settings.project_id,
                        credentials=credentials,
                    )
                else:
                    self._client = firestore.Client(project=self._settings.project_id)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")
            logger.info("firestore_connected", project_id=self._settings.project_id)

        return self._client


def _to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value
        for key, value in data.items()
    }


def _translate(error: Exception, path: str) -> StorageError:
    if isinstance(error, StorageError):
        return error
    if isinstance(error, gexc.NotFound):
        return NotFoundError(f"Document not found: {path}")
    if isinstance(error, (gexc.AlreadyExists, gexc.Conflict)):
        return AlreadyExistsError(f"Document already exists: {path}")
    if isinstance(error, (gexc.PermissionDenied, gexc.Unauthenticated)):
        return AccessDeniedError(f"Missing or insufficient permissions: {path}")
    return StorageError(f"Firestore operation failed for {path}: {error}")


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the document store.

    Snapshots arrive on the client's watch threads and are converted there,
    then delivered on the event loop through the runner.
    """

    def __init__(self, runner: EventLoopRunner, client: Optional[FirestoreClient] = None):
        self._runner = runner
        self._client = client or FirestoreClient()
        self._listeners = ThreadPoolExecutor(
            max_workers=4,
            thread_name_prefix="firestore-listen",
        )

    @property
    def db(self) -> firestore.Client:
        return self._client.connect()

    def connect(self) -> None:
        """Connect up front, on the calling thread, so listeners never wait on it."""
        self._client.connect()

    def _listen(
        self,
        path: str,
        start: Callable[[Callable[..., None]], Any],
        convert: Callable[..., Any],
        on_snapshot: Callable[[Any], None],
        on_error: ErrorCallback,
    ) -> Subscription:
        lock = threading.Lock()
        state = {"active": True, "watch": None}

        def deliver(callback: Callable[[Any], None], arg: Any) -> None:
            if state["active"]:
                callback(arg)

        def handle(*args: Any) -> None:
            try:
                value = convert(*args)
            except Exception as e:
                logger.error("firestore_snapshot_failed", path=path, error=str(e))
                self._runner.call_soon(deliver, on_error, _translate(e, path))
                return
            self._runner.call_soon(deliver, on_snapshot, value)

        def open_watch() -> None:
            try:
                watch = start(handle)
            except Exception as e:
                logger.error("firestore_subscribe_failed", path=path, error=str(e))
                self._runner.call_soon(deliver, on_error, _translate(e, path))
                return
            with lock:
                if state["active"]:
                    state["watch"] = watch
                    return
            # Cancelled while the listener was starting
            watch.unsubscribe()

        def cancel() -> None:
            with lock:
                state["active"] = False
                watch, state["watch"] = state["watch"], None
            if watch is not None:
                watch.unsubscribe()

        # Starting a listener may connect, with retries; never on the loop
        self._listeners.submit(open_watch)
        return Subscription(path, cancel)

    def subscribe_query(
        self,
        query: QuerySpec,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        def start(handle):
            ref = self.db.collection(query.collection_path)
            if query.order_by:
                direction = (
                    firestore.Query.DESCENDING if query.descending
                    else firestore.Query.ASCENDING
                )
                ref = ref.order_by(query.order_by, direction=direction)
            if query.limit is not None:
                ref = ref.limit(query.limit)
            return ref.on_snapshot(handle)

        def convert(snapshots, changes, read_time) -> list[StoredDocument]:
            return [
                StoredDocument(id=s.id, path=s.reference.path, data=s.to_dict() or {})
                for s in snapshots
            ]

        return self._listen(query.collection_path, start, convert, on_snapshot, on_error)

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        def start(handle):
            return self.db.document(path).on_snapshot(handle)

        def convert(snapshots, changes, read_time) -> Optional[StoredDocument]:
            for s in snapshots:
                if s.exists:
                    return StoredDocument(id=s.id, path=path, data=s.to_dict() or {})
            return None

        return self._listen(path, start, convert, on_snapshot, on_error)

    async def _call(self, path: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            raise _translate(e, path) from e

    async def add_document(self, collection_path: str, data: dict[str, Any]) -> str:
        def write():
            _, ref = self.db.collection(collection_path).add(_to_firestore(data))
            return ref.id

        return await self._call(collection_path, write)

    async def create_document(self, path: str, data: dict[str, Any]) -> None:
        await self._call(path, lambda: self.db.document(path).create(_to_firestore(data)))

    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        await self._call(path, lambda: self.db.document(path).update(_to_firestore(data)))

    async def delete_document(self, path: str) -> None:
        await self._call(path, lambda: self.db.document(path).delete())

    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self._call(
            path,
            lambda: self.db.document(path).set(_to_firestore(data), merge=merge),
        )

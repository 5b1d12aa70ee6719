"""
Mutation Dispatcher

Writes are fire-and-forget: every method returns a `MutationTicket`
immediately and the write runs later as a task on the event loop.
Completion shows up through the listeners; failure shows up as a
notification, a log line and an audit event.

DESIGN DECISION: No automatic retry for writes. A failed write is
reported and the user retries from the form.
"""

import asyncio
from concurrent.futures import Future
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import structlog

from biztrack.audit import AuditLogger, create_correlation_id
from biztrack.models.audit import AuditEventBuilder, AuditEventType
from biztrack.notifications import Notifier
from biztrack.runtime import EventLoopRunner
from biztrack.services.storage import DocumentStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class MutationTicket:
    """
    Handle for one dispatched write.

    Views ignore it; tests await `wait()` to observe completion without
    relying on timing.
    """

    def __init__(self, operation: str, path: str, correlation_id: UUID):
        self.operation = operation
        self.path = path
        self.correlation_id = correlation_id
        self.result: Any = None
        self.error: Optional[Exception] = None
        self._future: Optional[Union["asyncio.Future[None]", Future]] = None

    @property
    def done(self) -> bool:
        return self._future is not None and self._future.done()

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None

    async def wait(self) -> bool:
        """Wait for the write to finish. Returns True on success."""
        if isinstance(self._future, Future):
            await asyncio.wrap_future(self._future)
        elif self._future is not None:
            await self._future
        return self.error is None


class MutationDispatcher:
    """
    Dispatches create/update/delete/set writes without blocking the caller.

    Usage:
        ticket = dispatcher.create("users/u1/incomes", data, uid="u1")
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        runner: EventLoopRunner,
        notifier: Notifier,
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._runner = runner
        self._notifier = notifier
        self._audit = audit

    def _dispatch(
        self,
        operation: str,
        path: str,
        write: Callable[[], Awaitable[Any]],
        uid: Optional[str],
        audit_type: Optional[AuditEventType],
        failure_title: str,
        failure_message: str,
        notify_failure: bool = True,
    ) -> MutationTicket:
        ticket = MutationTicket(operation, path, create_correlation_id())

        async def run() -> None:
            try:
                ticket.result = await write()
            except Exception as e:
                ticket.error = e
                logger.error(
                    "mutation_failed",
                    operation=operation,
                    path=path,
                    error=str(e),
                    correlation_id=str(ticket.correlation_id),
                )
                if self._audit is not None and isinstance(e, StorageError):
                    self._audit.emit(AuditEventBuilder.mutation_failed(
                        uid=uid,
                        operation=operation,
                        path=path,
                        error_message=str(e),
                        correlation_id=ticket.correlation_id,
                    ))
                elif self._audit is not None:
                    # Not a store failure: a bug or a broken client
                    self._audit.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"operation": operation, "path": path, "uid": uid},
                        correlation_id=ticket.correlation_id,
                    )
                if notify_failure:
                    self._notifier.error(failure_title, failure_message)
                return

            logger.info("mutation_completed", operation=operation, path=path)
            if self._audit is not None and audit_type is not None:
                doc_id = ticket.result if isinstance(ticket.result, str) else path.rsplit("/", 1)[-1]
                self._audit.emit(AuditEventBuilder.record_written(
                    event_type=audit_type,
                    uid=uid or "",
                    collection=path,
                    doc_id=doc_id,
                    correlation_id=ticket.correlation_id,
                ))

        ticket._future = self._runner.spawn(run())
        return ticket

    def create(
        self,
        collection_path: str,
        data: dict[str, Any],
        uid: Optional[str] = None,
        failure_message: str = "Could not save the record.",
    ) -> MutationTicket:
        """Add a document with a store-assigned ID. `ticket.result` is the new ID."""
        return self._dispatch(
            "create",
            collection_path,
            lambda: self._store.add_document(collection_path, data),
            uid,
            AuditEventType.RECORD_CREATED,
            "Error",
            failure_message,
        )

    def update(
        self,
        path: str,
        data: dict[str, Any],
        uid: Optional[str] = None,
        failure_message: str = "Could not update the record.",
    ) -> MutationTicket:
        return self._dispatch(
            "update",
            path,
            lambda: self._store.update_document(path, data),
            uid,
            AuditEventType.RECORD_UPDATED,
            "Error",
            failure_message,
        )

    def delete(
        self,
        path: str,
        uid: Optional[str] = None,
        failure_message: str = "Could not delete the record.",
    ) -> MutationTicket:
        return self._dispatch(
            "delete",
            path,
            lambda: self._store.delete_document(path),
            uid,
            AuditEventType.RECORD_DELETED,
            "Error",
            failure_message,
        )

    def set(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
        uid: Optional[str] = None,
        failure_title: str = "Error",
        failure_message: str = "Could not save changes.",
    ) -> MutationTicket:
        return self._dispatch(
            "set",
            path,
            lambda: self._store.set_document(path, data, merge=merge),
            uid,
            None,
            failure_title,
            failure_message,
        )

    def create_exclusive(
        self,
        path: str,
        data: dict[str, Any],
        uid: Optional[str] = None,
        failure_title: str = "Error",
        failure_message: str = "Could not save changes.",
        on_success: Optional[Callable[[], None]] = None,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> MutationTicket:
        """
        Create a document at `path` only if nothing is there yet.

        `on_success`/`on_failure` run on the loop after the write settles.
        When `on_failure` is given it owns the failure notification.
        """
        async def write() -> None:
            try:
                await self._store.create_document(path, data)
            except Exception as e:
                if on_failure is not None:
                    on_failure(e)
                raise
            if on_success is not None:
                on_success()

        return self._dispatch(
            "create_exclusive",
            path,
            write,
            uid,
            None,
            failure_title,
            failure_message,
            notify_failure=on_failure is None,
        )

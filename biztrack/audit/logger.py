"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of who wrote, changed or tried to change what
2. Debugging capability when listeners or writes fail
3. A persisted trail in the auditEvents collection

The audit logger:
- Never blocks the main flow (`emit` schedules persistence on the loop)
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace a submit through to its write
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from biztrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from biztrack.runtime import EventLoopRunner
from biztrack.services.storage import DocumentStoreInterface
from biztrack.services.storage.paths import COLLECTION_AUDIT_EVENTS


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog's JSON lines to stderr at the configured level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))
    logging.getLogger().setLevel(getattr(logging, log_level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The auditEvents collection (when a store is given)
    """

    def __init__(
        self,
        store: Optional[DocumentStoreInterface] = None,
        runner: Optional[EventLoopRunner] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Document store for persistence.
                   If None, only logs locally.
            runner: Loop used by `emit` to persist without awaiting.
        """
        self._store = store
        self._runner = runner
        self._logger = structlog.get_logger("biztrack.audit")

    def _log_locally(self, event: AuditEvent) -> None:
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def _persist(self, event: AuditEvent) -> bool:
        if self._store is None:
            return True
        try:
            await self._store.add_document(COLLECTION_AUDIT_EVENTS, event.to_document())
            return True
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def emit(self, event: AuditEvent) -> None:
        """
        Log an event from synchronous code.

        The local log line is written immediately; persistence is
        scheduled on the loop and never awaited.
        """
        self._log_locally(event)
        if self._store is not None and self._runner is not None:
            self._runner.spawn(self._persist(event))

    def log_permission_denied(
        self,
        uid: Optional[str],
        action: str,
        collection: str,
        doc_id: Optional[str],
        owner_id: Optional[str],
    ) -> None:
        """Log a write blocked by the authorization gate."""
        self.emit(AuditEventBuilder.permission_denied(
            uid=uid,
            action=action,
            collection=collection,
            doc_id=doc_id,
            owner_id=owner_id,
        ))

    def log_subscription_error(self, path: str, error_message: str) -> None:
        """Log a listener that moved into its error state."""
        self.emit(AuditEventBuilder.subscription_error(path, error_message))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.emit(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., a form submit).
    Pass it through to the write it triggers.
    """
    return uuid4()

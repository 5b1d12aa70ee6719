"""
Main Orchestrator for BizTrack

This module ties together all the components and hands the UI one
object per session that it can build pages from:
1. Session (auth events -> context -> route guard)
2. Record pages (record books over live watchers and the merger)
3. Dashboard and profile

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every write goes through validation and the authorization gate
- Every page reads the viewer from the injected session context
- Every step is audited

Pages are built on demand and must be closed when they unmount, so no
listener outlives the page that opened it.
"""

from typing import Optional

import structlog

from biztrack.audit import AuditLogger, configure_logging
from biztrack.config import get_settings
from biztrack.dashboard import Dashboard
from biztrack.data import MutationDispatcher
from biztrack.models import RecordKind
from biztrack.notifications import Notifier
from biztrack.profile import ProfileEditor
from biztrack.records import AppointmentBook, AuthorizationGate, RecordBook
from biztrack.runtime import EventLoopRunner
from biztrack.services.auth import AuthServiceInterface, FirebaseAuthService, PendingRedirects
from biztrack.services.storage import (
    DocumentStoreInterface,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
)
from biztrack.session import Navigator, SessionContext, SessionShell
from biztrack.validation import FormValidator


logger = structlog.get_logger(__name__)


class BizTrackApp:
    """
    All components of one user session, wired together.

    Usage:
        app = create_app_components(runner)
        app.start()
        book = app.income_book()
        book.open()
    """

    def __init__(
        self,
        runner: EventLoopRunner,
        store: DocumentStoreInterface,
        auth: AuthServiceInterface,
        audit_logger: Optional[AuditLogger] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.runner = runner
        self.store = store
        self.auth = auth
        self.audit = audit_logger or AuditLogger()
        self.notifier = notifier or Notifier()
        self.validator = FormValidator(self.audit)
        self.gate = AuthorizationGate()
        self.dispatcher = MutationDispatcher(store, runner, self.notifier, self.audit)
        self.context = SessionContext()
        self.navigator = Navigator()
        self.shell = SessionShell(
            auth,
            store,
            runner,
            self.dispatcher,
            self.notifier,
            context=self.context,
            navigator=self.navigator,
            validator=self.validator,
            audit=self.audit,
        )
        self.profile_editor = ProfileEditor(
            auth,
            self.context,
            self.dispatcher,
            self.notifier,
            validator=self.validator,
            audit=self.audit,
        )

    def start(self) -> None:
        self.shell.start()

    def stop(self) -> None:
        self.shell.stop()

    # =========================================================================
    # PAGE VIEW MODELS
    # =========================================================================

    def _book(self, kind: RecordKind, aggregate: bool) -> RecordBook:
        return RecordBook(
            kind,
            self.store,
            self.context,
            self.dispatcher,
            self.notifier,
            gate=self.gate,
            validator=self.validator,
            audit=self.audit,
            aggregate=aggregate,
        )

    def income_book(self) -> RecordBook:
        """Income page: the viewer's own records only."""
        return self._book(RecordKind.INCOME, aggregate=False)

    def expense_book(self) -> RecordBook:
        """Expenses page: own records plus those of elevated accounts."""
        return self._book(RecordKind.EXPENSE, aggregate=True)

    def appointment_book(self) -> AppointmentBook:
        return AppointmentBook(
            self.store,
            self.context,
            self.dispatcher,
            self.notifier,
            gate=self.gate,
            validator=self.validator,
            audit=self.audit,
        )

    def dashboard(self) -> Dashboard:
        return Dashboard(self.store, self.context, audit=self.audit)


def create_store(runner: EventLoopRunner, backend: Optional[str] = None) -> DocumentStoreInterface:
    """
    Build the configured document store.

    Firestore is connected here, before any listener is opened.

    Raises:
        ConnectionError: Firestore could not be reached after retries
    """
    backend = backend or get_settings().app.storage_backend
    if backend == "memory":
        logger.info("using_memory_store")
        return InMemoryDocumentStore(runner)
    store = FirestoreDocumentStore(runner)
    store.connect()
    return store


def create_app_components(
    runner: EventLoopRunner,
    store: Optional[DocumentStoreInterface] = None,
    auth: Optional[AuthServiceInterface] = None,
    redirects: Optional[PendingRedirects] = None,
) -> BizTrackApp:
    """
    Factory function to create all application components.

    Args:
        runner: The event loop everything runs on.
        store: Document store to use. Built from settings when omitted.
        auth: Identity provider to use. Firebase Auth when omitted.
        redirects: Federated sign-ins in flight, shared across browser sessions.

    Returns:
        A wired, not yet started BizTrackApp
    """
    settings = get_settings().app
    configure_logging(settings.log_level)

    store = store or create_store(runner)
    auth = auth or FirebaseAuthService(runner, redirects=redirects)

    audit_logger = AuditLogger(
        store if settings.persist_audit_events else None,
        runner,
    )

    return BizTrackApp(runner, store, auth, audit_logger=audit_logger)

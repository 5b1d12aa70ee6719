"""
Record Books

One record book per entity page (income, expenses, appointments). A book
is what the page renders from and what its buttons call:

- `state`: the live {data, is_loading, error} triple
- `submit(form_data, editing=None)`: validate, authorize, dispatch
- `edit(record)`: authorize, then return the form values to prefill
- `delete(record)`: authorize, then dispatch

DESIGN DECISION: Submit returns as soon as the write is dispatched. The
new record shows up through the live state; a failed write shows up as
a notification. Validation and authorization failures never reach the
store.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict

from biztrack.aggregation import ORDERINGS, AggregationMerger
from biztrack.audit import AuditLogger
from biztrack.data import (
    CollectionWatcher,
    MutationDispatcher,
    MutationTicket,
    QuerySpec,
    SubscriptionState,
    parser_for,
)
from biztrack.models import (
    FORM_MODELS,
    RECORD_MODELS,
    Appointment,
    RecordKind,
    RecordMixin,
    ValidationResult,
)
from biztrack.notifications import Notifier
from biztrack.records.authorization import (
    AuthorizationError,
    AuthorizationGate,
    NotAuthenticatedError,
)
from biztrack.services.storage import SERVER_TIMESTAMP, DocumentStoreInterface
from biztrack.services.storage.paths import record_doc_path, records_path
from biztrack.session.context import SessionContext
from biztrack.validation import FormValidator


logger = structlog.get_logger(__name__)


class BookLabels(BaseModel):
    """User-facing wording for one entity."""
    model_config = ConfigDict(frozen=True)

    title: str
    manage: str
    record: str
    added: str
    updated: str
    deleted: str
    delete_failed: str


LABELS: dict[RecordKind, BookLabels] = {
    RecordKind.INCOME: BookLabels(
        title="Income",
        manage="income",
        record="income records",
        added="New income record has been added.",
        updated="Your income record has been updated.",
        deleted="Income record has been deleted.",
        delete_failed="Could not delete income record.",
    ),
    RecordKind.EXPENSE: BookLabels(
        title="Expense",
        manage="expenses",
        record="expense records",
        added="New expense record has been added.",
        updated="Your expense record has been updated.",
        deleted="Expense record has been deleted.",
        delete_failed="Could not delete expense record.",
    ),
    RecordKind.APPOINTMENT: BookLabels(
        title="Appointment",
        manage="appointments",
        record="appointments",
        added="New appointment has been scheduled.",
        updated="Your appointment has been updated.",
        deleted="Appointment has been deleted.",
        delete_failed="Could not delete appointment.",
    ),
}


class SubmitOutcome(BaseModel):
    """What happened to one submit."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    validation: Optional[ValidationResult] = None
    denied: Optional[AuthorizationError] = None
    ticket: Optional[MutationTicket] = None

    @property
    def dispatched(self) -> bool:
        return self.ticket is not None


class RecordBook:
    """
    View model over one entity collection for the current viewer.

    With `aggregate=True` the book shows the viewer's records merged with
    those of elevated accounts; otherwise only the viewer's own.
    """

    def __init__(
        self,
        kind: RecordKind,
        store: DocumentStoreInterface,
        context: SessionContext,
        dispatcher: MutationDispatcher,
        notifier: Notifier,
        gate: Optional[AuthorizationGate] = None,
        validator: Optional[FormValidator] = None,
        audit: Optional[AuditLogger] = None,
        aggregate: bool = False,
        limit: Optional[int] = None,
    ):
        self.kind = kind
        self.labels = LABELS[kind]
        self._context = context
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._gate = gate or AuthorizationGate()
        self._validator = validator or FormValidator(audit)
        self._audit = audit
        self._ordering = ORDERINGS[kind]
        self._limit = limit
        self._remove_context_listener: Optional[Callable[[], None]] = None

        self._source: Union[AggregationMerger, CollectionWatcher]
        if aggregate:
            self._source = AggregationMerger(store, kind, audit=audit, limit=limit)
        else:
            self._source = CollectionWatcher(store, parser_for(RECORD_MODELS[kind]), audit)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open(self) -> None:
        """Follow the session's viewer until `close()`."""
        if self._remove_context_listener is None:
            self._remove_context_listener = self._context.add_listener(self._on_context)
        self._on_context(self._context)

    def close(self) -> None:
        if self._remove_context_listener is not None:
            self._remove_context_listener()
            self._remove_context_listener = None
        self._retarget(None)

    def _on_context(self, context: SessionContext) -> None:
        self._retarget(context.viewer_uid)

    def _retarget(self, uid: Optional[str]) -> None:
        if isinstance(self._source, AggregationMerger):
            self._source.retarget(uid)
            return
        query = None
        if uid is not None:
            query = QuerySpec(
                collection_path=records_path(uid, self.kind),
                order_by=self._ordering.field,
                descending=self._ordering.descending,
                limit=self._limit,
            )
        self._source.retarget(query)

    @property
    def state(self) -> SubscriptionState:
        return self._source.state

    @property
    def records(self) -> list[RecordMixin]:
        return self.state.data or []

    def add_listener(self, listener: Callable[[SubscriptionState], None]) -> Callable[[], None]:
        return self._source.add_listener(listener)

    def can_modify(self, record: RecordMixin) -> bool:
        """Whether edit/delete buttons should be offered for `record`."""
        viewer = self._context.viewer
        return viewer is not None and record.owner_id == viewer.uid

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def _deny(self, error: AuthorizationError, action: str, record: Optional[RecordMixin]) -> None:
        if isinstance(error, NotAuthenticatedError):
            self._notifier.error(
                "Authentication Error",
                f"You must be logged in to manage {self.labels.manage}.",
            )
        else:
            self._notifier.error(
                "Permission Denied",
                f"You can only {action} {self.labels.record} you created.",
            )
        if self._audit is not None:
            self._audit.log_permission_denied(
                uid=self._context.viewer_uid,
                action=action,
                collection=self.kind.value,
                doc_id=record.id if record else None,
                owner_id=record.owner_id if record else None,
            )

    def submit(self, form_data: Any, editing: Optional[RecordMixin] = None) -> SubmitOutcome:
        """
        Validate and save a form.

        Creates a record, or updates `editing` when given. Returns at once;
        the write itself completes later.
        """
        viewer_uid = self._context.viewer_uid
        result = self._validator.validate(FORM_MODELS[self.kind], form_data, actor_id=viewer_uid)
        if not result.is_valid:
            return SubmitOutcome(validation=result)

        try:
            if editing is not None:
                viewer = self._gate.ensure_can_modify(self._context.viewer, editing)
            else:
                viewer = self._gate.ensure_can_create(self._context.viewer)
        except AuthorizationError as e:
            self._deny(e, "edit", editing)
            return SubmitOutcome(validation=result, denied=e)

        form = result.value
        if editing is not None:
            payload = form.model_dump(by_alias=True)
            payload.update(userId=viewer.uid, updatedAt=SERVER_TIMESTAMP)
            ticket = self._dispatcher.update(
                record_doc_path(viewer.uid, self.kind, editing.id),
                payload,
                uid=viewer.uid,
            )
            self._notifier.success(f"{self.labels.title} Updated", self.labels.updated)
        else:
            payload = form.model_dump(by_alias=True, exclude_none=True)
            payload.update(
                userId=viewer.uid,
                createdAt=SERVER_TIMESTAMP,
                updatedAt=SERVER_TIMESTAMP,
            )
            ticket = self._dispatcher.create(
                records_path(viewer.uid, self.kind),
                payload,
                uid=viewer.uid,
            )
            self._notifier.success(f"{self.labels.title} Added", self.labels.added)

        # Warnings never block the save, but the viewer should see them
        if result.issues:
            self._notifier.notify(
                "Please Double-Check",
                self._validator.get_user_friendly_summary(result),
            )

        return SubmitOutcome(validation=result, ticket=ticket)

    def edit(self, record: RecordMixin) -> Optional[dict[str, Any]]:
        """
        Form values to prefill the edit dialog with.

        Returns None (and notifies) when the viewer may not edit `record`.
        """
        try:
            self._gate.ensure_can_modify(self._context.viewer, record)
        except AuthorizationError as e:
            self._deny(e, "edit", record)
            return None
        fields = FORM_MODELS[self.kind].model_fields
        return {name: getattr(record, name) for name in fields}

    def delete(self, record: RecordMixin) -> Optional[MutationTicket]:
        try:
            viewer = self._gate.ensure_can_modify(self._context.viewer, record)
        except AuthorizationError as e:
            self._deny(e, "delete", record)
            return None

        ticket = self._dispatcher.delete(
            record_doc_path(viewer.uid, self.kind, record.id),
            uid=viewer.uid,
            failure_message=self.labels.delete_failed,
        )
        self._notifier.success(f"{self.labels.title} Deleted", self.labels.deleted)
        return ticket

    def default_form_values(self) -> dict[str, Any]:
        """Blank form for a new entry."""
        values: dict[str, Any] = {
            "amount": Decimal("0"),
            "entry_date": date.today(),
            "description": "",
            "category": "",
            "payment_method": "",
            "reference_number": "",
        }
        if self.kind == RecordKind.EXPENSE:
            values["vendor"] = ""
        return values


class AppointmentBook(RecordBook):
    """Record book with the calendar helpers of the appointments page."""

    def __init__(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("aggregate", True)
        super().__init__(RecordKind.APPOINTMENT, *args, **kwargs)

    def appointments_on(self, day: date) -> list[Appointment]:
        """Appointments starting on `day` (UTC), in start order."""
        return [
            appointment for appointment in self.records
            if appointment.start_time.date() == day
        ]

    def days_with_appointments(self) -> set[date]:
        return {appointment.start_time.date() for appointment in self.records}

    def default_form_values(self, day: Optional[date] = None) -> dict[str, Any]:
        """Blank form on `day` (default today), 09:00 to 10:00."""
        day = day or date.today()
        start = datetime.combine(day, time(9, 0), tzinfo=timezone.utc)
        return {
            "title": "",
            "start_time": start,
            "end_time": start + timedelta(hours=1),
            "location": "",
            "description": "",
            "attendees": [],
        }

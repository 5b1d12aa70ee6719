"""
Core Data Models for BizTrack

These models define the strict schemas for everything stored in the
document database and everything typed into a form. They are designed to:
1. Enforce the record invariants at runtime (positive amounts, ordered times)
2. Provide clear, per-field validation error messages
3. Round-trip through the document store using its camelCase field names
4. Carry ownership so the authorization gate can reason about them

DESIGN DECISION: Forms and stored records share one schema per entity.
A record is "form + identity + owner + timestamps", so a value that
passes the form can never fail as a record.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class UserRole(str, Enum):
    """
    Account roles.

    ADMIN is the elevated role: its records become visible (read-only)
    in every other viewer's aggregate views.
    """
    ADMIN = "admin"
    EMPLOYEE = "employee"


class RecordKind(str, Enum):
    """Entity collections kept under each owner namespace."""
    INCOME = "incomes"
    EXPENSE = "expenses"
    APPOINTMENT = "appointments"


# =============================================================================
# BASE MODELS
# =============================================================================

class DocumentModel(BaseModel):
    """
    Base for every schema that maps onto a stored document.

    Python attributes are snake_case, stored fields are camelCase;
    both spellings are accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _blank_to_none(value: Any) -> Any:
    """Forms submit '' for untouched optional inputs."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to it."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RecordMixin(DocumentModel):
    """
    Identity, ownership and timestamps shared by all owned records.

    CRITICAL: `id` is assigned by the store when the record is created
    and never changes afterwards.
    """

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned document ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the record (auth uid)"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def owner_id(self) -> str:
        return self.user_id

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Build a record from a stored document's ID and field map."""
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# USER PROFILE
# =============================================================================

class UserProfile(DocumentModel):
    """
    Profile document stored at users/{uid}.

    Created lazily on the first authenticated session if absent,
    edited on the profile page, never hard-deleted.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Auth uid"
    )
    email: str = Field(
        default="",
        description="Account email (empty for anonymous sessions)"
    )
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    photo_url: Optional[str] = Field(
        default=None,
        alias="photoURL",
        description="Profile picture URL or data URL"
    )
    role: Optional[UserRole] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    normalize_optional = field_validator(
        "first_name", "last_name", "company_name", "photo_url", "role",
        mode="before",
    )(_blank_to_none)

    @property
    def display_name(self) -> Optional[str]:
        """First and last name joined, or None when neither is set."""
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or None

    @property
    def is_elevated(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UserProfile":
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# FORM SCHEMAS (what the user types)
# =============================================================================

class LedgerEntryForm(DocumentModel):
    """Fields shared by the income and expense forms."""

    amount: Decimal = Field(
        ...,
        description="Amount in the configured currency"
    )
    entry_date: date = Field(
        ...,
        alias="date",
        description="Calendar date of the entry"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the entry is for"
    )
    category: Optional[str] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None

    normalize_optional = field_validator(
        "category", "payment_method", "reference_number",
        mode="before",
    )(_blank_to_none)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be positive.")
        return v

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)

    @field_serializer("entry_date")
    def serialize_date(self, v: date) -> str:
        return v.isoformat()


class IncomeForm(LedgerEntryForm):
    """Create/edit form for an income entry."""


class ExpenseForm(LedgerEntryForm):
    """Create/edit form for an expense entry."""

    vendor: Optional[str] = None

    normalize_vendor = field_validator("vendor", mode="before")(_blank_to_none)


class AppointmentForm(DocumentModel):
    """
    Create/edit form for an appointment.

    The end-after-start rule is checked on end_time so the error is
    reported against that field.
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    attendees: list[str] = Field(
        default_factory=list,
        description="Attendee emails or user IDs"
    )

    normalize_optional = field_validator(
        "location", "description",
        mode="before",
    )(_blank_to_none)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_validator("end_time")
    @classmethod
    def validate_end_after_start(cls, v: datetime, info) -> datetime:
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("End time must be after start time.")
        return v

    @field_validator("attendees", mode="before")
    @classmethod
    def drop_blank_attendees(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [a.strip() for a in v if isinstance(a, str) and a.strip()]

    @field_serializer("start_time", "end_time")
    def serialize_instant(self, v: datetime) -> str:
        return v.isoformat()


# =============================================================================
# STORED RECORDS (form + identity + owner)
# =============================================================================

class IncomeRecord(RecordMixin, IncomeForm):
    """Income entry stored at users/{uid}/incomes/{id}."""


class ExpenseRecord(RecordMixin, ExpenseForm):
    """Expense entry stored at users/{uid}/expenses/{id}."""


class Appointment(RecordMixin, AppointmentForm):
    """Appointment stored at users/{uid}/appointments/{id}."""


RECORD_MODELS: dict[RecordKind, type[RecordMixin]] = {
    RecordKind.INCOME: IncomeRecord,
    RecordKind.EXPENSE: ExpenseRecord,
    RecordKind.APPOINTMENT: Appointment,
}

FORM_MODELS: dict[RecordKind, type[DocumentModel]] = {
    RecordKind.INCOME: IncomeForm,
    RecordKind.EXPENSE: ExpenseForm,
    RecordKind.APPOINTMENT: AppointmentForm,
}

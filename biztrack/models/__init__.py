"""
Data Models Package

This package contains all Pydantic models used in BizTrack.
All data flowing between the UI, the store and the audit log
must conform to these schemas.
"""

from biztrack.models.records import (
    FORM_MODELS,
    RECORD_MODELS,
    Appointment,
    AppointmentForm,
    DocumentModel,
    ExpenseForm,
    ExpenseRecord,
    IncomeForm,
    IncomeRecord,
    LedgerEntryForm,
    RecordKind,
    RecordMixin,
    UserProfile,
    UserRole,
)
from biztrack.models.forms import (
    ChangePasswordForm,
    CreateUserForm,
    LoginForm,
    PhotoUpload,
    UpdateProfileInfoForm,
    ValidationIssue,
    ValidationResult,
)
from biztrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "FORM_MODELS",
    "RECORD_MODELS",
    "Appointment",
    "AppointmentForm",
    "DocumentModel",
    "ExpenseForm",
    "ExpenseRecord",
    "IncomeForm",
    "IncomeRecord",
    "LedgerEntryForm",
    "RecordKind",
    "RecordMixin",
    "UserProfile",
    "UserRole",
    # Form models
    "ChangePasswordForm",
    "CreateUserForm",
    "LoginForm",
    "PhotoUpload",
    "UpdateProfileInfoForm",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

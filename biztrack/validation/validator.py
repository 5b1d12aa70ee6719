"""
Two-Stage Form Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Length limits, positive amounts, end after start
- Failures here are errors and block the submit

STAGE 2 - SEMANTIC VALIDATION:
- Plausibility checks on a form that already parsed
- Future-dated ledger entries, unusually long appointments
- Failures here are warnings; the submit still goes through

IMPORTANT: Validation NEVER silently fixes issues, and a form with
errors never reaches the store. Issues are reported per field so the
page can show them inline.
"""

from datetime import date, timedelta
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from biztrack.audit import AuditLogger
from biztrack.models import (
    AppointmentForm,
    LedgerEntryForm,
    ValidationIssue,
    ValidationResult,
)
from biztrack.models.audit import AuditEventBuilder


logger = structlog.get_logger(__name__)

FORM_LEVEL_FIELD = "__form__"
MAX_APPOINTMENT_LENGTH = timedelta(hours=24)


def _field_names(model: type[BaseModel]) -> dict[str, str]:
    """Map every accepted spelling of a field (alias or name) to its name."""
    names: dict[str, str] = {}
    for name, info in model.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def _message(error: dict[str, Any]) -> str:
    message = error["msg"]
    # Messages raised from our own validators come prefixed by pydantic
    if error["type"] == "value_error" and message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return message


def issues_from_error(model: type[BaseModel], error: ValidationError) -> list[ValidationIssue]:
    """Convert a pydantic ValidationError into per-field issues."""
    names = _field_names(model)
    issues = []
    for item in error.errors():
        loc = item.get("loc") or ()
        field = names.get(str(loc[0]), str(loc[0])) if loc else FORM_LEVEL_FIELD
        issues.append(ValidationIssue(
            field=field,
            issue_type=item["type"],
            message=_message(item),
            severity="error",
        ))
    return issues


class FormValidator:
    """
    Validates form submissions through a two-stage pipeline.

    Stage 1: Schema validation (the form's pydantic model)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(self, audit: Optional[AuditLogger] = None):
        """
        Initialize validator.

        Args:
            audit: Audit logger for rejected submissions.
                   If None, rejections are only logged locally.
        """
        self._audit = audit

    def _validate_semantic(self, form: BaseModel) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Ledger entries dated in the future
        - Appointments longer than a day
        """
        issues = []

        if isinstance(form, LedgerEntryForm) and form.entry_date > date.today():
            issues.append(ValidationIssue(
                field="entry_date",
                issue_type="future_date",
                message=f"Date ({form.entry_date}) is in the future",
                severity="warning",
            ))

        if isinstance(form, AppointmentForm):
            if form.end_time - form.start_time > MAX_APPOINTMENT_LENGTH:
                issues.append(ValidationIssue(
                    field="end_time",
                    issue_type="suspicious_value",
                    message="Appointment lasts longer than a day",
                    severity="warning",
                ))

        return issues

    def validate(
        self,
        form_model: type[BaseModel],
        data: Any,
        actor_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage pipeline on raw form input.

        Args:
            form_model: The pydantic model of the form
            data: Raw input (dict of field values) or an already-built form
            actor_id: Viewer submitting the form, for the audit trail

        Returns:
            ValidationResult; `value` holds the parsed form when valid
        """
        form_name = form_model.__name__

        # Stage 1: Schema validation
        try:
            form = data if isinstance(data, form_model) else form_model.model_validate(data)
        except ValidationError as e:
            issues = issues_from_error(form_model, e)
            logger.info("form_rejected", form=form_name, issues=len(issues))
            if self._audit is not None:
                self._audit.emit(AuditEventBuilder.validation_failed(
                    uid=actor_id,
                    form_name=form_name,
                    issues=[issue.model_dump() for issue in issues],
                ))
            return ValidationResult(form_name=form_name, issues=issues)

        # Stage 2: Semantic validation
        return ValidationResult(
            form_name=form_name,
            issues=self._validate_semantic(form),
            value=form,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        One block of text for a failed or flagged submission.

        Field-level errors are shown inline by the page; this summary is
        what goes in the toast.
        """
        if result.is_valid and not result.issues:
            return "All checks passed."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        warnings = [i for i in result.issues if i.severity == "warning"]

        if errors:
            lines.append("Please fix the following:")
            lines.extend(f"  - {issue.message}" for issue in errors)

        if warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            lines.extend(f"  - {issue.message}" for issue in warnings)

        return "\n".join(lines)

"""
Account Forms and Validation Result Models

Credential and profile forms, plus the models the validation layer
reports back to the UI. Record forms live next to their records in
`biztrack.models.records`.
"""

import base64
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from biztrack.config import get_settings
from biztrack.models.records import DocumentModel


class CreateUserForm(DocumentModel):
    """Signup form."""

    email: EmailStr
    password: str = Field(
        ...,
        min_length=6,
        description="Password (at least 6 characters)"
    )
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class LoginForm(DocumentModel):
    """Email/password sign-in form."""

    email: EmailStr
    password: str = Field(
        ...,
        min_length=1,
    )


class PhotoUpload(BaseModel):
    """A picture chosen on the profile page."""

    filename: str
    content_type: str
    data: bytes

    @field_validator("content_type")
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        if not v.lower().startswith("image/"):
            raise ValueError("Please upload an image file.")
        return v.lower()

    @field_validator("data")
    @classmethod
    def validate_size(cls, v: bytes) -> bytes:
        settings = get_settings().app
        if len(v) > settings.max_photo_size_bytes:
            raise ValueError(
                f"Image size should be less than {settings.max_photo_size_mb}MB."
            )
        return v

    def to_data_url(self) -> str:
        """Encode the picture inline, the way it is stored on the profile."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class UpdateProfileInfoForm(DocumentModel):
    """Profile information form."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    photo: Optional[PhotoUpload] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class ChangePasswordForm(DocumentModel):
    """Password change form."""

    new_password: str = Field(
        ...,
        min_length=6,
        description="New password (at least 6 characters)"
    )
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and v != new_password:
            raise ValueError("Passwords do not match.")
        return v


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue ('__form__' for whole-form issues)"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'too_long', 'value_error')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one form submission.

    `value` holds the parsed form when validation passed.
    """

    form_name: str
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    value: Optional[Any] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "ValidationResult":
        if self.value is not None and self.has_errors:
            raise ValueError("A result with errors cannot carry a parsed value")
        return self

    @property
    def is_valid(self) -> bool:
        return self.value is not None and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def errors_by_field(self) -> dict[str, list[str]]:
        """Messages grouped per field, for inline display."""
        grouped: dict[str, list[str]] = {}
        for issue in self.issues:
            if issue.severity == "error":
                grouped.setdefault(issue.field, []).append(issue.message)
        return grouped

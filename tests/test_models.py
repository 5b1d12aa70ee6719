"""
Tests for BizTrack

Test strategy:
1. Unit tests for individual components (models, validators, merger)
2. Integration tests for flows (in-memory store, scripted identity provider)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from biztrack.models import (
    Appointment,
    AppointmentForm,
    ChangePasswordForm,
    ExpenseForm,
    IncomeForm,
    IncomeRecord,
    PhotoUpload,
    UserProfile,
    UserRole,
    ValidationIssue,
    ValidationResult,
)
from biztrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestRecordModels:
    """Tests for record and form Pydantic models."""

    def test_income_form_accepts_stored_field_names(self):
        """Test that camelCase aliases and Python names both work."""
        form = IncomeForm.model_validate({
            "amount": "150.00",
            "date": "2024-03-01",
            "description": "Consulting",
            "paymentMethod": "card",
        })
        assert form.amount == Decimal("150.00")
        assert form.entry_date == date(2024, 3, 1)
        assert form.payment_method == "card"

    def test_amount_must_be_positive(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError, match="Amount must be positive."):
            IncomeForm(amount=Decimal("0"), entry_date=date.today(), description="x")
        with pytest.raises(ValueError):
            ExpenseForm(amount=Decimal("-5"), entry_date=date.today(), description="x")

    def test_description_length_limits(self):
        """Test that description must be 1-200 characters."""
        with pytest.raises(ValueError):
            IncomeForm(amount=Decimal("1"), entry_date=date.today(), description="")
        with pytest.raises(ValueError):
            IncomeForm(amount=Decimal("1"), entry_date=date.today(), description="x" * 201)

    def test_blank_optional_fields_become_none(self):
        """Test that untouched optional inputs are not stored as ''."""
        form = ExpenseForm(
            amount=Decimal("10"),
            entry_date=date.today(),
            description="Paper",
            category="  ",
            vendor="",
        )
        assert form.category is None
        assert form.vendor is None

    def test_record_parses_stored_fields(self):
        """Test that a stored document parses into a record with its ID."""
        record = IncomeRecord.from_document("abc", {
            "userId": "u1",
            "amount": 99.5,
            "date": "2024-01-31",
            "description": "Sale",
        })
        assert record.id == "abc"
        assert record.owner_id == "u1"

        assert record.entry_date == date(2024, 1, 31)
        assert record.amount == Decimal("99.5")

    def test_appointment_end_must_follow_start(self):
        """Test the end-after-start rule."""
        start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        with pytest.raises(ValueError, match="End time must be after start time."):
            AppointmentForm(title="Meet", start_time=start, end_time=start)

    def test_appointment_naive_times_are_utc(self):
        """Test that naive datetimes are taken as UTC."""
        form = AppointmentForm(
            title="Meet",
            start_time=datetime(2024, 3, 1, 9, 0),
            end_time=datetime(2024, 3, 1, 10, 0),
        )
        assert form.start_time.tzinfo == timezone.utc

    def test_appointment_offset_times_convert_to_utc(self):
        """Test that a +02:00 start is stored as the same instant in UTC."""
        plus_two = timezone(timedelta(hours=2))
        form = AppointmentForm(
            title="Meet",
            start_time=datetime(2024, 3, 1, 10, 0, tzinfo=plus_two),
            end_time=datetime(2024, 3, 1, 11, 0, tzinfo=plus_two),
        )
        assert form.start_time == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        assert form.start_time.utcoffset() == timedelta(0)
        assert form.start_time.date() == date(2024, 3, 1)

    def test_appointment_attendees_from_comma_string(self):
        """Test that attendees may be typed as a comma separated string."""
        start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        appointment = Appointment(
            user_id="u1",
            title="Meet",
            start_time=start,
            end_time=start + timedelta(hours=1),
            attendees="a@example.com, ,b@example.com",
        )
        assert appointment.attendees == ["a@example.com", "b@example.com"]


class TestProfileModels:
    """Tests for the profile and account forms."""

    def test_profile_display_name_and_role(self):
        """Test derived profile properties."""
        profile = UserProfile.from_document("u1", {
            "email": "ada@example.com",
            "firstName": "Ada",
            "lastName": "Lovelace",
            "photoURL": "",
            "role": "admin",
        })
        assert profile.display_name == "Ada Lovelace"
        assert profile.photo_url is None
        assert profile.role == UserRole.ADMIN
        assert profile.is_elevated

    def test_profile_without_names(self):
        """Test that a nameless profile has no display name."""
        profile = UserProfile(id="u1")
        assert profile.display_name is None
        assert not profile.is_elevated

    def test_password_confirmation_must_match(self):
        """Test that mismatched passwords are rejected."""
        with pytest.raises(ValueError, match="Passwords do not match."):
            ChangePasswordForm(new_password="secret1", confirm_password="secret2")

    def test_photo_must_be_an_image(self):
        """Test that non-image uploads are rejected."""
        with pytest.raises(ValueError, match="Please upload an image file."):
            PhotoUpload(filename="a.pdf", content_type="application/pdf", data=b"%PDF")

    def test_photo_size_limit(self):
        """Test that oversized pictures are rejected."""
        with pytest.raises(ValueError, match="less than 2MB"):
            PhotoUpload(filename="a.png", content_type="image/png", data=b"0" * (2 * 1024 * 1024 + 1))

    def test_photo_data_url(self):
        """Test inline encoding of a picture."""
        photo = PhotoUpload(filename="a.png", content_type="image/PNG", data=b"abc")
        assert photo.to_data_url() == "data:image/png;base64,YWJj"


class TestValidationModels:
    """Tests for validation result models."""

    def test_validation_result_is_valid(self):
        """Test is_valid with a parsed value and no issues."""
        result = ValidationResult(form_name="IncomeForm", value=object())
        assert result.is_valid
        assert not result.has_errors

    def test_validation_result_with_warnings_only(self):
        """Test that warnings don't make a result invalid."""
        result = ValidationResult(
            form_name="IncomeForm",
            value=object(),
            issues=[ValidationIssue(field="entry_date", issue_type="future_date", message="m", severity="warning")],
        )
        assert result.is_valid
        assert result.error_count == 0

    def test_errors_by_field(self):
        """Test grouping of error messages per field."""
        result = ValidationResult(
            form_name="IncomeForm",
            issues=[
                ValidationIssue(field="amount", issue_type="value_error", message="Amount must be positive."),
                ValidationIssue(field="amount", issue_type="missing", message="Field required"),
                ValidationIssue(field="date", issue_type="w", message="later", severity="warning"),
            ],
        )
        assert not result.is_valid
        assert result.errors_by_field() == {"amount": ["Amount must be positive.", "Field required"]}

    def test_errors_and_value_are_exclusive(self):
        """Test that a result with errors cannot carry a value."""
        with pytest.raises(ValueError):
            ValidationResult(
                form_name="IncomeForm",
                value=object(),
                issues=[ValidationIssue(field="amount", issue_type="x", message="bad")],
            )


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test basic AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            description="Record created",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_builder_permission_denied(self):
        """Test the permission denied builder."""
        event = AuditEventBuilder.permission_denied(
            uid="u1",
            action="delete",
            collection="expenses",
            doc_id="e1",
            owner_id="admin",
        )
        assert event.event_type == AuditEventType.PERMISSION_DENIED
        assert event.actor_id == "u1"
        assert event.severity == AuditSeverity.WARNING

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.sign_in_succeeded("u1", is_anonymous=False)
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "sign_in_succeeded"
        assert log_dict["actor_id"] == "u1"

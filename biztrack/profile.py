"""
Profile Editing

The profile page's two forms:
1. Profile information (names, company, photo), saved to both the
   identity provider's profile and the users/{uid} document
2. Password change, which only touches the identity provider

Both are awaited by the page; failures come back as form-level issues
and as notifications.
"""

from typing import Any, Optional

import structlog

from biztrack.audit import AuditLogger
from biztrack.data import MutationDispatcher
from biztrack.models import (
    ChangePasswordForm,
    UpdateProfileInfoForm,
    ValidationIssue,
    ValidationResult,
)
from biztrack.models.audit import AuditEventBuilder
from biztrack.notifications import Notifier
from biztrack.services.auth import (
    AuthAction,
    AuthError,
    AuthServiceInterface,
    failure_title,
    user_facing_message,
)
from biztrack.services.storage import SERVER_TIMESTAMP
from biztrack.services.storage.paths import user_doc_path
from biztrack.session.context import SessionContext
from biztrack.validation import FormValidator


logger = structlog.get_logger(__name__)


def _failed(result: ValidationResult, code: str, message: str) -> ValidationResult:
    return ValidationResult(
        form_name=result.form_name,
        issues=[ValidationIssue(field="__form__", issue_type=code, message=message)],
    )


class ProfileEditor:
    """
    Saves profile information and changes passwords for the current viewer.
    """

    def __init__(
        self,
        auth: AuthServiceInterface,
        context: SessionContext,
        dispatcher: MutationDispatcher,
        notifier: Notifier,
        validator: Optional[FormValidator] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._auth = auth
        self._context = context
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._validator = validator or FormValidator(audit)
        self._audit = audit

    def form_values(self) -> dict[str, Any]:
        """Current values to prefill the profile form with."""
        profile = self._context.profile
        return {
            "first_name": (profile.first_name if profile else None) or "",
            "last_name": (profile.last_name if profile else None) or "",
            "company_name": (profile.company_name if profile else None) or "",
        }

    async def update_info(self, form_data: Any) -> ValidationResult:
        """
        Save names, company and (optionally) a new photo.

        The photo is stored inline as a data URL. When the profile document
        does not exist yet, it is created with a createdAt timestamp.
        """
        viewer = self._context.viewer
        result = self._validator.validate(
            UpdateProfileInfoForm,
            form_data,
            actor_id=viewer.uid if viewer else None,
        )
        if not result.is_valid:
            return result
        if viewer is None:
            self._notifier.error("Update Failed", "Could not update profile.")
            return _failed(result, "auth/no-current-user", "Could not update profile.")

        form: UpdateProfileInfoForm = result.value
        profile = self._context.profile

        photo_url = (profile.photo_url if profile else None) or viewer.photo_url
        if form.photo is not None:
            photo_url = form.photo.to_data_url()
        display_name = form.display_name or viewer.display_name

        try:
            await self._auth.update_profile(display_name=display_name, photo_url=photo_url)
        except AuthError as e:
            logger.warning("profile_update_failed", uid=viewer.uid, code=e.code)
            self._notifier.error("Update Failed", "Could not update profile.")
            return _failed(result, e.code, "Could not update profile.")

        data: dict[str, Any] = {
            "firstName": form.first_name or "",
            "lastName": form.last_name or "",
            "companyName": form.company_name or "",
            "photoURL": photo_url or "",
            "email": viewer.email or "",
            "updatedAt": SERVER_TIMESTAMP,
        }
        if profile is None:
            data["createdAt"] = SERVER_TIMESTAMP

        self._dispatcher.set(
            user_doc_path(viewer.uid),
            data,
            merge=True,
            uid=viewer.uid,
            failure_title="Update Failed",
            failure_message="Could not update profile.",
        )
        if self._audit is not None:
            self._audit.emit(AuditEventBuilder.profile_updated(viewer.uid, sorted(data)))
        self._notifier.success("Profile Updated", "Your profile information has been saved.")
        return result

    async def change_password(self, form_data: Any) -> ValidationResult:
        viewer = self._context.viewer
        result = self._validator.validate(
            ChangePasswordForm,
            form_data,
            actor_id=viewer.uid if viewer else None,
        )
        if not result.is_valid or viewer is None:
            return result

        form: ChangePasswordForm = result.value
        try:
            await self._auth.update_password(form.new_password)
        except AuthError as e:
            message = user_facing_message(e.code, AuthAction.CHANGE_PASSWORD)
            logger.info("password_change_failed", uid=viewer.uid, code=e.code)
            self._notifier.error(failure_title(AuthAction.CHANGE_PASSWORD), message)
            return _failed(result, e.code, message)

        if self._audit is not None:
            self._audit.emit(AuditEventBuilder.password_changed(viewer.uid))
        self._notifier.success("Password Changed", "Your password has been updated successfully.")
        return result

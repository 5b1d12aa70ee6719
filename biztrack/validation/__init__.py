"""Form validation package."""

from biztrack.validation.validator import FormValidator, issues_from_error

__all__ = ["FormValidator", "issues_from_error"]

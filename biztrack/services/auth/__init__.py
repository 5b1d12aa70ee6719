"""
Auth Services Package

Identity provider contract, the Firebase REST implementation, and the
mapping from provider error codes to user-facing messages.
"""

from biztrack.services.auth.errors import (
    POPUP_FALLBACK_CODES,
    AuthAction,
    AuthError,
    failure_title,
    user_facing_message,
)
from biztrack.services.auth.interface import AuthServiceInterface, AuthSession
from biztrack.services.auth.firebase import FirebaseAuthService, PendingRedirects

__all__ = [
    "POPUP_FALLBACK_CODES",
    "AuthAction",
    "AuthError",
    "AuthServiceInterface",
    "AuthSession",
    "FirebaseAuthService",
    "PendingRedirects",
    "failure_title",
    "user_facing_message",
]

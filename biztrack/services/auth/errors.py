"""
Auth Errors

Failures from the identity provider carry a Firebase-style code
(`auth/<reason>`). The REST API reports its own upper-case reasons,
which are mapped onto the same codes so the rest of the application
only ever sees one vocabulary.
"""

from enum import Enum
from typing import Optional


class AuthError(Exception):
    """An identity provider call failed."""

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class AuthAction(str, Enum):
    """The user action a failure is reported against."""
    LOGIN = "login"
    ANONYMOUS = "anonymous"
    FEDERATED = "federated"
    SIGNUP = "signup"
    CHANGE_PASSWORD = "change_password"


# REST reason -> Firebase-style code
REST_ERROR_CODES: dict[str, str] = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "INVALID_IDP_RESPONSE": "auth/invalid-credential",
    "INVALID_EMAIL": "auth/invalid-email",
    "WEAK_PASSWORD": "auth/weak-password",
    "USER_DISABLED": "auth/user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "ADMIN_ONLY_OPERATION": "auth/admin-restricted-operation",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
    "TOKEN_EXPIRED": "auth/user-token-expired",
    "INVALID_ID_TOKEN": "auth/invalid-user-token",
    "USER_NOT_FOUND": "auth/user-not-found",
    "FEDERATED_USER_ID_ALREADY_LINKED": "auth/credential-already-in-use",
    "MISSING_OR_INVALID_NONCE": "auth/missing-or-invalid-nonce",
}

NETWORK_ERROR = "auth/network-request-failed"
POPUP_BLOCKED = "auth/popup-blocked"
POPUP_CLOSED = "auth/popup-closed-by-user"
ACCOUNT_EXISTS = "auth/account-exists-with-different-credential"
REQUIRES_RECENT_LOGIN = "auth/requires-recent-login"
NO_CURRENT_USER = "auth/no-current-user"
INTERNAL_ERROR = "auth/internal-error"

# Codes that make federated sign-in fall back from popup to redirect
POPUP_FALLBACK_CODES = frozenset({POPUP_BLOCKED, POPUP_CLOSED})


def code_from_rest_message(message: str) -> str:
    """
    Map a REST error message to a Firebase-style code.

    Messages look like "WEAK_PASSWORD : Password should be at least 6
    characters"; only the reason before the colon matters.
    """
    reason = message.split(":", 1)[0].strip()
    return REST_ERROR_CODES.get(reason, INTERNAL_ERROR)


_INVALID_LOGIN = "Invalid email or password."
_INVALID_EMAIL = "Invalid email format."

_MESSAGES: dict[AuthAction, dict[str, str]] = {
    AuthAction.LOGIN: {
        "auth/user-not-found": _INVALID_LOGIN,
        "auth/wrong-password": _INVALID_LOGIN,
        "auth/invalid-credential": _INVALID_LOGIN,
        "auth/invalid-email": _INVALID_EMAIL,
    },
    AuthAction.ANONYMOUS: {},
    AuthAction.FEDERATED: {
        NETWORK_ERROR: "Network error during Google Sign-In. Please check your connection.",
        ACCOUNT_EXISTS: (
            "An account already exists with the same email address "
            "but different sign-in credentials."
        ),
    },
    AuthAction.SIGNUP: {
        "auth/email-already-in-use": "This email is already registered.",
        "auth/invalid-email": _INVALID_EMAIL,
        "auth/weak-password": "Password is too weak.",
    },
    AuthAction.CHANGE_PASSWORD: {
        REQUIRES_RECENT_LOGIN: (
            "This operation is sensitive and requires recent authentication. "
            "Please log out and log back in to change your password."
        ),
        "auth/weak-password": "The new password is too weak.",
    },
}

_DEFAULT_MESSAGES: dict[AuthAction, str] = {
    AuthAction.LOGIN: "Failed to login. Please check your credentials.",
    AuthAction.ANONYMOUS: "Could not sign in anonymously.",
    AuthAction.FEDERATED: "Could not sign in with Google.",
    AuthAction.SIGNUP: "Failed to create account. Please try again.",
    AuthAction.CHANGE_PASSWORD: "Could not change password.",
}

_FAILURE_TITLES: dict[AuthAction, str] = {
    AuthAction.LOGIN: "Login Failed",
    AuthAction.ANONYMOUS: "Login Failed",
    AuthAction.FEDERATED: "Google Sign-In Failed",
    AuthAction.SIGNUP: "Signup Failed",
    AuthAction.CHANGE_PASSWORD: "Password Change Failed",
}


def user_facing_message(code: Optional[str], action: AuthAction) -> str:
    """The message shown to the user for a failed `action`."""
    return _MESSAGES[action].get(code or "", _DEFAULT_MESSAGES[action])


def failure_title(action: AuthAction) -> str:
    return _FAILURE_TITLES[action]

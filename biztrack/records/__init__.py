"""
Records Package

The authorization gate and the per-entity record books the income,
expenses and appointments pages are built on.
"""

from biztrack.records.authorization import (
    AuthorizationError,
    AuthorizationGate,
    NotAuthenticatedError,
    PermissionDeniedError,
)
from biztrack.records.book import (
    LABELS,
    AppointmentBook,
    BookLabels,
    RecordBook,
    SubmitOutcome,
)

__all__ = [
    "LABELS",
    "AppointmentBook",
    "AuthorizationError",
    "AuthorizationGate",
    "BookLabels",
    "NotAuthenticatedError",
    "PermissionDeniedError",
    "RecordBook",
    "SubmitOutcome",
]

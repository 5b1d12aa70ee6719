"""
Mutation Authorization Gate

Every create, update and delete passes through here before it is
dispatched. The rules:
1. Nothing is written without an authenticated viewer
2. Only the owner of a record may update or delete it

CRITICAL: The elevated role grants read visibility only. An admin's
records show up in everyone's aggregate views, and an admin sees other
admins' records, but nobody can change a record they don't own.
"""

from typing import Optional

import structlog

from biztrack.models import RecordMixin
from biztrack.services.auth import AuthSession


logger = structlog.get_logger(__name__)


class AuthorizationError(Exception):
    """Base exception for blocked mutations."""
    pass


class NotAuthenticatedError(AuthorizationError):
    """No viewer is signed in."""
    pass


class PermissionDeniedError(AuthorizationError):
    """The viewer does not own the target record."""

    def __init__(self, viewer_uid: str, record: RecordMixin):
        self.viewer_uid = viewer_uid
        self.record_id = record.id
        self.owner_id = record.owner_id
        super().__init__(
            f"Viewer {viewer_uid} cannot modify record {record.id} owned by {record.owner_id}"
        )


class AuthorizationGate:
    """Checks a viewer's right to write before anything reaches the store."""

    def ensure_can_create(self, viewer: Optional[AuthSession]) -> AuthSession:
        """
        Raises:
            NotAuthenticatedError: If no viewer is signed in
        """
        if viewer is None:
            raise NotAuthenticatedError("You must be logged in")
        return viewer

    def ensure_can_modify(
        self,
        viewer: Optional[AuthSession],
        record: RecordMixin,
    ) -> AuthSession:
        """
        Raises:
            NotAuthenticatedError: If no viewer is signed in
            PermissionDeniedError: If the viewer is not the record's owner
        """
        viewer = self.ensure_can_create(viewer)
        if record.owner_id != viewer.uid:
            logger.warning(
                "mutation_blocked",
                viewer_uid=viewer.uid,
                record_id=record.id,
                owner_id=record.owner_id,
            )
            raise PermissionDeniedError(viewer.uid, record)
        return viewer

"""
Audit Models for BizTrack

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of who changed which record
2. Debugging information when writes or listeners fail
3. A record of blocked (unauthorized) attempts

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Session
    SIGN_IN_STARTED = "sign_in_started"
    SIGN_IN_SUCCEEDED = "sign_in_succeeded"
    SIGN_IN_FAILED = "sign_in_failed"
    SIGN_UP_COMPLETED = "sign_up_completed"
    SIGN_UP_FAILED = "sign_up_failed"
    SIGNED_OUT = "signed_out"

    # Profile
    PROFILE_CREATED = "profile_created"
    PROFILE_UPDATED = "profile_updated"
    PASSWORD_CHANGED = "password_changed"

    # Records
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    MUTATION_FAILED = "mutation_failed"

    # Guards
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_FAILED = "validation_failed"

    # System events
    SUBSCRIPTION_ERROR = "subscription_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who did it
    actor_id: Optional[str] = Field(
        default=None,
        description="Auth uid of the viewer who triggered the event"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'incomes', 'profile', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one submit and its write)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Field map for the auditEvents collection."""
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "actorId": self.actor_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "correlationId": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "isUserAction": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_written(AuditEventType.RECORD_CREATED, uid, path, doc_id)
        event = AuditEventBuilder.permission_denied(uid, "delete", "expenses", doc_id, owner_id)
    """

    @staticmethod
    def sign_in_started(method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_STARTED,
            entity_type="session",
            description=f"Sign-in started ({method})",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def sign_in_succeeded(uid: str, is_anonymous: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_SUCCEEDED,
            actor_id=uid,
            entity_type="session",
            entity_id=uid,
            description="Viewer authenticated",
            details={"is_anonymous": is_anonymous},
        )

    @staticmethod
    def sign_in_failed(method: str, error_code: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description=f"Sign-in failed ({method})",
            error_code=error_code,
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def sign_up_completed(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_UP_COMPLETED,
            actor_id=uid,
            entity_type="session",
            entity_id=uid,
            description="Account created",
            is_user_action=True,
        )

    @staticmethod
    def sign_up_failed(error_code: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_UP_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description="Account creation failed",
            error_code=error_code,
            is_user_action=True,
        )

    @staticmethod
    def signed_out(uid: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            actor_id=uid,
            entity_type="session",
            entity_id=uid,
            description="Viewer signed out",
            is_user_action=True,
        )

    @staticmethod
    def profile_created(uid: str, synthesized: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_CREATED,
            actor_id=uid,
            entity_type="profile",
            entity_id=uid,
            description="User profile created",
            details={"synthesized": synthesized},
        )

    @staticmethod
    def profile_updated(uid: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            actor_id=uid,
            entity_type="profile",
            entity_id=uid,
            description="User profile updated",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def password_changed(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_CHANGED,
            actor_id=uid,
            entity_type="profile",
            entity_id=uid,
            description="Password changed",
            is_user_action=True,
        )

    @staticmethod
    def record_written(
        event_type: AuditEventType,
        uid: str,
        collection: str,
        doc_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = {
            AuditEventType.RECORD_CREATED: "created",
            AuditEventType.RECORD_UPDATED: "updated",
            AuditEventType.RECORD_DELETED: "deleted",
        }.get(event_type, "written")
        return AuditEvent(
            event_type=event_type,
            actor_id=uid,
            entity_type=collection,
            entity_id=doc_id,
            correlation_id=correlation_id,
            description=f"Record {verb} in {collection}",
            is_user_action=True,
        )

    @staticmethod
    def mutation_failed(
        uid: Optional[str],
        operation: str,
        path: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            actor_id=uid,
            entity_type="document",
            correlation_id=correlation_id,
            description=f"Write failed: {operation} {path}",
            error_message=error_message,
            details={"operation": operation, "path": path},
        )

    @staticmethod
    def permission_denied(
        uid: Optional[str],
        action: str,
        collection: str,
        doc_id: Optional[str],
        owner_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.WARNING,
            actor_id=uid,
            entity_type=collection,
            entity_id=doc_id,
            description=f"Blocked {action} on a record the viewer does not own",
            details={"action": action, "owner_id": owner_id},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        uid: Optional[str],
        form_name: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.INFO,
            actor_id=uid,
            entity_type="form",
            description=f"{form_name} rejected with {len(issues)} issues",
            details={"form": form_name, "issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def subscription_error(path: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="subscription",
            description=f"Listener failed for {path}",
            error_message=error_message,
            details={"path": path},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

"""
Audit Models for Finora

Every change to the user's financial records is logged for audit purposes.
This provides:
1. Traceability of every create, update and delete
2. Debugging information when a remote call fails
3. A record of exactly how far an account deletion got

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Record mutations
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    COLLECTION_REFRESHED = "collection_refreshed"

    # Failures
    VALIDATION_REJECTED = "validation_rejected"
    OPERATION_FAILED = "operation_failed"

    # Account deletion
    ACCOUNT_DELETION_STARTED = "account_deletion_started"
    ACCOUNT_DELETION_STEP_COMPLETED = "account_deletion_step_completed"
    ACCOUNT_DELETION_FAILED = "account_deletion_failed"
    ACCOUNT_DELETION_COMPLETED = "account_deletion_completed"


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

    # Who and what
    owner: Optional[str] = Field(
        default=None,
        description="Owner whose records were touched"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection of the record (e.g., 'transactions', 'goals')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all steps of one account deletion)"
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
            "owner": self.owner,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("transactions", record_id, owner)
        event = AuditEventBuilder.deletion_failed(owner, "goals", completed, error)
    """

    @staticmethod
    def record_created(
        collection: str,
        record_id: str,
        owner: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            owner=owner,
            entity_type=collection,
            entity_id=record_id,
            description=f"Created {collection} record {record_id}",
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        collection: str,
        record_id: str,
        owner: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            owner=owner,
            entity_type=collection,
            entity_id=record_id,
            description=f"Updated {collection} record {record_id}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        collection: str,
        record_id: str,
        owner: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            owner=owner,
            entity_type=collection,
            entity_id=record_id,
            description=f"Deleted {collection} record {record_id}",
            is_user_action=True,
        )

    @staticmethod
    def collection_refreshed(
        collection: str,
        owner: str,
        count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_REFRESHED,
            severity=AuditSeverity.DEBUG,
            owner=owner,
            entity_type=collection,
            description=f"Refreshed {collection}: {count} records",
            details={"count": count},
        )

    @staticmethod
    def validation_rejected(
        collection: str,
        issues: list[dict],
        owner: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            entity_type=collection,
            description=f"{collection} payload rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def operation_failed(
        operation: str,
        collection: str,
        error_type: str,
        error_message: str,
        owner: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.ERROR,
            owner=owner,
            entity_type=collection,
            entity_id=record_id,
            description=f"{operation} on {collection} failed: {error_type}",
            error_message=error_message,
            details={"operation": operation, "error_type": error_type},
        )

    @staticmethod
    def deletion_started(
        owner: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETION_STARTED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            correlation_id=correlation_id,
            description="Account deletion started",
            is_user_action=True,
        )

    @staticmethod
    def deletion_step_completed(
        owner: str,
        step: str,
        deleted_count: Optional[int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETION_STEP_COMPLETED,
            owner=owner,
            entity_type=step,
            correlation_id=correlation_id,
            description=f"Deleted all {step}",
            details={"deleted_count": deleted_count},
        )

    @staticmethod
    def deletion_failed(
        owner: str,
        failed_step: str,
        completed_steps: list[str],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETION_FAILED,
            severity=AuditSeverity.CRITICAL,
            owner=owner,
            entity_type=failed_step,
            correlation_id=correlation_id,
            description=f"Account deletion stopped at {failed_step}",
            error_message=error_message,
            details={
                "failed_step": failed_step,
                "completed_steps": completed_steps,
            },
        )

    @staticmethod
    def deletion_completed(
        owner: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETION_COMPLETED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            correlation_id=correlation_id,
            description="Account and all associated data deleted",
        )

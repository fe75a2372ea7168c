"""
Audit Logger

DESIGN DECISION: Every change to the user's records is logged.
This provides:
1. Traceability of creates, updates and deletes
2. Debugging capability when the record store fails
3. A trail showing how far an account deletion got

The audit logger:
- Is async to not block main flow
- Gracefully handles storage failures (a lost audit row never fails a write)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finora.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finora.models.validation import ValidationIssue
from finora.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. An audit store such as Google Sheets (when configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finora.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_created(self, collection: str, record_id: str, owner: str) -> None:
        await self.log(AuditEventBuilder.record_created(collection, record_id, owner))

    async def log_record_updated(
        self,
        collection: str,
        record_id: str,
        owner: str,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.record_updated(collection, record_id, owner, fields))

    async def log_record_deleted(self, collection: str, record_id: str, owner: str) -> None:
        await self.log(AuditEventBuilder.record_deleted(collection, record_id, owner))

    async def log_collection_refreshed(self, collection: str, owner: str, count: int) -> None:
        await self.log(AuditEventBuilder.collection_refreshed(collection, owner, count))

    async def log_validation_rejected(
        self,
        collection: str,
        issues: list[ValidationIssue],
        owner: Optional[str] = None,
    ) -> None:
        """Log a payload the validation layer refused."""
        event = AuditEventBuilder.validation_rejected(
            collection=collection,
            issues=[issue.model_dump() for issue in issues],
            owner=owner,
        )
        await self.log(event)

    async def log_operation_failed(
        self,
        operation: str,
        collection: str,
        error: Exception,
        owner: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        """Log a store operation that raised."""
        event = AuditEventBuilder.operation_failed(
            operation=operation,
            collection=collection,
            error_type=type(error).__name__,
            error_message=str(error),
            owner=owner,
            record_id=record_id,
        )
        await self.log(event)

    async def log_deletion_started(self, owner: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.deletion_started(owner, correlation_id))

    async def log_deletion_step(
        self,
        owner: str,
        step: str,
        deleted_count: Optional[int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.deletion_step_completed(
            owner, step, deleted_count, correlation_id
        ))

    async def log_deletion_failed(
        self,
        owner: str,
        failed_step: str,
        completed_steps: list[str],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log an account deletion that stopped partway."""
        event = AuditEventBuilder.deletion_failed(
            owner=owner,
            failed_step=failed_step,
            completed_steps=completed_steps,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_deletion_completed(self, owner: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.deletion_completed(owner, correlation_id))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., account deletion).
    Pass it through all subsequent operations.
    """
    return uuid4()

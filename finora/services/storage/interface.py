"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Talk to the hosted API in production
2. Keep records in Google Sheets for users without a hosted database
3. Use in-memory storage for testing
4. Keep the state container decoupled from storage implementation

Every method takes the owner explicitly. Implementations MUST NOT return
or touch records belonging to anyone else.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel

from finora.models.audit import AuditEvent
from finora.models.records import (
    RECORD_MODELS,
    Category,
    RecordCollection,
    TransactionKind,
)
from finora.models.validation import ValidationIssue


class RecordStoreInterface(ABC):
    """
    Abstract interface for the persistent record store.

    Records are pydantic models from finora.models.records; the concrete
    class for a collection is RECORD_MODELS[collection].
    """

    @abstractmethod
    async def list_records(
        self,
        collection: RecordCollection,
        owner: str,
        filters: Optional[dict[str, str]] = None,
    ) -> list[BaseModel]:
        """
        List every record of the owner in a collection.

        Args:
            collection: Which collection to read
            owner: The authenticated owner
            filters: Optional equality filters on wire field names
                     (e.g. {"type": "income"}, {"month": "2024-01-01"})

        Returns:
            Matching records in the store's order
        """
        pass

    @abstractmethod
    async def create_record(
        self,
        collection: RecordCollection,
        owner: str,
        payload: BaseModel,
    ) -> BaseModel:
        """
        Create a record from a validated input payload.

        Returns:
            The stored record, including its store-assigned id

        Raises:
            ValidationRejectedError: If the store rejects the payload
            RemoteFailureError: If the write fails
        """
        pass

    @abstractmethod
    async def get_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> BaseModel:
        """
        Fetch one record.

        Raises:
            NotFoundError: If the id is absent or owned by someone else
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
        changes: BaseModel,
    ) -> BaseModel:
        """
        Apply a partial update.

        Only fields set on `changes` are written.

        Returns:
            The record as stored after the update

        Raises:
            NotFoundError: If the id is absent or owned by someone else
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> None:
        """
        Delete one record.

        Deleting an id the owner does not have is not an error, matching
        the hosted store's row-level filtering.
        """
        pass

    @abstractmethod
    async def delete_owned_records(
        self,
        collection: RecordCollection,
        owner: str,
    ) -> Optional[int]:
        """
        Delete every record the owner has in a collection.

        Returns:
            Number of records deleted, or None if the backend does not report it
        """
        pass

    @abstractmethod
    async def list_categories(
        self,
        owner: str,
        kind: Optional[TransactionKind] = None,
    ) -> list[Category]:
        """
        List the categories budgets can refer to.

        Returns shared categories plus any the owner has, optionally only
        those of one kind. Categories are read-only for the client.
        """
        pass


class IdentityProviderInterface(ABC):
    """
    The hosted identity provider.

    Login, registration and password flows live entirely in the provider;
    this interface only exposes what the record layer needs.
    """

    @abstractmethod
    async def get_current_owner(self) -> str:
        """
        Identifier of the authenticated user.

        Raises:
            AuthorizationDeniedError: If there is no valid session
        """
        pass

    @abstractmethod
    async def verify_password(self, password: str) -> None:
        """
        Re-check the current user's password before a destructive action.

        Raises:
            AuthorizationDeniedError: If there is no session or the password is wrong
        """
        pass

    @abstractmethod
    async def delete_user(self, owner: str) -> None:
        """
        Remove the identity record itself.

        Callers must delete every owned record first.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class AuthorizationDeniedError(StorageError):
    """No valid session, or the session may not perform the operation."""
    pass


class ValidationRejectedError(StorageError):
    """
    A payload was rejected, either locally or by the store.

    issues lists every offending field; nothing was written.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class NotFoundError(StorageError):
    """Entity absent, or not owned by the caller."""
    pass


class RemoteFailureError(StorageError):
    """The store failed to process a request (server error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransportError(RemoteFailureError):
    """The request never got a response (network failure)."""
    pass


class PartialFailureError(StorageError):
    """
    A multi-step operation stopped partway.

    The completed steps are NOT rolled back.
    """

    def __init__(
        self,
        message: str,
        failed_step: str,
        completed_steps: list[str],
    ):
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        super().__init__(message)


def assign_new_record(
    collection: RecordCollection,
    owner: str,
    payload: BaseModel,
) -> BaseModel:
    """
    Build the stored form of a new record.

    Used by stores that assign ids themselves. Mirrors the hosted store:
    a fresh id, the owner, creation time, and for budgets a zero spent
    amount and the current month when none was given.
    """
    model_cls = RECORD_MODELS[collection]
    data = payload.model_dump(by_alias=True, exclude_none=True)
    data["id"] = str(uuid4())
    data["user_id"] = owner
    if collection == RecordCollection.BUDGETS:
        data.setdefault("month", date.today())
        data["current_amount"] = Decimal("0")
    if "created_at" in model_cls.model_fields:
        data["created_at"] = datetime.now(timezone.utc)
    return model_cls.model_validate(data)

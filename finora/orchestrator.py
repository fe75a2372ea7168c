"""
Main Orchestrator for Finora

This module ties together all the components and defines the flows that
span more than one collection:
1. Account deletion (transactions -> goals -> budgets -> accounts -> identity)
2. Application wiring (create_app_components)

DESIGN DECISION: Account deletion is ordered and fail-fast.
- Children are deleted before parents
- The first failing step stops the flow; nothing after it runs
- Completed steps are NOT rolled back
- The caller always learns exactly which steps completed
- The password is re-checked before the first delete

Every step is audited under one correlation id.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog

from finora.audit import AuditLogger, create_correlation_id
from finora.config import STORAGE_BACKENDS, get_settings, validate_all_settings
from finora.models.records import USER_DELETION_ORDER
from finora.models.state import FinanceState
from finora.models.validation import ValidationIssue
from finora.queries import SummaryQuery
from finora.services.storage import (
    AuthorizationDeniedError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    HttpApiClient,
    HttpIdentityProvider,
    HttpRecordStore,
    IdentityProviderInterface,
    InMemoryIdentityProvider,
    InMemoryRecordStore,
    PartialFailureError,
    RecordStoreInterface,
    StorageError,
    ValidationRejectedError,
)
from finora.state import FinanceStore, LocalSnapshotStore, PreferenceStore
from finora.validation import RecordValidator


logger = structlog.get_logger(__name__)


IDENTITY_STEP = "identity"


class AccountDeletionFlow:
    """
    Deletes a user and everything they own.

    Flow:
    1. Resolve the current owner
    2. Re-check the user's password (nothing is deleted if this fails)
    3. Delete all transactions
    4. Delete all goals
    5. Delete all budgets
    6. Delete all accounts
    7. Delete the identity record
    8. Clear the local cache

    Any failure in steps 3-7 raises PartialFailureError naming the failed
    step and the steps that completed before it.
    """

    def __init__(
        self,
        record_store: RecordStoreInterface,
        identity: IdentityProviderInterface,
        audit_logger: Optional[AuditLogger] = None,
        finance_store: Optional[FinanceStore] = None,
    ):
        self._store = record_store
        self._identity = identity
        self._audit_logger = audit_logger
        self._finance_store = finance_store

    async def _fail(
        self,
        owner: str,
        step: str,
        completed: list[str],
        error: StorageError,
        correlation_id: UUID,
    ) -> PartialFailureError:
        logger.error(
            "account_deletion_failed",
            owner=owner,
            failed_step=step,
            completed_steps=completed,
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_deletion_failed(
                owner=owner,
                failed_step=step,
                completed_steps=completed,
                error_message=str(error),
                correlation_id=correlation_id,
            )
        return PartialFailureError(
            f"Account deletion stopped at {step}: {error}",
            failed_step=step,
            completed_steps=completed,
        )

    async def delete_user(self, password: str) -> list[str]:
        """
        Delete every record of the current owner, then the owner.

        Args:
            password: The user's current password, checked before anything is deleted

        Returns:
            The completed steps, in order

        Raises:
            AuthorizationDeniedError: No session, or a wrong password (nothing deleted)
            ValidationRejectedError: No password given (nothing deleted)
            PartialFailureError: If a step failed after deletion began
        """
        owner = await self._identity.get_current_owner()
        if not password:
            raise ValidationRejectedError(
                "Password required for account deletion",
                issues=[ValidationIssue(
                    field="password",
                    issue_type="missing",
                    message="Password required for account deletion",
                    severity="error",
                )],
            )
        try:
            await self._identity.verify_password(password)
        except AuthorizationDeniedError:
            logger.warning("account_deletion_refused", owner=owner, reason="invalid_password")
            raise

        correlation_id = create_correlation_id()
        completed: list[str] = []

        if self._audit_logger:
            await self._audit_logger.log_deletion_started(owner, correlation_id)

        for collection in USER_DELETION_ORDER:
            step = collection.value
            try:
                deleted = await self._store.delete_owned_records(collection, owner)
            except StorageError as e:
                raise await self._fail(owner, step, completed, e, correlation_id) from e

            completed.append(step)
            logger.info("account_deletion_step", owner=owner, step=step, deleted=deleted)
            if self._audit_logger:
                await self._audit_logger.log_deletion_step(owner, step, deleted, correlation_id)

        try:
            await self._identity.delete_user(owner)
        except StorageError as e:
            raise await self._fail(owner, IDENTITY_STEP, completed, e, correlation_id) from e
        completed.append(IDENTITY_STEP)

        if self._audit_logger:
            await self._audit_logger.log_deletion_completed(owner, correlation_id)

        if self._finance_store:
            self._finance_store.reset()

        return completed


@dataclass
class AppComponents:
    """Everything a front end needs, built once per session."""

    record_store: RecordStoreInterface
    identity: IdentityProviderInterface
    validator: RecordValidator
    audit_logger: AuditLogger
    state: FinanceState
    finance_store: FinanceStore
    summary: SummaryQuery
    account_deletion: AccountDeletionFlow
    preferences: PreferenceStore


def create_app_components(
    backend: Optional[str] = None,
    owner: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "http", "google_sheets" or "memory". Read from settings if None.
        owner: Session owner for the memory backend. The other backends get
               the owner from the hosted identity provider.

    Returns:
        AppComponents wired around one fresh FinanceState

    Raises:
        ValueError: Unknown backend, or settings the backend needs are missing
    """
    app_settings = get_settings().app
    backend = backend or app_settings.storage_backend
    if backend not in STORAGE_BACKENDS:
        raise ValueError(f"Unknown storage backend: {backend}")

    status = validate_all_settings(backend)
    if not status["ready"]:
        errors = "; ".join(
            str(value) for key, value in status.items() if key.endswith("_error")
        )
        raise ValueError(f"Settings incomplete for the {backend} backend: {errors}")

    audit_logger = AuditLogger()  # Local-only logging unless Sheets is configured

    if backend == "memory":
        record_store: RecordStoreInterface = InMemoryRecordStore()
        identity: IdentityProviderInterface = InMemoryIdentityProvider(owner)
    elif backend == "http":
        record_store = HttpRecordStore(HttpApiClient())
        identity = HttpIdentityProvider()
    else:
        sheets_client = GoogleSheetsClient()
        record_store = GoogleSheetsRecordStore(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        # Sheets has no identity service; the hosted provider still owns sessions
        identity = HttpIdentityProvider()

    snapshot_store = (
        LocalSnapshotStore(app_settings.snapshot_path)
        if app_settings.snapshot_path
        else None
    )

    state = FinanceState()
    validator = RecordValidator(app_settings.strict_categories)
    finance_store = FinanceStore(
        state=state,
        record_store=record_store,
        identity=identity,
        validator=validator,
        audit_logger=audit_logger,
        snapshot_store=snapshot_store,
    )

    logger.info("app_components_created", backend=backend)

    return AppComponents(
        record_store=record_store,
        identity=identity,
        validator=validator,
        audit_logger=audit_logger,
        state=state,
        finance_store=finance_store,
        summary=SummaryQuery(state, app_settings),
        account_deletion=AccountDeletionFlow(
            record_store=record_store,
            identity=identity,
            audit_logger=audit_logger,
            finance_store=finance_store,
        ),
        preferences=PreferenceStore(
            app_settings.preferences_path,
            default_currency=app_settings.default_currency_symbol,
        ),
    )

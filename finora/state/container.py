"""
Client State Container

FinanceStore is the only writer of a FinanceState. Every operation follows
the same sequence:

    resolve owner -> validate payload -> remote write -> update cache -> return

DESIGN DECISION: The cache is changed only after the record store has
acknowledged the write. There are no optimistic updates, no merging and no
retries; when two operations race, the last acknowledgment wins. A failed
operation leaves the cache untouched, puts a readable message in
state.error and returns None (False for deletes).
"""

from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel

from finora.audit import AuditLogger
from finora.models.records import (
    Account,
    Budget,
    BudgetInput,
    Category,
    Goal,
    GoalUpdate,
    RecordCollection,
    Transaction,
    TransactionKind,
)
from finora.models.state import FinanceState
from finora.models.validation import ValidationIssue
from finora.services.storage import (
    IdentityProviderInterface,
    RecordStoreInterface,
    StorageError,
    TransportError,
    ValidationRejectedError,
)
from finora.state.persistence import LocalSnapshotStore
from finora.validation import RecordValidator


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Reference data, not an owned record collection
CATEGORIES = "categories"


def describe_error(error: StorageError) -> str:
    """Human-readable message for the state's error field."""
    message = str(error) or type(error).__name__
    if isinstance(error, TransportError):
        return f"Network error: {message}"
    return message


def _parse_kind(kind: Optional[str]) -> Optional[TransactionKind]:
    """Parse a kind filter. None and "all" mean no filter."""
    if kind in (None, "all"):
        return None
    try:
        return TransactionKind(kind)
    except ValueError:
        message = f"Unknown transaction type: {kind}"
        raise ValidationRejectedError(
            message,
            issues=[ValidationIssue(
                field="kind",
                issue_type="invalid_choice",
                message=message,
                severity="error",
                suggested_fix="Use income, expense or all",
            )],
        )


class FinanceStore:
    """
    Operations over an injected FinanceState.

    One instance per session. The state object is owned by the caller
    (normally the composition root) and can be read at any time.
    """

    def __init__(
        self,
        state: FinanceState,
        record_store: RecordStoreInterface,
        identity: IdentityProviderInterface,
        validator: RecordValidator,
        audit_logger: Optional[AuditLogger] = None,
        snapshot_store: Optional[LocalSnapshotStore] = None,
    ):
        self._state = state
        self._store = record_store
        self._identity = identity
        self._validator = validator
        self._audit_logger = audit_logger
        self._snapshot_store = snapshot_store

    @property
    def state(self) -> FinanceState:
        return self._state

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _collection(self, collection: RecordCollection) -> list:
        return getattr(self._state, collection.value)

    def _persist(self, owner: str) -> None:
        if self._snapshot_store is None:
            return
        try:
            self._snapshot_store.save(self._state, owner)
        except OSError as e:
            # The cache is already updated; a stale snapshot is refreshed on next fetch
            logger.warning("snapshot_save_failed", error=str(e))

    async def _run(
        self,
        operation: str,
        collection: str,
        work: Callable[[str], Awaitable[T]],
        record_id: Optional[str] = None,
    ) -> Optional[T]:
        """
        Run one operation with the shared loading/error contract.

        `work` receives the owner and does validate -> write -> cache.
        Returns its result, or None if any storage error was raised.
        """
        self._state.is_loading = True
        self._state.error = None
        owner: Optional[str] = None
        try:
            owner = await self._identity.get_current_owner()
            result = await work(owner)
        except StorageError as e:
            self._state.error = describe_error(e)
            logger.warning(
                "operation_failed",
                operation=operation,
                collection=collection,
                record_id=record_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            if self._audit_logger:
                if isinstance(e, ValidationRejectedError):
                    await self._audit_logger.log_validation_rejected(
                        collection, e.issues, owner
                    )
                else:
                    await self._audit_logger.log_operation_failed(
                        operation, collection, e, owner, record_id
                    )
            return None
        finally:
            self._state.is_loading = False

        self._persist(owner)
        return result

    async def _create(
        self,
        collection: RecordCollection,
        payload: BaseModel,
        owner: str,
    ) -> Any:
        record = await self._store.create_record(collection, owner, payload)
        self._collection(collection).append(record)
        if self._audit_logger:
            await self._audit_logger.log_record_created(collection.value, record.id, owner)
        return record

    async def _update(
        self,
        collection: RecordCollection,
        record_id: str,
        changes: BaseModel,
        owner: str,
    ) -> Any:
        record = await self._store.update_record(collection, owner, record_id, changes)
        # Replace by id; a record that was never fetched stays out of the cache
        cached = self._collection(collection)
        for index, existing in enumerate(cached):
            if existing.id == record_id:
                cached[index] = record
                break
        if self._audit_logger:
            await self._audit_logger.log_record_updated(
                collection.value, record_id, owner, sorted(changes.model_fields_set)
            )
        return record

    async def _delete(
        self,
        collection: RecordCollection,
        record_id: str,
        owner: str,
    ) -> bool:
        await self._store.delete_record(collection, owner, record_id)
        setattr(
            self._state,
            collection.value,
            [r for r in self._collection(collection) if r.id != record_id],
        )
        if self._audit_logger:
            await self._audit_logger.log_record_deleted(collection.value, record_id, owner)
        return True

    async def _fetch(
        self,
        collection: RecordCollection,
        owner: str,
        filters: Optional[dict[str, str]] = None,
    ) -> list:
        records = await self._store.list_records(collection, owner, filters)
        setattr(self._state, collection.value, list(records))
        if self._audit_logger:
            await self._audit_logger.log_collection_refreshed(
                collection.value, owner, len(records)
            )
        return list(records)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(self, payload: dict) -> Optional[Transaction]:
        async def work(owner: str) -> Transaction:
            data = self._validator.validate_transaction(payload)
            return await self._create(RecordCollection.TRANSACTIONS, data, owner)

        return await self._run("add", RecordCollection.TRANSACTIONS.value, work)

    async def update_transaction(self, transaction_id: str, payload: dict) -> Optional[Transaction]:
        async def work(owner: str) -> Transaction:
            changes = self._validator.validate_transaction(payload, partial=True)
            return await self._update(RecordCollection.TRANSACTIONS, transaction_id, changes, owner)

        return await self._run("update", RecordCollection.TRANSACTIONS.value, work, transaction_id)

    async def delete_transaction(self, transaction_id: str) -> bool:
        async def work(owner: str) -> bool:
            return await self._delete(RecordCollection.TRANSACTIONS, transaction_id, owner)

        result = await self._run("delete", RecordCollection.TRANSACTIONS.value, work, transaction_id)
        return bool(result)

    async def fetch_transactions(self, kind: Optional[str] = None) -> Optional[list[Transaction]]:
        """
        Replace the cached transactions with the store's.

        Args:
            kind: "income" or "expense" to filter; None or "all" for everything
        """
        async def work(owner: str) -> list[Transaction]:
            parsed = _parse_kind(kind)
            filters = {"type": parsed.value} if parsed else None
            return await self._fetch(RecordCollection.TRANSACTIONS, owner, filters)

        return await self._run("fetch", RecordCollection.TRANSACTIONS.value, work)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def add_goal(self, payload: dict) -> Optional[Goal]:
        async def work(owner: str) -> Goal:
            data = self._validator.validate_goal(payload)
            return await self._create(RecordCollection.GOALS, data, owner)

        return await self._run("add", RecordCollection.GOALS.value, work)

    async def update_goal(self, goal_id: str, payload: dict) -> Optional[Goal]:
        async def work(owner: str) -> Goal:
            changes = self._validator.validate_goal(payload, partial=True)
            return await self._update(RecordCollection.GOALS, goal_id, changes, owner)

        return await self._run("update", RecordCollection.GOALS.value, work, goal_id)

    async def delete_goal(self, goal_id: str) -> bool:
        async def work(owner: str) -> bool:
            return await self._delete(RecordCollection.GOALS, goal_id, owner)

        return bool(await self._run("delete", RecordCollection.GOALS.value, work, goal_id))

    async def fetch_goals(self) -> Optional[list[Goal]]:
        async def work(owner: str) -> list[Goal]:
            return await self._fetch(RecordCollection.GOALS, owner)

        return await self._run("fetch", RecordCollection.GOALS.value, work)

    async def contribute_to_goal(self, goal_id: str, amount: Any) -> Optional[Goal]:
        """
        Add money to a goal's saved amount.

        Reads the goal from the store first so the increment applies to the
        stored amount, not to a possibly stale cached one.
        """
        async def work(owner: str) -> Goal:
            contribution = self._validator.validate_contribution(amount)
            goal = await self._store.get_record(RecordCollection.GOALS, owner, goal_id)
            changes = GoalUpdate(current_amount=goal.current_amount + contribution)
            return await self._update(RecordCollection.GOALS, goal_id, changes, owner)

        return await self._run("contribute", RecordCollection.GOALS.value, work, goal_id)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def _check_category_ref(self, budget: BudgetInput) -> None:
        """Once categories are loaded, a budget must point at one of them."""
        known = {category.id for category in self._state.categories}
        if known and budget.category_ref not in known:
            message = f"Unknown category: {budget.category_ref}"
            raise ValidationRejectedError(
                message,
                issues=[ValidationIssue(
                    field="category_ref",
                    issue_type="unknown_category",
                    message=message,
                    severity="error",
                    suggested_fix="Pick a category from the category list",
                )],
            )

    async def add_budget(self, payload: dict) -> Optional[Budget]:
        async def work(owner: str) -> Budget:
            data = self._validator.validate_budget(payload)
            self._check_category_ref(data)
            return await self._create(RecordCollection.BUDGETS, data, owner)

        return await self._run("add", RecordCollection.BUDGETS.value, work)

    async def update_budget(self, budget_id: str, payload: dict) -> Optional[Budget]:
        async def work(owner: str) -> Budget:
            changes = self._validator.validate_budget(payload, partial=True)
            return await self._update(RecordCollection.BUDGETS, budget_id, changes, owner)

        return await self._run("update", RecordCollection.BUDGETS.value, work, budget_id)

    async def delete_budget(self, budget_id: str) -> bool:
        async def work(owner: str) -> bool:
            return await self._delete(RecordCollection.BUDGETS, budget_id, owner)

        return bool(await self._run("delete", RecordCollection.BUDGETS.value, work, budget_id))

    async def fetch_budgets(self, month: Optional[date] = None) -> Optional[list[Budget]]:
        """Replace the cached budgets, optionally only those of one month."""
        async def work(owner: str) -> list[Budget]:
            filters = {"month": month.replace(day=1).isoformat()} if month else None
            return await self._fetch(RecordCollection.BUDGETS, owner, filters)

        return await self._run("fetch", RecordCollection.BUDGETS.value, work)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def add_account(self, payload: dict) -> Optional[Account]:
        async def work(owner: str) -> Account:
            data = self._validator.validate_account(payload)
            return await self._create(RecordCollection.ACCOUNTS, data, owner)

        return await self._run("add", RecordCollection.ACCOUNTS.value, work)

    async def fetch_accounts(self) -> Optional[list[Account]]:
        async def work(owner: str) -> list[Account]:
            return await self._fetch(RecordCollection.ACCOUNTS, owner)

        return await self._run("fetch", RecordCollection.ACCOUNTS.value, work)

    # -------------------------------------------------------------------------
    # Categories (read-only)
    # -------------------------------------------------------------------------

    async def fetch_categories(self, kind: Optional[str] = None) -> Optional[list[Category]]:
        """
        Replace the cached categories with the store's.

        Args:
            kind: "income" or "expense" to filter; None or "all" for everything
        """
        async def work(owner: str) -> list[Category]:
            categories = await self._store.list_categories(owner, _parse_kind(kind))
            self._state.categories = list(categories)
            if self._audit_logger:
                await self._audit_logger.log_collection_refreshed(
                    CATEGORIES, owner, len(categories)
                )
            return list(categories)

        return await self._run("fetch", CATEGORIES, work)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def refresh_all(self) -> bool:
        """Fetch every collection. Stops at the first failure."""
        for fetch in (
            self.fetch_transactions,
            self.fetch_goals,
            self.fetch_budgets,
            self.fetch_accounts,
            self.fetch_categories,
        ):
            if await fetch() is None:
                return False
        return True

    async def restore_snapshot(self) -> bool:
        """
        Load the current owner's last local snapshot into the state.

        Returns False when there is no snapshot store, no session, or no
        usable snapshot for this owner. A snapshot written for anyone else
        is never loaded.
        """
        if self._snapshot_store is None:
            return False
        try:
            owner = await self._identity.get_current_owner()
        except StorageError as e:
            logger.info("snapshot_not_restored", reason=str(e))
            return False

        snapshot = self._snapshot_store.load(owner)
        if snapshot is None:
            return False
        for collection in RecordCollection:
            records = getattr(snapshot, collection.value)
            setattr(self._state, collection.value, [r for r in records if r.owner == owner])
        self._state.categories = [c for c in snapshot.categories if c.visible_to(owner)]
        return True

    def clear_error(self) -> None:
        self._state.error = None

    def reset(self) -> None:
        """Forget every cached record (after sign-out or account deletion)."""
        for collection in RecordCollection:
            setattr(self._state, collection.value, [])
        self._state.categories = []
        self._state.is_loading = False
        self._state.error = None
        if self._snapshot_store is not None:
            try:
                self._snapshot_store.clear()
            except OSError as e:
                logger.warning("snapshot_clear_failed", error=str(e))

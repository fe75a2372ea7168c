"""
Tests for the client state container.

The record store is the in-memory implementation, optionally wrapped to
fail on demand. Async operations are driven with asyncio.run.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from finora.audit import AuditLogger
from finora.models.audit import AuditEventType
from finora.models.records import Category, RecordCollection, TransactionKind
from finora.models.state import FinanceState
from finora.services.storage import (
    AuditStorageInterface,
    InMemoryIdentityProvider,
    InMemoryRecordStore,
    NotFoundError,
    RemoteFailureError,
    TransportError,
)
from finora.state import FinanceStore, LocalSnapshotStore
from finora.validation import RecordValidator


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store that raises a chosen error for chosen operations."""

    def __init__(self):
        super().__init__()
        self.failures: dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def create_record(self, collection, owner, payload):
        self._maybe_fail("create")
        return await super().create_record(collection, owner, payload)

    async def update_record(self, collection, owner, record_id, changes):
        self._maybe_fail("update")
        return await super().update_record(collection, owner, record_id, changes)

    async def delete_record(self, collection, owner, record_id):
        self._maybe_fail("delete")
        return await super().delete_record(collection, owner, record_id)

    async def list_records(self, collection, owner, filters=None):
        self._maybe_fail("list")
        return await super().list_records(collection, owner, filters)


class RecordingAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list."""

    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True

    async def get_recent_events(self, limit=100):
        return list(reversed(self.events))[:limit]


@pytest.fixture
def record_store():
    return FlakyRecordStore()


@pytest.fixture
def audit_storage():
    return RecordingAuditStorage()


@pytest.fixture
def finance_store(record_store, audit_storage):
    return FinanceStore(
        state=FinanceState(),
        record_store=record_store,
        identity=InMemoryIdentityProvider("user-1"),
        validator=RecordValidator(strict_categories=False),
        audit_logger=AuditLogger(audit_storage),
    )


def expense(amount=1500, category="Food", on="2024-03-14") -> dict:
    return {"type": "expense", "category": category, "amount": amount, "date": on}


class TestTransactions:
    """Tests for transaction operations."""

    def test_add_appends_after_ack(self, finance_store):
        """The stored record, with its id, is appended to the cache."""
        created = asyncio.run(finance_store.add_transaction(expense()))
        assert created is not None
        assert created.id
        assert created.owner == "user-1"
        assert finance_store.state.transactions == [created]
        assert finance_store.state.is_loading is False
        assert finance_store.state.error is None

    def test_invalid_payload_not_sent(self, finance_store, record_store):
        """Validation failures never reach the store."""
        result = asyncio.run(finance_store.add_transaction(expense(amount=0)))
        assert result is None
        assert finance_store.state.transactions == []
        assert finance_store.state.error
        assert asyncio.run(record_store.list_records(RecordCollection.TRANSACTIONS, "user-1")) == []

    def test_remote_failure_leaves_cache(self, finance_store, record_store):
        """A failed write changes nothing locally."""
        asyncio.run(finance_store.add_transaction(expense()))
        before = list(finance_store.state.transactions)

        record_store.failures["create"] = RemoteFailureError("Internal server error", 500)
        result = asyncio.run(finance_store.add_transaction(expense(amount=99)))

        assert result is None
        assert finance_store.state.transactions == before
        assert finance_store.state.error == "Internal server error"
        assert finance_store.state.is_loading is False

    def test_transport_failure_message(self, finance_store, record_store):
        """Network errors are labelled as such."""
        record_store.failures["list"] = TransportError("connection reset")
        assert asyncio.run(finance_store.fetch_transactions()) is None
        assert finance_store.state.error == "Network error: connection reset"

    def test_unauthorized(self, record_store):
        """Without a session nothing is written."""
        store = FinanceStore(
            state=FinanceState(),
            record_store=record_store,
            identity=InMemoryIdentityProvider(None),
            validator=RecordValidator(strict_categories=False),
        )
        assert asyncio.run(store.add_transaction(expense())) is None
        assert store.state.error == "Unauthorized"
        assert store.state.transactions == []

    def test_update_replaces_by_id(self, finance_store):
        """The acknowledged record replaces the cached one in place."""
        first = asyncio.run(finance_store.add_transaction(expense(amount=10)))
        second = asyncio.run(finance_store.add_transaction(expense(amount=20)))

        updated = asyncio.run(finance_store.update_transaction(first.id, {"amount": 15}))

        assert updated.amount == Decimal("15")
        assert updated.category == "Food"
        assert [t.id for t in finance_store.state.transactions] == [first.id, second.id]
        assert finance_store.state.transactions[0].amount == Decimal("15")

    def test_update_unknown_id(self, finance_store):
        """Updating a missing record fails with a message."""
        assert asyncio.run(finance_store.update_transaction("nope", {"amount": 15})) is None
        assert "not found" in finance_store.state.error

    def test_update_uncached_record_not_appended(self, finance_store, record_store):
        """An update acknowledged for a record never fetched leaves the cache alone."""
        stored = asyncio.run(record_store.create_record(
            RecordCollection.TRANSACTIONS,
            "user-1",
            RecordValidator(strict_categories=False).validate_transaction(expense()),
        ))
        updated = asyncio.run(finance_store.update_transaction(stored.id, {"amount": 15}))

        assert updated.amount == Decimal("15")
        assert finance_store.state.transactions == []

    def test_update_clears_note(self, finance_store):
        """An explicit None clears the note; other fields keep their values."""
        created = asyncio.run(finance_store.add_transaction({**expense(), "note": "lunch"}))
        updated = asyncio.run(finance_store.update_transaction(created.id, {"note": None}))

        assert updated.note is None
        assert updated.amount == created.amount
        assert finance_store.state.transactions[0].note is None

    def test_update_cannot_clear_amount(self, finance_store):
        created = asyncio.run(finance_store.add_transaction(expense()))
        assert asyncio.run(finance_store.update_transaction(created.id, {"amount": None})) is None
        assert finance_store.state.error
        assert finance_store.state.transactions == [created]

    def test_delete_removes_by_id(self, finance_store):
        created = asyncio.run(finance_store.add_transaction(expense()))
        assert asyncio.run(finance_store.delete_transaction(created.id)) is True
        assert finance_store.state.transactions == []

    def test_delete_failure_returns_false(self, finance_store, record_store):
        """A failed delete keeps the record cached."""
        created = asyncio.run(finance_store.add_transaction(expense()))
        record_store.failures["delete"] = RemoteFailureError("down", 503)
        assert asyncio.run(finance_store.delete_transaction(created.id)) is False
        assert finance_store.state.transactions == [created]

    def test_fetch_replaces_collection(self, finance_store, record_store):
        """Fetch discards the cache and takes the store's list."""
        asyncio.run(finance_store.add_transaction(expense()))
        finance_store.state.transactions = []

        fetched = asyncio.run(finance_store.fetch_transactions())
        assert len(fetched) == 1
        assert finance_store.state.transactions == fetched

    def test_fetch_by_kind(self, finance_store):
        """'all' and None both mean no filter."""
        asyncio.run(finance_store.add_transaction(expense()))
        asyncio.run(finance_store.add_transaction(
            {"type": "income", "category": "Salary", "amount": 1000, "date": "2024-03-01"}
        ))

        assert len(asyncio.run(finance_store.fetch_transactions("income"))) == 1
        assert len(asyncio.run(finance_store.fetch_transactions("all"))) == 2
        assert len(asyncio.run(finance_store.fetch_transactions())) == 2

    def test_fetch_unknown_kind(self, finance_store):
        assert asyncio.run(finance_store.fetch_transactions("transfer")) is None
        assert "Unknown transaction type" in finance_store.state.error

    def test_clear_error(self, finance_store):
        asyncio.run(finance_store.add_transaction(expense(amount=-1)))
        assert finance_store.state.error
        finance_store.clear_error()
        assert finance_store.state.error is None

    def test_owner_scoping(self, record_store):
        """Another owner never sees or touches the first owner's records."""
        validator = RecordValidator(strict_categories=False)
        alice = FinanceStore(FinanceState(), record_store, InMemoryIdentityProvider("alice"), validator)
        bob = FinanceStore(FinanceState(), record_store, InMemoryIdentityProvider("bob"), validator)

        created = asyncio.run(alice.add_transaction(expense()))

        assert asyncio.run(bob.fetch_transactions()) == []
        assert asyncio.run(bob.update_transaction(created.id, {"amount": 1})) is None
        asyncio.run(bob.delete_transaction(created.id))
        assert len(asyncio.run(alice.fetch_transactions())) == 1


class TestGoalsBudgetsAccounts:
    """Tests for the other collections."""

    def test_goal_lifecycle(self, finance_store):
        goal = asyncio.run(finance_store.add_goal(
            {"title": "Laptop", "target_amount": 500000, "deadline": "2024-12-31"}
        ))
        assert goal.current_amount == Decimal("0")

        updated = asyncio.run(finance_store.update_goal(goal.id, {"title": "New laptop"}))
        assert updated.title == "New laptop"

        assert asyncio.run(finance_store.delete_goal(goal.id)) is True
        assert finance_store.state.goals == []

    def test_contribute_to_goal(self, finance_store):
        """Contributions add to the stored amount."""
        goal = asyncio.run(finance_store.add_goal(
            {"title": "Trip", "target_amount": 1000, "current_amount": 100, "deadline": "2024-12-31"}
        ))
        asyncio.run(finance_store.contribute_to_goal(goal.id, 250))
        result = asyncio.run(finance_store.contribute_to_goal(goal.id, 50))

        assert result.current_amount == Decimal("400")
        assert finance_store.state.goals[0].current_amount == Decimal("400")

    def test_contribute_rejects_non_positive(self, finance_store):
        goal = asyncio.run(finance_store.add_goal(
            {"title": "Trip", "target_amount": 1000, "deadline": "2024-12-31"}
        ))
        assert asyncio.run(finance_store.contribute_to_goal(goal.id, 0)) is None
        assert finance_store.state.goals[0].current_amount == Decimal("0")

    def test_contribute_to_missing_goal(self, finance_store):
        assert asyncio.run(finance_store.contribute_to_goal("missing", 10)) is None
        assert finance_store.state.error

    def test_budget_defaults(self, finance_store):
        """New budgets start unspent in the current month."""
        budget = asyncio.run(finance_store.add_budget({"category_ref": "Food", "limit_amount": 20000}))
        assert budget.current_amount == Decimal("0")
        assert budget.month == date.today().replace(day=1)

    def test_fetch_budgets_by_month(self, finance_store):
        asyncio.run(finance_store.add_budget(
            {"category_ref": "Food", "limit_amount": 100, "month": "2024-01-01"}
        ))
        asyncio.run(finance_store.add_budget(
            {"category_ref": "Food", "limit_amount": 100, "month": "2024-02-01"}
        ))

        january = asyncio.run(finance_store.fetch_budgets(month=date(2024, 1, 15)))
        assert len(january) == 1
        assert january[0].month == date(2024, 1, 1)

    def test_update_budget_spent(self, finance_store):
        budget = asyncio.run(finance_store.add_budget({"category_ref": "Food", "limit_amount": 100}))
        updated = asyncio.run(finance_store.update_budget(budget.id, {"current_amount": 40}))
        assert updated.current_amount == Decimal("40")

    def test_accounts(self, finance_store):
        account = asyncio.run(finance_store.add_account({"name": "Wallet", "balance": 500}))
        assert account.balance == Decimal("500")
        assert asyncio.run(finance_store.fetch_accounts()) == [account]

    def test_refresh_all(self, finance_store):
        asyncio.run(finance_store.add_account({"name": "Wallet"}))
        finance_store.reset()
        assert asyncio.run(finance_store.refresh_all()) is True
        assert len(finance_store.state.accounts) == 1
        assert finance_store.state.categories

    def test_reset(self, finance_store):
        asyncio.run(finance_store.add_transaction(expense()))
        asyncio.run(finance_store.add_goal({"title": "T", "target_amount": 1, "deadline": "2024-01-01"}))
        asyncio.run(finance_store.fetch_categories())
        finance_store.reset()
        assert finance_store.state.transactions == []
        assert finance_store.state.goals == []
        assert finance_store.state.categories == []


class TestCategories:
    """Tests for the read-only category list."""

    def test_fetch_categories(self, finance_store):
        categories = asyncio.run(finance_store.fetch_categories())
        assert len(categories) == 12
        assert finance_store.state.categories == categories

    def test_fetch_categories_by_kind(self, finance_store):
        income = asyncio.run(finance_store.fetch_categories("income"))
        assert {c.name for c in income} == {"Salary", "Freelance", "Investment", "Bonus", "Other"}
        assert all(c.kind == TransactionKind.INCOME for c in income)

    def test_fetch_categories_unknown_kind(self, finance_store):
        assert asyncio.run(finance_store.fetch_categories("transfer")) is None
        assert "Unknown transaction type" in finance_store.state.error

    def test_other_owners_categories_hidden(self):
        """Shared categories and the caller's own are listed; nobody else's."""
        store = FinanceStore(
            FinanceState(),
            InMemoryRecordStore(categories=[
                Category(id="shared", name="Rent", kind=TransactionKind.EXPENSE),
                Category(id="mine", owner="user-1", name="Pets", kind=TransactionKind.EXPENSE),
                Category(id="theirs", owner="user-2", name="Boat", kind=TransactionKind.EXPENSE),
            ]),
            InMemoryIdentityProvider("user-1"),
            RecordValidator(strict_categories=False),
        )
        categories = asyncio.run(store.fetch_categories())
        assert [c.id for c in categories] == ["shared", "mine"]

    def test_budget_needs_known_category(self, finance_store):
        """Once categories are loaded, a budget must reference one of them."""
        asyncio.run(finance_store.fetch_categories())

        assert asyncio.run(finance_store.add_budget(
            {"category_ref": "no-such-category", "limit_amount": 100}
        )) is None
        assert "Unknown category" in finance_store.state.error

        budget = asyncio.run(finance_store.add_budget(
            {"category_ref": "expense-food", "limit_amount": 100}
        ))
        assert budget.category_ref == "expense-food"


class TestAuditTrail:
    """Tests for audit events emitted by the container."""

    def test_success_events(self, finance_store, audit_storage):
        created = asyncio.run(finance_store.add_transaction(expense()))
        asyncio.run(finance_store.delete_transaction(created.id))

        types = [e.event_type for e in audit_storage.events]
        assert types == [AuditEventType.RECORD_CREATED, AuditEventType.RECORD_DELETED]
        assert audit_storage.events[0].entity_id == created.id

    def test_validation_rejection_audited(self, finance_store, audit_storage):
        asyncio.run(finance_store.add_goal({"title": "", "target_amount": 0, "deadline": "2024-01-01"}))
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.VALIDATION_REJECTED
        assert {i["field"] for i in event.details["issues"]} == {"title", "target_amount"}

    def test_failure_audited(self, finance_store, record_store, audit_storage):
        record_store.failures["list"] = NotFoundError("gone")
        asyncio.run(finance_store.fetch_goals())
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.OPERATION_FAILED
        assert event.details["error_type"] == "NotFoundError"


class TestSnapshots:
    """Tests for local snapshot persistence."""

    def test_snapshot_written_after_change(self, record_store, tmp_path):
        snapshot = LocalSnapshotStore(tmp_path / "state.json")
        store = FinanceStore(
            state=FinanceState(),
            record_store=record_store,
            identity=InMemoryIdentityProvider("user-1"),
            validator=RecordValidator(strict_categories=False),
            snapshot_store=snapshot,
        )
        created = asyncio.run(store.add_transaction(expense()))

        saved = snapshot.load("user-1")
        assert [t.id for t in saved.transactions] == [created.id]
        assert saved.is_loading is False

    def test_restore_snapshot(self, record_store, tmp_path):
        snapshot = LocalSnapshotStore(tmp_path / "state.json")
        original = FinanceStore(
            FinanceState(),
            record_store,
            InMemoryIdentityProvider("user-1"),
            RecordValidator(strict_categories=False),
            snapshot_store=snapshot,
        )
        asyncio.run(original.add_account({"name": "Wallet", "balance": 10}))

        restored = FinanceStore(
            FinanceState(),
            record_store,
            InMemoryIdentityProvider("user-1"),
            RecordValidator(strict_categories=False),
            snapshot_store=snapshot,
        )
        assert asyncio.run(restored.restore_snapshot()) is True
        assert restored.state.accounts[0].name == "Wallet"
        assert restored.state.accounts[0].balance == Decimal("10")

    def test_reset_clears_snapshot(self, record_store, tmp_path):
        snapshot = LocalSnapshotStore(tmp_path / "state.json")
        store = FinanceStore(
            FinanceState(),
            record_store,
            InMemoryIdentityProvider("user-1"),
            RecordValidator(strict_categories=False),
            snapshot_store=snapshot,
        )
        asyncio.run(store.add_account({"name": "Wallet"}))
        store.reset()
        assert snapshot.load("user-1") is None
        assert asyncio.run(store.restore_snapshot()) is False

    def test_snapshot_not_restored_for_other_owner(self, record_store, tmp_path):
        """A snapshot saved by one user is never shown to another."""
        snapshot = LocalSnapshotStore(tmp_path / "state.json")
        validator = RecordValidator(strict_categories=False)
        alice = FinanceStore(
            FinanceState(), record_store, InMemoryIdentityProvider("alice"), validator,
            snapshot_store=snapshot,
        )
        asyncio.run(alice.add_transaction(expense()))

        bob = FinanceStore(
            FinanceState(), record_store, InMemoryIdentityProvider("bob"), validator,
            snapshot_store=snapshot,
        )
        assert asyncio.run(bob.restore_snapshot()) is False
        assert bob.state.transactions == []
        assert snapshot.load("bob") is None

    def test_restore_needs_session(self, record_store, tmp_path):
        snapshot = LocalSnapshotStore(tmp_path / "state.json")
        store = FinanceStore(
            FinanceState(), record_store, InMemoryIdentityProvider(None),
            RecordValidator(strict_categories=False), snapshot_store=snapshot,
        )
        assert asyncio.run(store.restore_snapshot()) is False

    def test_undecodable_snapshot_ignored(self, record_store, tmp_path):
        """Bytes that are not UTF-8 are treated like a missing snapshot."""
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        store = FinanceStore(
            FinanceState(), record_store, InMemoryIdentityProvider("user-1"),
            RecordValidator(strict_categories=False), snapshot_store=LocalSnapshotStore(path),
        )
        assert asyncio.run(store.restore_snapshot()) is False
        assert store.state.transactions == []

    def test_invalid_snapshot_json_ignored(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        assert LocalSnapshotStore(path).load("user-1") is None


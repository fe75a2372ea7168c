"""
Core Data Models for Finora

These models define the strict schemas for every record the client
exchanges with the record store. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage, the HTTP surface and logging
4. Keep every record tied to exactly one owner

DESIGN DECISION: Field names are Pythonic; the record store's column names
(user_id, type, date, category_id) are declared as aliases. Dump with
by_alias=True when talking to the store.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)


# Amounts are exact decimals in Python and plain JSON numbers on the wire
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Whether a transaction adds to or takes from the balance."""
    INCOME = "income"
    EXPENSE = "expense"


class RecordCollection(str, Enum):
    """
    Collections exposed by the record store.

    The order of deletion for a user is fixed by USER_DELETION_ORDER below,
    not by the order of this enum.
    """
    TRANSACTIONS = "transactions"
    GOALS = "goals"
    BUDGETS = "budgets"
    ACCOUNTS = "accounts"


# Children before parents
USER_DELETION_ORDER = (
    RecordCollection.TRANSACTIONS,
    RecordCollection.GOALS,
    RecordCollection.BUDGETS,
    RecordCollection.ACCOUNTS,
)


# Suggested labels offered by the input forms. Storage accepts any label.
SUGGESTED_CATEGORIES: dict[TransactionKind, tuple[str, ...]] = {
    TransactionKind.INCOME: ("Salary", "Freelance", "Investment", "Bonus", "Other"),
    TransactionKind.EXPENSE: (
        "Food",
        "Transport",
        "Utilities",
        "Entertainment",
        "Shopping",
        "Health",
        "Other",
    ),
}


class _StoreModel(BaseModel):
    """Shared configuration for everything that crosses the store boundary."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump using the record store's field names, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# STORED RECORDS
# =============================================================================

class Transaction(_StoreModel):
    """
    A single income or expense entry.

    The id is assigned by the store and never changes.
    """

    id: str = Field(..., min_length=1, description="Opaque record identifier")
    owner: str = Field(..., alias="user_id", min_length=1)
    kind: TransactionKind = Field(..., alias="type")
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Free-form category label"
    )
    amount: Money = Field(..., gt=0, description="Always positive; kind gives the sign")
    occurred_on: date = Field(..., alias="date")
    note: Optional[str] = Field(default=None, max_length=1000)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def signed_amount(self) -> Decimal:
        """Amount with income positive and expense negative."""
        if self.kind == TransactionKind.INCOME:
            return self.amount
        return -self.amount


class Goal(_StoreModel):
    """
    A savings goal.

    current_amount may exceed target_amount; progress is capped only
    when it is displayed.
    """

    id: str = Field(..., min_length=1)
    owner: str = Field(..., alias="user_id", min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0"), ge=0)
    deadline: date
    created_at: Optional[datetime] = None


class Budget(_StoreModel):
    """Spending limit for one category in one calendar month."""

    id: str = Field(..., min_length=1)
    owner: str = Field(..., alias="user_id", min_length=1)
    category_ref: str = Field(..., alias="category_id", min_length=1)
    limit_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0"), ge=0)
    month: date = Field(..., description="First day of the budgeted month")

    @field_validator('month')
    @classmethod
    def normalise_month(cls, v: date) -> date:
        """Budgets are keyed by month, so any day collapses to the first."""
        return v.replace(day=1)


class Account(_StoreModel):
    """A named money account (wallet, bank account...)."""

    id: str = Field(..., min_length=1)
    owner: str = Field(..., alias="user_id", min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    balance: Money = Field(default=Decimal("0"), ge=0)
    created_at: Optional[datetime] = None


class Category(_StoreModel):
    """
    A category a budget can point at.

    Read-only for the client. Shared categories have no owner; a
    category with an owner is visible to that owner only.
    """

    id: str = Field(..., min_length=1)
    owner: Optional[str] = Field(default=None, alias="user_id")
    name: str = Field(..., min_length=1, max_length=100)
    kind: TransactionKind = Field(..., alias="type")

    def visible_to(self, owner: str) -> bool:
        return self.owner is None or self.owner == owner


RECORD_MODELS: dict[RecordCollection, type[_StoreModel]] = {
    RecordCollection.TRANSACTIONS: Transaction,
    RecordCollection.GOALS: Goal,
    RecordCollection.BUDGETS: Budget,
    RecordCollection.ACCOUNTS: Account,
}


# =============================================================================
# INPUT PAYLOADS
# Produced by the validation layer; only these reach the record store.
# =============================================================================

class TransactionInput(_StoreModel):
    """Fields the user supplies when recording a transaction."""

    kind: TransactionKind = Field(..., alias="type")
    category: str = Field(..., min_length=1, max_length=100)
    amount: Money = Field(..., gt=0)
    occurred_on: date = Field(..., alias="date")
    note: Optional[str] = Field(default=None, max_length=1000)


class TransactionUpdate(_StoreModel):
    """Partial transaction edit. Unset fields are left untouched."""

    kind: Optional[TransactionKind] = Field(default=None, alias="type")
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Money] = Field(default=None, gt=0)
    occurred_on: Optional[date] = Field(default=None, alias="date")
    note: Optional[str] = Field(default=None, max_length=1000)


class GoalInput(_StoreModel):
    """Fields for a new savings goal."""

    title: str = Field(..., min_length=1, max_length=200)
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0"), ge=0)
    deadline: date


class GoalUpdate(_StoreModel):
    """Partial goal edit."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    target_amount: Optional[Money] = Field(default=None, gt=0)
    current_amount: Optional[Money] = Field(default=None, ge=0)
    deadline: Optional[date] = None


class BudgetInput(_StoreModel):
    """Fields for a new budget. New budgets always start with nothing spent."""

    category_ref: str = Field(..., alias="category_id", min_length=1)
    limit_amount: Money = Field(..., gt=0)
    month: Optional[date] = None

    @field_validator('month')
    @classmethod
    def normalise_month(cls, v: Optional[date]) -> Optional[date]:
        return v.replace(day=1) if v else v


class BudgetUpdate(_StoreModel):
    """Partial budget edit. Only the amounts can change."""

    limit_amount: Optional[Money] = Field(default=None, gt=0)
    current_amount: Optional[Money] = Field(default=None, ge=0)


class AccountInput(_StoreModel):
    """Fields for a new account."""

    name: str = Field(..., min_length=1, max_length=100)
    balance: Money = Field(default=Decimal("0"), ge=0)

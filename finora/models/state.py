"""
Client state models.

FinanceState is the session copy of the user's records. It is created by
the composition root and handed to whatever needs it; there is no
module-level instance.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from finora.models.records import Account, Budget, Category, Goal, Transaction


class FinanceState(BaseModel):
    """
    In-memory cache of the owner's records plus request status.

    Mutated only by FinanceStore, and only after the record store
    has acknowledged the change.
    """

    transactions: list[Transaction] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)

    is_loading: bool = False
    error: Optional[str] = Field(
        default=None,
        description="Message of the last failed operation"
    )


class StateSnapshot(BaseModel):
    """A FinanceState written to disk, stamped with the owner it belongs to."""

    owner: str = Field(..., min_length=1)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: FinanceState


class Preferences(BaseModel):
    """
    Purely presentational settings.

    Never read by the aggregation engine.
    """

    currency_symbol: str = Field(default="₦", min_length=1, max_length=5)
    theme: str = Field(default="light", pattern="^(light|dark|system)$")

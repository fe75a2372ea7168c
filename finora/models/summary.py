"""
Derived view models.

These are produced by the aggregation engine and the summary queries.
Nothing here is ever stored: every instance is rebuilt from records.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from finora.models.records import Goal, Money, Transaction, TransactionKind


class CategorySlice(BaseModel):
    """Share of one category within all transactions of one kind."""

    kind: TransactionKind
    category: str
    total: Money
    percentage: float = Field(ge=0.0, le=100.0)


class MonthlyBucket(BaseModel):
    """Income and expense sums for one calendar month."""

    label: str = Field(..., description="Month and year, e.g. 'Jan 2024'")
    income: Money = Decimal("0")
    expense: Money = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class RunningBalance(BaseModel):
    """Cumulative balance around one transaction in chronological order."""

    transaction_id: str
    before: Money
    after: Money


class GoalProgress(BaseModel):
    """Display-ready view of a goal."""

    goal: Goal
    progress_pct: float = Field(ge=0.0, le=100.0)
    remaining: Money
    days_remaining: int = Field(
        ...,
        description="Whole days to the deadline; zero or negative once passed"
    )


class FinancialSummary(BaseModel):
    """All-time totals."""

    total_income: Money
    total_expense: Money
    balance: Money
    savings_rate: float


class DashboardSummary(BaseModel):
    """Everything the dashboard cards need."""

    total_balance: Money
    monthly_income: Money
    monthly_expense: Money
    savings_rate: float
    month_start: date
    recent_transactions: list[Transaction] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(
        default_factory=list,
        description="Goals ordered by deadline, soonest first"
    )


class AnalyticsReport(BaseModel):
    """Category breakdowns and the monthly trend series."""

    income_breakdown: list[CategorySlice] = Field(default_factory=list)
    expense_breakdown: list[CategorySlice] = Field(default_factory=list)
    monthly_trend: list[MonthlyBucket] = Field(default_factory=list)
    summary: Optional[FinancialSummary] = None

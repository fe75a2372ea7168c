"""
Aggregation Engine

DESIGN DECISION: Every number shown on the dashboard and analytics pages is
computed here, from the records alone. Nothing in this module talks to a
store, reads settings or keeps state:
- Same records in, same numbers out
- Money stays Decimal end to end; only percentages are floats
- Empty input gives zeros, never an error

Income counts positive and expense negative wherever a balance is involved.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Optional

from finora.models.records import Budget, Goal, Transaction, TransactionKind
from finora.models.summary import (
    CategorySlice,
    FinancialSummary,
    MonthlyBucket,
    RunningBalance,
)


ZERO = Decimal("0")


def signed_amount(transaction: Transaction) -> Decimal:
    """Amount with income positive and expense negative."""
    return transaction.signed_amount


def _total(transactions: Iterable[Transaction], kind: TransactionKind) -> Decimal:
    return sum((t.amount for t in transactions if t.kind == kind), ZERO)


def total_income(transactions: Iterable[Transaction]) -> Decimal:
    return _total(transactions, TransactionKind.INCOME)


def total_expense(transactions: Iterable[Transaction]) -> Decimal:
    return _total(transactions, TransactionKind.EXPENSE)


def total_balance(transactions: Iterable[Transaction]) -> Decimal:
    """All-time income minus all-time expense."""
    return sum((signed_amount(t) for t in transactions), ZERO)


def sum_between(
    transactions: Iterable[Transaction],
    kind: TransactionKind,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Decimal:
    """
    Sum one kind of transaction inside an inclusive date window.

    A missing bound leaves that side of the window open.
    """
    return sum(
        (
            t.amount
            for t in transactions
            if t.kind == kind
            and (start is None or t.occurred_on >= start)
            and (end is None or t.occurred_on <= end)
        ),
        ZERO,
    )


def month_start(today: Optional[date] = None) -> date:
    """First day of the month containing today."""
    return (today or date.today()).replace(day=1)


def monthly_income(transactions: Iterable[Transaction], today: Optional[date] = None) -> Decimal:
    """Income from the first of the current month through today."""
    today = today or date.today()
    return sum_between(transactions, TransactionKind.INCOME, month_start(today), today)


def monthly_expense(transactions: Iterable[Transaction], today: Optional[date] = None) -> Decimal:
    """Expense from the first of the current month through today."""
    today = today or date.today()
    return sum_between(transactions, TransactionKind.EXPENSE, month_start(today), today)


def savings_rate(income: Decimal, expense: Decimal) -> float:
    """
    Share of income not spent, as a percentage.

    Exactly 0.0 when there is no income. Negative when spending exceeds income.
    """
    if income <= 0:
        return 0.0
    return float((income - expense) / income * 100)


def category_breakdown(
    transactions: Iterable[Transaction],
    kind: TransactionKind,
) -> list[CategorySlice]:
    """
    Per-category totals of one kind, with each category's share of the kind total.

    Categories appear in the order they are first seen.
    """
    totals: dict[str, Decimal] = {}
    for t in transactions:
        if t.kind != kind:
            continue
        totals[t.category] = totals.get(t.category, ZERO) + t.amount

    grand_total = sum(totals.values(), ZERO)
    slices = []
    for category, total in totals.items():
        percentage = float(total / grand_total * 100) if grand_total > 0 else 0.0
        slices.append(CategorySlice(
            kind=kind,
            category=category,
            total=total,
            percentage=min(percentage, 100.0),
        ))
    return slices


def monthly_trend(transactions: Iterable[Transaction]) -> list[MonthlyBucket]:
    """
    Income and expense per calendar month, labelled like 'Jan 2024'.

    Buckets appear in the order their month is first seen.
    """
    buckets: dict[str, MonthlyBucket] = {}
    for t in transactions:
        label = t.occurred_on.strftime("%b %Y")
        bucket = buckets.setdefault(label, MonthlyBucket(label=label))
        if t.kind == TransactionKind.INCOME:
            bucket.income += t.amount
        else:
            bucket.expense += t.amount
    return list(buckets.values())


def running_balance(
    transactions: Sequence[Transaction],
    transaction_id: str,
) -> Optional[RunningBalance]:
    """
    Balance immediately before and after one transaction.

    Transactions are ordered by date; ties keep their input order. Returns
    None if the id is not in the list.
    """
    ordered = sorted(transactions, key=lambda t: t.occurred_on)
    before = ZERO
    for t in ordered:
        if t.id == transaction_id:
            return RunningBalance(
                transaction_id=transaction_id,
                before=before,
                after=before + signed_amount(t),
            )
        before += signed_amount(t)
    return None


def goal_progress(current: Decimal, target: Decimal) -> float:
    """Percent of target reached, clamped to [0, 100]. 0 when target <= 0."""
    if target <= 0:
        return 0.0
    pct = float(current / target * 100)
    return max(0.0, min(pct, 100.0))


def goal_remaining(goal: Goal) -> Decimal:
    """Amount still to save; never negative."""
    return max(goal.target_amount - goal.current_amount, ZERO)


def days_remaining(deadline: date, today: Optional[date] = None) -> int:
    """Whole days until the deadline. Zero or negative once it has passed."""
    return (deadline - (today or date.today())).days


def budget_utilization(budget: Budget) -> float:
    # Not capped: over 100 means the budget is overspent
    return float(budget.current_amount / budget.limit_amount * 100)


def recent_transactions(
    transactions: Iterable[Transaction],
    limit: int = 5,
) -> list[Transaction]:
    """Newest first by date; ties keep their input order."""
    ordered = sorted(transactions, key=lambda t: t.occurred_on, reverse=True)
    return ordered[:max(limit, 0)]


def financial_summary(transactions: Sequence[Transaction]) -> FinancialSummary:
    """All-time totals in one model."""
    income = total_income(transactions)
    expense = total_expense(transactions)
    return FinancialSummary(
        total_income=income,
        total_expense=expense,
        balance=income - expense,
        savings_rate=savings_rate(income, expense),
    )

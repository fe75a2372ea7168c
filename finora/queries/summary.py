"""
Summary Queries

Builds the dashboard and analytics views from the cached records.

DESIGN DECISION: Queries read the injected FinanceState only. They never
call the record store, so what the user sees is always consistent with
the last acknowledged write.
"""

from datetime import date
from typing import Optional

from finora.config import AppSettings, get_settings
from finora.models.records import TransactionKind
from finora.models.state import FinanceState
from finora.models.summary import AnalyticsReport, DashboardSummary, GoalProgress
from finora.queries import aggregation


class SummaryQuery:
    """Read-only views over a FinanceState."""

    def __init__(
        self,
        state: FinanceState,
        settings: Optional[AppSettings] = None,
    ):
        self._state = state
        self._settings = settings or get_settings().app

    def goal_progress(self, today: Optional[date] = None) -> list[GoalProgress]:
        """Every goal with its progress, soonest deadline first."""
        today = today or date.today()
        return [
            GoalProgress(
                goal=goal,
                progress_pct=aggregation.goal_progress(goal.current_amount, goal.target_amount),
                remaining=aggregation.goal_remaining(goal),
                days_remaining=aggregation.days_remaining(goal.deadline, today),
            )
            for goal in sorted(self._state.goals, key=lambda g: g.deadline)
        ]

    def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        """
        Figures for the dashboard cards.

        The balance is all-time; income, expense and savings rate cover the
        current month up to today.
        """
        today = today or date.today()
        transactions = self._state.transactions

        income = aggregation.monthly_income(transactions, today)
        expense = aggregation.monthly_expense(transactions, today)

        return DashboardSummary(
            total_balance=aggregation.total_balance(transactions),
            monthly_income=income,
            monthly_expense=expense,
            savings_rate=aggregation.savings_rate(income, expense),
            month_start=aggregation.month_start(today),
            recent_transactions=aggregation.recent_transactions(
                transactions, self._settings.recent_transactions_limit
            ),
            goals=self.goal_progress(today),
        )

    def analytics(self) -> AnalyticsReport:
        """Category breakdowns, monthly trend and all-time totals."""
        transactions = self._state.transactions
        return AnalyticsReport(
            income_breakdown=aggregation.category_breakdown(transactions, TransactionKind.INCOME),
            expense_breakdown=aggregation.category_breakdown(transactions, TransactionKind.EXPENSE),
            monthly_trend=aggregation.monthly_trend(transactions),
            summary=aggregation.financial_summary(transactions),
        )

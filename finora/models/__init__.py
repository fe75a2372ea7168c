"""
Data Models Package

This package contains all Pydantic models used in Finora.
All data flowing through the system must conform to these schemas.
"""

from finora.models.records import (
    RECORD_MODELS,
    SUGGESTED_CATEGORIES,
    USER_DELETION_ORDER,
    Account,
    AccountInput,
    Budget,
    BudgetInput,
    BudgetUpdate,
    Category,
    Goal,
    GoalInput,
    GoalUpdate,
    Money,
    RecordCollection,
    Transaction,
    TransactionInput,
    TransactionKind,
    TransactionUpdate,
)
from finora.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from finora.models.summary import (
    AnalyticsReport,
    CategorySlice,
    DashboardSummary,
    FinancialSummary,
    GoalProgress,
    MonthlyBucket,
    RunningBalance,
)
from finora.models.state import (
    FinanceState,
    Preferences,
    StateSnapshot,
)
from finora.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "RECORD_MODELS",
    "SUGGESTED_CATEGORIES",
    "USER_DELETION_ORDER",
    "Account",
    "AccountInput",
    "Budget",
    "BudgetInput",
    "BudgetUpdate",
    "Category",
    "Goal",
    "GoalInput",
    "GoalUpdate",
    "Money",
    "RecordCollection",
    "Transaction",
    "TransactionInput",
    "TransactionKind",
    "TransactionUpdate",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Derived views
    "AnalyticsReport",
    "CategorySlice",
    "DashboardSummary",
    "FinancialSummary",
    "GoalProgress",
    "MonthlyBucket",
    "RunningBalance",
    # Client state
    "FinanceState",
    "Preferences",
    "StateSnapshot",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""Public interface for the ``obligation_engine`` package.

Re-exports the engine's stable import surface: the frequency evaluator, the
recurring-charge executor, period aggregation, habit reporting, the
entitlement gate and the storage protocol. The relational store
(:mod:`obligation_engine.persistence`) and the CLI are imported explicitly
because they pull in the database layer.
"""

from .aggregation import (
    CategoryShare,
    DebtAudit,
    MonthlySummary,
    PeriodBalance,
    category_breakdown,
    daily_spending,
    debt_audit,
    history_bounds,
    monthly_summary,
    monthly_totals,
    yearly_spending,
)
from .alerts import AlertLevel, BudgetAlert, LoanAlert, budget_alerts, loan_alerts, loan_totals
from .clock import Clock, FixedClock, SystemClock
from .dates import PeriodKey
from .entitlement import EntitlementGate, evaluate, new_trial, require_active
from .errors import (
    EntitlementExpired,
    InvalidRule,
    LedgerConflict,
    ObligationError,
    PersistenceFailure,
    RecordNotFound,
)
from .executor import RecurringChargeExecutor, TickOutcome, TickStatus, classify, tick
from .frequency import due_rules, is_due, scheduled_dates
from .habits import (
    CompletionRate,
    GoalMetrics,
    HabitCheckIn,
    ReportWindow,
    completion_rate,
    daily_progress,
    goal_metrics,
    goal_progress,
    streak,
)
from .ledger import ChargeLedger, HabitHistory
from .models import (
    Daily,
    EntitlementDecision,
    EntitlementWindow,
    Goal,
    GoalPeriod,
    Habit,
    Loan,
    LoanKind,
    LoanStatus,
    MonthlyOnDates,
    ObligationRule,
    Override,
    PostedCharge,
    RecurringCharge,
    TimesPerMonth,
    TimesPerWeek,
    Transaction,
    WeeklyOnDays,
)
from .storage import InMemoryStore, ObligationStore

__all__ = [
    # Evaluation
    "is_due",
    "due_rules",
    "scheduled_dates",
    # Execution
    "tick",
    "classify",
    "TickStatus",
    "TickOutcome",
    "RecurringChargeExecutor",
    # Aggregation
    "monthly_summary",
    "monthly_totals",
    "category_breakdown",
    "daily_spending",
    "yearly_spending",
    "debt_audit",
    "history_bounds",
    "MonthlySummary",
    "CategoryShare",
    "PeriodBalance",
    "DebtAudit",
    # Habits
    "completion_rate",
    "daily_progress",
    "streak",
    "CompletionRate",
    "ReportWindow",
    "HabitCheckIn",
    "goal_progress",
    "goal_metrics",
    "GoalMetrics",
    # Entitlement
    "evaluate",
    "new_trial",
    "require_active",
    "EntitlementGate",
    # Alerts
    "AlertLevel",
    "BudgetAlert",
    "LoanAlert",
    "budget_alerts",
    "loan_alerts",
    "loan_totals",
    # Models / types
    "PeriodKey",
    "ObligationRule",
    "Daily",
    "WeeklyOnDays",
    "TimesPerWeek",
    "MonthlyOnDates",
    "TimesPerMonth",
    "RecurringCharge",
    "Habit",
    "Transaction",
    "PostedCharge",
    "Override",
    "EntitlementWindow",
    "EntitlementDecision",
    "Goal",
    "GoalPeriod",
    "Loan",
    "LoanKind",
    "LoanStatus",
    "ChargeLedger",
    "HabitHistory",
    # Infrastructure
    "Clock",
    "SystemClock",
    "FixedClock",
    "ObligationStore",
    "InMemoryStore",
    # Errors
    "ObligationError",
    "InvalidRule",
    "LedgerConflict",
    "PersistenceFailure",
    "RecordNotFound",
    "EntitlementExpired",
]

"""Budget and loan due-date alerts."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum

from .models import Loan, LoanKind, LoanStatus

BUDGET_WARNING_RATIO = Decimal("0.8")
LOAN_DANGER_DAYS = 3
LOAN_WARNING_DAYS = 7


class AlertLevel(StrEnum):
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True, slots=True)
class BudgetAlert:
    category: str
    spent: Decimal
    budget: Decimal
    level: AlertLevel

    @property
    def ratio(self) -> Decimal:
        return self.spent / self.budget


def budget_alerts(
    spent: Mapping[str, Decimal],
    budgets: Mapping[str, Decimal],
    *,
    muted: Collection[str] = (),
) -> list[BudgetAlert]:
    """Alerts for categories at or above 80% of budget, most exceeded first.

    Categories with no positive budget, or listed in ``muted``, never alert.
    """

    alerts: list[BudgetAlert] = []
    for category, raw_budget in budgets.items():
        budget = Decimal(str(raw_budget))
        if budget <= 0 or category in muted:
            continue
        amount = Decimal(str(spent.get(category, 0)))
        ratio = amount / budget
        if ratio >= 1:
            level = AlertLevel.DANGER
        elif ratio >= BUDGET_WARNING_RATIO:
            level = AlertLevel.WARNING
        else:
            continue
        alerts.append(BudgetAlert(category=category, spent=amount, budget=budget, level=level))
    alerts.sort(key=lambda a: (-a.ratio, a.category))
    return alerts


@dataclass(frozen=True, slots=True)
class LoanAlert:
    loan: Loan
    days_left: int
    level: AlertLevel

    @property
    def overdue(self) -> bool:
        return self.days_left < 0


def loan_alerts(loans: Iterable[Loan], today: date) -> list[LoanAlert]:
    """Pending loans due within a week (or overdue), soonest first."""

    alerts: list[LoanAlert] = []
    for loan in loans:
        if loan.status is not LoanStatus.PENDING or loan.due_date is None:
            continue
        days_left = (loan.due_date - today).days
        if days_left <= LOAN_DANGER_DAYS:
            level = AlertLevel.DANGER
        elif days_left <= LOAN_WARNING_DAYS:
            level = AlertLevel.WARNING
        else:
            continue
        alerts.append(LoanAlert(loan=loan, days_left=days_left, level=level))
    alerts.sort(key=lambda a: (a.days_left, a.loan.id))
    return alerts


@dataclass(frozen=True, slots=True)
class LoanTotals:
    lent: Decimal
    borrowed: Decimal

    @property
    def net(self) -> Decimal:
        return self.lent - self.borrowed


def loan_totals(loans: Iterable[Loan]) -> LoanTotals:
    lent = Decimal("0")
    borrowed = Decimal("0")
    for loan in loans:
        if loan.status is not LoanStatus.PENDING:
            continue
        if loan.kind is LoanKind.LENT:
            lent += loan.amount
        else:
            borrowed += loan.amount
    return LoanTotals(lent=lent, borrowed=borrowed)


__all__ = [
    "BUDGET_WARNING_RATIO",
    "LOAN_DANGER_DAYS",
    "LOAN_WARNING_DAYS",
    "AlertLevel",
    "BudgetAlert",
    "budget_alerts",
    "LoanAlert",
    "loan_alerts",
    "LoanTotals",
    "loan_totals",
]

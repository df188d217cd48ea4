"""Period aggregation over transaction history and monthly income.

All functions are read-only and work on already-fetched records:

- ``monthly_summary``: per-category and overall totals for one month plus the
  difference against the preceding month.
- ``category_breakdown``: per-category shares of a month, largest first.
- ``daily_spending`` / ``yearly_spending``: fixed-length spending series.
- ``debt_audit``: running balance (``income - spent``) per month and its sum
  over a period range.

Any list of periods produced here is ordered most recent first (descending by
year, then month); report ordering depends on it.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from .dates import PeriodKey, days_in_month, sort_periods_desc
from .models import Transaction

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _in_range(period: PeriodKey, start: PeriodKey | None, end: PeriodKey | None) -> bool:
    if start is not None and period < start:
        return False
    if end is not None and period > end:
        return False
    return True


# ---------------------------------------------------------------------------
# Monthly totals
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MonthlySummary:
    period: PeriodKey
    total: Decimal
    by_category: dict[str, Decimal]
    previous_total: Decimal
    total_incurred: Decimal

    @property
    def diff(self) -> Decimal:
        """Spending change against the immediately preceding month."""
        return self.total - self.previous_total


def monthly_totals(transactions: Iterable[Transaction]) -> dict[PeriodKey, Decimal]:
    totals: dict[PeriodKey, Decimal] = defaultdict(lambda: _ZERO)
    for tx in transactions:
        totals[tx.period] += tx.amount
    return dict(totals)


def category_totals(
    transactions: Iterable[Transaction], period: PeriodKey
) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for tx in transactions:
        if tx.period == period:
            totals[tx.category] += tx.amount
    return dict(totals)


def monthly_summary(transactions: Iterable[Transaction], period: PeriodKey) -> MonthlySummary:
    txs = list(transactions)
    current = [t for t in txs if t.period == period]
    previous = period.previous()
    return MonthlySummary(
        period=period,
        total=sum((t.amount for t in current), _ZERO),
        by_category=category_totals(current, period),
        previous_total=sum((t.amount for t in txs if t.period == previous), _ZERO),
        total_incurred=sum((t.amount for t in current if t.is_incurred), _ZERO),
    )


@dataclass(frozen=True, slots=True)
class CategoryShare:
    category: str
    amount: Decimal
    percentage: Decimal


def category_breakdown(
    transactions: Iterable[Transaction],
    period: PeriodKey,
    *,
    categories: Iterable[str] = (),
    hidden: Collection[str] = (),
) -> list[CategoryShare]:
    """Category shares for ``period``, largest amount first.

    ``categories`` lists known categories so that zero-spend ones still appear.
    Percentages are computed over all categories, including hidden ones, and
    hidden categories are dropped from the result afterwards.
    """

    totals = {c: _ZERO for c in categories}
    totals.update(category_totals(transactions, period))
    grand = sum(totals.values(), _ZERO)
    shares = [
        CategoryShare(
            category=c,
            amount=amt,
            percentage=(amt / grand * _HUNDRED) if grand > 0 else _ZERO,
        )
        for c, amt in totals.items()
        if c not in hidden
    ]
    shares.sort(key=lambda s: (-s.amount, s.category))
    return shares


def daily_spending(
    transactions: Iterable[Transaction],
    period: PeriodKey,
    *,
    category: str | None = None,
    hidden: Collection[str] = (),
) -> list[Decimal]:
    """Spending per day of ``period``; index 0 is the 1st of the month."""

    series = [_ZERO] * days_in_month(period.year, period.month)
    for tx in transactions:
        if tx.period != period or tx.category in hidden:
            continue
        if category is not None and tx.category != category:
            continue
        series[tx.date.day - 1] += tx.amount
    return series


def yearly_spending(
    transactions: Iterable[Transaction],
    year: int,
    *,
    category: str | None = None,
    hidden: Collection[str] = (),
) -> list[Decimal]:
    """Spending per month of ``year``; index 0 is January."""

    series = [_ZERO] * 12
    for tx in transactions:
        if tx.date.year != year or tx.category in hidden:
            continue
        if category is not None and tx.category != category:
            continue
        series[tx.date.month - 1] += tx.amount
    return series


# ---------------------------------------------------------------------------
# Debt audit (running balance)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PeriodBalance:
    period: PeriodKey
    income: Decimal
    spent: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.spent


@dataclass(frozen=True, slots=True)
class DebtAudit:
    rows: list[PeriodBalance] = field(default_factory=list)

    @property
    def total_balance(self) -> Decimal:
        return sum((r.balance for r in self.rows), _ZERO)

    @property
    def total_income(self) -> Decimal:
        return sum((r.income for r in self.rows), _ZERO)

    @property
    def total_spent(self) -> Decimal:
        return sum((r.spent for r in self.rows), _ZERO)

    def trend(self) -> list[PeriodBalance]:
        """Rows in chronological order (oldest first), for charting."""
        return sorted(self.rows, key=lambda r: r.period)


def debt_audit(
    transactions: Iterable[Transaction],
    income: Mapping[PeriodKey, Decimal],
    *,
    start: PeriodKey | None = None,
    end: PeriodKey | None = None,
) -> DebtAudit:
    """Per-month ``income - spent`` for every month with any record.

    A month with transactions but no income record counts income as ``0``, so
    its balance is the negative of its spend. ``start``/``end`` are inclusive;
    ``None`` leaves that side unbounded.
    """

    spent: dict[PeriodKey, Decimal] = defaultdict(lambda: _ZERO)
    for tx in transactions:
        if _in_range(tx.period, start, end):
            spent[tx.period] += tx.amount

    periods = set(spent)
    periods.update(p for p in income if _in_range(p, start, end))

    rows = [
        PeriodBalance(
            period=p,
            income=Decimal(str(income.get(p, _ZERO))),
            spent=spent.get(p, _ZERO),
        )
        for p in sort_periods_desc(periods)
    ]
    return DebtAudit(rows=rows)


def history_bounds(
    transactions: Iterable[Transaction], income: Mapping[PeriodKey, Decimal]
) -> tuple[PeriodKey, PeriodKey] | None:
    """Earliest and latest period holding a transaction or income record."""

    periods = {t.period for t in transactions} | set(income)
    if not periods:
        return None
    return min(periods), max(periods)


__all__ = [
    "MonthlySummary",
    "monthly_totals",
    "category_totals",
    "monthly_summary",
    "CategoryShare",
    "category_breakdown",
    "daily_spending",
    "yearly_spending",
    "PeriodBalance",
    "DebtAudit",
    "debt_audit",
    "history_bounds",
]

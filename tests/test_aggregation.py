from __future__ import annotations

from datetime import date
from decimal import Decimal

from obligation_engine.aggregation import (
    category_breakdown,
    daily_spending,
    debt_audit,
    history_bounds,
    monthly_summary,
    monthly_totals,
    yearly_spending,
)
from obligation_engine.dates import PeriodKey
from obligation_engine.models import Transaction


def _tx(day: date, amount: str, category: str = "Food", **kw) -> Transaction:
    return Transaction(amount=Decimal(amount), category=category, date=day, **kw)


TXS = [
    _tx(date(2025, 1, 3), "300", "Rent"),
    _tx(date(2025, 2, 1), "1000", "Rent"),
    _tx(date(2025, 2, 14), "150", "Food"),
    _tx(date(2025, 2, 20), "50", "Food", is_incurred=True),
    _tx(date(2025, 3, 2), "50", "Transport"),
]

INCOME = {
    PeriodKey(2025, 1): Decimal("1000"),
    PeriodKey(2025, 2): Decimal("1000"),
}


def test_monthly_summary_totals_and_diff():
    summary = monthly_summary(TXS, PeriodKey(2025, 2))

    assert summary.total == Decimal("1200")
    assert summary.by_category == {"Rent": Decimal("1000"), "Food": Decimal("200")}
    assert summary.previous_total == Decimal("300")
    assert summary.diff == Decimal("900")
    assert summary.total_incurred == Decimal("50")


def test_monthly_summary_of_empty_month():
    summary = monthly_summary(TXS, PeriodKey(2025, 6))
    assert summary.total == 0
    assert summary.by_category == {}
    assert summary.diff == 0


def test_monthly_totals():
    totals = monthly_totals(TXS)
    assert totals[PeriodKey(2025, 2)] == Decimal("1200")
    assert set(totals) == {PeriodKey(2025, 1), PeriodKey(2025, 2), PeriodKey(2025, 3)}


def test_category_breakdown_sorted_with_shares():
    shares = category_breakdown(TXS, PeriodKey(2025, 2), categories=["Transport"])

    assert [s.category for s in shares] == ["Rent", "Food", "Transport"]
    rent, food, transport = shares
    assert round(rent.percentage, 2) == Decimal("83.33")
    assert round(food.percentage, 2) == Decimal("16.67")
    assert transport.amount == 0 and transport.percentage == 0


def test_category_breakdown_hides_categories_after_computing_shares():
    shares = category_breakdown(TXS, PeriodKey(2025, 2), hidden={"Rent"})
    assert [s.category for s in shares] == ["Food"]
    assert round(shares[0].percentage, 2) == Decimal("16.67")


def test_daily_and_yearly_series():
    daily = daily_spending(TXS, PeriodKey(2025, 2))
    assert len(daily) == 28
    assert daily[0] == Decimal("1000")
    assert daily[13] == Decimal("150")
    assert sum(daily) == Decimal("1200")

    food_only = daily_spending(TXS, PeriodKey(2025, 2), category="Food")
    assert sum(food_only) == Decimal("200")

    yearly = yearly_spending(TXS, 2025, hidden={"Rent"})
    assert len(yearly) == 12
    assert yearly[:3] == [Decimal("0"), Decimal("200"), Decimal("50")]


def test_debt_audit_rows_descending_with_missing_income_as_zero():
    audit = debt_audit(TXS, INCOME)

    assert [r.period for r in audit.rows] == [
        PeriodKey(2025, 3),
        PeriodKey(2025, 2),
        PeriodKey(2025, 1),
    ]
    march, february, january = audit.rows
    assert march.income == 0 and march.balance == Decimal("-50")
    assert february.balance == Decimal("-200")
    assert january.balance == Decimal("700")
    assert audit.total_balance == Decimal("450")


def test_debt_audit_includes_income_only_months():
    income = dict(INCOME)
    income[PeriodKey(2025, 5)] = Decimal("800")
    audit = debt_audit(TXS, income)
    assert audit.rows[0].period == PeriodKey(2025, 5)
    assert audit.rows[0].balance == Decimal("800")


def test_debt_audit_range_is_inclusive():
    audit = debt_audit(TXS, INCOME, start=PeriodKey(2025, 2), end=PeriodKey(2025, 3))
    assert [str(r.period) for r in audit.rows] == ["2025-03", "2025-02"]
    assert audit.total_balance == Decimal("-250")

    open_end = debt_audit(TXS, INCOME, start=PeriodKey(2025, 3))
    assert [str(r.period) for r in open_end.rows] == ["2025-03"]


def test_yearly_balance_equals_income_minus_spent():
    start, end = PeriodKey(2025, 1), PeriodKey(2025, 12)
    audit = debt_audit(TXS, INCOME, start=start, end=end)

    income_total = sum(v for k, v in INCOME.items() if start <= k <= end)
    spent_total = sum(t.amount for t in TXS if t.date.year == 2025)
    assert audit.total_balance == income_total - spent_total
    assert audit.total_income == income_total
    assert audit.total_spent == spent_total


def test_trend_is_chronological():
    audit = debt_audit(TXS, INCOME)
    assert [str(r.period) for r in audit.trend()] == ["2025-01", "2025-02", "2025-03"]


def test_history_bounds():
    assert history_bounds(TXS, INCOME) == (PeriodKey(2025, 1), PeriodKey(2025, 3))
    assert history_bounds([], {}) is None

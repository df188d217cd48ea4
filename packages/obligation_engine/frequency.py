"""Frequency rule evaluator.

``is_due(rule, day)`` decides whether an obligation is scheduled on a calendar
date. It is pure and deterministic: bounds first (``valid_from`` /
``valid_until``, both inclusive), then the frequency predicate.

Count-based frequencies (``TIMES_PER_WEEK`` / ``TIMES_PER_MONTH``) are due on
every in-bounds date; rationing occurrences up to the configured count is the
consumer's job (a check-in surface lets the user complete any day). This also
means the evaluator does not stop completions beyond the stated count.

``MONTHLY_ON_DATES`` does not clamp: a configured 31 never fires in a 30-day
month. Financial charges clamp their anchor day instead; use
:func:`effective_anchor_day` before querying when clamping is wanted.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date

from .dates import clamp_day_to_month, iter_days, weekday_index
from .models import (
    Daily,
    MonthlyOnDates,
    ObligationRule,
    TimesPerMonth,
    TimesPerWeek,
    WeeklyOnDays,
)


def within_bounds(rule: ObligationRule, day: date) -> bool:
    if rule.valid_from is not None and day < rule.valid_from:
        return False
    if rule.valid_until is not None and day > rule.valid_until:
        return False
    return True


def is_due(rule: ObligationRule, day: date) -> bool:
    if not within_bounds(rule, day):
        return False

    freq = rule.frequency
    if isinstance(freq, Daily):
        return True
    if isinstance(freq, WeeklyOnDays):
        return weekday_index(day) in freq.weekdays
    if isinstance(freq, MonthlyOnDates):
        return day.day in freq.days
    if isinstance(freq, TimesPerWeek | TimesPerMonth):
        return True
    # Unvalidated input: treat as never due rather than raising mid-evaluation.
    return False


def due_rules(rules: Iterable[ObligationRule], day: date) -> list[ObligationRule]:
    return [r for r in rules if is_due(r, day)]


def scheduled_dates(rule: ObligationRule, start: date, end: date) -> Iterator[date]:
    """Yield each date in ``[start, end]`` on which ``rule`` is due."""

    lo = max(start, rule.valid_from) if rule.valid_from else start
    hi = min(end, rule.valid_until) if rule.valid_until else end
    for d in iter_days(lo, hi):
        if is_due(rule, d):
            yield d


def effective_anchor_day(anchor_day: int, year: int, month: int) -> int:
    """Anchor day clamped to the last day of ``year``/``month``."""
    return clamp_day_to_month(year, month, anchor_day)


__all__ = [
    "within_bounds",
    "is_due",
    "due_rules",
    "scheduled_dates",
    "effective_anchor_day",
]

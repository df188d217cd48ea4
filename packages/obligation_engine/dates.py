"""Calendar helpers and the ``PeriodKey`` type.

A period key identifies one calendar month and is the idempotency unit for
recurring-charge posting. Keys order naturally as ``(year, month)`` tuples and
serialize as ``"YYYY-MM"`` with a 1-based month.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable, Iterator
from datetime import date, timedelta
from typing import NamedTuple

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class PeriodKey(NamedTuple):
    year: int
    month: int

    @classmethod
    def of(cls, d: date) -> PeriodKey:
        return cls(d.year, d.month)

    @classmethod
    def parse(cls, raw: str) -> PeriodKey:
        """Parse ``"YYYY-MM"``; raises ``ValueError`` on anything else."""

        m = _PERIOD_RE.fullmatch(raw.strip())
        if m is None:
            raise ValueError(f"Invalid period key: {raw!r} (expected YYYY-MM)")
        year, month = int(m.group(1)), int(m.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid period key: {raw!r} (month out of range)")
        return cls(year, month)

    def previous(self) -> PeriodKey:
        if self.month == 1:
            return PeriodKey(self.year - 1, 12)
        return PeriodKey(self.year, self.month - 1)

    def next(self) -> PeriodKey:
        if self.month == 12:
            return PeriodKey(self.year + 1, 1)
        return PeriodKey(self.year, self.month + 1)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, days_in_month(self.year, self.month))

    def contains(self, d: date) -> bool:
        return d.year == self.year and d.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp ``day`` to the valid range for the given year/month."""
    return min(day, days_in_month(year, month))


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month.

    Day-of-month is ignored: Jan 31 → Feb 1 is one month. Negative when
    ``end`` precedes ``start``.
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def weekday_index(d: date) -> int:
    """Weekday with 0 = Sunday … 6 = Saturday."""
    return (d.weekday() + 1) % 7


def week_start(d: date) -> date:
    """Monday of the week containing ``d``."""
    return d - timedelta(days=d.weekday())


def week_bounds(d: date) -> tuple[date, date]:
    start = week_start(d)
    return start, start + timedelta(days=6)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    key = PeriodKey(year, month)
    return key.first_day, key.last_day


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    one = timedelta(days=1)
    while current <= end:
        yield current
        current += one


def sort_periods_desc(periods: Iterable[PeriodKey]) -> list[PeriodKey]:
    """Most recent first: descending by year, then by month."""
    return sorted(periods, reverse=True)


def parse_date(raw: str) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string; raises ``ValueError`` otherwise."""
    s = raw.strip()
    if not s:
        raise ValueError("Empty date string")
    return date.fromisoformat(s)


__all__ = [
    "PeriodKey",
    "days_in_month",
    "clamp_day_to_month",
    "months_between",
    "weekday_index",
    "week_start",
    "week_bounds",
    "month_bounds",
    "year_bounds",
    "iter_days",
    "sort_periods_desc",
    "parse_date",
]

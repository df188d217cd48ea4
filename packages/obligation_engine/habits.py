"""Habit reporting: completion rates, streaks, goals, daily progress and check-ins."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from .clock import Clock, SystemClock
from .dates import iter_days, month_bounds, week_bounds, year_bounds
from .entitlement import EntitlementGate
from .errors import RecordNotFound
from .frequency import is_due
from .ledger import HabitHistory
from .logging_setup import get_logger
from .models import Goal, GoalPeriod, Habit
from .storage import ObligationStore

_logger = get_logger("obligation_engine.habits")


class ReportWindow(StrEnum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def window_bounds(window: ReportWindow, reference: date) -> tuple[date, date]:
    """Inclusive date range of the window containing ``reference``.

    Weeks run Monday to Sunday.
    """

    if window is ReportWindow.WEEK:
        return week_bounds(reference)
    if window is ReportWindow.MONTH:
        return month_bounds(reference.year, reference.month)
    if window is ReportWindow.YEAR:
        return year_bounds(reference.year)
    raise ValueError(f"Unknown report window: {window!r}")


def _half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


@dataclass(frozen=True, slots=True)
class CompletionRate:
    scheduled: int
    completed: int

    @property
    def rate(self) -> float:
        if self.scheduled == 0:
            return 0.0
        return self.completed / self.scheduled

    @property
    def percent(self) -> int:
        """Rate as a whole percentage, rounded half up."""
        if self.scheduled == 0:
            return 0
        return _half_up(100 * self.completed, self.scheduled)


def completion_rate(habits: Iterable[Habit], start: date, end: date) -> CompletionRate:
    """Count scheduled and completed (date, habit) pairs in ``[start, end]``.

    Parameters
    ----------
    habits:
        Habits to evaluate; each contributes one slot per date it is due.
    start, end:
        Inclusive window. An empty window (``start > end``) yields ``0/0``.

    Returns
    -------
    CompletionRate
        ``rate`` is ``0`` when nothing is scheduled.
    """

    items = list(habits)
    scheduled = 0
    completed = 0
    for day in iter_days(start, end):
        for habit in items:
            if not is_due(habit.rule, day):
                continue
            scheduled += 1
            if habit.history.is_complete(day):
                completed += 1
    return CompletionRate(scheduled=scheduled, completed=completed)


def streak(history: HabitHistory, today: date) -> int:
    """Consecutive fully-completed days ending today.

    When today is not yet complete the count starts from yesterday, so an
    unfinished today does not break a running streak.
    """

    day = today if history.is_complete(today) else today - timedelta(days=1)
    count = 0
    while history.is_complete(day):
        count += 1
        day -= timedelta(days=1)
    return count


def due_habits(habits: Iterable[Habit], day: date) -> list[Habit]:
    return [h for h in habits if is_due(h.rule, day)]


def daily_progress(habits: Iterable[Habit], day: date) -> CompletionRate:
    """Completion of the habits due on ``day``."""
    return completion_rate(habits, day, day)


def month_completions(habit: Habit, year: int, month: int) -> int:
    """Number of days in the month marked complete for ``habit``."""
    start, end = month_bounds(year, month)
    return sum(1 for d in habit.history.completed_days() if start <= d <= end)


# ---- goals ----------------------------------------------------------------------


def goal_window(period: GoalPeriod, reference: date) -> tuple[date, date]:
    """Inclusive month, quarter or year containing ``reference``."""

    if period is GoalPeriod.MONTH:
        return month_bounds(reference.year, reference.month)
    if period is GoalPeriod.QUARTER:
        first = 3 * ((reference.month - 1) // 3) + 1
        return month_bounds(reference.year, first)[0], month_bounds(reference.year, first + 2)[1]
    if period is GoalPeriod.YEAR:
        return year_bounds(reference.year)
    raise ValueError(f"Unknown goal period: {period!r}")


def default_deadline(period: GoalPeriod, today: date) -> date:
    """Last day of the current month, quarter or year."""
    return goal_window(period, today)[1]


def goals_in_window(goals: Iterable[Goal], period: GoalPeriod, reference: date) -> list[Goal]:
    start, end = goal_window(period, reference)
    return [g for g in goals if g.period is period and start <= g.deadline <= end]


def goal_progress(goal: Goal) -> int:
    """Percent of the target reached, rounded half up and capped at 100."""
    ratio = goal.current_amount * 100 / goal.target_amount
    return min(100, int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP)))


@dataclass(frozen=True, slots=True)
class GoalMetrics:
    total: int
    completed: int
    average_progress: int

    @property
    def rate(self) -> int:
        """Share of goals reached, as a whole percentage."""
        if self.total == 0:
            return 0
        return _half_up(100 * self.completed, self.total)


def goal_metrics(goals: Iterable[Goal]) -> GoalMetrics:
    """Scorecard over ``goals``; every figure is ``0`` when there are none.

    Each goal contributes its progress, capped at 100, to the average.
    """

    progress = [goal_progress(g) for g in goals]
    if not progress:
        return GoalMetrics(total=0, completed=0, average_progress=0)
    return GoalMetrics(
        total=len(progress),
        completed=sum(1 for p in progress if p >= 100),
        average_progress=_half_up(sum(progress), len(progress)),
    )


class HabitCheckIn:
    """Toggles daily completion markers through a store.

    When a ``gate`` is given, every toggle is checked against the entitlement
    of the habit's owner, as recorded by the store, and raises
    ``EntitlementExpired`` when that owner is read-only. A ``subject_id`` that
    does not own the habit is rejected with ``RecordNotFound``.
    """

    def __init__(
        self,
        store: ObligationStore,
        clock: Clock | None = None,
        gate: EntitlementGate | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._gate = gate

    def toggle(
        self, habit_id: str, day: date | None = None, *, subject_id: str | None = None
    ) -> int:
        target = day or self._clock.today()
        with self._store.unit_of_work():
            owner = self._store.habit_owner(habit_id)
            if subject_id is not None and subject_id != owner:
                raise RecordNotFound(f"Unknown habit {habit_id!r} for subject {subject_id!r}")
            if self._gate is not None:
                self._gate.guard(owner)
            habit = self._store.read_habit(habit_id)
            _, value = habit.history.toggled(target)
            self._store.write_habit_mark(habit_id, target, value)
        _logger.info("habit:toggle habit_id=%s date=%s value=%d", habit_id, target, value)
        return value


__all__ = [
    "ReportWindow",
    "window_bounds",
    "CompletionRate",
    "completion_rate",
    "streak",
    "due_habits",
    "daily_progress",
    "month_completions",
    "goal_window",
    "default_deadline",
    "goals_in_window",
    "goal_progress",
    "GoalMetrics",
    "goal_metrics",
    "HabitCheckIn",
]

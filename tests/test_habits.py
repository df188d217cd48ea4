from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from obligation_engine.clock import FixedClock
from obligation_engine.entitlement import EntitlementGate
from obligation_engine.errors import EntitlementExpired, InvalidRule, RecordNotFound
from obligation_engine.habits import (
    CompletionRate,
    GoalMetrics,
    HabitCheckIn,
    ReportWindow,
    completion_rate,
    daily_progress,
    default_deadline,
    due_habits,
    goal_metrics,
    goal_progress,
    goal_window,
    goals_in_window,
    month_completions,
    streak,
    window_bounds,
)
from obligation_engine.ledger import HabitHistory
from obligation_engine.models import (
    Daily,
    EntitlementWindow,
    Goal,
    GoalPeriod,
    Habit,
    ObligationRule,
    WeeklyOnDays,
)
from obligation_engine.storage import InMemoryStore

TODAY = date(2025, 3, 12)


def _history(*days: date) -> HabitHistory:
    return HabitHistory({d: 100 for d in days})


def _habit(habit_id: str, freq=None, *days: date, **bounds) -> Habit:
    rule = ObligationRule(habit_id, freq or Daily(), **bounds)
    return Habit(rule=rule, name=habit_id.title(), history=_history(*days))


def test_weekly_habit_fully_completed_over_one_week():
    mon, wed, fri = date(2025, 3, 3), date(2025, 3, 5), date(2025, 3, 7)
    habit = _habit("gym", WeeklyOnDays(frozenset({1, 3, 5})), mon, wed, fri)

    start, end = window_bounds(ReportWindow.WEEK, date(2025, 3, 5))
    rate = completion_rate([habit], start, end)

    assert (start, end) == (date(2025, 3, 3), date(2025, 3, 9))
    assert (rate.scheduled, rate.completed) == (3, 3)
    assert rate.rate == 1.0
    assert rate.percent == 100


def test_completions_on_non_scheduled_days_do_not_count():
    habit = _habit("gym", WeeklyOnDays(frozenset({1})), date(2025, 3, 4))
    rate = completion_rate([habit], date(2025, 3, 3), date(2025, 3, 9))
    assert (rate.scheduled, rate.completed) == (1, 0)


def test_completion_rate_respects_rule_bounds():
    habit = _habit("read", None, date(2025, 3, 1), valid_from=date(2025, 3, 8))
    rate = completion_rate([habit], date(2025, 3, 1), date(2025, 3, 9))
    assert rate.scheduled == 2


def test_completion_rate_is_zero_when_nothing_scheduled():
    rate = completion_rate([], date(2025, 3, 1), date(2025, 3, 31))
    assert rate == CompletionRate(0, 0)
    assert rate.rate == 0.0
    assert rate.percent == 0


@pytest.mark.parametrize(
    ("completed", "scheduled", "percent"),
    [(1, 8, 13), (2, 3, 67), (1, 3, 33), (1, 200, 1), (0, 5, 0)],
)
def test_percent_rounds_half_up(completed, scheduled, percent):
    assert CompletionRate(scheduled, completed).percent == percent


def test_window_bounds_month_and_year():
    assert window_bounds(ReportWindow.MONTH, date(2024, 2, 10)) == (
        date(2024, 2, 1),
        date(2024, 2, 29),
    )
    assert window_bounds(ReportWindow.YEAR, TODAY) == (date(2025, 1, 1), date(2025, 12, 31))


def test_streak_zero_when_today_and_yesterday_missing():
    history = _history(TODAY - timedelta(days=2), TODAY - timedelta(days=3))
    assert streak(history, TODAY) == 0


def test_streak_counts_today_when_complete():
    history = _history(TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=2))
    assert streak(history, TODAY) == 3


def test_streak_starts_from_yesterday_when_today_open():
    history = _history(TODAY - timedelta(days=1), TODAY - timedelta(days=2))
    assert streak(history, TODAY) == 2


def test_streak_stops_at_first_gap():
    history = _history(TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=3))
    assert streak(history, TODAY) == 2


def test_streak_ignores_explicit_zero_marks():
    history = HabitHistory({TODAY: 0, TODAY - timedelta(days=1): 100})
    assert streak(history, TODAY) == 1


def test_daily_progress_and_due_habits():
    gym = _habit("gym", WeeklyOnDays(frozenset({3})), TODAY)  # Wednesday
    read = _habit("read", None)
    progress = daily_progress([gym, read], TODAY)

    assert [h.id for h in due_habits([gym, read], TODAY)] == ["gym", "read"]
    assert (progress.scheduled, progress.completed, progress.percent) == (2, 1, 50)


def test_month_completions():
    habit = _habit("read", None, date(2025, 2, 28), date(2025, 3, 1), date(2025, 3, 31))
    assert month_completions(habit, 2025, 3) == 2
    assert month_completions(habit, 2025, 4) == 0


# ---- check-in service -------------------------------------------------------------


@pytest.fixture()
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.save_habit("u1", _habit("read", None))
    return s


def test_toggle_flips_and_persists(store):
    checkin = HabitCheckIn(store, FixedClock.on(TODAY))

    assert checkin.toggle("read") == 100
    assert store.read_habit("read").history.is_complete(TODAY)
    assert checkin.toggle("read") == 0
    assert not store.read_habit("read").history.is_complete(TODAY)


def test_toggle_explicit_date(store):
    checkin = HabitCheckIn(store, FixedClock.on(TODAY))
    checkin.toggle("read", date(2025, 3, 1))
    assert store.read_habit("read").history.completed_days() == [date(2025, 3, 1)]


def test_toggle_unknown_habit(store):
    with pytest.raises(RecordNotFound):
        HabitCheckIn(store, FixedClock.on(TODAY)).toggle("nope")


def test_toggle_refused_when_entitlement_expired(store):
    clock = FixedClock.on(TODAY)
    anchor = datetime(2025, 3, 1, tzinfo=UTC)
    store.save_entitlement("u1", EntitlementWindow(anchor=anchor, window_length_days=7))
    checkin = HabitCheckIn(store, clock, gate=EntitlementGate(store, clock))

    with pytest.raises(EntitlementExpired):
        checkin.toggle("read", subject_id="u1")
    assert len(store.read_habit("read").history) == 0


def test_toggle_allowed_inside_trial(store):
    clock = FixedClock.on(TODAY)
    anchor = datetime(2025, 3, 10, tzinfo=UTC)
    store.save_entitlement("u1", EntitlementWindow(anchor=anchor, window_length_days=7))
    checkin = HabitCheckIn(store, clock, gate=EntitlementGate(store, clock))

    assert checkin.toggle("read", subject_id="u1") == 100


def test_gate_uses_habit_owner_when_subject_is_omitted(store):
    clock = FixedClock.on(TODAY)
    anchor = datetime(2025, 3, 1, tzinfo=UTC)
    store.save_entitlement("u1", EntitlementWindow(anchor=anchor, window_length_days=7))
    checkin = HabitCheckIn(store, clock, gate=EntitlementGate(store, clock))

    with pytest.raises(EntitlementExpired):
        checkin.toggle("read")
    assert len(store.read_habit("read").history) == 0


def test_toggle_under_another_subject_is_rejected(store):
    clock = FixedClock.on(TODAY)
    anchor = datetime(2025, 3, 1, tzinfo=UTC)
    store.save_entitlement("u1", EntitlementWindow(anchor=anchor, window_length_days=7))
    store.save_entitlement("u2", EntitlementWindow(anchor=datetime(2025, 3, 10, tzinfo=UTC)))
    checkin = HabitCheckIn(store, clock, gate=EntitlementGate(store, clock))

    with pytest.raises(RecordNotFound):
        checkin.toggle("read", subject_id="u2")
    assert len(store.read_habit("read").history) == 0


def test_habit_owner_lookup(store):
    assert store.habit_owner("read") == "u1"
    with pytest.raises(RecordNotFound):
        store.habit_owner("nope")


# ---- goals ------------------------------------------------------------------------


def _goal(goal_id: str, current, target, **kw) -> Goal:
    kw.setdefault("deadline", date(2025, 3, 31))
    return Goal(
        id=goal_id, name=goal_id.title(), target_amount=target, current_amount=current, **kw
    )


def test_goal_metrics_with_no_goals():
    metrics = goal_metrics([])
    assert metrics == GoalMetrics(total=0, completed=0, average_progress=0)
    assert metrics.rate == 0


def test_goal_progress_is_capped_and_rounded_half_up():
    assert goal_progress(_goal("save", 1500, 1000)) == 100
    assert goal_progress(_goal("read", 1, 8)) == 13
    assert goal_progress(_goal("run", 0, 50)) == 0


def test_goal_metrics_average_uses_capped_progress():
    goals = [_goal("save", 1500, 1000), _goal("read", 5, 10), _goal("run", 1, 3)]

    metrics = goal_metrics(goals)

    # 100 + 50 + 33 over three goals
    assert metrics == GoalMetrics(total=3, completed=1, average_progress=61)
    assert metrics.rate == 33


def test_goal_amount_never_drops_below_zero():
    goal = _goal("save", 40, 100)
    assert goal.advanced(-100).current_amount == Decimal(0)
    assert goal.advanced("12.5").current_amount == Decimal("52.5")
    assert goal.with_amount(-3).current_amount == Decimal(0)
    assert goal.with_amount(70).current_amount == Decimal(70)


def test_goal_rejects_non_positive_target():
    with pytest.raises(InvalidRule):
        _goal("save", 0, 0)


def test_goal_windows_and_default_deadlines():
    assert goal_window(GoalPeriod.QUARTER, date(2025, 5, 20)) == (
        date(2025, 4, 1),
        date(2025, 6, 30),
    )
    assert default_deadline(GoalPeriod.MONTH, date(2024, 2, 3)) == date(2024, 2, 29)
    assert default_deadline(GoalPeriod.QUARTER, date(2025, 11, 1)) == date(2025, 12, 31)
    assert default_deadline(GoalPeriod.YEAR, TODAY) == date(2025, 12, 31)


def test_goals_in_window_filters_by_period_and_deadline():
    march = _goal("save", 0, 100)
    april = _goal("trip", 0, 100, deadline=date(2025, 4, 30))
    yearly = _goal("books", 0, 24, deadline=date(2025, 12, 31), period=GoalPeriod.YEAR)
    goals = [march, april, yearly]

    assert goals_in_window(goals, GoalPeriod.MONTH, TODAY) == [march]
    assert goals_in_window(goals, GoalPeriod.YEAR, TODAY) == [yearly]
    assert goals_in_window(goals, GoalPeriod.QUARTER, TODAY) == []

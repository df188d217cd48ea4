# ruff: noqa: I001
"""CLI for the ``obligation_engine`` package.

Command handlers (``cmd_*``) hold the small amount of glue between the engine
and the console and return a process exit code; the Typer commands below only
parse options and delegate. Environment variables (``DATABASE_URL``,
``OBLIGATIONS_*``) are loaded from a local ``.env`` using ``python-dotenv``
before any command runs.

Output is plain tab-separated text, one record per line, suitable for piping.
``tick`` is meant to be driven by cron or another external scheduler.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import typer
from dotenv import load_dotenv

from .aggregation import category_breakdown, debt_audit, monthly_summary
from .alerts import budget_alerts
from .clock import Clock, FixedClock, SystemClock
from .config import load_settings
from .dates import PeriodKey, parse_date
from .entitlement import EntitlementGate, evaluate, new_trial
from .errors import ObligationError
from .executor import RecurringChargeExecutor
from .habits import HabitCheckIn, ReportWindow, completion_rate, streak, window_bounds
from .logging_setup import configure_logging, get_logger
from .models import EntitlementDecision
from .persistence import SqlObligationStore

_logger = get_logger("obligation_engine.cli")


# ---- Small module-level helpers used by CLI commands -------------------------


def _open_store(database_url: str | None) -> SqlObligationStore:
    settings = load_settings()
    return SqlObligationStore(database_url or settings.require_database_url())


def _clock(today: str | None) -> Clock:
    """Wall clock in the configured zone, or a fixed date when replaying."""

    if today:
        return FixedClock.on(parse_date(today))
    return SystemClock(load_settings().timezone)


def _fmt(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _parse_budgets(raw: list[str]) -> dict[str, Decimal]:
    budgets: dict[str, Decimal] = {}
    for item in raw:
        category, sep, amount = item.rpartition("=")
        if not sep or not category.strip():
            raise ValueError(f"Invalid budget {item!r} (expected CATEGORY=AMOUNT)")
        try:
            budgets[category.strip()] = Decimal(amount.strip())
        except ArithmeticError:
            raise ValueError(f"Invalid budget amount in {item!r}") from None
    return budgets


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _print_decision(decision: EntitlementDecision) -> None:
    remaining = "" if decision.days_remaining is None else str(decision.days_remaining)
    print(f"{'active' if decision.active else 'read-only'}\t{remaining}")


# ---- Command handlers ---------------------------------------------------------


def cmd_tick(subject_id: str, *, database_url: str | None, today: str | None) -> int:
    """Run the recurring-charge executor once for every charge of a subject.

    Prints ``<rule_id>\\t<status>\\t<period>\\t<amount>`` per charge; period and
    amount are blank unless a charge was posted.
    """

    try:
        store = _open_store(database_url)
        executor = RecurringChargeExecutor(store, _clock(today))
        outcomes = executor.run_all(subject_id)
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"tick failed: {e}")

    for o in outcomes:
        period = str(o.charge.period) if o.charge else ""
        amount = _fmt(o.charge.amount) if o.charge else ""
        print(f"{o.rule_id}\t{o.status}\t{period}\t{amount}")
    return 0


def cmd_debt_audit(
    subject_id: str,
    *,
    database_url: str | None,
    start: str | None,
    end: str | None,
) -> int:
    try:
        lo = PeriodKey.parse(start) if start else None
        hi = PeriodKey.parse(end) if end else None
        store = _open_store(database_url)
        audit = debt_audit(
            store.read_history(subject_id),
            store.read_all_income(subject_id),
            start=lo,
            end=hi,
        )
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"debt audit failed: {e}")

    for row in audit.rows:
        print(f"{row.period}\t{_fmt(row.income)}\t{_fmt(row.spent)}\t{_fmt(row.balance)}")
    print(
        f"total\t{_fmt(audit.total_income)}\t{_fmt(audit.total_spent)}\t"
        f"{_fmt(audit.total_balance)}"
    )
    return 0


def cmd_monthly(
    subject_id: str,
    *,
    database_url: str | None,
    period: str | None,
    today: str | None,
    budgets: list[str],
) -> int:
    """Print the monthly summary, category shares and any budget alerts."""

    try:
        key = PeriodKey.parse(period) if period else PeriodKey.of(_clock(today).today())
        limits = _parse_budgets(budgets)
        store = _open_store(database_url)
        history = store.read_history(
            subject_id, start=key.previous().first_day, end=key.last_day
        )
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"monthly summary failed: {e}")

    summary = monthly_summary(history, key)
    print(f"period\t{summary.period}")
    print(f"total\t{_fmt(summary.total)}")
    print(f"previous\t{_fmt(summary.previous_total)}")
    print(f"diff\t{_fmt(summary.diff)}")
    print(f"incurred\t{_fmt(summary.total_incurred)}")
    for share in category_breakdown(history, key):
        print(f"category\t{share.category}\t{_fmt(share.amount)}\t{share.percentage:.1f}")
    for alert in budget_alerts(summary.by_category, limits):
        print(f"alert\t{alert.category}\t{alert.level}\t{_fmt(alert.spent)}\t{_fmt(alert.budget)}")
    return 0


def cmd_habit_report(
    subject_id: str,
    *,
    database_url: str | None,
    window: ReportWindow,
    today: str | None,
) -> int:
    try:
        reference = _clock(today).today()
        store = _open_store(database_url)
        habits = store.list_habits(subject_id)
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"habit report failed: {e}")

    start, end = window_bounds(window, reference)
    for habit in habits:
        rate = completion_rate([habit], start, end)
        print(f"{habit.id}\t{habit.name}\t{rate.completed}/{rate.scheduled}\t{rate.percent}")
    overall = completion_rate(habits, start, end)
    print(f"total\t{start}..{end}\t{overall.completed}/{overall.scheduled}\t{overall.percent}")
    return 0


def cmd_streak(habit_id: str, *, database_url: str | None, today: str | None) -> int:
    try:
        reference = _clock(today).today()
        habit = _open_store(database_url).read_habit(habit_id)
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"streak failed: {e}")

    print(streak(habit.history, reference))
    return 0


def cmd_toggle_habit(
    habit_id: str,
    *,
    subject_id: str,
    database_url: str | None,
    day: str | None,
    today: str | None,
) -> int:
    """Flip a habit's completion for a date; refused once the subject is read-only."""

    try:
        clock = _clock(today)
        target = parse_date(day) if day else None
        store = _open_store(database_url)
        checkin = HabitCheckIn(store, clock, gate=EntitlementGate(store, clock))
        value = checkin.toggle(habit_id, target, subject_id=subject_id)
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"toggle failed: {e}")

    print(value)
    return 0


def cmd_entitlement(subject_id: str, *, database_url: str | None, today: str | None) -> int:
    try:
        gate = EntitlementGate(_open_store(database_url), _clock(today))
        decision = gate.check(subject_id)
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"entitlement check failed: {e}")

    _print_decision(decision)
    return 0


def cmd_start_trial(subject_id: str, *, database_url: str | None, today: str | None) -> int:
    """Open a trial window for a subject that has none, then print its state.

    The window length comes from ``OBLIGATIONS_TRIAL_DAYS``; an existing window
    is left as it is.
    """

    try:
        clock = _clock(today)
        settings = load_settings()
        store = SqlObligationStore(database_url or settings.require_database_url())
        window = store.read_entitlement(subject_id)
        if window is None:
            window = new_trial(clock.now(), settings=settings)
            store.save_entitlement(subject_id, window)
            _logger.info(
                "entitlement:trial_started subject_id=%s days=%d",
                subject_id,
                window.window_length_days,
            )
        decision = evaluate(window, clock.now())
    except (ObligationError, ValueError, RuntimeError) as e:
        return _fail(f"start trial failed: {e}")

    _print_decision(decision)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Recurring charges, habit reports and trial entitlement checks. "
        "Loads DATABASE_URL and OBLIGATIONS_* settings from a local .env."
    ),
)


def _exit(code: int) -> None:
    if code != 0:
        raise typer.Exit(code)


@app.command("tick")
def tick_cmd(
    subject: str = typer.Option(..., help="Subject (user) whose charges are ticked."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Evaluate as of this date (YYYY-MM-DD)."),
) -> None:
    """Post every recurring charge that is due and not yet posted this month."""
    _exit(cmd_tick(subject, database_url=database_url, today=today))


@app.command("debt-audit")
def debt_audit_cmd(
    subject: str = typer.Option(..., help="Subject (user) to audit."),
    start: str | None = typer.Option(None, help="First period, inclusive (YYYY-MM)."),
    end: str | None = typer.Option(None, help="Last period, inclusive (YYYY-MM)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Monthly income minus spending, most recent month first."""
    _exit(cmd_debt_audit(subject, database_url=database_url, start=start, end=end))


@app.command("monthly")
def monthly_cmd(
    subject: str = typer.Option(..., help="Subject (user) to summarize."),
    period: str | None = typer.Option(None, help="Month to summarize (YYYY-MM)."),
    budget: list[str] = typer.Option(
        [], help="Budget limit as CATEGORY=AMOUNT; repeat for several categories."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Reference date when --period is omitted."),
) -> None:
    """Totals per category for one month and the change against the previous month."""
    _exit(
        cmd_monthly(
            subject, database_url=database_url, period=period, today=today, budgets=budget
        )
    )


@app.command("habit-report")
def habit_report_cmd(
    subject: str = typer.Option(..., help="Subject (user) whose habits are reported."),
    window: ReportWindow = typer.Option(ReportWindow.WEEK, help="Report window."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Reference date (YYYY-MM-DD)."),
) -> None:
    """Completion rate per habit and overall for the current week, month or year."""
    _exit(cmd_habit_report(subject, database_url=database_url, window=window, today=today))


@app.command("streak")
def streak_cmd(
    habit: str = typer.Option(..., help="Habit identifier."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Reference date (YYYY-MM-DD)."),
) -> None:
    _exit(cmd_streak(habit, database_url=database_url, today=today))


@app.command("toggle-habit")
def toggle_habit_cmd(
    habit: str = typer.Option(..., help="Habit identifier."),
    subject: str = typer.Option(..., help="Owner of the habit; checked for entitlement."),
    day: str | None = typer.Option(None, "--date", help="Date to toggle (default today)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Reference date (YYYY-MM-DD)."),
) -> None:
    _exit(
        cmd_toggle_habit(
            habit, subject_id=subject, database_url=database_url, day=day, today=today
        )
    )


@app.command("entitlement")
def entitlement_cmd(
    subject: str = typer.Option(..., help="Subject (user) to check."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Evaluate as of this date (YYYY-MM-DD)."),
) -> None:
    """Print ``active`` or ``read-only`` and the days left in the trial."""
    _exit(cmd_entitlement(subject, database_url=database_url, today=today))


@app.command("start-trial")
def start_trial_cmd(
    subject: str = typer.Option(..., help="Subject (user) starting a trial."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    today: str | None = typer.Option(None, help="Start as of this date (YYYY-MM-DD)."),
) -> None:
    """Open an OBLIGATIONS_TRIAL_DAYS trial for a subject without one."""
    _exit(cmd_start_trial(subject, database_url=database_url, today=today))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from None
    configure_logging(settings.log_level)
    _logger.debug("cli:start")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m obligation_engine.cli`
    main()

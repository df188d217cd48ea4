from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest
from typer.testing import CliRunner

import obligation_engine.cli as cli_mod
from obligation_engine.cli import app
from obligation_engine.dates import PeriodKey
from obligation_engine.ledger import HabitHistory
from obligation_engine.models import (
    EntitlementWindow,
    Habit,
    ObligationRule,
    RecurringCharge,
    Transaction,
)
from obligation_engine.persistence import SqlObligationStore
from tests.helpers.db import bootstrap_sqlite_db

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep log lines out of the captured command output.
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **k: None)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "cli.db")
    store = SqlObligationStore(url)
    store.save_charge(
        "u1",
        RecurringCharge(
            id="rent",
            name="Rent",
            amount=Decimal("1200"),
            category="Housing",
            anchor_day=5,
            created_on=date(2025, 1, 1),
        ),
    )
    store.add_transaction("u1", Transaction(Decimal("300"), "Food", date(2025, 2, 10)))
    store.add_transaction("u1", Transaction(Decimal("100"), "Food", date(2025, 3, 2)))
    store.record_income("u1", PeriodKey(2025, 2), Decimal("1000"))
    store.record_income("u1", PeriodKey(2025, 3), Decimal("1000"))
    store.save_habit(
        "u1",
        Habit(
            rule=ObligationRule("read"),
            name="Read",
            history=HabitHistory({date(2025, 3, 8): 100, date(2025, 3, 9): 100}),
        ),
    )
    return url


def _lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line]


def test_tick_then_debt_audit(db_url):
    result = runner.invoke(
        app, ["tick", "--subject", "u1", "--database-url", db_url, "--today", "2025-03-06"]
    )
    assert result.exit_code == 0, result.output
    assert _lines(result.output) == ["rent\tposted\t2025-03\t1200.00"]

    again = runner.invoke(
        app, ["tick", "--subject", "u1", "--database-url", db_url, "--today", "2025-03-20"]
    )
    assert _lines(again.output) == ["rent\talready_posted\t\t"]

    audit = runner.invoke(app, ["debt-audit", "--subject", "u1", "--database-url", db_url])
    assert audit.exit_code == 0, audit.output
    assert _lines(audit.output) == [
        "2025-03\t1000.00\t1300.00\t-300.00",
        "2025-02\t1000.00\t300.00\t700.00",
        "total\t2000.00\t1600.00\t400.00",
    ]


def test_debt_audit_rejects_malformed_period(db_url):
    result = runner.invoke(
        app, ["debt-audit", "--subject", "u1", "--database-url", db_url, "--start", "2025-3"]
    )
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_monthly_with_budget_alerts(db_url):
    result = runner.invoke(
        app,
        [
            "monthly",
            "--subject",
            "u1",
            "--database-url",
            db_url,
            "--period",
            "2025-03",
            "--budget",
            "Food=120",
        ],
    )
    assert result.exit_code == 0, result.output
    lines = _lines(result.output)
    assert "total\t100.00" in lines
    assert "previous\t300.00" in lines
    assert "diff\t-200.00" in lines
    assert "category\tFood\t100.00\t100.0" in lines
    assert "alert\tFood\twarning\t100.00\t120.00" in lines


def test_habit_report_and_streak(db_url):
    report = runner.invoke(
        app,
        ["habit-report", "--subject", "u1", "--database-url", db_url, "--today", "2025-03-09"],
    )
    assert report.exit_code == 0, report.output
    # Week of 2025-03-03..09: seven daily slots, two completed.
    assert _lines(report.output) == [
        "read\tRead\t2/7\t29",
        "total\t2025-03-03..2025-03-09\t2/7\t29",
    ]

    result = runner.invoke(
        app, ["streak", "--habit", "read", "--database-url", db_url, "--today", "2025-03-10"]
    )
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "2"


def test_toggle_habit_is_gated_by_entitlement(db_url):
    args = ["toggle-habit", "--habit", "read", "--subject", "u1", "--database-url", db_url]

    ok = runner.invoke(app, [*args, "--today", "2025-03-10"])
    assert ok.exit_code == 0, ok.output
    assert ok.output.strip() == "100"

    SqlObligationStore(db_url).save_entitlement(
        "u1", EntitlementWindow(anchor=datetime(2025, 3, 1, tzinfo=UTC), window_length_days=7)
    )
    status = runner.invoke(
        app, ["entitlement", "--subject", "u1", "--database-url", db_url, "--today", "2025-03-10"]
    )
    assert _lines(status.output) == ["read-only\t0"]

    denied = runner.invoke(app, [*args, "--today", "2025-03-10", "--date", "2025-03-09"])
    assert denied.exit_code == 1
    assert "Error:" in denied.output
    assert SqlObligationStore(db_url).read_habit("read").history.is_complete(date(2025, 3, 9))


def test_toggle_habit_rejects_a_subject_that_does_not_own_it(db_url):
    store = SqlObligationStore(db_url)
    store.save_entitlement(
        "u1", EntitlementWindow(anchor=datetime(2025, 3, 1, tzinfo=UTC), window_length_days=7)
    )
    assert store.habit_owner("read") == "u1"

    result = runner.invoke(
        app,
        [
            "toggle-habit",
            "--habit",
            "read",
            "--subject",
            "u2",
            "--database-url",
            db_url,
            "--today",
            "2025-03-12",
        ],
    )
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert not store.read_habit("read").history.is_complete(date(2025, 3, 12))


def test_missing_database_url_fails_cleanly():
    result = runner.invoke(app, ["tick", "--subject", "u1"])
    assert result.exit_code == 1
    assert "DATABASE_URL" in result.output


def test_database_url_from_environment(db_url, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", db_url)
    result = runner.invoke(app, ["entitlement", "--subject", "u1"])
    assert result.exit_code == 0, result.output
    assert _lines(result.output) == ["active\t"]


def test_start_trial_uses_configured_length(db_url, monkeypatch):
    monkeypatch.setenv("OBLIGATIONS_TRIAL_DAYS", "14")
    started = runner.invoke(
        app, ["start-trial", "--subject", "u9", "--database-url", db_url, "--today", "2025-03-01"]
    )
    assert started.exit_code == 0, started.output
    assert _lines(started.output) == ["active\t14"]
    assert SqlObligationStore(db_url).read_entitlement("u9").window_length_days == 14

    # Ten days in, a default seven-day trial would already be read-only.
    status = runner.invoke(
        app, ["entitlement", "--subject", "u9", "--database-url", db_url, "--today", "2025-03-11"]
    )
    assert _lines(status.output) == ["active\t4"]


def test_start_trial_keeps_an_existing_window(db_url):
    args = ["start-trial", "--subject", "u9", "--database-url", db_url]
    runner.invoke(app, [*args, "--today", "2025-03-01"])
    again = runner.invoke(app, [*args, "--today", "2025-03-11"])
    assert again.exit_code == 0, again.output
    assert _lines(again.output) == ["read-only\t0"]


def test_log_level_setting_reaches_configure_logging(db_url, monkeypatch):
    seen: list[object] = []
    monkeypatch.setattr(cli_mod, "configure_logging", lambda level=None, **k: seen.append(level))
    monkeypatch.setenv("OBLIGATIONS_LOG_LEVEL", "WARNING")

    result = runner.invoke(app, ["entitlement", "--subject", "u1", "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert seen == ["WARNING"]


def test_invalid_setting_fails_before_the_command_runs(db_url, monkeypatch):
    monkeypatch.setenv("OBLIGATIONS_TRIAL_DAYS", "seven")
    result = runner.invoke(app, ["entitlement", "--subject", "u1", "--database-url", db_url])
    assert result.exit_code == 1
    assert "OBLIGATIONS_TRIAL_DAYS" in result.output

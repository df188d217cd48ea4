from __future__ import annotations

import logging

import pytest

from obligation_engine.config import DEFAULT_TIMEZONE, DEFAULT_TRIAL_DAYS, load_settings
from obligation_engine.logging_setup import parse_level


def test_defaults_when_environment_is_empty():
    settings = load_settings({})
    assert settings.database_url is None
    assert settings.log_level is None
    assert settings.trial_days == DEFAULT_TRIAL_DAYS == 7
    assert settings.timezone == DEFAULT_TIMEZONE == "UTC"


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///x.db")
    monkeypatch.setenv("OBLIGATIONS_TRIAL_DAYS", "14")
    monkeypatch.setenv("OBLIGATIONS_TIMEZONE", "Asia/Ho_Chi_Minh")

    settings = load_settings()

    assert settings.require_database_url() == "sqlite+pysqlite:///x.db"
    assert settings.trial_days == 14
    assert settings.timezone == "Asia/Ho_Chi_Minh"


def test_missing_database_url_is_reported():
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        load_settings({}).require_database_url()


@pytest.mark.parametrize(
    ("env", "name"),
    [
        ({"OBLIGATIONS_TRIAL_DAYS": "seven"}, "OBLIGATIONS_TRIAL_DAYS"),
        ({"OBLIGATIONS_TRIAL_DAYS": "-1"}, "OBLIGATIONS_TRIAL_DAYS"),
        ({"OBLIGATIONS_TIMEZONE": "Mars/Olympus"}, "OBLIGATIONS_TIMEZONE"),
    ],
)
def test_invalid_values_name_the_variable(env, name):
    with pytest.raises(ValueError, match=name):
        load_settings(env)


def test_log_level_parsing():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("30") == 30
    assert parse_level(None) == logging.INFO
    with pytest.raises(ValueError):
        parse_level("loud")


def test_log_level_is_read_into_settings():
    assert load_settings({"OBLIGATIONS_LOG_LEVEL": " debug "}).log_level == "debug"
    with pytest.raises(ValueError, match="OBLIGATIONS_LOG_LEVEL"):
        load_settings({"OBLIGATIONS_LOG_LEVEL": "loud"})

"""Runtime settings read from the environment.

Entrypoints load a local ``.env`` (``python-dotenv``, never overriding variables
already set) before calling :func:`load_settings`. Recognized variables:

- ``DATABASE_URL``: SQLAlchemy URL for the relational store.
- ``OBLIGATIONS_LOG_LEVEL``: logging level name or number.
- ``OBLIGATIONS_TRIAL_DAYS``: default trial window length in days (7).
- ``OBLIGATIONS_TIMEZONE``: IANA zone used to derive "today" (``UTC``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .logging_setup import parse_level

DEFAULT_TRIAL_DAYS = 7
DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None
    log_level: str | None
    trial_days: int
    timezone: str

    def require_database_url(self) -> str:
        if not self.database_url:
            raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
        return self.database_url


def _trial_days(raw: str | None) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_TRIAL_DAYS
    try:
        days = int(raw)
    except ValueError:
        raise ValueError(f"OBLIGATIONS_TRIAL_DAYS must be an integer, got {raw!r}") from None
    if days < 0:
        raise ValueError(f"OBLIGATIONS_TRIAL_DAYS must not be negative, got {days}")
    return days


def _log_level(raw: str | None) -> str | None:
    level = (raw or "").strip() or None
    if level is not None:
        try:
            parse_level(level)
        except ValueError:
            raise ValueError(f"OBLIGATIONS_LOG_LEVEL is not a logging level: {level!r}") from None
    return level


def _timezone(raw: str | None) -> str:
    name = (raw or "").strip() or DEFAULT_TIMEZONE
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"OBLIGATIONS_TIMEZONE is not a known zone: {name!r}") from None
    return name


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``env`` (defaults to ``os.environ``)."""

    source = os.environ if env is None else env
    url = (source.get("DATABASE_URL") or "").strip() or None
    return Settings(
        database_url=url,
        log_level=_log_level(source.get("OBLIGATIONS_LOG_LEVEL")),
        trial_days=_trial_days(source.get("OBLIGATIONS_TRIAL_DAYS")),
        timezone=_timezone(source.get("OBLIGATIONS_TIMEZONE")),
    )


__all__ = ["Settings", "load_settings", "DEFAULT_TRIAL_DAYS", "DEFAULT_TIMEZONE"]

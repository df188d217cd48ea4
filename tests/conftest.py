"""Pytest configuration for test isolation.

The CLI loads a ``.env`` from the current working directory and every entry
point reads ``DATABASE_URL`` / ``OBLIGATIONS_*`` from the environment. A
developer's shell or a stray ``.env`` in the repo would otherwise leak into
tests, so an autouse fixture clears those variables and runs each test from
its own temporary directory. Cached engines are disposed afterwards so SQLite
files under ``tmp_path`` are released.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

_ENV_VARS = (
    "DATABASE_URL",
    "OBLIGATIONS_LOG_LEVEL",
    "OBLIGATIONS_TRIAL_DAYS",
    "OBLIGATIONS_TIMEZONE",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    dispose_engines()

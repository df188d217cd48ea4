"""DB helpers for tests: bootstrap a temporary SQLite DB with the ``ob_*`` schema."""

from __future__ import annotations

import os
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from sqlalchemy import event
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    # Enforce FKs so ON DELETE behavior matches Postgres
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    Base.metadata.create_all(bind=engine)
    _assert_tables_created(url)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def _assert_tables_created(database_url: str) -> None:
    """Quick sanity check: every ORM table exists in the SQLite file."""

    expected = set(Base.metadata.tables)
    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            sql_text("SELECT name FROM sqlite_master WHERE type = 'table'")
        ).fetchall()
        got = {row[0] for row in rows}
    missing = expected - got
    assert not missing, f"schema bootstrap incomplete: missing={missing}"

"""DB helpers for tests: bootstrap a temporary SQLite DB and seed collections."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from db.client import init_schema, session_scope
from db.models.finance import FtCollection
from sqlalchemy import text as sql_text

from finance_tracker.persistence import load_collections, save_collection


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    # Ensure parent exists before engine creation attempts any writes
    db_file.parent.mkdir(parents=True, exist_ok=True)
    init_schema(database_url=url)
    _assert_collections_schema_in_sync(url)
    return url


def seed_collections(*, database_url: str, collections: Mapping[str, Any]) -> None:
    """Store each ``{key: payload}`` as if the app had saved it."""

    with session_scope(database_url=database_url) as session:
        for key, value in collections.items():
            save_collection(session, key, value)


def stored_collections(database_url: str) -> dict[str, Any]:
    with session_scope(database_url=database_url) as session:
        return load_collections(session)


def _assert_collections_schema_in_sync(database_url: str) -> None:
    """Quick sanity check: ORM column set matches the SQLite table column set."""

    expected = {c.name for c in FtCollection.__table__.columns}
    with session_scope(database_url=database_url) as session:
        rows = session.execute(sql_text("PRAGMA table_info('ft_collections')")).fetchall()
        got = {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)
    missing = expected - got
    extra = got - expected
    assert not missing and not extra, (
        f"ft_collections schema drift: missing={missing or '∅'}, extra={extra or '∅'}"
    )

"""Pytest configuration for test isolation.

The column-mapping cache persists confirmed mappings under a project-relative
directory (``./.cache``). When tests run in the same working tree, those files
would leak between tests (a later test could pick up a mapping confirmed by an
earlier one and skip auto-detection), so every test gets its own cache root.

The shared SQLAlchemy engine is module-global; it is reset around each test so
tests can bind their own file-backed SQLite database. Saves are made
synchronous (no debounce timer) unless a test opts in.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import reset_engine

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Force a per-test cache root so tests don't share on-disk state.

    The application reads ``FT_CACHE_DIR`` (when set) to override the default
    ``./.cache`` location. We point it at the test's own temporary directory.
    """

    cache_root = tmp_path / "cache"
    # Ensure the directory exists to make behavior explicit and help debugging.
    cache_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("FT_CACHE_DIR", os.fspath(cache_root))
    monkeypatch.setenv("FT_SAVE_DEBOUNCE_SECONDS", "0")
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture(autouse=True)
def _fresh_engine() -> Iterator[None]:
    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """URL of an initialized, empty SQLite database for this test."""

    return bootstrap_sqlite_db(tmp_path / "ft-test.db")

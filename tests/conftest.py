"""Shared pytest fixtures for archive status checker tests.

Provides temporary and in-memory databases, a scripted status provider
and a checker config with retry waits disabled.  Response builders live
in tests/helpers.py.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from ingestcheck.database import Database
from ingestcheck.models import CheckerConfig
from tests.helpers import BASE_URL, FakeStatusProvider


@pytest.fixture
def tmp_db(tmp_path: Path) -> Database:
    """Create a temporary SQLite database (file-based for WAL support)."""
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    yield db
    db.close()


@pytest.fixture
def in_memory_db():
    """Fresh initialized in-memory SQLite database.

    Uses Database.__new__() to bypass __init__ path handling.
    Calls real Database._setup_schema() to test actual schema setup.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    db = Database.__new__(Database)  # Skip __init__ path handling
    db.conn = conn
    db.db_path = ":memory:"
    db._setup_schema()
    yield db
    conn.close()


@pytest.fixture
def checker_config(tmp_path: Path) -> CheckerConfig:
    """CheckerConfig pointing at a temp database, with no retry waits."""
    return CheckerConfig(
        db_path=str(tmp_path / "test.db"),
        status_base_url=BASE_URL,
        persistence_retry_wait_seconds=0,
        api_token="test-token",
    )


@pytest.fixture
def provider() -> FakeStatusProvider:
    """Empty scripted status provider; tests fill in ``responses``."""
    return FakeStatusProvider()

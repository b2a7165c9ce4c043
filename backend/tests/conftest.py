"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database per test for isolation.
"""
import pytest
import sqlite3
import sys
import os
from datetime import datetime
from zoneinfo import ZoneInfo

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from models import AccountContext

TAIPEI = ZoneInfo("Asia/Taipei")


def make_ctx(*args, tz=TAIPEI) -> AccountContext:
    """AccountContext at a local wall-clock time, e.g. make_ctx(2025, 9, 11, 8, 0)."""
    return AccountContext.at(tz, datetime(*args, tzinfo=tz))


@pytest.fixture
def ctx():
    """Thursday 2025-09-11 08:00 in Taipei."""
    return make_ctx(2025, 9, 11, 8, 0)


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            scheduled_time TEXT NOT NULL,
            is_special INTEGER DEFAULT 0,
            recurrence_rule TEXT,
            is_active INTEGER DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE occurrences (
            id INTEGER PRIMARY KEY,
            task_id TEXT NOT NULL REFERENCES tasks (id),
            occurrence_time TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (task_id, occurrence_time)
        );

        CREATE TABLE reminders (
            id INTEGER PRIMARY KEY,
            task_id TEXT NOT NULL REFERENCES tasks (id),
            occurrence_time TEXT NOT NULL,
            reminder_type TEXT NOT NULL,
            scheduled_time TEXT NOT NULL,
            sent_at TEXT,
            created_at TEXT NOT NULL,
            UNIQUE (task_id, occurrence_time, reminder_type)
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


class FakeMessenger:
    """Records outgoing LINE messages instead of calling the API."""

    def __init__(self):
        self.pushed = []
        self.replied = []

    def push_text(self, user_id, text):
        self.pushed.append((user_id, text))

    def reply_text(self, reply_token, text):
        self.replied.append((reply_token, text))

    def close(self):
        pass


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def app_client(test_db, messenger, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations and swaps in a fake messenger.
    """
    from fastapi.testclient import TestClient
    import config
    import main

    monkeypatch.setattr(main, "messenger", messenger)
    monkeypatch.setattr(config, "CRON_API_KEY", None)

    with TestClient(main.app) as client:
        yield client

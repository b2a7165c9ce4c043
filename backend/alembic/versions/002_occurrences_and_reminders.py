"""Add occurrences and reminders tables

Revision ID: 002
Revises: 001
Create Date: 2025-09-03

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # One row per expanded recurring instance; the unique key makes expansion idempotent
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS occurrences (
            id INTEGER PRIMARY KEY,
            task_id TEXT NOT NULL REFERENCES tasks (id),
            occurrence_time TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (task_id, occurrence_time)
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS reminders (
            id INTEGER PRIMARY KEY,
            task_id TEXT NOT NULL REFERENCES tasks (id),
            occurrence_time TEXT NOT NULL,
            reminder_type TEXT NOT NULL,
            scheduled_time TEXT NOT NULL,
            sent_at TEXT,
            created_at TEXT NOT NULL,
            UNIQUE (task_id, occurrence_time, reminder_type)
        )
    """))
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders (sent_at, scheduled_time)"
    ))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS idx_reminders_due"))
    conn.execute(text("DROP TABLE IF EXISTS reminders"))
    conn.execute(text("DROP TABLE IF EXISTS occurrences"))

"""Initial schema - tasks table

Revision ID: 001
Revises: None
Create Date: 2025-09-01

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Instants are stored as UTC ISO-8601 strings
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            scheduled_time TEXT NOT NULL,
            is_special INTEGER DEFAULT 0,
            recurrence_rule TEXT,
            is_active INTEGER DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS idx_tasks_active_time ON tasks (is_active, scheduled_time)"
    ))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS idx_tasks_active_time"))
    conn.execute(text("DROP TABLE IF EXISTS tasks"))

import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from contextlib import contextmanager

import config
from models import (
    Occurrence,
    ReminderSpec,
    ReminderType,
    Task,
    TaskSpecification,
    dump_recurrence,
    load_recurrence,
)

DATABASE_PATH = config.DATABASE_PATH

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def to_db_time(value: datetime) -> str:
    """Serialize an aware instant as a UTC ISO string.

    Every instant column uses this form, so string order is time order.
    """
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def row_to_task(row) -> Task:
    """Convert a database row to a Task model.

    Raises pydantic.ValidationError if the stored recurrence rule is malformed.
    """
    return Task(
        id=row["id"],
        title=row["title"],
        scheduled_time=from_db_time(row["scheduled_time"]),
        is_special=bool(row["is_special"]),
        recurrence=load_recurrence(row["recurrence_rule"]),
        active=bool(row["is_active"]),
        created_at=from_db_time(row["created_at"]),
    )


def _row_to_reminder(row) -> ReminderSpec:
    return ReminderSpec(
        id=row["id"],
        task_id=row["task_id"],
        occurrence_time=from_db_time(row["occurrence_time"]),
        reminder_type=ReminderType(row["reminder_type"]),
        scheduled_time=from_db_time(row["scheduled_time"]),
        sent_at=from_db_time(row["sent_at"]),
    )


# Task operations

def create_task_db(spec: TaskSpecification, task_id: Optional[str] = None) -> Task:
    """Persist a parsed TaskSpecification as a new active task."""
    task_id = task_id or str(uuid.uuid4())
    created_at = to_db_time(datetime.now(timezone.utc))
    with get_db() as conn:
        conn.execute(
            """INSERT INTO tasks
               (id, title, scheduled_time, is_special, recurrence_rule, is_active, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 1, ?, ?)""",
            (
                task_id,
                spec.title,
                to_db_time(spec.scheduled_time),
                int(spec.is_special),
                dump_recurrence(spec.recurrence),
                created_at,
                created_at,
            )
        )
        conn.commit()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return row_to_task(row)


def get_task_db(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row:
            return row_to_task(row)
    return None


def list_active_tasks(
    recurring: Optional[bool] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Task]:
    """Active tasks ordered by scheduled time, optionally filtered.

    start/end bound scheduled_time inclusively.
    """
    query = "SELECT * FROM tasks WHERE is_active = 1"
    params: list = []
    if recurring is True:
        query += " AND recurrence_rule IS NOT NULL AND recurrence_rule != ''"
    elif recurring is False:
        query += " AND (recurrence_rule IS NULL OR recurrence_rule = '')"
    if start is not None:
        query += " AND scheduled_time >= ?"
        params.append(to_db_time(start))
    if end is not None:
        query += " AND scheduled_time <= ?"
        params.append(to_db_time(end))
    query += " ORDER BY scheduled_time, created_at"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [row_to_task(row) for row in rows]


def list_active_task_rows(recurring: Optional[bool] = None) -> list[sqlite3.Row]:
    """Raw rows, for batch jobs that must survive one malformed task."""
    query = "SELECT * FROM tasks WHERE is_active = 1"
    if recurring is True:
        query += " AND recurrence_rule IS NOT NULL AND recurrence_rule != ''"
    elif recurring is False:
        query += " AND (recurrence_rule IS NULL OR recurrence_rule = '')"
    query += " ORDER BY scheduled_time, created_at"
    with get_db() as conn:
        return conn.execute(query).fetchall()


def _encode_field(field: str, value):
    if field == "recurrence_rule":
        return dump_recurrence(value) if not isinstance(value, str) else value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return to_db_time(value)
    return value


def update_task_db(task_id: str, **updates) -> Optional[Task]:
    """
    Update an active task with any fields provided.
    Only updates fields that differ from current values.

    Args:
        task_id: Task ID to update
        **updates: Column names and values (title, scheduled_time, is_special, recurrence_rule)
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND is_active = 1", (task_id,)
        ).fetchone()
        if not row:
            return None

        keys = row.keys()

        changes = {}
        for field, new_value in updates.items():
            if field not in keys or field in ("id", "created_at", "updated_at"):
                continue
            encoded = _encode_field(field, new_value)
            if encoded != row[field]:
                changes[field] = encoded

        if changes:
            changes["updated_at"] = to_db_time(datetime.now(timezone.utc))
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return row_to_task(updated_row)


def soft_delete_task_db(task_id: str) -> bool:
    """Mark a task inactive. Rows are never removed."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE tasks SET is_active = 0, updated_at = ? WHERE id = ? AND is_active = 1",
            (to_db_time(datetime.now(timezone.utc)), task_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def find_tasks_by_title_db(title: str) -> list[Task]:
    """Active tasks whose title equals ``title``, else those containing it (case-insensitive)."""
    needle = title.lower()
    tasks = list_active_tasks()
    exact = [task for task in tasks if task.title.lower() == needle]
    if exact:
        return exact
    return [task for task in tasks if needle in task.title.lower()]


# Occurrence and reminder operations

def create_occurrence_if_absent(task_id: str, occurrence_time: datetime) -> bool:
    """Record an expanded occurrence. Returns False if it was already recorded."""
    with get_db() as conn:
        cursor = conn.execute(
            """INSERT OR IGNORE INTO occurrences (task_id, occurrence_time, created_at)
               VALUES (?, ?, ?)""",
            (task_id, to_db_time(occurrence_time), to_db_time(datetime.now(timezone.utc)))
        )
        conn.commit()
        return cursor.rowcount == 1


def create_reminder_if_absent(
    occurrence: Occurrence,
    reminder_type: ReminderType,
    scheduled_time: datetime,
) -> ReminderSpec:
    """Insert a reminder unless one exists for (occurrence, type); return the stored row."""
    key = (
        occurrence.task_id,
        to_db_time(occurrence.occurrence_time),
        ReminderType(reminder_type).value,
    )
    with get_db() as conn:
        conn.execute(
            """INSERT OR IGNORE INTO reminders
               (task_id, occurrence_time, reminder_type, scheduled_time, sent_at, created_at)
               VALUES (?, ?, ?, ?, NULL, ?)""",
            key + (to_db_time(scheduled_time), to_db_time(datetime.now(timezone.utc)))
        )
        conn.commit()
        row = conn.execute(
            """SELECT * FROM reminders
               WHERE task_id = ? AND occurrence_time = ? AND reminder_type = ?""",
            key
        ).fetchone()
        return _row_to_reminder(row)


def list_reminders_for_task(task_id: str) -> list[ReminderSpec]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM reminders WHERE task_id = ? ORDER BY scheduled_time, id",
            (task_id,)
        ).fetchall()
        return [_row_to_reminder(row) for row in rows]


def list_unsent_reminders_due_by(instant: datetime) -> list[ReminderSpec]:
    """Unsent reminders of active tasks scheduled at or before ``instant``."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT r.* FROM reminders r
               JOIN tasks t ON t.id = r.task_id
               WHERE r.sent_at IS NULL AND r.scheduled_time <= ? AND t.is_active = 1
               ORDER BY r.scheduled_time, r.id""",
            (to_db_time(instant),)
        ).fetchall()
        return [_row_to_reminder(row) for row in rows]


def list_reminders_of_type_between(
    reminder_type: ReminderType,
    start: datetime,
    end: datetime,
) -> list[ReminderSpec]:
    """Reminders of one type, sent or not, for active-task occurrences in [start, end)."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT r.* FROM reminders r
               JOIN tasks t ON t.id = r.task_id
               WHERE r.reminder_type = ? AND r.occurrence_time >= ? AND r.occurrence_time < ?
               AND t.is_active = 1
               ORDER BY r.occurrence_time, r.id""",
            (ReminderType(reminder_type).value, to_db_time(start), to_db_time(end))
        ).fetchall()
        return [_row_to_reminder(row) for row in rows]


def claim_reminder_sent(reminder_id: int, sent_at: datetime) -> bool:
    """Atomically mark a reminder sent.

    Returns True only for the caller whose update moved sent_at from NULL;
    every other caller gets False and must not dispatch.
    """
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE reminders SET sent_at = ? WHERE id = ? AND sent_at IS NULL",
            (to_db_time(sent_at), reminder_id)
        )
        conn.commit()
        return cursor.rowcount == 1


def discard_pending_reminders(task_id: str, after: Optional[datetime] = None) -> int:
    """Drop a task's unsent reminders and its occurrences later than ``after``.

    Used before rescheduling so stale reminders never fire. With no
    ``after`` every recorded occurrence goes. Returns the number of
    reminders removed.
    """
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM reminders WHERE task_id = ? AND sent_at IS NULL",
            (task_id,)
        )
        if after is None:
            conn.execute("DELETE FROM occurrences WHERE task_id = ?", (task_id,))
        else:
            conn.execute(
                "DELETE FROM occurrences WHERE task_id = ? AND occurrence_time > ?",
                (task_id, to_db_time(after))
            )
        conn.commit()
        return cursor.rowcount


def cleanup_old_tasks(now: datetime, retention_days: Optional[int] = None) -> dict:
    """Deactivate one-shot tasks more than a day past and purge old sent reminders."""
    if retention_days is None:
        retention_days = config.SENT_REMINDER_RETENTION_DAYS
    stale_before = to_db_time(now - timedelta(days=1))
    retention_cutoff = to_db_time(now - timedelta(days=retention_days))
    with get_db() as conn:
        tasks = conn.execute(
            """UPDATE tasks SET is_active = 0, updated_at = ?
               WHERE is_active = 1
               AND (recurrence_rule IS NULL OR recurrence_rule = '')
               AND scheduled_time < ?""",
            (to_db_time(now), stale_before)
        )
        reminders = conn.execute(
            "DELETE FROM reminders WHERE sent_at IS NOT NULL AND sent_at < ?",
            (retention_cutoff,)
        )
        occurrences = conn.execute(
            "DELETE FROM occurrences WHERE occurrence_time < ?",
            (retention_cutoff,)
        )
        conn.commit()
        return {
            "tasks_deactivated": tasks.rowcount,
            "reminders_deleted": reminders.rowcount,
            "occurrences_deleted": occurrences.rowcount,
        }

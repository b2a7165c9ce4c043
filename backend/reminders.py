"""Reminder policy and the scheduler tick jobs.

compute_reminders is pure: it turns one occurrence into the reminders it
should get, given "now". The remaining functions persist those reminders
and deliver due ones; they are what the cron endpoints call.
"""
import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional

from pydantic import ValidationError

import agenda
import config
import database
import messages
from command_parser import CommandKind
from models import AccountContext, Occurrence, ReminderSpec, ReminderType, Task, as_utc
from recurrence import default_horizon, expand_recurring_task

logger = logging.getLogger(__name__)

HOURLY_LEAD = timedelta(hours=1)


def compute_reminders(
    occurrence: Occurrence,
    ctx: AccountContext,
    morning: Optional[time] = None,
) -> list[ReminderSpec]:
    """Reminders for one occurrence, all strictly after ``ctx.now``.

    - daily: 05:30 today, only when the occurrence is today
    - hourly: one hour before
    - special_day_before / special_day_of: special tasks only, the same
      wall-clock time one calendar day earlier, and 05:30 on the day
    """
    if morning is None:
        morning = config.MORNING_REMINDER_TIME

    local_occurrence = ctx.local(occurrence.occurrence_time)
    occurrence_day = local_occurrence.date()

    candidates: list[tuple[ReminderType, datetime]] = []
    if occurrence_day == ctx.today:
        candidates.append(
            (ReminderType.DAILY, datetime.combine(ctx.today, morning, tzinfo=ctx.timezone))
        )
    candidates.append((ReminderType.HOURLY, ctx.local(as_utc(occurrence.occurrence_time) - HOURLY_LEAD)))
    if occurrence.is_special:
        # timedelta on an aware datetime keeps the wall clock, so this is a calendar day
        candidates.append((ReminderType.SPECIAL_DAY_BEFORE, local_occurrence - timedelta(days=1)))
        candidates.append(
            (ReminderType.SPECIAL_DAY_OF, datetime.combine(occurrence_day, morning, tzinfo=ctx.timezone))
        )

    return [
        ReminderSpec(
            task_id=occurrence.task_id,
            occurrence_time=occurrence.occurrence_time,
            reminder_type=reminder_type,
            scheduled_time=scheduled_time,
        )
        for reminder_type, scheduled_time in candidates
        if ctx.is_future(scheduled_time)
    ]


def schedule_reminders(occurrence: Occurrence, ctx: AccountContext) -> list[ReminderSpec]:
    """Persist the reminders for an occurrence; existing ones are left as they are."""
    return [
        database.create_reminder_if_absent(occurrence, spec.reminder_type, spec.scheduled_time)
        for spec in compute_reminders(occurrence, ctx)
    ]


def upcoming_occurrences(task: Task, ctx: AccountContext) -> list[Occurrence]:
    """The task's own time for one-shot tasks, or its expanded series within the horizon."""
    if not task.is_recurring:
        return [Occurrence.of(task)]
    horizon_end = default_horizon(task.scheduled_time, ctx.now)
    return expand_recurring_task(task, ctx.now, horizon_end, ctx.timezone)


def schedule_task_reminders(task: Task, ctx: AccountContext) -> list[ReminderSpec]:
    """Record the task's upcoming occurrences and their reminders."""
    stored: list[ReminderSpec] = []
    for occurrence in upcoming_occurrences(task, ctx):
        if task.is_recurring:
            database.create_occurrence_if_absent(task.id, occurrence.occurrence_time)
        stored.extend(schedule_reminders(occurrence, ctx))
    return stored


def _schedule_rows(rows, ctx: AccountContext) -> dict:
    summary = {"tasks": 0, "reminders": 0, "errors": 0}
    for row in rows:
        try:
            task = database.row_to_task(row)
            stored = schedule_task_reminders(task, ctx)
        except (ValidationError, ValueError):
            logger.exception("Skipping task %s: could not schedule reminders", row["id"])
            summary["errors"] += 1
            continue
        summary["tasks"] += 1
        summary["reminders"] += len(stored)
    return summary


def generate_recurring_instances(ctx: AccountContext) -> dict:
    """Expand every active recurring task up to its horizon.

    Idempotent: occurrences and reminders that already exist are kept, so
    running this on every tick only adds what is new. A task with a
    malformed rule is logged and skipped.
    """
    rows = database.list_active_task_rows(recurring=True)
    summary = _schedule_rows(rows, ctx)
    logger.info(
        "Recurring expansion: tasks=%s reminders=%s errors=%s",
        summary["tasks"], summary["reminders"], summary["errors"],
    )
    return summary


def refresh_one_shot_reminders(ctx: AccountContext) -> dict:
    """Top up reminders for upcoming one-shot tasks.

    A "daily" reminder only exists once the task's day has arrived, so tasks
    added earlier pick it up here.
    """
    rows = [
        row for row in database.list_active_task_rows(recurring=False)
        if ctx.is_future(database.from_db_time(row["scheduled_time"]))
    ]
    return _schedule_rows(rows, ctx)


def _send_daily_summary(ctx: AccountContext, send: Callable[[str], None]) -> int:
    """Push today's agenda as one message; returns the number of tasks listed."""
    entries = agenda.todays_agenda(ctx)
    send(messages.format_daily_summary(entries, ctx))
    return len(entries)


def dispatch_due_reminders(ctx: AccountContext, send: Callable[[str], None]) -> dict:
    """Claim and deliver every unsent reminder due by ``ctx.now``.

    A reminder is sent only by the caller that wins the claim. A failed send
    is logged and the reminder stays claimed; the batch continues. Reminders
    whose occurrence has already passed are claimed and dropped. Claimed
    "daily" reminders are delivered together as one morning summary.
    """
    summary = {"due": 0, "sent": 0, "skipped": 0, "expired": 0, "failed": 0}
    due = database.list_unsent_reminders_due_by(ctx.now)
    summary["due"] = len(due)
    daily: list[ReminderSpec] = []

    for reminder in due:
        if not database.claim_reminder_sent(reminder.id, ctx.now):
            logger.debug("Reminder %s already claimed", reminder.id)
            summary["skipped"] += 1
            continue

        if not ctx.is_future(reminder.occurrence_time):
            logger.info(
                "Dropping %s reminder %s for task %s: occurrence %s has passed",
                reminder.reminder_type.value, reminder.id, reminder.task_id,
                reminder.occurrence_time.isoformat(),
            )
            summary["expired"] += 1
            continue

        if reminder.reminder_type is ReminderType.DAILY:
            daily.append(reminder)
            continue

        try:
            task = database.get_task_db(reminder.task_id)
            send(messages.format_reminder(reminder, task, ctx))
        except Exception:
            logger.exception(
                "Failed to send reminder %s (%s) for task %s",
                reminder.id, reminder.reminder_type.value, reminder.task_id,
            )
            summary["failed"] += 1
            continue

        logger.info(
            "Sent %s reminder %s for task %s",
            reminder.reminder_type.value, reminder.id, reminder.task_id,
        )
        summary["sent"] += 1

    if daily:
        try:
            listed = _send_daily_summary(ctx, send)
        except Exception:
            logger.exception("Failed to send morning summary for %s daily reminders", len(daily))
            summary["failed"] += len(daily)
        else:
            logger.info("Sent morning summary: reminders=%s tasks=%s", len(daily), listed)
            summary["sent"] += len(daily)

    return summary


def send_daily_summary(ctx: AccountContext, send: Callable[[str], None]) -> dict:
    """Push the morning summary once for today, even when the day is empty.

    Claims today's "daily" reminders so the dispatch tick does not repeat
    the summary. Does nothing when another tick already claimed them all.
    """
    start, end = agenda.view_window(CommandKind.TODAY, ctx)
    todays = database.list_reminders_of_type_between(ReminderType.DAILY, start, end)
    pending = [reminder for reminder in todays if reminder.sent_at is None]
    claimed = [reminder for reminder in pending if database.claim_reminder_sent(reminder.id, ctx.now)]
    if todays and not claimed:
        logger.info("Morning summary already sent for %s", ctx.today.isoformat())
        return {"sent": False, "tasks": 0, "claimed": 0}

    listed = _send_daily_summary(ctx, send)
    logger.info("Sent morning summary: tasks=%s claimed=%s", listed, len(claimed))
    return {"sent": True, "tasks": listed, "claimed": len(claimed)}


def reschedule_task(task_id: str, changes: dict, ctx: AccountContext) -> Optional[Task]:
    """Apply ``changes`` to an active task and rebuild its pending reminders.

    Returns None if the task does not exist or was deleted.
    """
    updated = database.update_task_db(task_id, **changes)
    if updated is None:
        return None
    discarded = database.discard_pending_reminders(updated.id, ctx.now)
    reminders = schedule_task_reminders(updated, ctx)
    logger.info(
        "Updated task %s: discarded=%s rescheduled=%s reminders",
        updated.id, discarded, len(reminders),
    )
    return updated


def retire_task(task_id: str) -> bool:
    """Soft-delete a task and drop whatever it still had pending."""
    if not database.soft_delete_task_db(task_id):
        return False
    database.discard_pending_reminders(task_id)
    return True


def run_cleanup(ctx: AccountContext) -> dict:
    summary = database.cleanup_old_tasks(ctx.now)
    logger.info(
        "Cleanup: tasks_deactivated=%s reminders_deleted=%s",
        summary["tasks_deactivated"], summary["reminders_deleted"],
    )
    return summary

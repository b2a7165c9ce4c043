"""Reply and reminder text sent back over chat."""
from datetime import datetime, timedelta
from typing import Optional

from models import (
    AccountContext,
    BiweeklyRule,
    IndexIdentifier,
    MonthlyByDayOfMonthRule,
    MonthlyByOrdinalWeekdayRule,
    RecurrenceRule,
    ReminderSpec,
    ReminderType,
    ResultKind,
    Task,
    WeeklyRule,
)

HELP_TEXT = """🤖 Task Assistant - Available Commands:

📅 View Tasks:
• today - Show today's tasks
• week - Show this week's tasks
• month - Show this month's tasks
• list - Show all upcoming tasks
• ids - Show all task IDs for easy reference

➕ Add Tasks:
• add Dentist appointment 2025-09-20 15:00
• add Buy groceries tomorrow 18:00
• add Gym session 2025-09-13 07:00 weekly
• add Team meeting 2025-09-15 09:00 biweekly Monday
• add Salary review 2025-09-30 10:00 monthly
• add Church service 2025-09-07 10:00 first Sunday of every month
• add Anniversary dinner 2025-02-17 19:00 special
• add Baby vaccination 2025-10-04 09:00 monthly first Saturday special

✏️ Update Tasks:
• update "Task Name" to 3:00 pm
• update "Task Name" to tomorrow at 10:00 am
• update 1 to 2025-09-21 08:00 weekly

🗑️ Delete Tasks:
• delete "Task Name"
• delete 1

❓ Get Help:
• help, commands, or hey assistant - Show this help message

💡 Command Format:
• add {task title} {date} {time} [recurrence] [special]
• Date: YYYY-MM-DD, today, tomorrow, friday, next Monday, Sep 20
• Time: HH:MM (24h) or 3pm / 3:30pm
• Recurrence: weekly, biweekly [day], monthly, monthly first Saturday,
  first Sunday of every month, last Friday monthly
• Special: keyword "special" for important tasks

Type any command to get started!"""

UNKNOWN_COMMAND_TEXT = (
    "🤔 I didn't understand that command.\n\n"
    'Type "help" to see what I can do.'
)

SPECIAL_MARK = " ⭐"
RECURRING_MARK = " 🔄"


def _clock(local: datetime) -> str:
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_datetime(instant: datetime, ctx: AccountContext) -> str:
    """"Today at 7:00 AM", "Tomorrow at ...", or "Sat, Sep 13, 7:00 AM"."""
    local = ctx.local(instant)
    if local.date() == ctx.today:
        return f"Today at {_clock(local)}"
    if local.date() == ctx.today + timedelta(days=1):
        return f"Tomorrow at {_clock(local)}"
    return f"{local:%a, %b} {local.day}, {_clock(local)}"


def ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_recurrence(rule: Optional[RecurrenceRule]) -> str:
    if rule is None:
        return ""
    if isinstance(rule, WeeklyRule):
        return f"Every {rule.day_of_week.name.title()}"
    if isinstance(rule, BiweeklyRule):
        return f"Every 2 weeks on {rule.day_of_week.name.title()}"
    if isinstance(rule, MonthlyByDayOfMonthRule):
        return f"Monthly on the {rule.day}{ordinal_suffix(rule.day)}"
    if isinstance(rule, MonthlyByOrdinalWeekdayRule):
        return f"Monthly on the {rule.ordinal.value} {rule.day_of_week.name.title()}"
    return "Recurring"


def _marks(is_special: bool, is_recurring: bool) -> str:
    return (SPECIAL_MARK if is_special else "") + (RECURRING_MARK if is_recurring else "")


def format_task_line(task: Task, index: int, ctx: AccountContext) -> str:
    return (
        f"• {task.title} - {format_datetime(task.scheduled_time, ctx)}{_marks(task.is_special, task.is_recurring)}\n"
        f"  ID: {index}"
    )


def format_task_list(tasks: list[Task], heading: str, ctx: AccountContext) -> str:
    if not tasks:
        return f"{heading}\n\nNo tasks found."
    lines = [format_task_line(task, index, ctx) for index, task in enumerate(tasks, start=1)]
    return f"{heading}\n\n" + "\n".join(lines)


def format_agenda(entries, heading: str, ctx: AccountContext) -> str:
    if not entries:
        return f"{heading}\n\nNo tasks found."
    lines = [
        f"• {entry.occurrence.title} - {format_datetime(entry.occurrence.occurrence_time, ctx)}"
        f"{_marks(entry.occurrence.is_special, entry.is_recurring)}\n"
        f"  ID: {entry.display_index}"
        for entry in entries
    ]
    return f"{heading}\n\n" + "\n".join(lines)


def format_task_ids(tasks: list[Task]) -> str:
    if not tasks:
        return "🆔 Task IDs\n\nNo tasks found."
    lines = "\n".join(f"{index} - {task.title}" for index, task in enumerate(tasks, start=1))
    return (
        f"🆔 Task IDs ({len(tasks)} tasks)\n\n{lines}\n\n"
        "💡 Use these IDs with update/delete commands for precise task management."
    )


def format_task_saved(task: Task, verb: str, ctx: AccountContext) -> str:
    text = (
        f'✅ Task "{task.title}" {verb} successfully!\n'
        f"📅 {format_datetime(task.scheduled_time, ctx)}{_marks(task.is_special, task.is_recurring)}"
    )
    if task.is_recurring:
        text += f"\n🔄 Recurring: {format_recurrence(task.recurrence)}"
    return text


DAILY_SUMMARY_HEADING = "🌅 Good morning! Here's your schedule for today:"
DAILY_EMPTY_TEXT = "🌅 Good morning! You have no tasks scheduled for today. Have a great day!"


def format_daily_summary(entries, ctx: AccountContext) -> str:
    if not entries:
        return DAILY_EMPTY_TEXT
    return format_agenda(entries, DAILY_SUMMARY_HEADING, ctx)


# "daily" reminders are delivered through format_daily_summary
REMINDER_HEADERS = {
    ReminderType.HOURLY: "⏰ Reminder: {title} is coming up in 1 hour!",
    ReminderType.SPECIAL_DAY_BEFORE: "⭐ Special Reminder: {title} is tomorrow!",
    ReminderType.SPECIAL_DAY_OF: "⭐ Special Task Today: {title}",
}


def format_reminder(reminder: ReminderSpec, task: Optional[Task], ctx: AccountContext) -> str:
    """Push text for one reminder, dated by the occurrence it belongs to."""
    title = task.title if task is not None else "Task"
    text = REMINDER_HEADERS[reminder.reminder_type].format(title=title)
    text += f"\n\n📅 {format_datetime(reminder.occurrence_time, ctx)}"
    if task is not None and task.is_recurring:
        text += f"\n🔄 Recurring: {format_recurrence(task.recurrence)}"
    return text


def _describe_identifier(identifier) -> str:
    if isinstance(identifier, IndexIdentifier):
        return f"with ID {identifier.value}"
    return f'"{identifier.value}"'


def render_result(result, ctx: AccountContext) -> str:
    """Turn a commands.CommandResult into reply text."""
    kind = result.kind
    if kind is ResultKind.ADDED:
        return format_task_saved(result.task, "added", ctx)
    if kind is ResultKind.UPDATED:
        return format_task_saved(result.task, "updated", ctx)
    if kind is ResultKind.DELETED:
        return f'🗑️ Task "{result.task.title}" deleted successfully!'
    if kind is ResultKind.AGENDA:
        return format_agenda(result.entries, result.heading, ctx)
    if kind is ResultKind.TASK_LIST:
        return format_task_list(result.tasks, result.heading, ctx)
    if kind is ResultKind.TASK_IDS:
        return format_task_ids(result.tasks)
    if kind is ResultKind.HELP:
        return HELP_TEXT
    if kind is ResultKind.PARSE_ERROR:
        return f"❌ Could not {result.verb} task: {result.error.message}"
    if kind is ResultKind.NOT_FOUND:
        return f"❌ No task found {_describe_identifier(result.identifier)}. Type \"ids\" to see your tasks."
    if kind is ResultKind.AMBIGUOUS:
        names = "\n".join(f"• {task.title}" for task in result.tasks)
        return (
            f"🤔 Multiple tasks match {_describe_identifier(result.identifier)}:\n\n{names}\n\n"
            "Please use the exact title or the task ID."
        )
    if kind is ResultKind.NO_CHANGES:
        return (
            f"❌ Nothing to update for {_describe_identifier(result.identifier)}.\n"
            'Use: update "Task Name" to tomorrow at 10:00 am'
        )
    return UNKNOWN_COMMAND_TEXT

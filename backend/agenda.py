"""Calendar windows and the occurrences that fall inside them.

Shared by the today/week/month chat views and the morning summary push.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from dateutil.relativedelta import relativedelta

import database
from command_parser import CommandKind
from models import AccountContext, Occurrence, Task, as_utc
from recurrence import occurrences_between


@dataclass
class AgendaEntry:
    """One row of a calendar view: an occurrence plus its ``list`` position."""
    occurrence: Occurrence
    display_index: int
    is_recurring: bool = False


def view_window(kind: CommandKind, ctx: AccountContext) -> tuple[datetime, datetime]:
    """[start, end) of the today / week / month view in the account timezone.

    Weeks start on Sunday.
    """
    start_of_today = datetime.combine(ctx.today, time(0, 0), tzinfo=ctx.timezone)
    if kind is CommandKind.TODAY:
        start = start_of_today
        end_day = ctx.today + timedelta(days=1)
    elif kind is CommandKind.WEEK:
        days_since_sunday = (ctx.today.weekday() + 1) % 7
        start_day = ctx.today - timedelta(days=days_since_sunday)
        start = datetime.combine(start_day, time(0, 0), tzinfo=ctx.timezone)
        end_day = start_day + timedelta(days=7)
    elif kind is CommandKind.MONTH:
        start_day = ctx.today.replace(day=1)
        start = datetime.combine(start_day, time(0, 0), tzinfo=ctx.timezone)
        end_day = start_day + relativedelta(months=1)
    else:
        raise ValueError(f"Not a calendar view: {kind}")
    return start, datetime.combine(end_day, time(0, 0), tzinfo=ctx.timezone)


def build_agenda(tasks: list[Task], start: datetime, end: datetime, ctx: AccountContext) -> list[AgendaEntry]:
    """Occurrences of ``tasks`` falling in [start, end), in time order."""
    entries = []
    for index, task in enumerate(tasks, start=1):
        if task.is_recurring:
            instants = occurrences_between(task.recurrence, task.scheduled_time, start, end, ctx.timezone)
        elif as_utc(start) <= as_utc(task.scheduled_time) < as_utc(end):
            instants = [task.scheduled_time]
        else:
            instants = []
        entries.extend(
            AgendaEntry(Occurrence.of(task, instant), index, task.is_recurring) for instant in instants
        )
    entries.sort(key=lambda entry: (as_utc(entry.occurrence.occurrence_time), entry.display_index))
    return entries


def todays_agenda(ctx: AccountContext) -> list[AgendaEntry]:
    start, end = view_window(CommandKind.TODAY, ctx)
    return build_agenda(database.list_active_tasks(), start, end, ctx)

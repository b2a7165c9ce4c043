"""Executes parsed chat commands against the task store.

handle_text is the single entry point used by the webhook: it classifies
the message, runs the matching command and returns a CommandResult for
messages.render_result to turn into reply text.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import database
from agenda import AgendaEntry, build_agenda, view_window
from command_parser import (
    CommandKind,
    classify_command,
    parse_add_command,
    parse_delete_command,
    parse_update_command,
)
from errors import ParseError
from models import AccountContext, IndexIdentifier, ResultKind, Task, TaskIdentifier
from reminders import reschedule_task, retire_task, schedule_task_reminders

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    kind: ResultKind
    heading: Optional[str] = None
    task: Optional[Task] = None
    tasks: list[Task] = field(default_factory=list)
    entries: list[AgendaEntry] = field(default_factory=list)
    error: Optional[ParseError] = None
    identifier: Optional[TaskIdentifier] = None
    verb: Optional[str] = None


VIEW_HEADINGS = {
    CommandKind.TODAY: "📅 Today's Tasks",
    CommandKind.WEEK: "📅 This Week's Tasks",
    CommandKind.MONTH: "📅 This Month's Tasks",
}


# --- views ---

def show_view(kind: CommandKind, ctx: AccountContext) -> CommandResult:
    tasks = database.list_active_tasks()
    if kind is CommandKind.LIST:
        return CommandResult(ResultKind.TASK_LIST, heading="📋 All Tasks", tasks=tasks)
    if kind is CommandKind.IDS:
        return CommandResult(ResultKind.TASK_IDS, tasks=tasks)
    start, end = view_window(kind, ctx)
    return CommandResult(
        ResultKind.AGENDA,
        heading=VIEW_HEADINGS[kind],
        entries=build_agenda(tasks, start, end, ctx),
    )


# --- identifier resolution ---

def resolve_identifier(identifier: TaskIdentifier) -> Union[Task, CommandResult]:
    """Find the task an identifier refers to, or the result explaining why not."""
    if isinstance(identifier, IndexIdentifier):
        tasks = database.list_active_tasks()
        if identifier.value > len(tasks):
            return CommandResult(ResultKind.NOT_FOUND, identifier=identifier)
        return tasks[identifier.value - 1]

    matches = database.find_tasks_by_title_db(identifier.value)
    if not matches:
        return CommandResult(ResultKind.NOT_FOUND, identifier=identifier)
    if len(matches) > 1:
        return CommandResult(ResultKind.AMBIGUOUS, identifier=identifier, tasks=matches)
    return matches[0]


# --- add / update / delete ---

def add_task(text: str, ctx: AccountContext) -> CommandResult:
    parsed = parse_add_command(text, ctx)
    if isinstance(parsed, ParseError):
        return CommandResult(ResultKind.PARSE_ERROR, error=parsed, verb="add")

    task = database.create_task_db(parsed)
    reminders = schedule_task_reminders(task, ctx)
    logger.info("Created task %s (%r) with %s reminders", task.id, task.title, len(reminders))
    return CommandResult(ResultKind.ADDED, task=task)


def update_task(text: str, ctx: AccountContext) -> CommandResult:
    parsed = parse_update_command(text, ctx)
    if isinstance(parsed, ParseError):
        return CommandResult(ResultKind.PARSE_ERROR, error=parsed, verb="update")
    if parsed.updates.is_empty():
        return CommandResult(ResultKind.NO_CHANGES, identifier=parsed.identifier)

    found = resolve_identifier(parsed.identifier)
    if isinstance(found, CommandResult):
        return found

    if parsed.updates.scheduled_time is None and parsed.updates.recurrence is not None:
        # re-read so "weekly"/"monthly" take their day from the task, not from today
        parsed = parse_update_command(text, ctx, anchor=ctx.local(found.scheduled_time).date())

    changes = {}
    if parsed.updates.scheduled_time is not None:
        changes["scheduled_time"] = parsed.updates.scheduled_time
    if parsed.updates.recurrence is not None:
        changes["recurrence_rule"] = parsed.updates.recurrence
    if parsed.updates.is_special is not None:
        changes["is_special"] = parsed.updates.is_special

    updated = reschedule_task(found.id, changes, ctx)
    if updated is None:
        return CommandResult(ResultKind.NOT_FOUND, identifier=parsed.identifier)
    return CommandResult(ResultKind.UPDATED, task=updated)


def delete_task(text: str) -> CommandResult:
    parsed = parse_delete_command(text)
    if isinstance(parsed, ParseError):
        return CommandResult(ResultKind.PARSE_ERROR, error=parsed, verb="delete")

    found = resolve_identifier(parsed)
    if isinstance(found, CommandResult):
        return found

    if not retire_task(found.id):
        return CommandResult(ResultKind.NOT_FOUND, identifier=parsed)
    logger.info("Deleted task %s (%r)", found.id, found.title)
    return CommandResult(ResultKind.DELETED, task=found)


def handle_text(text: str, ctx: AccountContext) -> CommandResult:
    """Run one chat message as a command."""
    kind = classify_command(text)
    logger.debug("Classified %r as %s", text, kind.value)

    if kind in (CommandKind.TODAY, CommandKind.WEEK, CommandKind.MONTH, CommandKind.LIST, CommandKind.IDS):
        return show_view(kind, ctx)
    if kind is CommandKind.HELP:
        return CommandResult(ResultKind.HELP)
    if kind is CommandKind.ADD:
        return add_task(text, ctx)
    if kind is CommandKind.UPDATE:
        return update_task(text, ctx)
    if kind is CommandKind.DELETE:
        return delete_task(text)
    return CommandResult(ResultKind.UNKNOWN)

"""Grammar for chat commands.

    add {title} {date} {time} [recurrence] [special]
    update "{title}" | {n} [to {date} [at] {time} [recurrence] [special]]
    delete "{title}" | {n}
    today | week | month | list | ids | help

The public parse functions never raise on bad input: they return either the
parsed value or the ParseError describing what went wrong.
"""
import logging
import re
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Sequence, Union

from errors import (
    EmptyTitle,
    InvalidIdentifier,
    MessageTooLong,
    MissingDate,
    MissingTime,
    ParseError,
    ParseErrorCode,
    PastSchedule,
    TitleTooLong,
)
from models import (
    AccountContext,
    IndexIdentifier,
    TaskIdentifier,
    TaskSpecification,
    TaskUpdates,
    TimeOfDay,
    TitleIdentifier,
    UpdateCommand,
)
from resolvers import combine, date_token_length, resolve_date, resolve_recurrence, resolve_time

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_COMMAND_LENGTH = 1000

# Used by "update ... to <date>" when no time is given
DEFAULT_UPDATE_TIME = TimeOfDay(hour=9, minute=0)

QUOTED_TITLE_RE = re.compile(r'^["“”]([^"“”]*)["“”]\s*(.*)$', re.DOTALL)
DISPLAY_INDEX_RE = re.compile(r"^(\d+)(?:\s+(.*))?$", re.DOTALL)


class CommandKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    LIST = "list"
    IDS = "ids"
    HELP = "help"
    UNKNOWN = "unknown"


VIEW_KEYWORDS = {
    "today": CommandKind.TODAY,
    "week": CommandKind.WEEK,
    "month": CommandKind.MONTH,
    "list": CommandKind.LIST,
    "ids": CommandKind.IDS,
}
HELP_KEYWORDS = {"help", "commands", "hey assistant"}
ACTION_KEYWORDS = {
    "add": CommandKind.ADD,
    "update": CommandKind.UPDATE,
    "delete": CommandKind.DELETE,
}


def classify_command(text: str) -> CommandKind:
    """Classify a message by its leading keyword."""
    normalized = " ".join(text.lower().split())
    if normalized in VIEW_KEYWORDS:
        return VIEW_KEYWORDS[normalized]
    if normalized in HELP_KEYWORDS:
        return CommandKind.HELP
    keyword = normalized.split(" ", 1)[0]
    return ACTION_KEYWORDS.get(keyword, CommandKind.UNKNOWN)


def _command_body(text: str, keyword: str) -> str:
    """Text after the leading keyword (the keyword itself is optional)."""
    stripped = text.strip()
    parts = stripped.split(None, 1)
    if parts and parts[0].lower() == keyword:
        return parts[1].strip() if len(parts) > 1 else ""
    return stripped


def _check_length(text: str) -> None:
    if len(text) > MAX_COMMAND_LENGTH:
        raise MessageTooLong(f"Message too long. Please keep commands under {MAX_COMMAND_LENGTH} characters.")


def _token_at(tokens: Sequence[str], index: int) -> Optional[str]:
    return tokens[index] if index < len(tokens) else None


# --- add ---

def _parse_add(text: str, ctx: AccountContext) -> TaskSpecification:
    _check_length(text)
    tokens = _command_body(text, "add").split()

    boundary = next((i for i in range(len(tokens)) if date_token_length(tokens, i)), None)
    if boundary is None:
        raise MissingDate("No valid date found in command")
    if boundary == 0:
        raise EmptyTitle("Task title cannot be empty")

    title = " ".join(tokens[:boundary])
    if len(title) > MAX_TITLE_LENGTH:
        raise TitleTooLong(f"Task title must be {MAX_TITLE_LENGTH} characters or less")

    day, used = resolve_date(tokens, boundary, ctx)
    cursor = boundary + used

    clock = resolve_time(_token_at(tokens, cursor))
    cursor += 1

    recurrence, used = resolve_recurrence(tokens, cursor, day)
    cursor += used

    is_special = (_token_at(tokens, cursor) or "").lower() == "special"
    if is_special:
        cursor += 1

    if cursor < len(tokens):
        logger.debug(
            "%s: ignoring trailing tokens %s",
            ParseErrorCode.UNRECOGNIZED_RECURRENCE.value, tokens[cursor:],
        )

    scheduled_time = combine(day, clock, ctx.timezone)
    # Recurring tasks only anchor the series, so a past anchor is allowed.
    if recurrence is None and not ctx.is_future(scheduled_time):
        raise PastSchedule("Cannot schedule tasks in the past")

    return TaskSpecification(
        title=title,
        scheduled_time=scheduled_time,
        recurrence=recurrence,
        is_special=is_special,
    )


def parse_add_command(text: str, ctx: AccountContext) -> Union[TaskSpecification, ParseError]:
    try:
        return _parse_add(text, ctx)
    except ParseError as error:
        logger.debug("add command rejected: %r (%s)", text, error.code.value)
        return error


# --- update / delete ---

def _parse_identifier(body: str, verb: str) -> tuple[TaskIdentifier, str]:
    """Split ``"title" rest`` or ``n rest`` into (identifier, rest)."""
    usage = f'Please provide a task title in quotes or task ID, e.g., {verb} "Gym session" or {verb} 1'

    match = QUOTED_TITLE_RE.match(body)
    if match:
        title = match.group(1).strip()
        if not title:
            raise InvalidIdentifier("Task title cannot be empty")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidIdentifier(f"Task title must be {MAX_TITLE_LENGTH} characters or less")
        return TitleIdentifier(value=title), match.group(2).strip()

    match = DISPLAY_INDEX_RE.match(body)
    if match:
        index = int(match.group(1))
        if index < 1:
            raise InvalidIdentifier("Task ID must be a positive number")
        return IndexIdentifier(value=index), (match.group(2) or "").strip()

    raise InvalidIdentifier(usage)


def _parse_schedule(tokens: Sequence[str], ctx: AccountContext, anchor: Optional[date] = None) -> TaskUpdates:
    """Parse ``[date] [at] [time] [recurrence] [special]`` after ``to``.

    ``anchor`` is the task's current date; a bare recurrence takes its day from it.
    """
    cursor = 0
    day = None
    if date_token_length(tokens, cursor):
        day, used = resolve_date(tokens, cursor, ctx)
        cursor += used

    if (_token_at(tokens, cursor) or "").lower() == "at":
        cursor += 1

    clock = None
    token = _token_at(tokens, cursor)
    if token is not None and token[0].isdigit():
        meridiem = (_token_at(tokens, cursor + 1) or "").lower()
        if meridiem in ("am", "pm"):
            # "3:00 pm" written as two tokens
            clock = resolve_time(token + meridiem)
            cursor += 2
        else:
            clock = resolve_time(token)
            cursor += 1

    scheduled_time = None
    if day is not None:
        scheduled_time = combine(day, clock or DEFAULT_UPDATE_TIME, ctx.timezone)
    elif clock is not None:
        scheduled_time = combine(ctx.today, clock, ctx.timezone)
        if not ctx.is_future(scheduled_time):
            scheduled_time = combine(ctx.today + timedelta(days=1), clock, ctx.timezone)

    if scheduled_time is not None:
        anchor = scheduled_time.date()
    elif anchor is None:
        anchor = ctx.today
    recurrence, used = resolve_recurrence(tokens, cursor, anchor)
    cursor += used

    is_special = None
    if (_token_at(tokens, cursor) or "").lower() == "special":
        is_special = True
        cursor += 1

    if scheduled_time is None and recurrence is None and is_special is None:
        raise MissingTime("Expected a new date or time after 'to'")
    if cursor < len(tokens):
        logger.debug(
            "%s: ignoring trailing tokens %s",
            ParseErrorCode.UNRECOGNIZED_RECURRENCE.value, list(tokens[cursor:]),
        )
    if day is not None and recurrence is None and not ctx.is_future(scheduled_time):
        raise PastSchedule("Cannot schedule tasks in the past")

    return TaskUpdates(scheduled_time=scheduled_time, recurrence=recurrence, is_special=is_special)


def _parse_update(text: str, ctx: AccountContext, anchor: Optional[date]) -> UpdateCommand:
    _check_length(text)
    identifier, rest = _parse_identifier(_command_body(text, "update"), "update")
    tokens = rest.split()
    if tokens and tokens[0].lower() == "to":
        updates = _parse_schedule(tokens[1:], ctx, anchor)
    else:
        updates = TaskUpdates()
    return UpdateCommand(identifier=identifier, updates=updates)


def parse_update_command(
    text: str,
    ctx: AccountContext,
    anchor: Optional[date] = None,
) -> Union[UpdateCommand, ParseError]:
    try:
        return _parse_update(text, ctx, anchor)
    except ParseError as error:
        logger.debug("update command rejected: %r (%s)", text, error.code.value)
        return error


def parse_delete_command(text: str) -> Union[TaskIdentifier, ParseError]:
    try:
        _check_length(text)
        identifier, _ = _parse_identifier(_command_body(text, "delete"), "delete")
    except ParseError as error:
        logger.debug("delete command rejected: %r (%s)", text, error.code.value)
        return error
    return identifier

"""Token-level resolvers used by the command parser.

Each resolver looks at the token list at a cursor position and either
returns a value plus the number of tokens it consumed, or raises a
ParseError. Relative words ("today", "friday") are resolved against the
AccountContext passed in, never against the process clock.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from errors import InvalidDate, InvalidTime, MissingDate, MissingTime
from models import (
    AccountContext,
    BiweeklyRule,
    MonthlyByDayOfMonthRule,
    MonthlyByOrdinalWeekdayRule,
    Ordinal,
    RecurrenceRule,
    TimeOfDay,
    Weekday,
    WeeklyRule,
)

WEEKDAYS = {
    "monday": Weekday.MONDAY, "mon": Weekday.MONDAY,
    "tuesday": Weekday.TUESDAY, "tue": Weekday.TUESDAY, "tues": Weekday.TUESDAY,
    "wednesday": Weekday.WEDNESDAY, "wed": Weekday.WEDNESDAY,
    "thursday": Weekday.THURSDAY, "thu": Weekday.THURSDAY, "thur": Weekday.THURSDAY, "thurs": Weekday.THURSDAY,
    "friday": Weekday.FRIDAY, "fri": Weekday.FRIDAY,
    "saturday": Weekday.SATURDAY, "sat": Weekday.SATURDAY,
    "sunday": Weekday.SUNDAY, "sun": Weekday.SUNDAY,
}

# Only full names end a title; "sat" or "wed" inside a title stays text.
FULL_WEEKDAY_NAMES = {day.name.lower() for day in Weekday}

ORDINALS = {
    "first": Ordinal.FIRST, "1st": Ordinal.FIRST,
    "second": Ordinal.SECOND, "2nd": Ordinal.SECOND,
    "third": Ordinal.THIRD, "3rd": Ordinal.THIRD,
    "fourth": Ordinal.FOURTH, "4th": Ordinal.FOURTH,
    "last": Ordinal.LAST,
}

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DAY_NUMBER_RE = re.compile(r"^(\d{1,2})(?:st|nd|rd|th)?$", re.IGNORECASE)
CLOCK_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
CLOCK_12H_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?(am|pm)$", re.IGNORECASE)


def _token(tokens: Sequence[str], index: int) -> Optional[str]:
    if 0 <= index < len(tokens):
        return tokens[index].lower()
    return None


# --- Date resolver ---

def date_token_length(tokens: Sequence[str], index: int) -> int:
    """How many tokens at ``index`` form a date phrase (0 if none)."""
    token = _token(tokens, index)
    if token is None:
        return 0
    if ISO_DATE_RE.match(token) or token in ("today", "tomorrow") or token in FULL_WEEKDAY_NAMES:
        return 1
    following = _token(tokens, index + 1)
    if token == "next" and following in WEEKDAYS:
        return 2
    if token in MONTHS and following is not None and DAY_NUMBER_RE.match(following):
        return 2
    return 0


def _next_weekday(today: date, weekday: Weekday) -> date:
    """Next ``weekday`` strictly after ``today``."""
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def _month_day(month: int, day: int, today: date) -> date:
    """Resolve a yearless date, rolling forward a year once it has passed."""
    for year in (today.year, today.year + 1):
        try:
            candidate = date(year, month, day)
        except ValueError:
            continue
        if candidate >= today:
            return candidate
    raise InvalidDate(f"Invalid date: {month:02d}-{day:02d}")


def resolve_date(tokens: Sequence[str], index: int, ctx: AccountContext) -> tuple[date, int]:
    """Resolve the date phrase at ``index``. Returns (date, tokens consumed)."""
    token = _token(tokens, index)
    if token is None:
        raise MissingDate("Expected a date but found end of command")

    today = ctx.today

    if ISO_DATE_RE.match(token):
        try:
            return date.fromisoformat(token), 1
        except ValueError:
            raise InvalidDate(f"Invalid date: {tokens[index]}", tokens[index]) from None

    if token == "today":
        return today, 1
    if token == "tomorrow":
        return today + timedelta(days=1), 1
    if token in WEEKDAYS:
        return _next_weekday(today, WEEKDAYS[token]), 1

    following = _token(tokens, index + 1)
    if token == "next" and following in WEEKDAYS:
        # one full week past the bare-weekday result
        return _next_weekday(today, WEEKDAYS[following]) + timedelta(days=7), 2

    if token in MONTHS and following is not None:
        day_match = DAY_NUMBER_RE.match(following)
        if day_match:
            return _month_day(MONTHS[token], int(day_match.group(1)), today), 2

    raise InvalidDate(f"Invalid date: {tokens[index]}", tokens[index])


# --- Time resolver ---

def resolve_time(token: Optional[str]) -> TimeOfDay:
    """Parse ``HH:MM`` (24h) or ``H[:MM]am|pm`` into a TimeOfDay."""
    if token is None:
        raise MissingTime("Please specify a time for the task")

    match = CLOCK_24H_RE.match(token)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise InvalidTime(f"Invalid time: {token}", token)
        return TimeOfDay(hour=hour, minute=minute)

    match = CLOCK_12H_RE.match(token)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or "0")
        period = match.group(3).lower()
        if not 1 <= hour <= 12 or minute > 59:
            raise InvalidTime(f"Invalid time: {token}", token)
        if period == "am":
            hour = 0 if hour == 12 else hour
        elif hour != 12:
            hour += 12
        return TimeOfDay(hour=hour, minute=minute)

    raise InvalidTime(f"Invalid time format: {token}", token)


def combine(day: date, clock: TimeOfDay, timezone: ZoneInfo) -> datetime:
    """Attach a wall-clock time to a date in the account timezone."""
    return datetime.combine(day, time(clock.hour, clock.minute), tzinfo=timezone)


# --- Recurrence resolver ---
#
# Each matcher looks at the tokens at ``index`` and returns (rule, consumed)
# or None. The anchor date supplies the day for phrases that don't name one.

Matcher = Callable[[Sequence[str], int, date], Optional[tuple[RecurrenceRule, int]]]


def ordinal_for(day: date) -> Ordinal:
    """Which week of its month ``day`` falls in; days 29-31 count as LAST."""
    week = (day.day - 1) // 7
    if week >= 4:
        return Ordinal.LAST
    return list(Ordinal)[week]


def _match_weekly(tokens, index, anchor):
    if _token(tokens, index) == "weekly":
        return WeeklyRule(day_of_week=Weekday(anchor.weekday())), 1
    return None


def _match_biweekly(tokens, index, anchor):
    if _token(tokens, index) != "biweekly":
        return None
    day = _token(tokens, index + 1)
    if day in WEEKDAYS:
        return BiweeklyRule(day_of_week=WEEKDAYS[day]), 2
    return BiweeklyRule(day_of_week=Weekday.MONDAY), 1


def _match_monthly_ordinal_weekday(tokens, index, anchor):
    # monthly first saturday
    if _token(tokens, index) != "monthly":
        return None
    ordinal, day = _token(tokens, index + 1), _token(tokens, index + 2)
    if ordinal in ORDINALS and day in WEEKDAYS:
        return MonthlyByOrdinalWeekdayRule(ordinal=ORDINALS[ordinal], day_of_week=WEEKDAYS[day]), 3
    return None


def _match_ordinal_weekday_of_every_month(tokens, index, anchor):
    # first sunday of every month
    ordinal, day = _token(tokens, index), _token(tokens, index + 1)
    if ordinal not in ORDINALS or day not in WEEKDAYS:
        return None
    tail = [_token(tokens, index + offset) for offset in (2, 3, 4)]
    if tail == ["of", "every", "month"]:
        return MonthlyByOrdinalWeekdayRule(ordinal=ORDINALS[ordinal], day_of_week=WEEKDAYS[day]), 5
    return None


def _match_weekday_monthly(tokens, index, anchor):
    # first saturday monthly / saturday monthly
    first = _token(tokens, index)
    if first in ORDINALS:
        day = _token(tokens, index + 1)
        if day in WEEKDAYS and _token(tokens, index + 2) == "monthly":
            return MonthlyByOrdinalWeekdayRule(ordinal=ORDINALS[first], day_of_week=WEEKDAYS[day]), 3
        return None
    if first in WEEKDAYS and _token(tokens, index + 1) == "monthly":
        return MonthlyByOrdinalWeekdayRule(ordinal=ordinal_for(anchor), day_of_week=WEEKDAYS[first]), 2
    return None


def _match_monthly(tokens, index, anchor):
    if _token(tokens, index) == "monthly":
        return MonthlyByDayOfMonthRule(day=anchor.day), 1
    return None


# Most specific first; order is significant.
RECURRENCE_MATCHERS: tuple[Matcher, ...] = (
    _match_weekly,
    _match_biweekly,
    _match_monthly_ordinal_weekday,
    _match_ordinal_weekday_of_every_month,
    _match_weekday_monthly,
    _match_monthly,
)


def resolve_recurrence(tokens: Sequence[str], index: int, anchor: date) -> tuple[Optional[RecurrenceRule], int]:
    """First matching recurrence phrase at ``index``, or (None, 0)."""
    for matcher in RECURRENCE_MATCHERS:
        matched = matcher(tokens, index, anchor)
        if matched is not None:
            return matched
    return None, 0

"""Expansion of recurrence rules into concrete occurrence instants.

Stepping happens on local calendar dates in the account timezone and each
date is re-combined with the anchor's wall-clock time, so a 07:00 task stays
at 07:00 across DST changes.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

import config
from models import (
    BiweeklyRule,
    MonthlyByDayOfMonthRule,
    MonthlyByOrdinalWeekdayRule,
    Occurrence,
    Ordinal,
    RecurrenceRule,
    Task,
    Weekday,
    WeeklyRule,
    as_utc,
)

# dateutil weekday constructors indexed by Weekday
_RELATIVE_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


def default_horizon(anchor: datetime, now: datetime, months: Optional[int] = None) -> datetime:
    """End of the expansion window: ``months`` past the anchor or now, whichever is later."""
    if months is None:
        months = config.EXPANSION_HORIZON_MONTHS
    return max(anchor, now, key=as_utc) + relativedelta(months=months)


def nth_weekday_of_month(year: int, month: int, ordinal: Ordinal, weekday: Weekday) -> Optional[date]:
    """The Nth (or last) ``weekday`` of a month, or None if it falls outside the month."""
    first_of_month = date(year, month, 1)
    relative_weekday = _RELATIVE_WEEKDAYS[weekday]
    if ordinal is Ordinal.LAST:
        # day=31 clamps to the month's last day, then walk back to the weekday
        candidate = first_of_month + relativedelta(day=31, weekday=relative_weekday(-1))
    else:
        candidate = first_of_month + relativedelta(weekday=relative_weekday(ordinal.number))
    if candidate.month != month:
        return None
    return candidate


def _every_n_days(start: date, weekday: Weekday, step: int) -> Iterator[date]:
    current = start + timedelta(days=(weekday - start.weekday()) % 7)
    while True:
        yield current
        current += timedelta(days=step)


def _monthly_on_day(start: date, day: int) -> Iterator[date]:
    month_start = start.replace(day=1)
    months = 0
    while True:
        # relativedelta(day=31) lands on Feb 28/29, Apr 30, ...
        yield month_start + relativedelta(months=months, day=day)
        months += 1


def _monthly_on_weekday(start: date, ordinal: Ordinal, weekday: Weekday) -> Iterator[date]:
    month_start = start.replace(day=1)
    months = 0
    while True:
        month = month_start + relativedelta(months=months)
        candidate = nth_weekday_of_month(month.year, month.month, ordinal, weekday)
        if candidate is not None:
            yield candidate
        months += 1


def iter_occurrence_dates(rule: RecurrenceRule, start: date) -> Iterator[date]:
    """Unbounded, increasing calendar dates for ``rule`` beginning in ``start``'s week or month.

    Dates before ``start`` may be produced for monthly rules; callers filter.
    """
    if isinstance(rule, WeeklyRule):
        return _every_n_days(start, rule.day_of_week, 7)
    if isinstance(rule, BiweeklyRule):
        return _every_n_days(start, rule.day_of_week, 14)
    if isinstance(rule, MonthlyByDayOfMonthRule):
        return _monthly_on_day(start, rule.day)
    if isinstance(rule, MonthlyByOrdinalWeekdayRule):
        return _monthly_on_weekday(start, rule.ordinal, rule.day_of_week)
    raise ValueError(f"Unsupported recurrence rule: {rule!r}")


def iter_occurrences(rule: RecurrenceRule, anchor: datetime, timezone: ZoneInfo) -> Iterator[datetime]:
    """Unbounded occurrence instants at or after ``anchor``, at the anchor's local time."""
    local_anchor = anchor.astimezone(timezone)
    wall_clock = time(local_anchor.hour, local_anchor.minute, local_anchor.second)
    for day in iter_occurrence_dates(rule, local_anchor.date()):
        instant = datetime.combine(day, wall_clock, tzinfo=timezone)
        if as_utc(instant) >= as_utc(anchor):
            yield instant


def expand_occurrences(
    rule: RecurrenceRule,
    anchor: datetime,
    now: datetime,
    horizon_end: datetime,
    timezone: ZoneInfo,
) -> list[datetime]:
    """Occurrences strictly after ``now`` and before ``horizon_end``, strictly increasing."""
    instants: list[datetime] = []
    for instant in iter_occurrences(rule, anchor, timezone):
        if as_utc(instant) >= as_utc(horizon_end):
            break
        if as_utc(instant) <= as_utc(now):
            continue
        if instants and as_utc(instant) <= as_utc(instants[-1]):
            continue
        instants.append(instant)
    return instants


def occurrences_between(
    rule: RecurrenceRule,
    anchor: datetime,
    start: datetime,
    end: datetime,
    timezone: ZoneInfo,
) -> list[datetime]:
    """Occurrences in the half-open window [start, end), for calendar views."""
    instants = []
    for instant in iter_occurrences(rule, anchor, timezone):
        if as_utc(instant) >= as_utc(end):
            break
        if as_utc(instant) >= as_utc(start):
            instants.append(instant)
    return instants


def expand_recurring_task(
    task: Task,
    now: datetime,
    horizon_end: datetime,
    timezone: ZoneInfo,
) -> list[Occurrence]:
    if task.recurrence is None:
        return []
    instants = expand_occurrences(task.recurrence, task.scheduled_time, now, horizon_end, timezone)
    return [Occurrence.of(task, instant) for instant in instants]

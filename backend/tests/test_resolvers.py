"""
Tests for resolvers.py - date words, clock times and recurrence phrases.
"""
import pytest
import sys
import os
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import InvalidDate, InvalidTime, MissingDate, MissingTime
from models import (
    BiweeklyRule,
    MonthlyByDayOfMonthRule,
    MonthlyByOrdinalWeekdayRule,
    Ordinal,
    TimeOfDay,
    Weekday,
    WeeklyRule,
)
from resolvers import (
    date_token_length,
    ordinal_for,
    resolve_date,
    resolve_recurrence,
    resolve_time,
)


class TestDateResolver:
    """Relative and absolute dates, resolved against Thursday 2025-09-11."""

    @pytest.mark.parametrize("phrase,expected,consumed", [
        ("2025-09-20", date(2025, 9, 20), 1),
        ("today", date(2025, 9, 11), 1),
        ("Tomorrow", date(2025, 9, 12), 1),
        ("friday", date(2025, 9, 12), 1),
        ("next friday", date(2025, 9, 19), 2),
        ("next mon", date(2025, 9, 22), 2),
        ("sep 20", date(2025, 9, 20), 2),
        ("September 20th", date(2025, 9, 20), 2),
        ("jan 5", date(2026, 1, 5), 2),
    ])
    def test_resolves_phrase(self, ctx, phrase, expected, consumed):
        assert resolve_date(phrase.split(), 0, ctx) == (expected, consumed)

    def test_same_weekday_means_next_week(self, ctx):
        """A bare weekday never resolves to today."""
        assert resolve_date(["thursday"], 0, ctx) == (date(2025, 9, 18), 1)

    def test_month_day_today_is_kept(self, ctx):
        assert resolve_date(["sep", "11"], 0, ctx) == (date(2025, 9, 11), 2)

    def test_month_day_in_past_rolls_to_next_year(self, ctx):
        assert resolve_date(["sep", "10"], 0, ctx) == (date(2026, 9, 10), 2)

    def test_nonexistent_month_day(self, ctx):
        """Feb 29 exists in neither 2025 nor 2026."""
        with pytest.raises(InvalidDate):
            resolve_date(["feb", "29"], 0, ctx)

    def test_impossible_iso_date(self, ctx):
        with pytest.raises(InvalidDate) as excinfo:
            resolve_date(["2025-02-30"], 0, ctx)
        assert excinfo.value.token == "2025-02-30"

    def test_end_of_tokens(self, ctx):
        with pytest.raises(MissingDate):
            resolve_date(["Gym"], 1, ctx)

    def test_not_a_date(self, ctx):
        with pytest.raises(InvalidDate):
            resolve_date(["someday"], 0, ctx)

    @pytest.mark.parametrize("tokens,expected", [
        (["2025-09-13"], 1),
        (["friday"], 1),
        (["fri"], 0),
        (["next", "fri"], 2),
        (["next", "time"], 0),
        (["sep", "20"], 2),
        (["may", "day"], 0),
        (["Gym"], 0),
        ([], 0),
    ])
    def test_date_token_length(self, tokens, expected):
        """Only unambiguous date phrases end a title."""
        assert date_token_length(tokens, 0) == expected


class TestTimeResolver:
    """24h and 12h clock parsing."""

    @pytest.mark.parametrize("token,hour,minute", [
        ("07:00", 7, 0),
        ("7:05", 7, 5),
        ("23:59", 23, 59),
        ("00:00", 0, 0),
        ("3pm", 15, 0),
        ("3:30PM", 15, 30),
        ("12am", 0, 0),
        ("12pm", 12, 0),
        ("11:45am", 11, 45),
    ])
    def test_valid_times(self, token, hour, minute):
        assert resolve_time(token) == TimeOfDay(hour=hour, minute=minute)

    @pytest.mark.parametrize("token", ["24:00", "12:60", "13pm", "0am", "noon", "7", "7.30"])
    def test_invalid_times(self, token):
        with pytest.raises(InvalidTime):
            resolve_time(token)

    def test_missing_time(self):
        with pytest.raises(MissingTime):
            resolve_time(None)


class TestRecurrenceResolver:
    """Each recurrence phrase, the rule it yields and the tokens it consumes."""

    SATURDAY_ANCHOR = date(2025, 9, 13)

    def test_weekly_takes_anchor_weekday(self):
        rule, consumed = resolve_recurrence(["weekly"], 0, self.SATURDAY_ANCHOR)
        assert rule == WeeklyRule(day_of_week=Weekday.SATURDAY)
        assert consumed == 1

    def test_biweekly_with_day(self):
        rule, consumed = resolve_recurrence(["biweekly", "Monday"], 0, self.SATURDAY_ANCHOR)
        assert rule == BiweeklyRule(day_of_week=Weekday.MONDAY)
        assert consumed == 2

    def test_biweekly_defaults_to_monday(self):
        rule, consumed = resolve_recurrence(["biweekly", "special"], 0, self.SATURDAY_ANCHOR)
        assert rule == BiweeklyRule(day_of_week=Weekday.MONDAY)
        assert consumed == 1

    def test_monthly_ordinal_weekday(self):
        rule, consumed = resolve_recurrence(["monthly", "first", "Saturday"], 0, self.SATURDAY_ANCHOR)
        assert rule == MonthlyByOrdinalWeekdayRule(ordinal=Ordinal.FIRST, day_of_week=Weekday.SATURDAY)
        assert consumed == 3

    def test_ordinal_weekday_of_every_month(self):
        tokens = "first Sunday of every month".split()
        rule, consumed = resolve_recurrence(tokens, 0, self.SATURDAY_ANCHOR)
        assert rule == MonthlyByOrdinalWeekdayRule(ordinal=Ordinal.FIRST, day_of_week=Weekday.SUNDAY)
        assert consumed == 5

    def test_ordinal_weekday_monthly(self):
        rule, consumed = resolve_recurrence(["last", "friday", "monthly"], 0, self.SATURDAY_ANCHOR)
        assert rule == MonthlyByOrdinalWeekdayRule(ordinal=Ordinal.LAST, day_of_week=Weekday.FRIDAY)
        assert consumed == 3

    def test_weekday_monthly_takes_ordinal_from_anchor(self):
        """2025-09-12 is the second Friday of September."""
        rule, consumed = resolve_recurrence(["friday", "monthly"], 0, date(2025, 9, 12))
        assert rule == MonthlyByOrdinalWeekdayRule(ordinal=Ordinal.SECOND, day_of_week=Weekday.FRIDAY)
        assert consumed == 2

    def test_weekday_monthly_late_in_month_is_last(self):
        rule, _ = resolve_recurrence(["friday", "monthly"], 0, date(2025, 1, 31))
        assert rule.ordinal is Ordinal.LAST

    def test_monthly_takes_anchor_day(self):
        rule, consumed = resolve_recurrence(["monthly"], 0, date(2025, 9, 30))
        assert rule == MonthlyByDayOfMonthRule(day=30)
        assert consumed == 1

    def test_incomplete_ordinal_falls_back_to_monthly(self):
        rule, consumed = resolve_recurrence(["monthly", "first"], 0, self.SATURDAY_ANCHOR)
        assert rule == MonthlyByDayOfMonthRule(day=13)
        assert consumed == 1

    @pytest.mark.parametrize("tokens", [["daily"], ["special"], [], ["first", "sunday"]])
    def test_no_recurrence(self, tokens):
        assert resolve_recurrence(tokens, 0, self.SATURDAY_ANCHOR) == (None, 0)

    @pytest.mark.parametrize("day,expected", [
        (1, Ordinal.FIRST),
        (7, Ordinal.FIRST),
        (8, Ordinal.SECOND),
        (21, Ordinal.THIRD),
        (28, Ordinal.FOURTH),
        (29, Ordinal.LAST),
        (31, Ordinal.LAST),
    ])
    def test_ordinal_for(self, day, expected):
        assert ordinal_for(date(2025, 1, day)) is expected

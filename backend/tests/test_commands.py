"""
Tests for commands.py and messages.py - running chat commands end to end
against the test database and rendering the replies.
"""
import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from agenda import view_window
from commands import handle_text
from command_parser import CommandKind
from conftest import TAIPEI, make_ctx
from messages import (
    HELP_TEXT,
    UNKNOWN_COMMAND_TEXT,
    format_datetime,
    format_recurrence,
    render_result,
)
from models import (
    MonthlyByDayOfMonthRule,
    MonthlyByOrdinalWeekdayRule,
    Ordinal,
    ReminderType,
    ResultKind,
    Weekday,
    WeeklyRule,
)


def at(*args):
    return datetime(*args, tzinfo=TAIPEI)


class TestAddCommand:
    """add creates the task and its reminders."""

    def test_add_schedules_reminders(self, test_db, ctx):
        result = handle_text("add Dentist 2025-09-13 07:00 special", ctx)

        assert result.kind is ResultKind.ADDED
        assert result.task.title == "Dentist"
        reminders = database.list_reminders_for_task(result.task.id)
        assert {r.reminder_type for r in reminders} == {
            ReminderType.HOURLY, ReminderType.SPECIAL_DAY_BEFORE, ReminderType.SPECIAL_DAY_OF,
        }

    def test_add_recurring(self, test_db, ctx):
        result = handle_text("add Gym 2025-09-13 07:00 weekly", ctx)

        assert result.task.recurrence == WeeklyRule(day_of_week=Weekday.SATURDAY)
        assert len(database.list_reminders_for_task(result.task.id)) == 13

    def test_add_parse_error(self, test_db, ctx):
        result = handle_text("add Gym tomorrow", ctx)

        assert result.kind is ResultKind.PARSE_ERROR
        assert database.list_active_tasks() == []
        assert render_result(result, ctx).startswith("❌ Could not add task:")


class TestUpdateCommand:
    """update finds the task, applies changes and reschedules."""

    def test_update_by_index_reschedules(self, test_db, ctx):
        handle_text("add Dentist 2025-09-13 07:00", ctx)
        handle_text("add Gym 2025-09-15 18:00", ctx)

        result = handle_text("update 1 to 2025-09-20 10:00", ctx)

        assert result.kind is ResultKind.UPDATED
        assert result.task.title == "Dentist"
        assert result.task.scheduled_time == at(2025, 9, 20, 10, 0)
        reminders = database.list_reminders_for_task(result.task.id)
        assert [(r.reminder_type, r.scheduled_time) for r in reminders] == [
            (ReminderType.HOURLY, at(2025, 9, 20, 9, 0)),
        ]

    def test_update_by_title_adds_recurrence(self, test_db, ctx):
        handle_text("add Salary review 2025-09-30 10:00", ctx)

        result = handle_text('update "salary review" to monthly', ctx)

        assert result.kind is ResultKind.UPDATED
        assert result.task.scheduled_time == at(2025, 9, 30, 10, 0)
        assert result.task.recurrence == MonthlyByDayOfMonthRule(day=30)

    def test_update_special_only_keeps_time(self, test_db, ctx):
        handle_text("add Dentist 2025-09-13 07:00", ctx)

        result = handle_text('update "Dentist" to special', ctx)

        assert result.task.is_special is True
        assert result.task.scheduled_time == at(2025, 9, 13, 7, 0)
        types = {r.reminder_type for r in database.list_reminders_for_task(result.task.id)}
        assert ReminderType.SPECIAL_DAY_OF in types

    def test_update_not_found(self, test_db, ctx):
        result = handle_text('update "Nothing" to 3pm', ctx)

        assert result.kind is ResultKind.NOT_FOUND
        assert '"Nothing"' in render_result(result, ctx)

    def test_update_index_out_of_range(self, test_db, ctx):
        handle_text("add Dentist 2025-09-13 07:00", ctx)

        assert handle_text("update 2 to 3pm", ctx).kind is ResultKind.NOT_FOUND

    def test_update_without_changes(self, test_db, ctx):
        handle_text("add Dentist 2025-09-13 07:00", ctx)

        assert handle_text('update "Dentist"', ctx).kind is ResultKind.NO_CHANGES


class TestDeleteCommand:
    """delete soft-deletes and drops pending reminders."""

    def test_delete_by_index(self, test_db, ctx):
        handle_text("add Dentist 2025-09-13 07:00", ctx)
        gym = handle_text("add Gym 2025-09-15 18:00", ctx).task

        result = handle_text("delete 2", ctx)

        assert result.kind is ResultKind.DELETED
        assert result.task.id == gym.id
        assert [t.title for t in database.list_active_tasks()] == ["Dentist"]
        assert database.list_reminders_for_task(gym.id) == []

    def test_delete_ambiguous_title(self, test_db, ctx):
        handle_text("add Team meeting 2025-09-15 09:00", ctx)
        handle_text("add Board meeting 2025-09-16 09:00", ctx)

        result = handle_text('delete "meeting"', ctx)

        assert result.kind is ResultKind.AMBIGUOUS
        assert len(result.tasks) == 2
        assert len(database.list_active_tasks()) == 2
        assert "Multiple tasks match" in render_result(result, ctx)

    def test_delete_parse_error(self, test_db, ctx):
        result = handle_text("delete Gym", ctx)

        assert result.kind is ResultKind.PARSE_ERROR
        assert result.verb == "delete"


class TestViews:
    """today / week / month / list / ids."""

    def add_sample_tasks(self, ctx):
        # Weekly on Thursdays, anchored last week
        handle_text("add Gym 2025-09-04 19:00 weekly", ctx)
        handle_text("add Dentist tomorrow 10:00", ctx)
        handle_text("add Review 2025-10-01 09:00", ctx)

    def test_today_shows_recurring_occurrence(self, test_db, ctx):
        self.add_sample_tasks(ctx)

        result = handle_text("today", ctx)

        assert result.kind is ResultKind.AGENDA
        assert [(e.occurrence.title, e.occurrence.occurrence_time) for e in result.entries] == [
            ("Gym", at(2025, 9, 11, 19, 0)),
        ]
        assert result.entries[0].display_index == 1

    def test_week_starts_on_sunday(self, test_db, ctx):
        self.add_sample_tasks(ctx)

        result = handle_text("week", ctx)

        assert [e.occurrence.title for e in result.entries] == ["Gym", "Dentist"]
        assert [e.display_index for e in result.entries] == [1, 2]

    def test_month(self, test_db, ctx):
        self.add_sample_tasks(ctx)

        result = handle_text("month", ctx)

        assert [e.occurrence.occurrence_time.day for e in result.entries] == [4, 11, 12, 18, 25]

    def test_list_and_ids(self, test_db, ctx):
        self.add_sample_tasks(ctx)

        listed = handle_text("list", ctx)
        ids = handle_text("ids", ctx)

        assert [t.title for t in listed.tasks] == ["Gym", "Dentist", "Review"]
        assert render_result(ids, ctx).splitlines()[2:5] == ["1 - Gym", "2 - Dentist", "3 - Review"]

    def test_empty_view(self, test_db, ctx):
        assert render_result(handle_text("today", ctx), ctx) == "📅 Today's Tasks\n\nNo tasks found."

    def test_view_windows(self, ctx):
        assert view_window(CommandKind.WEEK, ctx) == (at(2025, 9, 7), at(2025, 9, 14))
        assert view_window(CommandKind.MONTH, ctx) == (at(2025, 9, 1), at(2025, 10, 1))
        assert view_window(CommandKind.TODAY, ctx) == (at(2025, 9, 11), at(2025, 9, 12))


class TestRenderResult:
    """Reply text."""

    def test_added_reply(self, test_db, ctx):
        result = handle_text("add Gym 2025-09-13 07:00 weekly", ctx)

        assert render_result(result, ctx) == (
            '✅ Task "Gym" added successfully!\n'
            "📅 Sat, Sep 13, 7:00 AM 🔄\n"
            "🔄 Recurring: Every Saturday"
        )

    def test_help_and_unknown(self, test_db, ctx):
        assert render_result(handle_text("hey assistant", ctx), ctx) == HELP_TEXT
        assert render_result(handle_text("what's up", ctx), ctx) == UNKNOWN_COMMAND_TEXT

    def test_format_datetime(self, ctx):
        assert format_datetime(at(2025, 9, 11, 15, 0), ctx) == "Today at 3:00 PM"
        assert format_datetime(at(2025, 9, 12, 0, 5), ctx) == "Tomorrow at 12:05 AM"
        assert format_datetime(at(2025, 9, 20, 12, 30), ctx) == "Sat, Sep 20, 12:30 PM"

    def test_format_datetime_uses_account_timezone(self):
        ctx = make_ctx(2025, 9, 11, 8, 0)
        utc_evening = datetime.fromisoformat("2025-09-11T23:30:00+00:00")

        assert format_datetime(utc_evening, ctx) == "Tomorrow at 7:30 AM"

    def test_format_recurrence(self):
        assert format_recurrence(WeeklyRule(day_of_week=Weekday.SATURDAY)) == "Every Saturday"
        assert format_recurrence(MonthlyByDayOfMonthRule(day=22)) == "Monthly on the 22nd"
        assert format_recurrence(MonthlyByDayOfMonthRule(day=11)) == "Monthly on the 11th"
        assert format_recurrence(
            MonthlyByOrdinalWeekdayRule(ordinal=Ordinal.LAST, day_of_week=Weekday.FRIDAY)
        ) == "Monthly on the last Friday"
        assert format_recurrence(None) == ""

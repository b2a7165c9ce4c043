from dataclasses import dataclass
from datetime import date, datetime, timezone as dt_timezone
from enum import Enum, IntEnum
from typing import Annotated, Literal, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter


class Weekday(IntEnum):
    """Day of week, numbered like ``date.weekday()``."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class Ordinal(str, Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"

    @property
    def number(self) -> int:
        """1-4 for counted ordinals, -1 for LAST."""
        if self is Ordinal.LAST:
            return -1
        return list(Ordinal).index(self) + 1


class TimeOfDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


# Recurrence rules: a closed set of variants discriminated by ``kind``.
# Stored as JSON in tasks.recurrence_rule.

class WeeklyRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["weekly"] = "weekly"
    day_of_week: Weekday


class BiweeklyRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["biweekly"] = "biweekly"
    day_of_week: Weekday = Weekday.MONDAY


class MonthlyByDayOfMonthRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["monthly_day"] = "monthly_day"
    day: int = Field(ge=1, le=31)


class MonthlyByOrdinalWeekdayRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["monthly_weekday"] = "monthly_weekday"
    ordinal: Ordinal
    day_of_week: Weekday


RecurrenceRule = Annotated[
    Union[WeeklyRule, BiweeklyRule, MonthlyByDayOfMonthRule, MonthlyByOrdinalWeekdayRule],
    Field(discriminator="kind"),
]

_recurrence_adapter = TypeAdapter(RecurrenceRule)


def dump_recurrence(rule: Optional[RecurrenceRule]) -> Optional[str]:
    if rule is None:
        return None
    return rule.model_dump_json()


def load_recurrence(raw: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse a stored rule. Raises pydantic.ValidationError on malformed JSON."""
    if not raw:
        return None
    return _recurrence_adapter.validate_json(raw)


def as_utc(instant: datetime) -> datetime:
    """Same instant in UTC.

    Aware datetimes sharing a tzinfo compare by wall clock and ignore
    ``fold``, so instants are ordered in UTC.
    """
    return instant.astimezone(dt_timezone.utc)


@dataclass(frozen=True)
class AccountContext:
    """The account timezone and the instant "now" for one request or tick.

    Passed explicitly to every resolver and engine call so nothing reads the
    clock or the timezone from global state.
    """
    timezone: ZoneInfo
    now: datetime

    @classmethod
    def at(cls, timezone: ZoneInfo, now: Optional[datetime] = None) -> "AccountContext":
        if now is None:
            now = datetime.now(timezone)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone)
        return cls(timezone=timezone, now=now.astimezone(timezone))

    @property
    def today(self) -> date:
        return self.now.date()

    def local(self, instant: datetime) -> datetime:
        return instant.astimezone(self.timezone)

    def is_future(self, instant: datetime) -> bool:
        return as_utc(instant) > as_utc(self.now)


class TaskUpdate(BaseModel):
    """Body of ``PATCH /tasks/{task_id}``. Only the fields sent are changed;
    an explicit ``"recurrence": null`` makes the task one-shot."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]] = None
    scheduled_time: Optional[datetime] = None  # naive values are read in the account timezone
    is_special: Optional[bool] = None
    recurrence: Optional[RecurrenceRule] = None

    def to_changes(self, timezone: ZoneInfo) -> dict:
        """Column updates for database.update_task_db."""
        changes = {}
        if self.title is not None:
            changes["title"] = self.title
        if self.scheduled_time is not None:
            scheduled_time = self.scheduled_time
            if scheduled_time.tzinfo is None:
                scheduled_time = scheduled_time.replace(tzinfo=timezone)
            changes["scheduled_time"] = scheduled_time
        if self.is_special is not None:
            changes["is_special"] = self.is_special
        if "recurrence" in self.model_fields_set:
            changes["recurrence_rule"] = self.recurrence
        return changes


class TaskSpecification(BaseModel):
    """Parser output for an ``add`` command."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1, max_length=200)
    scheduled_time: datetime  # aware, account timezone
    recurrence: Optional[RecurrenceRule] = None
    is_special: bool = False

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


class Task(BaseModel):
    id: str
    title: str
    scheduled_time: datetime
    is_special: bool = False
    recurrence: Optional[RecurrenceRule] = None
    active: bool = True
    created_at: datetime

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


class Occurrence(BaseModel):
    """One concrete firing of a task: its own time, or one expanded instance."""
    model_config = ConfigDict(frozen=True)

    task_id: str
    title: str
    occurrence_time: datetime
    is_special: bool = False

    @classmethod
    def of(cls, task: Task, occurrence_time: Optional[datetime] = None) -> "Occurrence":
        return cls(
            task_id=task.id,
            title=task.title,
            occurrence_time=occurrence_time or task.scheduled_time,
            is_special=task.is_special,
        )


class ReminderType(str, Enum):
    DAILY = "daily"
    HOURLY = "hourly"
    SPECIAL_DAY_BEFORE = "special_day_before"
    SPECIAL_DAY_OF = "special_day_of"


class ReminderSpec(BaseModel):
    id: Optional[int] = None
    task_id: str
    occurrence_time: datetime
    reminder_type: ReminderType
    scheduled_time: datetime
    sent_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, datetime, ReminderType]:
        return (self.task_id, self.occurrence_time, self.reminder_type)


# update/delete identifiers

class TitleIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["title"] = "title"
    value: str = Field(min_length=1, max_length=200)


class IndexIdentifier(BaseModel):
    """1-based position in the ``list`` view."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["index"] = "index"
    value: int = Field(ge=1)


TaskIdentifier = Annotated[Union[TitleIdentifier, IndexIdentifier], Field(discriminator="kind")]


class TaskUpdates(BaseModel):
    model_config = ConfigDict(frozen=True)

    scheduled_time: Optional[datetime] = None
    recurrence: Optional[RecurrenceRule] = None
    is_special: Optional[bool] = None  # None leaves the flag unchanged

    def is_empty(self) -> bool:
        return self.scheduled_time is None and self.recurrence is None and self.is_special is None


class UpdateCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: TaskIdentifier
    updates: TaskUpdates


# LINE webhook payload (only the fields we read)

class WebhookSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "user"
    user_id: Optional[str] = Field(default=None, alias="userId")


class WebhookMessage(BaseModel):
    type: str
    text: Optional[str] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    source: Optional[WebhookSource] = None
    message: Optional[WebhookMessage] = None


class WebhookRequest(BaseModel):
    events: list[WebhookEvent] = []


class ResultKind(str, Enum):
    """Outcome of running one chat command."""
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    AGENDA = "agenda"
    TASK_LIST = "task_list"
    TASK_IDS = "task_ids"
    HELP = "help"
    PARSE_ERROR = "parse_error"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    NO_CHANGES = "no_changes"
    UNKNOWN = "unknown"

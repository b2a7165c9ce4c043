"""Runtime configuration read from the environment (and a local .env file)."""
import os
from datetime import time
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("DATABASE_PATH", "reminders.db")

# Account timezone (IANA name). All date words and wall-clock times in
# commands are resolved against this zone.
TIMEZONE = os.getenv("TIMEZONE", "Asia/Taipei")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Shared secret expected on cron trigger requests. Unset disables the check.
CRON_API_KEY = os.getenv("CRON_API_KEY")

LINE_CHANNEL_ACCESS_TOKEN = os.getenv("LINE_CHANNEL_ACCESS_TOKEN")
# Recipient for pushed reminders (single-account deployment)
LINE_USER_ID = os.getenv("LINE_USER_ID")

EXPANSION_HORIZON_MONTHS = int(os.getenv("EXPANSION_HORIZON_MONTHS", "3"))

SENT_REMINDER_RETENTION_DAYS = int(os.getenv("SENT_REMINDER_RETENTION_DAYS", "30"))


def _parse_clock(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


# Local time of the "daily" and "special_day_of" reminders
MORNING_REMINDER_TIME = _parse_clock(os.getenv("MORNING_REMINDER_TIME", "05:30"))


def get_timezone() -> ZoneInfo:
    return ZoneInfo(TIMEZONE)

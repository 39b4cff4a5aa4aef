from datetime import datetime, date, time
from zoneinfo import ZoneInfo

from flask import current_app


def local_now() -> datetime:
    """Naive wall-clock time in the business timezone (slots are stored that way)."""
    tz = ZoneInfo(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    return datetime.now(tz).replace(tzinfo=None)


def day_of_week(day: date) -> int:
    # 0 = Sunday ... 6 = Saturday
    return (day.weekday() + 1) % 7


def parse_date(value: str) -> date:
    # Expect "YYYY-MM-DD"
    return date.fromisoformat(value)


def parse_time(value: str) -> time:
    # Accept "HH:MM" or "HH:MM:SS"
    return time.fromisoformat(value)


def minutes_of(t: time) -> int:
    return t.hour * 60 + t.minute


def time_of(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)

"""
Clock helpers. All day boundaries use the configured canonical zone (UTC by default).
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from gamification.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today(now: datetime | None = None) -> date:
    """Calendar date of `now` (default: current time) in the canonical zone."""
    if now is None:
        now = utcnow()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(get_settings().TIMEZONE)).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing `day`."""
    return day - timedelta(days=day.weekday())

"""Timestamp helpers. Everything is stored as naive UTC."""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming datetime (aware or naive-UTC) for storage"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


def localize(value: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a stored naive-UTC datetime into the trainer's timezone"""
    aware = value.replace(tzinfo=timezone.utc)
    if not tz_name:
        return aware
    try:
        return aware.astimezone(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown timezone '{tz_name}', falling back to UTC")
        return aware


def format_date_range(start: datetime, end: datetime, tz_name: Optional[str]) -> str:
    """e.g. 'Tuesday 3 March 2026, 9:00 AM - 10:00 AM'"""
    local_start = localize(start, tz_name)
    local_end = localize(end, tz_name)

    def _time(d: datetime) -> str:
        return d.strftime("%I:%M %p").lstrip("0")

    day = f"{local_start.strftime('%A')} {local_start.day} {local_start.strftime('%B %Y')}"
    if local_start.date() == local_end.date():
        return f"{day}, {_time(local_start)} - {_time(local_end)}"
    end_day = f"{local_end.strftime('%A')} {local_end.day} {local_end.strftime('%B %Y')}"
    return f"{day}, {_time(local_start)} - {end_day}, {_time(local_end)}"

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def parse_date(value, field: str = "date") -> str:
    """
    Normalize a calendar date to "YYYY-MM-DD".

    Appointment dates are stored as local calendar strings, never instants,
    so a booking at a physical location does not drift with timezones.
    """
    if isinstance(value, datetime):
        return value.date().strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).strftime(DATE_FORMAT)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def parse_time(value, field: str = "time") -> str:
    """Normalize a local time of day to "HH:MM". Accepts "HH:MM" and "HH:MM:SS"."""
    if isinstance(value, time):
        return value.strftime(TIME_FORMAT)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    s = value.strip()
    for fmt in (TIME_FORMAT, "%H:%M:%S"):
        try:
            return datetime.strptime(s, fmt).strftime(TIME_FORMAT)
        except ValueError:
            continue
    raise ValidationError(f"{field} must be a time in HH:MM format")


def minutes_of_day(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def weekday_of(value: str) -> int:
    """Monday=0 ... Sunday=6 for a "YYYY-MM-DD" string."""
    return datetime.strptime(value, DATE_FORMAT).weekday()


def local_now(tz_name: str | None) -> datetime:
    """Wall-clock time at a branch, as a naive local datetime."""
    try:
        tz = ZoneInfo(tz_name or "UTC")
    except ZoneInfoNotFoundError:
        tz = ZoneInfo("UTC")
    return datetime.now(timezone.utc).astimezone(tz).replace(tzinfo=None)


def shift_date(value: str, days: int) -> str:
    """"YYYY-MM-DD" moved by a number of calendar days."""
    if not days:
        return value
    return (datetime.strptime(value, DATE_FORMAT) + timedelta(days=days)).strftime(DATE_FORMAT)

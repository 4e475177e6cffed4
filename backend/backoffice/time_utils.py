from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .validation import ValidationError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)

    s = str(value).strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value) -> Optional[date]:
    """Calendar day of an ISO date/datetime value (UTC), or None."""
    dt = parse_iso_datetime(value)
    return dt.date() if dt is not None else None


def _filter_day(value, field: str) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} is not a valid date") from None


def start_of_day(value, field: str = "date_from") -> Optional[datetime]:
    day = _filter_day(value, field)
    if day is None:
        return None
    return datetime.combine(day, time.min)


def end_of_day(value, field: str = "date_to") -> Optional[datetime]:
    """Last representable instant of the given UTC day (inclusive bound)."""
    day = _filter_day(value, field)
    if day is None:
        return None
    return datetime.combine(day, time.min) + timedelta(days=1) - timedelta(microseconds=1)


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


def to_iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()

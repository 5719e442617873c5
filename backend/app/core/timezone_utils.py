"""
Timezone utilities for the GymApp platform.

All timestamps are stored and compared in UTC. SQLite hands back naive
datetimes even for timezone-aware columns, so values read from the store
are normalized before any arithmetic.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_utc_optional(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def parse_hhmm(value: str) -> time:
    """Parse a zero-padded 24h ``HH:MM`` string."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def wall_clock_to_utc(day: date, hhmm: str, tz_name: str) -> datetime:
    """
    Interpret ``HH:MM`` on ``day`` in the gym's local timezone and return UTC.

    pytz ``localize`` picks the standard-time reading for ambiguous
    wall-clock times during DST transitions.
    """
    tz = pytz.timezone(tz_name)
    local = tz.localize(datetime.combine(day, parse_hhmm(hhmm)))
    return local.astimezone(pytz.UTC)


def sunday_based_weekday(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7

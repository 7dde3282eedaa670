"""
Immutable time ranges and date/time parsing for the slot engine.

All instants handled by the engine are timezone-aware UTC. Local working hours ("HH:MM") are
anchored to a calendar date in the practitioner's timezone and converted once, in local_window().
Comparisons are pure; nothing here mutates a datetime in place.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple

import pytz

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class TimeRange(NamedTuple):
    """Half-open [start, end) interval of aware datetimes."""

    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Strict overlap: touching boundaries (self.end == other.start) are not an overlap."""
        return self.start < other.end and self.end > other.start

    def expand(self, before_minutes: int, after_minutes: int) -> "TimeRange":
        """New range widened by the given buffers on each side."""
        return TimeRange(
            self.start - timedelta(minutes=before_minutes),
            self.end + timedelta(minutes=after_minutes),
        )


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime. Naive values (e.g. read back from SQLite) are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value: str | date) -> date:
    """Strict YYYY-MM-DD. Raises ValueError on anything else (including impossible dates)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD")
    return date.fromisoformat(value)


def parse_hhmm(value: str) -> time:
    if not isinstance(value, str) or not _HHMM_RE.match(value):
        raise ValueError(f"Invalid time {value!r}; expected HH:MM")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_hhmm(value) -> bool:
    return isinstance(value, str) and bool(_HHMM_RE.match(value))


def parse_instant(value: str | datetime) -> datetime:
    """ISO 8601 instant to aware UTC. A trailing 'Z' is accepted; naive input is read as UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO 8601 string or datetime, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def weekday_index(day: date) -> int:
    """0 = Sunday .. 6 = Saturday, taken from the calendar date itself (the UTC-midnight anchor)."""
    return (day.weekday() + 1) % 7


def get_timezone(name: str):
    """pytz timezone for an IANA name. Raises ValueError for unknown names."""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone {name!r}") from None


def local_window(day: date, start_hhmm: str, end_hhmm: str, tz_name: str) -> TimeRange:
    """Working window on `day`, given as local HH:MM in tz_name, as a UTC TimeRange."""
    tz = get_timezone(tz_name)
    start_local = tz.localize(datetime.combine(day, parse_hhmm(start_hhmm)))
    end_local = tz.localize(datetime.combine(day, parse_hhmm(end_hhmm)))
    return TimeRange(as_utc(start_local), as_utc(end_local))


def iter_days(start: date, count: int):
    for offset in range(count):
        yield start + timedelta(days=offset)

"""Time and date helpers shared by the schedule provider and the resolver."""

import re
from datetime import date, timedelta

_HHMM = re.compile(r"^\d{2}:\d{2}$")
_LOOSE_TIME = re.compile(r"(\d{1,2}):(\d{2})")

# Index matches date.weekday() (0=Monday)
DAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def normalize_time(value: str | None) -> str:
    """Bring a stored time to "HH:MM".

    "9:00" -> "09:00", "10:30:00" -> "10:30". Strings without a recognisable
    time come back unchanged so callers can still compare them verbatim.
    """
    if not value:
        return ""
    if _HHMM.match(value):
        return value
    match = _LOOSE_TIME.search(value)
    if match:
        return f"{match.group(1).zfill(2)}:{match.group(2)}"
    return value


def time_to_minutes(value: str | None) -> int | None:
    """Minutes since midnight for an "HH:MM" string, None if unparseable."""
    normalized = normalize_time(value)
    if not _HHMM.match(normalized):
        return None
    hours, minutes = (int(p) for p in normalized.split(":"))
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_key(day: date) -> str:
    """English weekday name used as key of the weekly availability table."""
    return DAY_NAMES[day.weekday()]


def parse_iso_date(value: str) -> date | None:
    """Parse YYYY-MM-DD (anything after a 'T' is ignored), None if invalid."""
    try:
        return date.fromisoformat(value.split("T")[0])
    except (AttributeError, ValueError):
        return None


def date_range(start: date, days: int) -> list[date]:
    return [start + timedelta(days=offset) for offset in range(max(days, 0))]


def within_window(candidate: int, anchor: int, window: int) -> bool:
    """True when candidate starts inside [anchor - window, anchor + window)."""
    return anchor - window <= candidate < anchor + window


def is_clock_time(value: str | None) -> bool:
    """True for a real 24-hour time (00:00-23:59) once normalized."""
    if time_to_minutes(value) is None:
        return False
    hours, mins = (int(p) for p in normalize_time(value).split(":"))
    return hours <= 23 and mins <= 59

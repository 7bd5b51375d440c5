"""Calendar and time-of-day helpers shared by validation and aggregation.

Pure functions, no I/O.  Parsers return ``None`` on unparseable input so
that callers can turn the defect into a ValidationError; only
``normalize_week_ending`` raises, because a bad week ending is a fatal
input error for closure.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from worklog_kernel.exceptions import InvalidWeekEndingError

MINUTES_PER_DAY = 1440
WEEK_LENGTH_DAYS = 7

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_CLOCK_TIME = re.compile(
    r"^\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<meridiem>[ap]\.?m\.?)?\s*$",
    re.IGNORECASE,
)
# Structured start marker inside free-text notes: "start=09:30", "Start: 1:15 pm"
_NOTES_START_MARKER = re.compile(
    r"\bstart\s*[:=]\s*(?P<time>\d{1,2}:\d{2}\s*(?:[ap]\.?m\.?)?)",
    re.IGNORECASE,
)


def parse_calendar_date(value: Any) -> date | None:
    """Parse an entry date from a date, datetime, ISO or US-style string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if _ISO_DATE.match(text):
            return date.fromisoformat(text)
        if _US_DATE.match(text):
            return datetime.strptime(text, "%m/%d/%Y").date()
    except ValueError:
        return None
    return None


def parse_minutes(value: Any) -> int | None:
    """Parse a whole number of minutes; fractional or non-numeric -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def parse_clock_time(value: Any) -> int | None:
    """Parse a time of day into minutes after midnight.

    Accepts ``"09:30"``, ``"9:30 am"``, ``"1:15PM"`` or an int already
    expressed as minutes of day.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value < MINUTES_PER_DAY else None
    if not isinstance(value, str):
        return None

    match = _CLOCK_TIME.match(value)
    if match is None:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    meridiem = match.group("meridiem")
    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        is_pm = meridiem.lower().startswith("p")
        hour = hour % 12 + (12 if is_pm else 0)
    elif hour > 23:
        return None
    return hour * 60 + minute


def start_minute_from_notes(notes: str | None) -> int | None:
    """Extract a start time from a ``start=HH:MM`` marker in free-text notes."""
    if not notes:
        return None
    match = _NOTES_START_MARKER.search(notes)
    if match is None:
        return None
    return parse_clock_time(match.group("time"))


def derive_start_minute(start_value: Any, notes: str | None) -> int | None:
    """Explicit start field wins; otherwise fall back to the notes marker."""
    if start_value is not None and start_value != "":
        explicit = parse_clock_time(start_value)
        if explicit is not None:
            return explicit
    return start_minute_from_notes(notes)


def intervals_overlap(
    start_a: int, minutes_a: int, start_b: int, minutes_b: int
) -> bool:
    """Half-open interval test: [start, start+minutes) intersect."""
    return max(start_a, start_b) < min(start_a + minutes_a, start_b + minutes_b)


def format_minute_of_day(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def normalize_week_ending(value: Any) -> date:
    """Normalize a week-ending value to a strict calendar date.

    Raises:
        InvalidWeekEndingError: for anything other than a date, datetime,
            or an ISO ``YYYY-MM-DD`` string naming a real calendar day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidWeekEndingError(value, "expected a date or YYYY-MM-DD string")
    text = value.strip()
    if not _ISO_DATE.match(text):
        raise InvalidWeekEndingError(value, "expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidWeekEndingError(value, str(exc)) from exc


def week_window(week_end: date) -> tuple[date, date]:
    """Inclusive 7-day window ending on ``week_end``."""
    return week_end - timedelta(days=WEEK_LENGTH_DAYS - 1), week_end


def report_key_for(prefix: str, week_end: date) -> str:
    return f"{prefix} - Week {week_end.isoformat()}"

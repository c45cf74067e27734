"""Shared date/time helpers used across the scheduling engine.

Times of day are handled as minutes since midnight so that overlap checks
are plain integer comparisons. Appointments never cross midnight.
"""

import re
from datetime import date, datetime

from service_scheduler.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_date(value: str, field_name: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date.

    Examples:
        >>> parse_date("2025-03-18")
        datetime.date(2025, 3, 18)
    """
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ValidationError(field_name, value, "Date must be in YYYY-MM-DD format")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(field_name, value, "Date is not a valid calendar date") from None


def parse_time(value: str, field_name: str = "time") -> int:
    """Parse a 24-hour ``HH:mm`` time into minutes since midnight.

    Examples:
        >>> parse_time("08:30")
        510
    """
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(field_name, value, "Time must be in 24-hour HH:mm format")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Render minutes since midnight as ``HH:mm``.

    Examples:
        >>> format_minutes(1050)
        '17:30'
    """
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """True when the half-open ranges [start_a, end_a) and [start_b, end_b) intersect."""
    return start_a < end_b and start_b < end_a

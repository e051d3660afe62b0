"""
Date and Time utilities

This module handles date parameter parsing and local wall-clock conversions.
All schedule times are local to the configured timezone.
"""
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo
import logging
import re


logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D+")


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def now_in(tz_name: str) -> datetime:
    """Current time as an aware datetime in the given timezone"""
    return datetime.now(ZoneInfo(tz_name))


def today_in(tz_name: str) -> str:
    """Current calendar date (YYYY-MM-DD) in the given timezone"""
    return now_in(tz_name).date().isoformat()


def parse_date_param(raw: str | None, tz_name: str) -> str:
    """
    Normalize a ``date`` query parameter to YYYY-MM-DD

    Non-digit characters are stripped first, so ``2024-10-01``, ``20241001``
    and ``2024/10/01 08:00`` are all accepted. Fewer than eight digits, or
    digits that do not form a calendar date, fall back to today.

    Args:
        raw: Raw query parameter value
        tz_name: IANA timezone used to compute "today"

    Returns:
        ISO calendar date string
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if len(digits) < 8:
        return today_in(tz_name)

    candidate = f"{digits[0:4]}-{digits[4:6]}-{digits[6:8]}"
    try:
        return date.fromisoformat(candidate).isoformat()
    except ValueError:
        logger.debug(f"Ignoring invalid date parameter {raw!r}")
        return today_in(tz_name)


def parse_clock(value: str) -> time:
    """
    Parse an ``HH:MM`` (or ``HH:MM:SS``) wall-clock string

    ``24:00`` is accepted and mapped to midnight.

    Raises:
        DateFormatError: If the string is not a valid clock time
    """
    try:
        parts = [int(part) for part in value.strip().split(":")]
        if parts and parts[0] == 24 and not any(parts[1:]):
            return time(0, 0)
        return time(*parts)
    except (TypeError, ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid clock time: '{value}'") from e


def local_timestamp(day: str, clock: str, tz_name: str) -> int:
    """
    Unix timestamp of ``clock`` on ``day`` in the given timezone

    Args:
        day: ISO calendar date
        clock: ``HH:MM`` wall-clock time
        tz_name: IANA timezone

    Returns:
        Seconds since the epoch
    """
    try:
        base = date.fromisoformat(day)
    except ValueError as e:
        raise DateFormatError(f"Invalid calendar date: '{day}'") from e

    moment = datetime.combine(base, parse_clock(clock), tzinfo=ZoneInfo(tz_name))
    if clock.strip().startswith("24"):
        moment += timedelta(days=1)
    return int(moment.timestamp())


def format_duration(seconds: int) -> str:
    """Render a duration as zero-padded HH:MM, wrapping at 24 hours"""
    minutes = (seconds % 86400) // 60
    return f"{minutes // 60:02d}:{minutes % 60:02d}"

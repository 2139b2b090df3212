"""
Small pure helpers for calendar arithmetic.

Weekdays follow the booking calendar convention: 0 = Sunday ... 6 = Saturday.
Weeks run Sunday through Saturday.
"""

from datetime import date, time, timedelta
from typing import Iterator, Tuple

MINUTES_PER_DAY = 24 * 60


def weekday_index(day: date) -> int:
    """Return the weekday with Sunday as 0."""
    return day.isoweekday() % 7


def week_bounds(day: date) -> Tuple[date, date]:
    """
    Return the (Sunday, Saturday) pair of the week containing ``day``.

    Example:
        Wednesday 2024-01-03 -> (2023-12-31, 2024-01-06)
    """
    start = day - timedelta(days=weekday_index(day))
    return start, start + timedelta(days=6)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def minutes_of(value: time) -> int:
    """Minutes since midnight for a time of day."""
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes must be within one day, got {minutes}")
    return time(hour=minutes // 60, minute=minutes % 60)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def parse_time_of_day(value: "str | time") -> time:
    """
    Parse ``HH:MM`` or ``HH:MM:SS`` into a time of day.

    Database TIME columns come back with seconds; forms send ``HH:MM``.
    Seconds are dropped since slots are minute-aligned.
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")

    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hour=hour, minute=minute)

"""
Injected sources of "now".

Availability depends on the current instant (advance-notice window, past
slots). Reading it through a Clock keeps the evaluator a pure function of its
inputs and lets tests pin time.
"""

from datetime import datetime
from typing import Protocol

import pendulum
from pendulum import DateTime


class Clock(Protocol):
    """Anything that can tell the current instant."""

    def now(self) -> DateTime:
        ...


class SystemClock:
    """Wall-clock time in the configured business timezone."""

    def __init__(self, timezone: str) -> None:
        self.timezone = timezone

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)


class FixedClock:
    """A clock pinned to one instant, for tests and replays."""

    def __init__(self, instant: "DateTime | datetime | str", timezone: str = "UTC") -> None:
        self._instant = to_instant(instant, timezone)

    def now(self) -> DateTime:
        return self._instant


def to_instant(value: "DateTime | datetime | str", timezone: str) -> DateTime:
    """
    Normalise a datetime-like value to a pendulum DateTime.

    Naive values and strings without an offset are read as local time in
    ``timezone``.
    """
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pendulum.instance(value, tz=timezone)
        return pendulum.instance(value)
    parsed = pendulum.parse(value, tz=timezone)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Not a date-time value: {value!r}")
    return parsed

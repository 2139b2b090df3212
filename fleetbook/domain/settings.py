"""
Calendar operating rules.
"""

from datetime import time
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .calendar_math import format_hhmm, minutes_of, parse_time_of_day
from .exceptions import InvalidConfiguration


class CalendarSettings(BaseModel):
    """
    Operating rules of the service calendar.

    A single record, edited from the admin settings screen and read-only to
    the availability engine. Weekdays use 0 = Sunday.
    """
    model_config = {"frozen": True}

    max_bookings_per_week: int = Field(default=5, ge=0)
    start_time: time = time(6, 0)
    end_time: time = time(14, 0)
    slot_duration: int = Field(default=30, gt=0)
    slot_buffer_time: int = Field(default=0, ge=0)
    working_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])  # Mon-Fri
    advance_booking_window: int = Field(default=0, ge=0)
    advance_booking_unit: Literal["hours", "days"] = "days"

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, value):
        """Accept ``HH:MM`` and ``HH:MM:SS`` as stored by the database."""
        return parse_time_of_day(value)

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"working_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @model_validator(mode="after")
    def validate_window_order(self) -> "CalendarSettings":
        """Ensure the daily window opens before it closes."""
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be later than start_time")
        return self

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start_time)

    @property
    def end_minutes(self) -> int:
        return minutes_of(self.end_time)

    @property
    def slot_step(self) -> int:
        """Distance between consecutive slot starts."""
        return self.slot_duration + self.slot_buffer_time

    def is_working_day(self, weekday: int) -> bool:
        return weekday in self.working_days

    def ensure_schedulable(self) -> None:
        """
        Raise InvalidConfiguration if no day could ever offer a slot.

        Called when an admin saves settings; the evaluator itself just
        reports zero slots for such a configuration.
        """
        if not self.working_days:
            raise InvalidConfiguration("At least one working day must be selected")
        if self.start_minutes + self.slot_duration > self.end_minutes:
            raise InvalidConfiguration(
                f"A {self.slot_duration}-minute slot does not fit between "
                f"{format_hhmm(self.start_time)} and {format_hhmm(self.end_time)}"
            )

    def to_payload(self) -> dict:
        """camelCase shape used by the settings API."""
        return {
            "maxBookingsPerWeek": self.max_bookings_per_week,
            "startTime": format_hhmm(self.start_time),
            "endTime": format_hhmm(self.end_time),
            "slotDuration": self.slot_duration,
            "slotBufferTime": self.slot_buffer_time,
            "workingDays": list(self.working_days),
            "advanceBookingWindow": self.advance_booking_window,
            "advanceBookingUnit": self.advance_booking_unit,
        }

"""
Domain layer - Pure business logic without I/O.
"""

from .availability import AvailabilityEvaluator
from .calendar_math import week_bounds
from .clock import Clock, FixedClock, SystemClock
from .models import (
    ACTIVE_STATUSES,
    Booking,
    BookingDraft,
    BookingStatus,
    DayAvailability,
    SlotCandidate,
    UnavailableReason,
)
from .settings import CalendarSettings
from .slot_generator import generate_slots

__all__ = [
    "ACTIVE_STATUSES",
    "AvailabilityEvaluator",
    "Booking",
    "BookingDraft",
    "BookingStatus",
    "CalendarSettings",
    "Clock",
    "DayAvailability",
    "FixedClock",
    "SlotCandidate",
    "SystemClock",
    "UnavailableReason",
    "generate_slots",
    "week_bounds",
]

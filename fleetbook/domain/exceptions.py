"""
Domain-specific exception hierarchy for the booking engine.
"""

from __future__ import annotations

from datetime import date, time
from typing import Sequence


class BookingEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidConfiguration(BookingEngineError):
    """Raised when calendar settings cannot produce a single bookable slot."""


class StorageUnavailable(BookingEngineError):
    """Raised when the settings or booking store cannot be read or written."""


class UniqueConstraintViolation(BookingEngineError):
    """Raised by a store when an active booking already holds the date/time."""


class InvalidStatusTransition(BookingEngineError):
    """Raised when a booking status change is not allowed."""


class SlotUnavailable(BookingEngineError):
    """
    Raised when a requested slot fails re-validation at write time.

    Carries the fresh list of free times for the date so the caller can
    offer alternatives.
    """

    error_code = "SlotUnavailable"

    def __init__(
        self,
        scheduled_date: date,
        scheduled_time: time,
        reason: str,
        available_slots: Sequence[str] = (),
    ) -> None:
        self.scheduled_date = scheduled_date
        self.scheduled_time = scheduled_time
        self.reason = reason
        self.available_slots = list(available_slots)
        super().__init__(
            f"Slot {scheduled_date.isoformat()} {scheduled_time.strftime('%H:%M')} "
            f"is not available ({reason})"
        )

    def to_payload(self) -> dict:
        """Shape returned to API callers instead of a booking."""
        return {
            "error": self.error_code,
            "reason": self.reason,
            "availableSlots": self.available_slots,
        }


class QuotaExceeded(SlotUnavailable):
    """The week containing the requested date already holds the maximum bookings."""

    error_code = "QuotaExceeded"

"""
Application service answering availability queries.

The service loads settings and the relevant slice of the booking ledger,
reads the injected clock, and delegates every decision to the domain-level
``AvailabilityEvaluator``. Storage errors propagate untouched: an outage must
never look like a fully booked calendar.
"""

from __future__ import annotations

from datetime import date
from typing import AsyncContextManager, Collection, Dict, List, Protocol, Tuple

from pendulum import DateTime

from ..domain.availability import AvailabilityEvaluator
from ..domain.calendar_math import week_bounds
from ..domain.clock import Clock
from ..domain.models import ACTIVE_STATUSES, Booking, BookingDraft, BookingStatus, DayAvailability
from ..domain.settings import CalendarSettings
from .settings_loader import CalendarSettingsLoader


class BookingStoreProtocol(Protocol):
    """Protocol describing the booking ledger behaviour needed by the engine."""

    async def query_bookings(
        self,
        start_date: date,
        end_date: date,
        statuses: Collection[BookingStatus],
    ) -> List[Booking]:
        """Return bookings scheduled within the inclusive date range."""

    async def insert_booking(self, draft: BookingDraft) -> Booking:
        """Persist a booking; raises UniqueConstraintViolation on a taken slot."""

    async def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """Transition a booking's status."""

    def serialize(self, scheduled_date: date) -> AsyncContextManager[None]:
        """Serialize check-then-insert sequences that target ``scheduled_date``."""


class AvailabilityService:
    """Orchestrates settings/ledger retrieval and availability evaluation."""

    def __init__(
        self,
        settings_loader: CalendarSettingsLoader,
        booking_store: BookingStoreProtocol,
        clock: Clock,
        timezone: str,
    ) -> None:
        self._settings_loader = settings_loader
        self._booking_store = booking_store
        self._clock = clock
        self._timezone = timezone

    async def evaluate_range(
        self,
        start_date: date,
        end_date: date,
    ) -> Tuple[AvailabilityEvaluator, DateTime, Dict[date, DayAvailability]]:
        """Evaluate a date range against freshly loaded settings and bookings."""
        settings = await self._settings_loader.load()
        evaluator = AvailabilityEvaluator(settings, self._timezone)

        ledger_start, ledger_end = evaluator.ledger_window(start_date, end_date)
        bookings = await self._booking_store.query_bookings(
            ledger_start, ledger_end, ACTIVE_STATUSES
        )

        now = self._clock.now()
        return evaluator, now, evaluator.evaluate(bookings, now, start_date, end_date)

    async def get_dates_availability(self, start_date: date, end_date: date) -> dict:
        """
        Per-date summary for calendar display.

        Returns:
            {"dateAvailability": {"YYYY-MM-DD": {"hasSlots", "slotCount"}},
             "minBookableDate", "advanceBookingWindow", "advanceBookingUnit"}
        """
        evaluator, now, days = await self.evaluate_range(start_date, end_date)
        settings = evaluator.settings

        return {
            "dateAvailability": {
                day.isoformat(): {
                    "hasSlots": result.is_bookable,
                    "slotCount": result.slot_count,
                }
                for day, result in days.items()
            },
            "minBookableDate": evaluator.min_bookable_date(now).isoformat(),
            "advanceBookingWindow": settings.advance_booking_window,
            "advanceBookingUnit": settings.advance_booking_unit,
        }

    async def get_day_availability(self, day: date) -> dict:
        """
        Free times for one date plus the weekly quota picture.

        Returns:
            {"availableSlots": ["HH:MM", ...], "weekStart", "weekEnd",
             "weeklyBookings", "maxBookingsPerWeek", "bookingsRemaining", ...}
        """
        settings = await self._settings_loader.load()
        evaluator = AvailabilityEvaluator(settings, self._timezone)

        week_start, week_end = week_bounds(day)
        bookings = await self._booking_store.query_bookings(
            week_start, week_end, ACTIVE_STATUSES
        )
        result = evaluator.evaluate_day(bookings, self._clock.now(), day)
        weekly = sum(1 for booking in bookings if booking.is_active)

        return {
            "date": day.isoformat(),
            "availableSlots": result.slot_labels(),
            "reason": result.reason.value if result.reason else None,
            "weekStart": week_start.isoformat(),
            "weekEnd": week_end.isoformat(),
            "weeklyBookings": weekly,
            "maxBookingsPerWeek": settings.max_bookings_per_week,
            "bookingsRemaining": max(settings.max_bookings_per_week - weekly, 0),
            "workingDays": list(settings.working_days),
            "advanceBookingWindow": settings.advance_booking_window,
            "advanceBookingUnit": settings.advance_booking_unit,
        }

    async def current_settings(self) -> CalendarSettings:
        return await self._settings_loader.load()

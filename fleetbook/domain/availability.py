"""
Core availability decision logic.

Given the calendar settings, a slice of the booking ledger and a reference
instant, decide which dates and slots can still be booked. Everything here is
a pure function of its explicit inputs: the caller loads the ledger and reads
the clock.

Gates, applied per date in this order:
1. Advance-notice window (and never in the past)
2. Working day
3. Weekly quota (Sunday-Saturday week of the evaluated date)
4. Per-slot collision with active bookings, buffers included
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Tuple

from pendulum import DateTime

from .calendar_math import iter_dates, minutes_of, week_bounds, weekday_index
from .clock import to_instant
from .models import Booking, DayAvailability, SlotCandidate, UnavailableReason
from .settings import CalendarSettings
from .slot_generator import generate_slots


@dataclass
class _LedgerIndex:
    """Active bookings grouped for the quota and collision gates."""
    weekly_counts: Dict[date, int] = field(default_factory=lambda: defaultdict(int))
    starts_by_date: Dict[date, List[int]] = field(default_factory=lambda: defaultdict(list))

    @classmethod
    def build(cls, bookings: Iterable[Booking]) -> "_LedgerIndex":
        index = cls()
        for booking in bookings:
            if not booking.is_active:
                continue
            week_start, _ = week_bounds(booking.scheduled_date)
            index.weekly_counts[week_start] += 1
            index.starts_by_date[booking.scheduled_date].append(
                minutes_of(booking.scheduled_time)
            )
        return index

    def bookings_in_week(self, day: date) -> int:
        week_start, _ = week_bounds(day)
        return self.weekly_counts.get(week_start, 0)


class AvailabilityEvaluator:
    """
    Evaluates bookability of dates and slots for one calendar configuration.

    The two advance-window units behave differently:
    ``hours`` adds hours to the reference instant and gates each slot, while
    ``days`` adds calendar days and floors to midnight, gating whole dates.
    A 24-hour window and a 1-day window can therefore disagree near midnight.
    """

    def __init__(self, settings: CalendarSettings, timezone: str) -> None:
        self.settings = settings
        self.timezone = timezone

    # ------------------------------------------------------------------
    # Advance-notice window
    # ------------------------------------------------------------------

    def _local(self, reference_now) -> DateTime:
        return to_instant(reference_now, self.timezone).in_timezone(self.timezone)

    def min_bookable_instant(self, reference_now) -> DateTime:
        """Earliest instant a slot may start at."""
        now = self._local(reference_now)
        window = self.settings.advance_booking_window

        if self.settings.advance_booking_unit == "hours":
            return now.add(hours=window)
        return now.add(days=window).start_of("day")

    def min_bookable_date(self, reference_now) -> date:
        instant = self.min_bookable_instant(reference_now)
        return date(instant.year, instant.month, instant.day)

    def _slot_threshold(self, reference_now) -> DateTime:
        """Slots starting before this instant are not offered."""
        return max(self._local(reference_now), self.min_bookable_instant(reference_now))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @staticmethod
    def ledger_window(start_date: date, end_date: date) -> Tuple[date, date]:
        """
        Date span of bookings needed to evaluate ``start_date..end_date``.

        The quota gate looks at whole weeks, so the span is widened to the
        Sunday before ``start_date`` and the Saturday after ``end_date``.
        """
        week_start, _ = week_bounds(start_date)
        _, week_end = week_bounds(end_date)
        return week_start, week_end

    def evaluate(
        self,
        bookings: Iterable[Booking],
        reference_now,
        start_date: date,
        end_date: date,
    ) -> Dict[date, DayAvailability]:
        """
        Evaluate every date from ``start_date`` to ``end_date`` inclusive.

        Args:
            bookings: Ledger slice covering ``ledger_window(start, end)``;
                inert bookings are ignored
            reference_now: The current instant
            start_date: First date to evaluate
            end_date: Last date to evaluate

        Returns:
            Mapping of date -> DayAvailability, in date order
        """
        if end_date < start_date:
            raise ValueError(f"end_date {end_date} is before start_date {start_date}")

        index = _LedgerIndex.build(bookings)
        threshold = self._slot_threshold(reference_now)
        min_date = self.min_bookable_date(reference_now)

        return {
            day: self._evaluate_day(index, threshold, min_date, day)
            for day in iter_dates(start_date, end_date)
        }

    def evaluate_day(self, bookings: Iterable[Booking], reference_now, day: date) -> DayAvailability:
        return self.evaluate(bookings, reference_now, day, day)[day]

    def evaluate_slot(
        self,
        bookings: Iterable[Booking],
        reference_now,
        day: date,
        slot_time: time,
    ) -> Optional[UnavailableReason]:
        """
        Re-run all gates for one exact slot.

        Returns:
            None if the slot can be booked, otherwise the reason it cannot
        """
        index = _LedgerIndex.build(bookings)
        threshold = self._slot_threshold(reference_now)
        min_date = self.min_bookable_date(reference_now)

        reason = self._day_gate(index, min_date, day)
        if reason is not None:
            return reason

        requested = minutes_of(slot_time)
        candidate = next(
            (slot for slot in generate_slots(self.settings, day) if slot.start_minutes == requested),
            None,
        )
        if candidate is None:
            return UnavailableReason.NOT_A_SLOT
        if candidate.starts_at(self.timezone) < threshold:
            return UnavailableReason.ADVANCE_WINDOW
        if self._collides(candidate, index.starts_by_date.get(day, [])):
            return UnavailableReason.SLOT_TAKEN
        return None

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def _day_gate(self, index: _LedgerIndex, min_date: date, day: date) -> Optional[UnavailableReason]:
        """Date-level gates 1-3; None means the date may still have slots."""
        if day < min_date:
            return UnavailableReason.ADVANCE_WINDOW
        if not self.settings.is_working_day(weekday_index(day)):
            return UnavailableReason.NON_WORKING_DAY
        if index.bookings_in_week(day) >= self.settings.max_bookings_per_week:
            return UnavailableReason.QUOTA_EXCEEDED
        return None

    def _evaluate_day(
        self,
        index: _LedgerIndex,
        threshold: DateTime,
        min_date: date,
        day: date,
    ) -> DayAvailability:
        reason = self._day_gate(index, min_date, day)
        if reason is not None:
            return DayAvailability(date=day, reason=reason)

        candidates = generate_slots(self.settings, day)
        if not candidates:
            return DayAvailability(date=day, reason=UnavailableReason.NO_SLOTS)

        upcoming = [slot for slot in candidates if slot.starts_at(self.timezone) >= threshold]
        if not upcoming:
            return DayAvailability(date=day, reason=UnavailableReason.ADVANCE_WINDOW)

        booked_starts = index.starts_by_date.get(day, [])
        free = tuple(slot for slot in upcoming if not self._collides(slot, booked_starts))
        if not free:
            return DayAvailability(date=day, reason=UnavailableReason.FULLY_BOOKED)

        return DayAvailability(date=day, available_slots=free)

    def _collides(self, slot: SlotCandidate, booked_starts: List[int]) -> bool:
        """
        Whether ``slot`` overlaps any booking on its date.

        A booking occupies duration + buffer from its start, the same span a
        candidate occupies, so back-to-back bookings separated by the buffer
        do not collide.
        """
        step = self.settings.slot_step
        return any(slot.overlaps(start, start + step) for start in booked_starts)

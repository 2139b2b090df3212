"""
Recording of new bookings.

Availability shown to a customer may be stale by the time they submit, so
every write re-runs the full rule set for the exact date and time inside the
store's per-date serialization, then inserts. The store's uniqueness rule on
active ``(date, time)`` pairs backs this up for stores that cannot serialize.
"""

from __future__ import annotations

import logging
import re
from datetime import date, time
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..domain.availability import AvailabilityEvaluator
from ..domain.calendar_math import format_hhmm, parse_time_of_day, week_bounds
from ..domain.clock import Clock
from ..domain.exceptions import QuotaExceeded, SlotUnavailable, UniqueConstraintViolation
from ..domain.models import (
    ACTIVE_STATUSES,
    INITIAL_STATUSES,
    Booking,
    BookingDraft,
    BookingStatus,
    UnavailableReason,
)
from .availability_service import BookingStoreProtocol
from .settings_loader import CalendarSettingsLoader

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CustomerDetails(BaseModel):
    """Customer-supplied fields of the booking form."""
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=6)
    service_type: str = Field(min_length=1)
    customer_email: Optional[str] = None
    vehicle_id: Optional[str] = None
    vehicle_info: Optional[str] = None
    notes: Optional[str] = None
    sms_consent: Optional[bool] = None
    compliance_accepted: bool

    @field_validator("customer_name", "customer_phone", "service_type")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError(f"Invalid email address: {value}")
        return value

    @field_validator("compliance_accepted")
    @classmethod
    def require_compliance(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("SMS compliance acknowledgment is required before booking")
        return value

    def booking_notes(self) -> Optional[str]:
        """Fold vehicle info, free-text notes and consent flags into one note."""
        lines = [
            f"Vehicle: {self.vehicle_info}" if self.vehicle_info else None,
            self.notes or None,
            None if self.sms_consent is None
            else f"SMS consent: {'opted-in' if self.sms_consent else 'declined'}",
            "Compliance acknowledged" if self.compliance_accepted else None,
        ]
        note = "\n".join(line for line in lines if line)
        return note or None


class BookingWriter:
    """Validates and records bookings, one serialized write per date."""

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

    async def book(
        self,
        scheduled_date: date,
        scheduled_time: time,
        customer: CustomerDetails,
        status: BookingStatus = BookingStatus.PENDING,
    ) -> Booking:
        """
        Re-validate the slot and persist a booking.

        Args:
            scheduled_date: Requested date
            scheduled_time: Requested slot start
            customer: Validated customer fields
            status: ``pending`` or ``confirmed``

        Returns:
            The stored Booking

        Raises:
            QuotaExceeded: If the week is already full
            SlotUnavailable: If the slot failed any other rule or was taken
            StorageUnavailable: If the store could not be read or written
        """
        if status not in INITIAL_STATUSES:
            raise ValueError(f"New bookings cannot start in status {status.value}")

        async with self._booking_store.serialize(scheduled_date):
            evaluator = AvailabilityEvaluator(
                await self._settings_loader.load(), self._timezone
            )
            bookings = await self._week_bookings(scheduled_date)
            now = self._clock.now()

            reason = evaluator.evaluate_slot(bookings, now, scheduled_date, scheduled_time)
            if reason is not None:
                raise self._rejection(evaluator, bookings, now, scheduled_date, scheduled_time, reason)

            draft = BookingDraft(
                scheduled_date=scheduled_date,
                scheduled_time=scheduled_time,
                status=status,
                customer_name=customer.customer_name,
                customer_phone=customer.customer_phone,
                customer_email=customer.customer_email,
                service_type=customer.service_type,
                vehicle_id=customer.vehicle_id,
                notes=customer.booking_notes(),
            )

            try:
                booking = await self._booking_store.insert_booking(draft)
            except UniqueConstraintViolation:
                # Another writer got there first; offer what is left now.
                bookings = await self._week_bookings(scheduled_date)
                raise self._rejection(
                    evaluator, bookings, self._clock.now(),
                    scheduled_date, scheduled_time, UnavailableReason.SLOT_TAKEN,
                ) from None

        logger.info(
            "Booked %s %s as %s (%s)",
            scheduled_date.isoformat(), format_hhmm(scheduled_time), booking.id, status.value,
        )
        return booking

    async def create_booking(
        self,
        scheduled_date: Union[date, str],
        scheduled_time: Union[time, str],
        customer_fields: Mapping[str, Any],
        confirmed: bool = False,
    ) -> dict:
        """
        Request/response form of ``book`` for transport adapters.

        Returns:
            {"booking": {...}} on success, or
            {"error": "SlotUnavailable" | "QuotaExceeded", "availableSlots": [...]}

        Raises:
            ValueError: If the date, time or customer fields are malformed
        """
        if isinstance(scheduled_date, str):
            scheduled_date = date.fromisoformat(scheduled_date)
        customer = CustomerDetails(**customer_fields)
        status = BookingStatus.CONFIRMED if confirmed else BookingStatus.PENDING

        try:
            booking = await self.book(
                scheduled_date, parse_time_of_day(scheduled_time), customer, status
            )
        except SlotUnavailable as exc:
            return exc.to_payload()

        return {"booking": booking.to_dict()}

    async def _week_bookings(self, scheduled_date: date) -> List[Booking]:
        week_start, week_end = week_bounds(scheduled_date)
        return await self._booking_store.query_bookings(week_start, week_end, ACTIVE_STATUSES)

    def _rejection(
        self,
        evaluator: AvailabilityEvaluator,
        bookings: List[Booking],
        now,
        scheduled_date: date,
        scheduled_time: time,
        reason: UnavailableReason,
    ) -> SlotUnavailable:
        alternatives = evaluator.evaluate_day(bookings, now, scheduled_date).slot_labels()
        logger.warning(
            "Rejected booking %s %s: %s",
            scheduled_date.isoformat(), format_hhmm(scheduled_time), reason.value,
        )
        error_cls = QuotaExceeded if reason is UnavailableReason.QUOTA_EXCEEDED else SlotUnavailable
        return error_cls(scheduled_date, scheduled_time, reason.value, alternatives)

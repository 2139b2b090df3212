"""
Domain models for bookings, slot candidates and per-day availability.
"""

from dataclasses import dataclass, field, replace
from datetime import date, time
from enum import Enum
from typing import FrozenSet, Optional, Tuple

import pendulum
from pendulum import DateTime

from .calendar_math import format_hhmm, parse_time_of_day, time_from_minutes
from .exceptions import InvalidStatusTransition


class BookingStatus(str, Enum):
    """Lifecycle of a booking. Bookings are never deleted, only transitioned."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Active bookings count toward the weekly quota and block slots."""
        return self in ACTIVE_STATUSES

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in _TRANSITIONS[self]


ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)

# Statuses the engine itself may create bookings in.
INITIAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class BookingDraft:
    """
    A booking that has passed validation but has not been persisted yet.

    The store assigns ``id`` and ``created_at`` on insert.
    """
    scheduled_date: date
    scheduled_time: time
    customer_name: str
    customer_phone: str
    service_type: str
    status: BookingStatus = BookingStatus.PENDING
    customer_email: Optional[str] = None
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Booking:
    """A persisted booking row."""
    id: str
    scheduled_date: date
    scheduled_time: time
    status: BookingStatus
    customer_name: str = ""
    customer_phone: str = ""
    service_type: str = ""
    customer_email: Optional[str] = None
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None

    @classmethod
    def from_draft(cls, draft: BookingDraft, booking_id: str, created_at: DateTime) -> "Booking":
        return cls(
            id=booking_id,
            scheduled_date=draft.scheduled_date,
            scheduled_time=draft.scheduled_time,
            status=draft.status,
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone,
            service_type=draft.service_type,
            customer_email=draft.customer_email,
            vehicle_id=draft.vehicle_id,
            notes=draft.notes,
            created_at=created_at,
        )

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def with_status(self, status: BookingStatus) -> "Booking":
        """Return a copy in ``status``, enforcing the lifecycle."""
        if not self.status.can_transition_to(status):
            raise InvalidStatusTransition(
                f"Booking {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status)

    @classmethod
    def from_dict(cls, data: dict) -> "Booking":
        """
        Build a booking from its ``to_dict`` form.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a date, time or status is malformed
        """
        created_at = data.get("createdAt")
        return cls(
            id=str(data["id"]),
            scheduled_date=date.fromisoformat(data["scheduledDate"]),
            scheduled_time=parse_time_of_day(data["scheduledTime"]),
            status=BookingStatus(data["status"]),
            customer_name=data.get("customerName") or "",
            customer_phone=data.get("customerPhone") or "",
            service_type=data.get("serviceType") or "",
            customer_email=data.get("customerEmail"),
            vehicle_id=data.get("vehicleId"),
            notes=data.get("notes"),
            created_at=pendulum.parse(created_at) if created_at else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scheduledDate": self.scheduled_date.isoformat(),
            "scheduledTime": format_hhmm(self.scheduled_time),
            "status": self.status.value,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "customerEmail": self.customer_email,
            "serviceType": self.service_type,
            "vehicleId": self.vehicle_id,
            "notes": self.notes,
            "createdAt": self.created_at.to_iso8601_string() if self.created_at else None,
        }


@dataclass(frozen=True)
class SlotCandidate:
    """
    One bookable unit on a given day.

    For collision purposes the slot occupies ``[start_minutes, occupied_end)``,
    i.e. its duration plus the trailing buffer.
    """
    date: date
    start_minutes: int
    end_minutes: int
    occupied_end: int

    @property
    def time(self) -> time:
        return time_from_minutes(self.start_minutes)

    @property
    def label(self) -> str:
        """``HH:MM`` form used by API payloads."""
        return format_hhmm(self.time)

    def overlaps(self, start: int, end: int) -> bool:
        """Open-interval overlap against another occupied range in minutes."""
        return self.start_minutes < end and self.occupied_end > start

    def starts_at(self, timezone: str) -> DateTime:
        """The slot's start as an instant in the business timezone."""
        return pendulum.datetime(
            self.date.year,
            self.date.month,
            self.date.day,
            self.start_minutes // 60,
            self.start_minutes % 60,
            tz=timezone,
        )


class UnavailableReason(str, Enum):
    """Why a date (or a single slot) is not bookable."""

    ADVANCE_WINDOW = "advance_window"
    NON_WORKING_DAY = "non_working_day"
    QUOTA_EXCEEDED = "quota_exceeded"
    FULLY_BOOKED = "fully_booked"
    NO_SLOTS = "no_slots"
    SLOT_TAKEN = "slot_taken"
    NOT_A_SLOT = "not_a_slot"


@dataclass(frozen=True)
class DayAvailability:
    """Result of evaluating one calendar date."""
    date: date
    available_slots: Tuple[SlotCandidate, ...] = field(default_factory=tuple)
    reason: Optional[UnavailableReason] = None

    @property
    def slot_count(self) -> int:
        return len(self.available_slots)

    @property
    def is_bookable(self) -> bool:
        return self.slot_count > 0

    def slot_labels(self) -> list:
        return [slot.label for slot in self.available_slots]

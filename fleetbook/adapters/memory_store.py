"""
In-process settings and booking store, optionally backed by a JSON file.

Used by tests and by the CLI for local runs without a database. Writers on
the same date are serialized with an ``asyncio.Lock`` per date, and inserts
enforce the same uniqueness rule the database has: at most one active
booking per ``(scheduled_date, scheduled_time)``.
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, AsyncIterator, Collection, Dict, Iterable, List, Mapping, Optional

import pendulum

from ..domain.exceptions import StorageUnavailable, UniqueConstraintViolation
from ..domain.models import Booking, BookingDraft, BookingStatus
from ..domain.settings import CalendarSettings

logger = logging.getLogger(__name__)


class InMemoryCalendarStore:
    """
    Settings + booking ledger kept in memory.

    Implements both SettingsStoreProtocol and BookingStoreProtocol.
    """

    def __init__(
        self,
        settings: Optional[Mapping[str, Any]] = None,
        bookings: Iterable[Booking] = (),
        data_file: Optional[Path] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            settings: Raw settings row, or None to let the loader use defaults
            bookings: Initial ledger contents
            data_file: Optional JSON file rewritten after every mutation
        """
        self._settings = dict(settings) if settings is not None else None
        self._bookings: Dict[str, Booking] = {booking.id: booking for booking in bookings}
        self._locks: Dict[date, asyncio.Lock] = {}
        self.data_file = data_file

    # ------------------------------------------------------------------
    # JSON persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_json(cls, data_file: Path) -> "InMemoryCalendarStore":
        """
        Load a store from ``data_file``; a missing file gives an empty store.

        Raises:
            StorageUnavailable: If the file is unreadable or malformed
        """
        if not data_file.exists():
            return cls(data_file=data_file)

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            bookings = [Booking.from_dict(row) for row in data.get("bookings", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Could not read booking data from %s: %s", data_file, exc)
            raise StorageUnavailable(f"Could not read {data_file}: {exc}") from exc

        return cls(settings=data.get("settings"), bookings=bookings, data_file=data_file)

    def _commit(
        self,
        settings: Optional[Dict[str, Any]],
        bookings: Dict[str, Booking],
    ) -> None:
        """
        Write the new state to ``data_file``, then make it current.

        Nothing changes in memory when the write fails, so the caller can retry.

        Raises:
            StorageUnavailable: If the file cannot be written
        """
        if self.data_file is not None:
            payload = {
                "settings": settings,
                "bookings": [booking.to_dict() for booking in _sorted(bookings.values())],
            }
            try:
                with open(self.data_file, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
            except OSError as exc:
                logger.error("Could not write booking data to %s: %s", self.data_file, exc)
                raise StorageUnavailable(f"Could not write {self.data_file}: {exc}") from exc

        self._settings = settings
        self._bookings = bookings

    # ------------------------------------------------------------------
    # Settings store
    # ------------------------------------------------------------------

    async def get_calendar_settings(self) -> Optional[Mapping[str, Any]]:
        return dict(self._settings) if self._settings is not None else None

    async def save_calendar_settings(self, settings: CalendarSettings) -> None:
        self._commit(settings.to_payload(), self._bookings)

    # ------------------------------------------------------------------
    # Booking store
    # ------------------------------------------------------------------

    async def query_bookings(
        self,
        start_date: date,
        end_date: date,
        statuses: Collection[BookingStatus],
    ) -> List[Booking]:
        return [
            booking
            for booking in _sorted(self._bookings.values())
            if start_date <= booking.scheduled_date <= end_date and booking.status in statuses
        ]

    async def insert_booking(self, draft: BookingDraft) -> Booking:
        """
        Store a new booking.

        Raises:
            UniqueConstraintViolation: If an active booking holds the same date and time
            StorageUnavailable: If the data file cannot be written
        """
        if draft.status.is_active:
            for existing in self._bookings.values():
                if (
                    existing.is_active
                    and existing.scheduled_date == draft.scheduled_date
                    and existing.scheduled_time == draft.scheduled_time
                ):
                    raise UniqueConstraintViolation(
                        f"{draft.scheduled_date.isoformat()} {draft.scheduled_time:%H:%M} "
                        f"is already held by booking {existing.id}"
                    )

        booking = Booking.from_draft(
            draft,
            booking_id=uuid.uuid4().hex,
            created_at=pendulum.now("UTC"),
        )
        self._commit(self._settings, {**self._bookings, booking.id: booking})
        return booking

    async def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """
        Transition a booking.

        Raises:
            KeyError: If the booking does not exist
            InvalidStatusTransition: If the lifecycle forbids the change
            StorageUnavailable: If the data file cannot be written
        """
        if booking_id not in self._bookings:
            raise KeyError(f"Unknown booking: {booking_id}")

        updated = self._bookings[booking_id].with_status(status)
        self._commit(self._settings, {**self._bookings, booking_id: updated})
        return updated

    @asynccontextmanager
    async def serialize(self, scheduled_date: date) -> AsyncIterator[None]:
        """Hold the per-date lock for a check-then-insert sequence."""
        lock = self._locks.setdefault(scheduled_date, asyncio.Lock())
        async with lock:
            yield


def _sorted(bookings: Iterable[Booking]) -> List[Booking]:
    return sorted(bookings, key=lambda b: (b.scheduled_date, b.scheduled_time, b.id))

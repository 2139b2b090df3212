"""
Tests for the in-memory / JSON booking store.
"""

import asyncio
import json
from datetime import date, time

import pytest

from fleetbook.adapters.memory_store import InMemoryCalendarStore
from fleetbook.domain.exceptions import (
    InvalidStatusTransition,
    StorageUnavailable,
    UniqueConstraintViolation,
)
from fleetbook.domain.models import ACTIVE_STATUSES, BookingDraft, BookingStatus
from fleetbook.domain.settings import CalendarSettings

MONDAY = date(2024, 1, 1)


def _draft(at: time = time(9, 0), **overrides) -> BookingDraft:
    fields = dict(
        scheduled_date=MONDAY,
        scheduled_time=at,
        customer_name="Dana",
        customer_phone="6025550100",
        service_type="Inspection",
    )
    fields.update(overrides)
    return BookingDraft(**fields)


def test_insert_assigns_id_and_timestamp():
    store = InMemoryCalendarStore()

    booking = asyncio.run(store.insert_booking(_draft()))

    assert booking.id
    assert booking.created_at is not None
    assert asyncio.run(store.query_bookings(MONDAY, MONDAY, ACTIVE_STATUSES)) == [booking]


def test_duplicate_active_slot_rejected():
    store = InMemoryCalendarStore()
    asyncio.run(store.insert_booking(_draft()))

    with pytest.raises(UniqueConstraintViolation):
        asyncio.run(store.insert_booking(_draft()))


def test_cancelled_slot_can_be_rebooked():
    store = InMemoryCalendarStore()
    first = asyncio.run(store.insert_booking(_draft()))
    asyncio.run(store.update_booking_status(first.id, BookingStatus.CANCELLED))

    second = asyncio.run(store.insert_booking(_draft()))

    assert second.id != first.id


def test_query_filters_range_and_status():
    store = InMemoryCalendarStore()
    kept = asyncio.run(store.insert_booking(_draft(time(7, 0))))
    cancelled = asyncio.run(store.insert_booking(_draft(time(8, 0))))
    asyncio.run(store.update_booking_status(cancelled.id, BookingStatus.CANCELLED))
    asyncio.run(store.insert_booking(_draft(scheduled_date=date(2024, 1, 9))))

    result = asyncio.run(store.query_bookings(MONDAY, date(2024, 1, 6), ACTIVE_STATUSES))

    assert [b.id for b in result] == [kept.id]


class TestStatusTransitions:
    """Lifecycle enforcement on update."""

    def test_full_lifecycle(self):
        store = InMemoryCalendarStore()
        booking = asyncio.run(store.insert_booking(_draft()))

        for status in (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED):
            booking = asyncio.run(store.update_booking_status(booking.id, status))

        assert booking.status is BookingStatus.COMPLETED

    def test_cannot_skip_ahead(self):
        store = InMemoryCalendarStore()
        booking = asyncio.run(store.insert_booking(_draft()))

        with pytest.raises(InvalidStatusTransition):
            asyncio.run(store.update_booking_status(booking.id, BookingStatus.COMPLETED))

    def test_cancelled_is_final(self):
        store = InMemoryCalendarStore()
        booking = asyncio.run(store.insert_booking(_draft()))
        asyncio.run(store.update_booking_status(booking.id, BookingStatus.CANCELLED))

        with pytest.raises(InvalidStatusTransition):
            asyncio.run(store.update_booking_status(booking.id, BookingStatus.CONFIRMED))

    def test_unknown_booking(self):
        with pytest.raises(KeyError):
            asyncio.run(InMemoryCalendarStore().update_booking_status("nope", BookingStatus.CONFIRMED))


class TestJsonFile:
    """JSON file backing."""

    def test_missing_file_gives_empty_store(self, tmp_path):
        store = InMemoryCalendarStore.from_json(tmp_path / "bookings.json")

        assert asyncio.run(store.get_calendar_settings()) is None
        assert asyncio.run(store.query_bookings(MONDAY, MONDAY, ACTIVE_STATUSES)) == []

    def test_bookings_survive_reload(self, tmp_path):
        path = tmp_path / "bookings.json"
        store = InMemoryCalendarStore.from_json(path)
        booking = asyncio.run(store.insert_booking(_draft(notes="Fleet van 3")))

        reloaded = InMemoryCalendarStore.from_json(path)
        [restored] = asyncio.run(reloaded.query_bookings(MONDAY, MONDAY, ACTIVE_STATUSES))

        assert restored.scheduled_date == MONDAY
        assert restored.scheduled_time == time(9, 0)
        assert restored.status is BookingStatus.PENDING
        assert restored.notes == "Fleet van 3"

    def test_malformed_file_is_storage_error(self, tmp_path):
        path = tmp_path / "bookings.json"
        path.write_text(json.dumps({"bookings": [{"id": "1", "scheduledDate": "soon"}]}), encoding="utf-8")

        with pytest.raises(StorageUnavailable):
            InMemoryCalendarStore.from_json(path)

    def test_failed_write_leaves_ledger_unchanged(self, tmp_path):
        store = InMemoryCalendarStore(data_file=tmp_path / "missing" / "bookings.json")

        with pytest.raises(StorageUnavailable):
            asyncio.run(store.insert_booking(_draft()))

        assert asyncio.run(store.query_bookings(MONDAY, MONDAY, ACTIVE_STATUSES)) == []

    def test_failed_status_write_keeps_old_status(self, tmp_path):
        path = tmp_path / "data" / "bookings.json"
        path.parent.mkdir()
        store = InMemoryCalendarStore.from_json(path)
        booking = asyncio.run(store.insert_booking(_draft()))
        path.parent.rename(tmp_path / "moved")

        with pytest.raises(StorageUnavailable):
            asyncio.run(store.update_booking_status(booking.id, BookingStatus.CANCELLED))

        [current] = asyncio.run(store.query_bookings(MONDAY, MONDAY, ACTIVE_STATUSES))
        assert current.status is BookingStatus.PENDING

    def test_failed_settings_write_keeps_old_settings(self, tmp_path):
        store = InMemoryCalendarStore(
            settings={"slotDuration": 30},
            data_file=tmp_path / "missing" / "bookings.json",
        )

        with pytest.raises(StorageUnavailable):
            asyncio.run(store.save_calendar_settings(CalendarSettings(slot_duration=60)))

        assert asyncio.run(store.get_calendar_settings()) == {"slotDuration": 30}

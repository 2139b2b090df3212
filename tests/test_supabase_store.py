"""
Tests for the Supabase REST store with the HTTP layer stubbed out.
"""

import asyncio
import json
from datetime import date, time
from typing import Any, List

import pytest
import requests

from fleetbook.adapters import supabase_store
from fleetbook.adapters.supabase_store import SupabaseCalendarStore
from fleetbook.domain.exceptions import (
    InvalidStatusTransition,
    StorageUnavailable,
    UniqueConstraintViolation,
)
from fleetbook.domain.models import ACTIVE_STATUSES, BookingDraft, BookingStatus
from fleetbook.domain.settings import CalendarSettings


class FakeResponse:
    """Just enough of requests.Response for the store."""

    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self._body = body
        self.content = b"" if body is None else json.dumps(body).encode()
        self.text = self.content.decode()

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeRequests:
    """Records calls and replays queued responses."""

    def __init__(self, *responses):
        self.responses: List[Any] = list(responses)
        self.calls: List[dict] = []

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store():
    return SupabaseCalendarStore("https://demo.supabase.co/", "service-key", timeout=5)


def _install(monkeypatch, *responses) -> FakeRequests:
    fake = FakeRequests(*responses)
    monkeypatch.setattr(supabase_store.requests, "request", fake)
    return fake


ROW = {
    "id": "7f1c",
    "scheduled_date": "2024-01-02",
    "scheduled_time": "09:00:00",
    "status": "confirmed",
    "customer_name": "Dana",
    "customer_phone": "6025550100",
    "customer_email": None,
    "service_type": "Oil change",
    "vehicle_id": None,
    "notes": None,
    "created_at": "2023-12-29T19:00:00+00:00",
}


def test_query_bookings_filters_and_parses(monkeypatch, store):
    fake = _install(monkeypatch, FakeResponse(body=[ROW]))

    bookings = asyncio.run(store.query_bookings(date(2023, 12, 31), date(2024, 1, 6), ACTIVE_STATUSES))

    assert len(bookings) == 1
    assert bookings[0].scheduled_time == time(9, 0)
    assert bookings[0].status is BookingStatus.CONFIRMED

    call = fake.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://demo.supabase.co/rest/v1/bookings"
    assert call["timeout"] == 5
    assert call["headers"]["apikey"] == "service-key"
    assert ("scheduled_date", "gte.2023-12-31") in call["params"]
    assert ("scheduled_date", "lte.2024-01-06") in call["params"]
    assert ("status", "in.(confirmed,in_progress,pending)") in call["params"]


def test_malformed_row_fails_whole_query(monkeypatch, store):
    _install(monkeypatch, FakeResponse(body=[ROW, {**ROW, "scheduled_time": None}]))

    with pytest.raises(StorageUnavailable):
        asyncio.run(store.query_bookings(date(2023, 12, 31), date(2024, 1, 6), ACTIVE_STATUSES))


def test_network_error_is_storage_unavailable(monkeypatch, store):
    _install(monkeypatch, requests.exceptions.ConnectTimeout("timed out"))

    with pytest.raises(StorageUnavailable):
        asyncio.run(store.get_calendar_settings())


def test_server_error_is_storage_unavailable(monkeypatch, store):
    _install(monkeypatch, FakeResponse(status_code=503, body={"message": "down"}))

    with pytest.raises(StorageUnavailable):
        asyncio.run(store.query_bookings(date(2024, 1, 1), date(2024, 1, 1), ACTIVE_STATUSES))


def test_insert_conflict_is_unique_violation(monkeypatch, store):
    _install(monkeypatch, FakeResponse(status_code=409, body={"code": "23505"}))
    draft = BookingDraft(
        scheduled_date=date(2024, 1, 2),
        scheduled_time=time(9, 0),
        customer_name="Dana",
        customer_phone="6025550100",
        service_type="Oil change",
    )

    with pytest.raises(UniqueConstraintViolation):
        asyncio.run(store.insert_booking(draft))


def test_insert_returns_stored_row(monkeypatch, store):
    fake = _install(monkeypatch, FakeResponse(status_code=201, body=[{**ROW, "status": "pending"}]))
    draft = BookingDraft(
        scheduled_date=date(2024, 1, 2),
        scheduled_time=time(9, 0),
        customer_name="Dana",
        customer_phone="6025550100",
        service_type="Oil change",
    )

    booking = asyncio.run(store.insert_booking(draft))

    assert booking.id == "7f1c"
    assert fake.calls[0]["json"]["scheduled_time"] == "09:00"
    assert fake.calls[0]["headers"]["Prefer"] == "return=representation"


def test_settings_absent(monkeypatch, store):
    _install(monkeypatch, FakeResponse(body=[]))

    assert asyncio.run(store.get_calendar_settings()) is None


def test_save_settings_upserts_default_row(monkeypatch, store):
    fake = _install(monkeypatch, FakeResponse(status_code=201))

    asyncio.run(store.save_calendar_settings(CalendarSettings(slot_buffer_time=10)))

    call = fake.calls[0]
    assert call["method"] == "POST"
    assert call["json"]["id"] == "default"
    assert call["json"]["slot_buffer_time"] == 10
    assert call["json"]["start_time"] == "06:00"
    assert "merge-duplicates" in call["headers"]["Prefer"]


def test_update_status_is_conditional_on_read_status(monkeypatch, store):
    fake = _install(
        monkeypatch,
        FakeResponse(body=[ROW]),
        FakeResponse(body=[{**ROW, "status": "in_progress"}]),
    )

    booking = asyncio.run(store.update_booking_status("7f1c", BookingStatus.IN_PROGRESS))

    assert booking.status is BookingStatus.IN_PROGRESS
    patch = fake.calls[1]
    assert patch["method"] == "PATCH"
    assert patch["json"] == {"status": "in_progress"}
    assert ("id", "eq.7f1c") in patch["params"]
    assert ("status", "eq.confirmed") in patch["params"]
    assert patch["headers"]["Prefer"] == "return=representation"


def test_update_status_lost_to_concurrent_change(monkeypatch, store):
    """The row was cancelled between the read and the PATCH; nothing matches."""
    _install(monkeypatch, FakeResponse(body=[{**ROW, "status": "pending"}]), FakeResponse(body=[]))

    with pytest.raises(InvalidStatusTransition, match="no longer pending"):
        asyncio.run(store.update_booking_status("7f1c", BookingStatus.CONFIRMED))


def test_update_status_rejects_illegal_move_without_writing(monkeypatch, store):
    fake = _install(monkeypatch, FakeResponse(body=[{**ROW, "status": "cancelled"}]))

    with pytest.raises(InvalidStatusTransition):
        asyncio.run(store.update_booking_status("7f1c", BookingStatus.CONFIRMED))

    assert [call["method"] for call in fake.calls] == ["GET"]


def test_update_status_unknown_booking(monkeypatch, store):
    _install(monkeypatch, FakeResponse(body=[]))

    with pytest.raises(KeyError):
        asyncio.run(store.update_booking_status("nope", BookingStatus.CONFIRMED))

"""
Supabase (PostgREST) client for calendar settings and the booking ledger.

Expected schema::

    calendar_settings(id text primary key, max_bookings_per_week int,
                      start_time time, end_time time, slot_duration int,
                      slot_buffer_time int, working_days int[],
                      advance_booking_window int, advance_booking_unit text,
                      updated_at timestamptz)

    bookings(id uuid primary key, scheduled_date date, scheduled_time time,
             status text, customer_name text, customer_phone text,
             customer_email text, service_type text, vehicle_id text,
             notes text, created_at timestamptz)

    create unique index bookings_active_slot on bookings (scheduled_date, scheduled_time)
        where status in ('pending', 'confirmed', 'in_progress');

The partial unique index is what makes concurrent writes safe: PostgREST
cannot wrap the availability check and the insert in one transaction, so a
losing writer gets HTTP 409, reported as UniqueConstraintViolation.
Two writers taking different times in the same week can still both pass the
weekly quota check; the index only guards the slot itself.
"""

import asyncio
import logging
from contextlib import nullcontext
from datetime import date
from typing import Any, AsyncContextManager, Collection, Dict, List, Mapping, Optional

import pendulum
import requests

from ..domain.calendar_math import format_hhmm, parse_time_of_day
from ..domain.exceptions import (
    InvalidStatusTransition,
    StorageUnavailable,
    UniqueConstraintViolation,
)
from ..domain.models import Booking, BookingDraft, BookingStatus
from ..domain.settings import CalendarSettings

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = "default"

_BOOKING_COLUMNS = (
    "id,scheduled_date,scheduled_time,status,customer_name,customer_phone,"
    "customer_email,service_type,vehicle_id,notes,created_at"
)


class SupabaseCalendarStore:
    """
    Settings + booking store backed by Supabase's REST interface.

    Blocking HTTP calls run in a worker thread so the store can be awaited
    like any other.
    """

    def __init__(self, project_url: str, api_key: str, timeout: float = 10.0):
        """
        Initialize the client.

        Args:
            project_url: Supabase project URL, e.g. https://xyz.supabase.co
            api_key: Service role key
            timeout: Per-request timeout in seconds
        """
        self.rest_url = f"{project_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[List[tuple]] = None,
        payload: Optional[Any] = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = requests.request(
                method,
                f"{self.rest_url}/{table}",
                headers=headers,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed: %s", method, table, e)
            raise StorageUnavailable(f"Supabase request failed: {e}") from e

        if response.status_code == 409:
            raise UniqueConstraintViolation(response.text)

        try:
            response.raise_for_status()
            return response.json() if response.content else None
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("%s %s returned an error: %s", method, table, e)
            raise StorageUnavailable(f"Supabase request failed: {e}") from e

    async def _call(self, method: str, table: str, **kwargs) -> Any:
        return await asyncio.to_thread(self._request, method, table, **kwargs)

    # ------------------------------------------------------------------
    # Settings store
    # ------------------------------------------------------------------

    async def get_calendar_settings(self) -> Optional[Mapping[str, Any]]:
        rows = await self._call(
            "GET", "calendar_settings", params=[("select", "*"), ("limit", "1")]
        )
        return rows[0] if rows else None

    async def save_calendar_settings(self, settings: CalendarSettings) -> None:
        row = {
            "id": SETTINGS_ROW_ID,
            "max_bookings_per_week": settings.max_bookings_per_week,
            "start_time": format_hhmm(settings.start_time),
            "end_time": format_hhmm(settings.end_time),
            "slot_duration": settings.slot_duration,
            "slot_buffer_time": settings.slot_buffer_time,
            "working_days": list(settings.working_days),
            "advance_booking_window": settings.advance_booking_window,
            "advance_booking_unit": settings.advance_booking_unit,
            "updated_at": pendulum.now("UTC").to_iso8601_string(),
        }
        await self._call(
            "POST",
            "calendar_settings",
            payload=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    # ------------------------------------------------------------------
    # Booking store
    # ------------------------------------------------------------------

    async def query_bookings(
        self,
        start_date: date,
        end_date: date,
        statuses: Collection[BookingStatus],
    ) -> List[Booking]:
        status_filter = ",".join(sorted(status.value for status in statuses))
        rows = await self._call(
            "GET",
            "bookings",
            params=[
                ("select", _BOOKING_COLUMNS),
                ("scheduled_date", f"gte.{start_date.isoformat()}"),
                ("scheduled_date", f"lte.{end_date.isoformat()}"),
                ("status", f"in.({status_filter})"),
                ("order", "scheduled_date.asc,scheduled_time.asc"),
            ],
        )
        return [self._parse_booking_row(row) for row in rows or []]

    async def insert_booking(self, draft: BookingDraft) -> Booking:
        row = {
            "scheduled_date": draft.scheduled_date.isoformat(),
            "scheduled_time": format_hhmm(draft.scheduled_time),
            "status": draft.status.value,
            "customer_name": draft.customer_name,
            "customer_phone": draft.customer_phone,
            "customer_email": draft.customer_email,
            "service_type": draft.service_type,
            "vehicle_id": draft.vehicle_id,
            "notes": draft.notes,
        }
        rows = await self._call("POST", "bookings", payload=row, prefer="return=representation")
        if not rows:
            raise StorageUnavailable("Supabase did not return the inserted booking")
        return self._parse_booking_row(rows[0])

    async def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """
        Transition a booking.

        The PATCH only matches the row while it still has the status the
        lifecycle check was made against.

        Raises:
            KeyError: If the booking does not exist
            InvalidStatusTransition: If the lifecycle forbids the change, or
                the status changed underneath us
        """
        rows = await self._call(
            "GET",
            "bookings",
            params=[("select", _BOOKING_COLUMNS), ("id", f"eq.{booking_id}")],
        )
        if not rows:
            raise KeyError(f"Unknown booking: {booking_id}")

        current = self._parse_booking_row(rows[0])
        current.with_status(status)
        rows = await self._call(
            "PATCH",
            "bookings",
            params=[
                ("id", f"eq.{booking_id}"),
                ("status", f"eq.{current.status.value}"),
                ("select", _BOOKING_COLUMNS),
            ],
            payload={"status": status.value},
            prefer="return=representation",
        )
        if not rows:
            logger.warning(
                "Booking %s left %s before it could move to %s",
                booking_id, current.status.value, status.value,
            )
            raise InvalidStatusTransition(
                f"Booking {booking_id} is no longer {current.status.value}"
            )
        return self._parse_booking_row(rows[0])

    def serialize(self, scheduled_date: date) -> AsyncContextManager[None]:
        # Concurrency is enforced by the bookings_active_slot index.
        return nullcontext()

    # ------------------------------------------------------------------
    # Row parsing
    # ------------------------------------------------------------------

    def _parse_booking_row(self, row: Dict[str, Any]) -> Booking:
        """
        Parse a bookings row into our domain model.

        An unreadable row fails the whole call: skipping it could hide a
        booking and offer its slot twice.
        """
        try:
            created_at = row.get("created_at")
            return Booking(
                id=str(row["id"]),
                scheduled_date=date.fromisoformat(row["scheduled_date"]),
                scheduled_time=parse_time_of_day(row["scheduled_time"]),
                status=BookingStatus(row["status"]),
                customer_name=row.get("customer_name") or "",
                customer_phone=row.get("customer_phone") or "",
                service_type=row.get("service_type") or "",
                customer_email=row.get("customer_email"),
                vehicle_id=row.get("vehicle_id"),
                notes=row.get("notes"),
                created_at=pendulum.parse(created_at) if created_at else None,
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.error("Malformed booking row %r: %s", row.get("id"), e)
            raise StorageUnavailable(f"Malformed booking row: {e}") from e

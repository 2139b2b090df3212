"""
Loading and saving of the calendar settings record.

The settings store hands back a raw row (or nothing on first use). Rows may
come from the database in snake_case with ``HH:MM:SS`` times, or from the
admin screen in camelCase with ``HH:MM`` times; both normalise to
CalendarSettings here, with missing values taken from the defaults.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import ValidationError

from ..domain.exceptions import InvalidConfiguration
from ..domain.settings import CalendarSettings

logger = logging.getLogger(__name__)


_CAMEL_TO_SNAKE = {
    "maxBookingsPerWeek": "max_bookings_per_week",
    "startTime": "start_time",
    "endTime": "end_time",
    "slotDuration": "slot_duration",
    "slotBufferTime": "slot_buffer_time",
    "workingDays": "working_days",
    "advanceBookingWindow": "advance_booking_window",
    "advanceBookingUnit": "advance_booking_unit",
}


class SettingsStoreProtocol(Protocol):
    """Persistence contract for the single calendar settings record."""

    async def get_calendar_settings(self) -> Optional[Mapping[str, Any]]:
        """Return the stored row, or None if settings were never saved."""

    async def save_calendar_settings(self, settings: CalendarSettings) -> None:
        """Upsert the settings record."""


def normalize_settings_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map a raw settings row onto CalendarSettings field names.

    Unknown keys (``id``, ``updated_at``...) and null values are dropped so
    defaults apply.
    """
    fields = CalendarSettings.model_fields
    normalized: Dict[str, Any] = {}

    for key, value in raw.items():
        name = _CAMEL_TO_SNAKE.get(key, key)
        if name in fields and value is not None:
            normalized[name] = value

    return normalized


def load_calendar_settings(
    raw: Optional[Mapping[str, Any]],
    defaults: Optional[CalendarSettings] = None,
) -> CalendarSettings:
    """
    Build CalendarSettings from a stored row, filling gaps from ``defaults``.

    Raises:
        InvalidConfiguration: If the merged values fail validation
    """
    defaults = defaults or CalendarSettings()
    if not raw:
        return defaults

    merged = defaults.model_dump()
    merged.update(normalize_settings_keys(raw))

    try:
        return CalendarSettings(**merged)
    except ValidationError as exc:
        raise InvalidConfiguration(f"Stored calendar settings are invalid: {exc}") from exc


class CalendarSettingsLoader:
    """Reads settings fresh from the store on every call."""

    def __init__(
        self,
        store: SettingsStoreProtocol,
        defaults: Optional[CalendarSettings] = None,
    ) -> None:
        self._store = store
        self._defaults = defaults or CalendarSettings()

    async def load(self) -> CalendarSettings:
        raw = await self._store.get_calendar_settings()
        if raw is None:
            logger.debug("No calendar settings stored, using defaults")
        return load_calendar_settings(raw, self._defaults)


class SettingsAdmin:
    """
    Write path used by the admin settings screen.

    Unlike the loader, saving refuses configurations that could never offer
    a slot.
    """

    def __init__(self, store: SettingsStoreProtocol, loader: CalendarSettingsLoader) -> None:
        self._store = store
        self._loader = loader

    async def update(self, values: Mapping[str, Any]) -> CalendarSettings:
        """
        Merge ``values`` over the current settings, validate and save.

        Raises:
            InvalidConfiguration: If the result is invalid or unschedulable
        """
        current = await self._loader.load()
        settings = load_calendar_settings(values, current)
        settings.ensure_schedulable()

        await self._store.save_calendar_settings(settings)
        logger.info("Calendar settings updated: %s", settings.to_payload())
        return settings

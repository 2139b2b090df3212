"""
Service layer helpers that orchestrate stores and domain logic.
"""

from .availability_service import AvailabilityService, BookingStoreProtocol
from .booking_writer import BookingWriter, CustomerDetails
from .settings_loader import (
    CalendarSettingsLoader,
    SettingsAdmin,
    SettingsStoreProtocol,
    load_calendar_settings,
)

__all__ = [
    "AvailabilityService",
    "BookingStoreProtocol",
    "BookingWriter",
    "CalendarSettingsLoader",
    "CustomerDetails",
    "SettingsAdmin",
    "SettingsStoreProtocol",
    "load_calendar_settings",
]

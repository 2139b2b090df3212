"""
Generation of the candidate slots offered on a single day.

Pure domain logic: no I/O, fully determined by its inputs.
"""

from datetime import date
from typing import List

from .calendar_math import weekday_index
from .models import SlotCandidate
from .settings import CalendarSettings


def generate_slots(settings: CalendarSettings, day: date) -> List[SlotCandidate]:
    """
    Produce the ordered candidate slots for ``day``.

    Slots start at ``start_time`` and advance by duration + buffer. A slot is
    emitted only if its duration fits before ``end_time``; a partial trailing
    slot is dropped, never truncated. The buffer itself may run past closing.

    Example:
        06:00-08:00, 30 min, 30 min buffer -> [06:00, 07:00]
    """
    if not settings.is_working_day(weekday_index(day)):
        return []

    slots: List[SlotCandidate] = []
    end_minutes = settings.end_minutes
    current = settings.start_minutes

    while current + settings.slot_duration <= end_minutes:
        slots.append(
            SlotCandidate(
                date=day,
                start_minutes=current,
                end_minutes=current + settings.slot_duration,
                occupied_end=current + settings.slot_step,
            )
        )
        current += settings.slot_step

    return slots

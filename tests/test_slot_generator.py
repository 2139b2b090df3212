"""
Tests for slot generation.
"""

from datetime import date, time

import pytest

from fleetbook.domain.calendar_math import minutes_of
from fleetbook.domain.settings import CalendarSettings
from fleetbook.domain.slot_generator import generate_slots

MONDAY = date(2024, 1, 1)
SATURDAY = date(2024, 1, 6)
SUNDAY = date(2024, 1, 7)


def _labels(slots):
    return [slot.label for slot in slots]


class TestGenerateSlots:
    """Tests for generate_slots."""

    def test_back_to_back_slots_without_buffer(self):
        """06:00-08:00 with 30 minute slots gives four slots."""
        settings = CalendarSettings(start_time="06:00", end_time="08:00", slot_duration=30)

        assert _labels(generate_slots(settings, MONDAY)) == ["06:00", "06:30", "07:00", "07:30"]

    def test_buffer_consumes_the_gap(self):
        """A 30 minute buffer leaves room for only two slots."""
        settings = CalendarSettings(
            start_time="06:00", end_time="08:00", slot_duration=30, slot_buffer_time=30
        )

        assert _labels(generate_slots(settings, MONDAY)) == ["06:00", "07:00"]

    def test_partial_trailing_slot_is_dropped(self):
        settings = CalendarSettings(start_time="06:00", end_time="07:15", slot_duration=30)

        slots = generate_slots(settings, MONDAY)

        assert _labels(slots) == ["06:00", "06:30"]

    def test_buffer_may_run_past_closing(self):
        """Only the slot duration must fit; the trailing buffer may overhang."""
        settings = CalendarSettings(
            start_time="06:00", end_time="07:00", slot_duration=30, slot_buffer_time=20
        )

        slots = generate_slots(settings, MONDAY)

        assert _labels(slots) == ["06:00"]
        assert slots[0].end_minutes == 6 * 60 + 30
        assert slots[0].occupied_end == 6 * 60 + 50

    def test_slot_longer_than_window_gives_nothing(self):
        settings = CalendarSettings(start_time="06:00", end_time="06:20", slot_duration=30)

        assert generate_slots(settings, MONDAY) == []

    @pytest.mark.parametrize("day", [SATURDAY, SUNDAY])
    def test_non_working_days_are_empty(self, day):
        settings = CalendarSettings(working_days=[1, 2, 3, 4, 5])

        assert generate_slots(settings, day) == []

    def test_sunday_is_weekday_zero(self):
        settings = CalendarSettings(working_days=[0])

        assert generate_slots(settings, SUNDAY)
        assert generate_slots(settings, MONDAY) == []

    def test_slots_carry_their_date(self):
        settings = CalendarSettings()

        assert {slot.date for slot in generate_slots(settings, MONDAY)} == {MONDAY}

    @pytest.mark.parametrize(
        "start, end, duration, buffer",
        [
            ("06:00", "14:00", 30, 0),
            ("06:00", "14:00", 45, 15),
            ("07:10", "16:55", 50, 7),
            ("00:00", "23:59", 120, 60),
            ("09:00", "09:30", 30, 0),
        ],
    )
    def test_spacing_and_closing_time(self, start, end, duration, buffer):
        """Consecutive slots are duration + buffer apart and none ends after closing."""
        settings = CalendarSettings(
            start_time=start,
            end_time=end,
            slot_duration=duration,
            slot_buffer_time=buffer,
            working_days=list(range(7)),
        )

        slots = generate_slots(settings, MONDAY)

        assert slots
        assert slots[0].start_minutes == minutes_of(settings.start_time)
        for previous, current in zip(slots, slots[1:]):
            assert current.start_minutes >= previous.start_minutes + duration + buffer
        for slot in slots:
            assert slot.end_minutes == slot.start_minutes + duration
            assert slot.end_minutes <= minutes_of(settings.end_time)

    def test_is_deterministic(self):
        settings = CalendarSettings(slot_buffer_time=10)

        assert generate_slots(settings, MONDAY) == generate_slots(settings, MONDAY)

    def test_slot_time_property(self):
        settings = CalendarSettings(start_time="06:00", end_time="08:00")

        assert generate_slots(settings, MONDAY)[1].time == time(6, 30)

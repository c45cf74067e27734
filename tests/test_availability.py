"""Tests for the slot availability calculator."""

from dataclasses import replace
from datetime import date

import pytest

from service_scheduler.config import settings
from service_scheduler.data.centers import DEFAULT_CENTER_ID
from service_scheduler.errors import NotFoundError, ValidationError
from service_scheduler.scheduling import availability as availability_module
from tests.conftest import SUNDAY, TODAY, TOMORROW, book, engine_with_center


def _times(slots):
    return [s.time for s in slots]


class TestSlotGrid:
    def test_half_hour_grid_over_a_morning(self, clock):
        engine = engine_with_center(clock, open_="08:00", close="12:00")
        slots = engine.availability(DEFAULT_CENTER_ID, TOMORROW, 30)
        assert _times(slots) == [
            "08:00", "08:30", "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
        ]
        assert all(s.available for s in slots)

    def test_granularity_override(self, clock):
        engine = engine_with_center(clock, open_="08:00", close="12:00")
        slots = engine.availability(DEFAULT_CENTER_ID, TOMORROW, 30, granularity=60)
        assert _times(slots) == ["08:00", "09:00", "10:00", "11:00"]

    def test_slots_are_ordered(self, engine):
        slots = engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60)
        assert _times(slots) == sorted(_times(slots))

    def test_end_time_reflects_duration(self, engine):
        slot = engine.availability(DEFAULT_CENTER_ID, TOMORROW, 90)[0]
        assert (slot.time, slot.end_time) == ("08:00", "09:30")


class TestClosedDays:
    def test_closed_weekday_has_no_slots(self, engine):
        assert engine.availability(DEFAULT_CENTER_ID, SUNDAY, 60) == []

    def test_holiday_has_no_slots(self, clock):
        engine = engine_with_center(clock, closed_dates=(date(2025, 3, 18),))
        assert engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60) == []


class TestPastSlots:
    def test_elapsed_slots_are_unavailable(self, engine, clock):
        clock.advance(hours=2)  # 10:00 local
        slots = {s.time: s for s in engine.availability(DEFAULT_CENTER_ID, TODAY, 60)}
        assert slots["09:30"].is_past and not slots["09:30"].available
        assert not slots["10:00"].is_past and slots["10:00"].available


class TestSpillover:
    def test_late_slot_requires_approval(self, engine):
        slots = {s.time: s for s in engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60)}
        assert not slots["17:00"].requires_approval
        assert slots["17:30"].requires_approval
        assert slots["17:30"].available

    def test_spillover_disallowed(self, engine, monkeypatch):
        strict = replace(settings, scheduling=replace(settings.scheduling, allow_spillover=False))
        monkeypatch.setattr(availability_module, "settings", strict)
        slots = {s.time: s for s in engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60)}
        assert not slots["17:30"].available
        assert slots["17:00"].available


class TestReservations:
    def test_full_bays_block_overlapping_slots(self, clock):
        engine = engine_with_center(clock, total_bays=1)
        book(engine)  # 09:00-10:00
        slots = {s.time: s for s in engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60)}
        assert not slots["08:30"].available
        assert not slots["09:00"].available
        assert slots["09:00"].conflict_count == 1
        assert not slots["09:30"].available
        assert slots["10:00"].available
        assert slots["08:00"].available

    def test_back_to_back_bookings_leave_long_slot_open(self, clock):
        engine = engine_with_center(clock, total_bays=2)
        book(engine)  # 09:00-10:00
        book(engine, scheduled_time="10:00")
        slots = {s.time: s for s in engine.availability(DEFAULT_CENTER_ID, TOMORROW, 120)}
        assert slots["09:00"].available
        assert slots["09:00"].conflict_count == 2
        apt = book(engine, services=["svc-full-diagnostic"], customer_id="cust-2")
        assert apt.end_time == "11:00"

    def test_free_bays_keep_slot_open(self, engine):
        book(engine)
        slot = next(s for s in engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60) if s.time == "09:00")
        assert slot.available
        assert slot.conflict_count == 1

    def test_wire_format_uses_conflicts_key(self, engine):
        book(engine)
        slot = engine.availability(DEFAULT_CENTER_ID, TOMORROW, 60)[2]
        dumped = slot.model_dump(by_alias=True)
        assert dumped["conflicts"] == 1
        assert "endTime" in dumped


class TestInvalidInput:
    def test_zero_duration(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.availability(DEFAULT_CENTER_ID, TOMORROW, 0)
        assert exc.value.field == "duration_minutes"

    def test_bad_date(self, engine):
        with pytest.raises(ValidationError):
            engine.availability(DEFAULT_CENTER_ID, "18-03-2025", 60)

    def test_unknown_center(self, engine):
        with pytest.raises(NotFoundError):
            engine.availability("center-nowhere", TOMORROW, 60)

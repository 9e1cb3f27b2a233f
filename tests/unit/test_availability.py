"""Tests for slot availability filtering."""

import pytest
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.core.scheduling.availability import filter_free_slots, is_slot_free, suggest_free_slots
from app.core.scheduling.calendar_client import CalendarError
from app.core.scheduling.slots import Slot, generate_candidates


TZ = ZoneInfo("America/Sao_Paulo")


class TestFilterFreeSlots:
    """Test free/busy filtering."""

    @pytest.mark.asyncio
    async def test_skips_busy_and_short_circuits(self, fake_calendar, calendar_id, monday_morning):
        """Busy candidates are dropped; querying stops once enough are free."""
        nine = monday_morning.replace(hour=9)
        fake_calendar.block(nine, nine + timedelta(minutes=30))

        candidates = generate_candidates(monday_morning, 30, count=12, day_window_days=14)
        free = await filter_free_slots(fake_calendar, calendar_id, candidates, count=3)

        assert [s.start.strftime("%H:%M") for s in free] == ["09:45", "10:30", "11:15"]
        assert fake_calendar.free_busy_calls == 4

    @pytest.mark.asyncio
    async def test_partial_overlap_is_busy(self, fake_calendar, calendar_id, monday_morning):
        """Any overlap with a busy interval makes the slot unavailable."""
        slot = Slot.starting_at(monday_morning.replace(hour=9), 30)
        fake_calendar.block(slot.start + timedelta(minutes=20), slot.end + timedelta(hours=1))

        assert not await is_slot_free(fake_calendar, calendar_id, slot)

    @pytest.mark.asyncio
    async def test_adjacent_interval_is_free(self, fake_calendar, calendar_id, monday_morning):
        """A busy interval ending exactly at the slot start does not block it."""
        slot = Slot.starting_at(monday_morning.replace(hour=9), 30)
        fake_calendar.block(slot.start - timedelta(minutes=30), slot.start)

        assert await is_slot_free(fake_calendar, calendar_id, slot)

    @pytest.mark.asyncio
    async def test_zero_count(self, fake_calendar, calendar_id, monday_morning):
        candidates = generate_candidates(monday_morning, 30, count=3, day_window_days=1)

        assert await filter_free_slots(fake_calendar, calendar_id, candidates, count=0) == []
        assert fake_calendar.free_busy_calls == 0

    @pytest.mark.asyncio
    async def test_calendar_error_propagates(self, failing_calendar, calendar_id, monday_morning):
        candidates = generate_candidates(monday_morning, 30, count=3, day_window_days=1)

        with pytest.raises(CalendarError):
            await filter_free_slots(failing_calendar, calendar_id, candidates, count=3)


class TestSuggestFreeSlots:
    """Test the suggestion search used by the dialogue."""

    @pytest.mark.asyncio
    async def test_default_window(self, fake_calendar, calendar_id, monday_morning):
        result = await suggest_free_slots(fake_calendar, calendar_id, now=monday_morning)

        assert len(result.slots) == 3
        assert result.slots[0].start == monday_morning.replace(hour=9)
        assert not result.lead_time_applied
        assert result.effective_date is None

    @pytest.mark.asyncio
    async def test_preferred_date(self, fake_calendar, calendar_id, monday_morning):
        wednesday = date(2026, 10, 21)

        result = await suggest_free_slots(
            fake_calendar, calendar_id, now=monday_morning, preferred_date=wednesday
        )

        assert result.effective_date == wednesday
        assert all(s.start.date() == wednesday for s in result.slots)

    @pytest.mark.asyncio
    async def test_lead_time_replaces_early_date(self, fake_calendar, calendar_id, monday_morning):
        """A lead-time plan never gets a slot before now + 14 days."""
        result = await suggest_free_slots(
            fake_calendar,
            calendar_id,
            now=monday_morning,
            plan_name="IPE Saúde",
            preferred_date=date(2026, 10, 20),
        )

        assert result.lead_time_applied
        assert result.effective_date is None
        assert len(result.slots) == 3
        assert all(s.start >= monday_morning + timedelta(days=14) for s in result.slots)

    @pytest.mark.asyncio
    async def test_lead_time_without_preferred_date(self, fake_calendar, calendar_id, monday_morning):
        result = await suggest_free_slots(
            fake_calendar, calendar_id, now=monday_morning, plan_name="ipergs"
        )

        assert not result.lead_time_applied
        assert all(s.start >= monday_morning + timedelta(days=14) for s in result.slots)

    @pytest.mark.asyncio
    async def test_lead_time_keeps_compliant_date(self, fake_calendar, calendar_id, monday_morning):
        later = date(2026, 11, 4)

        result = await suggest_free_slots(
            fake_calendar, calendar_id, now=monday_morning, plan_name="IPE", preferred_date=later
        )

        assert not result.lead_time_applied
        assert all(s.start.date() == later for s in result.slots)

    @pytest.mark.asyncio
    async def test_fully_booked(self, fake_calendar, calendar_id, monday_morning):
        fake_calendar.block(monday_morning, monday_morning + timedelta(days=30))

        result = await suggest_free_slots(fake_calendar, calendar_id, now=monday_morning)

        assert result.is_empty
        # Bounded by the candidate pool (3 * 4)
        assert fake_calendar.free_busy_calls == 12

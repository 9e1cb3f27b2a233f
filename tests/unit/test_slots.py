"""Tests for candidate slot generation."""

import pytest
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.core.scheduling.slots import (
    Slot,
    earliest_start,
    generate_candidates,
    is_admissible,
    next_grid_instant,
    requires_lead_time,
    suggest_for_specific_day,
)


TZ = ZoneInfo("America/Sao_Paulo")


def at(day: int, hour: int, minute: int = 0, month: int = 10) -> datetime:
    """Clinic-local instant in 2026."""
    return datetime(2026, month, day, hour, minute, tzinfo=TZ)


class TestGrid:
    """Test grid alignment helpers."""

    def test_next_grid_is_strictly_after(self):
        """An instant already on the grid moves to the next boundary."""
        assert next_grid_instant(at(19, 8, 0)) == at(19, 8, 15)

    def test_next_grid_rounds_up(self):
        """Off-grid instants round up to the next boundary."""
        assert next_grid_instant(at(19, 8, 7)) == at(19, 8, 15)
        assert next_grid_instant(at(19, 8, 15).replace(second=30)) == at(19, 8, 30)

    def test_admissible_windows(self):
        """Business hours are [09:00,12:00) and [14:00,18:00) on weekdays."""
        assert is_admissible(at(19, 9, 0))
        assert is_admissible(at(19, 11, 45))
        assert not is_admissible(at(19, 12, 0))
        assert not is_admissible(at(19, 13, 45))
        assert is_admissible(at(19, 14, 0))
        assert not is_admissible(at(19, 18, 0))
        assert not is_admissible(at(24, 10, 0))  # Saturday


class TestGenerateCandidates:
    """Test candidate generation."""

    def test_first_slots_of_the_day(self):
        """Before opening, candidates start at 09:00 spaced by the step."""
        slots = list(generate_candidates(at(19, 8, 0), 30, count=3, day_window_days=14))

        assert [s.start for s in slots] == [at(19, 9, 0), at(19, 9, 45), at(19, 10, 30)]
        assert all(s.end - s.start == timedelta(minutes=30) for s in slots)

    def test_lunch_break_jump(self):
        """A cursor in the lunch break jumps to 14:00."""
        slots = list(generate_candidates(at(19, 11, 50), 30, count=2, day_window_days=14))

        assert [s.start for s in slots] == [at(19, 14, 0), at(19, 14, 45)]

    def test_weekend_skipped(self):
        """Friday after closing continues on Monday at 09:00."""
        slots = list(generate_candidates(at(23, 17, 50), 30, count=1, day_window_days=14))

        assert slots[0].start == at(26, 9, 0)

    def test_full_day(self):
        """One weekday yields ten candidates with the default spacing."""
        slots = list(generate_candidates(at(19, 8, 0), 30, count=50, day_window_days=1))

        assert [s.start.strftime("%H:%M") for s in slots] == [
            "09:00", "09:45", "10:30", "11:15",
            "14:00", "14:45", "15:30", "16:15", "17:00", "17:45",
        ]

    def test_grid_alignment_invariant(self):
        """Every candidate starts on the grid, on a weekday, in business hours."""
        slots = list(generate_candidates(at(19, 10, 7), 30, count=60, day_window_days=14))

        assert slots
        for slot in slots:
            assert slot.start.minute % 15 == 0
            assert slot.start.second == 0
            assert slot.start.weekday() < 5
            assert is_admissible(slot.start)

    def test_ascending_and_bounded(self):
        """Candidates are ascending and stay within the window."""
        start = at(19, 8, 0)
        slots = list(generate_candidates(start, 30, count=100, day_window_days=3))

        starts = [s.start for s in slots]
        assert starts == sorted(starts)
        assert all(s < start + timedelta(days=3) for s in starts)

    def test_is_lazy(self):
        """The generator produces candidates on demand."""
        candidates = generate_candidates(at(19, 8, 0), 30, count=1000, day_window_days=365)

        assert next(candidates).start == at(19, 9, 0)
        assert next(candidates).start == at(19, 9, 45)

    def test_step_must_be_grid_multiple(self):
        """A step that breaks the grid is rejected."""
        with pytest.raises(ValueError):
            list(generate_candidates(at(19, 8, 0), 30, count=3, day_window_days=1, step_minutes=20))

    def test_custom_step(self):
        """Step is configurable in multiples of 15."""
        slots = list(generate_candidates(at(19, 8, 0), 30, count=3, day_window_days=1, step_minutes=30))

        assert [s.start for s in slots] == [at(19, 9, 0), at(19, 9, 30), at(19, 10, 0)]


class TestSpecificDay:
    """Test suggestions restricted to one day."""

    def test_future_day(self):
        """A future weekday starts at opening time."""
        slots = list(suggest_for_specific_day(date(2026, 10, 21), at(19, 8, 0), 30, count=3))

        assert [s.start for s in slots] == [at(21, 9, 0), at(21, 9, 45), at(21, 10, 30)]

    def test_same_day_late_afternoon(self):
        """Only what is left of today is offered."""
        slots = list(suggest_for_specific_day(date(2026, 10, 19), at(19, 17, 20), 30, count=3))

        assert [s.start for s in slots] == [at(19, 17, 30)]

    def test_weekend_day_is_empty(self):
        """Saturday has no business hours."""
        assert list(suggest_for_specific_day(date(2026, 10, 24), at(19, 8, 0), 30, count=3)) == []

    def test_past_day_is_empty(self):
        """Days already gone yield nothing."""
        assert list(suggest_for_specific_day(date(2026, 10, 16), at(19, 8, 0), 30, count=3)) == []


class TestLeadTime:
    """Test the health-plan lead-time policy."""

    @pytest.mark.parametrize(
        "plan", ["IPE Saúde", "ipergs", "Ipê", "Plano IPE", "IPESAÚDE", "Ipesaude", "ipe-saude"]
    )
    def test_plans_requiring_lead_time(self, plan):
        assert requires_lead_time(plan)

    @pytest.mark.parametrize("plan", ["Unimed", "Hipercard", "Cassi Ipiranga", "", None])
    def test_other_plans(self, plan):
        assert not requires_lead_time(plan)

    def test_earliest_start(self):
        """Lead-time plans start 14 days from now; others start now."""
        now = at(19, 8, 0)

        assert earliest_start(now, "IPE Saúde") == now + timedelta(days=14)
        assert earliest_start(now, "Unimed") == now
        assert earliest_start(now, None) == now


class TestSlot:
    """Test Slot dataclass."""

    def test_labels(self):
        slot = Slot.starting_at(at(19, 9, 0), 30)

        assert slot.label == "seg, 19/10 às 09:00"
        assert slot.long_label == "segunda-feira, 19 de outubro às 09:00"
        assert slot.duration_minutes == 30

    def test_dict_round_trip(self):
        slot = Slot.starting_at(at(21, 14, 45), 30)

        restored = Slot.from_dict(slot.to_dict(), tz=TZ)

        assert restored == slot
        assert slot.to_dict()["label"] == "qua, 21/10 às 14:45"

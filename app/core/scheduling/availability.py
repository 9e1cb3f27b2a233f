"""
Slot availability filtering.

Candidates from the slot generator are checked one at a time against the
calendar's free/busy data. Iteration stops as soon as enough free slots are
found, so at most ``count * candidate_pool_factor`` queries are made.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from app.config import settings
from .calendar_client import CalendarBackend
from .slots import (
    Slot,
    earliest_start,
    generate_candidates,
    requires_lead_time,
    suggest_for_specific_day,
)

logger = logging.getLogger(__name__)


@dataclass
class SuggestionResult:
    """Free slots offered to the patient, with how they were chosen."""

    slots: list[Slot] = field(default_factory=list)
    lead_time_applied: bool = False  # Preferred date replaced by the plan's earliest date
    effective_date: Optional[date] = None  # Day searched, when restricted to one day

    @property
    def is_empty(self) -> bool:
        return not self.slots


async def filter_free_slots(
    calendar: CalendarBackend,
    calendar_id: str,
    candidates: Iterable[Slot],
    count: int,
) -> list[Slot]:
    """Keep candidates with no busy interval, in order, up to ``count``.

    Args:
        calendar: Calendar backend
        calendar_id: Calendar to check
        candidates: Candidate slots (consumed lazily)
        count: Number of free slots wanted

    Returns:
        Free slots in candidate order

    Raises:
        CalendarError: If a free/busy query fails
    """
    free: list[Slot] = []
    if count <= 0:
        return free

    checked = 0
    for slot in candidates:
        checked += 1
        busy = await calendar.query_free_busy(calendar_id, slot.start, slot.end)
        if not busy:
            free.append(slot)
            if len(free) >= count:
                break

    logger.debug(f"Availability: {len(free)} free of {checked} checked")
    return free


async def is_slot_free(
    calendar: CalendarBackend,
    calendar_id: str,
    slot: Slot,
) -> bool:
    """Check a single slot against the calendar."""
    return bool(await filter_free_slots(calendar, calendar_id, [slot], count=1))


async def suggest_free_slots(
    calendar: CalendarBackend,
    calendar_id: str,
    now: datetime,
    plan_name: Optional[str] = None,
    preferred_date: Optional[date] = None,
    count: Optional[int] = None,
    duration_minutes: Optional[int] = None,
) -> SuggestionResult:
    """
    Find free slots for a patient.

    Without a preferred date, searches the normal suggestion window from the
    earliest allowed instant. With one, searches only that day. Plans that
    require lead time never get a slot before ``now + lead_time_days``; a
    preferred date earlier than that is replaced by the normal window from
    the earliest allowed instant.

    Args:
        calendar: Calendar backend
        calendar_id: Calendar to check
        now: Current time in the clinic's timezone
        plan_name: Health plan name (drives the lead-time policy)
        preferred_date: Day the patient asked for
        count: Number of slots wanted (default from settings)
        duration_minutes: Appointment length (default from settings)

    Returns:
        SuggestionResult
    """
    count = count or settings.slot_suggestion_count
    duration = duration_minutes or settings.appointment_duration_minutes
    pool_size = count * settings.candidate_pool_factor

    earliest = earliest_start(now, plan_name)
    lead_time_applied = False

    if preferred_date is not None and requires_lead_time(plan_name):
        if preferred_date < earliest.date():
            logger.info(
                f"Preferred date {preferred_date.isoformat()} before lead time, "
                f"searching from {earliest.date().isoformat()}"
            )
            lead_time_applied = True
            preferred_date = None

    if preferred_date is not None:
        candidates = suggest_for_specific_day(
            preferred_date,
            now=earliest,
            duration_minutes=duration,
            count=pool_size,
        )
    else:
        candidates = generate_candidates(
            earliest,
            duration_minutes=duration,
            count=pool_size,
            day_window_days=settings.suggestion_window_days,
        )

    slots = await filter_free_slots(calendar, calendar_id, candidates, count)

    return SuggestionResult(
        slots=slots,
        lead_time_applied=lead_time_applied,
        effective_date=preferred_date,
    )

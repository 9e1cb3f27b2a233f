"""Shared fixtures: an in-memory calendar and a fixed clinic clock."""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from app.core.scheduling.calendar_client import (
    BusyInterval,
    CalendarError,
    EventAlreadyExistsError,
)


CLINIC_TZ = ZoneInfo("America/Sao_Paulo")
CALENDAR_ID = "clinic@group.calendar.google.com"


class FakeCalendar:
    """In-memory calendar implementing the CalendarBackend protocol."""

    def __init__(self):
        self.busy: list[tuple[datetime, datetime]] = []
        self.events: dict[str, dict] = {}
        self.free_busy_calls = 0
        self.insert_calls = 0
        self.update_calls = 0
        self.fail_with: Optional[Exception] = None

    def block(self, start: datetime, end: datetime) -> None:
        """Mark [start, end) as busy."""
        self.busy.append((start, end))

    async def query_free_busy(self, calendar_id, start, end):
        if self.fail_with:
            raise self.fail_with
        self.free_busy_calls += 1
        intervals = list(self.busy)
        for event in self.events.values():
            if event.get("status") == "cancelled":
                continue
            intervals.append((
                datetime.fromisoformat(event["start"]["dateTime"]),
                datetime.fromisoformat(event["end"]["dateTime"]),
            ))
        return [
            BusyInterval(start=s.isoformat(), end=e.isoformat())
            for s, e in intervals
            if s < end and e > start
        ]

    async def get_event(self, calendar_id, event_id):
        if self.fail_with:
            raise self.fail_with
        return self.events.get(event_id)

    async def insert_event(self, calendar_id, event):
        if self.fail_with:
            raise self.fail_with
        self.insert_calls += 1
        if event["id"] in self.events:
            raise EventAlreadyExistsError(f"Event {event['id']} already exists", status_code=409)
        self.events[event["id"]] = dict(event, status="confirmed")
        return self.events[event["id"]]

    async def update_event(self, calendar_id, event_id, event):
        if self.fail_with:
            raise self.fail_with
        self.update_calls += 1
        if event_id not in self.events:
            raise CalendarError(f"Event {event_id} not found", status_code=404)
        self.events[event_id] = dict(event)
        return self.events[event_id]


@pytest.fixture
def fake_calendar():
    """Empty in-memory calendar."""
    return FakeCalendar()


@pytest.fixture
def failing_calendar():
    """Calendar whose every call fails."""
    calendar = FakeCalendar()
    calendar.fail_with = CalendarError("calendar unavailable")
    return calendar


@pytest.fixture
def clinic_tz():
    return CLINIC_TZ


@pytest.fixture
def calendar_id():
    return CALENDAR_ID


@pytest.fixture
def monday_morning():
    """Monday 2026-10-19 08:00 in the clinic's timezone."""
    return datetime(2026, 10, 19, 8, 0, tzinfo=CLINIC_TZ)

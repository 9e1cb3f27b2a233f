"""
Scheduling module.

Calendar access, slot generation, availability and booking. The dialogue
flow and engine live in ``flow`` and ``engine`` and are imported directly.
"""

from .calendar_client import (
    BusyInterval,
    CalendarBackend,
    CalendarConfigError,
    CalendarError,
    EventAlreadyExistsError,
    GoogleCalendarClient,
    get_calendar_client,
)
from .slots import Slot, clinic_now, generate_candidates, suggest_for_specific_day
from .availability import SuggestionResult, filter_free_slots, is_slot_free, suggest_free_slots
from .booking import BookingDetails, BookingResult, book_slot, build_event_id

__all__ = [
    # Calendar
    "BusyInterval",
    "CalendarBackend",
    "CalendarConfigError",
    "CalendarError",
    "EventAlreadyExistsError",
    "GoogleCalendarClient",
    "get_calendar_client",
    # Slots
    "Slot",
    "clinic_now",
    "generate_candidates",
    "suggest_for_specific_day",
    # Availability
    "SuggestionResult",
    "filter_free_slots",
    "is_slot_free",
    "suggest_free_slots",
    # Booking
    "BookingDetails",
    "BookingResult",
    "book_slot",
    "build_event_id",
]

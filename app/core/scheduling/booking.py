"""
Idempotent appointment booking.

Every booking request maps to a deterministic event id derived from the
patient and the slot. A retried or duplicated confirmation therefore finds
the event it already created instead of creating a second one.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.config import settings
from app.core.intelligence.normalize import mask_patient_id
from .availability import is_slot_free
from .calendar_client import CalendarBackend, EventAlreadyExistsError
from .slots import Slot

logger = logging.getLogger(__name__)


EVENT_ID_LENGTH = 24


@dataclass
class BookingDetails:
    """Intake fields written into the calendar event."""

    reason: str
    patient_name: Optional[str] = None
    billing_mode: Optional[str] = None
    plan_name: Optional[str] = None


@dataclass
class BookingResult:
    """Result of a booking attempt."""

    success: bool
    booking_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    already_booked: bool = False
    event: Optional[dict] = None


def build_event_id(patient_id: str, start: datetime, end: datetime) -> str:
    """Deterministic calendar event id for a patient and slot.

    SHA-1 hex digits are all inside Google's base32hex alphabet, so the
    prefix is a valid event id.
    """
    dedupe_key = f"{patient_id}|{start.isoformat()}|{end.isoformat()}"
    return hashlib.sha1(dedupe_key.encode("utf-8")).hexdigest()[:EVENT_ID_LENGTH]


def _display_phone(patient_id: str) -> str:
    return patient_id.split(":", 1)[1] if patient_id.startswith("whatsapp:") else patient_id


def build_event_body(
    event_id: str,
    patient_id: str,
    slot: Slot,
    details: BookingDetails,
) -> dict:
    """Build the Google Calendar event resource."""
    phone = _display_phone(patient_id)

    description = ["Origem: WhatsApp", f"Telefone: {phone}"]
    if details.patient_name:
        description.append(f"Paciente: {details.patient_name}")
    if details.billing_mode == "convenio":
        description.append(f"Convênio: {details.plan_name or ''}")
    elif details.billing_mode == "particular":
        description.append("Atendimento: particular")

    return {
        "id": event_id,
        "summary": f"{details.reason} – {settings.clinic_name}",
        "description": "\n".join(description),
        "location": settings.clinic_address,
        "start": {"dateTime": slot.start.isoformat(), "timeZone": settings.clinic_timezone},
        "end": {"dateTime": slot.end.isoformat(), "timeZone": settings.clinic_timezone},
        "reminders": {"useDefault": True},
        "extendedProperties": {
            "private": {
                "attendeePhone": phone,
                "patientName": details.patient_name or "",
            }
        },
    }


def is_active(event: Optional[dict]) -> bool:
    """True for an existing event that has not been cancelled."""
    return event is not None and event.get("status") != "cancelled"


async def _reactivate(
    calendar: CalendarBackend,
    calendar_id: str,
    event_id: str,
    body: dict,
    masked: str,
) -> BookingResult:
    body = dict(body, status="confirmed")
    restored = await calendar.update_event(calendar_id, event_id, body)
    logger.info(f"Cancelled booking restored | patient={masked} | event={event_id}")
    return BookingResult(success=True, booking_id=event_id, event=restored)


async def book_slot(
    calendar: CalendarBackend,
    calendar_id: str,
    patient_id: str,
    slot: Slot,
    details: BookingDetails,
) -> BookingResult:
    """
    Book a slot for a patient, at most once.

    Flow:
    1. Look up the deterministic event id; if active, report success
    2. Re-check free/busy; if busy, report ``slot_taken``
    3. Insert the event; a 409 on insert means a concurrent delivery won,
       so the existing event is fetched and reported
    4. An event with the same id that was cancelled cannot be inserted
       again, so it is updated back to ``confirmed`` instead

    Args:
        calendar: Calendar backend
        calendar_id: Calendar to book on
        patient_id: Patient identifier
        slot: Chosen slot
        details: Intake data for the event

    Returns:
        BookingResult

    Raises:
        CalendarError: If the calendar fails
    """
    event_id = build_event_id(patient_id, slot.start, slot.end)
    masked = mask_patient_id(patient_id)

    existing = await calendar.get_event(calendar_id, event_id)
    if is_active(existing):
        logger.info(f"Booking already exists | patient={masked} | event={event_id}")
        return BookingResult(
            success=True,
            booking_id=event_id,
            already_booked=True,
            event=existing,
        )

    if not await is_slot_free(calendar, calendar_id, slot):
        logger.info(f"Slot taken before booking | patient={masked} | start={slot.start.isoformat()}")
        return BookingResult(
            success=False,
            message="Slot is no longer available",
            error_code="slot_taken",
        )

    body = build_event_body(event_id, patient_id, slot, details)
    if existing is not None:
        return await _reactivate(calendar, calendar_id, event_id, body, masked)

    try:
        created = await calendar.insert_event(calendar_id, body)
    except EventAlreadyExistsError:
        logger.info(f"Concurrent booking detected | patient={masked} | event={event_id}")
        existing = await calendar.get_event(calendar_id, event_id)
        if existing is None:
            raise
        if not is_active(existing):
            return await _reactivate(calendar, calendar_id, event_id, body, masked)
        return BookingResult(
            success=True,
            booking_id=event_id,
            already_booked=True,
            event=existing,
        )

    logger.info(f"Booking created | patient={masked} | event={event_id} | start={slot.start.isoformat()}")
    return BookingResult(success=True, booking_id=event_id, event=created)

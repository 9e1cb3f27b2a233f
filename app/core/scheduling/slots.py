"""
Candidate slot generation.

Produces appointment windows aligned to a 15-minute grid inside the clinic's
business hours (Monday to Friday, 09:00-12:00 and 14:00-18:00, clinic
timezone). Generation is lazy: callers that only need the first few free
slots never pay for the rest of the window.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Sequence
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.intelligence.normalize import normalize_text

logger = logging.getLogger(__name__)


GRID_MINUTES = 15

# [start, end) business windows
MORNING_WINDOW = (time(9, 0), time(12, 0))
AFTERNOON_WINDOW = (time(14, 0), time(18, 0))

WEEKDAY_ABBREVIATIONS = ("seg", "ter", "qua", "qui", "sex", "sáb", "dom")
WEEKDAY_NAMES = (
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
)
MONTH_NAMES = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)


def get_clinic_timezone() -> ZoneInfo:
    """Get the clinic's configured timezone."""
    return ZoneInfo(settings.clinic_timezone)


def clinic_now(tz: Optional[ZoneInfo] = None) -> datetime:
    """Current time in the clinic's timezone."""
    return datetime.now(tz or get_clinic_timezone())


@dataclass(frozen=True)
class Slot:
    """A candidate appointment window."""

    start: datetime
    end: datetime

    @classmethod
    def starting_at(cls, start: datetime, duration_minutes: int) -> "Slot":
        """Build a slot of ``duration_minutes`` from ``start``.

        The end is computed on absolute time so a DST change inside the
        window does not stretch or shrink the appointment.
        """
        end = (start.astimezone(timezone.utc) + timedelta(minutes=duration_minutes)).astimezone(start.tzinfo)
        return cls(start=start, end=end)

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def label(self) -> str:
        """Short pt-BR label: "seg, 20/10 às 09:00"."""
        weekday = WEEKDAY_ABBREVIATIONS[self.start.weekday()]
        return f"{weekday}, {self.start:%d/%m} às {self.start:%H:%M}"

    @property
    def long_label(self) -> str:
        """Long pt-BR label: "segunda-feira, 20 de outubro às 09:00"."""
        weekday = WEEKDAY_NAMES[self.start.weekday()]
        month = MONTH_NAMES[self.start.month - 1]
        return f"{weekday}, {self.start:%d} de {month} às {self.start:%H:%M}"

    def to_dict(self) -> dict:
        """Convert to dictionary (ISO 8601 instants with offset)."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict, tz: Optional[ZoneInfo] = None) -> "Slot":
        """Create from dict produced by to_dict."""
        tz = tz or get_clinic_timezone()
        return cls(
            start=datetime.fromisoformat(data["start"]).astimezone(tz),
            end=datetime.fromisoformat(data["end"]).astimezone(tz),
        )


def _in_window(moment: time, window: tuple[time, time]) -> bool:
    return window[0] <= moment < window[1]


def is_admissible(cursor: datetime) -> bool:
    """Check if a cursor may start an appointment (weekday, business hours)."""
    if cursor.weekday() >= 5:
        return False
    moment = cursor.time()
    return _in_window(moment, MORNING_WINDOW) or _in_window(moment, AFTERNOON_WINDOW)


def next_grid_instant(instant: datetime) -> datetime:
    """First grid boundary strictly after ``instant``."""
    base = instant.replace(second=0, microsecond=0)
    aligned = base - timedelta(minutes=base.minute % GRID_MINUTES)
    return aligned + timedelta(minutes=GRID_MINUTES)


def _jump_to_next_window(cursor: datetime) -> datetime:
    """Move an inadmissible cursor to the next window opening."""
    moment = cursor.time()
    if cursor.weekday() < 5:
        if moment < MORNING_WINDOW[0]:
            return cursor.replace(hour=MORNING_WINDOW[0].hour, minute=0)
        if MORNING_WINDOW[1] <= moment < AFTERNOON_WINDOW[0]:
            return cursor.replace(hour=AFTERNOON_WINDOW[0].hour, minute=0)
    next_day = cursor + timedelta(days=1)
    return next_day.replace(hour=MORNING_WINDOW[0].hour, minute=0)


def generate_candidates(
    from_instant: datetime,
    duration_minutes: int,
    count: int,
    day_window_days: int,
    step_minutes: Optional[int] = None,
    until: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> Iterator[Slot]:
    """Yield candidate slots in ascending start order.

    Args:
        from_instant: Instant after which candidates may start
        duration_minutes: Appointment length
        count: Maximum number of candidates to yield
        day_window_days: Search horizon, counted from ``from_instant``
        step_minutes: Cursor advance after a candidate (default from settings)
        until: Optional hard upper bound for the cursor (overrides the horizon
            when earlier)
        tz: Clinic timezone (default from settings)

    Yields:
        Slot objects in the clinic's timezone
    """
    step = step_minutes or settings.slot_step_minutes
    if step % GRID_MINUTES != 0:
        raise ValueError(f"step_minutes must be a multiple of {GRID_MINUTES}, got {step}")

    tz = tz or get_clinic_timezone()
    start = from_instant.astimezone(tz)
    limit = start + timedelta(days=day_window_days)
    if until is not None:
        limit = min(limit, until.astimezone(tz))

    cursor = next_grid_instant(start)
    produced = 0

    while cursor < limit and produced < count:
        if is_admissible(cursor):
            yield Slot.starting_at(cursor, duration_minutes)
            produced += 1
            cursor = cursor + timedelta(minutes=step)
        else:
            cursor = _jump_to_next_window(cursor)


def suggest_for_specific_day(
    day: date,
    now: datetime,
    duration_minutes: int,
    count: int,
    step_minutes: Optional[int] = None,
    tz: Optional[ZoneInfo] = None,
) -> Iterator[Slot]:
    """Yield candidates restricted to a single calendar day.

    Past days (or today after closing) yield nothing.
    """
    tz = tz or get_clinic_timezone()
    day_start = datetime.combine(day, time(0, 0), tzinfo=tz)
    day_end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)

    now = now.astimezone(tz)
    if now >= day_end:
        return

    # Start one grid step early so a midnight start is still considered
    from_instant = max(now, day_start - timedelta(minutes=GRID_MINUTES))
    yield from generate_candidates(
        from_instant,
        duration_minutes=duration_minutes,
        count=count,
        day_window_days=2,
        step_minutes=step_minutes,
        until=day_end,
        tz=tz,
    )


def requires_lead_time(
    plan_name: Optional[str],
    keywords: Optional[Sequence[str]] = None,
) -> bool:
    """Check if a health plan requires minimum advance notice.

    A keyword matches the start of any word of the plan name, ignoring case
    and diacritics: "IPE Saúde", "IPESAÚDE", "ipergs" and "Ipê" match,
    "Hipercard" does not.
    """
    if not plan_name:
        return False
    keywords = keywords if keywords is not None else settings.lead_time_keywords
    tokens = re.findall(r"[a-z0-9]+", normalize_text(plan_name))
    return any(token.startswith(keyword) for token in tokens for keyword in keywords if keyword)


def earliest_start(
    now: datetime,
    plan_name: Optional[str],
    lead_time_days: Optional[int] = None,
) -> datetime:
    """Earliest instant a slot may start for the given plan."""
    if requires_lead_time(plan_name):
        days = lead_time_days if lead_time_days is not None else settings.lead_time_days
        return now + timedelta(days=days)
    return now

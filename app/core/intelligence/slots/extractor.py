"""
Rule-based field extraction for pt-BR messages.

Extracts the visit reason and an optional preferred date. Only a small,
predictable vocabulary is recognized:

- "hoje", "amanhã", "depois de amanhã"
- "daqui a 3 dias", "em dois dias"
- weekday names ("quarta", "sexta-feira") and "próxima/próximo <weekday>"
- explicit dates ("20/10", "20/10/2026") and "dia 20"

Resolution rules:
- A bare weekday is the nearest day with that name, today included.
- "próxima <weekday>" is the nearest such day strictly after today.
- "dd/mm" without a year that already passed this year rolls to next year.
- "dia N" that already passed this month rolls to next month.
"""

import logging
import re
from datetime import date, timedelta
from typing import Optional

from app.core.intelligence.normalize import normalize_text
from .types import DateMatch, Reason

logger = logging.getLogger(__name__)


WEEKDAYS = {
    "segunda": 0,
    "terca": 1,
    "quarta": 2,
    "quinta": 3,
    "sexta": 4,
    "sabado": 5,
    "domingo": 6,
}

NUMBER_WORDS = {
    "um": 1, "uma": 1, "dois": 2, "duas": 2, "tres": 3, "quatro": 4,
    "cinco": 5, "seis": 6, "sete": 7, "oito": 8, "nove": 9, "dez": 10,
}

_WEEKDAY_PATTERN = "|".join(WEEKDAYS)
_NUMBER_PATTERN = r"\d{1,2}|" + "|".join(NUMBER_WORDS)

_EXPLICIT_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2}|\d{4}))?\b")
_DAY_OF_MONTH_RE = re.compile(r"\bdia (\d{1,2})\b")
_IN_DAYS_RE = re.compile(rf"\b(?:daqui a|em) ({_NUMBER_PATTERN}) dias?\b")
_NEXT_WEEKDAY_RE = re.compile(
    rf"\bproxim[ao] ({_WEEKDAY_PATTERN})(?:[- ]feira)?\b"
)
_WEEKDAY_RE = re.compile(rf"\b({_WEEKDAY_PATTERN})(?:[- ]feira)?\b")
_DAY_AFTER_TOMORROW_RE = re.compile(r"\bdepois de amanha\b")
_TOMORROW_RE = re.compile(r"\bamanha\b")
_TODAY_RE = re.compile(r"\bhoje\b")


def _reason_aliases() -> dict[str, Reason]:
    """Normalized spellings accepted for each reason."""
    aliases: dict[str, Reason] = {}
    for reason in Reason:
        full = normalize_text(reason.value)
        head = full.split(" – ")[0].strip()
        aliases[full] = reason
        aliases[head] = reason
        for part in head.split("/"):
            aliases[part.strip()] = reason
    return aliases


REASON_ALIASES = _reason_aliases()


def match_reason(text: str) -> Optional[Reason]:
    """Match a message against the known visit reasons.

    Args:
        text: Patient message ("consulta", "Vasectomia", "próstata")

    Returns:
        Matching Reason, or None when the text is free-form
    """
    return REASON_ALIASES.get(normalize_text(text))


def _number(token: str) -> int:
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS[token]


def _explicit_date(match: re.Match, today: date) -> Optional[date]:
    day, month, year = match.group(1), match.group(2), match.group(3)
    try:
        if year:
            full_year = int(year) + 2000 if len(year) == 2 else int(year)
            return date(full_year, int(month), int(day))
        candidate = date(today.year, int(month), int(day))
        if candidate < today:
            candidate = date(today.year + 1, int(month), int(day))
        return candidate
    except ValueError:
        logger.debug(f"Ignoring invalid date: {match.group(0)}")
        return None


def _day_of_month(day: int, today: date) -> Optional[date]:
    year, month = today.year, today.month
    for _ in range(2):
        try:
            candidate = date(year, month, day)
        except ValueError:
            candidate = None
        if candidate and candidate >= today:
            return candidate
        month += 1
        if month > 12:
            month, year = 1, year + 1
    return None


def extract_preferred_date(text: str, today: date) -> Optional[DateMatch]:
    """Find a preferred date in a message.

    Args:
        text: Patient message
        today: Current date in the clinic's timezone

    Returns:
        DateMatch with the resolved date, or None
    """
    normalized = normalize_text(text)
    if not normalized:
        return None

    match = _EXPLICIT_DATE_RE.search(normalized)
    if match:
        value = _explicit_date(match, today)
        if value:
            return DateMatch(value=value, matched_text=match.group(0))

    match = _DAY_OF_MONTH_RE.search(normalized)
    if match:
        value = _day_of_month(int(match.group(1)), today)
        if value:
            return DateMatch(value=value, matched_text=match.group(0))

    match = _IN_DAYS_RE.search(normalized)
    if match:
        offset = _number(match.group(1))
        return DateMatch(value=today + timedelta(days=offset), matched_text=match.group(0))

    match = _DAY_AFTER_TOMORROW_RE.search(normalized)
    if match:
        return DateMatch(value=today + timedelta(days=2), matched_text=match.group(0))

    match = _TOMORROW_RE.search(normalized)
    if match:
        return DateMatch(value=today + timedelta(days=1), matched_text=match.group(0))

    match = _TODAY_RE.search(normalized)
    if match:
        return DateMatch(value=today, matched_text=match.group(0))

    match = _NEXT_WEEKDAY_RE.search(normalized)
    if match:
        target = WEEKDAYS[match.group(1)]
        offset = (target - today.weekday()) % 7 or 7
        return DateMatch(value=today + timedelta(days=offset), matched_text=match.group(0))

    match = _WEEKDAY_RE.search(normalized)
    if match:
        target = WEEKDAYS[match.group(1)]
        offset = (target - today.weekday()) % 7
        return DateMatch(value=today + timedelta(days=offset), matched_text=match.group(0))

    return None


def split_reason_and_date(text: str, today: date) -> tuple[str, Optional[DateMatch]]:
    """Separate the visit reason from a date expression in the same message.

    "Consulta amanhã" -> ("Consulta", <tomorrow>). Known reasons are returned
    in their canonical spelling; anything else falls back to the raw message.

    Returns:
        Tuple of (reason_text, date_match)
    """
    raw = (text or "").strip()
    date_match = extract_preferred_date(raw, today)
    if date_match is None:
        reason = match_reason(raw)
        return (reason.value if reason else raw), None

    # Work on the normalized text so the matched fragment lines up, then map
    # back to a known reason where possible.
    remainder = normalize_text(raw).replace(date_match.matched_text, " ")
    remainder = re.sub(r"\b(para|pra|na|no|de|a)\s*$", "", remainder.strip(" ,.-")).strip(" ,.-")

    reason = match_reason(remainder) if remainder else None
    if reason:
        return reason.value, date_match
    return raw, date_match

"""
Keyword-based interpretation of patient replies.

Every decision the dialogue takes is made here with fixed vocabularies,
never by a language model, so the same input always yields the same
transition.
"""

import logging
import re
from typing import Optional

from app.core.intelligence.normalize import normalize_text
from .types import BillingMode, ConfirmationType

logger = logging.getLogger(__name__)


# Whole-message triggers that reset the conversation from any state.
# Stored normalized (lowercase, no diacritics).
RESTART_KEYWORDS = frozenset({
    "menu",
    "reiniciar",
    "recomecar",
    "remarcar",
    "cancelar",
    "inicio",
    "sair",
})

YES_WORDS = frozenset({"sim", "s", "yes", "y", "ok", "claro"})
NO_WORDS = frozenset({"nao", "n", "no"})

PARTICULAR_WORDS = ("particular",)
CONVENIO_WORDS = ("convenio", "plano")

_SELECTION_RE = re.compile(r"^\s*(\d{1,2})\s*[).]?\s*$")


def is_restart(message: str) -> bool:
    """Check if the message is a restart keyword.

    Matching is exact on the trimmed body, case- and diacritic-insensitive,
    so "Recomeçar" and "MENU" restart while "menu de opções" does not.
    """
    return normalize_text(message) in RESTART_KEYWORDS


def classify_confirmation(message: str) -> Optional[ConfirmationType]:
    """Map a reply to YES/NO, or None when it is neither.

    Only exact tokens are accepted: "sim" confirms, "sim, mas..." does not.
    """
    token = normalize_text(message)
    if token in YES_WORDS:
        return ConfirmationType.YES
    if token in NO_WORDS:
        return ConfirmationType.NO
    return None


def classify_billing(message: str) -> Optional[BillingMode]:
    """Detect whether the patient chose private care or a health plan.

    Substring match: "é particular" and "tenho plano de saúde" both work.
    "particular" wins when both appear.
    """
    text = normalize_text(message)
    if not text:
        return None
    if any(word in text for word in PARTICULAR_WORDS):
        return BillingMode.PARTICULAR
    if any(word in text for word in CONVENIO_WORDS):
        return BillingMode.CONVENIO
    return None


def parse_selection(message: str, option_count: int) -> Optional[int]:
    """Parse a numeric pick among ``option_count`` offered options.

    Args:
        message: Patient reply ("2", " 2 ", "2)")
        option_count: Number of options shown

    Returns:
        1-based index, or None when the reply is not a valid pick
    """
    match = _SELECTION_RE.match(message or "")
    if not match:
        return None

    choice = int(match.group(1))
    if 1 <= choice <= option_count:
        return choice

    logger.debug(f"Selection out of range: {choice} (options: {option_count})")
    return None

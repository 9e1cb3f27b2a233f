"""
Intelligence Layer Module

Deterministic interpretation of patient messages (pt-BR) and
conversation session storage.

Usage:
    from app.core.intelligence import (
        is_restart,
        classify_confirmation,
        split_reason_and_date,
    )

    is_restart("Menu")  # True
    classify_confirmation("sim")  # ConfirmationType.YES
    split_reason_and_date("Consulta amanhã", today)  # ("Consulta", DateMatch(...))

    # Session management
    from app.core.intelligence.session import get_session_manager
    manager = get_session_manager()
    async with manager.lock(patient_id):
        session = await manager.get_or_create(patient_id)
"""

# Intent Classification
from app.core.intelligence.intent.types import BillingMode, ConfirmationType
from app.core.intelligence.intent.classifier import (
    RESTART_KEYWORDS,
    classify_billing,
    classify_confirmation,
    is_restart,
    parse_selection,
)

# Field Extraction
from app.core.intelligence.slots.types import DateMatch, Reason
from app.core.intelligence.slots.extractor import (
    extract_preferred_date,
    match_reason,
    split_reason_and_date,
)

__all__ = [
    # Intent
    "BillingMode",
    "ConfirmationType",
    "RESTART_KEYWORDS",
    "classify_billing",
    "classify_confirmation",
    "is_restart",
    "parse_selection",
    # Extraction
    "DateMatch",
    "Reason",
    "extract_preferred_date",
    "match_reason",
    "split_reason_and_date",
]

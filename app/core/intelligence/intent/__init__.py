"""Deterministic interpretation of patient replies."""

from .types import BillingMode, ConfirmationType
from .classifier import (
    RESTART_KEYWORDS,
    classify_billing,
    classify_confirmation,
    is_restart,
    parse_selection,
)

__all__ = [
    "BillingMode",
    "ConfirmationType",
    "RESTART_KEYWORDS",
    "classify_billing",
    "classify_confirmation",
    "is_restart",
    "parse_selection",
]

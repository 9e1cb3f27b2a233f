"""Field extraction: visit reason and preferred date."""

from .types import DateMatch, Reason
from .extractor import extract_preferred_date, match_reason, split_reason_and_date

__all__ = [
    "DateMatch",
    "Reason",
    "extract_preferred_date",
    "match_reason",
    "split_reason_and_date",
]

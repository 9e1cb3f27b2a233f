"""Text normalization shared by the input interpreters."""

import unicodedata


def strip_accents(text: str) -> str:
    """Remove diacritics ("convênio" -> "convenio")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Trim, lowercase and strip diacritics."""
    return strip_accents((text or "").strip()).casefold()


def mask_patient_id(patient_id: str) -> str:
    """Mask a patient identifier for logs, keeping the last 4 digits."""
    digits = "".join(ch for ch in (patient_id or "") if ch.isdigit())
    if len(digits) < 4:
        return "***"
    return f"***{digits[-4:]}"

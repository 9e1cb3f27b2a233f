"""Types for fields extracted from patient messages."""

from dataclasses import dataclass
from datetime import date
from enum import Enum


class Reason(str, Enum):
    """Visit reasons the clinic schedules."""

    CONSULTA = "Consulta"
    VASECTOMIA = "Vasectomia – avaliação"
    LITIASE = "Litíase/Rim – avaliação"
    PROSTATA = "HPB/Próstata – avaliação"
    DISFUNCAO_ERETIL = "Disfunção Erétil – avaliação"
    PEDIATRICA = "Pediátrica – avaliação"


@dataclass(frozen=True)
class DateMatch:
    """A date expression found in a message."""

    value: date
    matched_text: str  # Normalized fragment that produced the date ("proxima quarta")

"""Types produced by the deterministic input interpreters."""

from enum import Enum


class ConfirmationType(str, Enum):
    """Yes/no answer to a question."""

    YES = "yes"
    NO = "no"


class BillingMode(str, Enum):
    """How the appointment will be paid."""

    PARTICULAR = "particular"   # Private, paid by the patient
    CONVENIO = "convenio"       # Health plan
    UNSET = "unset"

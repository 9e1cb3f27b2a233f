"""
Session data models.

A session holds the dialogue state for one patient plus the intake fields
collected so far. Everything round-trips through JSON so the in-memory store
can be swapped for a serializing one without touching the flow.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from app.core.intelligence.intent.types import BillingMode
from app.core.scheduling.slots import Slot
from .state import DialogueState


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class IntakeData:
    """Fields collected from the patient during the dialogue."""

    patient_name: Optional[str] = None
    billing_mode: BillingMode = BillingMode.UNSET
    plan_name: Optional[str] = None
    reason: Optional[str] = None
    preferred_date: Optional[date] = None

    # Slot selection
    suggested_slots: list[Slot] = field(default_factory=list)
    chosen_slot: Optional[Slot] = None
    lead_time_applied: bool = False

    # Result
    booked_event_id: Optional[str] = None

    def clear_selection(self) -> None:
        """Forget offered and chosen slots."""
        self.suggested_slots = []
        self.chosen_slot = None

    def to_dict(self) -> dict:
        """Convert to JSON-compatible dictionary."""
        return {
            "patient_name": self.patient_name,
            "billing_mode": self.billing_mode.value,
            "plan_name": self.plan_name,
            "reason": self.reason,
            "preferred_date": self.preferred_date.isoformat() if self.preferred_date else None,
            "suggested_slots": [slot.to_dict() for slot in self.suggested_slots],
            "chosen_slot": self.chosen_slot.to_dict() if self.chosen_slot else None,
            "lead_time_applied": self.lead_time_applied,
            "booked_event_id": self.booked_event_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IntakeData":
        """Create from dict produced by to_dict."""
        preferred = data.get("preferred_date")
        chosen = data.get("chosen_slot")
        return cls(
            patient_name=data.get("patient_name"),
            billing_mode=BillingMode(data.get("billing_mode", BillingMode.UNSET.value)),
            plan_name=data.get("plan_name"),
            reason=data.get("reason"),
            preferred_date=date.fromisoformat(preferred) if preferred else None,
            suggested_slots=[Slot.from_dict(s) for s in data.get("suggested_slots", [])],
            chosen_slot=Slot.from_dict(chosen) if chosen else None,
            lead_time_applied=data.get("lead_time_applied", False),
            booked_event_id=data.get("booked_event_id"),
        )


@dataclass
class SessionData:
    """
    Conversation session for one patient.

    Lifecycle:
    - Created in WELCOME on the first message from an unseen patient id
    - Mutated only by the dialogue flow
    - Reset to WELCOME by a restart keyword
    - Removed by the sweeper once idle longer than the session TTL
    """

    patient_id: str
    state: DialogueState = DialogueState.WELCOME
    data: IntakeData = field(default_factory=IntakeData)

    # Metadata
    message_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def reset(self) -> None:
        """Back to WELCOME with all intake data cleared."""
        self.state = DialogueState.WELCOME
        self.data = IntakeData()

    def touch(self) -> None:
        """Mark the session as active now."""
        self.updated_at = _utcnow()

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        """Check if the session has been idle longer than ``ttl_seconds``."""
        now = now or _utcnow()
        return (now - self.updated_at).total_seconds() > ttl_seconds

    def to_json(self) -> str:
        """Convert to JSON string."""
        data = {
            "patient_id": self.patient_id,
            "state": self.state.value,
            "data": self.data.to_dict(),
            "message_count": self.message_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_json(cls, json_str: str) -> "SessionData":
        """Create from JSON string."""
        data = json.loads(json_str)
        return cls(
            patient_id=data["patient_id"],
            state=DialogueState(data["state"]),
            data=IntakeData.from_dict(data.get("data", {})),
            message_count=data.get("message_count", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return json.loads(self.to_json())

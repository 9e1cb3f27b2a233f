"""Dialogue state machine."""

from enum import Enum
from typing import Set


class DialogueState(str, Enum):
    """States in the appointment booking dialogue."""

    # Initial
    WELCOME = "welcome"
    ASK_CONTINUE = "ask_continue"

    # Intake
    ASK_NAME = "ask_name"
    ASK_INSURANCE = "ask_insurance"
    ASK_PLAN_NAME = "ask_plan_name"
    ASK_REASON = "ask_reason"
    ASK_DATE = "ask_date"

    # Slot selection
    PROPOSE_SLOTS = "propose_slots"
    CONFIRM_SLOT = "confirm_slot"

    # Terminal
    BOOKED = "booked"


class InvalidTransitionError(Exception):
    """Raised when the flow attempts a transition not in VALID_TRANSITIONS."""

    def __init__(self, from_state: DialogueState, to_state: DialogueState):
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


# Intake steps reachable right after the greeting
_FIRST_INTAKE_STEPS = {
    DialogueState.ASK_NAME,
    DialogueState.ASK_INSURANCE,
    DialogueState.ASK_REASON,
}

# Valid state transitions. Restart (any state -> WELCOME) is checked separately.
VALID_TRANSITIONS: dict[DialogueState, Set[DialogueState]] = {
    DialogueState.WELCOME: {DialogueState.ASK_CONTINUE} | _FIRST_INTAKE_STEPS,
    DialogueState.ASK_CONTINUE: {DialogueState.WELCOME} | _FIRST_INTAKE_STEPS,
    DialogueState.ASK_NAME: {
        DialogueState.ASK_INSURANCE,
        DialogueState.ASK_REASON,
    },
    DialogueState.ASK_INSURANCE: {
        DialogueState.ASK_PLAN_NAME,
        DialogueState.ASK_REASON,
    },
    DialogueState.ASK_PLAN_NAME: {
        DialogueState.ASK_REASON,
    },
    DialogueState.ASK_REASON: {
        DialogueState.ASK_DATE,
        DialogueState.PROPOSE_SLOTS,
    },
    DialogueState.ASK_DATE: {
        DialogueState.PROPOSE_SLOTS,
    },
    DialogueState.PROPOSE_SLOTS: {
        DialogueState.CONFIRM_SLOT,
    },
    DialogueState.CONFIRM_SLOT: {
        DialogueState.BOOKED,
        DialogueState.ASK_REASON,  # Declined or slot taken
    },
    DialogueState.BOOKED: set(),  # Only restart leaves
}


def can_transition(from_state: DialogueState, to_state: DialogueState) -> bool:
    """Check if a state transition is valid."""
    if to_state == DialogueState.WELCOME:
        return True
    if from_state == to_state:
        return True
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_valid_transitions(state: DialogueState) -> Set[DialogueState]:
    """Get all valid transitions from a state."""
    return VALID_TRANSITIONS.get(state, set())


def is_terminal_state(state: DialogueState) -> bool:
    """Check if state is terminal (only restart leaves it)."""
    return state == DialogueState.BOOKED


"""
Session management module.

Per-patient dialogue state, a swappable key-value store, per-patient
locking and TTL-based expiry.
"""

from .state import (
    DialogueState,
    InvalidTransitionError,
    VALID_TRANSITIONS,
    can_transition,
    get_valid_transitions,
    is_terminal_state,
)
from .models import IntakeData, SessionData
from .manager import (
    InMemorySessionStore,
    PatientLock,
    SessionManager,
    SessionStore,
    get_session_manager,
)

__all__ = [
    # State
    "DialogueState",
    "InvalidTransitionError",
    "VALID_TRANSITIONS",
    "can_transition",
    "get_valid_transitions",
    "is_terminal_state",
    # Models
    "IntakeData",
    "SessionData",
    # Manager
    "InMemorySessionStore",
    "PatientLock",
    "SessionManager",
    "SessionStore",
    "get_session_manager",
]

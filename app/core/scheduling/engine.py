"""
Scheduling Engine - Main Orchestrator.

Processes one inbound message end to end:
lock -> load session -> flow step -> save -> optional rewrite.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.core.intelligence.normalize import mask_patient_id
from app.core.intelligence.session import (
    DialogueState,
    SessionData,
    SessionManager,
    get_session_manager,
)
from app.core.scheduling.flow import ConversationFlow, FlowAction, get_conversation_flow
from app.core.scheduling.response import ResponseGenerator, get_response_generator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class EngineResponse:
    """Response from scheduling engine."""

    message: str
    patient_id: str
    state: DialogueState
    action_type: Optional[str] = None
    booking_id: Optional[str] = None
    error: bool = False
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "message": self.message,
            "state": self.state.value,
        }

        if self.action_type:
            result["action_type"] = self.action_type
        if self.booking_id:
            result["booking_id"] = self.booking_id
        if self.error:
            result["error"] = True
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms

        return result


class SchedulingEngine:
    """
    Main orchestrator for the scheduling assistant.

    Coordinates:
    - Session management (per-patient lock, load, save)
    - Conversation flow (state machine step)
    - Response presentation (optional rewrite)

    A step runs on a copy of the stored session. The copy is saved only if
    the step completes; any failure leaves the stored session untouched and
    answers with a generic apology.
    """

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        flow_manager: Optional[ConversationFlow] = None,
        response_generator: Optional[ResponseGenerator] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            session_manager: Session manager
            flow_manager: Conversation flow manager
            response_generator: Response generator
        """
        self._session_manager = session_manager
        self._flow_manager = flow_manager
        self._response_generator = response_generator

    def _get_session_manager(self) -> SessionManager:
        """Get session manager."""
        if self._session_manager is None:
            self._session_manager = get_session_manager()
        return self._session_manager

    def _get_flow_manager(self) -> ConversationFlow:
        """Get flow manager."""
        if self._flow_manager is None:
            self._flow_manager = get_conversation_flow()
        return self._flow_manager

    def _get_response_generator(self) -> ResponseGenerator:
        """Get response generator."""
        if self._response_generator is None:
            self._response_generator = get_response_generator()
        return self._response_generator

    async def process(
        self,
        patient_id: str,
        message: str,
        now: Optional[datetime] = None,
    ) -> EngineResponse:
        """Process a patient message.

        Args:
            patient_id: Patient identifier (WhatsApp sender)
            message: Message body
            now: Current time in the clinic's timezone (defaults to the clock)

        Returns:
            EngineResponse with bot reply and state
        """
        start_time = _utcnow()
        session_manager = self._get_session_manager()
        masked = mask_patient_id(patient_id)

        async with session_manager.lock(patient_id):
            stored: Optional[SessionData] = None
            try:
                stored = await session_manager.get_or_create(patient_id)
                working: SessionData = copy.deepcopy(stored)
                action: FlowAction = await self._get_flow_manager().process(working, message, now=now)
                working.message_count += 1
                await session_manager.save(working)
            except Exception as e:
                state = stored.state if stored is not None else DialogueState.WELCOME
                logger.error(
                    f"Error processing message | patient={masked} | state={state.value}: {e}",
                    exc_info=True,
                )
                return EngineResponse(
                    message=self._get_response_generator().error(),
                    patient_id=patient_id,
                    state=state,
                    error=True,
                )

        logger.info(
            f"Message processed | patient={masked} | "
            f"{stored.state.value} -> {action.next_state.value} | action={action.action_type}"
        )

        text = await self._get_response_generator().humanize(action.message)
        processing_time_ms = (_utcnow() - start_time).total_seconds() * 1000

        return EngineResponse(
            message=text,
            patient_id=patient_id,
            state=action.next_state,
            action_type=action.action_type,
            booking_id=action.booking_id,
            processing_time_ms=processing_time_ms,
        )

    async def get_session(self, patient_id: str) -> Optional[SessionData]:
        """Get session data.

        Args:
            patient_id: Patient identifier

        Returns:
            SessionData or None
        """
        return await self._get_session_manager().get(patient_id)

    async def reset_session(self, patient_id: str) -> SessionData:
        """Reset a session to the initial state.

        Args:
            patient_id: Patient identifier

        Returns:
            Reset SessionData
        """
        session_manager = self._get_session_manager()
        async with session_manager.lock(patient_id):
            return await session_manager.reset(patient_id)


# Singleton
_engine: Optional[SchedulingEngine] = None


def get_scheduling_engine() -> SchedulingEngine:
    """Get singleton SchedulingEngine."""
    global _engine
    if _engine is None:
        _engine = SchedulingEngine()
    return _engine


async def process_message(patient_id: str, message: str) -> EngineResponse:
    """Convenience function to process a message.

    Args:
        patient_id: Patient identifier
        message: Message body

    Returns:
        EngineResponse
    """
    engine = get_scheduling_engine()
    return await engine.process(patient_id, message)

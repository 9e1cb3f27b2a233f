"""
Conversation Flow Manager.

Deterministic state machine for the booking dialogue. Each inbound message
is handled by the handler of the session's current state, which validates
the input, updates the intake data, moves to the next state and returns the
reply text. Invalid input never moves the session: the patient is simply
asked again.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from app.config import settings
from app.core.intelligence.intent import (
    BillingMode,
    ConfirmationType,
    classify_billing,
    classify_confirmation,
    is_restart,
    parse_selection,
)
from app.core.intelligence.normalize import mask_patient_id
from app.core.intelligence.session.models import SessionData
from app.core.intelligence.session.state import (
    DialogueState,
    InvalidTransitionError,
    can_transition,
)
from app.core.intelligence.slots import extract_preferred_date, split_reason_and_date
from .availability import SuggestionResult, suggest_free_slots
from .booking import BookingDetails, book_slot
from .calendar_client import CalendarBackend, CalendarConfigError, get_calendar_client
from .response import ResponseGenerator, get_response_generator
from .slots import clinic_now

logger = logging.getLogger(__name__)


MIN_NAME_LENGTH = 2


@dataclass
class FlowAction:
    """Outcome of handling one message."""

    next_state: DialogueState
    action_type: str  # respond, reprompt, show_slots, book, restart
    message: str = ""
    booking_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)


Handler = Callable[[SessionData, str, datetime], Awaitable[FlowAction]]


class ConversationFlow:
    """
    State machine manager for booking conversations.

    Determines the next state and reply based on:
    - Current state
    - The patient's message
    - Calendar availability (when slots are needed)
    """

    def __init__(
        self,
        calendar: Optional[CalendarBackend] = None,
        calendar_id: Optional[str] = None,
        responses: Optional[ResponseGenerator] = None,
    ):
        """Initialize flow manager.

        Args:
            calendar: Calendar backend (uses singleton client if not provided)
            calendar_id: Calendar to use (defaults to settings)
            responses: Response templates
        """
        self._calendar = calendar
        self._calendar_id = calendar_id
        self._responses = responses

        self._handlers: dict[DialogueState, Handler] = {
            DialogueState.WELCOME: self._handle_welcome,
            DialogueState.ASK_CONTINUE: self._handle_ask_continue,
            DialogueState.ASK_NAME: self._handle_ask_name,
            DialogueState.ASK_INSURANCE: self._handle_ask_insurance,
            DialogueState.ASK_PLAN_NAME: self._handle_ask_plan_name,
            DialogueState.ASK_REASON: self._handle_ask_reason,
            DialogueState.ASK_DATE: self._handle_ask_date,
            DialogueState.PROPOSE_SLOTS: self._handle_propose_slots,
            DialogueState.CONFIRM_SLOT: self._handle_confirm_slot,
            DialogueState.BOOKED: self._handle_booked,
        }

    @property
    def calendar(self) -> CalendarBackend:
        if self._calendar is None:
            self._calendar = get_calendar_client()
        return self._calendar

    @property
    def calendar_id(self) -> str:
        calendar_id = self._calendar_id or settings.google_calendar_id
        if not calendar_id:
            raise CalendarConfigError("GOOGLE_CALENDAR_ID (or CALENDAR_ID) is not set")
        return calendar_id

    @property
    def responses(self) -> ResponseGenerator:
        if self._responses is None:
            self._responses = get_response_generator()
        return self._responses

    async def process(
        self,
        session: SessionData,
        message: str,
        now: Optional[datetime] = None,
    ) -> FlowAction:
        """Process a patient message and advance the session.

        The session is mutated in place; callers are expected to pass a copy
        and save it only if this returns normally.

        Args:
            session: Current session data
            message: Raw message body
            now: Current time in the clinic's timezone

        Returns:
            FlowAction with next state and reply

        Raises:
            CalendarError: If the calendar fails while suggesting or booking
            InvalidTransitionError: On a transition missing from VALID_TRANSITIONS
        """
        text = (message or "").strip()
        now = now or clinic_now()

        if is_restart(text):
            logger.info(f"Restart requested | patient={mask_patient_id(session.patient_id)}")
            session.reset()
            return FlowAction(
                next_state=session.state,
                action_type="restart",
                message=self.responses.restarted(),
            )

        handler = self._handlers[session.state]
        return await handler(session, text, now)

    def _transition(self, session: SessionData, to_state: DialogueState) -> None:
        if not can_transition(session.state, to_state):
            raise InvalidTransitionError(session.state, to_state)
        logger.debug(
            f"Transition {session.state.value} -> {to_state.value} | "
            f"patient={mask_patient_id(session.patient_id)}"
        )
        session.state = to_state

    def _stay(self, session: SessionData, message: str) -> FlowAction:
        return FlowAction(next_state=session.state, action_type="reprompt", message=message)

    def _advance(
        self,
        session: SessionData,
        to_state: DialogueState,
        message: str,
        action_type: str = "respond",
    ) -> FlowAction:
        self._transition(session, to_state)
        return FlowAction(next_state=to_state, action_type=action_type, message=message)

    # === Intake ordering ===

    def _first_intake_step(self) -> DialogueState:
        if settings.collect_patient_name:
            return DialogueState.ASK_NAME
        return self._step_after_name()

    def _step_after_name(self) -> DialogueState:
        if settings.accept_health_plans:
            return DialogueState.ASK_INSURANCE
        return DialogueState.ASK_REASON

    def _question_for(self, state: DialogueState, prefix: str = "") -> str:
        if state == DialogueState.ASK_NAME:
            question = self.responses.ask_name()
        elif state == DialogueState.ASK_INSURANCE:
            question = self.responses.ask_insurance()
        else:
            return self.responses.ask_reason(prefix=prefix)
        return f"{prefix} {question}" if prefix else question

    # === State handlers ===

    async def _handle_welcome(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        greeting = self.responses.greeting()

        if settings.ask_to_continue:
            message = f"{greeting}\n{self.responses.ask_continue()}"
            return self._advance(session, DialogueState.ASK_CONTINUE, message)

        step = self._first_intake_step()
        return self._advance(session, step, f"{greeting}\n\n{self._question_for(step)}")

    async def _handle_ask_continue(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        answer = classify_confirmation(text)

        if answer == ConfirmationType.YES:
            step = self._first_intake_step()
            return self._advance(session, step, self._question_for(step, prefix="Certo!"))

        if answer == ConfirmationType.NO:
            session.reset()
            return FlowAction(
                next_state=session.state,
                action_type="respond",
                message=self.responses.continue_declined(),
            )

        return self._stay(session, self.responses.continue_invalid())

    async def _handle_ask_name(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        if len(text) < MIN_NAME_LENGTH:
            return self._stay(session, self.responses.name_invalid())

        session.data.patient_name = text
        first_name = text.split()[0]
        step = self._step_after_name()
        return self._advance(session, step, self._question_for(step, prefix=f"Obrigado, {first_name}!"))

    async def _handle_ask_insurance(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        mode = classify_billing(text)

        if mode == BillingMode.PARTICULAR:
            session.data.billing_mode = BillingMode.PARTICULAR
            session.data.plan_name = None
            return self._advance(
                session,
                DialogueState.ASK_REASON,
                self.responses.ask_reason(prefix="Perfeito."),
            )

        if mode == BillingMode.CONVENIO:
            session.data.billing_mode = BillingMode.CONVENIO
            return self._advance(session, DialogueState.ASK_PLAN_NAME, self.responses.ask_plan_name())

        return self._stay(session, self.responses.insurance_invalid())

    async def _handle_ask_plan_name(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        if not text:
            return self._stay(session, self.responses.plan_name_invalid())

        session.data.plan_name = text
        return self._advance(
            session,
            DialogueState.ASK_REASON,
            self.responses.ask_reason(prefix="Obrigado!"),
        )

    async def _handle_ask_reason(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        if not text:
            return self._stay(session, self.responses.reason_invalid())

        reason, date_match = split_reason_and_date(text, now.date())
        session.data.reason = reason
        session.data.preferred_date = date_match.value if date_match else None
        session.data.clear_selection()

        result = await self._suggest(session, now, session.data.preferred_date)
        if result.is_empty:
            if result.effective_date is not None:
                message = self.responses.no_slots_on_date(result.effective_date)
            else:
                message = self.responses.no_slots()
            return self._advance(session, DialogueState.ASK_DATE, message)

        return self._offer(session, result)

    async def _handle_ask_date(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        date_match = extract_preferred_date(text, now.date())
        if date_match is None:
            return self._stay(session, self.responses.date_invalid())

        session.data.preferred_date = date_match.value
        result = await self._suggest(session, now, date_match.value)
        if result.is_empty:
            return self._stay(session, self._no_slots_message(result, date_match.value))

        return self._offer(session, result)

    async def _handle_propose_slots(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        offered = session.data.suggested_slots
        choice = parse_selection(text, len(offered))

        if choice is not None:
            slot = offered[choice - 1]
            session.data.chosen_slot = slot
            return self._advance(session, DialogueState.CONFIRM_SLOT, self.responses.confirm_slot(slot))

        date_match = extract_preferred_date(text, now.date())
        if date_match is not None:
            result = await self._suggest(session, now, date_match.value)
            if result.is_empty:
                # Previous suggestions stay on offer
                message = self._no_slots_message(result, date_match.value)
                if offered:
                    message = f"{message}\n\n{self.responses.format_slots(offered)}"
                return self._stay(session, message)

            session.data.preferred_date = date_match.value
            return self._offer(session, result)

        return self._stay(session, self.responses.selection_invalid(len(offered)))

    async def _handle_confirm_slot(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        answer = classify_confirmation(text)

        if answer == ConfirmationType.NO:
            session.data.clear_selection()
            return self._advance(session, DialogueState.ASK_REASON, self.responses.slot_declined())

        if answer != ConfirmationType.YES:
            return self._stay(session, self.responses.confirm_invalid())

        slot = session.data.chosen_slot
        if slot is None:
            logger.warning(
                f"Confirmation without a chosen slot | patient={mask_patient_id(session.patient_id)}"
            )
            return self._advance(session, DialogueState.ASK_REASON, self.responses.ask_reason())

        data = session.data
        if slot.start <= now:
            logger.info(
                f"Chosen slot already started | patient={mask_patient_id(session.patient_id)} | "
                f"slot={slot.start.isoformat()}"
            )
            data.clear_selection()
            return self._advance(session, DialogueState.ASK_REASON, self.responses.slot_taken())

        details = BookingDetails(
            reason=data.reason or "Consulta",
            patient_name=data.patient_name,
            billing_mode=data.billing_mode.value,
            plan_name=data.plan_name,
        )
        result = await book_slot(self.calendar, self.calendar_id, session.patient_id, slot, details)

        if not result.success:
            data.clear_selection()
            return self._advance(
                session,
                DialogueState.ASK_REASON,
                self.responses.slot_taken(),
                action_type="book",
            )

        data.booked_event_id = result.booking_id
        action = self._advance(
            session,
            DialogueState.BOOKED,
            self.responses.booking_confirmed(slot),
            action_type="book",
        )
        action.booking_id = result.booking_id
        action.metadata["already_booked"] = result.already_booked
        return action

    async def _handle_booked(self, session: SessionData, text: str, now: datetime) -> FlowAction:
        return self._stay(session, self.responses.already_booked())

    # === Helpers ===

    async def _suggest(
        self,
        session: SessionData,
        now: datetime,
        preferred_date: Optional[date],
    ) -> SuggestionResult:
        data = session.data
        plan_name = data.plan_name if data.billing_mode == BillingMode.CONVENIO else None

        result = await suggest_free_slots(
            self.calendar,
            self.calendar_id,
            now=now,
            plan_name=plan_name,
            preferred_date=preferred_date,
        )
        data.lead_time_applied = result.lead_time_applied
        logger.info(
            f"Suggested {len(result.slots)} slot(s) | "
            f"patient={mask_patient_id(session.patient_id)} | "
            f"date={preferred_date.isoformat() if preferred_date else 'any'} | "
            f"lead_time={result.lead_time_applied}"
        )
        return result

    def _offer(self, session: SessionData, result: SuggestionResult) -> FlowAction:
        session.data.suggested_slots = list(result.slots)
        session.data.chosen_slot = None

        intro = self.responses.lead_time_notice() if result.lead_time_applied else None
        action = self._advance(
            session,
            DialogueState.PROPOSE_SLOTS,
            self.responses.format_slots(result.slots, intro=intro),
            action_type="show_slots",
        )
        action.metadata["slots"] = [slot.to_dict() for slot in result.slots]
        return action

    def _no_slots_message(self, result: SuggestionResult, requested: date) -> str:
        if result.lead_time_applied:
            return f"{self.responses.lead_time_notice()} {self.responses.no_slots()}"
        return self.responses.no_slots_on_date(requested)


# Singleton
_flow: Optional[ConversationFlow] = None


def get_conversation_flow() -> ConversationFlow:
    """Get singleton ConversationFlow."""
    global _flow
    if _flow is None:
        _flow = ConversationFlow()
    return _flow

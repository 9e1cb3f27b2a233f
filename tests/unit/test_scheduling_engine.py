"""Tests for the scheduling engine orchestrator."""

import asyncio
import pytest
from unittest.mock import AsyncMock

from app.config import settings
from app.core.intelligence.session import DialogueState, InMemorySessionStore, SessionManager
from app.core.scheduling.engine import EngineResponse, SchedulingEngine
from app.core.scheduling.flow import ConversationFlow
from app.core.scheduling.response import ResponseGenerator


PATIENT = "whatsapp:+5551999990000"


@pytest.fixture
def responses():
    return ResponseGenerator(humanize_enabled=False)


@pytest.fixture
def session_manager():
    return SessionManager(store=InMemorySessionStore(), ttl_seconds=3600)


def build_engine(calendar, calendar_id, session_manager, responses):
    flow = ConversationFlow(calendar=calendar, calendar_id=calendar_id, responses=responses)
    return SchedulingEngine(
        session_manager=session_manager,
        flow_manager=flow,
        response_generator=responses,
    )


@pytest.fixture
def engine(fake_calendar, calendar_id, session_manager, responses):
    return build_engine(fake_calendar, calendar_id, session_manager, responses)


class TestSchedulingEngine:
    """Test message processing end to end."""

    @pytest.mark.asyncio
    async def test_first_message(self, engine, session_manager, monday_morning):
        response = await engine.process(PATIENT, "Oi", now=monday_morning)

        assert isinstance(response, EngineResponse)
        assert response.state == DialogueState.ASK_CONTINUE
        assert not response.error
        assert response.processing_time_ms is not None

        stored = await session_manager.get(PATIENT)
        assert stored.state == DialogueState.ASK_CONTINUE
        assert stored.message_count == 1

    @pytest.mark.asyncio
    async def test_full_booking(self, engine, fake_calendar, monday_morning, monkeypatch):
        monkeypatch.setattr(settings, "accept_health_plans", False)

        for text in ("Oi", "Sim", "Consulta", "1"):
            await engine.process(PATIENT, text, now=monday_morning)
        response = await engine.process(PATIENT, "Sim", now=monday_morning)

        assert response.state == DialogueState.BOOKED
        assert response.action_type == "book"
        assert response.booking_id in fake_calendar.events

    @pytest.mark.asyncio
    async def test_calendar_failure_leaves_session_untouched(
        self, failing_calendar, calendar_id, session_manager, responses, monday_morning, monkeypatch
    ):
        """A failed step answers with an apology and keeps the stored state."""
        monkeypatch.setattr(settings, "accept_health_plans", False)
        engine = build_engine(failing_calendar, calendar_id, session_manager, responses)

        await engine.process(PATIENT, "Oi", now=monday_morning)
        await engine.process(PATIENT, "Sim", now=monday_morning)
        response = await engine.process(PATIENT, "Consulta", now=monday_morning)

        assert response.error
        assert response.state == DialogueState.ASK_REASON
        assert "menu" in response.message

        stored = await session_manager.get(PATIENT)
        assert stored.state == DialogueState.ASK_REASON
        assert stored.data.reason is None
        assert stored.message_count == 2

    @pytest.mark.asyncio
    async def test_failure_on_first_message_stores_nothing(
        self, failing_calendar, calendar_id, session_manager, responses, monday_morning, monkeypatch
    ):
        monkeypatch.setattr(settings, "ask_to_continue", False)
        monkeypatch.setattr(settings, "accept_health_plans", False)
        engine = build_engine(failing_calendar, calendar_id, session_manager, responses)
        engine._get_flow_manager().process = AsyncMock(side_effect=RuntimeError("boom"))

        response = await engine.process(PATIENT, "Oi", now=monday_morning)

        assert response.error
        assert response.state == DialogueState.WELCOME
        assert await session_manager.get(PATIENT) is None

    @pytest.mark.asyncio
    async def test_corrupt_stored_session_returns_apology(self, engine, session_manager, monday_morning):
        await session_manager._store.set(session_manager._key(PATIENT), "{not json")

        response = await engine.process(PATIENT, "Oi", now=monday_morning)

        assert response.error
        assert response.state == DialogueState.WELCOME
        assert '"menu"' in response.message

    @pytest.mark.asyncio
    async def test_humanize_applied_to_reply(self, engine, responses, monday_morning):
        responses.humanize = AsyncMock(return_value="Olá! Posso ajudar a agendar?")

        response = await engine.process(PATIENT, "Oi", now=monday_morning)

        assert response.message == "Olá! Posso ajudar a agendar?"
        responses.humanize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_messages_for_same_patient_are_serialized(self, engine, session_manager, monday_morning):
        await asyncio.gather(
            engine.process(PATIENT, "Oi", now=monday_morning),
            engine.process(PATIENT, "Oi", now=monday_morning),
        )

        stored = await session_manager.get(PATIENT)
        assert stored.message_count == 2
        assert stored.state == DialogueState.ASK_CONTINUE

    @pytest.mark.asyncio
    async def test_patients_are_isolated(self, engine, session_manager, monday_morning):
        await engine.process(PATIENT, "Oi", now=monday_morning)
        await engine.process("whatsapp:+5551888880000", "Oi", now=monday_morning)
        await engine.process(PATIENT, "Sim", now=monday_morning)

        other = await session_manager.get("whatsapp:+5551888880000")
        assert other.state == DialogueState.ASK_CONTINUE
        assert (await session_manager.get(PATIENT)).state == DialogueState.ASK_INSURANCE

    @pytest.mark.asyncio
    async def test_reset_session(self, engine, monday_morning):
        await engine.process(PATIENT, "Oi", now=monday_morning)

        session = await engine.reset_session(PATIENT)

        assert session.state == DialogueState.WELCOME
        assert (await engine.get_session(PATIENT)).state == DialogueState.WELCOME


class TestEngineResponse:
    """Test response serialization."""

    def test_to_dict_minimal(self):
        response = EngineResponse(message="Oi", patient_id=PATIENT, state=DialogueState.WELCOME)

        assert response.to_dict() == {"message": "Oi", "state": "welcome"}

    def test_to_dict_full(self):
        response = EngineResponse(
            message="Agendado",
            patient_id=PATIENT,
            state=DialogueState.BOOKED,
            action_type="book",
            booking_id="abc",
            processing_time_ms=12.5,
        )

        result = response.to_dict()

        assert result["booking_id"] == "abc"
        assert result["action_type"] == "book"
        assert result["processing_time_ms"] == 12.5
        assert "error" not in result

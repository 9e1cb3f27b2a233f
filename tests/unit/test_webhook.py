"""Tests for the HTTP surface: WhatsApp webhook, status and health."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.config import settings
from app.core.intelligence.session import DialogueState, InMemorySessionStore, SessionManager
from app.core.scheduling.engine import EngineResponse, SchedulingEngine
from app.core.scheduling.flow import ConversationFlow
from app.core.scheduling.response import ResponseGenerator
from app.api.routes.whatsapp import build_twiml
from app.main import app


PATIENT = "whatsapp:+5551999990000"


@pytest.fixture
def client():
    """Test client without lifespan (no background sweeper)."""
    return TestClient(app)


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.process = AsyncMock(return_value=EngineResponse(
        message="Olá! Posso ajudar a agendar uma consulta?",
        patient_id=PATIENT,
        state=DialogueState.ASK_CONTINUE,
    ))
    with patch("app.api.routes.whatsapp.get_scheduling_engine", return_value=engine):
        yield engine


class TestWhatsAppWebhook:
    """Test POST /whatsapp."""

    def test_replies_with_twiml(self, client, mock_engine):
        response = client.post("/whatsapp", data={"From": PATIENT, "Body": "Oi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert "<Response><Message>" in response.text
        assert "Posso ajudar a agendar uma consulta?" in response.text
        mock_engine.process.assert_awaited_once_with(PATIENT, "Oi")

    def test_missing_sender_rejected(self, client, mock_engine):
        response = client.post("/whatsapp", data={"Body": "Oi"})

        assert response.status_code == 400
        mock_engine.process.assert_not_called()

    def test_blank_sender_rejected(self, client, mock_engine):
        response = client.post("/whatsapp", data={"From": "  ", "Body": "Oi"})

        assert response.status_code == 400
        mock_engine.process.assert_not_called()

    def test_missing_body_is_empty_message(self, client, mock_engine):
        response = client.post("/whatsapp", data={"From": PATIENT})

        assert response.status_code == 200
        mock_engine.process.assert_awaited_once_with(PATIENT, "")

    def test_real_engine(self, client, fake_calendar, calendar_id):
        flow = ConversationFlow(
            calendar=fake_calendar,
            calendar_id=calendar_id,
            responses=ResponseGenerator(humanize_enabled=False),
        )
        engine = SchedulingEngine(
            session_manager=SessionManager(store=InMemorySessionStore()),
            flow_manager=flow,
            response_generator=ResponseGenerator(humanize_enabled=False),
        )

        with patch("app.api.routes.whatsapp.get_scheduling_engine", return_value=engine):
            first = client.post("/whatsapp", data={"From": PATIENT, "Body": "Oi"})
            second = client.post("/whatsapp", data={"From": PATIENT, "Body": "talvez"})

        assert "Posso ajudar a agendar" in first.text
        assert "Responda com Sim ou" in second.text

    def test_build_twiml_escapes_text(self):
        twiml = build_twiml("1 < 2 & 3")

        assert "<Message>1 &lt; 2 &amp; 3</Message>" in twiml


class TestStatusEndpoints:
    """Test status and health checks."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "service": settings.app_name,
            "tz": settings.clinic_timezone,
        }

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["timezone"] == settings.clinic_timezone

    def test_live(self, client):
        assert client.get("/health/live").json()["status"] == "alive"

    def test_ready_without_calendar(self, client, monkeypatch):
        monkeypatch.setattr(settings, "google_calendar_id", None)
        monkeypatch.setattr(settings, "google_credentials", None)
        monkeypatch.setattr(settings, "google_project_email", None)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"calendar_id": "missing", "credentials": "missing"}

    def test_ready_with_calendar(self, client, monkeypatch):
        monkeypatch.setattr(settings, "google_calendar_id", "clinic@group.calendar.google.com")
        monkeypatch.setattr(settings, "google_credentials", None)
        monkeypatch.setattr(settings, "google_project_email", "bot@x.com")
        monkeypatch.setattr(settings, "google_private_key", "key")

        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

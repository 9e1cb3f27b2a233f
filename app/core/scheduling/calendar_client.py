"""
HTTP client for Google Calendar.

Operations needed by the booking flow:
- Free/busy query for a time range
- Fetch an event by its (deterministic) id
- Insert a new event
- Update an event (restores a cancelled booking)

Authentication uses a service account. Credentials come from
GOOGLE_CREDENTIALS (full JSON) or GOOGLE_PROJECT_EMAIL + GOOGLE_PRIVATE_KEY.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


class CalendarError(Exception):
    """Raised when the calendar cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarConfigError(CalendarError):
    """Raised when calendar id or credentials are missing or invalid."""


class EventAlreadyExistsError(CalendarError):
    """Raised when inserting an event whose id is already taken."""


@dataclass
class BusyInterval:
    """A busy period returned by a free/busy query."""

    start: str  # ISO format
    end: str

    @classmethod
    def from_dict(cls, data: dict) -> "BusyInterval":
        """Create from API response dict."""
        return cls(start=data.get("start", ""), end=data.get("end", ""))


class CalendarBackend(Protocol):
    """Calendar operations used by availability and booking."""

    async def query_free_busy(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]: ...

    async def get_event(self, calendar_id: str, event_id: str) -> Optional[dict]: ...

    async def insert_event(self, calendar_id: str, event: dict) -> dict: ...

    async def update_event(self, calendar_id: str, event_id: str, event: dict) -> dict: ...


def load_service_account_info(settings: Settings) -> dict[str, str]:
    """Build service-account info from settings.

    Raises:
        CalendarConfigError: If credentials are missing or malformed
    """
    if settings.google_credentials:
        try:
            creds = json.loads(settings.google_credentials)
        except json.JSONDecodeError as e:
            raise CalendarConfigError(f"Invalid GOOGLE_CREDENTIALS: {e}") from e
        email = creds.get("client_email") or creds.get("email")
        key = creds.get("private_key") or ""
    else:
        email = settings.google_project_email
        key = settings.google_private_key or ""

    # Keys pasted into env dashboards usually carry literal "\n"
    key = key.replace("\\n", "\n")

    if not email or not key:
        raise CalendarConfigError(
            "Google credentials missing. Set GOOGLE_CREDENTIALS or "
            "GOOGLE_PROJECT_EMAIL/GOOGLE_PRIVATE_KEY."
        )

    return {
        "type": "service_account",
        "client_email": email,
        "private_key": key,
        "token_uri": TOKEN_URI,
    }


class GoogleCalendarClient:
    """
    Async client for the Google Calendar v3 REST API.

    Uses:
    - POST /freeBusy - Busy intervals for a calendar
    - GET /calendars/{id}/events/{eventId} - Event lookup
    - POST /calendars/{id}/events - Event creation
    - PUT /calendars/{id}/events/{eventId} - Event update
    """

    def __init__(
        self,
        base_url: str = CALENDAR_API_URL,
        timeout: Optional[float] = None,
        credentials: Optional[Any] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize client.

        Args:
            base_url: Calendar API base URL
            timeout: Request timeout in seconds (defaults to settings)
            credentials: google-auth credentials (built from settings if not provided)
            settings: Settings instance (defaults to cached settings)
        """
        self._settings = settings or get_settings()
        self.base_url = base_url
        self.timeout = timeout or self._settings.calendar_timeout_seconds
        self._credentials = credentials
        self._token_lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_access_token(self) -> str:
        """Return a valid OAuth token, refreshing it when needed.

        The google-auth refresh is blocking, so it runs in a worker thread.
        """
        async with self._token_lock:
            if self._credentials is None:
                info = load_service_account_info(self._settings)
                try:
                    self._credentials = service_account.Credentials.from_service_account_info(
                        info, scopes=CALENDAR_SCOPES
                    )
                except (ValueError, GoogleAuthError) as e:
                    raise CalendarConfigError(f"Invalid service account: {e}") from e

            if not self._credentials.valid:
                try:
                    await asyncio.wait_for(
                        asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest()),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise CalendarError("Timed out refreshing Google credentials") from e
                except GoogleAuthError as e:
                    raise CalendarError(f"Google authentication failed: {e}") from e

            return self._credentials.token

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[dict] = None,
    ) -> httpx.Response:
        """Send an authenticated request, wrapping transport errors."""
        token = await self._get_access_token()
        client = await self._get_client()

        try:
            return await client.request(
                method,
                path,
                json=json_body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise CalendarError(f"Calendar request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise CalendarError(f"Calendar request failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            raise CalendarError(
                f"Calendar {action} failed with status {response.status_code}",
                status_code=response.status_code,
            )

    @staticmethod
    def _events_path(calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}/events"

    # === Availability ===

    async def query_free_busy(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        """Get busy intervals overlapping [start, end).

        Args:
            calendar_id: Calendar to query
            start: Range start (timezone-aware)
            end: Range end (timezone-aware)

        Returns:
            Busy intervals; empty when the range is free
        """
        payload = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "timeZone": self._settings.clinic_timezone,
            "items": [{"id": calendar_id}],
        }

        response = await self._request("POST", "/freeBusy", json_body=payload)
        self._raise_for_status(response, "free/busy query")

        try:
            data = response.json()
        except ValueError as e:
            raise CalendarError("Malformed free/busy response") from e

        calendar = data.get("calendars", {}).get(calendar_id, {})
        if calendar.get("errors"):
            reasons = ", ".join(err.get("reason", "unknown") for err in calendar["errors"])
            raise CalendarError(f"Free/busy error for calendar: {reasons}")

        return [BusyInterval.from_dict(b) for b in calendar.get("busy", [])]

    # === Events ===

    async def get_event(self, calendar_id: str, event_id: str) -> Optional[dict]:
        """Get event by id.

        Returns:
            Event dict, or None if it does not exist
        """
        response = await self._request(
            "GET", f"{self._events_path(calendar_id)}/{event_id}"
        )

        if response.status_code in (404, 410):
            return None
        self._raise_for_status(response, "event lookup")

        event = response.json()
        if event.get("status") == "cancelled":
            logger.info(f"Event {event_id} exists but was cancelled")
        return event

    async def insert_event(self, calendar_id: str, event: dict) -> dict:
        """Create a new event.

        Raises:
            EventAlreadyExistsError: If the event id is already in use
            CalendarError: On any other failure
        """
        response = await self._request(
            "POST", self._events_path(calendar_id), json_body=event
        )

        if response.status_code == 409:
            raise EventAlreadyExistsError(
                f"Event {event.get('id')} already exists",
                status_code=409,
            )
        self._raise_for_status(response, "event insert")

        return response.json()

    async def update_event(self, calendar_id: str, event_id: str, event: dict) -> dict:
        """Replace an existing event, e.g. to restore a cancelled one.

        Raises:
            CalendarError: On any failure
        """
        response = await self._request(
            "PUT", f"{self._events_path(calendar_id)}/{event_id}", json_body=event
        )
        self._raise_for_status(response, "event update")

        return response.json()


# Singleton
_client: Optional[GoogleCalendarClient] = None


def get_calendar_client() -> GoogleCalendarClient:
    """Get singleton GoogleCalendarClient."""
    global _client
    if _client is None:
        _client = GoogleCalendarClient()
    return _client

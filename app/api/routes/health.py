"""
Health Check Endpoints

Provides health, readiness, and liveness checks for monitoring
and load balancers.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.scheduling.calendar_client import CalendarConfigError, load_service_account_info

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    service: str
    environment: str
    timezone: str


class ReadyResponse(BaseModel):
    """Readiness check response with configuration status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    """
    Basic health check.

    Always returns 200 if the application is running.
    Use /health/ready for configuration checks.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        service=settings.app_name,
        environment=settings.app_env,
        timezone=settings.clinic_timezone,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness check",
    description="Checks calendar configuration. Returns 503 if bookings cannot be made.",
    responses={
        200: {"description": "Calendar is configured"},
        503: {"description": "Calendar id or credentials are missing"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness check for load balancers.

    Checks:
    - Calendar id is set
    - Service-account credentials are present and parseable

    Returns 503 if any check fails. No network call is made.
    """
    checks = {}
    all_ok = True

    if settings.google_calendar_id:
        checks["calendar_id"] = "ok"
    else:
        checks["calendar_id"] = "missing"
        all_ok = False
        logger.warning("Readiness check: GOOGLE_CALENDAR_ID not set")

    try:
        load_service_account_info(settings)
        checks["credentials"] = "ok"
    except CalendarConfigError as e:
        checks["credentials"] = "missing"
        all_ok = False
        logger.warning(f"Readiness check: {e}")

    response = ReadyResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    # Return 503 if not ready
    if not all_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    """
    Liveness check.

    Always returns 200 if the process is running.
    """
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )

"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    CLINIC_TIMEZONE: IANA timezone of the clinic (default: America/Sao_Paulo)
    CLINIC_NAME / CLINIC_ADDRESS / CLINIC_PHONE: Clinic identity shown to patients
    ACCEPT_HEALTH_PLANS: Ask for billing mode (particular/convênio) (default: True)
    GOOGLE_CALENDAR_ID or CALENDAR_ID: Calendar used for free/busy and bookings
    GOOGLE_CREDENTIALS: Full service-account JSON
    GOOGLE_PROJECT_EMAIL + GOOGLE_PRIVATE_KEY: Alternative to GOOGLE_CREDENTIALS
    ANTHROPIC_API_KEY: Optional, enables rewriting outgoing messages
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose errors
    - staging: Pre-production testing environment
    - production: Live production environment, internal errors hidden
    """

    debug: bool = False
    """Enable debug mode (DEBUG log level, detailed error messages)."""

    app_name: str = "bot-urologia"
    """Application name, reported by the status endpoints."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 3000
    """Port to bind the application server."""

    # Clinic
    clinic_timezone: str = "America/Sao_Paulo"
    """IANA timezone used for every scheduling computation."""

    clinic_name: str = "Clínica de Urologia"
    clinic_address: str = "Endereço não configurado"
    clinic_phone: str = ""

    accept_health_plans: bool = True
    """When False the insurance questions are skipped and every visit is private."""

    collect_patient_name: bool = False
    """Ask for the patient's name before the billing questions."""

    ask_to_continue: bool = True
    """Greet and ask "Sim/Não" before starting the intake questions."""

    # Google Calendar
    google_calendar_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("google_calendar_id", "calendar_id"),
    )
    """Calendar queried for free/busy and used for new events."""

    google_credentials: Optional[str] = None
    """Service-account JSON (takes precedence over email/key pair)."""

    google_project_email: Optional[str] = None
    google_private_key: Optional[str] = None

    calendar_timeout_seconds: float = 10.0
    """Timeout applied to every Calendar API request."""

    # Slot suggestion
    appointment_duration_minutes: int = 30
    slot_suggestion_count: int = 3
    """How many free slots are offered to the patient at once."""

    slot_step_minutes: int = 45
    """Cursor advance after a candidate is emitted. Must be a multiple of 15."""

    suggestion_window_days: int = 14
    """How far ahead candidates are searched."""

    candidate_pool_factor: int = 4
    """At most slot_suggestion_count * factor candidates are checked per search."""

    lead_time_days: int = 14
    """Minimum advance notice for plans listed in lead_time_plan_keywords."""

    lead_time_plan_keywords: str = "ipe,ipergs"
    """Comma-separated plan name tokens subject to lead time."""

    # Sessions
    session_ttl_seconds: int = 6 * 60 * 60
    """Idle time after which a conversation is forgotten (default: 6 hours)."""

    session_sweep_interval_seconds: int = 30 * 60
    """How often expired sessions are swept (default: 30 minutes)."""

    # Text presentation (optional)
    anthropic_api_key: Optional[str] = None
    """Enables the message rewriting pass when set."""

    claude_model: str = "claude-3-5-haiku-20241022"
    claude_fallback_model: Optional[str] = None
    """Model tried once when the primary model fails (disabled when unset)."""

    humanize_timeout_seconds: float = 4.0
    """Hard limit for the rewriting pass; the original text is used on timeout."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def lead_time_keywords(self) -> list[str]:
        """Split lead_time_plan_keywords into a list."""
        return [
            keyword.strip().lower()
            for keyword in self.lead_time_plan_keywords.split(",")
            if keyword.strip()
        ]

    @property
    def has_google_credentials(self) -> bool:
        """Check whether any form of service-account credential is configured."""
        return bool(
            self.google_credentials
            or (self.google_project_email and self.google_private_key)
        )

    @property
    def humanize_enabled(self) -> bool:
        """Check if the optional rewriting pass is configured."""
        return bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from app.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.clinic_timezone)
        America/Sao_Paulo
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()

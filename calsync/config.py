"""
Configuration management for calsync.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/calsync.db",
        description="Database connection URL for the unified event store"
    )

    # Sync scheduling
    sync_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds between periodic sync passes"
    )
    sync_window_past_days: int = Field(
        default=30,
        ge=0,
        description="Days before today covered by full-window fetches"
    )
    sync_window_future_days: int = Field(
        default=90,
        ge=1,
        description="Days after today covered by full-window fetches"
    )
    event_retention_days: int = Field(
        default=0,
        ge=0,
        description="Prune events that ended this many days ago (0 disables pruning)"
    )

    # Local calendar
    local_calendar_path: str = Field(
        default="",
        description="Path to an .ics file or a directory of .ics files"
    )

    # Google Calendar
    google_calendar_id: str = Field(
        default="primary",
        description="Google Calendar ID to sync"
    )
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )
    google_oauth_token: str = Field(
        default="",
        description="Google OAuth access token obtained by the sign-in flow"
    )
    google_oauth_refresh_token: str = Field(
        default="",
        description="Google OAuth refresh token obtained by the sign-in flow"
    )

    # Outlook / Microsoft Graph
    outlook_access_token: str = Field(
        default="",
        description="Microsoft Graph bearer token obtained by the sign-in flow"
    )
    outlook_graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Microsoft Graph API base URL"
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for remote calendar requests"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_local_calendar(self) -> bool:
        """Check if a local calendar path is configured."""
        return bool(self.local_calendar_path)

    @property
    def uses_google_calendar(self) -> bool:
        """Check if Google Calendar credentials are configured."""
        return bool(self.google_oauth_token or self.google_oauth_refresh_token)

    @property
    def uses_outlook(self) -> bool:
        """Check if an Outlook bearer token is configured."""
        return bool(self.outlook_access_token)

    def validate_sync_config(self) -> None:
        """
        Validate the calendar source configuration.

        Raises:
            ValueError: If the configuration cannot produce a working sync
        """
        errors = []

        if not (self.uses_local_calendar or self.uses_google_calendar or self.uses_outlook):
            errors.append(
                "No calendar source configured. Set LOCAL_CALENDAR_PATH, "
                "GOOGLE_OAUTH_TOKEN or OUTLOOK_ACCESS_TOKEN."
            )

        if self.google_oauth_refresh_token and not (
            self.google_oauth_client_id and self.google_oauth_client_secret
        ):
            errors.append(
                "GOOGLE_OAUTH_REFRESH_TOKEN requires GOOGLE_OAUTH_CLIENT_ID "
                "and GOOGLE_OAUTH_CLIENT_SECRET."
            )

        if errors:
            raise ValueError("Sync configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from calsync.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()

"""
Configuration management for Planner Outlook Sync.

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
    See .env.example for available options.
    """

    # Python & Application
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
        default="sqlite:///./data/planner_sync.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Timezone used to place all-day events at local midnight
    timezone: str = Field(
        default="UTC",
        description="IANA timezone name for all-day events (e.g., Europe/London)"
    )

    # Microsoft identity platform (refresh token exchange)
    microsoft_client_id: str = Field(
        default="",
        description="Azure AD application (client) ID"
    )
    microsoft_client_secret: str = Field(
        default="",
        description="Azure AD client secret"
    )
    microsoft_tenant: str = Field(
        default="common",
        description="Azure AD tenant used for the token endpoint"
    )
    microsoft_scopes: str = Field(
        default="offline_access Calendars.ReadWrite MailboxSettings.ReadWrite",
        description="Space-separated delegated scopes requested on refresh"
    )

    # Microsoft Graph
    graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Microsoft Graph API base URL"
    )
    graph_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for a single Graph request"
    )
    graph_max_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Attempts per Graph call (retries only rate limit and 5xx errors)"
    )

    # Synchronization engine
    outlook_calendar_name: str = Field(
        default="Planner",
        description="Name of the dedicated Outlook calendar holding mirrored events"
    )
    sync_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Time budget for a single-task sync triggered by a task mutation"
    )
    sync_batch_size: int = Field(
        default=20,
        ge=1,
        le=20,
        description="Operations per Graph $batch request (Graph allows at most 20)"
    )
    sync_job_retention_seconds: int = Field(
        default=300,
        ge=0,
        description="How long finished sync jobs stay visible to status polling"
    )
    sync_job_cleanup_interval_seconds: int = Field(
        default=60,
        gt=0,
        description="Interval between sweeps of expired sync jobs"
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
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_microsoft_oauth(self) -> bool:
        """Check if the Microsoft OAuth client is configured."""
        return bool(self.microsoft_client_id and self.microsoft_client_secret)

    @property
    def microsoft_token_url(self) -> str:
        """Token endpoint for the configured tenant."""
        return f"https://login.microsoftonline.com/{self.microsoft_tenant}/oauth2/v2.0/token"

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if not self.uses_microsoft_oauth:
            errors.append(
                "MICROSOFT_CLIENT_ID and MICROSOFT_CLIENT_SECRET are required in production."
            )

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from planner_sync.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.outlook_calendar_name)
    """
    return Settings()

"""Configuration management for threadflow."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="THREADFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote Store Configuration
    api_base_url: str = Field(default="http://127.0.0.1:3000", description="Remote Store base URL")
    api_token: str | None = Field(default=None, description="Bearer token sent with every Remote Store request")
    request_timeout_seconds: float = Field(default=30.0, description="Per-request timeout for Remote Store calls")

    # Session Actor
    username: str = Field(default="anonymous", description="Login name of the session user")
    full_name: str = Field(default="Anonymous", description="Display name used as message author")
    role: str = Field(default="Developer", description="Team role of the session user (e.g., Reviewer)")

    # Polling
    poll_interval_seconds: float = Field(default=10.0, description="Seconds between poll ticks")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Views
    notice_history: int = Field(default=20, description="How many transient notices a view keeps")


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_BAD_REQUEST: int = 400
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404

    # Task progress bounds (percent)
    PROGRESS_MIN: int = 0
    PROGRESS_MAX: int = 100

    # Optimistic records
    TEMP_ID_PREFIX: str = "temp-"

    # Relative time thresholds
    SECONDS_PER_MINUTE: int = 60
    SECONDS_PER_HOUR: int = 3600
    SECONDS_PER_DAY: int = 86400


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()

"""
EvenTotem settings.

Everything is read from the environment (or a local .env file) through
pydantic-settings. Database and bucket credentials have no default and
must be provided.
"""

from functools import lru_cache
from typing import Optional, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validated runtime configuration."""

    # Application Settings
    APP_NAME: str = "EvenTotem"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database - PostgreSQL (Required fields)
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the POSTGRES_* fields when set"
    )

    # S3 Storage (Required fields)
    S3_ENDPOINT: str
    S3_ACCESS_KEY: str
    S3_SECRET_KEY: str
    S3_BUCKET: str
    S3_REGION: str = "us-east-1"

    # Gateway Authentication
    API_KEYS: str = Field(
        default="",
        description="Comma-separated list of API keys accepted from the identity gateway"
    )

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Totem display
    DISPLAY_TIMEZONE: str = Field(
        default="America/Sao_Paulo",
        description="IANA timezone used to compute the weekday and period shown on totems"
    )
    TOTEM_RATE_LIMIT: str = "120/minute"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("DISPLAY_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the display timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalise the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def database_url(self) -> str:
        """
        Construct the SQLAlchemy connection URL for the events database.

        Returns:
            str: DATABASE_URL when provided, otherwise a PostgreSQL URL
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def display_timezone(self) -> ZoneInfo:
        """Timezone object for DISPLAY_TIMEZONE."""
        return ZoneInfo(self.DISPLAY_TIMEZONE)

    def get_api_keys(self) -> List[str]:
        """Keys accepted in X-API-Key; an empty list disables the check."""
        return split_csv(self.API_KEYS)

    def get_cors_origins(self) -> List[str]:
        return split_csv(self.CORS_ORIGINS)


def split_csv(raw: Optional[str]) -> List[str]:
    """Split a comma-separated setting, dropping blanks."""
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment and .env."""
    return Settings()

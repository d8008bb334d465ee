"""Application configuration using Pydantic BaseSettings."""

import logging
import os
from dataclasses import dataclass
from datetime import timedelta

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("chipledger.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # MongoDB Configuration
    MONGO_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "chipledger"

    # CORS Configuration
    # Comma-separated list of allowed origins, or "*" for all origins
    CORS_ORIGINS: str = ""

    # Ledger policy
    # Future-dated start times and buy-in timestamps are accepted up to this
    # many seconds ahead of the server clock.
    CLOCK_SKEW_TOLERANCE_SECONDS: int = 300
    ENFORCE_START_TIME_NOT_IN_FUTURE: bool = True
    # When True, completing a game requires a cashout for every participant
    # that has not already cashed out.
    REQUIRE_COMPLETE_CASHOUTS: bool = False

    # Application Metadata
    APP_VERSION: str = "1.0.0"

    @field_validator("CLOCK_SKEW_TOLERANCE_SECONDS")
    @classmethod
    def validate_skew(cls, v: int) -> int:
        """Reject negative tolerances; cap absurd ones with a warning."""
        if v < 0:
            raise ValueError("CLOCK_SKEW_TOLERANCE_SECONDS must be >= 0")
        if v > 3600:
            logger.warning(
                "CLOCK_SKEW_TOLERANCE_SECONDS=%d accepts timestamps more than "
                "an hour in the future",
                v,
            )
        return v

    @property
    def cors_origins(self) -> list[str]:
        """Return list of allowed CORS origins.

        If CORS_ORIGINS is empty, allows the local development origins
        but returns empty in production.
        """
        if self.CORS_ORIGINS:
            if self.CORS_ORIGINS == "*":
                return ["*"]
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

        is_production = os.getenv("RAILWAY_ENVIRONMENT") == "production"
        if is_production:
            logger.warning(
                "CORS_ORIGINS not configured in production. "
                "Set CORS_ORIGINS environment variable."
            )
            return []

        return [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]


@dataclass(frozen=True)
class LedgerPolicy:
    """The ledger rules that depend on configuration.

    Built once from Settings at startup and handed to the services.
    """
    clock_skew: timedelta = timedelta(minutes=5)
    enforce_start_time_not_in_future: bool = True
    require_complete_cashouts: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "LedgerPolicy":
        return cls(
            clock_skew=timedelta(seconds=s.CLOCK_SKEW_TOLERANCE_SECONDS),
            enforce_start_time_not_in_future=s.ENFORCE_START_TIME_NOT_IN_FUTURE,
            require_complete_cashouts=s.REQUIRE_COMPLETE_CASHOUTS,
        )


# Global settings instance
settings = Settings()

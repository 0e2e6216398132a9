from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Database
    DATABASE_URL: str

    # Sources to synchronize, comma separated (e.g. "perseverance,curiosity").
    # Required: there is no built-in default list.
    ACTIVE_SOURCES: str

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str | None = "logs"  # empty disables the rotating file sink
    SLACK_WEBHOOK_URL: str | None = None

    # Sync window and retry policy
    LOOKBACK_UNITS: int = 7
    STUCK_RUN_THRESHOLD_MINUTES: int = 60
    POSITION_RESOLVE_ATTEMPTS: int = 3
    UNIT_RETRY_ROUNDS: int = 3
    UNIT_RETRY_BASE_DELAY_SECONDS: float = 30.0
    SOURCE_PAUSE_SECONDS: float = 2.0

    # Upstream HTTP client
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_USER_AGENT: str = "solsync/1.0"

    # Scheduled sync (runs inside the web service)
    SYNC_ENABLED: bool = True
    SYNC_INTERVAL_HOURS: int = 24
    SYNC_RUN_AT_UTC_HOUR: int = 2

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @field_validator("ACTIVE_SOURCES")
    @classmethod
    def _require_sources(cls, value: str) -> str:
        names = [part.strip().lower() for part in value.split(",") if part.strip()]
        if not names:
            raise ValueError("ACTIVE_SOURCES must list at least one source id")
        return ",".join(names)

    @field_validator("LOOKBACK_UNITS", "UNIT_RETRY_ROUNDS")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("POSITION_RESOLVE_ATTEMPTS", "STUCK_RUN_THRESHOLD_MINUTES")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("SYNC_RUN_AT_UTC_HOUR")
    @classmethod
    def _hour_of_day(cls, value: int) -> int:
        if not 0 <= value <= 23:
            raise ValueError("must be between 0 and 23")
        return value

    @property
    def active_sources(self) -> list[str]:
        """Configured source ids in processing order."""
        return self.ACTIVE_SOURCES.split(",")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development


settings = Settings()

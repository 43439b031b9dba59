"""
Engagement engine settings, read from the environment and an optional .env.

    settings = get_settings()
    window = settings.engine.unique_view_window_minutes
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types.content import Timeframe


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# =============================================================================
# Engine
# =============================================================================


class EngineSettings(EnvSettings):
    """Tracking windows, retention and rollup defaults."""

    unique_view_window_minutes: int = Field(default=30, ge=1)
    inactivity_days: int = Field(
        default=90,
        ge=1,
        description="A visitor returning after this many idle days is churned",
    )
    overview_size: int = Field(default=5, ge=1, le=50)
    default_timeframe: Timeframe = Timeframe.MONTH
    base_project_value: float = Field(default=5000.0, ge=0)

    # Two weeks of view trend on top of the longest rollup window
    history_retention_days: int = Field(default=120, ge=Timeframe.QUARTER.days + 14)
    history_max_records: int = Field(default=50_000, ge=100)

    dedup_window_minutes: int = Field(
        default=24 * 60,
        ge=1,
        description="How long a client event id is remembered for replay detection",
    )
    dedup_max_events: int = Field(default=100_000, ge=1)
    max_tracked_sessions: int = Field(default=100_000, ge=1)

    @field_validator("default_timeframe", mode="before")
    @classmethod
    def normalize_timeframe(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


# =============================================================================
# Deployment
# =============================================================================


class SecuritySettings(EnvSettings):
    environment: Literal["development", "staging", "production"] = "development"
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated CORS origins",
    )
    security_trust_request_id: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class LoggingSettings(EnvSettings):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format_json: bool = False
    request_logging_enabled: bool = True
    service_name: str = "engagement-engine"


class SentrySettings(EnvSettings):
    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    sentry_release: Optional[str] = "engagement-engine@0.1.0"

    @property
    def is_configured(self) -> bool:
        return bool(self.sentry_dsn)


class Settings(EnvSettings):
    """All setting groups behind one entry point."""

    engine: EngineSettings = Field(default_factory=EngineSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_production(self) -> bool:
        return self.security.is_production

    @property
    def is_sentry_configured(self) -> bool:
        return self.sentry.is_configured

    @property
    def use_json_logs(self) -> bool:
        return self.logging.log_format_json or self.is_production

    def get_config_summary(self) -> dict:
        """Effective settings for the startup log; the Sentry DSN is left out."""
        engine = self.engine
        return {
            "environment": self.security.environment,
            "sentry_configured": self.is_sentry_configured,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
            "unique_view_window_minutes": engine.unique_view_window_minutes,
            "inactivity_days": engine.inactivity_days,
            "default_timeframe": engine.default_timeframe.value,
            "history_retention_days": engine.history_retention_days,
        }


@lru_cache()
def get_settings() -> Settings:
    """Cached settings; call get_settings.cache_clear() to reload."""
    return Settings()

from functools import lru_cache
from typing import Any, Literal

from pydantic import PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "BFIT Activity Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Database
    database_url: PostgresDsn
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Redis
    redis_url: RedisDsn

    # Strava
    strava_client_id: str | None = None
    strava_client_secret: str | None = None
    strava_webhook_verify_token: str | None = None
    strava_oauth_base_url: str = "https://www.strava.com"
    strava_authorize_url: str = "https://m.strava.com/oauth/authorize"
    strava_api_base_url: str = "https://www.strava.com/api/v3"
    strava_oauth_scope: str = "read,activity:read_all,profile:read_all"
    strava_http_timeout_seconds: float = 10.0
    app_base_url: str | None = None

    # OAuth state signing
    oauth_state_secret: str = "dev_secret"
    oauth_state_max_age_seconds: int = 600

    # Ingestion and scoring policy
    # Must name an ActivityType; checked at startup
    default_activity_type: Literal["steps", "run", "ride", "swim"] = "run"
    manual_steps_daily_limit: int = 50_000
    backfill_days: int = 7

    # Anti-cheat
    overlap_min_duration_seconds: int = 3600
    overlap_window_hours: int = 6

    # Leagues
    default_league_name: str = "BFIT Public League"
    leaderboard_default_limit: int = 10

    # Job processing
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    job_default_timeout: int = 300

    @field_validator("celery_broker_url", "celery_result_backend", mode="before")
    @classmethod
    def set_celery_urls(cls, v: str | None, info: Any) -> str | None:
        if v is None and "redis_url" in info.data:
            return str(info.data["redis_url"])
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

"""Central runtime configuration for the folder core."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


NOTIFICATION_BACKENDS = {"memory", "redis"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_url: str = "sqlite+aiosqlite:///./data/folder.sqlite"
    redis_url: str = "redis://redis:6379/0"
    env: str = "development"
    log_level: str = "INFO"
    app_name: str = "folder_core"
    app_version: str = "0.1.0"
    cloud_base_url: str = ""
    cloud_timeout_seconds: int = 20
    notification_backend: str = "memory"
    notification_channel_prefix: str = "folder:notification"
    trash_subscriber_capacity: int = 64
    trash_ack_timeout_seconds: float = 30.0
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _validate(settings: Settings) -> Settings:
    is_production = settings.env.lower() in {"prod", "production"}
    if is_production:
        required_production_values = {
            "DATABASE_URL": settings.database_url,
            "CLOUD_BASE_URL": settings.cloud_base_url,
        }
        missing = [name for name, value in required_production_values.items() if not str(value).strip()]
        if missing:
            joined = ", ".join(sorted(missing))
            raise ValueError(f"Missing required production secrets/config: {joined}.")
        if settings.database_url.startswith("sqlite"):
            raise ValueError("DATABASE_URL must not point to sqlite in production.")
    if settings.notification_backend.strip().lower() not in NOTIFICATION_BACKENDS:
        raise ValueError("NOTIFICATION_BACKEND must be one of: memory, redis.")
    if settings.cloud_timeout_seconds <= 0:
        raise ValueError("CLOUD_TIMEOUT_SECONDS must be positive.")
    if settings.trash_subscriber_capacity <= 0:
        raise ValueError("TRASH_SUBSCRIBER_CAPACITY must be positive.")
    if settings.trash_ack_timeout_seconds <= 0:
        raise ValueError("TRASH_ACK_TIMEOUT_SECONDS must be positive.")
    if settings.sentry_traces_sample_rate < 0 or settings.sentry_traces_sample_rate > 1:
        raise ValueError("SENTRY_TRACES_SAMPLE_RATE must be between 0 and 1.")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return validated settings as a cached singleton."""

    return _validate(Settings())

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "hospital-jobs-api"
    environment: str = "dev"
    log_level: str = "INFO"
    store_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    auth_url: str | None = None
    auth_api_key: str | None = None
    auth_timeout_seconds: float = 5.0
    notification_fanout_concurrency: int = 8
    notification_channel: str = "inapp"
    realtime_queue_size: int = 100
    otel_enabled: bool = True
    otel_service_name: str = "hospital-jobs-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="HJ_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "inventory-service"


class ServiceSettings(BaseSettings):
    """Base settings shared by the FastAPI services."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    alert_timezone: str = Field(default="UTC")
    alert_retry_enabled: bool = Field(default=True)
    alert_retry_interval_seconds: float = Field(default=30.0, gt=0.0)
    alert_retry_batch_size: int = Field(default=10, ge=1)
    alert_retry_max_attempts: int = Field(default=5, ge=1)
    alert_retry_default_delay_seconds: int = Field(default=300, ge=1)
    telegram_api_base_url: str = Field(default="https://api.telegram.org")
    telegram_timeout_seconds: float = Field(default=10.0, gt=0.0)
    telegram_max_attempts: int = Field(default=3, ge=1)
    telegram_backoff_base_seconds: float = Field(default=0.5, ge=0.0)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="SERVICE_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()

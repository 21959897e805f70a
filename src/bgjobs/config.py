from __future__ import annotations

from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BGJOBS_", env_file=".env", extra="ignore")

    app_name: str = "bgjobs"
    env: str = "dev"

    # Instance ID reported in logs and traces
    instance_id: str = Field(default_factory=lambda: str(uuid4())[:8])

    # Dispatch
    max_concurrency: int = Field(default=5, ge=1)
    poll_interval: float = Field(default=1.0, gt=0)
    pause_halts_dispatch: bool = False

    # Retry and timeout
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)
    processing_timeout: float = Field(default=300.0, gt=0)  # 5 minutes
    cancel_in_flight: bool = True

    # Cleanup sweep
    cleanup_interval: float = Field(default=60.0, gt=0)
    cleanup_max_age: float = Field(default=3600.0, ge=0)  # 1 hour

    # Metrics
    throughput_window: float = Field(default=60.0, gt=0)
    enable_metrics: bool = True

    # Observability
    enable_tracing: bool = False
    otlp_endpoint: str | None = Field(default=None, validation_alias="OTLP_ENDPOINT")
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()

from functools import lru_cache
from secrets import token_urlsafe
from typing import List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_v1_prefix: str = "/v1"
    project_name: str = "Moodz API"
    environment: str = Field(default="development", description="development, testing or production")
    log_level: str = "INFO"
    cors_origins: List[AnyHttpUrl] = []
    secret_key: str = Field(default_factory=lambda: token_urlsafe(32))
    access_token_expire_minutes: int = 60

    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy async connection string for the primary database",
    )

    cron_secret: str | None = Field(
        default=None,
        description="Bearer secret expected on the /cron endpoints",
    )

    rate_limit_enabled: bool = Field(
        default=True, description="Disable to let every request through without counting"
    )
    rate_limit_top_keys: int = Field(
        default=10, ge=1, description="Number of hottest keys reported by the stats endpoint"
    )

    redis_url: str | None = Field(
        default=None,
        description="Redis connection string used for the Celery broker",
    )
    celery_broker_url: str | None = Field(
        default=None,
        description="Broker URL for Celery workers; falls back to Redis when unset",
    )
    celery_result_backend: str | None = Field(
        default=None,
        description="Result backend for Celery; defaults to the broker when omitted",
    )

    resend_api_key: str | None = Field(default=None, description="API key for the Resend email API")
    email_api_url: AnyHttpUrl = Field(default="https://api.resend.com/emails")
    email_from: str = Field(default="Moodz <notificacoes@moodz.com>")
    email_timeout_seconds: float = Field(default=15.0, gt=0)

    session_reminder_lead_minutes: int = Field(default=60, ge=1)
    session_reminder_tolerance_seconds: int = Field(default=450, ge=1)
    session_starting_lead_minutes: int = Field(default=5, ge=1)
    session_starting_tolerance_seconds: int = Field(default=150, ge=1)
    session_cleanup_grace_hours: int = Field(default=2, ge=0)
    session_start_window_minutes: int = Field(default=5, ge=1)
    session_no_show_minutes: int = Field(default=30, ge=1)
    session_completion_buffer_minutes: int = Field(default=15, ge=0)

    streak_risk_lookback_days: int = Field(default=7, ge=1)
    streak_risk_min_streak: int = Field(default=3, ge=1)

    retention_read_notifications_days: int = Field(default=30, ge=1)
    retention_unread_notifications_days: int = Field(default=90, ge=1)
    retention_email_logs_days: int = Field(default=90, ge=1)
    retention_audit_logs_days: int = Field(default=365, ge=1)

    weekly_summary_activity_days: int = Field(default=30, ge=1)

    enable_prometheus_metrics: bool = Field(
        default=True, description="Expose Prometheus metrics endpoint when true"
    )
    prometheus_metrics_path: str = Field(
        default="/metrics/prometheus",
        description="Path where scraped Prometheus metrics are served",
    )
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None,
        description="OTLP HTTP endpoint for exporting traces",
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None,
        description="Comma separated key=value pairs added to OTLP requests",
    )
    otel_service_name: str | None = Field(
        default=None, description="Optional override for OpenTelemetry service.name"
    )

    worker_prometheus_port: int | None = Field(
        default=None,
        description="Optional port that exposes worker Prometheus metrics",
    )
    worker_prometheus_host: str = Field(
        default="0.0.0.0",
        description="Host interface used for worker Prometheus exporter",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()

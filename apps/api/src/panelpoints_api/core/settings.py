from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./panelpoints.db"
    database_echo: bool = False
    redis_url: str = "redis://localhost:6379/0"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Tracing; spans are dropped unless an OTLP endpoint or console export is configured
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_console_export: bool = False

    # Internal API security (observability + tooling)
    internal_api_key: str = ""

    # Request budgets per caller identity, enforced through shared Redis counters
    rate_limit_enabled: bool = False
    rate_limit_key_prefix: str = "ratelimit"
    rate_limit_survey_completion_requests: int = 5
    rate_limit_survey_completion_window_seconds: int = 60
    rate_limit_redemption_requests: int = 3
    rate_limit_redemption_window_seconds: int = 60
    rate_limit_admin_requests: int = 50
    rate_limit_admin_window_seconds: int = 60

    # Ledger reads
    ledger_page_max_limit: int = 100
    leaderboard_default_limit: int = 50
    leaderboard_max_limit: int = 100

    # Contest lifecycle
    contest_start_grace_seconds: int = 60 * 60

    # Reconciliation of interrupted sagas; rows younger than the floor may still be in flight
    reconciliation_min_age_seconds: int = 5 * 60
    reconciliation_pending_redemption_age_seconds: int = 15 * 60
    reconciliation_unawarded_completion_age_seconds: int = 15 * 60
    reconciliation_batch_limit: int = 200

    # Contest accrual skips these ledger transaction types
    contest_accrual_excluded_types: list[str] = Field(
        default_factory=lambda: ["award", "system_adjustment"]
    )

    @field_validator("contest_accrual_excluded_types", mode="before")
    @classmethod
    def _parse_type_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()

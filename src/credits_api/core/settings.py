from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./credits.db"
    database_echo: bool = False
    log_level: str = "INFO"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Internal API security (checkout flow, maker tooling)
    internal_api_key: str = ""

    # Tracing
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_console_export: bool = False

    # Ledger write path
    ledger_retry_attempts: int = 5
    ledger_retry_base_delay_seconds: float = 0.05
    ledger_retry_max_delay_seconds: float = 1.0
    transaction_history_max_page_size: int = 100

    # Admin adjustments; None keeps the console unlimited
    admin_adjustment_max_abs: int | None = None

    # Gift cards
    gift_card_default_ttl_days: int | None = 365

    # Ledger reconciliation worker
    ledger_reconciliation_worker_enabled: bool = False
    ledger_reconciliation_interval_seconds: int = 15 * 60
    ledger_reconciliation_batch_size: int = 500

    @field_validator("admin_adjustment_max_abs", "gift_card_default_ttl_days", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"", "none", "null"}:
            return None
        return value

    @field_validator("ledger_retry_attempts")
    @classmethod
    def _ensure_positive_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("ledger_retry_attempts must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()

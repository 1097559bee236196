"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQLite database location."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    path: str = "data/ledger.db"


class ScheduleSettings(BaseSettings):
    """Scheduler defaults.

    The persisted schedule in the database always wins. These values are used
    when nothing has been persisted yet, and as the degraded-mode fallback when
    the persisted schedule cannot be read at startup.
    """

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    default_run_time: str = "06:00"
    default_time_zone: str = "Asia/Dhaka"
    default_market_off_days: list[int] = Field(default_factory=lambda: [0, 6])  # Sun, Sat
    deactivation_offset_minutes: int = 1
    misfire_grace_seconds: int | None = None  # None: a late wake-up always runs (coalesced)


class SettlementSettings(BaseSettings):
    """Settlement and deactivation cycle parameters."""

    model_config = SettingsConfigDict(env_prefix="SETTLEMENT_")

    max_conflict_retries: int = 3
    profit_description: str = "Daily AI trading profit"
    loss_description: str = "Daily AI trading loss"
    deactivation_description: str = "AI trading automatically deactivated after daily settlement"


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    database: DatabaseSettings = DatabaseSettings()
    schedule: ScheduleSettings = ScheduleSettings()
    settlement: SettlementSettings = SettlementSettings()
    api: ApiSettings = ApiSettings()

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./platewise.db"
    database_echo: bool = False

    # Claim ticket windows
    redemption_activation_window_minutes: int = 15
    pending_order_ttl_minutes: int = 30

    # Code allocation
    code_allocation_max_attempts: int = 5

    # Background sweeps
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"
    scheduler_timezone: str = "UTC"

    # Tracing
    tracing_enabled: bool = True

    @field_validator("redemption_activation_window_minutes", "pending_order_ttl_minutes")
    @classmethod
    def _positive_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Expiry windows must be positive")
        return value

    @field_validator("code_allocation_max_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        return max(int(value), 1)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()

"""
Configuration for the reward ledger.

Values come from environment variables (optionally a `.env` file) through
pydantic-settings. Every variable carries the ``REWARD_LEDGER_`` prefix:

    REWARD_LEDGER_RECLAIM_TIMEOUT_DAYS   (int, default 30)
    REWARD_LEDGER_LIVE_CREATOR_CHECK     (bool, default true)
    REWARD_LEDGER_CUSTODY_ACCOUNT        (str, default "reward-ledger-custody")
    REWARD_LEDGER_SERVICE_NAME           (str, default "reward-ledger")
    REWARD_LEDGER_LOG_LEVEL              (str, default "INFO")
    REWARD_LEDGER_LOG_FORMAT             ("json" or "console", default "json")
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    reclaim_timeout_days: int = Field(30, ge=0, description="Days before a controller may reclaim")
    live_creator_check: bool = Field(
        True, description="Also require allocators to be the registry's current creator"
    )
    custody_account: str = Field("reward-ledger-custody", min_length=1)
    service_name: str = "reward-ledger"
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = SettingsConfigDict(
        env_prefix="REWARD_LEDGER_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @property
    def reclaim_timeout(self) -> timedelta:
        return timedelta(days=self.reclaim_timeout_days)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

"""Runtime configuration.

Values come from ``AUTH_*`` environment variables or a ``.env`` file.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contract import (
    DEFAULT_HASH_ITERATIONS,
    DEFAULT_SESSION_TTL_DAYS,
    MAX_HASH_ITERATIONS,
)


class Settings(BaseSettings):
    db_path: str = Field("auth.db", description="SQLite file, or ':memory:'")
    session_ttl_days: int = Field(DEFAULT_SESSION_TTL_DAYS, ge=1)
    hash_iterations: int = Field(
        DEFAULT_HASH_ITERATIONS, ge=1, le=MAX_HASH_ITERATIONS
    )
    cookie_secure: bool = True
    # 0 disables the expired-session reaper
    sweep_interval_seconds: float = Field(0.0, ge=0.0)
    log_level: str = "INFO"
    log_file: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return str(value).upper()


@lru_cache(maxsize=1)
def load_config() -> Settings:
    return Settings()


__all__ = ["Settings", "load_config"]

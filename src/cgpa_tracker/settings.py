"""
settings.py

Runtime configuration read from environment variables or a local .env file.
pydantic-settings v2.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # =========================
    # Backend (Supabase / PostgREST)
    # =========================
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    BACKEND_TIMEOUT: float = 15.0

    # =========================
    # Connectivity
    # =========================
    CONNECTIVITY_URL: str = "https://www.google.com/generate_204"
    CONNECTIVITY_TIMEOUT: float = 5.0

    # =========================
    # Retry (exponential backoff)
    # =========================
    READ_RETRIES: int = 3
    WRITE_RETRIES: int = 2
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0

    # =========================
    # Local cache / logging
    # =========================
    CACHE_DIR: Path = Path.home() / ".cgpa_tracker"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("SUPABASE_URL", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, v):
        if isinstance(v, str):
            v = v.strip().rstrip("/")
            return v or None
        return v

    @field_validator("READ_RETRIES", "WRITE_RETRIES")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry attempts must be at least 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""
config.py
Runtime settings (API location, timeouts, display options).
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GYM_", env_file=".env", extra="ignore")

    # REST backend
    API_BASE_URL: str = "https://typhanieyel.pythonanywhere.com/api"
    REQUEST_TIMEOUT: float = 10.0

    # Display
    CURRENCY: str = "FCFA"
    EXPIRING_SOON_DAYS: int = 7

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()

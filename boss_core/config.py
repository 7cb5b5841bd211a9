"""
Unified configuration for the Boss Office services.

This module provides a single Settings class that consolidates all
environment variables used by the job status core and its persistence layer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for .env file loading (allows running from any CWD)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Unified settings for Boss Office.

    Environment variables are loaded from .env file and can be overridden
    by actual environment variables.
    """

    # Service identification
    SERVICE_NAME: str = "boss-office"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Persistence backend for jobs and audit entries
    STORAGE_BACKEND: Literal["memory", "postgres"] = "memory"

    # PostgreSQL
    POSTGRES_DSN: str = "host=localhost port=5432 dbname=boss_office user=postgres password=postgres"

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        extra="ignore"
    )


# Global settings instance
settings = Settings()  # type: ignore

"""Centralized settings management for the matchmaking core."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Matchmaking core settings.

    Values come from environment variables, then a .env file at the
    repository root, then the defaults below.
    """

    # -------------------------------------------------------------------------
    # STORAGE
    # -------------------------------------------------------------------------
    STORE_BACKEND: Literal["memory", "postgres"] = "memory"
    DATABASE_URL: str | None = None

    # -------------------------------------------------------------------------
    # INGESTION
    # -------------------------------------------------------------------------
    LIST_DELIMITER: str = Field(default="|", min_length=1)
    MAX_UPLOAD_ROWS: int = Field(default=5000, gt=0)
    DELETE_ACTOR_ON_CONSENT_REVOKE: bool = True

    # -------------------------------------------------------------------------
    # SCHEDULING
    # -------------------------------------------------------------------------
    DEFAULT_SLOT_MINUTES: int = Field(default=30, gt=0)
    ICS_UID_DOMAIN: str = "conference-matchmaking.app"
    ICS_PRODID: str = "-//Conference Matchmaking//Meeting Scheduler//EN"

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to src/
    BASE_DIR: Path = Path(__file__).resolve().parents[1]

    TAXONOMY_PATH: Path = BASE_DIR / "configs" / "taxonomy.yaml"
    INGESTION_CONFIG_PATH: Path = BASE_DIR / "configs" / "ingestion.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    def get_psycopg2_params(self) -> dict:
        """
        Split DATABASE_URL into keyword arguments for psycopg2.connect.

        sqlalchemy.make_url handles percent-encoded credentials and driver
        suffixes such as postgresql+psycopg2://

        Returns
        -------
        dict
            host, port, dbname, user and password.

        Raises
        ------
        ValueError
            If DATABASE_URL is not configured.
        """
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required for the postgres store backend")
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        Process-wide settings, built on first call.
    """
    return Settings()

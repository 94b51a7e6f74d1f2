"""
Configuration for Gloworld Server.

Uses pydantic-settings for environment variable loading. Every setting
reads from a GLOWORLD_ prefixed variable (GLOWORLD_DATABASE_PATH, ...).

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

PUBLIC_ASSETS_BUCKET = "gloworld-assets"


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    # Storage
    database_path: str = Field(
        default="/var/lib/gloworld/gloworld.db", description="SQLite database file"
    )
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")
    cache_size_pages: int = Field(default=-64000, description="SQLite cache size (negative = KB)")

    # Seeded public bucket
    public_bucket: str = Field(default=PUBLIC_ASSETS_BUCKET, description="Publicly readable bucket id")

    # Observability
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "GLOWORLD_"}

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError(f"log_format must be 'json' or 'text', got '{value}'")
        return value

    @field_validator("busy_timeout_ms")
    @classmethod
    def _check_timeout(cls, value: int) -> int:
        if value < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        return value

    @property
    def database_dir(self) -> Path:
        """Directory holding the database file."""
        return Path(self.database_path).parent

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "database_path": self.database_path,
                "wal_mode": self.wal_mode,
                "public_bucket": self.public_bucket,
                "log_level": self.log_level,
            },
        )

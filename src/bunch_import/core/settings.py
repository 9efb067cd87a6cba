"""
Centralized runtime settings for bunch-import.

Manifesto:
    Everything that changes between deployments (database location, log
    format, lock waits, error policies) is read from ``BUNCH_IMPORT_*``
    environment variables or a ``.env`` file, validated once and cached.
    What to import (subjects, callbacks) lives in the YAML import
    configuration instead; see :mod:`bunch_import.framework.config`.

Tags:
    bunch-import, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SubjectLifecycle(str, Enum):
    """Whether executors build a fresh subject per file or reuse one per run."""

    PER_FILE = "per_file"
    PER_RUN = "per_run"


class RowErrorPolicy(str, Enum):
    """What an executor does when a handler raises for one row."""

    SKIP = "skip"
    ABORT = "abort"


class ImportSettings(BaseSettings):
    """bunch-import runtime configuration.

    All fields can be set via ``BUNCH_IMPORT_*`` environment variables
    (e.g. ``BUNCH_IMPORT_DATABASE=/var/lib/import.db``).
    """

    model_config = SettingsConfigDict(
        env_prefix="BUNCH_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"

    # ── Storage ──────────────────────────────────────────────────
    database: Path = Field(
        default_factory=lambda: Path.home() / ".bunch-import" / "bunch_import.db",
        description="SQLite database for imported rows and the run-status registry",
    )

    # ── Locking ──────────────────────────────────────────────────
    lock_poll_interval: float = Field(default=0.5, gt=0)
    lock_timeout: float | None = Field(default=None, description="None waits forever")

    # ── Execution policies ───────────────────────────────────────
    subject_lifecycle: SubjectLifecycle = SubjectLifecycle.PER_FILE
    row_error_policy: RowErrorPolicy = RowErrorPolicy.SKIP
    halt_on_error: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"unsupported log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in {"json", "console"}:
            raise ValueError(f"unsupported log format: {value}")
        return fmt


@lru_cache(maxsize=1)
def get_settings() -> ImportSettings:
    """Return the cached settings instance."""
    return ImportSettings()


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, env changes)."""
    get_settings.cache_clear()


__all__ = [
    "ImportSettings",
    "SubjectLifecycle",
    "RowErrorPolicy",
    "get_settings",
    "clear_settings_cache",
]

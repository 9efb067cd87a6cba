"""Bunch Import Core -- errors, protocols, settings and shared run state.

Manifesto:
    Everything an import run shares with other runs lives here: the
    run-status registry and its atomic merge, the per-file locks and the
    structured error types both sides of a run report with.  Nothing in
    this layer knows about subjects or observers.

Architecture::

    errors.py        Structured error hierarchy (BunchImportError, ConfigError, ...)
    protocols.py     Connection, RegistryProcessor, Lock, ApplicationHost
    settings.py      ImportSettings (BUNCH_IMPORT_* environment)
    sqlite_conn.py   SqliteConnection adapter
    registry.py      InMemoryRegistry, SqliteRegistry, Increment
    locks.py         FileLock, file_lock_factory

Tags:
    bunch-import, core, errors, registry, locking

Doc-Types:
    package-overview
"""

from bunch_import.core.errors import (
    BunchImportError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    FatalRunError,
    RowError,
)
from bunch_import.core.registry import CacheKeys, InMemoryRegistry, Increment, RegistryKeys, SqliteRegistry
from bunch_import.core.settings import ImportSettings, get_settings

__all__ = [
    "BunchImportError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "FatalRunError",
    "RowError",
    "CacheKeys",
    "RegistryKeys",
    "Increment",
    "InMemoryRegistry",
    "SqliteRegistry",
    "ImportSettings",
    "get_settings",
]

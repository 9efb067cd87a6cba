"""
Protocol definitions shared by the core and the framework.

Manifesto:
    The orchestrator and subjects only talk to their collaborators
    through these narrow protocols.  Tests substitute mocks, deployments
    substitute SQLite, an in-memory registry or anything else that
    satisfies the same calls.

Tags:
    protocol, connection, registry, lock, bunch-import
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection interface used for persistence."""

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


@runtime_checkable
class RegistryProcessor(Protocol):
    """
    Shared run-status store.

    ``merge_attributes_recursive`` is the only mutation concurrent runs
    rely on; implementations must perform the read-modify-write as one
    atomic step.
    """

    def merge_attributes_recursive(self, key: str, attributes: Mapping[str, Any]) -> None:
        """Atomically merge ``attributes`` into the mapping stored under ``key``."""
        ...

    def get_attribute(self, key: str) -> Any | None:
        """Return a copy of the value stored under ``key`` or ``None``."""
        ...

    def set_attribute(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""
        ...

    def remove_attribute(self, key: str) -> None:
        """Remove ``key``; no-op if absent."""
        ...


@runtime_checkable
class Lock(Protocol):
    """Exclusive lock scoped to one source file."""

    def acquire(self) -> None:
        """Block until the lock is held."""
        ...

    def release(self) -> None:
        """Release the lock if held."""
        ...


@runtime_checkable
class ApplicationHost(Protocol):
    """Run-wide identity, configuration, logging and the shutdown signal."""

    @property
    def configuration(self) -> Any: ...

    @property
    def registry_processor(self) -> RegistryProcessor: ...

    @property
    def serial(self) -> str: ...

    @property
    def system_logger(self) -> Any: ...

    def stop(self, reason: str) -> None:
        """Request shutdown; the current plugin finishes, no further plugin starts."""
        ...


__all__ = ["Connection", "RegistryProcessor", "Lock", "ApplicationHost"]

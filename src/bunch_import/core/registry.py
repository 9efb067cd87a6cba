"""
Run-status registry with an atomic recursive merge.

Manifesto:
    Several orchestration runs may report into the same status registry
    at once.  Independent get/set calls would lose updates, so every
    mutation goes through ``merge_attributes_recursive``: one critical
    section that reads the stored mapping, merges the partial mapping
    into it and writes it back.

Merge rules (see :func:`merge_recursive`):
    - mappings merge key by key, recursively
    - :class:`Increment` adds to the stored number (missing counts as 0)
    - lists extend the stored list
    - anything else replaces the stored value (last writer wins)

Implementations:
    - :class:`InMemoryRegistry`: threads of one process (``RLock``)
    - :class:`SqliteRegistry`: separate processes (``BEGIN IMMEDIATE``)

Tags:
    bunch-import, registry, status, concurrency, atomic-merge

Doc-Types:
    api-reference
"""

from __future__ import annotations

import copy
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from bunch_import.core.sqlite_conn import SqliteConnection


class CacheKeys:
    """Top-level registry namespaces."""

    STATUS = "status"


class RegistryKeys:
    """Keys inside the status namespace."""

    BUNCHES = "bunches"
    FAILED = "failed"
    SUBJECTS = "subjects"
    ERRORS = "errors"
    SERIAL = "serial"


@dataclass(frozen=True)
class Increment:
    """Additive counter delta for :func:`merge_recursive`."""

    amount: int | float = 1

    def apply(self, current: Any) -> int | float:
        if isinstance(current, bool) or not isinstance(current, int | float):
            current = 0
        return current + self.amount


def merge_recursive(target: dict[str, Any], partial: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge ``partial`` into ``target`` in place and return ``target``.

    Example:
        >>> merge_recursive({"bunches": 1, "a": {"x": 1}}, {"bunches": Increment(2), "a": {"y": 2}})
        {'bunches': 3, 'a': {'x': 1, 'y': 2}}
    """
    for key, value in partial.items():
        current = target.get(key)
        if isinstance(value, Increment):
            target[key] = value.apply(current)
        elif isinstance(value, Mapping):
            nested = current if isinstance(current, dict) else {}
            target[key] = merge_recursive(nested, value)
        elif isinstance(value, list | tuple):
            existing = current if isinstance(current, list) else []
            target[key] = existing + [_resolve(item) for item in value]
        else:
            target[key] = copy.deepcopy(value)
    return target


def _resolve(value: Any) -> Any:
    """Turn ``Increment`` leaves into plain numbers for fresh entries."""
    if isinstance(value, Increment):
        return value.amount
    if isinstance(value, Mapping):
        return merge_recursive({}, value)
    return copy.deepcopy(value)


# ------------------------------------------------------------------ #
# In-Memory Registry
# ------------------------------------------------------------------ #


class InMemoryRegistry:
    """Thread-safe in-process registry.

    Example:
        registry = InMemoryRegistry()
        registry.merge_attributes_recursive(CacheKeys.STATUS, {"bunches": Increment(1)})
        registry.get_attribute(CacheKeys.STATUS)  # {"bunches": 1}
    """

    def __init__(self) -> None:
        self._store: dict[str, Any] = {}
        self._lock = threading.RLock()

    def merge_attributes_recursive(self, key: str, attributes: Mapping[str, Any]) -> None:
        with self._lock:
            current = self._store.get(key)
            if not isinstance(current, dict):
                current = {}
            self._store[key] = merge_recursive(current, attributes)

    def get_attribute(self, key: str) -> Any | None:
        with self._lock:
            return copy.deepcopy(self._store.get(key))

    def set_attribute(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = _resolve(value)

    def remove_attribute(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def has_attribute(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def clear(self) -> None:
        """Remove all keys (testing only)."""
        with self._lock:
            self._store.clear()


# ------------------------------------------------------------------ #
# SQLite Registry
# ------------------------------------------------------------------ #


class SqliteRegistry:
    """Registry persisted in SQLite and shared between processes.

    Each key is one JSON document.  A merge opens ``BEGIN IMMEDIATE``,
    which takes the database write lock before reading, so two processes
    merging into the same key serialize instead of overwriting each
    other.

    Example:
        registry = SqliteRegistry("~/.bunch-import/registry.db")
        registry.merge_attributes_recursive("status", {"bunches": Increment(1)})
    """

    TABLE = "registry_attributes"

    def __init__(self, path: str | Path = ":memory:", *, timeout: float = 30.0) -> None:
        self.path = str(Path(path).expanduser()) if str(path) != ":memory:" else ":memory:"
        self._conn = SqliteConnection(self.path, row_factory=None, timeout=timeout)
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    def _load(self, key: str) -> Any | None:
        self._conn.execute(f"SELECT value FROM {self.TABLE} WHERE key = ?", (key,))
        row = self._conn.fetchone()
        return json.loads(row[0]) if row else None

    def _store(self, key: str, value: Any) -> None:
        self._conn.execute(
            f"""
            INSERT INTO {self.TABLE} (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, default=str), datetime.now(UTC).isoformat()),
        )

    def merge_attributes_recursive(self, key: str, attributes: Mapping[str, Any]) -> None:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._load(key)
                if not isinstance(current, dict):
                    current = {}
                self._store(key, merge_recursive(current, attributes))
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()

    def get_attribute(self, key: str) -> Any | None:
        with self._lock:
            return self._load(key)

    def set_attribute(self, key: str, value: Any) -> None:
        with self._lock:
            self._store(key, _resolve(value))
            self._conn.commit()

    def remove_attribute(self, key: str) -> None:
        with self._lock:
            self._conn.execute(f"DELETE FROM {self.TABLE} WHERE key = ?", (key,))
            self._conn.commit()

    def has_attribute(self, key: str) -> bool:
        with self._lock:
            self._conn.execute(f"SELECT 1 FROM {self.TABLE} WHERE key = ?", (key,))
            return self._conn.fetchone() is not None

    def keys(self) -> list[str]:
        with self._lock:
            self._conn.execute(f"SELECT key FROM {self.TABLE} ORDER BY key")
            return [row[0] for row in self._conn.fetchall()]

    def close(self) -> None:
        self._conn.close()


__all__ = [
    "CacheKeys",
    "RegistryKeys",
    "Increment",
    "merge_recursive",
    "InMemoryRegistry",
    "SqliteRegistry",
]

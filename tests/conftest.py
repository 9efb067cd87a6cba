"""
Shared pytest fixtures for bunch-import tests.

This module provides:
- Registry and settings cleanup for test isolation
- Factories for subject configurations and subjects
- Helpers writing CSV bunches and ok markers into ``tmp_path``
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from bunch_import.core.registry import InMemoryRegistry
from bunch_import.core.settings import clear_settings_cache
from bunch_import.framework.config import SubjectConfiguration
from bunch_import.framework.logging import clear_context
from bunch_import.framework.observers.registry import clear_registry
from bunch_import.framework.subjects.base import Subject

# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_observer_registry():
    """Built-ins reload lazily; custom test observers never leak between tests."""
    clear_registry()
    yield
    clear_registry()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Point settings at a per-test database and drop the cache."""
    monkeypatch.setenv("BUNCH_IMPORT_DATABASE", str(tmp_path / "state" / "bunch_import.db"))
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_context()
    yield
    clear_context()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    path = tmp_path / "import"
    path.mkdir()
    return path


@pytest.fixture
def make_config(source_dir: Path) -> Callable[..., SubjectConfiguration]:
    """Build a SubjectConfiguration with sensible defaults."""

    def factory(**overrides: Any) -> SubjectConfiguration:
        values: dict[str, Any] = {
            "id": "products",
            "prefix": "product-import",
            "source_dir": source_dir,
        }
        values.update(overrides)
        return SubjectConfiguration(**values)

    return factory


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def make_subject(make_config, registry) -> Callable[..., Subject]:
    """Build a Subject bound to an in-memory registry and a mock processor."""

    def factory(callbacks: Any = None, *, set_up: bool = True, **overrides: Any) -> Subject:
        config = make_config(callbacks=callbacks, **overrides)
        subject = Subject(config, serial="serial-1", registry_processor=registry, processor=MagicMock())
        if set_up:
            subject.set_up()
        return subject

    return factory


# =============================================================================
# File helpers
# =============================================================================


@pytest.fixture
def write_csv(source_dir: Path) -> Callable[..., Path]:
    """Write a CSV bunch: ``write_csv("product-import_20240101-120000_01.csv", header, *rows)``."""

    def writer(name: str, header: list[str], *rows: list[str], delimiter: str = ",") -> Path:
        path = source_dir / name
        lines = [delimiter.join(header), *(delimiter.join(row) for row in rows)]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return writer


@pytest.fixture
def write_ok(source_dir: Path) -> Callable[..., Path]:
    """Write an ok marker listing the given basenames."""

    def writer(name: str, *entries: str) -> Path:
        path = source_dir / name
        path.write_text("".join(f"{entry}\n" for entry in entries), encoding="utf-8")
        return path

    return writer

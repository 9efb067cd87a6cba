"""
Tests for bunch_import.core.settings module.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from bunch_import.core.settings import (
    ImportSettings,
    RowErrorPolicy,
    SubjectLifecycle,
    clear_settings_cache,
    get_settings,
)


class TestImportSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BUNCH_IMPORT_DATABASE", raising=False)
        settings = ImportSettings(_env_file=None)
        assert settings.log_level == "INFO"
        assert settings.log_format == "console"
        assert settings.database == Path.home() / ".bunch-import" / "bunch_import.db"
        assert settings.subject_lifecycle is SubjectLifecycle.PER_FILE
        assert settings.row_error_policy is RowErrorPolicy.SKIP
        assert settings.halt_on_error is False
        assert settings.lock_timeout is None

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BUNCH_IMPORT_DATABASE", str(tmp_path / "x.db"))
        monkeypatch.setenv("BUNCH_IMPORT_SUBJECT_LIFECYCLE", "per_run")
        monkeypatch.setenv("BUNCH_IMPORT_ROW_ERROR_POLICY", "abort")
        monkeypatch.setenv("BUNCH_IMPORT_HALT_ON_ERROR", "true")
        monkeypatch.setenv("BUNCH_IMPORT_LOCK_TIMEOUT", "2.5")
        monkeypatch.setenv("BUNCH_IMPORT_LOG_LEVEL", "debug")

        settings = ImportSettings(_env_file=None)

        assert settings.database == tmp_path / "x.db"
        assert settings.subject_lifecycle is SubjectLifecycle.PER_RUN
        assert settings.row_error_policy is RowErrorPolicy.ABORT
        assert settings.halt_on_error is True
        assert settings.lock_timeout == 2.5
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            ImportSettings(_env_file=None, log_level="LOUD")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            ImportSettings(_env_file=None, log_format="xml")

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            ImportSettings(_env_file=None, lock_poll_interval=0)


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache(self, monkeypatch, tmp_path):
        first = get_settings()
        monkeypatch.setenv("BUNCH_IMPORT_DATABASE", str(tmp_path / "other.db"))
        clear_settings_cache()
        second = get_settings()
        assert second is not first
        assert second.database == tmp_path / "other.db"

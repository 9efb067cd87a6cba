"""
Application: one import run across all configured plugins.

Manifesto:
    The application is the run's identity (serial), its configuration,
    its shared status registry and its stop signal.  Plugins run in
    configuration order until one of them asks the application to stop.

Wiring (``Application.from_settings``)::

    ImportSettings ──▶ SqliteConnection ──▶ SqliteRowProcessor ─┐
                  └──▶ SqliteRegistry ─────────────────────────┼─▶ CsvSubjectExecutor
                  └──▶ file_lock_factory, fatal policy          │
    ImportConfiguration ────────────────────────────────────────┴─▶ Application.run()

Tags:
    bunch-import, application, bootstrap, run

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from typing import Any

from bunch_import.core.locks import LockFactory, file_lock_factory
from bunch_import.core.protocols import RegistryProcessor
from bunch_import.core.registry import CacheKeys, SqliteRegistry
from bunch_import.core.settings import ImportSettings, get_settings
from bunch_import.core.sqlite_conn import SqliteConnection
from bunch_import.framework.config import ImportConfiguration
from bunch_import.framework.logging import get_logger, push_context
from bunch_import.framework.plugins.subject_plugin import FatalPolicy, SubjectPlugin, always_fatal, is_fatal
from bunch_import.framework.processors import SqliteRowProcessor
from bunch_import.framework.resolvers.base import FileResolverFactory
from bunch_import.framework.resolvers.ok_file import DefaultFileResolverFactory
from bunch_import.framework.subjects.executor import CsvSubjectExecutor, SubjectExecutor


class Application:
    """Host of one import run."""

    def __init__(
        self,
        configuration: ImportConfiguration,
        registry_processor: RegistryProcessor,
        subject_executor: SubjectExecutor,
        file_resolver_factory: FileResolverFactory,
        *,
        serial: str | None = None,
        system_logger: Any = None,
        lock_factory: LockFactory | None = None,
        fatal_policy: FatalPolicy = is_fatal,
    ) -> None:
        self._configuration = configuration
        self._registry_processor = registry_processor
        self._serial = serial or uuid.uuid4().hex
        self._system_logger = system_logger or get_logger("bunch_import.application")
        self.subject_executor = subject_executor
        self.file_resolver_factory = file_resolver_factory
        self.lock_factory = lock_factory or file_lock_factory(owner=self._serial)
        self.fatal_policy = fatal_policy
        self._stop_reason: str | None = None
        self.fatal_error: Exception | None = None
        self._resources: list[Any] = []

    @classmethod
    def from_settings(
        cls,
        configuration: ImportConfiguration,
        settings: ImportSettings | None = None,
    ) -> Application:
        """Wire the SQLite, CSV and ok-file implementations from settings."""
        settings = settings or get_settings()
        serial = uuid.uuid4().hex

        conn = SqliteConnection(settings.database.expanduser(), timeout=30.0)
        registry = SqliteRegistry(settings.database)
        executor = CsvSubjectExecutor(
            registry,
            SqliteRowProcessor(conn),
            serial=serial,
            lifecycle=settings.subject_lifecycle,
            row_error_policy=settings.row_error_policy,
        )
        application = cls(
            configuration,
            registry,
            executor,
            DefaultFileResolverFactory(),
            serial=serial,
            lock_factory=file_lock_factory(
                owner=serial,
                poll_interval=settings.lock_poll_interval,
                timeout=settings.lock_timeout,
            ),
            fatal_policy=always_fatal if settings.halt_on_error else is_fatal,
        )
        application._resources.extend([conn, registry])
        return application

    # ------------------------------------------------------------------ #
    # Host interface used by plugins
    # ------------------------------------------------------------------ #

    @property
    def configuration(self) -> ImportConfiguration:
        return self._configuration

    @property
    def registry_processor(self) -> RegistryProcessor:
        return self._registry_processor

    @property
    def serial(self) -> str:
        return self._serial

    @property
    def system_logger(self) -> Any:
        return self._system_logger

    @property
    def stopped(self) -> bool:
        return self._stop_reason is not None

    @property
    def stop_reason(self) -> str | None:
        return self._stop_reason

    def stop(self, reason: str) -> None:
        """Request shutdown. The first reason wins."""
        if self._stop_reason is None:
            self._stop_reason = reason
            self._system_logger.info("application.stop", reason=reason)

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    def run(self) -> dict[str, Any]:
        """Run every plugin in order and return the resulting run status."""
        token = push_context(serial=self._serial, operation=self._configuration.operation_name)
        try:
            self._system_logger.info("application.start", plugins=len(self._configuration.plugins))
            for plugin_configuration in self._configuration.plugins:
                if self.stopped:
                    break
                plugin = SubjectPlugin(
                    self,
                    self.subject_executor,
                    self.file_resolver_factory,
                    plugin_configuration,
                    lock_factory=self.lock_factory,
                    fatal_policy=self.fatal_policy,
                )
                plugin.process()
                if plugin.fatal_error is not None:
                    self.fatal_error = plugin.fatal_error
            status = self._registry_processor.get_attribute(CacheKeys.STATUS) or {}
            self._system_logger.info("application.finished", stop_reason=self._stop_reason)
            return status
        finally:
            token.restore()

    def close(self) -> None:
        """Close connections opened by :meth:`from_settings`."""
        while self._resources:
            self._resources.pop().close()

    def __enter__(self) -> Application:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Application(serial={self._serial!r}, stopped={self.stopped})"


__all__ = ["Application"]

"""
Subject plugin: the orchestration loop of one import run.

Manifesto:
    One plugin run walks its subjects in configuration order, finds each
    subject's files, imports them one at a time under a per-file lock and
    reports the outcome to the shared run-status registry.  A failing file
    never takes the run down with it unless the fatal policy says so; the
    decision to continue is made here and nowhere else.

State machine::

    IDLE ─▶ ITERATING_SUBJECTS ─▶ RESOLVING_FILES ─▶ LOCKED ─▶ EXECUTING ─▶ UNLOCKED
                 ▲                      ▲                                      │
                 │                      └──────────── next file ───────────────┤
                 └──────────────────────────────────── next subject ───────────┘
                                                                               ▼
                                                                             DONE

Status merges (exactly two per run)::

    initial: status ◀─ {<prefix>: {} for every subject}
    final:   status ◀─ {bunches: +n, failed: +m, serial: ..., subjects: {...}, errors: [...]}

    Afterwards the application is stopped when a fatal error occurred
    or when no bunch was imported at all.

Tags:
    bunch-import, orchestration, plugin, locking, status-registry

Doc-Types:
    api-reference, architecture-overview
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from bunch_import.core.errors import BunchImportError, ConfigError, FatalRunError, categorize_error
from bunch_import.core.locks import LockFactory, file_lock_factory
from bunch_import.core.protocols import ApplicationHost, Lock
from bunch_import.core.registry import CacheKeys, Increment, RegistryKeys
from bunch_import.framework.config import PluginConfiguration, SubjectConfiguration
from bunch_import.framework.logging import log_step, push_context
from bunch_import.framework.resolvers.base import FileResolver, FileResolverFactory
from bunch_import.framework.subjects.executor import SubjectExecutor

FatalPolicy = Callable[[Exception], bool]


def is_fatal(error: Exception) -> bool:
    """Default policy: only run-level and configuration errors halt the run."""
    return isinstance(error, FatalRunError | ConfigError)


def never_fatal(error: Exception) -> bool:
    return False


def always_fatal(error: Exception) -> bool:
    return True


class PluginState(str, Enum):
    IDLE = "idle"
    ITERATING_SUBJECTS = "iterating_subjects"
    RESOLVING_FILES = "resolving_files"
    LOCKED = "locked"
    EXECUTING = "executing"
    UNLOCKED = "unlocked"
    DONE = "done"


class SubjectPlugin:
    """
    Run every subject of one plugin configuration.

    Example:
        plugin = SubjectPlugin(app, executor, DefaultFileResolverFactory(), plugin_config)
        plugin.process()
        app.registry_processor.get_attribute("status")
        # {'products': {}, 'bunches': 2, 'failed': 0, ...}
    """

    def __init__(
        self,
        application: ApplicationHost,
        subject_executor: SubjectExecutor,
        file_resolver_factory: FileResolverFactory,
        plugin_configuration: PluginConfiguration | None = None,
        *,
        lock_factory: LockFactory | None = None,
        fatal_policy: FatalPolicy = is_fatal,
    ) -> None:
        self.application = application
        self.subject_executor = subject_executor
        self.file_resolver_factory = file_resolver_factory
        self.plugin_configuration = plugin_configuration or PluginConfiguration()
        self.lock_factory = lock_factory or file_lock_factory(owner=application.serial)
        self.fatal_policy = fatal_policy
        self.system_logger = application.system_logger

        self.state = PluginState.IDLE
        self.bunches = 0
        self.failed = 0
        self.fatal_error: Exception | None = None
        self._summaries: dict[str, dict[str, Any]] = {}
        self._errors: list[dict[str, Any]] = []

    @property
    def subjects(self) -> list[SubjectConfiguration]:
        return list(self.plugin_configuration.subjects)

    def _enter(self, state: PluginState) -> None:
        self.state = state
        self.system_logger.debug("plugin.state", state=state.value)

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    def process(self) -> None:
        """Import every file of every subject, then merge the run status."""
        subjects = self.subjects
        registry = self.application.registry_processor

        registry.merge_attributes_recursive(CacheKeys.STATUS, {subject.prefix: {} for subject in subjects})

        token = push_context(plugin=self.plugin_configuration.id)
        try:
            with log_step("plugin.process", subjects=len(subjects)) as timer:
                self._enter(PluginState.ITERATING_SUBJECTS)
                for subject in subjects:
                    self.process_subject(subject)
                    if self.fatal_error is not None:
                        break
                timer.add_metric("bunches", self.bunches)
                timer.add_metric("failed", self.failed)
        finally:
            token.restore()

        registry.merge_attributes_recursive(CacheKeys.STATUS, self.final_status())
        self._enter(PluginState.DONE)

        if self.fatal_error is not None:
            self.application.stop(f"fatal error: {self.fatal_error}")
        elif self.bunches == 0:
            self.application.stop("no files processed")

    def final_status(self) -> dict[str, Any]:
        """Partial status mapping flushed by the final merge."""
        status: dict[str, Any] = {
            RegistryKeys.BUNCHES: Increment(self.bunches),
            RegistryKeys.FAILED: Increment(self.failed),
            RegistryKeys.SERIAL: self.application.serial,
            RegistryKeys.SUBJECTS: self._summaries,
        }
        if self._errors:
            status[RegistryKeys.ERRORS] = self._errors
        return status

    def process_subject(self, subject: SubjectConfiguration) -> None:
        """Resolve and import the files of one subject."""
        summary = self._summaries.setdefault(
            subject.id,
            {"prefix": subject.prefix, "matches": 0, "bunches": 0, "failed": 0, "skipped": 0},
        )
        token = push_context(subject=subject.id)
        self._enter(PluginState.RESOLVING_FILES)
        resolver: FileResolver | None = None
        try:
            try:
                resolver = self.file_resolver_factory.create_file_resolver(subject)
                files = resolver.load_files()
            except Exception as e:
                self._record_failure(subject, None, e, summary)
                return

            summary["matches"] = len(resolver.get_matches())
            self.system_logger.info("plugin.subject.files_resolved", matches=summary["matches"])

            for path in files:
                if not resolver.should_be_handled(path):
                    summary["skipped"] += 1
                    self.system_logger.debug("plugin.file.skipped", path=str(path))
                    continue
                self._process_file(subject, resolver, path, summary)
                if self.fatal_error is not None:
                    break
        finally:
            if resolver is not None:
                self._reset_resolver(resolver)
            token.restore()
            self._enter(PluginState.ITERATING_SUBJECTS)

    def _process_file(
        self,
        subject: SubjectConfiguration,
        resolver: FileResolver,
        path: str | Path,
        summary: dict[str, Any],
    ) -> None:
        lock = self.lock_factory(str(path))
        try:
            lock.acquire()
        except Exception as e:
            self._record_failure(subject, path, e, summary)
            return

        self._enter(PluginState.LOCKED)
        try:
            self._enter(PluginState.EXECUTING)
            self.subject_executor.execute(subject, path)
        except Exception as e:
            self._record_failure(subject, path, e, summary)
        else:
            self.bunches += 1
            summary["bunches"] += 1
            self.system_logger.info("plugin.file.imported", path=str(path))
            self._clean_up_ok_file(resolver, path)
        finally:
            self._release(lock, path)
            self._enter(PluginState.UNLOCKED)

    def _clean_up_ok_file(self, resolver: FileResolver, path: str | Path) -> None:
        # rows are already committed
        try:
            resolver.clean_up_ok_file(path)
        except Exception as e:
            self.system_logger.error(
                "plugin.ok_file.cleanup_failed",
                path=str(path),
                error_type=type(e).__name__,
                error_message=str(e),
            )

    def _release(self, lock: Lock, path: str | Path) -> None:
        try:
            lock.release()
        except Exception as e:
            self.system_logger.error(
                "plugin.lock.release_failed",
                path=str(path),
                error_type=type(e).__name__,
                error_message=str(e),
            )

    def _reset_resolver(self, resolver: FileResolver) -> None:
        try:
            resolver.reset()
        except Exception as e:
            self.system_logger.warning(
                "plugin.resolver.reset_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )

    def _record_failure(
        self,
        subject: SubjectConfiguration,
        path: str | Path | None,
        error: Exception,
        summary: dict[str, Any],
    ) -> None:
        self.failed += 1
        summary["failed"] += 1

        if isinstance(error, BunchImportError):
            details = error.with_context(subject=subject.id, serial=self.application.serial).to_dict()
        else:
            details = {
                "error_type": type(error).__name__,
                "message": str(error),
                "category": categorize_error(error).value,
                "context": {"subject": subject.id},
            }
        if path is not None:
            details.setdefault("context", {})["path"] = str(path)
        self._errors.append(details)

        fatal = self.fatal_policy(error)
        self.system_logger.error(
            "plugin.file.failed",
            path=str(path) if path is not None else None,
            fatal=fatal,
            error_type=details["error_type"],
            error_message=details["message"],
            category=details["category"],
        )
        if fatal:
            self.fatal_error = error


__all__ = [
    "SubjectPlugin",
    "PluginState",
    "FatalPolicy",
    "is_fatal",
    "never_fatal",
    "always_fatal",
]

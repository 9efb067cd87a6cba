"""
Subject executors: import one bunch with one subject.

Manifesto:
    The orchestrator decides *which* file runs and under which lock; the
    executor decides *how* it is read.  The CSV executor reads the file,
    sends every row through the subject's pipeline, hands surviving rows
    to the persistence processor and commits once per file.  A file
    either commits completely or rolls back.

Per-row flow::

    csv row ─▶ validate_row ─▶ import_row ─▶ persist ─▶ after_persist
                   │               │
                   └── None ───────┴──▶ rows_skipped
    RowError ─▶ SKIP: rows_failed, continue │ ABORT: ExecutionError (file fails)

Tags:
    bunch-import, executor, csv, subject, persistence

Doc-Types:
    api-reference
"""

from __future__ import annotations

import csv
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from bunch_import.core.errors import ExecutionError, RowError, SourceFileError
from bunch_import.core.protocols import RegistryProcessor
from bunch_import.core.settings import RowErrorPolicy, SubjectLifecycle
from bunch_import.framework.callbacks import ObserverFactory
from bunch_import.framework.config import SubjectConfiguration
from bunch_import.framework.logging import get_logger, log_step, push_context
from bunch_import.framework.observers.registry import create_observer
from bunch_import.framework.processors import RowProcessor
from bunch_import.framework.subjects.base import Subject

logger = get_logger(__name__)


@dataclass
class ExecutionResult:
    """Row counters for one executed file."""

    path: str
    uid: str
    rows_read: int = 0
    rows_imported: int = 0
    rows_skipped: int = 0
    rows_failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class SubjectExecutor(Protocol):
    """Executes one subject configuration against one source file."""

    def execute(self, subject: SubjectConfiguration, path: str | Path) -> Any:
        """Import ``path``; raise to report the file as failed."""
        ...


class CsvSubjectExecutor:
    """
    Import delimited text files through a :class:`Subject`.

    Args:
        registry_processor: Run-status registry handed to subjects
        processor: Persistence processor rows are written to
        serial: Run serial the subjects belong to
        lifecycle: Build a subject per file or reuse one per run
        row_error_policy: Skip failing rows or fail the whole file
        observer_factory: Factory subjects use to create handlers

    Example:
        executor = CsvSubjectExecutor(registry, processor, serial=app.serial)
        result = executor.execute(subject_config, "/data/products_20240101_01.csv")
        result.rows_imported  # 42
    """

    def __init__(
        self,
        registry_processor: RegistryProcessor,
        processor: RowProcessor,
        *,
        serial: str,
        lifecycle: SubjectLifecycle = SubjectLifecycle.PER_FILE,
        row_error_policy: RowErrorPolicy = RowErrorPolicy.SKIP,
        observer_factory: ObserverFactory = create_observer,
    ) -> None:
        self.registry_processor = registry_processor
        self.processor = processor
        self.serial = serial
        self.lifecycle = SubjectLifecycle(lifecycle)
        self.row_error_policy = RowErrorPolicy(row_error_policy)
        self.observer_factory = observer_factory
        self._subjects: dict[str, Subject] = {}

    # ------------------------------------------------------------------ #
    # Subjects
    # ------------------------------------------------------------------ #

    def create_subject(self, configuration: SubjectConfiguration) -> Subject:
        subject = Subject(
            configuration,
            serial=self.serial,
            registry_processor=self.registry_processor,
            processor=self.processor,
            observer_factory=self.observer_factory,
        )
        subject.set_up()
        return subject

    def subject_for(self, configuration: SubjectConfiguration) -> Subject:
        """Return a set-up subject according to the lifecycle policy."""
        if self.lifecycle is SubjectLifecycle.PER_FILE:
            return self.create_subject(configuration)
        subject = self._subjects.get(configuration.id)
        if subject is None:
            subject = self._subjects[configuration.id] = self.create_subject(configuration)
        return subject

    def make_uid(self, path: Path) -> str:
        """Deterministic per-file identifier within this run."""
        return uuid.uuid5(uuid.NAMESPACE_URL, f"{self.serial}:{path.resolve()}").hex

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def execute(self, subject: SubjectConfiguration, path: str | Path) -> ExecutionResult:
        """
        Import ``path`` with the subject built from ``subject``.

        Raises:
            SourceFileError: File missing, unreadable or without header
            ExecutionError: A row failed under ``RowErrorPolicy.ABORT``
            UnknownHandlerError: The subject's callbacks name an unknown kind
        """
        path = Path(path)
        instance = self.subject_for(subject)
        instance.uid = self.make_uid(path)
        result = ExecutionResult(path=str(path), uid=instance.uid)

        token = push_context(subject=subject.id, uid=instance.uid, path=str(path))
        try:
            with log_step("subject.execute", file=path.name) as timer:
                self._import_file(instance, path, result)
                self.processor.commit()
                timer.add_metric("rows_read", result.rows_read)
                timer.add_metric("rows_imported", result.rows_imported)
                timer.add_metric("rows_skipped", result.rows_skipped)
                timer.add_metric("rows_failed", result.rows_failed)
        except Exception:
            self.processor.rollback()
            raise
        finally:
            instance.tear_down()
            token.restore()
        return result

    def _import_file(self, subject: Subject, path: Path, result: ExecutionResult) -> None:
        configuration = subject.configuration
        try:
            with path.open(newline="", encoding=configuration.encoding) as handle:
                reader = csv.DictReader(handle, delimiter=configuration.delimiter)
                if reader.fieldnames is None:
                    raise SourceFileError(f"{path.name} has no header line").with_context(
                        subject=configuration.id, path=str(path)
                    )
                for row in reader:
                    result.rows_read += 1
                    self._import_row(subject, dict(row), reader.line_num, result)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise SourceFileError(f"Can't read {path.name}: {e}", cause=e).with_context(
                subject=configuration.id, path=str(path), uid=subject.uid
            ) from e

    def _import_row(self, subject: Subject, row: dict[str, Any], line: int, result: ExecutionResult) -> None:
        try:
            validated = subject.validate_row(row)
            imported = subject.import_row(validated) if validated is not None else None
        except RowError as e:
            e.with_context(subject=subject.configuration.id, uid=subject.uid, line=line)
            if self.row_error_policy is RowErrorPolicy.ABORT:
                raise ExecutionError(f"Row {line} failed: {e.message}", cause=e).with_context(
                    subject=subject.configuration.id, uid=subject.uid, path=result.path, line=line
                ) from e
            result.rows_failed += 1
            subject.system_logger.warning("subject.row_failed", **e.to_dict())
            return

        if imported is None:
            result.rows_skipped += 1
            return

        self.processor.persist(subject, imported, line)
        subject.after_persist(imported)
        result.rows_imported += 1


__all__ = ["ExecutionResult", "SubjectExecutor", "CsvSubjectExecutor"]

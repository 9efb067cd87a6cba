"""Built-in observers shipped with the framework.

Row-import observers return a new row and never mutate their input, so
``Subject.import_row`` stays a pure function of the registry and the row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bunch_import.core.errors import RowValidationError
from bunch_import.framework.observers.base import Capability, Observer, Row

if TYPE_CHECKING:
    from bunch_import.framework.subjects.base import Subject


class StripObserver(Observer):
    """Strip surrounding whitespace from string values."""

    description = "Strip surrounding whitespace from string values"

    def handle(self, row: Row) -> Row:
        return {key: value.strip() if isinstance(value, str) else value for key, value in row.items()}


class EmptyToNoneObserver(Observer):
    """Turn empty strings into ``None``."""

    description = "Convert empty strings to null"

    def handle(self, row: Row) -> Row:
        return {key: None if value == "" else value for key, value in row.items()}


class LowercaseColumnsObserver(Observer):
    description = "Lowercase column names"

    def handle(self, row: Row) -> Row:
        return {str(key).lower(): value for key, value in row.items()}


class SkipEmptyRowObserver(Observer):
    """Skip rows in which every value is empty."""

    description = "Skip rows without any non-empty value"

    def handle(self, row: Row) -> Row | None:
        if all(value is None or (isinstance(value, str) and not value.strip()) for value in row.values()):
            return None
        return dict(row)


class SourceMetadataObserver(Observer):
    """Append the run serial and the file uid to each row."""

    description = "Add _serial and _uid columns"

    def handle(self, row: Row) -> Row:
        return {**row, "_serial": self.subject.serial, "_uid": self.subject.uid}


class RequiredColumnsObserver(Observer):
    """Reject rows missing a value for any column in ``params.required_columns``."""

    description = "Reject rows with missing required columns"
    capabilities = frozenset({Capability.PRE_VALIDATION})

    def __init__(self, subject: Subject) -> None:
        super().__init__(subject)
        self.required_columns: tuple[str, ...] = tuple(
            subject.configuration.params.get("required_columns", ())
        )

    def handle(self, row: Row) -> Row:
        for column in self.required_columns:
            value = row.get(column)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise RowValidationError(
                    f"Missing value for required column {column!r}",
                    column=column,
                    value=value,
                ).with_context(subject=self.subject.configuration.id, uid=self.subject.uid)
        return row


class PersistedCounterObserver(Observer):
    """Count rows written by the persistence processor."""

    description = "Count persisted rows on the subject"
    capabilities = frozenset({Capability.POST_PERSIST})

    def handle(self, row: Row) -> Row:
        self.subject.counters["rows_persisted"] += 1
        return row


BUILTIN_OBSERVERS: dict[str, type[Observer]] = {
    "strip": StripObserver,
    "empty-to-none": EmptyToNoneObserver,
    "lowercase-columns": LowercaseColumnsObserver,
    "skip-empty": SkipEmptyRowObserver,
    "source-metadata": SourceMetadataObserver,
    "required-columns": RequiredColumnsObserver,
    "persisted-counter": PersistedCounterObserver,
}

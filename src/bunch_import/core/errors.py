"""
Structured error types for the bunch import pipeline.

Manifesto:
    Errors are recovered at the narrowest scope that can make a
    continuation decision.  Handlers never decide whether an import
    continues; the executor decides about rows, the orchestrator decides
    about files and runs.  Every error therefore carries enough metadata
    (category, subject, serial, uid, path) for the deciding layer to log
    it and classify it without re-parsing messages.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     BunchImportError                         │
        │              (category, context, cause)                      │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError          RowError            ExecutionError     │
        │  (CONFIG)             (VALIDATION)        (PIPELINE)         │
        │     │                    │                                   │
        │  CallbackConfigError  RowValidationError  FatalRunError      │
        │  UnknownHandlerError                      (ORCHESTRATION)    │
        │  ConfigurationLoadError                                      │
        │                                                              │
        │  SubjectStateError    LockError                              │
        │  (INTERNAL)           (STORAGE)                              │
        │                          │                                   │
        │                       LockTimeoutError                       │
        └─────────────────────────────────────────────────────────────┘

    Propagation:
        handler ──raise──▶ Subject.import_row ──▶ executor (row policy)
                                                     │
                                 ExecutionError ◀────┘
                                       │
                                       ▼
                             SubjectPlugin (fatal policy)

Tags:
    bunch-import, error-handling, exception-hierarchy, error-context

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    STORAGE = "STORAGE"  # Lock artifacts, ok markers, disk
    DATABASE = "DATABASE"  # Persistence processor
    SOURCE = "SOURCE"  # Source file missing or unreadable
    PARSE = "PARSE"  # Malformed delimited data
    VALIDATION = "VALIDATION"  # Row rejected by a handler
    CONFIG = "CONFIG"  # Callback tree, handler kinds, settings
    PIPELINE = "PIPELINE"  # File-level execution failures
    ORCHESTRATION = "ORCHESTRATION"  # Run-level failures
    INTERNAL = "INTERNAL"  # Lifecycle misuse, bugs
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        subject: Subject id the error occurred in
        serial: Run serial
        uid: Per-file identifier
        path: Source file path
        handler_type: Dispatch type of the failing handler
        line: Line number inside the source file
        metadata: Additional key-value pairs
    """

    subject: str | None = None
    serial: str | None = None
    uid: str | None = None
    path: str | None = None
    handler_type: str | None = None
    line: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["subject", "serial", "uid", "path", "handler_type", "line"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BunchImportError(Exception):
    """
    Base exception for all bunch import errors.

    Subclasses set ``default_category``; every instance carries an
    :class:`ErrorContext` and an optional chained ``cause``.

    Examples:
        >>> error = BunchImportError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = ExecutionError("Can't import file").with_context(path="/tmp/a.csv")
        >>> error.context.path
        '/tmp/a.csv'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BunchImportError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ExecutionError("Failed").with_context(subject="products", path=path)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BunchImportError):
    """
    Configuration error.

    Raised at load or subject set-up time, before any row is processed.
    """

    default_category = ErrorCategory.CONFIG


class CallbackConfigError(ConfigError):
    """Callback tree is malformed."""

    def __init__(self, message: str, *, key_path: tuple[str, ...] = (), **kwargs: Any):
        super().__init__(message, **kwargs)
        self.key_path = key_path


class UnknownHandlerError(ConfigError):
    """Handler kind is not present in the observer registry."""

    def __init__(self, kind: str, available: list[str] | None = None):
        self.kind = kind
        self.available = available or []
        message = f"Unknown handler kind: {kind!r}"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class ConfigurationLoadError(ConfigError):
    """Configuration file could not be read or validated."""

    def __init__(self, path: str, message: str, **kwargs: Any):
        self.path = path
        super().__init__(f"{path}: {message}", **kwargs)


# =============================================================================
# SUBJECT / ROW ERRORS
# =============================================================================


class SubjectStateError(BunchImportError):
    """Subject lifecycle was used out of order (e.g. import before set-up)."""

    default_category = ErrorCategory.INTERNAL


class RowError(BunchImportError):
    """
    Row-level error raised by a handler.

    Never caught by the row pipeline; the executor applies its row policy.
    """

    default_category = ErrorCategory.VALIDATION


class RowValidationError(RowError):
    """Row failed a pre-validation handler."""

    def __init__(self, message: str, *, column: str | None = None, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.column = column
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.column:
            result["column"] = self.column
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


# =============================================================================
# EXECUTION / ORCHESTRATION ERRORS
# =============================================================================


class ExecutionError(BunchImportError):
    """File-level execution failure raised by a subject executor."""

    default_category = ErrorCategory.PIPELINE


class SourceFileError(ExecutionError):
    """Source file is missing, unreadable or has no header."""

    default_category = ErrorCategory.SOURCE


class FatalRunError(BunchImportError):
    """Failure that must halt the whole orchestration run."""

    default_category = ErrorCategory.ORCHESTRATION


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class LockError(BunchImportError):
    """Lock artifact could not be created or removed."""

    default_category = ErrorCategory.STORAGE


class LockTimeoutError(LockError):
    """Lock was not acquired within the configured timeout."""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock {lock_path}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, BunchImportError):
        return error.category
    if isinstance(error, UnicodeDecodeError):
        return ErrorCategory.PARSE
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BunchImportError",
    "ConfigError",
    "CallbackConfigError",
    "UnknownHandlerError",
    "ConfigurationLoadError",
    "SubjectStateError",
    "RowError",
    "RowValidationError",
    "ExecutionError",
    "SourceFileError",
    "FatalRunError",
    "LockError",
    "LockTimeoutError",
    "categorize_error",
]

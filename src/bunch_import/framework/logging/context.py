"""
Logging context management using contextvars.

Run-level identifiers (serial, subject, uid, path) are attached to every
log entry without passing them through each call.  The orchestrator sets
the serial once per run, then pushes subject and file scoped values as it
descends; the pushed values are restored when each scope ends.

Design choice: contextvars
- Thread-safe, so concurrent runs in worker threads keep separate context
- Clean integration with structlog processors
"""

from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any

import structlog


@dataclass
class LogContext:
    """
    Execution context attached to all log entries.

    Run identifiers:
        serial: Unique run serial
        operation: Operation name from the configuration (e.g. "add-update")

    Scope:
        plugin: Plugin id currently processing
        subject: Subject id currently processing
        uid: Per-file identifier
        path: Source file being processed

    Tracing:
        step: Current step name
        span_id: Current span identifier
        parent_span_id: Parent span for nested steps
    """

    serial: str | None = None
    operation: str | None = None

    plugin: str | None = None
    subject: str | None = None
    uid: str | None = None
    path: str | None = None

    step: str | None = None
    span_id: str | None = None
    parent_span_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None and k in current})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token):
        self._token = token

    def restore(self):
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(subject="products", path=path)
        try:
            execute()
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    token = _log_context.set(updated)
    return _ContextToken(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds execution context to every log entry.

    Explicit event keys win over context keys.
    """
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)

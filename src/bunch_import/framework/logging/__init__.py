"""
Structured, run-aware logging for the import framework.

Usage:
    from bunch_import.framework.logging import configure_logging, get_logger, log_step

    configure_logging()
    log = get_logger(__name__)

    token = push_context(serial=application.serial)

    with log_step("subject.execute", path=path):
        executor.execute(subject, path)
"""

from bunch_import.framework.logging.config import configure_logging
from bunch_import.framework.logging.context import (
    LogContext,
    clear_context,
    get_context,
    get_logger,
    push_context,
)
from bunch_import.framework.logging.timing import TimingResult, log_step

__all__ = [
    "configure_logging",
    "get_logger",
    "clear_context",
    "get_context",
    "push_context",
    "LogContext",
    "log_step",
    "TimingResult",
]

"""
Logging configuration.

Provides a single entry point for configuring structured logging.

Configuration is read from arguments first, then environment variables:
- BUNCH_IMPORT_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- BUNCH_IMPORT_LOG_FORMAT: json | console (default: console)

Usage:
    from bunch_import.framework.logging import configure_logging
    configure_logging()

    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from bunch_import.framework.logging.context import add_context_processor

_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | str | None = None,
    format: Literal["json", "console"] | str | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at application startup (CLI entry, worker startup).
    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides BUNCH_IMPORT_LOG_LEVEL)
        format: Output format (overrides BUNCH_IMPORT_LOG_FORMAT)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("BUNCH_IMPORT_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("BUNCH_IMPORT_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("bunch_import").setLevel(getattr(logging, log_level))

    _configured = True


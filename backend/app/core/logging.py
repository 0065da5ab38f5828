"""
Structured logging configuration using structlog.

JSON lines in production, colored console output in development.
Report generation binds its window to the context so every event emitted
while a report is being built carries the same report_start/report_end keys.
"""
import logging
import sys
from datetime import datetime
from typing import Any

import structlog


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON format (for production).
                     If False, output human-readable format (for development).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    # SQL echo is noise in report logs unless explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if log_level.upper() == "DEBUG" else logging.WARNING
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__ of the module)
    """
    return structlog.get_logger(name)


def bind_report_window(start: datetime, end: datetime) -> None:
    """Attach the report window to all log events of the current task."""
    structlog.contextvars.bind_contextvars(
        report_start=start.isoformat(),
        report_end=end.isoformat(),
    )


def clear_report_window() -> None:
    structlog.contextvars.unbind_contextvars("report_start", "report_end")

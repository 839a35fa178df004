"""
Structured logging setup using structlog.

Logs go to stderr; stdout is kept for command output.
"""

from __future__ import annotations

import logging
import sys

import structlog

__all__ = [
    "LOG_FORMATS",
    "setup_logging",
]

LOG_FORMATS = ("console", "json")


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """
    Configure structlog for a CLI run.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        fmt: ``console`` for human output, ``json`` for one object per line
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


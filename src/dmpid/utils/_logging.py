"""Logging utilities for the DMP ID registry.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted logs to a file or to stderr. Each logger is
self-contained and does not modify global structlog configuration.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TextIO, cast

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level string to a logging level integer.

    Args:
        level: Log level string (debug, info, warning, error).
        respect_env: If True, DMPID_DEBUG overrides to DEBUG level.

    Returns:
        The logging level as an integer.
    """
    if respect_env and getenv("DMPID_DEBUG", None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(level.upper(), logging.INFO)


def _create_logger(
    log_file_path: str | None,
    *,
    log_level: int = logging.INFO,
    log_format: LogFormatType = "json",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    stream: TextIO | None = None,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a standalone structlog logger.

    Args:
        log_file_path: Path to the log file (opened in append mode), or None
            to write to ``stream``.
        log_level: Minimum level that is emitted.
        log_format: Output format, either "json" or "text".
        max_bytes: Maximum size in bytes before rotation. Must be set with
            backup_count for rotation to be enabled.
        backup_count: Number of rotated log files to keep. Must be set with
            max_bytes for rotation to be enabled.
        stream: Stream used when no file is given (defaults to stderr).

    Returns:
        A configured FilteringBoundLogger instance.
    """
    # Use stdlib logger with RotatingFileHandler when both max_bytes and backup_count
    # are provided, otherwise use direct writing
    raw_logger: object
    if log_file_path and max_bytes is not None and backup_count is not None:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        stdlib_logger = logging.getLogger(f"dmpid.{log_path.stem}.{id(log_path)}")
        stdlib_logger.handlers.clear()
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(log_level)

        handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        handler.setLevel(log_level)
        # structlog renders the message; the handler only writes it
        handler.setFormatter(logging.Formatter("%(message)s"))
        stdlib_logger.addHandler(handler)
        raw_logger = stdlib_logger
    elif log_file_path:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        raw_logger = structlog.WriteLoggerFactory(file=log_path.open("a"))()
    else:
        raw_logger = structlog.WriteLoggerFactory(
            file=stream if stream is not None else sys.stderr
        )()

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Text format: "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            raw_logger,
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
        ),
    )


def create_registry_logger(
    *,
    level: str = "info",
    log_format: LogFormatType = "json",
    log_file: str = "",
    component: str = "",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    stream: TextIO | None = None,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a logger for registry components.

    Writes to ``log_file`` when set, otherwise to ``stream`` (stderr by
    default). The DMPID_DEBUG environment variable forces DEBUG level.

    Args:
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (empty writes to the stream).
        component: Name bound to every entry as ``component``.
        max_bytes: Maximum log file size before rotation.
        backup_count: Number of rotated log files to keep.
        stream: Output stream used when no file is configured.

    Returns:
        A FilteringBoundLogger instance.
    """
    logger = _create_logger(
        log_file or None,
        log_level=_log_level_from_string(level, respect_env=True),
        log_format=log_format,
        max_bytes=max_bytes,
        backup_count=backup_count,
        stream=stream,
    )

    if component:
        return logger.bind(component=component)
    return logger

"""Structured logging infrastructure with correlation ID tracking.

This module configures logging for the realtime client: console output,
an optional log file, correlation IDs carried in a ContextVar so every
line emitted during one connection attempt can be grouped, and a filter
that strips bearer tokens before anything is written.
"""

import contextvars
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Final, override

from docsynth_realtime.utils.sanitization import (
    sanitize_args,
    sanitize_text,
    sanitize_value,
)

# Correlation ID context variable, inherited by asyncio tasks created in the same context
correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

# Attributes every LogRecord carries; anything else arrived through extra={}
_STANDARD_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "asctime",
        "correlation_id",
    }
)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds the current correlation ID to log records."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = correlation_id_var.get()
        record.correlation_id = correlation_id if correlation_id is not None else "N/A"
        return True


class SecretRedactingFilter(logging.Filter):
    """Logging filter that redacts tokens from log messages.

    Sanitizes the message text, the ``%`` formatting arguments and any
    fields passed through ``extra``. The WebSocket URL embeds the bearer
    token as a query parameter, so without this filter a single
    ``logger.debug("Opening %s", url)`` would leak it.
    """

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = sanitize_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = sanitize_args(record.args)

        for attr_name in list(record.__dict__.keys()):
            if attr_name in _STANDARD_RECORD_ATTRS or attr_name.startswith("_"):
                continue
            attr_value: object = getattr(record, attr_name)  # pyright: ignore[reportAny]
            setattr(record, attr_name, sanitize_value(attr_value, field_name=attr_name))

        return True


def configure_logging(
    *,
    log_level: str = "INFO",
    log_file: Path | None = None,
    enable_console: bool = True,
) -> None:
    """Configure application logging.

    Sets up:
    - Correlation ID tracking via ContextVar
    - Console output on stderr
    - Optional file output
    - Secret redaction on every handler

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path of a log file to append to
        enable_console: Enable console output handler

    Example:
        >>> configure_logging(log_level="DEBUG")
        >>> set_correlation_id("conn-1")
        >>> logging.getLogger(__name__).info("Connected", extra={"channel": "job:42"})
    """
    root_logger = logging.getLogger()
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    correlation_filter = CorrelationIDFilter()
    secret_filter = SecretRedactingFilter()
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)

    handlers: list[logging.Handler] = []
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            print(f"Warning: Could not open log file {log_file}: {exc}", file=sys.stderr)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        handler.addFilter(secret_filter)
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified module.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: Unique identifier for correlation (e.g., a connection attempt id)
    """
    _ = correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID from the current context."""
    _ = correlation_id_var.set(None)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    extra: Mapping[str, object] | None = None,
) -> None:
    """Log a message with additional context fields.

    Args:
        logger: Logger instance to use
        level: Logging level (e.g., logging.INFO)
        message: Log message
        extra: Additional context fields to include in log

    Example:
        >>> log_with_context(
        ...     get_logger(__name__),
        ...     logging.INFO,
        ...     "Subscribed to channel",
        ...     extra={"channel": "job:42"},
        ... )
    """
    context = dict(extra) if extra else {}

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    logger.log(level, message, extra=context)

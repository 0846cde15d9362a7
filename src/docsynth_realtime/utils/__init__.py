"""Shared utilities: REST client, logging and secret sanitization."""

from docsynth_realtime.utils.http_client import (
    AIOHTTPApiClient,
    ApiError,
    AuthenticationRequiredError,
    unwrap_data,
)
from docsynth_realtime.utils.logging import configure_logging, get_logger, log_with_context
from docsynth_realtime.utils.sanitization import sanitize_exception, sanitize_text, sanitize_value

__all__ = [
    "AIOHTTPApiClient",
    "ApiError",
    "AuthenticationRequiredError",
    "configure_logging",
    "get_logger",
    "log_with_context",
    "sanitize_exception",
    "sanitize_text",
    "sanitize_value",
    "unwrap_data",
]

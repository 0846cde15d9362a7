"""Secret sanitization utilities for logging and error messages.

This module removes bearer tokens from strings, URLs and structured data
before they are logged or surfaced through a connection ``error`` field.
The WebSocket endpoint carries the token in its query string, so every URL
that reaches a log line must pass through here first.

Examples:
    >>> sanitize_url("wss://api.example.com/ws?token=eyJhbGciOi.abc.def")
    'wss://api.example.com/ws?token=<REDACTED>'

    >>> sanitize_text("Authorization: Bearer abc123")
    'Authorization: Bearer <REDACTED>'

    >>> sanitize_value({"token": "secret", "count": 42})
    {'token': '<REDACTED>', 'count': 42}
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TypeIs

# Redaction marker for sanitized values
REDACTED = "<REDACTED>"

# Tokens passed as query parameters (the WebSocket handshake uses ?token=)
_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|access[-_]?token|api[-_]?key|auth|secret)=)([^&#\s]+)",
    re.IGNORECASE,
)

# Authorization header values
_BEARER_TOKEN = re.compile(r"(\bBearer\s+)([^\s,;\"']+)", re.IGNORECASE)

# Three base64url segments separated by dots
_JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r"^authorization$",
        r".*api[-_]?key.*",
    ]
]


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check (e.g., "auth_token", "password")

    Returns:
        True if the field name matches sensitive patterns

    Examples:
        >>> is_sensitive_field("auth_token")
        True
        >>> is_sensitive_field("channel")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def sanitize_url(url: str) -> str:
    """Sanitize token query parameters from a URL while preserving structure.

    Args:
        url: The URL to sanitize

    Returns:
        URL with token values replaced by the REDACTED marker
    """
    if not url:
        return url
    return _TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", url)


def sanitize_text(text: str) -> str:
    """Sanitize free text (log messages, exception messages).

    Applies URL query redaction, bearer header redaction and JWT detection.

    Args:
        text: Text that may contain secrets

    Returns:
        Sanitized text
    """
    if not text:
        return text
    sanitized = sanitize_url(text)
    sanitized = _BEARER_TOKEN.sub(rf"\1{REDACTED}", sanitized)
    return _JWT_PATTERN.sub(REDACTED, sanitized)


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by the REDACTED marker

    Examples:
        >>> sanitize_value(["wss://h/ws?token=abc", "ok"])
        ['wss://h/ws?token=<REDACTED>', 'ok']
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_text(value)
        return value

    if _is_mapping(value):
        return {key: sanitize_value(val, field_name=str(key)) for key, val in value.items()}

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Unknown objects are rendered to text before sanitizing
    return sanitize_text(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Args:
        exc: The exception to sanitize

    Returns:
        Sanitized ``Type: message`` string safe for logging and display

    Examples:
        >>> sanitize_exception(OSError("cannot reach wss://h/ws?token=abc"))
        'OSError: cannot reach wss://h/ws?token=<REDACTED>'
    """
    exc_type = type(exc).__name__
    return f"{exc_type}: {sanitize_text(str(exc))}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments.

    Args:
        args: Tuple of arguments to sanitize

    Returns:
        Tuple with sanitized arguments
    """
    return tuple(sanitize_value(arg) for arg in args)

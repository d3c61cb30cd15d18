"""Error taxonomy and sanitization utilities."""

from __future__ import annotations

import re
from typing import Any


class ExternalError(Exception):
    """Base class for classified errors raised by external collaborators."""


class NotFoundError(ExternalError):
    """The requested external object does not exist."""


class TransientError(ExternalError):
    """A retryable failure: timeout, connection error, rate limit or 5xx."""


class ConflictError(TransientError):
    """An optimistic-concurrency write lost against a newer resourceVersion."""


class PermanentError(ExternalError):
    """A failure that will repeat until the declared spec is corrected."""


class ConfigurationError(Exception):
    """The declared spec is invalid or tries to change an immutable field.

    Args:
        message: Human-readable description
        reason: Machine-readable condition reason
    """

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


def classify_status_code(status: int | None) -> type[ExternalError]:
    """Map an HTTP status code to an error class.

    Unknown status (no response at all) is treated as transient.
    """
    if status is None:
        return TransientError
    if status == 404:
        return NotFoundError
    if status == 409:
        return ConflictError
    if status == 429 or status >= 500:
        return TransientError
    if 400 <= status < 500:
        return PermanentError
    return TransientError


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"api[_\s\-]?key[:\s]+(EXO[a-zA-Z0-9]+)",
    r"api[_\s\-]?secret[:\s]+([A-Za-z0-9_\-]+)",
    r"access[_\s]?key[_\s]?id[:\s]+([A-Za-z0-9]{20,})",
    r"secret[_\s]?access[_\s]?key[:\s]+([A-Za-z0-9/+=_\-]{20,})",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "access_key_id",
    "secret_access_key",
    "api_key",
    "api_secret",
    "password",
    "secret",
    "credentials",
    "token",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=\s]+([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized

"""Secret redaction for logs and error payloads.

Upstream credentials travel through this service on every proxied call, so
anything that reaches a log sink or an error envelope is scrubbed first.
Two complementary checks are applied:

- **Key-based**: values stored under secret-like field names or sensitive
  HTTP headers are replaced wholesale.
- **Value-based**: free text is scanned for bearer tokens, API keys passed as
  query parameters or ``key=value`` pairs, and long opaque tokens, which are
  masked in place.

Original data is never modified; every helper returns a sanitized copy.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

type SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "x-csrf-token",
    "set-cookie",
    "x-secret-key",
    "proxy-authorization",
}

DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|pwd|secret|token|api[_-]?key|apikey|auth|authorization|"
    r"credential|private[_-]?key|access[_-]?key|secret[_-]?key|session|"
    r"seed|mnemonic|signature[_-]?key)",
    re.IGNORECASE,
)

_BEARER_PATTERN: Final[Pattern[str]] = re.compile(
    r"(?i)\b(bearer)\s+[A-Za-z0-9._~+/=-]+"
)
_KEY_VALUE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|apikey|x-api-key|access[_-]?token|token|secret|password)"
    r"(\s*[=:]\s*|\"\s*:\s*\")([^\s&\"',;]+)"
)
# Base58 addresses are 32-44 chars and stay readable in logs, so only
# strings longer than that are treated as opaque secrets.
_OPAQUE_TOKEN_PATTERN: Final[Pattern[str]] = re.compile(
    r"\b[A-Za-z0-9_\-]{48,}={0,2}"
)

# Maximum depth for nested structure sanitization
MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> list[str]:
    """Get the configured sensitive fields from settings."""
    return get_settings().log_config.sensitive_fields


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Checks against both the default regex pattern and the
    configured sensitive fields list.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True if the field appears to contain sensitive data.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    field_lower = field_name.lower()
    return any(
        sensitive_field.lower() in field_lower
        for sensitive_field in _get_sensitive_fields()
    )


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive (case-insensitive)."""
    return header_name.lower() in SENSITIVE_HEADERS


def redact_secrets(text: str) -> str:
    """Mask credential-like substrings inside free text.

    Args:
        text: Any string, typically a log message or exception text.

    Returns:
        str: The text with bearer tokens, keyed secrets and long opaque
            tokens replaced by ``[REDACTED]``.

    Examples:
        >>> redact_secrets("GET /v1?api-key=abc123 failed")
        'GET /v1?api-key=[REDACTED] failed'
        >>> redact_secrets("Authorization: Bearer eyJhbGciOi")
        'Authorization: Bearer [REDACTED]'
    """
    if not text:
        return text
    text = _BEARER_PATTERN.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    text = _KEY_VALUE_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text
    )
    return _OPAQUE_TOKEN_PATTERN.sub(REDACTED, text)


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Sanitize a value if it appears to be sensitive.

    This function recursively sanitizes nested structures (dicts and lists)
    up to MAX_DEPTH to prevent infinite recursion. Strings are additionally
    scanned for credential-like substrings.

    Args:
        value: The value to potentially sanitize.
        field_name: The field name for context.
        depth: Current recursion depth.

    Returns:
        SanitizableValue: Sanitized value or original if not sensitive.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if isinstance(value, str):
        return redact_secrets(value)

    if isinstance(value, dict):
        return {k: sanitize_value(v, str(k), depth + 1) for k, v in value.items()}

    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]

    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize a dictionary by redacting sensitive fields and values."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Sanitize HTTP headers.

    Args:
        headers: Headers dictionary.

    Returns:
        dict[str, str]: Sanitized headers.
    """
    return {k: REDACTED if is_sensitive_header(k) else v for k, v in headers.items()}


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Create sanitized error context for logging.

    Args:
        error: The exception to create context for.
        context: Additional context to include (will be sanitized).

    Returns:
        dict[str, Any]: Sanitized error context safe for logging.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": redact_secrets(str(error)),
    }

    if context:
        error_context.update(sanitize_dict(context))

    if hasattr(error, "__dict__"):
        error_attrs = {
            k: v
            for k, v in error.__dict__.items()
            if not k.startswith("_") and k not in {"stack_trace", "cause"}
        }
        if error_attrs:
            error_context["error_attributes"] = sanitize_dict(error_attrs)

    return error_context

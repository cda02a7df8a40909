"""Per-field sanitizers for client-submitted values.

Each sanitizer is a small pure function that returns the cleaned value or
``None`` when the input cannot be made to conform. Schemas in
``src.security.schemas`` wrap them as pydantic validators.

String cleaning always runs in the same order: trim, strip control
characters, then NFKC-normalize. Normalization runs last so that composed
forms cannot reintroduce characters that were already stripped.
"""

import math
import re
import unicodedata
from typing import Final

from src.core.config import SSRFConfig
from src.core.constants import (
    PUBKEY_MAX_LENGTH,
    PUBKEY_MIN_LENGTH,
    SIGNATURE_MAX_LENGTH,
    SIGNATURE_MIN_LENGTH,
)
from src.security.ssrf import SSRFDecision, SSRFGuard

CONTROL_CHARS: Final = re.compile(r"[\x00-\x1f\x7f]")
PUBKEY_PATTERN: Final = re.compile(
    rf"^[1-9A-HJ-NP-Za-km-z]{{{PUBKEY_MIN_LENGTH},{PUBKEY_MAX_LENGTH}}}$"
)
SIGNATURE_PATTERN: Final = re.compile(
    rf"^[1-9A-HJ-NP-Za-km-z]{{{SIGNATURE_MIN_LENGTH},{SIGNATURE_MAX_LENGTH}}}$"
)
TWITTER_HANDLE_PATTERN: Final = re.compile(r"^[A-Za-z0-9_]{1,15}$")

DEFAULT_MAX_LENGTH: Final[int] = 500


def sanitize_string(
    value: object,
    max_length: int = DEFAULT_MAX_LENGTH,
    *,
    allow_empty: bool = False,
) -> str | None:
    """Trim, strip control characters and NFKC-normalize a string.

    Args:
        value: Candidate value; non-strings are rejected.
        max_length: Maximum length, checked on the trimmed input and again
            on the normalized result.
        allow_empty: Whether an empty result is acceptable.

    Returns:
        str | None: The cleaned string, or None on rejection.

    Examples:
        >>> sanitize_string("  Shield\\x00 Token ")
        'Shield Token'
        >>> sanitize_string("   ") is None
        True
    """
    if not isinstance(value, str):
        return None

    trimmed = value.strip()
    if not trimmed and not allow_empty:
        return None
    if len(trimmed) > max_length:
        return None

    cleaned = unicodedata.normalize("NFKC", CONTROL_CHARS.sub("", trimmed))
    if not cleaned and not allow_empty:
        return None
    # Compatibility characters can expand under NFKC
    if len(cleaned) > max_length:
        return None
    return cleaned


def validate_pubkey(value: object) -> str | None:
    """Return the trimmed base58 public key, or None if it is not one.

    Valid keys are 32 to 44 characters of the base58 alphabet, which
    excludes ``0``, ``O``, ``I`` and ``l``.

    Examples:
        >>> validate_pubkey(" So11111111111111111111111111111111111111112 ")
        'So11111111111111111111111111111111111111112'
        >>> validate_pubkey("0OIl" * 10) is None
        True
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    return candidate if PUBKEY_PATTERN.match(candidate) else None


def sanitize_pubkey(value: object) -> str | None:
    """Sanitize a string, then require it to be a base58 public key."""
    cleaned = sanitize_string(value, PUBKEY_MAX_LENGTH)
    return validate_pubkey(cleaned) if cleaned else None


def sanitize_signature(value: object) -> str | None:
    """Sanitize a base58 transaction signature (86 to 90 characters)."""
    cleaned = sanitize_string(value, SIGNATURE_MAX_LENGTH)
    if cleaned and SIGNATURE_PATTERN.match(cleaned):
        return cleaned
    return None


def sanitize_twitter_handle(value: object) -> str | None:
    """Sanitize a Twitter/X handle, dropping a leading ``@``."""
    cleaned = sanitize_string(value, 16)
    if not cleaned:
        return None
    handle = cleaned.removeprefix("@")
    return handle if TWITTER_HANDLE_PATTERN.match(handle) else None


def sanitize_number(
    value: object,
    minimum: float = -(2**53 - 1),
    maximum: float = 2**53 - 1,
) -> int | None:
    """Coerce a bounded finite number to an integer, rounding down.

    Numeric strings are accepted. Booleans are not numbers here.

    Examples:
        >>> sanitize_number("12.9", 0, 18)
        12
        >>> sanitize_number(float("inf")) is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value < minimum or value > maximum:
        return None
    return math.floor(value)


def sanitize_url(value: object, config: SSRFConfig | None = None) -> SSRFDecision:
    """Sanitize a URL and run it through the SSRF guard.

    URLs are checked as part of validation, so a URL field is never accepted
    in a form the guard has not seen. Use ``decision.normalized_url`` as the
    sanitized value when ``decision.allowed`` is true.
    """
    if config is None:
        config = SSRFConfig()
    cleaned = sanitize_string(value, config.max_url_length)
    if cleaned is None:
        return SSRFDecision.reject("Invalid URL input")
    return SSRFGuard(config).validate(cleaned)

"""Bounds-checked JSON decoding.

Request bodies are decoded through ``safe_json_parse`` instead of calling the
decoder directly. Oversized input is rejected before it is scanned, and
input whose bracket nesting is too deep is rejected before it is decoded,
so adversarial payloads never reach orjson.
"""

from dataclasses import dataclass, field
from typing import Any

import orjson

from src.core.constants import MAX_JSON_DEPTH, MAX_JSON_SIZE
from src.core.exceptions import ErrorCode
from src.core.types import Issue

ROOT_PATH = "<root>"

_OPENERS = frozenset("{[")
_CLOSERS = frozenset("}]")


@dataclass(frozen=True, slots=True)
class JsonParseResult:
    """Outcome of ``safe_json_parse``.

    Exactly one of ``data`` (on success) or ``error_code`` (on failure) is
    meaningful. ``data`` may legitimately be ``None`` for the JSON literal
    ``null``, so callers must branch on ``ok``.
    """

    ok: bool
    data: Any = None
    error_code: ErrorCode | None = None
    message: str | None = None
    issues: list[Issue] = field(default_factory=list)


def estimate_depth(text: str) -> int:
    """Return the maximum bracket nesting depth of raw JSON text.

    Brackets are counted lexically, including any that appear inside string
    literals, so the estimate never undercounts the real depth.

    Examples:
        >>> estimate_depth('{"a": [1, {"b": 2}]}')
        3
        >>> estimate_depth("42")
        0
    """
    depth = 0
    max_depth = 0
    for char in text:
        if char in _OPENERS:
            depth += 1
            max_depth = max(max_depth, depth)
        elif char in _CLOSERS:
            depth -= 1
    return max_depth


def _failure(code: ErrorCode, message: str) -> JsonParseResult:
    return JsonParseResult(
        ok=False,
        error_code=code,
        message=message,
        issues=[{"path": ROOT_PATH, "message": message}],
    )


def safe_json_parse(
    text: str | bytes,
    max_size: int = MAX_JSON_SIZE,
    max_depth: int = MAX_JSON_DEPTH,
) -> JsonParseResult:
    """Decode JSON text within size and nesting limits.

    Checks run in a fixed order and short-circuit:

    1. ``len(text) > max_size`` fails with ``PAYLOAD_TOO_LARGE``.
    2. A nesting depth above ``max_depth`` fails with ``TOO_DEEP``.
    3. A syntax error fails with ``INVALID_JSON``.

    Args:
        text: Raw request text, or UTF-8 bytes.
        max_size: Maximum accepted length.
        max_depth: Maximum accepted bracket nesting depth.

    Returns:
        JsonParseResult: The decoded value or a structured failure.
    """
    if len(text) > max_size:
        return _failure(
            ErrorCode.PAYLOAD_TOO_LARGE,
            f"JSON payload exceeds maximum size of {max_size} bytes",
        )

    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            return _failure(ErrorCode.INVALID_JSON, "Request body is not valid UTF-8")

    depth = estimate_depth(text)
    if depth > max_depth:
        return _failure(
            ErrorCode.TOO_DEEP,
            f"JSON nesting depth ({depth}) exceeds maximum of {max_depth}",
        )

    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        return _failure(ErrorCode.INVALID_JSON, f"Invalid JSON syntax: {e.msg}")

    return JsonParseResult(ok=True, data=data)

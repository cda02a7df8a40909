"""Structured exception hierarchy for consistent error handling.

This module defines the exception system of the Bags Shield API. Every error
the service can return to a client is a ``ShieldError`` subclass that knows
its machine-readable code, its HTTP status and the client-safe details that
go into the error envelope.

Key components:
- **ErrorCode enum**: Standardized error identifiers shared by every route
- **Severity enum**: Error classification for logging and alerting
- **ShieldError**: Base exception with HTTP status, context and fingerprinting
- **Specialized exceptions**: One class per client-visible failure mode

Features:
- **Error fingerprinting**: Automatic grouping of similar errors
- **Stack trace capture**: Full context at error creation time
- **Exception chaining**: Preserves original cause for server-side logs
- **Client-safe context**: Only ``context`` is ever rendered to the client
"""

import hashlib
import traceback
from enum import Enum
from typing import Any, ClassVar

from src.core.types import Issue


class ErrorCode(Enum):
    """Standardized error codes returned in ``error.code``.

    These codes are part of the public contract of the API: clients branch
    on them, so values must never change once released.
    """

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    """A required credential or feature flag is not configured."""

    # Request shape errors
    BAD_REQUEST = "BAD_REQUEST"
    """The request is malformed in a way not covered by a more specific code."""

    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    """The HTTP method is not supported by the route."""

    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    """The request body is not declared as JSON."""

    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    """The request body exceeds the configured size limit."""

    INVALID_JSON = "INVALID_JSON"
    """The request body is not syntactically valid JSON."""

    TOO_DEEP = "TOO_DEEP"
    """The request body nests arrays or objects deeper than allowed."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    # Authentication/Authorization errors
    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication is missing or invalid."""

    FORBIDDEN = "FORBIDDEN"
    """The caller is authenticated but not allowed to perform the action."""

    # Abuse control
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    """Too many requests from the same client within the current window."""

    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    """The idempotency key has already been used within its window."""

    # Upstream errors
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    """An upstream API failed, answered non-2xx or returned malformed JSON."""

    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    """An upstream API did not answer within the configured timeout."""


class Severity(Enum):
    """Severity levels for errors raised by the service.

    These severity levels help categorize the impact and urgency of errors,
    enabling appropriate handling, monitoring, and alerting strategies.
    """

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some features but not critical ops."""

    HIGH = "HIGH"
    """High severity errors impacting critical functionality or security."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class ShieldError(Exception):
    """Base exception class for all Bags Shield API exceptions.

    All custom exceptions in the application inherit from this class so the
    exception handlers can turn them into error envelopes uniformly.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable, client-safe error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Client-safe details rendered as ``error.details``
        cause: The original exception that caused this error
    """

    status_code: ClassVar[int] = 500

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Creates a hash based on the error type and the location where it was
        raised, allowing similar errors to be grouped in log queries.

        Returns:
            str: A hash string for error grouping
        """
        max_frames = 5
        relevant_frames = (
            self.stack_trace[-max_frames:]
            if len(self.stack_trace) > max_frames
            else self.stack_trace
        )

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"

        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error should trigger alerts (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    @property
    def headers(self) -> dict[str, str]:
        """Extra response headers required by this error."""
        return {}

    def __str__(self) -> str:
        """Return a string representation of the exception.

        Returns:
            str: A formatted string containing the error code and message
        """
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class BadRequestError(ShieldError):
    """Exception raised for malformed requests without a more specific code."""

    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.BAD_REQUEST,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ValidationError(ShieldError):
    """Exception raised when input validation fails.

    The field-level issue list is exposed to the client as
    ``error.details.issues``.

    Args:
        message: Description of the validation failure
        issues: Field-level problems as ``{"path", "message"}`` dicts
        error_code: Error code (defaults to VALIDATION_ERROR)
        context: Additional client-safe details
        cause: The original exception that caused this error
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        issues: list[Issue] | None = None,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.issues = list(issues or [])
        details = dict(context or {})
        if self.issues:
            details["issues"] = self.issues
        super().__init__(error_code, message, Severity.LOW, details, cause)


class InvalidJsonError(ShieldError):
    """Exception raised when a JSON body cannot be decoded.

    Covers both syntax errors (``INVALID_JSON``) and bodies rejected by the
    nesting depth pre-check (``TOO_DEEP``).
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.INVALID_JSON,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class PayloadTooLargeError(ShieldError):
    """Exception raised when a request body exceeds the size limit."""

    status_code = 413

    def __init__(
        self,
        message: str,
        limit: int | None = None,
        error_code: str | ErrorCode = ErrorCode.PAYLOAD_TOO_LARGE,
        cause: Exception | None = None,
    ) -> None:
        context = {"limit": limit} if limit is not None else None
        super().__init__(error_code, message, Severity.LOW, context, cause)


class UnsupportedMediaTypeError(ShieldError):
    """Exception raised when the request body is not declared as JSON."""

    status_code = 415

    def __init__(
        self,
        message: str = "Content-Type must be application/json",
        error_code: str | ErrorCode = ErrorCode.UNSUPPORTED_MEDIA_TYPE,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context)


class UnauthorizedError(ShieldError):
    """Exception raised when authentication is missing or invalid.

    Args:
        message: Description of the authorization failure
        error_code: Error code (defaults to UNAUTHORIZED)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code = 401

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.UNAUTHORIZED,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)

    @property
    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class IdempotencyConflictError(ShieldError):
    """Exception raised when an idempotency key is replayed within its window."""

    status_code = 409

    def __init__(
        self,
        message: str = "Idempotency key has already been used",
        retry_after: int | None = None,
        error_code: str | ErrorCode = ErrorCode.IDEMPOTENCY_CONFLICT,
    ) -> None:
        self.retry_after = retry_after
        context = {"retryAfter": retry_after} if retry_after is not None else None
        super().__init__(error_code, message, Severity.MEDIUM, context)


class RateLimitError(ShieldError):
    """Exception raised when a client exceeds its request budget.

    Args:
        retry_after: Seconds until the current window resets (at least 1)
        limit: The number of requests allowed per window
        message: Client-facing message
    """

    status_code = 429

    def __init__(
        self,
        retry_after: int,
        limit: int | None = None,
        message: str = "Too many requests, please retry later",
        error_code: str | ErrorCode = ErrorCode.RATE_LIMIT_EXCEEDED,
    ) -> None:
        self.retry_after = max(1, retry_after)
        self.limit = limit
        context: dict[str, Any] = {"retryAfter": self.retry_after}
        if limit is not None:
            context["limit"] = limit
        super().__init__(error_code, message, Severity.MEDIUM, context)

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class NotConfiguredError(ShieldError):
    """Exception raised when a required credential or feature flag is absent.

    Answered with ``501 Not Implemented`` so that a missing deployment
    setting is never mistaken for a silent success.
    """

    status_code = 501

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_IMPLEMENTED,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context)


class UpstreamError(ShieldError):
    """Exception raised when an upstream API call fails.

    Only the upstream name and status code are exposed to the client; the
    original exception is kept as ``cause`` for server-side logs.

    Args:
        message: Client-safe description of the failure
        upstream: Name of the upstream service
        upstream_status: HTTP status returned by the upstream, if any
        error_code: Error code (defaults to UPSTREAM_ERROR)
        cause: The original exception that caused this error
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        upstream: str | None = None,
        upstream_status: int | None = None,
        error_code: str | ErrorCode = ErrorCode.UPSTREAM_ERROR,
        cause: Exception | None = None,
    ) -> None:
        self.upstream = upstream
        self.upstream_status = upstream_status
        context: dict[str, Any] = {}
        if upstream is not None:
            context["upstream"] = upstream
        if upstream_status is not None:
            context["status"] = upstream_status
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class UpstreamTimeoutError(UpstreamError):
    """Exception raised when an upstream API does not answer in time."""

    def __init__(
        self,
        message: str,
        upstream: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            upstream=upstream,
            error_code=ErrorCode.UPSTREAM_TIMEOUT,
            cause=cause,
        )

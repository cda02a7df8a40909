"""Request context management: request IDs, client IP and request time.

Every request carries a transient context created by the request context
middleware and discarded once the response is sent. It is stored in
contextvars so logging, envelopes and tracing can read it from any layer
without threading it through every call.
"""

import re
import uuid
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import UTC, datetime

REQUEST_ID_HEADER = "X-Request-ID"

# Inbound request IDs are echoed into logs and headers, keep them boring
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_client_ip_var: ContextVar[str | None] = ContextVar("client_ip", default=None)
_timestamp_var: ContextVar[datetime | None] = ContextVar("timestamp", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    This class provides thread-safe and async-safe storage for request-scoped
    data: the request ID, the resolved client IP and the instant the request
    started. Nothing stored here outlives the request.
    """

    @staticmethod
    def start(request_id: str, client_ip: str) -> None:
        """Initialise the context for a new request.

        Args:
            request_id: The request ID issued or propagated for this request.
            client_ip: The resolved client IP address.
        """
        _request_id_var.set(request_id)
        _client_ip_var.set(client_ip)
        _timestamp_var.set(datetime.now(UTC))

    @staticmethod
    def get_request_id() -> str | None:
        """Get the request ID from the current context.

        Returns:
            str | None: The request ID if set, None otherwise.
        """
        return _request_id_var.get()

    @staticmethod
    def get_client_ip() -> str | None:
        """Get the client IP recorded for the current request."""
        return _client_ip_var.get()

    @staticmethod
    def get_timestamp() -> datetime | None:
        """Get the instant the current request started."""
        return _timestamp_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables.

        This should typically be called at the end of a request to ensure
        clean state for the next request.
        """
        _request_id_var.set(None)
        _client_ip_var.set(None)
        _timestamp_var.set(None)


def generate_request_id() -> str:
    """Generate a unique request ID for request tracking.

    Returns:
        str: A string representation of a UUID4.

    Examples:
        >>> request_id = generate_request_id()
        >>> len(request_id)
        36
    """
    return str(uuid.uuid4())


def is_valid_request_id(value: str) -> bool:
    """Check whether an inbound request ID is safe to propagate."""
    return bool(_REQUEST_ID_PATTERN.match(value))


def get_or_generate_request_id(headers: Mapping[str, str]) -> str:
    """Propagate the caller's request ID or issue a new one.

    The inbound ``X-Request-ID`` header is trimmed and reused when it is
    non-blank and made only of safe characters; anything else is replaced
    by a freshly generated ID.

    Args:
        headers: Request headers (case-insensitive mapping or plain dict).

    Returns:
        str: The request ID to use for this request.
    """
    raw = headers.get(REQUEST_ID_HEADER) or headers.get(REQUEST_ID_HEADER.lower())
    if raw:
        candidate = raw.strip()
        if candidate and is_valid_request_id(candidate):
            return candidate
    return generate_request_id()

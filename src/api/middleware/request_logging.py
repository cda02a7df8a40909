"""HTTP request/response logging with performance monitoring.

Features:
- **Structured logging**: Consistent fields on every request log line
- **Performance tracking**: Request duration and slow request detection
- **Request/response metrics**: Size tracking for bandwidth monitoring
- **Exclusion patterns**: Configurable path exclusion (e.g., health checks)
- **Error handling**: Logs failures while preserving exception propagation

Request ID and client IP are bound by ``RequestContextMiddleware``, which
wraps this middleware, so every line here can be correlated.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.config import LogConfig
from src.core.constants import MILLISECONDS_PER_SECOND

MAX_USER_AGENT_LENGTH = 200


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.log_config = log_config
        self.excluded_paths = set(log_config.excluded_paths)

    def _get_user_agent(self, request: Request) -> str:
        """Extract and truncate the user agent.

        Args:
            request: The incoming request.

        Returns:
            str: The user agent string, truncated if necessary.
        """
        ua = request.headers.get("user-agent", "")
        # Long user agents pollute the logs
        return ua[:MAX_USER_AGENT_LENGTH] if ua else "unknown"

    @staticmethod
    def _content_length(value: str | None) -> int:
        if value is None or not value.strip().isdigit():
            return 0
        return int(value)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request and log details.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application.

        Raises:
            Exception: Any exception raised by the application is re-raised
                after logging.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        with logger.contextualize(
            method=request.method,
            path=request.url.path,
            user_agent=self._get_user_agent(request),
            request_size=self._content_length(request.headers.get("content-length")),
        ):
            # Query strings may carry keys, the redacting patcher masks them
            logger.info(
                "Request started",
                query_params=(
                    dict(request.query_params) if request.query_params else None
                ),
            )

            start_time = time.perf_counter()

            try:
                response = await call_next(request)

            except Exception as exc:
                duration_ms = (
                    time.perf_counter() - start_time
                ) * MILLISECONDS_PER_SECOND

                logger.error(
                    "Request failed",
                    duration_ms=round(duration_ms, 2),
                    error_type=type(exc).__name__,
                )

                raise
            else:
                duration_ms = (
                    time.perf_counter() - start_time
                ) * MILLISECONDS_PER_SECOND

                logger.info(
                    "Request completed",
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                    response_size=self._content_length(
                        response.headers.get("content-length")
                    ),
                )

                if duration_ms > self.log_config.slow_request_threshold_ms:
                    logger.warning(
                        "Slow request detected",
                        duration_ms=round(duration_ms, 2),
                        threshold_ms=self.log_config.slow_request_threshold_ms,
                    )

                return response

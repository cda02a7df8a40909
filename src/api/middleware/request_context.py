"""Request context middleware: request ID, client IP and the last-resort error.

Key features:
- **Request ID propagation**: Reuses a safe inbound ``X-Request-ID`` or
  issues a new one, and echoes it in the response
- **Context variables**: Stores the request ID, client IP and start time in
  ``RequestContext`` so envelopes, logs and spans can read them
- **Loguru integration**: Binds the request ID and client to every log line
- **Last-resort handler**: Unhandled exceptions that the CORS layer did not
  render become the generic ``INTERNAL_ERROR`` envelope here, inside the
  header middleware, so even a crash carries the request ID and the security
  headers
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from src.api.constants import REQUEST_ID_HEADER
from src.api.middleware.error_handler import generic_exception_handler
from src.api.utils.client_ip import get_client_ip
from src.core.context import RequestContext, get_or_generate_request_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to manage the per-request context.

    Args:
        app: The ASGI application.
        trust_proxy_headers: Whether to resolve the client IP from
            ``X-Forwarded-For`` / ``X-Real-IP``.
    """

    def __init__(self, app: ASGIApp, *, trust_proxy_headers: bool = False) -> None:
        super().__init__(app)
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with the request ID header.
        """
        request_id = get_or_generate_request_id(request.headers)
        client_ip = get_client_ip(
            request, trust_proxy_headers=self.trust_proxy_headers
        )
        RequestContext.start(request_id, client_ip)
        request.state.request_id = request_id
        request.state.client_ip = client_ip

        # contextualize() cleans the bound values up when the request ends
        with logger.contextualize(request_id=request_id, client_host=client_ip):
            try:
                response = await call_next(request)
            except Exception as exc:  # noqa: BLE001 - every crash gets an envelope
                response = await generic_exception_handler(request, exc)
            finally:
                RequestContext.clear()

            response.headers[REQUEST_ID_HEADER] = request_id
            return response

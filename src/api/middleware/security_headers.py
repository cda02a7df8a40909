"""Security headers middleware applying the response header policy."""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.constants import NO_STORE_HEADERS, PERMISSIONS_POLICY, REFERRER_POLICY
from src.core.constants import DEFAULT_HSTS_MAX_AGE


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add the security header policy to all responses.

    This middleware adds the following headers:
    - Cache-Control: no-store (plus Pragma and Expires for old caches)
    - X-Content-Type-Options: nosniff - Prevents MIME type sniffing
    - X-Frame-Options: DENY - Prevents clickjacking attacks
    - Referrer-Policy: strict-origin-when-cross-origin
    - Permissions-Policy: disables geolocation, microphone, camera, payment, usb
    - Strict-Transport-Security (only when HSTS is enabled, i.e. production)

    Args:
        app: The ASGI application to wrap.
        hsts_enabled: Whether to include the HSTS header.
        hsts_max_age: Max age for HSTS in seconds (defaults to 1 year).
        hsts_include_subdomains: Whether to include subdomains in HSTS.
        hsts_preload: Whether to include preload directive.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        hsts_enabled: bool = False,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
        hsts_include_subdomains: bool = True,
        hsts_preload: bool = False,
    ) -> None:
        super().__init__(app)
        self.hsts_enabled = hsts_enabled
        self.hsts_max_age = hsts_max_age
        self.hsts_include_subdomains = hsts_include_subdomains
        self.hsts_preload = hsts_preload

    def _build_hsts_header(self) -> str:
        """Build the Strict-Transport-Security header value.

        Returns:
            str: The HSTS header value string.
        """
        parts = [f"max-age={self.hsts_max_age}"]

        if self.hsts_include_subdomains:
            parts.append("includeSubDomains")

        if self.hsts_preload:
            parts.append("preload")

        return "; ".join(parts)

    def apply(self, response: Response) -> Response:
        """Set the header policy on a response."""
        for name, value in NO_STORE_HEADERS.items():
            response.headers[name] = value

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = REFERRER_POLICY
        response.headers["Permissions-Policy"] = PERMISSIONS_POLICY

        if self.hsts_enabled:
            response.headers["Strict-Transport-Security"] = self._build_hsts_header()

        return response

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Add security headers to the response.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            Response: The HTTP response with security headers added.
        """
        response = await call_next(request)
        return self.apply(response)

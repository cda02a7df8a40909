"""CORS middleware answering every OPTIONS request with 204.

Starlette's ``CORSMiddleware`` answers a successful preflight with
``200 OK`` and a text body and lets a bare ``OPTIONS`` fall through to
routing (usually ``405``). Browsers and the front-end expect an empty
``204`` for any ``OPTIONS``, so this subclass short-circuits them all and
renders a rejected preflight as an error envelope.

Cross-origin requests that crash are rendered as the ``INTERNAL_ERROR``
envelope inside this layer, so browsers can still read the error body.
"""

import functools
from collections.abc import Sequence

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.constants import (
    CORS_ALLOWED_HEADERS,
    CORS_ALLOWED_METHODS,
    CORS_EXPOSED_HEADERS,
)
from src.api.middleware.error_handler import generic_exception_handler
from src.api.utils.responses import error_response
from src.core.exceptions import ErrorCode

_BODY_HEADERS = {"content-length", "content-type"}


class ShieldCORSMiddleware(CORSMiddleware):
    """Origin allowlist with ``204`` answers for preflight requests.

    Args:
        app: The ASGI application to wrap.
        allow_origins: Allowed origins, ``"*"`` allows any origin.
        max_age: Preflight cache lifetime in seconds.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        allow_origins: Sequence[str] = ("*",),
        max_age: int = 86400,
    ) -> None:
        super().__init__(
            app,
            allow_origins=allow_origins,
            allow_methods=CORS_ALLOWED_METHODS,
            allow_headers=CORS_ALLOWED_HEADERS,
            expose_headers=CORS_EXPOSED_HEADERS,
            max_age=max_age,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "OPTIONS":
            await super().__call__(scope, receive, send)
            return

        request_headers = Headers(scope=scope)
        if (
            "origin" in request_headers
            and "access-control-request-method" in request_headers
        ):
            response = self.preflight(request_headers)
        else:
            response = Response(
                status_code=204, headers=self.options_headers(request_headers)
            )

        await response(scope, receive, send)

    def preflight(self, request_headers: Headers) -> Response:
        """Answer a CORS preflight: 204 when allowed, 400 envelope otherwise."""
        answer = self.preflight_response(request_headers=request_headers)
        if answer.status_code >= 400:  # noqa: PLR2004 - any client error
            return error_response(
                ErrorCode.BAD_REQUEST,
                answer.body.decode(errors="replace"),
                400,
            )

        headers = {
            name: value
            for name, value in answer.headers.items()
            if name.lower() not in _BODY_HEADERS
        }
        return Response(status_code=204, headers=headers)

    def options_headers(self, request_headers: Headers) -> dict[str, str]:
        """CORS headers for a bare OPTIONS request (no preflight headers)."""
        headers = dict(self.simple_headers)
        headers["Access-Control-Allow-Methods"] = ", ".join(self.allow_methods)

        origin = request_headers.get("origin")
        if origin and not self.allow_all_origins and self.is_allowed_origin(origin):
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"

        return headers

    async def simple_response(
        self, scope: Scope, receive: Receive, send: Send, request_headers: Headers
    ) -> None:
        """Serve a cross-origin request, rendering crashes with CORS headers."""
        response_started = False

        async def send_tracking(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await super().simple_response(
                scope, receive, send_tracking, request_headers
            )
        except Exception as exc:  # noqa: BLE001 - crashes get an envelope here too
            if response_started:
                raise
            response = await generic_exception_handler(Request(scope, receive), exc)
            cors_send = functools.partial(
                self.send, send=send, request_headers=request_headers
            )
            await response(scope, receive, cors_send)

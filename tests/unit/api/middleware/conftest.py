"""Fixtures for middleware unit tests.

Middleware are exercised around a tiny Starlette application through
httpx's ASGI transport, which runs the real dispatch code without a server.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import httpx
import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

type MiddlewareClient = Callable[..., AbstractAsyncContextManager[httpx.AsyncClient]]


async def ok_endpoint(request: Request) -> Response:
    return PlainTextResponse("ok")


async def crash_endpoint(request: Request) -> Response:
    raise RuntimeError("secret database password leaked")


@pytest.fixture
def middleware_client() -> MiddlewareClient:
    """Client around an app with ``/ok`` and ``/crash`` routes.

    Usage:
        async with middleware_client(Middleware(SecurityHeadersMiddleware)) as client:
            response = await client.get("/ok")
    """

    @asynccontextmanager
    async def _create(*middleware: Middleware) -> AsyncGenerator[httpx.AsyncClient]:
        app = Starlette(
            routes=[
                Route("/ok", ok_endpoint, methods=["GET", "POST"]),
                Route("/crash", crash_endpoint),
            ],
            middleware=list(middleware),
        )
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://test"
        ) as client:
            yield client

    return _create

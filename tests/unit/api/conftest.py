"""Shared fixtures for API unit tests."""

from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
from starlette.requests import Request

from src.core.config import Settings
from src.security.rate_limit import RateLimiter

type RequestFactory = Callable[..., Request]


@pytest.fixture
def make_request() -> RequestFactory:
    """Build a Starlette request from plain values.

    Usage:
        request = make_request(headers={"content-type": "application/json"},
                               body=b"{}", settings=settings)
    """

    def _create(
        *,
        method: str = "POST",
        path: str = "/api/scan",
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        query_string: bytes = b"",
        client: tuple[str, int] | None = ("203.0.113.5", 50000),
        settings: Settings | None = None,
        rate_limiter: RateLimiter | None = None,
        chunk_size: int | None = None,
    ) -> Request:
        settings = settings or Settings()
        state = SimpleNamespace(
            settings=settings,
            rate_limiter=rate_limiter or RateLimiter(settings.rate_limit_config),
        )
        scope: dict[str, Any] = {
            "type": "http",
            "method": method,
            "path": path,
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in (headers or {}).items()
            ],
            "query_string": query_string,
            "client": client,
            "app": SimpleNamespace(state=state),
        }
        size = chunk_size or max(len(body), 1)
        chunks = [body[i : i + size] for i in range(0, len(body), size)] or [b""]
        messages = [
            {
                "type": "http.request",
                "body": chunk,
                "more_body": index < len(chunks) - 1,
            }
            for index, chunk in enumerate(chunks)
        ]

        async def receive() -> dict[str, Any]:
            return messages.pop(0) if messages else {"type": "http.disconnect"}

        return Request(scope, receive)

    return _create

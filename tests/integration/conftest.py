"""Shared fixtures for integration tests.

Applications are built with explicit settings and an upstream HTTP client
backed by ``httpx.MockTransport``, so the whole middleware and validation
stack runs in-process while Bags, Helius and Jupiter are simulated.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any, cast

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from src.api.main import create_app
from src.core.config import ObservabilityConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.logging import _state

type UpstreamHandler = Callable[[httpx.Request], httpx.Response]
type ClientFactoryType = Callable[..., Awaitable[AsyncClient]]

# Deployment variables that would change what a test app looks like
_SETTINGS_ENV = (
    "ENVIRONMENT",
    "DEBUG",
    "BAGS_API_KEY",
    "HELIUS_API_KEY",
    "JUPITER_API_KEY",
    "LAUNCHPAD_ENABLED",
    "BETA_TRADING_ENABLED",
)
_SETTINGS_ENV_PREFIXES = (
    "SECURITY_CONFIG__",
    "RATE_LIMIT_CONFIG__",
    "SSRF_CONFIG__",
    "UPSTREAM_CONFIG__",
    "OBSERVABILITY_CONFIG__",
)


def unreachable_upstream(request: httpx.Request) -> httpx.Response:
    """Default handler: any upstream call is a test failure."""
    raise AssertionError(f"Unexpected upstream call: {request.method} {request.url}")


class UpstreamRecorder:
    """Upstream handler answering with a fixed JSON body and recording calls.

    Args:
        status_code: Status of every answer.
        json: Body of every answer.
        error: Exception raised instead of answering.
    """

    def __init__(
        self,
        status_code: int = 200,
        json: Any = None,  # noqa: ANN401 - any JSON body
        error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.json = json if json is not None else {}
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.json)


@pytest.fixture
def upstream_recorder() -> type[UpstreamRecorder]:
    """Expose UpstreamRecorder to test modules without importing conftest."""
    return UpstreamRecorder


@pytest.fixture
async def client_factory() -> AsyncGenerator[ClientFactoryType]:
    """Factory fixture for creating test clients with custom settings.

    Tracing is disabled unless the test passes its own observability config.

    Usage:
        async def test_something(client_factory):
            client = await client_factory(bags_api_key="key", handler=recorder)
    """
    clients: list[AsyncClient] = []
    upstream_clients: list[httpx.AsyncClient] = []

    async def _create_client(
        handler: UpstreamHandler = unreachable_upstream, **overrides: object
    ) -> AsyncClient:
        overrides.setdefault(
            "observability_config", ObservabilityConfig(enable_tracing=False)
        )
        settings = Settings(**cast("dict[str, Any]", overrides))
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        upstream_clients.append(http_client)

        app = create_app(settings, http_client=http_client)
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        client = AsyncClient(transport=transport, base_url="http://test")
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        await client.aclose()
    for http_client in upstream_clients:
        await http_client.aclose()


@pytest.fixture
async def client(client_factory: ClientFactoryType) -> AsyncClient:
    """Client for an application with default settings and no upstream keys."""
    return await client_factory()


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep deployment variables of the host out of the test applications."""
    for key in list(os.environ):
        if key in _SETTINGS_ENV or key.startswith(_SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Automatically clear settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Automatically clear RequestContext before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture(autouse=True)
def reset_logging_and_tracing_state() -> Generator[None]:
    """Keep log output and instrumentation from leaking between tests.

    Logging stays marked as configured so app creation does not add stdout
    handlers; tests that inspect logs add their own sink.
    """
    logger.remove()
    _state.configured = True

    try:
        if FastAPIInstrumentor().is_instrumented_by_opentelemetry:
            FastAPIInstrumentor().uninstrument()
    except (AttributeError, RuntimeError) as e:
        logger.trace(f"FastAPI uninstrumentation skipped: {e}")

    yield

    _state.configured = True
    logger.remove()

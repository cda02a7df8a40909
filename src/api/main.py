"""FastAPI application initialization and configuration module.

This module serves as the main entry point for the Bags Shield API.
It handles:
- Application lifecycle management (startup/shutdown)
- Creation of the shared rate limiter and upstream HTTP client
- Middleware registration in the correct order
- Exception handler registration
- Route registration
- OpenTelemetry instrumentation

The module follows a layered middleware approach where middleware are
executed in reverse order of registration, ensuring proper request/response
processing flow.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from loguru import logger

from src.api.middleware.cors import ShieldCORSMiddleware
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.api.middleware.security_headers import SecurityHeadersMiddleware
from src.api.routes import api_router
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import (
    instrument_app,
    instrument_http_client,
    setup_tracing,
)
from src.infrastructure.upstream import UpstreamClient, create_http_client
from src.security.rate_limit import RateLimiter


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    The rate limiter and the upstream client are created with the
    application; shutdown closes the pooled connections.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.
    """
    upstream: UpstreamClient = app_instance.state.upstream
    configured = [
        name for name in ("bags", "helius", "jupiter") if upstream.is_configured(name)
    ]

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
        configured_upstreams=configured,
    )

    yield

    logger.info("Application shutdown initiated")
    await upstream.aclose()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        http_client: Optional HTTP client for upstream calls. If not provided,
            a pooled client is created from ``settings.upstream_config``.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    # Setup tracing
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Shared per-process state, created once and passed to handlers
    if http_client is None:
        http_client = create_http_client(settings.upstream_config)
    instrument_http_client(http_client, settings)
    application.state.settings = settings
    application.state.rate_limiter = RateLimiter(settings.rate_limit_config)
    application.state.upstream = UpstreamClient(http_client, settings)

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    # Register middleware AFTER exception handlers
    # Order is important: middleware are executed in reverse order of registration
    # So the last middleware added is the first to process requests

    # 4. Request logging middleware (logs requests/responses)
    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)

    # 3. CORS middleware (answers OPTIONS with 204, renders cross-origin crashes)
    application.add_middleware(
        ShieldCORSMiddleware,
        allow_origins=settings.security_config.cors_allowed_origins,
        max_age=settings.security_config.cors_max_age,
    )

    # 2. Request context middleware (request ID, client IP, last-resort errors)
    application.add_middleware(
        RequestContextMiddleware,
        trust_proxy_headers=bool(settings.security_config.trust_proxy_headers),
    )

    # 1. Security headers middleware (adds security headers to all responses)
    application.add_middleware(
        SecurityHeadersMiddleware,
        hsts_enabled=settings.is_production,
        hsts_max_age=settings.security_config.hsts_max_age,
        hsts_include_subdomains=settings.security_config.hsts_include_subdomains,
    )

    application.include_router(api_router)

    # Instrument application for tracing (at the end)
    instrument_app(application, settings)

    return application


app = create_app()

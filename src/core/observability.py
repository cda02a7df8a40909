"""Observability configuration using OpenTelemetry with pluggable exporters.

Inbound requests are traced through the FastAPI instrumentation and every
outbound upstream call through the httpx instrumentation. Exporters:
- Local development (spans logged through Loguru)
- Cloud providers (GCP Cloud Trace, AWS X-Ray via OTLP)
- Self-hosted (Jaeger, Tempo via OTLP)
"""

from __future__ import annotations

import importlib
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from src.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    import httpx
    from fastapi import FastAPI

    from src.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"

# Low level ASGI spans that add nothing in development logs
_NOISY_SPANS: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            span_context = span.get_span_context()
            if not span_context:
                continue
            if any(span.name.endswith(noisy) for noisy in _NOISY_SPANS):
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                request_id=attributes.get(
                    "request_id", RequestContext.get_request_id()
                ),
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                attributes=attributes,
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the appropriate span exporter based on configuration.

    Cloud specific exporters are imported lazily so they stay optional.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter or None if disabled.
    """
    exporter_type = settings.observability_config.exporter_type.lower()

    if exporter_type == "console":
        return LoguruSpanExporter()

    if exporter_type == "gcp":
        return _get_gcp_exporter(settings)

    if exporter_type in ("aws", "otlp"):
        return _get_otlp_exporter(settings, exporter_type)

    if exporter_type == "none":
        logger.info("Tracing explicitly disabled")
        return None

    logger.warning("Unknown exporter type: {}, disabling tracing", exporter_type)
    return None


def _get_gcp_exporter(settings: Settings) -> SpanExporter | None:
    """Get GCP Cloud Trace exporter."""
    try:
        module = importlib.import_module("opentelemetry.exporter.cloud_trace")
    except ImportError:
        logger.error(
            "GCP exporter requested but opentelemetry-exporter-gcp-trace "
            "is not installed"
        )
        return None

    project_id = settings.observability_config.gcp_project_id or os.getenv(
        "GOOGLE_CLOUD_PROJECT"
    )
    if not project_id:
        logger.warning("GCP project ID not configured, disabling tracing")
        return None

    logger.info("Using GCP Cloud Trace exporter for project {}", project_id)
    exporter: SpanExporter = module.CloudTraceSpanExporter(project_id=project_id)
    return exporter


def _get_otlp_exporter(settings: Settings, exporter_type: str) -> SpanExporter:
    """Get OTLP-based exporter (AWS X-Ray or generic OTLP)."""
    endpoint = (
        settings.observability_config.exporter_endpoint or "http://localhost:4317"
    )
    logger.info("Using {} exporter at {}", exporter_type.upper(), endpoint)

    return OTLPSpanExporter(
        endpoint=endpoint,
        insecure=settings.environment == "development",
    )


@lru_cache(maxsize=1)
def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given component."""
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Configure OpenTelemetry tracing with the configured exporter.

    Args:
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=TraceIdRatioBased(settings.observability_config.trace_sample_rate),
    )

    if exporter := get_span_exporter(settings):
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)

    logger.info(
        "Tracing configured",
        exporter_type=settings.observability_config.exporter_type,
        sample_rate=settings.observability_config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument the FastAPI application for tracing.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls="/health,/docs,/redoc,/openapi.json",
        server_request_hook=add_request_id_to_span,
    )

    logger.info("Application instrumented for tracing")


def instrument_http_client(client: httpx.AsyncClient, settings: Settings) -> None:
    """Instrument the shared upstream HTTP client for tracing."""
    if not settings.observability_config.enable_tracing:
        return

    HTTPXClientInstrumentor.instrument_client(client)


def add_request_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Attach the request ID to the server span.

    Used as the ``server_request_hook`` of the FastAPI instrumentation.
    The inbound header is read from the scope because the hook runs before
    the request context middleware has stored the issued ID.

    Args:
        span: The current span.
        scope: ASGI scope dict containing request information.
    """
    if not span or not span.is_recording():
        return

    if request_id := RequestContext.get_request_id():
        span.set_attribute("request_id", request_id)
        return

    headers = dict(scope.get("headers", []))
    if request_id := headers.get(b"x-request-id", b"").decode("latin-1"):
        span.set_attribute("request_id", request_id)


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span.

    Args:
        **attributes: Key-value pairs to add as span attributes.
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Context manager for tracing a custom operation.

    Args:
        name: Operation name for the span.
        **attributes: Initial attributes for the span.

    Yields:
        Generator[trace.Span]: The created span for the operation.

    Example:
        >>> with trace_operation("upstream.bags", path="token/launch-feed"):
        >>>     response = await client.get(url)
    """
    tracer = get_tracer(__name__)
    span = tracer.start_span(name)

    for key, value in attributes.items():
        span.set_attribute(key, value)

    if request_id := RequestContext.get_request_id():
        span.set_attribute("request_id", request_id)

    with trace.use_span(span, end_on_exit=True):
        yield span

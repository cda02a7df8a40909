"""Per-route guards wired through FastAPI dependency injection.

Routes declare the guards they need; FastAPI runs the route-level
``dependencies`` first, in declaration order, then the parameter
dependencies. The usual composition is::

    @router.post(
        "/scan",
        dependencies=[Depends(rate_limit(ROUTE_SCAN))],
    )
    async def scan(payload: Annotated[ScanRequest, Depends(json_body(ScanRequest))]):
        ...

Each guard raises a ``ShieldError`` subclass on failure; the exception
handlers turn it into the error envelope.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Annotated, Any

import pydantic
from fastapi import Depends, Request
from loguru import logger

from src.api.constants import JSON_CONTENT_TYPES
from src.api.utils.client_ip import get_client_ip
from src.core.config import Settings, UpstreamName
from src.core.context import RequestContext
from src.core.exceptions import (
    BadRequestError,
    IdempotencyConflictError,
    NotConfiguredError,
    PayloadTooLargeError,
    RateLimitError,
    UnauthorizedError,
    UnsupportedMediaTypeError,
)
from src.infrastructure.upstream import UpstreamClient
from src.security.rate_limit import RateLimiter
from src.security.validation import (
    DomainRule,
    parse_and_validate,
    parse_json_object,
)

type FeatureFlag = str


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was created with."""
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_upstream_client(request: Request) -> UpstreamClient:
    return request.app.state.upstream


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
UpstreamDep = Annotated[UpstreamClient, Depends(get_upstream_client)]


def rate_limit(route: str) -> Callable[..., None]:
    """Build a guard counting the request against the client IP budget.

    Args:
        route: Rate limit scope, also used to look up per-route overrides.

    Returns:
        Callable[..., None]: Dependency raising ``RateLimitError`` (429).
    """

    def check_rate_limit(
        request: Request, settings: SettingsDep, limiter: RateLimiterDep
    ) -> None:
        if not limiter.config.enabled:
            return

        client_ip = RequestContext.get_client_ip() or get_client_ip(
            request,
            trust_proxy_headers=bool(settings.security_config.trust_proxy_headers),
        )
        result = limiter.check_ip(client_ip, route)
        if not result.allowed:
            logger.warning(
                "Rate limit exceeded",
                route=route,
                limit=result.limit,
                retry_after=result.retry_after,
            )
            raise RateLimitError(result.retry_after, limit=result.limit)

    return check_rate_limit


def require_bearer(request: Request) -> str:
    """Require a non-empty ``Authorization: Bearer <token>`` header.

    Returns:
        str: The bearer token.
    """
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Missing or invalid Authorization header")
    return token.strip()


def require_credential(upstream: UpstreamName) -> Callable[..., None]:
    """Build a guard answering 501 when an upstream API key is absent."""

    def check_credential(settings: SettingsDep) -> None:
        if settings.upstream_api_key(upstream) is None:
            variable = f"{upstream.upper()}_API_KEY"
            logger.warning("Upstream credential missing", upstream=upstream)
            raise NotConfiguredError(f"{variable} is not configured")

    return check_credential


def require_feature(flag: FeatureFlag) -> Callable[..., None]:
    """Build a guard answering 501 when a feature flag is off.

    Args:
        flag: Name of a boolean ``Settings`` attribute, e.g. ``launchpad_enabled``.
    """

    def check_feature(settings: SettingsDep) -> None:
        if not getattr(settings, flag):
            variable = flag.upper()
            raise NotConfiguredError(
                f"This feature is disabled, set {variable}=true to enable it"
            )

    return check_feature


def require_json_content_type(request: Request) -> None:
    """Accept only ``application/json`` or ``text/json`` bodies, parameters allowed."""
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type not in JSON_CONTENT_TYPES:
        raise UnsupportedMediaTypeError()


async def read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing more than ``limit`` bytes.

    The declared ``Content-Length`` is checked first, then the streamed body
    is counted, so a missing or lying header cannot bypass the limit.

    Raises:
        BadRequestError: ``Content-Length`` is not a non-negative integer.
        PayloadTooLargeError: The body is larger than ``limit``.
    """
    message = f"Request body exceeds maximum size of {limit} bytes"

    declared = request.headers.get("content-length")
    if declared is not None:
        if not declared.strip().isdigit():
            raise BadRequestError("Invalid Content-Length header")
        if int(declared) > limit:
            raise PayloadTooLargeError(message, limit=limit)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError(message, limit=limit)
    return bytes(body)


def json_body[M: pydantic.BaseModel](
    model: type[M], rules: Sequence[DomainRule[M]] = ()
) -> Callable[..., Awaitable[M]]:
    """Build a dependency running the whole validation pipeline over the body.

    Content-Type check, bounded read, safe JSON parse, strict schema and
    domain rules, in that order.

    Args:
        model: Strict payload schema.
        rules: Domain rules applied to the validated payload.

    Returns:
        Callable[..., Awaitable[M]]: Dependency returning the validated payload.
    """

    async def validated_body(request: Request, settings: SettingsDep) -> M:
        require_json_content_type(request)
        security = settings.security_config
        body = await read_body(request, security.max_body_bytes)
        return parse_and_validate(
            body,
            model,
            rules,
            max_size=security.max_json_size,
            max_depth=security.max_json_depth,
        )

    return validated_body


def enforce_idempotency(limiter: RateLimiter, key: str | None, route: str) -> None:
    """Accept an idempotency key at most once per window.

    Raises:
        IdempotencyConflictError: The key was already used (409).
    """
    result = limiter.check_idempotency_key(key, route)
    if result is not None and not result.allowed:
        logger.warning("Idempotency key replayed", route=route)
        raise IdempotencyConflictError(retry_after=result.retry_after)


async def json_object_body(request: Request, settings: SettingsDep) -> dict[str, Any]:
    """Read a JSON object body that is forwarded as-is to an upstream.

    Same Content-Type, size and depth checks as ``json_body`` without a
    schema: the upstream owns the shape of the payload.
    """
    require_json_content_type(request)
    security = settings.security_config
    body = await read_body(request, security.max_body_bytes)
    return parse_json_object(
        body, max_size=security.max_json_size, max_depth=security.max_json_depth
    )

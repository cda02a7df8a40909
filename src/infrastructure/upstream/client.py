"""Shared HTTP client for the third-party APIs the routes forward to.

One ``httpx.AsyncClient`` is created per application and reused by every
request, so connections to Bags, Helius and Jupiter are pooled. Each call
goes through ``UpstreamClient.request``, which:

- builds the URL from the configured base URL and a relative path
- runs the SSRF guard on the final URL before anything is sent
- injects the credentials of the target service (never logged or echoed)
- wraps the exchange in an OpenTelemetry span
- maps every failure to ``UpstreamTimeoutError`` or ``UpstreamError`` (502)
  carrying only the upstream name and status code

Redirects are never followed: a redirect could point the server at a host
the SSRF guard never saw.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import httpx
import orjson
from loguru import logger

from src.core.config import Settings, UpstreamConfig, UpstreamName
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.error_context import sanitize_headers
from src.core.exceptions import UpstreamError, UpstreamTimeoutError
from src.core.observability import add_span_attributes, trace_operation
from src.security.ssrf import SSRFGuard

type HttpMethod = Literal["GET", "POST"]

USER_AGENT = "bags-shield-api"


@dataclass(frozen=True, slots=True)
class UpstreamResponse:
    """Decoded upstream answer.

    Attributes:
        status_code: HTTP status returned by the upstream.
        data: Decoded JSON body (None for an empty body).
        elapsed_ms: Round-trip duration in milliseconds.
    """

    status_code: int
    data: Any
    elapsed_ms: float


def create_http_client(config: UpstreamConfig) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` with pooling configured.

    Args:
        config: Upstream timeouts and pool limits.

    Returns:
        httpx.AsyncClient: Client to store on ``app.state`` and close on
            shutdown.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections,
        ),
        timeout=httpx.Timeout(config.timeout_seconds),
        follow_redirects=False,
        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
    )


class UpstreamClient:
    """Forwards validated requests to the named upstream services.

    Args:
        http_client: Shared pooled client.
        settings: Application settings (base URLs, credentials, SSRF policy).
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self.http_client = http_client
        self.settings = settings
        self.guard = SSRFGuard(settings.ssrf_config)

    def base_url(self, upstream: UpstreamName) -> str:
        config = self.settings.upstream_config
        return {
            "bags": config.bags_base_url,
            "helius": config.helius_rpc_url,
            "jupiter": config.jupiter_base_url,
        }[upstream]

    def is_configured(self, upstream: UpstreamName) -> bool:
        """Whether the credential of an upstream is present."""
        return self.settings.upstream_api_key(upstream) is not None

    def _auth(
        self, upstream: UpstreamName
    ) -> tuple[dict[str, str], dict[str, str]]:
        """Return the (headers, query params) carrying the upstream credential."""
        api_key = self.settings.upstream_api_key(upstream)
        if api_key is None:
            return {}, {}
        if upstream == "bags":
            return {"x-api-key": api_key, "Authorization": f"Bearer {api_key}"}, {}
        if upstream == "helius":
            return {}, {"api-key": api_key}
        return {"x-api-key": api_key}, {}

    async def _check_url(self, upstream: UpstreamName, url: str) -> str:
        if self.settings.ssrf_config.resolve_dns:
            decision = await self.guard.validate_resolved(url)
        else:
            decision = self.guard.validate(url)

        if not decision.allowed or decision.normalized_url is None:
            logger.error(
                "Upstream URL rejected by SSRF guard",
                upstream=upstream,
                reason=decision.reason,
            )
            raise UpstreamError(
                "Upstream URL rejected by security policy", upstream=upstream
            )
        return decision.normalized_url

    async def request(
        self,
        upstream: UpstreamName,
        method: HttpMethod,
        path: str = "",
        *,
        params: Mapping[str, str | int | float | bool] | None = None,
        json: Any = None,  # noqa: ANN401 - any JSON-serializable body
    ) -> UpstreamResponse:
        """Send one request to an upstream and decode its JSON answer.

        Args:
            upstream: Target service.
            method: HTTP method.
            path: Path relative to the service base URL (no leading slash
                needed).
            params: Query parameters.
            json: JSON body.

        Returns:
            UpstreamResponse: Status and decoded body of a 2xx answer.

        Raises:
            UpstreamTimeoutError: The upstream did not answer in time.
            UpstreamError: The URL was rejected, the connection failed, the
                status was not 2xx or the body was not JSON.
        """
        base = self.base_url(upstream).rstrip("/")
        url = f"{base}/{path.lstrip('/')}" if path else base
        url = await self._check_url(upstream, url)

        headers, auth_params = self._auth(upstream)
        query: dict[str, Any] = {**(params or {}), **auth_params}
        content = orjson.dumps(json) if json is not None else None
        if content is not None:
            headers["Content-Type"] = "application/json"

        logger.debug(
            "Upstream request",
            upstream=upstream,
            http_method=method,
            headers=sanitize_headers(headers),
        )

        with trace_operation(
            f"upstream.{upstream}", upstream=upstream, http_method=method
        ):
            start = time.perf_counter()
            try:
                response = await self.http_client.request(
                    method,
                    url,
                    params=query or None,
                    content=content,
                    headers=headers,
                )
            except httpx.TimeoutException as e:
                logger.error("Upstream request timed out", upstream=upstream)
                raise UpstreamTimeoutError(
                    f"{upstream} did not respond in time", upstream=upstream, cause=e
                ) from e
            except httpx.HTTPError as e:
                logger.error(
                    "Upstream request failed",
                    upstream=upstream,
                    error_type=type(e).__name__,
                )
                raise UpstreamError(
                    f"{upstream} request failed", upstream=upstream, cause=e
                ) from e

            elapsed_ms = (time.perf_counter() - start) * MILLISECONDS_PER_SECOND
            add_span_attributes(upstream_status=response.status_code)

        log = logger.bind(
            upstream=upstream,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
        )

        if not response.is_success:
            log.warning("Upstream returned an error status")
            raise UpstreamError(
                f"{upstream} returned HTTP {response.status_code}",
                upstream=upstream,
                upstream_status=response.status_code,
            )

        try:
            data = orjson.loads(response.content) if response.content else None
        except orjson.JSONDecodeError as e:
            log.warning("Upstream returned a non-JSON body")
            raise UpstreamError(
                f"{upstream} returned an invalid JSON body",
                upstream=upstream,
                upstream_status=response.status_code,
                cause=e,
            ) from e

        log.debug("Upstream request completed")
        return UpstreamResponse(
            status_code=response.status_code, data=data, elapsed_ms=elapsed_ms
        )

    async def rpc(
        self,
        method: str,
        params: list[Any] | None = None,
        request_id: str | int | None = 1,
    ) -> Any:  # noqa: ANN401 - JSON-RPC results are arbitrary JSON
        """Call a Helius JSON-RPC method and return its ``result``.

        Raises:
            UpstreamError: The upstream answered with a JSON-RPC error.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params or [],
        }
        response = await self.request("helius", "POST", json=payload)
        body = response.data if isinstance(response.data, dict) else {}
        if body.get("error") is not None:
            logger.warning("JSON-RPC call returned an error", rpc_method=method)
            raise UpstreamError(
                "helius returned a JSON-RPC error", upstream="helius"
            )
        return body.get("result")

    async def aclose(self) -> None:
        await self.http_client.aclose()

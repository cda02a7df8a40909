"""Integration tests for the response envelope and the header policy."""

from collections.abc import Awaitable, Callable
from typing import Any

import pytest
import pytest_check
from httpx import AsyncClient
from pytest_mock import MockerFixture

from src.core.config import SecurityConfig
from src.core.constants import WRAPPED_SOL_MINT

type ClientFactory = Callable[..., Awaitable[AsyncClient]]

SECURITY_HEADERS = {
    "cache-control": "no-store",
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "referrer-policy": "strict-origin-when-cross-origin",
}


def assert_security_headers(headers: Any) -> None:  # noqa: ANN401
    for name, value in SECURITY_HEADERS.items():
        with pytest_check.check:
            assert headers.get(name) == value, name
    with pytest_check.check:
        assert "permissions-policy" in headers


@pytest.mark.integration
class TestEnvelope:
    """Every response body has the envelope shape."""

    async def test_health(self, client_factory: ClientFactory) -> None:
        """Test health reports service info and configured upstreams."""
        # Arrange
        client = await client_factory(bags_api_key="bags-key")

        # Act
        response = await client.get("/health")

        # Assert
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["response"]["status"] == "healthy"
        assert body["response"]["upstreams"] == {
            "bags": True,
            "helius": False,
            "jupiter": False,
        }
        assert "bags-key" not in response.text
        assert body["meta"]["requestId"] == response.headers["X-Request-ID"]
        assert body["meta"]["timestamp"]

    async def test_features(self, client_factory: ClientFactory) -> None:
        """Test feature availability combines flags and credentials."""
        # Arrange
        client = await client_factory(
            jupiter_api_key="jup-key", beta_trading_enabled=True
        )

        # Act
        response = await client.get("/api/features")

        # Assert
        assert response.json()["response"] == {
            "launchpadEnabled": False,
            "betaTradingEnabled": True,
            "swapQuotesEnabled": True,
            "swapEnabled": True,
            "bagsEnabled": False,
            "rpcEnabled": False,
        }

    async def test_request_id_propagated(self, client: AsyncClient) -> None:
        """Test a safe inbound request ID is echoed in header and meta."""
        # Act
        response = await client.post(
            "/api/simulate",
            json={"mint": WRAPPED_SOL_MINT, "amount": 5},
            headers={"X-Request-ID": "client-trace-1"},
        )

        # Assert
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "client-trace-1"
        assert response.json()["meta"]["requestId"] == "client-trace-1"
        assert response.json()["meta"]["network"] == "mainnet-beta"

    @pytest.mark.parametrize(
        ("method", "path", "status_code", "code"),
        [
            ("GET", "/api/unknown", 404, "NOT_FOUND"),
            ("GET", "/api/scan", 405, "METHOD_NOT_ALLOWED"),
            ("DELETE", "/api/simulate", 405, "METHOD_NOT_ALLOWED"),
        ],
    )
    async def test_framework_errors(
        self,
        client: AsyncClient,
        method: str,
        path: str,
        status_code: int,
        code: str,
    ) -> None:
        """Test routing errors are rendered as envelopes with the header policy."""
        # Act
        response = await client.request(method, path)

        # Assert
        body = response.json()
        assert response.status_code == status_code
        assert body["success"] is False
        assert body["error"]["code"] == code
        assert body["meta"]["requestId"] == response.headers["X-Request-ID"]
        assert_security_headers(response.headers)

    async def test_unhandled_exception(
        self, client: AsyncClient, mocker: MockerFixture
    ) -> None:
        """Test a crash is a generic 500 that keeps headers and request ID."""
        # Arrange
        mocker.patch(
            "src.api.routes.scan.precheck_badges",
            side_effect=RuntimeError("connection string postgres://admin:hunter2@db"),
        )

        # Act
        response = await client.post(
            "/api/scan",
            json={"rawTransaction": "AQIDBAUGBwgJCg=="},
            headers={"X-Request-ID": "crash-42", "Origin": "https://bags.fm"},
        )

        # Assert
        body = response.json()
        assert response.status_code == 500
        assert body["error"] == {
            "code": "INTERNAL_ERROR",
            "message": "An internal server error occurred",
        }
        assert "hunter2" not in response.text
        assert body["meta"]["requestId"] == "crash-42"
        assert response.headers["X-Request-ID"] == "crash-42"
        assert_security_headers(response.headers)
        assert response.headers["access-control-allow-origin"] == "*"
        assert "X-Request-ID" in response.headers["access-control-expose-headers"]


@pytest.mark.integration
class TestHeaderPolicy:
    """Security, caching and CORS headers."""

    async def test_security_headers_in_development(self, client: AsyncClient) -> None:
        """Test the policy is applied and HSTS is left out outside production."""
        # Act
        response = await client.get("/health")

        # Assert
        assert_security_headers(response.headers)
        assert "strict-transport-security" not in response.headers

    async def test_hsts_in_production(self, client_factory: ClientFactory) -> None:
        """Test HSTS is sent in production."""
        # Arrange
        client = await client_factory(environment="production", debug=False)

        # Act
        response = await client.get("/health")

        # Assert
        assert response.headers["strict-transport-security"] == (
            "max-age=31536000; includeSubDomains"
        )

    async def test_options_is_204(self, client: AsyncClient) -> None:
        """Test any OPTIONS request is an empty 204 with request ID and headers."""
        # Act
        response = await client.options("/api/scan")

        # Assert
        assert response.status_code == 204
        assert response.content == b""
        assert "X-Request-ID" in response.headers
        assert response.headers["access-control-allow-origin"] == "*"
        assert_security_headers(response.headers)

    async def test_preflight_allowed_origin(self, client_factory: ClientFactory) -> None:
        """Test a preflight from an allowed origin is approved."""
        # Arrange
        client = await client_factory(
            security_config=SecurityConfig(cors_allowed_origins=["https://bags.fm"])
        )

        # Act
        response = await client.options(
            "/api/apply",
            headers={
                "Origin": "https://bags.fm",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, idempotency-key",
            },
        )

        # Assert
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "https://bags.fm"

    async def test_preflight_disallowed_origin(
        self, client_factory: ClientFactory
    ) -> None:
        """Test a preflight from another origin is a 400 envelope."""
        # Arrange
        client = await client_factory(
            security_config=SecurityConfig(cors_allowed_origins=["https://bags.fm"])
        )

        # Act
        response = await client.options(
            "/api/apply",
            headers={
                "Origin": "https://evil.example",
                "Access-Control-Request-Method": "POST",
            },
        )

        # Assert
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"
        assert "X-Request-ID" in response.headers
        assert_security_headers(response.headers)

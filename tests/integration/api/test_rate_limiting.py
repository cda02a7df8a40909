"""Integration tests for IP rate limiting."""

from collections.abc import Awaitable, Callable

import pytest
from httpx import AsyncClient

from src.core.config import RateLimitConfig, RateLimitRule, SecurityConfig

type ClientFactory = Callable[..., Awaitable[AsyncClient]]


@pytest.mark.integration
class TestRateLimiting:
    """Fixed-window limits per client IP and route."""

    async def test_limit_exceeded(self, client_factory: ClientFactory) -> None:
        """Test the request over budget is 429 with Retry-After."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(max_requests=10)
        )

        # Act
        responses = [await client.get("/api/features") for _ in range(11)]

        # Assert
        assert [r.status_code for r in responses[:10]] == [200] * 10
        limited = responses[10]
        body = limited.json()
        assert limited.status_code == 429
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["details"]["limit"] == 10
        assert 1 <= int(limited.headers["Retry-After"]) <= 60
        assert body["error"]["details"]["retryAfter"] == int(
            limited.headers["Retry-After"]
        )

    async def test_clients_have_separate_budgets(
        self, client_factory: ClientFactory
    ) -> None:
        """Test forwarded client IPs are counted separately behind a proxy."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(max_requests=1),
            security_config=SecurityConfig(trust_proxy_headers=True),
        )

        # Act
        first = await client.get(
            "/api/features", headers={"X-Forwarded-For": "198.51.100.1"}
        )
        other = await client.get(
            "/api/features", headers={"X-Forwarded-For": "198.51.100.2"}
        )
        again = await client.get(
            "/api/features", headers={"X-Forwarded-For": "198.51.100.1"}
        )

        # Assert
        assert (first.status_code, other.status_code, again.status_code) == (
            200,
            200,
            429,
        )

    async def test_forwarded_header_ignored_without_proxy(
        self, client_factory: ClientFactory
    ) -> None:
        """Test a spoofed X-Forwarded-For cannot buy a fresh budget."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(max_requests=1),
            security_config=SecurityConfig(trust_proxy_headers=False),
        )

        # Act
        await client.get("/api/features", headers={"X-Forwarded-For": "10.0.0.1"})
        response = await client.get(
            "/api/features", headers={"X-Forwarded-For": "10.0.0.2"}
        )

        # Assert
        assert response.status_code == 429

    async def test_route_override(self, client_factory: ClientFactory) -> None:
        """Test per-route rules apply to their route only."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(
                max_requests=5,
                route_limits={"scan": RateLimitRule(max_requests=1)},
            )
        )
        scan_body = {"rawTransaction": "AQIDBAUGBwgJCg=="}

        # Act
        first_scan = await client.post("/api/scan", json=scan_body)
        second_scan = await client.post("/api/scan", json=scan_body)
        features = await client.get("/api/features")

        # Assert
        assert first_scan.status_code == 200
        assert second_scan.status_code == 429
        assert second_scan.json()["error"]["details"]["limit"] == 1
        assert features.status_code == 200

    async def test_health_not_limited(self, client_factory: ClientFactory) -> None:
        """Test the health check is never rate limited."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(max_requests=1)
        )

        # Act
        statuses = {(await client.get("/health")).status_code for _ in range(3)}

        # Assert
        assert statuses == {200}

    async def test_rejected_body_still_counts(
        self, client_factory: ClientFactory
    ) -> None:
        """Test invalid requests consume budget, so probing is limited too."""
        # Arrange
        client = await client_factory(
            rate_limit_config=RateLimitConfig(max_requests=1)
        )

        # Act
        invalid = await client.post("/api/scan", json={})
        valid = await client.post(
            "/api/scan", json={"rawTransaction": "AQIDBAUGBwgJCg=="}
        )

        # Assert
        assert invalid.status_code == 400
        assert valid.status_code == 429

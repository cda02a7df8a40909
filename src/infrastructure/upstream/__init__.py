"""Clients for the third-party APIs (Bags, Helius, Jupiter)."""

from src.infrastructure.upstream.client import (
    UpstreamClient,
    UpstreamResponse,
    create_http_client,
)

__all__ = ["UpstreamClient", "UpstreamResponse", "create_http_client"]

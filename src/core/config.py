"""Centralized configuration management with environment-aware defaults.

This module implements the configuration system using Pydantic Settings,
providing type-safe configuration with validation, environment variable
support, and cloud provider auto-detection.

Features:
- **Type safety**: All configuration values are validated and typed
- **Environment variables**: Supports .env files and environment overrides
- **Nested configuration**: Uses __ delimiter for complex config structures
- **Secrets**: Upstream API keys are held as SecretStr and never rendered
- **Caching**: Configuration is cached for performance

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
4. Environment-based defaults (production vs development)
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.constants import (
    DEFAULT_HSTS_MAX_AGE,
    MAX_BODY_BYTES,
    MAX_JSON_DEPTH,
    MAX_JSON_SIZE,
    MAX_URL_LENGTH,
)

type UpstreamName = Literal["bags", "helius", "jupiter"]


class LogConfig(BaseModel):
    """Simplified logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json", "gcp", "aws"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """Cloud-agnostic observability configuration."""

    enable_tracing: bool = Field(
        default=True,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "gcp", "aws", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint (for OTLP/AWS exporters)",
    )
    gcp_project_id: str | None = Field(
        default=None,
        description="GCP project ID (only for GCP exporter)",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", "gcp_project_id", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class SecurityConfig(BaseModel):
    """Inbound request hardening: body limits, CORS and response headers."""

    max_json_size: int = Field(
        default=MAX_JSON_SIZE,
        gt=0,
        description="Maximum JSON text length accepted by the safe parser",
    )
    max_json_depth: int = Field(
        default=MAX_JSON_DEPTH,
        gt=0,
        description="Maximum bracket nesting depth accepted by the safe parser",
    )
    max_body_bytes: int = Field(
        default=MAX_BODY_BYTES,
        gt=0,
        description="Maximum request body size in bytes",
    )
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by CORS ('*' allows any origin)",
    )
    cors_max_age: int = Field(
        default=86400,
        ge=0,
        description="Preflight cache lifetime in seconds",
    )
    trust_proxy_headers: bool | None = Field(
        default=None,
        description="Trust X-Forwarded-For / X-Real-IP. Defaults to production only.",
    )
    hsts_max_age: int = Field(
        default=DEFAULT_HSTS_MAX_AGE,
        ge=0,
        description="Strict-Transport-Security max-age in seconds",
    )
    hsts_include_subdomains: bool = Field(
        default=True,
        description="Whether HSTS covers subdomains",
    )

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a comma separated string as well as a JSON list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class RateLimitRule(BaseModel):
    """A fixed-window limit: at most ``max_requests`` per ``window_ms``."""

    window_ms: int = Field(default=60_000, gt=0)
    max_requests: int = Field(default=20, gt=0)


class RateLimitConfig(BaseModel):
    """Best-effort, process-local rate limiting."""

    enabled: bool = Field(default=True, description="Enable IP rate limiting")
    window_ms: int = Field(
        default=60_000,
        gt=0,
        description="Default window length in milliseconds",
    )
    max_requests: int = Field(
        default=20,
        gt=0,
        description="Default number of requests allowed per window",
    )
    idempotency_window_ms: int = Field(
        default=3_600_000,
        gt=0,
        description="Window during which an idempotency key may be used once",
    )
    idempotency_max: int = Field(
        default=1,
        gt=0,
        description="Acceptances allowed per idempotency key and window",
    )
    sweep_interval_ms: int = Field(
        default=60_000,
        gt=0,
        description="Minimum delay between two sweeps of expired entries",
    )
    route_limits: dict[str, RateLimitRule] = Field(
        default_factory=dict,
        description="Per-route overrides keyed by route name (e.g. 'scan')",
    )

    def rule_for(self, route: str) -> RateLimitRule:
        """Return the effective rule for a route."""
        return self.route_limits.get(
            route,
            RateLimitRule(window_ms=self.window_ms, max_requests=self.max_requests),
        )


class SSRFConfig(BaseModel):
    """Outbound URL policy applied before any server-side fetch."""

    allowed_schemes: list[str] = Field(
        default_factory=lambda: ["https"],
        description="URL schemes allowed for outbound requests",
    )
    blocked_hosts: list[str] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "::1",
            "0.0.0.0",  # noqa: S104 - blocklisted, never bound
            "metadata.google.internal",
            "metadata",
            "instance-data",
            "169.254.169.254",
            "fd00:ec2::254",
        ],
        description="Hostnames that are always rejected",
    )
    allow_private_ips: bool = Field(
        default=False,
        description="Allow private, loopback and link-local IP literals",
    )
    allow_ip_addresses: bool = Field(
        default=False,
        description="Allow bare IP literals as hostnames",
    )
    max_url_length: int = Field(
        default=MAX_URL_LENGTH,
        gt=0,
        description="Maximum URL length",
    )
    allowed_ports: list[int] | None = Field(
        default=None,
        description="Port allowlist, None allows any port",
    )
    allowed_domains: list[str] | None = Field(
        default=None,
        description="Optional domain allowlist (subdomains included)",
    )
    resolve_dns: bool = Field(
        default=False,
        description="Resolve hostnames and reject private addresses before fetching",
    )


class UpstreamConfig(BaseModel):
    """Third-party APIs the routes forward to."""

    bags_base_url: str = Field(
        default="https://public-api-v2.bags.fm/api/v1",
        description="Bags public API base URL",
    )
    helius_rpc_url: str = Field(
        default="https://mainnet.helius-rpc.com",
        description="Helius RPC endpoint",
    )
    jupiter_base_url: str = Field(
        default="https://api.jup.ag/swap/v1",
        description="Jupiter swap API base URL",
    )
    timeout_seconds: float = Field(
        default=12.0,
        gt=0,
        le=60,
        description="Total timeout for one upstream request",
    )
    max_connections: int = Field(
        default=100,
        ge=1,
        description="Connection pool size of the shared HTTP client",
    )
    max_keepalive_connections: int = Field(
        default=20,
        ge=0,
        description="Idle connections kept in the pool",
    )


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Bags Shield API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    docs_url: str | None = Field(default="/docs", description="Swagger UI URL")
    redoc_url: str | None = Field(default="/redoc", description="ReDoc URL")
    openapi_url: str | None = Field(
        default="/openapi.json", description="OpenAPI schema URL"
    )

    # Upstream credentials (BAGS_API_KEY, HELIUS_API_KEY, JUPITER_API_KEY)
    bags_api_key: SecretStr | None = Field(default=None, description="Bags API key")
    helius_api_key: SecretStr | None = Field(
        default=None, description="Helius API key"
    )
    jupiter_api_key: SecretStr | None = Field(
        default=None, description="Jupiter API key"
    )

    # Feature flags (LAUNCHPAD_ENABLED, BETA_TRADING_ENABLED)
    launchpad_enabled: bool = Field(default=False, description="Enable launchpad")
    beta_trading_enabled: bool = Field(
        default=False, description="Enable swap transaction building"
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )
    security_config: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Request hardening configuration"
    )
    rate_limit_config: RateLimitConfig = Field(
        default_factory=RateLimitConfig, description="Rate limiting configuration"
    )
    ssrf_config: SSRFConfig = Field(
        default_factory=SSRFConfig, description="Outbound URL policy"
    )
    upstream_config: UpstreamConfig = Field(
        default_factory=UpstreamConfig, description="Upstream API configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if self.security_config.trust_proxy_headers is None:
            self.security_config.trust_proxy_headers = (
                self.environment == "production"
            )

        if self.environment == "production":
            if self.observability_config.exporter_type == "console":
                self.observability_config.exporter_type = self._detect_exporter()
            if self.observability_config.trace_sample_rate == 1.0:
                self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json", "gcp", "aws"]:
        """Auto-detect log formatter based on environment."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        if os.getenv("AWS_EXECUTION_ENV"):  # AWS
            return "aws"

        if self.environment == "development":
            return "console"
        return "json"

    def _detect_exporter(self) -> Literal["console", "gcp", "aws", "otlp", "none"]:
        """Auto-detect trace exporter based on environment."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        if os.getenv("AWS_EXECUTION_ENV"):  # AWS
            return "aws"

        if self.environment == "development":
            return "console"
        return "otlp"

    @field_validator("docs_url", "redoc_url", "openapi_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v

    @field_validator("bags_api_key", "helius_api_key", "jupiter_api_key", mode="before")
    @classmethod
    def blank_key_to_none(cls, v: str | SecretStr | None) -> str | SecretStr | None:
        """Treat blank credentials as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, str):
            return v.strip()
        return v

    @property
    def is_production(self) -> bool:
        """Whether the service runs in production."""
        return self.environment == "production"

    def upstream_api_key(self, name: UpstreamName) -> str | None:
        """Return the plain API key of an upstream, or None when unset."""
        secret = {
            "bags": self.bags_api_key,
            "helius": self.helius_api_key,
            "jupiter": self.jupiter_api_key,
        }[name]
        return secret.get_secret_value() if secret else None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

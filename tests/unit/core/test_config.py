"""Unit tests for src.core.config."""

import pytest
from pydantic import ValidationError

from src.core.config import (
    RateLimitConfig,
    RateLimitRule,
    SecurityConfig,
    Settings,
    get_settings,
)
from src.core.constants import MAX_BODY_BYTES


@pytest.mark.unit
class TestSettingsDefaults:
    """Test default values and environment based defaults."""

    def test_defaults(self) -> None:
        """Test a bare Settings instance uses the documented defaults."""
        # Act
        settings = Settings()

        # Assert
        assert settings.app_name == "Bags Shield API"
        assert settings.environment == "development"
        assert settings.launchpad_enabled is False
        assert settings.beta_trading_enabled is False
        assert settings.security_config.max_body_bytes == MAX_BODY_BYTES
        assert settings.rate_limit_config.window_ms == 60_000
        assert settings.rate_limit_config.max_requests == 20
        assert settings.ssrf_config.allowed_schemes == ["https"]
        assert settings.is_production is False

    def test_proxy_headers_trusted_only_in_production(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test trust_proxy_headers defaults to the production flag."""
        # Arrange & Act
        development = Settings()
        monkeypatch.setenv("ENVIRONMENT", "production")
        production = Settings()

        # Assert
        assert development.security_config.trust_proxy_headers is False
        assert production.security_config.trust_proxy_headers is True
        assert production.is_production is True

    def test_explicit_proxy_trust_is_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an explicit trust_proxy_headers value is not overridden."""
        # Arrange
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SECURITY_CONFIG__TRUST_PROXY_HEADERS", "false")

        # Act
        settings = Settings()

        # Assert
        assert settings.security_config.trust_proxy_headers is False

    def test_production_lowers_sampling_and_picks_exporter(
        self, monkeypatch: pytest.MonkeyPatch, mock_cloud_env: dict
    ) -> None:
        """Test production switches the console exporter and sampling rate."""
        # Arrange
        mock_cloud_env["clear_all"]()
        monkeypatch.setenv("ENVIRONMENT", "production")

        # Act
        settings = Settings()

        # Assert
        assert settings.observability_config.exporter_type == "otlp"
        assert settings.observability_config.trace_sample_rate == 0.1
        assert settings.log_config.log_formatter_type == "json"

    @pytest.mark.parametrize(
        ("cloud", "expected"),
        [("set_gcp", "gcp"), ("set_aws", "aws")],
    )
    def test_formatter_detected_from_cloud(
        self, mock_cloud_env: dict, cloud: str, expected: str
    ) -> None:
        """Test the log formatter follows the cloud runtime."""
        # Arrange
        mock_cloud_env[cloud]()

        # Act
        settings = Settings()

        # Assert
        assert settings.log_config.log_formatter_type == expected


@pytest.mark.unit
class TestSettingsEnvironment:
    """Test values read from the environment."""

    def test_upstream_keys_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test API keys are read as secrets and returned in plain form on demand."""
        # Arrange
        monkeypatch.setenv("BAGS_API_KEY", "  bags-secret  ")
        monkeypatch.setenv("HELIUS_API_KEY", "helius-secret")

        # Act
        settings = Settings()

        # Assert
        assert settings.upstream_api_key("bags") == "bags-secret"
        assert settings.upstream_api_key("helius") == "helius-secret"
        assert settings.upstream_api_key("jupiter") is None
        assert "bags-secret" not in repr(settings)

    def test_blank_key_is_absent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a blank API key counts as not configured."""
        # Arrange
        monkeypatch.setenv("JUPITER_API_KEY", "   ")

        # Act
        settings = Settings()

        # Assert
        assert settings.jupiter_api_key is None
        assert settings.upstream_api_key("jupiter") is None

    def test_feature_flags_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test feature flags parse boolean strings."""
        # Arrange
        monkeypatch.setenv("LAUNCHPAD_ENABLED", "true")
        monkeypatch.setenv("BETA_TRADING_ENABLED", "1")

        # Act
        settings = Settings()

        # Assert
        assert settings.launchpad_enabled is True
        assert settings.beta_trading_enabled is True

    def test_nested_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test nested configuration uses the double underscore delimiter."""
        # Arrange
        monkeypatch.setenv("RATE_LIMIT_CONFIG__MAX_REQUESTS", "5")
        monkeypatch.setenv("SECURITY_CONFIG__MAX_BODY_BYTES", "1024")

        # Act
        settings = Settings()

        # Assert
        assert settings.rate_limit_config.max_requests == 5
        assert settings.security_config.max_body_bytes == 1024

    def test_empty_docs_url_disables_docs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an empty docs URL becomes None."""
        # Arrange
        monkeypatch.setenv("DOCS_URL", "")

        # Act
        settings = Settings()

        # Assert
        assert settings.docs_url is None

    def test_invalid_environment_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an unknown environment name fails validation."""
        # Arrange
        monkeypatch.setenv("ENVIRONMENT", "qa")

        # Act & Assert
        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings_is_cached(self) -> None:
        """Test get_settings returns the same instance until the cache is cleared."""
        # Act
        first = get_settings()
        second = get_settings()
        get_settings.cache_clear()
        third = get_settings()

        # Assert
        assert first is second
        assert first is not third


@pytest.mark.unit
class TestNestedConfigs:
    """Test the nested configuration models."""

    def test_origins_accept_comma_separated_string(self) -> None:
        """Test CORS origins can be given as a comma separated string."""
        # Act
        config = SecurityConfig.model_validate(
            {"cors_allowed_origins": "https://a.example, https://b.example ,"}
        )

        # Assert
        assert config.cors_allowed_origins == [
            "https://a.example",
            "https://b.example",
        ]

    def test_rule_for_falls_back_to_defaults(self) -> None:
        """Test routes without an override use the default window and limit."""
        # Arrange
        config = RateLimitConfig(
            window_ms=1000,
            max_requests=3,
            route_limits={"apply": RateLimitRule(window_ms=500, max_requests=1)},
        )

        # Act
        default_rule = config.rule_for("scan")
        apply_rule = config.rule_for("apply")

        # Assert
        assert (default_rule.window_ms, default_rule.max_requests) == (1000, 3)
        assert (apply_rule.window_ms, apply_rule.max_requests) == (500, 1)

    def test_rate_limit_values_must_be_positive(self) -> None:
        """Test zero windows and limits are rejected."""
        # Act & Assert
        with pytest.raises(ValidationError):
            RateLimitConfig(max_requests=0)
        with pytest.raises(ValidationError):
            RateLimitConfig(window_ms=0)

"""Shared fixtures for unit tests."""

import os
from collections.abc import Callable, Generator
from typing import Any, cast

import pytest
from pytest_mock import MockerFixture, MockType

from src.core.config import ObservabilityConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.error_context import _get_sensitive_fields

type SettingsFactory = Callable[..., Settings]


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a real Settings object built from test environment variables.

    Returns:
        Settings: Settings with test defaults.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "3000")

    return Settings()


@pytest.fixture
def settings_factory() -> SettingsFactory:
    """Build Settings with tracing disabled and keyword overrides applied.

    Usage:
        def test_something(settings_factory):
            settings = settings_factory(bags_api_key="test-key")
    """

    def _create(**overrides: object) -> Settings:
        overrides.setdefault(
            "observability_config", ObservabilityConfig(enable_tracing=False)
        )
        return Settings(**cast("dict[str, Any]", overrides))

    return _create


@pytest.fixture
def mock_app(mocker: MockerFixture) -> MockType:
    """Provide a mock ASGI app for middleware constructors.

    Returns:
        MockType: Mock app that middleware can wrap.
    """
    app = mocker.Mock()
    app.__name__ = "mock_app"
    app.__module__ = "tests.unit.conftest"
    return cast("MockType", app)


@pytest.fixture
def mock_uvicorn(mocker: MockerFixture) -> MockType:
    """Mock uvicorn.run to prevent server startup."""
    return mocker.patch("uvicorn.run")


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Isolate environment variables for testing.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    # Ensure PORT is not set unless explicitly required by test
    monkeypatch.delenv("PORT", raising=False)
    return monkeypatch


@pytest.fixture
def mock_main_dependencies(
    mocker: MockerFixture,
    mock_settings: Settings,
) -> dict[str, MockType]:
    """Mock common main.py dependencies.

    Returns:
        dict[str, MockType]: Dictionary of mocked dependencies.
    """
    mocks = {
        "get_settings": mocker.patch("main.get_settings"),
        "setup_logging": mocker.patch("main.setup_logging"),
        "logger": mocker.patch("main.logger"),
        "uvicorn_run": mocker.patch("uvicorn.run"),
    }
    mocks["get_settings"].return_value = mock_settings
    return mocks


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings caches before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Backup and restore environment variables to prevent test interference.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    # Cloud detection variables are left alone, tests set them explicitly
    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "PORT",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "SECURITY_CONFIG__",
        "RATE_LIMIT_CONFIG__",
        "SSRF_CONFIG__",
        "UPSTREAM_CONFIG__",
        "BAGS_API_KEY",
        "HELIUS_API_KEY",
        "JUPITER_API_KEY",
        "LAUNCHPAD_ENABLED",
        "BETA_TRADING_ENABLED",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_cloud_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, Callable[[], None]]:
    """Helpers that fake a GCP or AWS runtime.

    Returns:
        dict[str, Callable[[], None]]: ``set_gcp``, ``set_aws`` and ``clear_all``.
    """

    def set_gcp() -> None:
        monkeypatch.setenv("K_SERVICE", "test-service")
        monkeypatch.setenv("K_REVISION", "test-revision")

    def set_aws() -> None:
        monkeypatch.setenv("AWS_EXECUTION_ENV", "AWS_ECS_FARGATE")
        monkeypatch.setenv("AWS_REGION", "us-east-1")

    def clear_all() -> None:
        for key in ["K_SERVICE", "K_REVISION", "AWS_EXECUTION_ENV", "AWS_REGION"]:
            monkeypatch.delenv(key, raising=False)

    clear_all()
    return {"set_gcp": set_gcp, "set_aws": set_aws, "clear_all": clear_all}


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Clear the request context before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()

"""Main entry point for running the Bags Shield API."""

import os
from typing import Any

import uvicorn
from loguru import logger

from src.core.config import Settings, get_settings
from src.core.logging import setup_logging

APP_IMPORT_STRING = "src.api.main:app"


def uvicorn_log_config() -> dict[str, Any]:
    """Route uvicorn's own loggers through Loguru."""
    intercepted = {"handlers": ["default"], "level": "INFO", "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {"class": "src.core.logging.InterceptHandler"},
        },
        "loggers": {
            "uvicorn": intercepted,
            "uvicorn.error": intercepted,
            "uvicorn.access": intercepted,
        },
    }


def resolve_port(settings: Settings) -> int:
    """Prefer the platform provided ``PORT`` (Cloud Run, Heroku) over settings."""
    return int(os.environ.get("PORT", settings.api_port))


def main() -> None:
    """Start uvicorn with Loguru intercepting its logs."""
    settings = get_settings()

    setup_logging(settings)

    port = resolve_port(settings)
    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info(
        "Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode
    )

    # Reload needs the import string; uvicorn trusts proxy headers only
    # when the application does
    uvicorn.run(
        APP_IMPORT_STRING,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=uvicorn_log_config(),
        proxy_headers=bool(settings.security_config.trust_proxy_headers),
        server_header=False,
    )


if __name__ == "__main__":
    main()

"""Liveness endpoint."""

from fastapi import APIRouter, Response

from src.api.dependencies import SettingsDep
from src.api.utils.responses import success_response

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(settings: SettingsDep) -> Response:
    """Health check endpoint for monitoring and container orchestration.

    Reports which upstream credentials are configured so a deployment with
    a missing key is visible without calling the proxied routes. Not rate
    limited and excluded from request logging.
    """
    return success_response(
        {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "upstreams": {
                name: settings.upstream_api_key(name) is not None
                for name in ("bags", "helius", "jupiter")
            },
        }
    )

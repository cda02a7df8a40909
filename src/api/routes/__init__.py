"""Route handlers of the Bags Shield API.

Handlers are thin: they declare their guards, receive a validated payload
and either compute a small local result or forward to an upstream.
"""

from fastapi import APIRouter

from src.api.routes import (
    apply,
    bags,
    features,
    health,
    helius,
    launchpad,
    scan,
    simulate,
    swap,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(features.router, prefix="/api")
api_router.include_router(scan.router, prefix="/api")
api_router.include_router(simulate.router, prefix="/api")
api_router.include_router(apply.router, prefix="/api")
api_router.include_router(launchpad.router, prefix="/api")
api_router.include_router(bags.router, prefix="/api")
api_router.include_router(helius.router, prefix="/api")
api_router.include_router(swap.router, prefix="/api")

__all__ = ["api_router"]

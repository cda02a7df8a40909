"""Feature flags exposed to the web client."""

from fastapi import APIRouter, Depends, Response

from src.api.constants import ROUTE_FEATURES
from src.api.dependencies import SettingsDep, rate_limit
from src.api.utils.responses import success_response

router = APIRouter(tags=["features"])


@router.get("/features", dependencies=[Depends(rate_limit(ROUTE_FEATURES))])
async def features(settings: SettingsDep) -> Response:
    """Return which features the client may offer.

    A feature is available only when its flag is on and the upstream it
    depends on has a credential.
    """
    jupiter = settings.upstream_api_key("jupiter") is not None
    return success_response(
        {
            "launchpadEnabled": settings.launchpad_enabled,
            "betaTradingEnabled": settings.beta_trading_enabled,
            "swapQuotesEnabled": jupiter,
            "swapEnabled": jupiter and settings.beta_trading_enabled,
            "bagsEnabled": settings.upstream_api_key("bags") is not None,
            "rpcEnabled": settings.upstream_api_key("helius") is not None,
        }
    )

"""Jupiter swap quotes and swap transaction building."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from loguru import logger

from src.api.constants import ROUTE_SWAP
from src.api.dependencies import (
    UpstreamDep,
    json_body,
    rate_limit,
    require_credential,
    require_feature,
)
from src.api.utils.responses import success_response
from src.security.schemas import QuoteRequest, SwapRequest
from src.security.validation import QUOTE_RULES

router = APIRouter(
    prefix="/swap",
    tags=["swap"],
    dependencies=[
        Depends(rate_limit(ROUTE_SWAP)),
        Depends(require_credential("jupiter")),
    ],
)


def quote_params(payload: QuoteRequest) -> dict[str, str | int]:
    """Render a quote request as Jupiter query parameters."""
    params: dict[str, str | int] = {}
    for key, value in payload.to_upstream().items():
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        elif isinstance(value, list):
            params[key] = ",".join(str(item) for item in value)
        else:
            params[key] = value
    return params


@router.post("/quote")
async def quote(
    payload: Annotated[QuoteRequest, Depends(json_body(QuoteRequest, QUOTE_RULES))],
    upstream: UpstreamDep,
) -> Response:
    result = await upstream.request(
        "jupiter", "GET", "quote", params=quote_params(payload)
    )
    return success_response(result.data, meta={"upstream": "jupiter"})


@router.post("", dependencies=[Depends(require_feature("beta_trading_enabled"))])
async def swap(
    payload: Annotated[SwapRequest, Depends(json_body(SwapRequest))],
    upstream: UpstreamDep,
) -> Response:
    """Build a serialized swap transaction for the user to sign."""
    logger.info("Building swap transaction", user=payload.user_public_key)
    result = await upstream.request(
        "jupiter", "POST", "swap", json=payload.to_upstream()
    )
    return success_response(result.data, meta={"upstream": "jupiter"})

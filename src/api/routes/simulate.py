"""Swap simulation echo."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from src.api.constants import ROUTE_SIMULATE
from src.api.dependencies import json_body, rate_limit
from src.api.utils.responses import success_response
from src.security.schemas import SimulateRequest

router = APIRouter(tags=["simulate"])


@router.post("/simulate", dependencies=[Depends(rate_limit(ROUTE_SIMULATE))])
async def simulate(
    payload: Annotated[SimulateRequest, Depends(json_body(SimulateRequest))],
) -> Response:
    """Return the sanitized payload the simulation would run with."""
    return success_response(
        {"note": "simulate-ok", "received": payload.to_upstream()},
        meta={"network": payload.network},
    )

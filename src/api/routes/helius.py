"""Helius RPC proxy.

Only the read-only and simulation methods allowed by ``RpcProxyRequest``
are forwarded; the API key is appended server-side and never returned.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from src.api.constants import ROUTE_HELIUS
from src.api.dependencies import UpstreamDep, json_body, rate_limit, require_credential
from src.api.utils.responses import success_response
from src.core.exceptions import UpstreamError, ValidationError
from src.security.sanitizer import sanitize_pubkey
from src.security.schemas import RpcProxyRequest

LAMPORTS_PER_SOL = 1_000_000_000

router = APIRouter(
    prefix="/helius",
    tags=["helius"],
    dependencies=[
        Depends(rate_limit(ROUTE_HELIUS)),
        Depends(require_credential("helius")),
    ],
)


@router.post("/rpc")
async def rpc_proxy(
    payload: Annotated[RpcProxyRequest, Depends(json_body(RpcProxyRequest))],
    upstream: UpstreamDep,
) -> Response:
    """Forward one JSON-RPC call and relay the upstream JSON-RPC body."""
    result = await upstream.request("helius", "POST", json=payload.to_upstream())
    return success_response(
        result.data, meta={"upstream": "helius", "method": payload.method}
    )


@router.get("/balance/{address}")
async def balance(address: str, upstream: UpstreamDep) -> Response:
    pubkey = sanitize_pubkey(address)
    if pubkey is None:
        raise ValidationError(
            "Request validation failed",
            issues=[{"path": "address", "message": "Invalid Solana public key"}],
        )

    result = await upstream.rpc("getBalance", [pubkey])
    lamports = result.get("value") if isinstance(result, dict) else None
    if not isinstance(lamports, int) or isinstance(lamports, bool):
        raise UpstreamError("helius returned an unexpected balance", upstream="helius")
    return success_response(
        {
            "address": pubkey,
            "lamports": lamports,
            "sol": lamports / LAMPORTS_PER_SOL,
        },
        meta={"upstream": "helius"},
    )


@router.get("/slot")
async def slot(upstream: UpstreamDep) -> Response:
    result = await upstream.rpc("getSlot")
    return success_response({"slot": result}, meta={"upstream": "helius"})

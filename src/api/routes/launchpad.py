"""Launchpad token draft preflight.

A draft that reaches the handler already passed every blocking check (the
validation pipeline rejects the request otherwise), so the report lists
only non-blocking warnings about fields worth filling in.
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from src.api.constants import ROUTE_LAUNCHPAD
from src.api.dependencies import json_body, rate_limit, require_feature
from src.api.utils.responses import success_response
from src.core.context import RequestContext
from src.core.types import Issue
from src.security.schemas import TokenDraft
from src.security.validation import TOKEN_DRAFT_RULES

router = APIRouter(prefix="/launchpad", tags=["launchpad"])


def draft_warnings(draft: TokenDraft) -> list[Issue]:
    """List the optional fields left empty in a draft."""
    warnings: list[Issue] = []
    if not draft.description:
        warnings.append(
            {
                "path": "description",
                "message": "A description helps buyers trust the token",
            }
        )
    if draft.image_url is None:
        warnings.append({"path": "imageUrl", "message": "No token image provided"})
    if draft.website_url is None and draft.twitter_handle is None:
        warnings.append(
            {
                "path": "websiteUrl",
                "message": "No website or Twitter handle provided",
            }
        )
    return warnings


@router.post(
    "/token-draft",
    dependencies=[
        Depends(rate_limit(ROUTE_LAUNCHPAD)),
        Depends(require_feature("launchpad_enabled")),
    ],
)
async def token_draft(
    draft: Annotated[TokenDraft, Depends(json_body(TokenDraft, TOKEN_DRAFT_RULES))],
) -> Response:
    """Validate a token draft and return its preflight report."""
    return success_response(
        {
            "isValid": True,
            "issues": [],
            "warnings": draft_warnings(draft),
            "validatedAt": datetime.now(UTC).isoformat(),
            "requestId": RequestContext.get_request_id(),
            "draft": draft.to_upstream(),
        }
    )

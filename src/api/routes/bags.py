"""Bags public API proxy.

``/api/bags/{path}`` forwards to the same path under the configured Bags
base URL with the server-side API key. Path segments are restricted to a
safe character set so the forwarded URL cannot escape the base path.
"""

import re
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response

from src.api.constants import ROUTE_BAGS
from src.api.dependencies import (
    UpstreamDep,
    json_object_body,
    rate_limit,
    require_credential,
)
from src.api.utils.responses import success_response
from src.core.exceptions import ValidationError

SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
MAX_QUERY_PARAMS = 20
MAX_QUERY_VALUE_LENGTH = 256

router = APIRouter(
    prefix="/bags",
    tags=["bags"],
    dependencies=[
        Depends(rate_limit(ROUTE_BAGS)),
        Depends(require_credential("bags")),
    ],
)


def _invalid(path: str, message: str) -> ValidationError:
    return ValidationError(
        "Request validation failed", issues=[{"path": path, "message": message}]
    )


def safe_upstream_path(path: str) -> str:
    """Validate a client supplied path and return it normalized.

    Raises:
        ValidationError: A segment is empty, ``.``/``..`` or has characters
            outside ``[A-Za-z0-9._-]``.
    """
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments:
        raise _invalid("path", "An upstream path is required")
    for segment in segments:
        if segment in {".", ".."} or not SEGMENT_PATTERN.match(segment):
            raise _invalid("path", f"Invalid path segment '{segment[:32]}'")
    return "/".join(segments)


def forwarded_query(request: Request) -> dict[str, str]:
    """Return the query parameters to forward, bounded in count and size."""
    params = dict(request.query_params)
    if len(params) > MAX_QUERY_PARAMS:
        raise _invalid("query", f"At most {MAX_QUERY_PARAMS} query parameters allowed")
    for name, value in params.items():
        if len(value) > MAX_QUERY_VALUE_LENGTH:
            raise _invalid(f"query.{name}", "Query parameter value is too long")
    return params


@router.get("/{path:path}")
async def bags_get(path: str, request: Request, upstream: UpstreamDep) -> Response:
    target = safe_upstream_path(path)
    result = await upstream.request(
        "bags", "GET", target, params=forwarded_query(request)
    )
    return success_response(result.data, meta={"upstream": "bags"})


@router.post("/{path:path}")
async def bags_post(
    path: str,
    request: Request,
    upstream: UpstreamDep,
    body: Annotated[dict[str, Any], Depends(json_object_body)],
) -> Response:
    target = safe_upstream_path(path)
    result = await upstream.request(
        "bags", "POST", target, params=forwarded_query(request), json=body
    )
    return success_response(result.data, meta={"upstream": "bags"})

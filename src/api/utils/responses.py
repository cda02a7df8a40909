"""orjson response class and the response envelope builders.

Every route returns its payload through ``success_response`` and every
exception handler through ``error_response`` so the body always has the
envelope shape::

    {"success": ..., "response" | "error": ..., "meta": {"requestId", "timestamp"}}

Header policy (no-store caching, security headers, CORS) is applied by the
middleware stack, not here, so it also covers responses built by Starlette
itself.
"""

from collections.abc import Mapping
from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.api.schemas.envelope import (
    ErrorBody,
    ErrorEnvelope,
    ResponseMeta,
    SuccessEnvelope,
)
from src.core.context import RequestContext
from src.core.exceptions import ErrorCode


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for JSON serialization.

    Pydantic models are dumped by alias so client-facing keys stay camelCase.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True, exclude_none=True)

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


def build_meta(extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build the ``meta`` object for the current request.

    Args:
        extra: Route specific keys merged into the meta object.

    Returns:
        dict[str, Any]: ``requestId``, ``timestamp`` and the extra keys.
    """
    meta = ResponseMeta(request_id=RequestContext.get_request_id())
    if (received_at := RequestContext.get_timestamp()) is not None:
        meta.timestamp = received_at
    rendered = meta.model_dump(mode="json", by_alias=True)
    if extra:
        rendered.update(extra)
    return rendered


def success_response(
    payload: Any,  # noqa: ANN401 - any JSON-serializable payload
    status_code: int = 200,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> ORJSONResponse:
    """Wrap a payload in the success envelope.

    Args:
        payload: Value placed under ``response``. Pydantic models are dumped
            by alias.
        status_code: HTTP status code.
        meta: Extra keys for the ``meta`` object.
        headers: Extra response headers.

    Returns:
        ORJSONResponse: The enveloped response.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

    content = SuccessEnvelope(response=payload).model_dump(mode="json", by_alias=True)
    content["meta"] = build_meta(meta)

    return ORJSONResponse(
        status_code=status_code,
        content=content,
        headers=dict(headers) if headers else None,
    )


def error_response(
    code: str | ErrorCode,
    message: str,
    status_code: int,
    details: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> ORJSONResponse:
    """Wrap an error in the error envelope.

    Args:
        code: Machine-readable error code.
        message: Client-safe message.
        status_code: HTTP status code.
        details: Client-safe details, omitted from the body when empty.
        headers: Extra response headers (``Retry-After``, ``Allow``...).

    Returns:
        ORJSONResponse: The enveloped error response.
    """
    envelope = ErrorEnvelope(
        error=ErrorBody(
            code=code.value if isinstance(code, ErrorCode) else code,
            message=message,
            details=dict(details) if details else None,
        ),
    )
    content = envelope.model_dump(mode="json", by_alias=True, exclude_none=True)
    content["meta"] = build_meta()

    return ORJSONResponse(
        status_code=status_code,
        content=content,
        headers=dict(headers) if headers else None,
    )

"""Response envelope models shared by every route.

Every body the API returns has the same top-level shape::

    {"success": true,  "response": ..., "meta": {...}}
    {"success": false, "error": {"code", "message", "details"?}, "meta": {...}}

``meta`` always carries the request ID and an ISO-8601 UTC timestamp; routes
may add keys of their own (``upstream``, ``network``...).
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResponseMeta(BaseModel):
    """Metadata attached to every response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    request_id: str | None = Field(
        default=None,
        alias="requestId",
        description="Request ID, also echoed in the X-Request-ID header",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Instant the request was received (UTC)",
        examples=["2025-01-14T12:00:00+00:00"],
    )


class ErrorBody(BaseModel):
    """Machine-readable error description."""

    code: str = Field(
        ...,
        description="Stable error code",
        examples=["VALIDATION_ERROR", "RATE_LIMIT_EXCEEDED", "UPSTREAM_ERROR"],
    )

    message: str = Field(
        ...,
        description="Human-readable, client-safe message",
        examples=["Request validation failed"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional client-safe details such as the issue list",
        examples=[
            {"issues": [{"path": "mint", "message": "Invalid Solana public key"}]}
        ],
    )


class SuccessEnvelope(BaseModel):
    success: bool = True
    response: Any = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorBody
    meta: ResponseMeta = Field(default_factory=ResponseMeta)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "success": False,
                    "error": {
                        "code": "RATE_LIMIT_EXCEEDED",
                        "message": "Too many requests, please retry later",
                        "details": {"retryAfter": 42, "limit": 20},
                    },
                    "meta": {
                        "requestId": "550e8400-e29b-41d4-a716-446655440000",
                        "timestamp": "2025-01-14T12:00:00+00:00",
                    },
                }
            ]
        }
    )

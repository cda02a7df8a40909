"""Composable validation pipeline for client payloads.

Every JSON route validates its body the same way:

    parse -> sanitize -> schema check -> domain rules

Parsing is done by ``safe_json_parse``; sanitizing and the schema check by
the pydantic models in ``src.security.schemas``; domain rules are small,
named, pure functions that receive the validated model and return the issues
they find. A payload is either accepted whole or rejected with every issue
found at the stage that failed. There is no partial acceptance.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pydantic

from src.core.exceptions import (
    ErrorCode,
    InvalidJsonError,
    PayloadTooLargeError,
    ValidationError,
)
from src.core.types import Issue
from src.security.json_parser import ROOT_PATH, safe_json_parse
from src.security.schemas import ApplyRequest, QuoteRequest, TokenDraft

type DomainRule[M: pydantic.BaseModel] = Callable[[M], list[Issue]]


@dataclass(frozen=True, slots=True)
class ValidationOutcome[M: pydantic.BaseModel]:
    """Either ``ok`` with ``data`` or not ``ok`` with ``issues``."""

    ok: bool
    data: M | None = None
    issues: list[Issue] = field(default_factory=list)


def issues_from_pydantic(error: pydantic.ValidationError) -> list[Issue]:
    """Flatten a pydantic error into ``{"path", "message"}`` issues.

    Paths use the client-facing (camelCase) field names joined with dots;
    errors on the payload itself are reported at ``<root>``.
    """
    issues: list[Issue] = []
    for detail in error.errors(include_url=False, include_input=False):
        path = ".".join(str(part) for part in detail["loc"]) or ROOT_PATH
        message = detail["msg"].removeprefix("Value error, ")
        issues.append({"path": path, "message": message})
    return issues


def validate_payload[M: pydantic.BaseModel](
    model: type[M],
    data: Any,
    rules: Sequence[DomainRule[M]] = (),
) -> ValidationOutcome[M]:
    """Run schema validation and then the domain rules over decoded JSON.

    Domain rules only run when the schema check passes, and all of them run
    so the client sees every rule violation at once.

    Args:
        model: Strict payload schema.
        data: Decoded JSON value.
        rules: Domain rules applied in order to the validated model.

    Returns:
        ValidationOutcome: The validated model or the issue list.
    """
    if not isinstance(data, dict):
        return ValidationOutcome(
            ok=False,
            issues=[{"path": ROOT_PATH, "message": "Expected a JSON object"}],
        )

    try:
        payload = model.model_validate(data)
    except pydantic.ValidationError as e:
        return ValidationOutcome(ok=False, issues=issues_from_pydantic(e))

    issues = [issue for rule in rules for issue in rule(payload)]
    if issues:
        return ValidationOutcome(ok=False, issues=issues)
    return ValidationOutcome(ok=True, data=payload)


def parse_json(body: str | bytes, *, max_size: int, max_depth: int) -> Any:  # noqa: ANN401 - any JSON value
    """Decode a raw body with ``safe_json_parse``, raising on failure.

    Raises:
        PayloadTooLargeError: The body exceeds ``max_size``.
        InvalidJsonError: The body is too deeply nested or not valid JSON.
    """
    parsed = safe_json_parse(body, max_size=max_size, max_depth=max_depth)
    if not parsed.ok:
        message = parsed.message or "Invalid JSON"
        if parsed.error_code is ErrorCode.PAYLOAD_TOO_LARGE:
            raise PayloadTooLargeError(message, limit=max_size)
        raise InvalidJsonError(
            message,
            error_code=parsed.error_code or ErrorCode.INVALID_JSON,
            context={"issues": parsed.issues},
        )
    return parsed.data


def parse_json_object(
    body: str | bytes, *, max_size: int, max_depth: int
) -> dict[str, Any]:
    """Decode a raw body that must be a JSON object (forwarded payloads).

    Raises:
        PayloadTooLargeError: The body exceeds ``max_size``.
        InvalidJsonError: The body is too deeply nested or not valid JSON.
        ValidationError: The body is valid JSON but not an object.
    """
    data = parse_json(body, max_size=max_size, max_depth=max_depth)
    if not isinstance(data, dict):
        raise ValidationError(
            "Request validation failed",
            issues=[{"path": ROOT_PATH, "message": "Expected a JSON object"}],
        )
    return data


def parse_and_validate[M: pydantic.BaseModel](
    body: str | bytes,
    model: type[M],
    rules: Sequence[DomainRule[M]] = (),
    *,
    max_size: int,
    max_depth: int,
) -> M:
    """Run the whole pipeline over a raw body, raising on the first failing stage.

    Raises:
        PayloadTooLargeError: The body exceeds ``max_size``.
        InvalidJsonError: The body is too deeply nested or not valid JSON.
        ValidationError: The schema check or a domain rule failed.
    """
    data = parse_json(body, max_size=max_size, max_depth=max_depth)

    outcome = validate_payload(model, data, rules)
    if not outcome.ok or outcome.data is None:
        raise ValidationError("Request validation failed", issues=outcome.issues)
    return outcome.data


# Domain rules


def flag_requires_reason(payload: ApplyRequest) -> list[Issue]:
    if payload.action == "flag" and not payload.reason:
        return [
            {"path": "reason", "message": "reason is required when action is flag"}
        ]
    return []


def flag_severity_is_known(payload: ApplyRequest) -> list[Issue]:
    severity = payload.params.get("severity")
    if payload.action == "flag" and severity is not None and (
        not isinstance(severity, str)
        or severity.lower() not in {"low", "medium", "high"}
    ):
        return [
            {
                "path": "params.severity",
                "message": "severity must be one of low, medium, high",
            }
        ]
    return []


def trading_limit_is_numeric(payload: ApplyRequest) -> list[Issue]:
    limit = payload.params.get("limit")
    if payload.action == "limit_trading" and limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, (int, float))
    ):
        return [{"path": "params.limit", "message": "limit must be a number"}]
    return []


def mints_are_distinct(payload: QuoteRequest) -> list[Issue]:
    if payload.input_mint == payload.output_mint:
        return [
            {
                "path": "outputMint",
                "message": "outputMint must differ from inputMint",
            }
        ]
    return []


def tip_wallet_requires_lamports(payload: TokenDraft) -> list[Issue]:
    if payload.tip_wallet and not payload.tip_lamports:
        return [
            {
                "path": "tipLamports",
                "message": "tipLamports is required when tipWallet is provided",
            }
        ]
    return []


APPLY_RULES: tuple[DomainRule[ApplyRequest], ...] = (
    flag_requires_reason,
    flag_severity_is_known,
    trading_limit_is_numeric,
)
QUOTE_RULES: tuple[DomainRule[QuoteRequest], ...] = (mints_are_distinct,)
TOKEN_DRAFT_RULES: tuple[DomainRule[TokenDraft], ...] = (
    tip_wallet_requires_lamports,
)

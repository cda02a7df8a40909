"""Strict payload schemas for every JSON route.

All schemas reject unknown keys outright (``extra="forbid"``) and accept
field names in camelCase only, the shape the web client sends. String
fields go through the sanitizers of ``src.security.sanitizer`` before any
other check, and URL fields through the SSRF guard.

Cross-field rules (e.g. "flag requires a reason") are not expressed here;
they live in ``src.security.validation`` as named domain rules.
"""

import base64
import binascii
import re
from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    JsonValue,
)
from pydantic.alias_generators import to_camel

from src.core.config import get_settings
from src.security.sanitizer import (
    sanitize_number,
    sanitize_pubkey,
    sanitize_string,
    sanitize_twitter_handle,
    sanitize_url,
)

MAX_RAW_TRANSACTION_LENGTH = 10_000
MAX_LAMPORTS = 1_000_000_000_000

type Network = Literal["mainnet-beta", "devnet", "testnet"]
type ApplyNetwork = Literal["devnet", "mainnet"]
type ApplyAction = Literal["flag", "unflag", "limit_trading", "freeze"]
type RpcMethod = Literal[
    "getHealth",
    "getBalance",
    "getSlot",
    "getTransaction",
    "getAccountInfo",
    "simulateTransaction",
    "getBlock",
]


def _required(
    sanitizer: Callable[[Any], Any], message: str, *, allow_none: bool = False
) -> Callable[[Any], Any]:
    """Turn a None-returning sanitizer into a raising pydantic validator."""

    def check(value: Any) -> Any:
        if value is None and allow_none:
            return None
        result = sanitizer(value)
        if result is None:
            raise ValueError(message)
        return result

    return check


def _matching(pattern: str, message: str) -> Callable[[str | None], str | None]:
    compiled = re.compile(pattern)

    def check(value: str | None) -> str | None:
        if value is not None and not compiled.match(value):
            raise ValueError(message)
        return value

    return check


def _safe_url(value: Any) -> str:
    decision = sanitize_url(value, get_settings().ssrf_config)
    if not decision.allowed or decision.normalized_url is None:
        raise ValueError(f"URL blocked by security policy: {decision.reason}")
    return decision.normalized_url


def _base64(value: str) -> str:
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("rawTransaction must be valid base64") from e
    return value


def _lowercase(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def _text(
    max_length: int, message: str, *, optional: bool = False
) -> BeforeValidator:
    return BeforeValidator(
        _required(
            lambda v: sanitize_string(v, max_length), message, allow_none=optional
        )
    )


Pubkey = Annotated[
    str, BeforeValidator(_required(sanitize_pubkey, "Invalid Solana public key"))
]
SafeUrl = Annotated[str, BeforeValidator(_safe_url)]
NonNegativeAmount = Annotated[
    int,
    BeforeValidator(
        _required(lambda v: sanitize_number(v, 0), "amount must be a number >= 0")
    ),
]
PositiveAmount = Annotated[
    int,
    BeforeValidator(
        _required(lambda v: sanitize_number(v, 1), "amount must be a number > 0")
    ),
]


class StrictPayload(BaseModel):
    """Base for client payloads: camelCase keys, no unknown keys, no coercion."""

    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=False,
    )

    def to_upstream(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScanRequest(StrictPayload):
    """A serialized transaction submitted for a pre-sign check."""

    raw_transaction: Annotated[
        str,
        Field(max_length=MAX_RAW_TRANSACTION_LENGTH),
        _text(MAX_RAW_TRANSACTION_LENGTH, "rawTransaction is required"),
        AfterValidator(_base64),
    ]
    network: Network = "mainnet-beta"


class SimulateRequest(StrictPayload):
    mint: Pubkey
    amount: NonNegativeAmount
    network: Network = "mainnet-beta"


class ApplyRequest(StrictPayload):
    """A moderation action to apply to a mint."""

    mint: Pubkey
    network: ApplyNetwork = "devnet"
    action: Annotated[ApplyAction, BeforeValidator(_lowercase)]
    reason: Annotated[
        str | None, _text(500, "reason must be a non-empty string", optional=True)
    ] = None
    params: dict[str, JsonValue] = Field(default_factory=dict)
    idempotency_key: Annotated[
        str | None,
        _text(128, "idempotencyKey must be a non-empty string", optional=True),
        AfterValidator(
            _matching(r"^[A-Za-z0-9._:-]+$", "idempotencyKey has invalid characters")
        ),
    ] = None


class TokenDraft(StrictPayload):
    """A token launch draft checked before it is handed to the launchpad."""

    name: Annotated[
        str,
        _text(32, "Token name is required (max 32 characters)"),
        AfterValidator(
            _matching(r"^[a-zA-Z0-9 ._-]+$", "Invalid characters in token name")
        ),
    ]
    symbol: Annotated[
        str,
        _text(10, "Token symbol is required (max 10 characters)"),
        AfterValidator(
            _matching(r"^[A-Z0-9]+$", "Token symbol must be uppercase alphanumeric")
        ),
    ]
    decimals: Annotated[int, Field(ge=0, le=18)]
    description: Annotated[
        str | None,
        BeforeValidator(
            _required(
                lambda v: sanitize_string(v, 200, allow_empty=True),
                "Description must be at most 200 characters",
                allow_none=True,
            )
        ),
    ] = None
    image_url: SafeUrl | None = None
    website_url: SafeUrl | None = None
    twitter_handle: Annotated[
        str | None,
        BeforeValidator(
            _required(
                sanitize_twitter_handle, "Invalid Twitter handle", allow_none=True
            )
        ),
    ] = None
    telegram_handle: Annotated[
        str | None,
        _text(32, "Invalid Telegram handle", optional=True),
        AfterValidator(
            _matching(r"^[A-Za-z0-9_]{5,32}$", "Invalid Telegram handle")
        ),
    ] = None
    creator_wallet: Pubkey
    tip_wallet: Pubkey | None = None
    tip_lamports: Annotated[int | None, Field(ge=1, le=MAX_LAMPORTS)] = None


class RpcProxyRequest(StrictPayload):
    """A JSON-RPC call restricted to read-only and simulation methods."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: RpcMethod
    params: list[JsonValue] = Field(default_factory=list)
    id: str | int | None = None


class QuoteRequest(StrictPayload):
    input_mint: Pubkey
    output_mint: Pubkey
    amount: PositiveAmount
    slippage_bps: Annotated[int, Field(ge=0, le=10_000)] = 50
    swap_mode: Literal["ExactIn", "ExactOut"] | None = None
    dexes: list[str] | None = None
    exclude_dexes: list[str] | None = None
    as_legacy_transaction: bool | None = None
    max_accounts: Annotated[int | None, Field(ge=1, le=256)] = None


class PriorityLevelWithMaxLamports(StrictPayload):
    max_lamports: Annotated[int, Field(ge=0, le=MAX_LAMPORTS)]
    priority_level: Literal["veryLow", "low", "medium", "high", "veryHigh"]


class PrioritizationFee(StrictPayload):
    priority_level_with_max_lamports: PriorityLevelWithMaxLamports | None = None


class SwapRequest(StrictPayload):
    """A request to build a swap transaction from a previously fetched quote."""

    quote_response: dict[str, JsonValue]
    user_public_key: Pubkey
    wrap_and_unwrap_sol: bool | None = None
    dynamic_compute_unit_limit: bool | None = None
    prioritization_fee_lamports: (
        Literal["auto"]
        | Annotated[int, Field(ge=0, le=MAX_LAMPORTS)]
        | PrioritizationFee
        | None
    ) = None

"""Process-local fixed-window rate limiting.

``RateLimiter`` counts requests per key inside fixed windows. Keys have the
form ``scope:identifier:route`` where the identifier is either the client IP
(``ip`` scope) or a caller supplied idempotency key (``idempotency`` scope).

The limiter is best effort: counters live in this process only, so several
instances behind a load balancer each enforce their own budget. A shared
store with atomic increment and TTL is needed for a hard global limit.

Expired entries are swept deterministically: whenever ``sweep_interval_ms``
has passed since the last sweep, the next ``check`` removes every entry
whose window has ended. Memory is therefore bounded by the keys seen during
one window plus one sweep interval.
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from src.core.config import RateLimitConfig
from src.core.constants import MILLISECONDS_PER_SECOND

type Clock = Callable[[], float]


@dataclass(slots=True)
class RateLimitEntry:
    count: int
    reset_at: float  # epoch milliseconds


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of a limiter check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window after this one.
        reset_at: Epoch milliseconds at which the window ends.
        limit: Requests allowed per window.
        now: Epoch milliseconds at which the check ran.
    """

    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    now: float

    @property
    def retry_after(self) -> int:
        """Whole seconds until the window resets, at least 1."""
        return max(1, math.ceil((self.reset_at - self.now) / MILLISECONDS_PER_SECOND))


def _now_ms() -> float:
    return time.time() * MILLISECONDS_PER_SECOND


class RateLimiter:
    """Fixed-window counter keyed by ``scope:identifier:route``.

    Create one instance at startup and share it; all state is held on the
    instance. Access is serialized with a lock so the limiter is safe to use
    from the threadpool as well as from the event loop.

    Args:
        config: Window sizes and limits.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self, config: RateLimitConfig | None = None, clock: Clock = _now_ms
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``key`` and decide whether it is allowed.

        A missing or expired entry opens a new window ``[now, now + window_ms)``
        with a count of one. Inside a window the request is allowed while the
        count is below ``max_requests``; denied requests are not counted.
        """
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                entry = RateLimitEntry(count=1, reset_at=now + window_ms)
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=max(0, max_requests - 1),
                    reset_at=entry.reset_at,
                    limit=max_requests,
                    now=now,
                )

            if entry.count >= max_requests:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    limit=max_requests,
                    now=now,
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=max_requests - entry.count,
                reset_at=entry.reset_at,
                limit=max_requests,
                now=now,
            )

    def check_ip(self, ip: str, route: str) -> RateLimitResult:
        """Check the per-IP budget of a route."""
        rule = self.config.rule_for(route)
        return self.check(f"ip:{ip}:{route}", rule.max_requests, rule.window_ms)

    def check_idempotency_key(
        self, key: str | None, route: str
    ) -> RateLimitResult | None:
        """Accept an idempotency key at most ``idempotency_max`` times per window.

        Returns None when no usable key was supplied.
        """
        if key is None or not key.strip():
            return None
        return self.check(
            f"idempotency:{key.strip()}:{route}",
            self.config.idempotency_max,
            self.config.idempotency_window_ms,
        )

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            return self._sweep(self._clock())

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._entries.clear()

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.config.sweep_interval_ms:
            removed = self._sweep(now)
            if removed:
                logger.debug(
                    "Swept expired rate limit entries",
                    removed=removed,
                    remaining=len(self._entries),
                )

    def _sweep(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        return len(expired)

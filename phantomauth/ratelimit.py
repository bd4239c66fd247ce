"""
Fixed-window rate limiting with escalating block.

Counters live in the shared store keyed by ``floor(now / window)`` and
expire by TTL. Exceeding the quota sets a block record that denies every
call for ``block_seconds`` regardless of window boundaries.

Bursts of up to ``2 * points`` are possible across a window boundary.

``block_seconds`` must be at least ``window_seconds``: a shorter block lifts
while the window counter is still over quota, so the next call blocks again.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .clock import Clock, SystemClock
from .config import Config, RateLimitRule
from .errors import ValidationError
from .store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one consume call."""
    allowed: bool
    remaining: int
    reset_at: float  # unix seconds

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
        }


class RateLimiter:
    """Quota enforcement on top of a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        config: Optional[Config] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config

    @staticmethod
    def window_key(scope_key: str, window_index: int) -> str:
        return f"{KEY_PREFIX}:{scope_key}:{window_index}"

    @staticmethod
    def block_key(scope_key: str) -> str:
        return f"{KEY_PREFIX}:block:{scope_key}"

    async def check_and_consume(
        self,
        scope_key: str,
        points: int,
        window_seconds: int,
        block_seconds: int,
    ) -> RateLimitResult:
        """
        Consume one point from ``scope_key``'s current window.

        Args:
            scope_key: What is being limited (e.g. "login:alice@example.com")
            points: Calls allowed per window
            window_seconds: Window length
            block_seconds: How long to deny once the quota is exceeded
        """
        if not scope_key:
            raise ValidationError("Rate limit scope key is required")
        if points < 1 or window_seconds < 1 or block_seconds < 1:
            raise ValidationError(
                "Rate limit points, window and block must be positive",
                details={
                    "points": points,
                    "window_seconds": window_seconds,
                    "block_seconds": block_seconds,
                },
            )

        now = self.clock.now()
        block_key = self.block_key(scope_key)

        if await self.store.exists(block_key):
            remaining_ttl = await self.store.ttl(block_key)
            reset_at = now + (remaining_ttl if remaining_ttl is not None else block_seconds)
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

        window_index = math.floor(now / window_seconds)
        window_key = self.window_key(scope_key, window_index)

        count = await self.store.increment(window_key)
        if count == 1:
            await self.store.expire(window_key, window_seconds)

        if count > points:
            await self.store.set(block_key, b"1", block_seconds)
            logger.warning(
                f"Rate limit exceeded for {scope_key} ({count}/{points}), "
                f"blocked for {block_seconds}s"
            )
            return RateLimitResult(allowed=False, remaining=0, reset_at=now + block_seconds)

        logger.debug(f"Rate limit {scope_key}: {count}/{points} in window {window_index}")
        return RateLimitResult(
            allowed=True,
            remaining=points - count,
            reset_at=float((window_index + 1) * window_seconds),
        )

    async def check(self, scope: str, identifier: str) -> RateLimitResult:
        """Consume from a named scope configured in ``Config.rate_limits``."""
        if self.config is None:
            raise ValidationError("Named rate limit scopes need a Config")
        rule: RateLimitRule = self.config.rate_limit_for(scope)
        return await self.check_and_consume(
            f"{scope}:{identifier}",
            rule.points,
            rule.window_seconds,
            rule.block_seconds,
        )

"""Rate Limiter Service
======================

Sliding-window request limiting for generation admission.

Key Features:
- At most ``max_requests`` operations per identifier within ``window_seconds``
- Entries age out continuously (no fixed buckets, no burst at window edges)
- State lives in the shared counter store, so limits hold across workers
  when the Redis store is configured
- Fails open: if the store errors, the request is allowed and the failure
  is logged, so an outage of the store never blocks legitimate traffic
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sitegen.services.counter_store import CounterStore

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for sliding-window limiting.

    Attributes:
        window_seconds: Length of the sliding window
        max_requests: Operations allowed per identifier within one window
        key_prefix: Prefix for the store keys
    """
    window_seconds: float = 60.0
    max_requests: int = 100
    key_prefix: str = 'ratelimit:'


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    degraded: bool = False  # True when the store failed and the limiter failed open

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'remaining': self.remaining,
            'resetAt': self.reset_at,
            'limit': self.limit,
        }


class SlidingWindowRateLimiter:
    """Per-identifier sliding-window limiter on top of a ``CounterStore``."""

    def __init__(self, store: CounterStore, config: Optional[RateLimitConfig] = None):
        self.store = store
        self.config = config or RateLimitConfig()
        self._failures = 0

    def key(self, identifier: str) -> str:
        return f"{self.config.key_prefix}{identifier}"

    async def check(self, identifier: str) -> RateLimitDecision:
        """Record an attempt for ``identifier`` and report whether it may proceed."""
        try:
            hit = await self.store.sliding_window_hit(
                self.key(identifier), self.config.window_seconds, self.config.max_requests
            )
        except Exception as e:
            self._failures += 1
            logger.error(f"Rate limiter store failure for {identifier}; allowing request: {e}")
            return RateLimitDecision(
                allowed=True,
                remaining=self.config.max_requests,
                reset_at=time.time() + self.config.window_seconds,
                limit=self.config.max_requests,
                degraded=True,
            )

        if not hit.allowed:
            logger.info(f"Rate limit reached for {identifier} ({self.config.max_requests}/{self.config.window_seconds}s)")
        return RateLimitDecision(
            allowed=hit.allowed,
            remaining=hit.remaining,
            reset_at=hit.reset_at,
            limit=self.config.max_requests,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            'window_seconds': self.config.window_seconds,
            'max_requests': self.config.max_requests,
            'store': self.store.name,
            'store_failures': self._failures,
        }

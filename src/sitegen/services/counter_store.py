"""Shared Counter Store
====================

Keyed integer counters and sliding-window logs backing admission control.

Two implementations share one async interface:

- ``InMemoryCounterStore``: process-scoped, guarded by a ``threading.Lock``.
  State lives until the process exits; there is no cross-process guarantee,
  so it only suits single-instance deployments and tests.
- ``RedisCounterStore``: distributed. Check-and-decrement and the sliding
  window each run as one server-side Lua script, so concurrent reservations
  for the same key are serialized by Redis itself.

``create_counter_store`` picks Redis when a reachable URL is configured and
falls back to the in-memory store otherwise.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

import redis

from sitegen.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowHit:
    """Outcome of recording one hit in a sliding window."""
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds when the oldest entry ages out


class CounterStore(ABC):
    """Async interface over a keyed integer-counter service."""

    name = 'abstract'

    @abstractmethod
    async def get(self, key: str) -> Optional[int]:
        """Current value, or None when the key does not exist."""

    @abstractmethod
    async def set_if_absent(self, key: str, value: int) -> bool:
        """Initialize ``key`` to ``value`` unless it exists. True when written."""

    @abstractmethod
    async def decrement_if_sufficient(self, key: str, amount: int) -> Optional[int]:
        """Atomically subtract ``amount`` when the value is at least ``amount``.

        Returns:
            The new value, or None when the balance was insufficient (unchanged)
        """

    @abstractmethod
    async def increment(self, key: str, amount: int) -> int:
        """Unconditionally add ``amount`` and return the new value."""

    @abstractmethod
    async def sliding_window_hit(self, key: str, window_seconds: float, limit: int) -> WindowHit:
        """Age out old entries, then record a hit if fewer than ``limit`` remain."""

    @abstractmethod
    async def scan(self, prefix: str) -> Dict[str, int]:
        """All counters whose key starts with ``prefix``."""

    async def ping(self) -> bool:
        return True


class InMemoryCounterStore(CounterStore):
    """Process-local store. Create one per process and pass it explicitly."""

    name = 'memory'

    def __init__(self, clock: Callable[[], float] = time.time):
        self._counters: Dict[str, int] = {}
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def get(self, key: str) -> Optional[int]:
        with self._lock:
            return self._counters.get(key)

    async def set_if_absent(self, key: str, value: int) -> bool:
        with self._lock:
            if key in self._counters:
                return False
            self._counters[key] = value
            return True

    async def decrement_if_sufficient(self, key: str, amount: int) -> Optional[int]:
        with self._lock:
            current = self._counters.get(key, 0)
            if current < amount:
                return None
            self._counters[key] = current - amount
            return current - amount

    async def increment(self, key: str, amount: int) -> int:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount
            return self._counters[key]

    async def sliding_window_hit(self, key: str, window_seconds: float, limit: int) -> WindowHit:
        now = self._clock()
        with self._lock:
            hits = self._windows.setdefault(key, deque())
            cutoff = now - window_seconds
            while hits and hits[0] <= cutoff:
                hits.popleft()
            allowed = len(hits) < limit
            if allowed:
                hits.append(now)
            reset_at = (hits[0] if hits else now) + window_seconds
            return WindowHit(allowed=allowed, remaining=max(0, limit - len(hits)), reset_at=reset_at)

    async def scan(self, prefix: str) -> Dict[str, int]:
        with self._lock:
            return {k: v for k, v in self._counters.items() if k.startswith(prefix)}


RESERVE_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local amount = tonumber(ARGV[1])
if current >= amount then
  return redis.call('DECRBY', KEYS[1], amount)
end
return -1
"""

SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  count = count + 1
  allowed = 1
end
redis.call('PEXPIRE', key, math.ceil(window))
local reset = now + window
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
if oldest[2] then
  reset = tonumber(oldest[2]) + window
end
return {allowed, limit - count, tostring(reset)}
"""


class RedisCounterStore(CounterStore):
    """Redis-backed store; blocking redis-py calls run in the default executor."""

    name = 'redis'

    def __init__(self, client: redis.Redis, clock: Callable[[], float] = time.time):
        self.client = client
        self._clock = clock
        self._reserve = client.register_script(RESERVE_SCRIPT)
        self._window = client.register_script(SLIDING_WINDOW_SCRIPT)

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def get(self, key: str) -> Optional[int]:
        value = await self._run(self.client.get, key)
        return int(value) if value is not None else None

    async def set_if_absent(self, key: str, value: int) -> bool:
        return bool(await self._run(self.client.set, key, value, nx=True))

    async def decrement_if_sufficient(self, key: str, amount: int) -> Optional[int]:
        result = int(await self._run(self._reserve, keys=[key], args=[amount]))
        return None if result < 0 else result

    async def increment(self, key: str, amount: int) -> int:
        return int(await self._run(self.client.incrby, key, amount))

    async def sliding_window_hit(self, key: str, window_seconds: float, limit: int) -> WindowHit:
        now_ms = int(self._clock() * 1000)
        window_ms = int(window_seconds * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex[:8]}"
        allowed, remaining, reset = await self._run(
            self._window, keys=[key], args=[now_ms, window_ms, limit, member]
        )
        return WindowHit(allowed=bool(int(allowed)), remaining=max(0, int(remaining)),
                         reset_at=float(reset) / 1000.0)

    async def scan(self, prefix: str) -> Dict[str, int]:
        def _collect():
            result = {}
            for key in self.client.scan_iter(match=f"{prefix}*"):
                value = self.client.get(key)
                if value is not None:
                    result[key] = int(value)
            return result
        return await self._run(_collect)

    async def ping(self) -> bool:
        try:
            return bool(await self._run(self.client.ping))
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


def create_counter_store(redis_url: Optional[str] = None) -> CounterStore:
    """Return a Redis store when reachable, otherwise the in-memory fallback."""
    client = get_redis_client(redis_url)
    if client is not None:
        logger.info("Admission control using Redis counter store")
        return RedisCounterStore(client)
    if redis_url:
        logger.warning("Redis unavailable; admission control falls back to in-process counters")
    else:
        logger.info("REDIS_URL not set; admission control using in-process counters")
    return InMemoryCounterStore()

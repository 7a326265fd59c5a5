"""Recovery Layer
==============

Generic retry / backoff / downgrade / fallback wrapper for async operations
that talk to unreliable upstreams.

Policy for a failed attempt:

- transient errors (timeouts, connection resets, 429, 5xx, ...) try the
  cached-result lookup, then the downgrade callback, then an exponential
  backoff retry while retries remain, and finally the fallback producer;
- any other error is retried at most once and then re-raised unchanged.

``asyncio.CancelledError`` is never absorbed.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSIENT_PATTERN = re.compile(
    r'timeout|ETIMEDOUT|ECONNRESET|ECONNREFUSED|ENOTFOUND|429|rate limit|overloaded'
    r'|Service Unavailable|Gateway Timeout',
    re.IGNORECASE,
)
TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})
TRANSIENT_EXCEPTIONS = (asyncio.TimeoutError, ConnectionError, aiohttp.ClientConnectionError)

MAX_BACKOFF_MULTIPLIER = 32
JITTER_RATIO = 0.2


def is_transient_error(error: BaseException) -> bool:
    """Default classifier: network-level failures, rate limits and 5xx.

    Only the upstream ``status`` / ``status_code`` is consulted, never an
    ``AppError.http_status``: a disabled provider answering 503 to our own
    client is a configuration problem, not an outage.
    """
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True
    status = getattr(error, 'status', None)
    if not isinstance(status, int):
        status = getattr(error, 'status_code', None)
    if isinstance(status, int) and status in TRANSIENT_STATUS_CODES:
        return True
    return bool(TRANSIENT_PATTERN.search(str(error) or type(error).__name__))


def log_recovery_error(error: BaseException, attempt: int) -> None:
    """Default log hook."""
    logger.warning(f"[recovery] attempt {attempt} failed: {type(error).__name__}: {error}")


def compute_backoff(attempt: int, base: float, jitter: bool = True,
                    rng: Callable[[], float] = random.random) -> float:
    """Calculate the delay before retry number ``attempt`` (1-based).

    ``base * min(2 ** attempt, 32)`` with an optional ±20% uniform jitter.

    Examples (base 0.25s, no jitter):
    - attempt 1: 0.5s
    - attempt 2: 1.0s
    - attempt 5 and later: 8.0s
    """
    delay = base * min(2 ** attempt, MAX_BACKOFF_MULTIPLIER)
    if jitter:
        delay += delay * JITTER_RATIO * (2 * rng() - 1)
    return max(0.0, delay)


@dataclass(frozen=True)
class RecoveryOptions:
    """Configuration for a single ``with_recovery`` invocation.

    Attributes:
        max_retries: Extra attempts allowed for transient errors
        initial_delay: Base backoff delay in seconds
        jitter: Randomize each delay by ±20%
        on_downgrade: Async callable producing a degraded result, tried on transient errors
        find_cached_result: Async callable returning a cached result or None
        log_error: Called with (error, attempt) for every failure; None disables logging
        is_transient: Error classifier
        sleep: Awaitable sleep used between attempts
        rng: Random source for jitter, returns floats in [0, 1)
    """
    max_retries: int = 2
    initial_delay: float = 0.25
    jitter: bool = True
    on_downgrade: Optional[Callable[[], Awaitable[Any]]] = None
    find_cached_result: Optional[Callable[[], Awaitable[Any]]] = None
    log_error: Optional[Callable[[BaseException, int], None]] = log_recovery_error
    is_transient: Callable[[BaseException], bool] = is_transient_error
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    rng: Callable[[], float] = random.random

    def backoff(self, attempt: int) -> float:
        return compute_backoff(attempt, self.initial_delay, self.jitter, self.rng)


async def with_recovery(operation: Callable[[], Awaitable[T]],
                        fallback: Callable[[], Awaitable[T]],
                        options: Optional[RecoveryOptions] = None) -> T:
    """Run ``operation`` with retry, downgrade and fallback handling.

    Args:
        operation: Zero-argument async producer of the result
        fallback: Zero-argument async producer used once transient retries are exhausted
        options: Recovery configuration (defaults apply when omitted)

    Returns:
        The first successful result among operation, cache, downgrade or fallback

    Raises:
        The last non-transient error once its single retry has failed,
        or whatever ``fallback`` raises
    """
    options = options or RecoveryOptions()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as error:
            attempt += 1
            if options.log_error is not None:
                options.log_error(error, attempt)

            if not options.is_transient(error):
                if attempt <= min(1, options.max_retries):
                    await options.sleep(options.backoff(attempt))
                    continue
                raise

            if options.find_cached_result is not None:
                try:
                    cached = await options.find_cached_result()
                except Exception as cache_error:
                    logger.debug(f"[recovery] cached result lookup failed: {cache_error}")
                else:
                    if cached is not None:
                        return cached

            if options.on_downgrade is not None:
                try:
                    return await options.on_downgrade()
                except Exception as downgrade_error:
                    if options.log_error is not None:
                        logger.info(f"[recovery] downgrade failed: {downgrade_error}")

            if attempt <= options.max_retries:
                await options.sleep(options.backoff(attempt))
                continue

            return await fallback()

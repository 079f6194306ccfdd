"""
Exponential backoff with jitter for controller requests.

Attempt N of M waits min(max_delay, base_delay * 2**(N-1)) plus a random
jitter before attempt N+1. Only errors marked retryable are re-attempted;
a 429 with a Retry-After hint waits for the hinted time instead.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from unifi_mcp.config import RetryConfig
from unifi_mcp.errors import RateLimited, UniFiMCPError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(
    attempt: int,
    config: RetryConfig,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay in seconds after a failed attempt.

    Args:
        attempt: 1-based number of the attempt that just failed
        config: Retry policy
        rand: Source of uniform [0, 1) values

    Returns:
        Capped exponential delay plus jitter in [0, config.jitter)
    """
    exponential = config.base_delay * (2 ** (attempt - 1))
    return min(config.max_delay, exponential) + rand() * config.jitter


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, UniFiMCPError) and error.retryable


async def retry_call(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rand: Callable[[], float] = random.random,
    on_retry: Optional[Callable[[int, UniFiMCPError, float], None]] = None,
) -> T:
    """
    Call ``func`` until it succeeds, fails non-retryably, or attempts run out.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        config: Retry policy
        sleep: Awaitable sleep (injectable for tests)
        rand: Jitter source
        on_retry: Callback invoked with (attempt, error, delay) before each sleep

    Returns:
        Result of the first successful attempt

    Raises:
        UniFiMCPError: The last error when it is not retryable or attempts are exhausted
    """
    max_attempts = config.max_attempts if config.enabled else 1
    attempt = 1

    while True:
        try:
            return await func()
        except UniFiMCPError as e:
            if not e.retryable or attempt >= max_attempts:
                raise

            if isinstance(e, RateLimited) and e.retry_after is not None:
                delay = e.retry_after
            else:
                delay = compute_backoff(attempt, config, rand)

            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed ({e.kind.value}: {e.detail}), "
                f"retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)

            await sleep(delay)
            attempt += 1

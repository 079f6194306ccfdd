"""
Token-bucket rate limiting for controller requests.

The bucket holds ``capacity`` tokens and is refilled to full once per
window (reset-based, no smoothing). A caller that finds the bucket empty
sleeps out the rest of the current window, then starts a new one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class TokenBucket:
    """
    Shared per-window request quota.

    Concurrent callers queue on a single lock, so waiting suspends only
    the calling tasks and the counter is never updated concurrently.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: float = 60.0,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = capacity
        self._window_start = self._clock()
        self._waiting = 0
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the bucket can be built outside a running loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def available(self) -> int:
        """Tokens left in the current window (without refilling)."""
        return self._tokens

    @property
    def waiting(self) -> int:
        """Number of callers currently queued for a token."""
        return self._waiting

    def _refill_if_elapsed(self, now: float) -> None:
        if now - self._window_start >= self.window_seconds:
            self._tokens = self.capacity
            self._window_start = now

    async def acquire(self) -> float:
        """
        Take one token, waiting for the next window if none are left.

        Returns:
            Seconds spent waiting for the window to reset
        """
        self._waiting += 1
        try:
            async with self._get_lock():
                waited = 0.0
                now = self._clock()
                self._refill_if_elapsed(now)

                if self._tokens <= 0:
                    waited = max(0.0, self.window_seconds - (now - self._window_start))
                    logger.warning(
                        f"Rate limit exhausted ({self.capacity}/window), waiting {waited:.2f}s"
                    )
                    await self._sleep(waited)
                    self._tokens = self.capacity
                    self._window_start = self._clock()

                self._tokens -= 1
                return waited
        finally:
            self._waiting -= 1

    def reset(self) -> None:
        """Refill the bucket and start a new window."""
        self._tokens = self.capacity
        self._window_start = self._clock()

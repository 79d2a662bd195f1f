"""
Rolling token budget for embedding requests.

Owned by the Embedder. Before each provider call the limiter estimates the
request's token cost (about one token per four characters) and blocks until
the current 60-second window resets if the estimate would exceed the
remaining budget. Actual usage reported by the provider replaces the
estimate afterwards.

Callers share one event loop; the read-then-write in ``acquire`` happens
without an intervening await, and a window is rolled only once the clock
reaches its reset time, so waiters that wake together share the new window.
No lock is needed.
"""

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from chatrag import config

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


class TokenRateLimiter:
    """Per-window token budget.

    Args:
        max_tokens_per_window: Token budget for one window.
        window_seconds: Window length.
        clock: Monotonic time source, injectable for tests.
        sleep: Coroutine used to wait for the window to reset.
    """

    def __init__(
        self,
        max_tokens_per_window: int = config.EMBEDDING_MAX_TOKENS_PER_MINUTE,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_tokens_per_window = max_tokens_per_window
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self.tokens_used = 0
        self.reset_time: Optional[float] = None
        self.total_tokens = 0

    def _roll_window(self, now: float) -> None:
        if self.reset_time is None or now >= self.reset_time:
            self.tokens_used = 0
            self.reset_time = now + self.window_seconds

    async def acquire(self, text: str) -> int:
        """Reserve the estimated cost of embedding ``text``, waiting for a window reset if needed.

        Returns:
            The estimated token count that was reserved.
        """
        estimated = estimate_tokens(text)

        while True:
            now = self._clock()
            self._roll_window(now)

            # A request bigger than the whole budget still goes through on a fresh window
            if self.tokens_used == 0 or self.tokens_used + estimated <= self.max_tokens_per_window:
                self.tokens_used += estimated
                return estimated

            wait_time = self.reset_time - now
            logger.warning(
                f"[RATE_LIMIT] Token budget nearly spent ({self.tokens_used:,}/"
                f"{self.max_tokens_per_window:,}), waiting {wait_time:.1f}s for window reset"
            )
            await self._sleep(max(wait_time, 0.0))

    def record_usage(self, actual_tokens: Optional[int], estimated_tokens: int) -> None:
        """Replace a reservation with the provider-reported usage."""
        if actual_tokens is None:
            actual_tokens = estimated_tokens
        self.tokens_used = max(0, self.tokens_used + actual_tokens - estimated_tokens)
        self.total_tokens += actual_tokens

    def release(self, estimated_tokens: int) -> None:
        """Give back a reservation for a call that never reached the provider."""
        self.tokens_used = max(0, self.tokens_used - estimated_tokens)

    @property
    def remaining(self) -> int:
        return max(0, self.max_tokens_per_window - self.tokens_used)

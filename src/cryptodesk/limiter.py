"""Token-bucket rate limiter for outbound upstream calls.

Implements:
- Continuous refill at refill_rate tokens/sec, capped at capacity
- Cold start with a full bucket (burst of `capacity` calls)
- Polling wait: sleep RATE_LIMIT_POLL_SEC and recompute when empty

One limiter is shared per upstream category (spot, futures); callers in
different categories never contend.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict

from cryptodesk.constants import (
    RATE_LIMIT_CAPACITY,
    RATE_LIMIT_POLL_SEC,
    RATE_LIMIT_REFILL_PER_SEC,
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket. ``acquire()`` suspends until a token is available."""

    def __init__(
        self,
        capacity: float = RATE_LIMIT_CAPACITY,
        refill_rate: float = RATE_LIMIT_REFILL_PER_SEC,
        poll_interval_sec: float = RATE_LIMIT_POLL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.poll_interval_sec = poll_interval_sec
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill_at = clock()
        self._waits = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill_at)
        self._last_refill_at = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)

    def try_acquire(self) -> bool:
        """Refill, then debit one token if available. Never suspends."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        waited = False
        while not self.try_acquire():
            if not waited:
                waited = True
                self._waits += 1
                logger.debug(
                    "Rate limiter empty (tokens=%.3f), polling every %.0fms",
                    self._tokens, self.poll_interval_sec * 1000,
                )
            await asyncio.sleep(self.poll_interval_sec)

    @property
    def tokens(self) -> float:
        """Current balance as of the last refill (no side effects)."""
        return self._tokens

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "capacity": self.capacity,
            "refill_rate": self.refill_rate,
            "tokens": round(self._tokens, 4),
            "waits": self._waits,
        }

"""Retry with exponential backoff and jitter.

Every exception is treated as retryable. After max_retries further
attempts the most recent exception is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from cryptodesk.constants import RETRY_BASE_DELAY_MS, RETRY_MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(
    retry_number: int,
    base_delay_ms: float,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Delay before retry ``retry_number`` (1-indexed).

    base * 2^(n-1) + uniform(0, base)
    """
    return base_delay_ms * (2 ** (retry_number - 1)) + rand(0, base_delay_ms)


class RetryPolicy:
    """Re-invokes a failing coroutine factory up to ``max_retries`` times."""

    def __init__(
        self,
        max_retries: int = RETRY_MAX_RETRIES,
        base_delay_ms: float = RETRY_BASE_DELAY_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep
        self._rand = rand

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[float] = None,
    ) -> T:
        """Run ``operation()``; total attempts = max_retries + 1."""
        retries = self.max_retries if max_retries is None else max_retries
        base = self.base_delay_ms if base_delay_ms is None else base_delay_ms

        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                attempt += 1
                if attempt > retries:
                    logger.warning("Giving up after %d attempts: %s", attempt, e)
                    raise
                delay_ms = backoff_delay_ms(attempt, base, self._rand)
                logger.warning(
                    "Attempt %d/%d failed (%s); retrying in %.0fms",
                    attempt, retries + 1, e, delay_ms,
                )
                await self._sleep(delay_ms / 1000.0)

"""Tests for the token-bucket rate limiter."""

import asyncio
import time

import pytest

from cryptodesk.limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Refill arithmetic ─────────────────────────────────────────────────────────

def test_starts_full() -> None:
    """Cold start allows a burst of `capacity` calls."""
    clock = FakeClock()
    limiter = RateLimiter(capacity=10, refill_rate=10, clock=clock)
    assert all(limiter.try_acquire() for _ in range(10))
    assert limiter.try_acquire() is False


def test_refill_is_capped_at_capacity() -> None:
    """A long idle period never accumulates more than capacity tokens."""
    clock = FakeClock()
    limiter = RateLimiter(capacity=5, refill_rate=10, clock=clock)
    clock.advance(3600)
    limiter.try_acquire()
    assert limiter.tokens == 4


def test_partial_refill() -> None:
    """Tokens refill continuously at refill_rate per second."""
    clock = FakeClock()
    limiter = RateLimiter(capacity=10, refill_rate=10, clock=clock)
    for _ in range(10):
        limiter.try_acquire()
    assert limiter.try_acquire() is False

    clock.advance(0.05)  # half a token
    assert limiter.try_acquire() is False
    clock.advance(0.06)
    assert limiter.try_acquire() is True
    assert 0 <= limiter.tokens < 1


def test_tokens_never_negative() -> None:
    """Failed acquisitions do not debit the bucket."""
    clock = FakeClock()
    limiter = RateLimiter(capacity=1, refill_rate=1, clock=clock)
    limiter.try_acquire()
    for _ in range(5):
        assert limiter.try_acquire() is False
    assert limiter.tokens >= 0


def test_clock_going_backwards_adds_nothing() -> None:
    """A non-monotonic clock step is treated as zero elapsed time."""
    clock = FakeClock()
    limiter = RateLimiter(capacity=2, refill_rate=1, clock=clock)
    limiter.try_acquire()
    limiter.try_acquire()
    clock.advance(-10)
    assert limiter.try_acquire() is False


# ── Waiting ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_burst_then_eleventh_waits() -> None:
    """10 immediate acquisitions, the 11th waits roughly one refill tick."""
    limiter = RateLimiter(capacity=10, refill_rate=10)

    start = time.monotonic()
    for _ in range(10):
        await limiter.acquire()
    burst_elapsed = time.monotonic() - start
    assert burst_elapsed < 0.05

    start = time.monotonic()
    await limiter.acquire()
    waited = time.monotonic() - start
    assert 0.09 <= waited < 1.0
    assert limiter.stats["waits"] == 1


@pytest.mark.asyncio
async def test_concurrent_waiters_all_complete() -> None:
    """Callers beyond capacity are all eventually admitted."""
    limiter = RateLimiter(capacity=2, refill_rate=20, poll_interval_sec=0.01)
    results = await asyncio.wait_for(
        asyncio.gather(*(limiter.acquire() for _ in range(6))),
        timeout=2.0,
    )
    assert len(results) == 6

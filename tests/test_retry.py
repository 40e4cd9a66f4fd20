"""Tests for RetryPolicy and backoff delays."""

from typing import List

import pytest

from cryptodesk.retry import RetryPolicy, backoff_delay_ms


class Recorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays = []  # type: List[float]

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _no_jitter(low: float, high: float) -> float:
    return 0.0


# ── Backoff ───────────────────────────────────────────────────────────────────

def test_backoff_doubles_without_jitter() -> None:
    """base * 2^(n-1) when the random component is zero."""
    assert [backoff_delay_ms(n, 300, _no_jitter) for n in (1, 2, 3)] == [300, 600, 1200]


def test_backoff_jitter_bounded_by_base() -> None:
    """Jitter adds at most one base delay."""
    delay = backoff_delay_ms(2, 300, lambda low, high: high)
    assert delay == 900


# ── run() ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_exhaustion_reraises_last_error() -> None:
    """An always-failing operation is invoked max_retries + 1 times."""
    sleep = Recorder()
    policy = RetryPolicy(max_retries=3, base_delay_ms=300, sleep=sleep, rand=_no_jitter)
    calls = []
    errors = []

    async def op() -> None:
        calls.append(1)
        err = RuntimeError("boom {}".format(len(calls)))
        errors.append(err)
        raise err

    with pytest.raises(RuntimeError) as excinfo:
        await policy.run(op)
    assert len(calls) == 4
    assert excinfo.value is errors[-1]
    assert sleep.delays == [0.3, 0.6, 1.2]


@pytest.mark.asyncio
async def test_succeeds_after_two_failures() -> None:
    """Two failures then success yields 3 invocations and the value."""
    sleep = Recorder()
    policy = RetryPolicy(sleep=sleep, rand=_no_jitter)
    calls = []

    async def op() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("transient")
        return "ok"

    assert await policy.run(op) == "ok"
    assert len(calls) == 3
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_zero_retries_runs_once() -> None:
    """max_retries=0 means a single attempt and no sleep."""
    sleep = Recorder()
    policy = RetryPolicy(max_retries=0, sleep=sleep)
    calls = []

    async def op() -> None:
        calls.append(1)
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await policy.run(op)
    assert len(calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_per_call_overrides() -> None:
    """run() arguments override the policy defaults."""
    sleep = Recorder()
    policy = RetryPolicy(max_retries=5, base_delay_ms=1000, sleep=sleep, rand=_no_jitter)
    calls = []

    async def op() -> None:
        calls.append(1)
        raise OSError("down")

    with pytest.raises(OSError):
        await policy.run(op, max_retries=1, base_delay_ms=10)
    assert len(calls) == 2
    assert sleep.delays == [0.01]


@pytest.mark.asyncio
async def test_first_success_no_sleep() -> None:
    """A successful first attempt never sleeps."""
    sleep = Recorder()
    policy = RetryPolicy(sleep=sleep)

    async def op() -> int:
        return 42

    assert await policy.run(op) == 42
    assert sleep.delays == []

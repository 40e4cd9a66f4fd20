"""Scheduled analysis/alert jobs driven by cron expressions.

Implements:
- Job records (analysis | alert) keyed by random id
- One asyncio task per job that sleeps until the next cron tick, then fires
- Fire-and-log boundary: callback errors are logged and recorded as a
  FireResult, never propagated, and never stop the schedule
- Explicit cancellation (remove / remove_all); jobs never expire

Cron expressions have 5 fields, or 6 with a leading seconds field, and are
evaluated in UTC.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from croniter import croniter

from cryptodesk.confirmations import generate_id
from cryptodesk.constants import JOB_FIRE_LOG_MAX, JOB_ID_LENGTH
from cryptodesk.utils import to_iso

logger = logging.getLogger(__name__)

KIND_ANALYSIS = "analysis"
KIND_ALERT = "alert"
VALID_KINDS = frozenset({KIND_ANALYSIS, KIND_ALERT})

CONDITION_CROSSES_ABOVE = "crossesAbove"
CONDITION_CROSSES_BELOW = "crossesBelow"
VALID_CONDITIONS = frozenset({CONDITION_CROSSES_ABOVE, CONDITION_CROSSES_BELOW})


class InvalidCronError(ValueError):
    """Raised when a cron expression cannot be scheduled."""


def validate_cron(expression: str) -> None:
    """Raise InvalidCronError unless ``expression`` is a 5/6-field cron."""
    fields = expression.split()
    if len(fields) not in (5, 6):
        raise InvalidCronError(
            "Cron expression must have 5 or 6 fields, got {}: '{}'".format(len(fields), expression)
        )
    try:
        # Expressions that never match (e.g. Feb 30) only fail on get_next
        croniter(expression, time.time(), second_at_beginning=True).get_next(float)
    except (ValueError, KeyError) as e:
        raise InvalidCronError("Invalid cron expression '{}': {}".format(expression, e)) from e


def next_fire_time(expression: str, after: float) -> float:
    """Epoch seconds of the first cron tick strictly after ``after``."""
    return croniter(expression, after, second_at_beginning=True).get_next(float)


class JobRecord:
    """A scheduled job. Analysis jobs carry interval/lookback, alerts a condition."""

    def __init__(
        self,
        job_id: str,
        kind: str,
        symbol: str,
        cron: str,
        created_at: float,
        description: Optional[str] = None,
        interval: Optional[str] = None,
        lookback: Optional[int] = None,
        condition: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.id = job_id
        self.kind = kind
        self.symbol = symbol
        self.cron = cron
        self.description = description
        self.created_at = created_at
        self.last_run_at = None  # type: Optional[float]
        self.interval = interval
        self.lookback = lookback
        self.condition = condition
        # Last price seen by an alert job, used to detect crossings
        self.last_price = None  # type: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "kind": self.kind,
            "symbol": self.symbol,
            "cron": self.cron,
            "description": self.description,
            "createdAt": to_iso(self.created_at * 1000),
            "lastRunAt": to_iso(self.last_run_at * 1000) if self.last_run_at else None,
        }  # type: Dict[str, Any]
        if self.kind == KIND_ANALYSIS:
            d["interval"] = self.interval
            d["lookback"] = self.lookback
        else:
            d["condition"] = dict(self.condition or {})
        return d


class FireResult:
    """Outcome of a single job firing."""

    def __init__(self, job_id: str, fired_at: float, ok: bool, error: Optional[str] = None) -> None:
        self.job_id = job_id
        self.fired_at = fired_at
        self.ok = ok
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "fired_at": self.fired_at,
            "ok": self.ok,
            "error": self.error,
        }


JobCallback = Callable[[JobRecord], Awaitable[Any]]


class JobRegistry:
    """Owns job records and their schedule tasks."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._jobs = {}  # type: Dict[str, JobRecord]
        self._callbacks = {}  # type: Dict[str, JobCallback]
        self._tasks = {}  # type: Dict[str, asyncio.Task]
        self._fire_log = deque(maxlen=JOB_FIRE_LOG_MAX)  # type: Deque[FireResult]

    def create(self, job_spec: Dict[str, Any], on_fire: JobCallback) -> JobRecord:
        """Register a job and start its schedule.

        Must be called with a running event loop.
        """
        kind = job_spec.get("kind")
        if kind not in VALID_KINDS:
            raise ValueError("Unknown job kind: {}".format(kind))
        cron = job_spec.get("cron", "")
        validate_cron(cron)

        job_id = generate_id(JOB_ID_LENGTH)
        while job_id in self._jobs:
            job_id = generate_id(JOB_ID_LENGTH)

        record = JobRecord(
            job_id=job_id,
            kind=kind,
            symbol=job_spec["symbol"],
            cron=cron,
            created_at=self._clock(),
            description=job_spec.get("description"),
            interval=job_spec.get("interval"),
            lookback=job_spec.get("lookback"),
            condition=job_spec.get("condition"),
        )
        loop = asyncio.get_running_loop()
        self._jobs[job_id] = record
        self._callbacks[job_id] = on_fire
        self._tasks[job_id] = loop.create_task(self._run_schedule(job_id))

        logger.info("Job scheduled: id=%s kind=%s symbol=%s cron='%s'", job_id, kind, record.symbol, cron)
        return record

    async def _run_schedule(self, job_id: str) -> None:
        last_tick = None  # type: Optional[float]
        while True:
            record = self._jobs.get(job_id)
            if record is None:
                return
            now = self._clock()
            base = now if last_tick is None else max(now, last_tick)
            tick = next_fire_time(record.cron, base)
            await asyncio.sleep(max(0.0, tick - self._clock()))
            last_tick = tick
            await self.fire(job_id)

    async def fire(self, job_id: str) -> Optional[FireResult]:
        """Invoke a job's callback once through the catch-and-log boundary.

        Returns None if the job no longer exists.
        """
        record = self._jobs.get(job_id)
        callback = self._callbacks.get(job_id)
        if record is None or callback is None:
            return None

        fired_at = self._clock()
        try:
            await callback(record)
        except Exception as e:
            logger.exception("Job %s (%s %s) failed", job_id, record.kind, record.symbol)
            result = FireResult(job_id, fired_at, ok=False, error=str(e))
        else:
            record.last_run_at = self._clock()
            logger.debug("Job %s fired", job_id)
            result = FireResult(job_id, fired_at, ok=True)

        self._fire_log.append(result)
        return result

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def list(self) -> List[JobRecord]:
        return list(self._jobs.values())

    def remove(self, job_id: str) -> bool:
        """Cancel the schedule and drop the record. False if unknown."""
        record = self._jobs.pop(job_id, None)
        self._callbacks.pop(job_id, None)
        task = self._tasks.pop(job_id, None)
        if task is not None:
            task.cancel()
        if record is None:
            return False
        logger.info("Job cancelled: id=%s", job_id)
        return True

    def remove_all(self) -> int:
        """Cancel every schedule and clear all records."""
        count = len(self._jobs)
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._callbacks.clear()
        self._jobs.clear()
        if count:
            logger.info("Cancelled %d job(s)", count)
        return count

    async def shutdown(self) -> None:
        """remove_all, then wait for the cancelled tasks to unwind."""
        tasks = list(self._tasks.values())
        self.remove_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def fire_log(self) -> List[FireResult]:
        return list(self._fire_log)

    def __len__(self) -> int:
        return len(self._jobs)

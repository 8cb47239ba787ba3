"""
DailyScheduler: one job, once per day, at a fixed local time.

Purpose
-------
Drive the retention engine at 02:00 local time (configurable). The next
fire time is always recomputed from the wall clock, so a restart simply
picks up the next slot; nothing is persisted.

Design Notes
------------
- A single task owns the loop and is the only cancellable handle;
  ``stop()`` clears it so the event loop can exit.
- Jobs run one after another inside the loop, so two runs can never
  overlap. A job in flight when ``stop()`` is called is awaited, not
  cancelled.
- A failing job is logged and the loop moves on to the next day.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, time, timedelta
from logging import Logger
from typing import Any, Awaitable, Callable, Optional

from scorekeep.core.logging.logger import LogContext, get_logger

Job = Callable[[], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]


class DailyScheduler:
    """
    Args:
        job: Coroutine function invoked at each firing
        hour: Local hour of day (0-23)
        minute: Minute of hour (0-59)
        clock: Local wall-clock source
        sleep: Awaitable pause (injectable for tests)
        name: Label used in logs and the task name
    """

    def __init__(
        self,
        job: Job,
        hour: int = 2,
        minute: int = 0,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Sleeper = asyncio.sleep,
        name: str = "retention",
        logger: Optional[Logger] = None,
    ) -> None:
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be in 0..23, got {hour}")
        if not 0 <= minute <= 59:
            raise ValueError(f"minute must be in 0..59, got {minute}")

        self._job = job
        self.fire_at = time(hour=hour, minute=minute)
        self._clock = clock
        self._sleep = sleep
        self.name = name
        self.log = logger or get_logger(__name__)

        self._task: Optional[asyncio.Task[None]] = None
        self._job_task: Optional[asyncio.Task[None]] = None
        self._next_run: Optional[datetime] = None
        self._last_fire: Optional[datetime] = None
        self.runs = 0
        self.failures = 0

    @property
    def next_run(self) -> Optional[datetime]:
        return self._next_run

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire_time(self, now: datetime) -> datetime:
        """Today's slot if it is still ahead of ``now``, else tomorrow's."""
        candidate = datetime.combine(now.date(), self.fire_at, tzinfo=now.tzinfo)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self) -> None:
        if self.is_running:
            return
        self._next_run = self.next_fire_time(self._clock())
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f"{self.name}-scheduler"
        )
        self.log.info(
            "Daily scheduler started",
            extra={"scheduler": self.name, "next_run": self._next_run.isoformat()},
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # A run already in progress finishes on its own
        job_task, self._job_task = self._job_task, None
        if job_task is not None and not job_task.done():
            await job_task

        self._next_run = None
        self.log.info("Daily scheduler stopped", extra={"scheduler": self.name})

    # ========================================================================
    # Loop
    # ========================================================================

    async def _loop(self) -> None:
        while True:
            now = self._clock()
            # Never fire the same slot twice, even if the clock lags the timer
            reference = max(now, self._last_fire) if self._last_fire else now
            fire = self.next_fire_time(reference)
            self._next_run = fire

            await self._sleep(max(0.0, (fire - now).total_seconds()))

            self._last_fire = fire
            self._job_task = asyncio.get_running_loop().create_task(
                self._run_job(fire), name=f"{self.name}-job"
            )
            await asyncio.shield(self._job_task)
            self._job_task = None

    async def _run_job(self, fire: datetime) -> None:
        async with LogContext(component="scheduler", operation=f"{self.name}_job"):
            self.log.info(
                "Scheduled job firing",
                extra={"scheduler": self.name, "slot": fire.isoformat()},
            )
            try:
                await self._job()
                self.runs += 1
            except Exception as exc:
                self.failures += 1
                self.log.error(
                    "Scheduled job failed; rescheduling",
                    extra={
                        "scheduler": self.name,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )

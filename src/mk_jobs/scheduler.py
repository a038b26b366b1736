"""Periodic runner for the marketplace sweeps.

Every enabled job gets one asyncio task: call the job, then sleep for its
interval or until stop(). A job that fails MAX_FAILURES_IN_A_ROW times in a
row stops looping and is left disabled; the other jobs keep going. The app
lifespan owns the scheduler.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_FAILURES_IN_A_ROW = 10


@dataclass
class PeriodicJob:
    name: str
    run: Callable[[], Awaitable[object]]
    every_seconds: float
    first_delay_seconds: float = 0.0
    enabled: bool = True
    runs: int = 0
    failures_in_a_row: int = 0
    last_error: str | None = None


class JobScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, PeriodicJob] = {}
        self._loops: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return bool(self._loops)

    def register(
        self,
        name: str,
        run: Callable[[], Awaitable[object]],
        every_seconds: float,
        enabled: bool = True,
        first_delay_seconds: float = 0.0,
    ) -> None:
        if name in self.jobs:
            logger.warning("Job %s already registered, keeping the first", name)
            return
        self.jobs[name] = PeriodicJob(name, run, every_seconds, first_delay_seconds, enabled)
        logger.info("Job %s registered (every %.1fs)", name, every_seconds)

    async def start(self) -> None:
        if self._loops:
            logger.warning("Scheduler already running")
            return
        self._stopping.clear()
        self._loops = [
            asyncio.create_task(self._loop(job), name=f"job:{job.name}")
            for job in self.jobs.values()
            if job.enabled
        ]
        logger.info("Scheduler started %d of %d jobs", len(self._loops), len(self.jobs))

    async def stop(self) -> None:
        if not self._loops:
            return
        self._stopping.set()
        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []
        logger.info("Scheduler stopped")

    async def _pause(self, seconds: float) -> bool:
        """Wait up to `seconds`. True when stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _loop(self, job: PeriodicJob) -> None:
        if job.first_delay_seconds and await self._pause(job.first_delay_seconds):
            return
        while True:
            try:
                await job.run()
            except Exception as exc:  # one bad sweep must not end the loop
                job.failures_in_a_row += 1
                job.last_error = str(exc)
                logger.exception("Job %s failed (%d in a row)", job.name, job.failures_in_a_row)
            else:
                job.runs += 1
                job.failures_in_a_row = 0
            if job.failures_in_a_row >= MAX_FAILURES_IN_A_ROW:
                job.enabled = False
                logger.critical(
                    "Job %s disabled after repeated failures: %s", job.name, job.last_error
                )
                return
            if await self._pause(job.every_seconds):
                return

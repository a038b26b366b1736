"""JobScheduler: registration, the job loop, auto-disable and lifecycle."""
import asyncio

import pytest

from src.mk_jobs.scheduler import MAX_FAILURES_IN_A_ROW, JobScheduler, PeriodicJob


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


async def _noop() -> None:
    return None


class TestRegistration:
    def test_duplicate_name_keeps_first(self) -> None:
        scheduler = JobScheduler()
        scheduler.register("sweep", _noop, 5)
        scheduler.register("sweep", _noop, 99)
        assert list(scheduler.jobs) == ["sweep"]
        assert scheduler.jobs["sweep"].every_seconds == 5


class TestJobLoop:
    @pytest.mark.asyncio
    async def test_runs_enabled_jobs_only(self) -> None:
        ran = asyncio.Event()
        skipped: list[int] = []

        async def job() -> None:
            ran.set()

        async def off() -> None:
            skipped.append(1)

        scheduler = JobScheduler()
        scheduler.register("job", job, 0.01)
        scheduler.register("off", off, 0.01, enabled=False)
        await scheduler.start()
        assert scheduler.is_running
        await asyncio.wait_for(ran.wait(), timeout=1)
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.jobs["job"].runs >= 1
        assert skipped == []

    @pytest.mark.asyncio
    async def test_repeated_failures_disable_job(self) -> None:
        healthy = asyncio.Event()

        async def broken() -> None:
            raise RuntimeError("db down")

        async def fine() -> None:
            healthy.set()

        scheduler = JobScheduler()
        scheduler.register("broken", broken, 0.001)
        scheduler.register("fine", fine, 0.001)
        await scheduler.start()
        job: PeriodicJob = scheduler.jobs["broken"]
        await _wait_until(lambda: not job.enabled)
        await asyncio.wait_for(healthy.wait(), timeout=1)
        await scheduler.stop()

        assert job.failures_in_a_row == MAX_FAILURES_IN_A_ROW
        assert job.last_error == "db down"
        assert job.runs == 0
        assert scheduler.jobs["fine"].enabled

    @pytest.mark.asyncio
    async def test_success_resets_failure_streak(self) -> None:
        outcomes = iter([RuntimeError("flaky")])

        async def flaky() -> None:
            outcome = next(outcomes, None)
            if outcome is not None:
                raise outcome

        scheduler = JobScheduler()
        scheduler.register("flaky", flaky, 0.001)
        await scheduler.start()
        job = scheduler.jobs["flaky"]
        await _wait_until(lambda: job.runs >= 1)
        await scheduler.stop()

        assert job.failures_in_a_row == 0
        assert job.last_error == "flaky"
        assert job.enabled

    @pytest.mark.asyncio
    async def test_first_delay_defers_first_run(self) -> None:
        calls: list[int] = []

        async def job() -> None:
            calls.append(1)

        scheduler = JobScheduler()
        scheduler.register("late", job, 60, first_delay_seconds=60)
        await scheduler.start()
        await asyncio.sleep(0.02)
        await scheduler.stop()
        assert calls == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_interrupts_long_interval(self) -> None:
        ran = asyncio.Event()

        async def job() -> None:
            ran.set()

        scheduler = JobScheduler()
        scheduler.register("hourly", job, 3600)
        await scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=1)
        await asyncio.wait_for(scheduler.stop(), timeout=1)
        assert scheduler.jobs["hourly"].runs == 1

    @pytest.mark.asyncio
    async def test_second_start_is_ignored(self) -> None:
        scheduler = JobScheduler()
        scheduler.register("job", _noop, 60)
        await scheduler.start()
        first = list(scheduler._loops)
        await scheduler.start()
        assert scheduler._loops == first
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        scheduler = JobScheduler()
        await scheduler.stop()
        assert not scheduler.is_running

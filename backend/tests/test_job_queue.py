"""Tests for the single-flight background job queue."""

import asyncio

import pytest

from tagbrowser.core.job_queue import JobQueue


@pytest.mark.asyncio
async def test_jobs_run_in_enqueue_order():
    queue = JobQueue()
    seen: list[int] = []

    def make(i: int):
        async def job() -> None:
            await asyncio.sleep(0)
            seen.append(i)

        return job

    for i in range(5):
        queue.enqueue(make(i))
    await queue.join()

    assert seen == [0, 1, 2, 3, 4]
    assert queue.processed == 5
    assert not queue.is_draining


@pytest.mark.asyncio
async def test_at_most_one_job_runs_at_a_time():
    queue = JobQueue()
    running = 0
    peak = 0

    async def job() -> None:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    for _ in range(4):
        queue.enqueue(job)
    await queue.join()

    assert peak == 1


@pytest.mark.asyncio
async def test_failing_job_is_logged_and_queue_continues(caplog):
    queue = JobQueue()
    seen: list[str] = []

    async def boom() -> None:
        raise RuntimeError("disk on fire")

    async def after() -> None:
        seen.append("after")

    queue.enqueue(boom, label="boom")
    queue.enqueue(after)
    await queue.join()

    assert seen == ["after"]
    assert queue.failed == 1
    assert queue.processed == 2
    assert "Background job boom failed" in caplog.text


@pytest.mark.asyncio
async def test_enqueue_while_draining_runs_after_current_job():
    queue = JobQueue()
    seen: list[str] = []

    async def second() -> None:
        seen.append("second")

    async def first() -> None:
        queue.enqueue(second)
        await asyncio.sleep(0)
        seen.append("first")

    queue.enqueue(first)
    await queue.join()

    assert seen == ["first", "second"]


@pytest.mark.asyncio
async def test_queue_restarts_after_going_idle():
    queue = JobQueue()
    seen: list[int] = []

    async def job() -> None:
        seen.append(len(seen))

    queue.enqueue(job)
    await queue.join()
    assert not queue.is_draining

    queue.enqueue(job)
    await queue.join()
    assert seen == [0, 1]


@pytest.mark.asyncio
async def test_enqueue_returns_immediately():
    queue = JobQueue()
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow() -> None:
        started.set()
        await release.wait()

    queue.enqueue(slow)
    assert queue.is_draining
    await started.wait()
    assert queue.pending == 0

    release.set()
    await queue.join()
    assert queue.stats() == {"pending": 0, "draining": False, "processed": 1, "failed": 0}

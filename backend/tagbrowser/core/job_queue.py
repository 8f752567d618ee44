"""In-process background job queue.

Single-flight and FIFO: jobs are zero-argument coroutine functions that run
one at a time, each awaited to completion before the next one starts.
The queue drains itself once started and may be fed while draining.

A failing job is logged and counted; it never reaches the caller that
enqueued it and never stops the queue.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class JobQueue:
    """Serializes background mutations against disk and database."""

    def __init__(self) -> None:
        self._jobs: deque[tuple[Job, str]] = deque()
        self._draining = False
        self._task: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.processed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of jobs waiting to run (excludes the running one)."""
        return len(self._jobs)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def enqueue(self, job: Job, label: str | None = None) -> None:
        """Append *job* to the tail and start draining if idle.

        Must be called from code running on the event loop.
        """
        self._jobs.append((job, label or getattr(job, "__name__", "job")))
        if not self._draining:
            self._draining = True
            self._idle.clear()
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._jobs:
                job, label = self._jobs.popleft()
                try:
                    await job()
                except Exception:
                    self.failed += 1
                    logger.error("Background job %s failed", label, exc_info=True)
                else:
                    logger.debug("Background job %s done", label)
                finally:
                    self.processed += 1
        finally:
            # No await between the empty check and here, so an enqueue can
            # never slip in unnoticed.
            self._draining = False
            self._task = None
            self._idle.set()

    async def join(self) -> None:
        """Wait until every queued job, including ones enqueued meanwhile, ran."""
        while self._draining or self._jobs:
            await self._idle.wait()

    def stats(self) -> dict[str, int | bool]:
        return {
            "pending": self.pending,
            "draining": self._draining,
            "processed": self.processed,
            "failed": self.failed,
        }

"""Interval polling on an APScheduler job, with a liveness guard for stale results."""

import logging
import uuid
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Self

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from threadflow.core.config import settings


logger = logging.getLogger(__name__)


class LivenessGuard:
    """Generation counter that tells async continuations whether their view still exists.

    Capture ``generation`` before an await and check ``is_current`` after it;
    switching or closing the view advances the counter so late results are dropped.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def advance(self) -> int:
        """Invalidate everything captured so far and reopen the guard."""
        self._generation += 1
        self._closed = False
        return self._generation

    def close(self) -> None:
        """Invalidate everything captured so far; nothing is current until the next advance."""
        self._generation += 1
        self._closed = True

    def is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation


class TickCounter:
    """Orders overlapping refreshes of one view.

    A manual refresh can overlap a scheduled tick; whichever started later
    wins, and an older result that resolves afterwards is dropped.
    """

    def __init__(self) -> None:
        self._started = 0
        self._applied = 0

    def begin(self) -> int:
        self._started += 1
        return self._started

    def accept(self, tick: int) -> bool:
        """Record ``tick`` as applied unless a newer one already was."""
        if tick < self._applied:
            return False
        self._applied = tick
        return True


class PollHandle:
    """Owned, cancelable reference to a scheduled poll job."""

    def __init__(self, job: Job) -> None:
        self._job: Job | None = job

    @property
    def job_id(self) -> str | None:
        return self._job.id if self._job else None

    @property
    def active(self) -> bool:
        return self._job is not None

    def cancel(self) -> None:
        """Remove the job; calling this more than once is a no-op."""
        if self._job is None:
            return
        job_id = self._job.id
        try:
            self._job.remove()
        except JobLookupError:
            logger.debug("poll_job_already_removed", extra={"job_id": job_id})
        self._job = None
        logger.info("poll_job_cancelled", extra={"job_id": job_id})


class Poller:
    """Run ``tick`` every ``interval_seconds`` until stopped.

    A tick that raises is logged and the next one runs on schedule. Ticks never
    overlap: a slow tick causes the missed runs to be coalesced into one.

    Usage:
        async with Poller(view.refresh, name="discussion-7"):
            ...
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[None]],
        *,
        interval_seconds: float | None = None,
        name: str = "poll",
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._tick = tick
        self._interval = interval_seconds or settings.poll_interval_seconds
        self._name = name
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler if scheduler is not None else AsyncIOScheduler()
        self._handle: PollHandle | None = None

    @property
    def handle(self) -> PollHandle | None:
        return self._handle

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    async def _run_tick(self) -> None:
        try:
            await self._tick()
        except Exception:
            logger.exception("poll_tick_failed", extra={"poller": self._name})

    async def start(self) -> PollHandle:
        """Schedule the interval job; must be awaited from a running event loop."""
        if self._handle is not None and self._handle.active:
            return self._handle

        if not self._scheduler.running:
            self._scheduler.start()

        job = self._scheduler.add_job(
            self._run_tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id=f"{self._name}-{uuid.uuid4().hex[:8]}",
            name=self._name,
            max_instances=1,
            coalesce=True,
        )
        self._handle = PollHandle(job)
        logger.info("poll_job_started", extra={"job_id": job.id, "interval_seconds": self._interval})
        return self._handle

    async def stop(self) -> None:
        """Cancel the job and, when this poller created the scheduler, shut it down."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

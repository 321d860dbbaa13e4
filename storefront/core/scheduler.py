"""
Refresh scheduler.

Rebuilds every cache component once at startup (after clearing it) and again
every day at a fixed wall-clock time. Both paths call the same refresh
callables the admin endpoint uses; the scheduler knows nothing about the
caches beyond those callables.

The daily trigger is a `schedule` job on a per-instance Scheduler; an asyncio
task sleeps until it is due and then runs the async refresh.

Usage:
    scheduler = RefreshScheduler(jobs_for(service.components), refresh_at="03:00")
    await scheduler.startup()   # before accepting traffic
    scheduler.start()           # daily rebuilds in the background
    ...
    await scheduler.stop()
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

import schedule

from storefront.utils.logger import get_logger

logger = get_logger("core.scheduler")

# Poll interval when no job is pending (not expected with one daily job)
IDLE_POLL_SECONDS = 60


@dataclass
class RefreshJob:
    """A named cache component as the scheduler sees it."""
    name: str
    refresh: Callable[[], Awaitable[Any]]
    clear: Callable[[], Awaitable[int]]


def jobs_for(components: Mapping[str, Any]) -> List[RefreshJob]:
    """Build jobs from objects exposing async refresh() and clear()."""
    return [RefreshJob(name, c.refresh, c.clear) for name, c in components.items()]


class RefreshScheduler:
    def __init__(
        self,
        jobs: Sequence[RefreshJob],
        refresh_at: str = "03:00",
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.jobs = list(jobs)
        self.refresh_at = refresh_at
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._due = False
        self.last_run: Optional[datetime] = None
        self.last_results: Dict[str, bool] = {}

        self._daily = schedule.Scheduler()
        try:
            self.daily_job = self._daily.every().day.at(refresh_at).do(self._mark_due)
        except schedule.ScheduleValueError as e:
            raise ValueError(f"refresh time must be HH:MM, got {refresh_at!r}") from e

    def _mark_due(self) -> None:
        # Called synchronously by run_pending(); the refresh itself is async
        self._due = True

    async def refresh_all(self) -> Dict[str, bool]:
        """Force-refresh every job concurrently. One failure never stops the others."""
        logger.info(f"Refreshing {len(self.jobs)} cache components...")
        outcomes = await asyncio.gather(
            *(job.refresh() for job in self.jobs), return_exceptions=True,
        )
        results: Dict[str, bool] = {}
        for job, outcome in zip(self.jobs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[FAIL] {job.name} refresh failed: {outcome}")
                results[job.name] = False
            else:
                logger.info(f"[OK] {job.name} refreshed")
                results[job.name] = True
        self.last_run = self._clock()
        self.last_results = results
        return results

    async def clear_all(self) -> Dict[str, int]:
        return {job.name: await job.clear() for job in self.jobs}

    async def startup(self) -> Dict[str, bool]:
        """Flush every component, then repopulate. Run before serving traffic."""
        cleared = await self.clear_all()
        logger.info(f"Startup flush: {cleared}")
        return await self.refresh_all()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def next_run(self) -> Optional[datetime]:
        return self._daily.next_run

    def start(self) -> None:
        """Begin daily rebuilds in a background task."""
        if self.running:
            return
        self._task = asyncio.ensure_future(self._run_forever())
        logger.info(f"Daily refresh scheduled at {self.refresh_at} (next: {self.next_run})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run_forever(self) -> None:
        while True:
            delay = self._daily.idle_seconds
            if delay is None:
                delay = IDLE_POLL_SECONDS
            logger.debug(f"Next scheduled refresh in {max(delay, 0):.0f}s")
            await self._sleep(max(delay, 0))
            self._daily.run_pending()
            if self._due:
                self._due = False
                await self.refresh_all()

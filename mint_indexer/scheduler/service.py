"""
Scheduler Service

Runs the ingest and aggregate sweeps on fixed intervals as asyncio
background tasks.

A tick that finds the previous run of the same job still in flight is
skipped, so a slow sweep never overlaps itself. A failed run is logged and
the next tick acts as the retry.

Usage:
    scheduler = SchedulerService(ingestion, aggregator)
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from ..core.metrics import record_scheduler_skip

logger = logging.getLogger(__name__)


class PeriodicJob:
    """A named coroutine function run every interval_seconds."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Awaitable[Any]],
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func

        self._loop_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None

        self.runs = 0
        self.skips = 0
        self.last_started: Optional[datetime] = None
        self.last_finished: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def scheduled(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def start(self) -> None:
        """Start the interval loop. The first run happens after one interval."""
        if self.scheduled:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"job-{self.name}")
        logger.info(f"Scheduled job '{self.name}' every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Cancel the interval loop and any in-flight run."""
        for task in (self._loop_task, self._run_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._run_task = None
        logger.info(f"Job '{self.name}' stopped")

    def trigger(self) -> bool:
        """
        Start a run now unless one is already in flight.

        Returns:
            True if a run was started, False if it was skipped
        """
        if self.running:
            self.skips += 1
            record_scheduler_skip(self.name)
            logger.warning(f"Job '{self.name}' still running - skipping this run")
            return False

        self._run_task = asyncio.create_task(self._run(), name=f"run-{self.name}")
        return True

    async def wait(self) -> None:
        """Wait for the in-flight run, if any, to finish."""
        if self._run_task is not None:
            await asyncio.shield(self._run_task)

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.trigger()
            except asyncio.CancelledError:
                break

    async def _run(self) -> None:
        self.runs += 1
        self.last_started = datetime.now(timezone.utc)
        logger.info(f"Starting scheduled {self.name} at {self.last_started.isoformat()}")
        try:
            result = await self.func()
            self.last_error = None
            logger.info(f"Scheduled {self.name} completed: {_summarize(result)}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error(f"Error in scheduled {self.name}: {self.last_error}")
        finally:
            self.last_finished = datetime.now(timezone.utc)

    def get_status(self) -> dict:
        return {
            "scheduled": self.scheduled,
            "running": self.running,
            "intervalSeconds": self.interval_seconds,
            "runs": self.runs,
            "skips": self.skips,
            "lastStarted": self.last_started.isoformat() if self.last_started else None,
            "lastFinished": self.last_finished.isoformat() if self.last_finished else None,
            "lastError": self.last_error,
        }


def _summarize(result: Any) -> str:
    """Short log form of a sweep's return value."""
    if isinstance(result, list):
        total = sum(getattr(r, "new_transactions", 0) or 0 for r in result)
        failed = sum(1 for r in result if getattr(r, "error", None))
        return f"{len(result)} mints, {total} new transactions, {failed} failed"
    return f"{result} records"


class SchedulerService:
    """
    Owns the two periodic sweeps:
    - ingest: IngestionService.ingest_all
    - aggregate: OHLCAggregator.aggregate_all
    """

    INGEST = "ingest"
    AGGREGATE = "aggregate"

    def __init__(
        self,
        ingestion,
        aggregator,
        ingest_interval: float = 120,
        aggregate_interval: float = 180,
    ):
        self.jobs: dict[str, PeriodicJob] = {
            self.INGEST: PeriodicJob(self.INGEST, ingest_interval, ingestion.ingest_all),
            self.AGGREGATE: PeriodicJob(self.AGGREGATE, aggregate_interval, aggregator.aggregate_all),
        }

    def start(self) -> None:
        for job in self.jobs.values():
            job.start()
        logger.info("Scheduler service initialized successfully")

    async def stop(self) -> None:
        for job in self.jobs.values():
            await job.stop()
        logger.info("Scheduler service stopped successfully")

    def trigger(self, name: str) -> bool:
        """Run a job now. Raises KeyError for unknown job names."""
        return self.jobs[name].trigger()

    @property
    def running(self) -> bool:
        return all(job.scheduled for job in self.jobs.values())

    def get_status(self) -> dict:
        return {name: job.get_status() for name, job in self.jobs.items()}

"""
Job scheduler: periodic asyncio jobs with overlap protection.

Each job fires on its own interval. A firing while the previous run of the
same job is still in progress is skipped, not queued. Job failures are
logged and never stop the trigger loop.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from exceptions import NotFoundError
from models.jobs import JobStatus

logger = structlog.get_logger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    func: JobFunc
    running: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def status(self) -> JobStatus:
        return JobStatus(
            name=self.name,
            interval_seconds=self.interval_seconds,
            running=self.running,
            runs=self.runs,
            skipped=self.skipped,
            failures=self.failures,
            last_started_at=self.last_started_at,
            last_finished_at=self.last_finished_at,
            last_error=self.last_error,
        )


class JobScheduler:
    """Runs registered jobs on fixed intervals."""

    def __init__(self):
        self._jobs: dict[str, ScheduledJob] = {}
        self._loops: dict[str, asyncio.Task] = {}
        self._in_flight: set[asyncio.Task] = set()

    def add_job(self, name: str, interval_seconds: float, func: JobFunc) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"Job {name} needs a positive interval")
        self._jobs[name] = ScheduledJob(name=name, interval_seconds=interval_seconds, func=func)
        logger.info("job_registered", job=name, interval_seconds=interval_seconds)

    def _get(self, name: str) -> ScheduledJob:
        job = self._jobs.get(name)
        if job is None:
            raise NotFoundError("Job", name)
        return job

    @property
    def is_running(self) -> bool:
        return bool(self._loops)

    # ===================
    # LIFECYCLE
    # ===================

    def start(self) -> None:
        """Start one trigger loop per job. Must be called inside a running event loop."""
        for name, job in self._jobs.items():
            if name not in self._loops:
                self._loops[name] = asyncio.create_task(self._trigger_loop(job), name=f"job:{name}")
        logger.info("scheduler_started", jobs=list(self._jobs))

    async def stop_all(self) -> None:
        """Cancel future firings. In-flight runs are left to finish."""
        loops = list(self._loops.values())
        self._loops.clear()
        for task in loops:
            task.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        logger.info("scheduler_stopped", in_flight=len(self._in_flight))

    async def wait_idle(self) -> None:
        """Wait for in-flight runs to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _trigger_loop(self, job: ScheduledJob) -> None:
        while True:
            await asyncio.sleep(job.interval_seconds)
            self.tick(job.name)

    # ===================
    # FIRING
    # ===================

    def tick(self, name: str) -> bool:
        """
        Fire a job in the background unless it is already running.

        Returns:
            True if a run was started, False if skipped
        """
        job = self._get(name)
        if not self._claim(job):
            return False
        task = asyncio.create_task(self._run(job), name=f"run:{name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return True

    async def trigger(self, name: str) -> bool:
        """
        Run a job now and wait for it, under the same overlap guard.

        Returns:
            True if the job ran, False if it was already running

        Raises:
            NotFoundError: Unknown job name
        """
        job = self._get(name)
        if not self._claim(job):
            return False
        task = asyncio.create_task(self._run(job), name=f"run:{name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        await task
        return True

    def _claim(self, job: ScheduledJob) -> bool:
        if job.running:
            job.skipped += 1
            logger.warning(
                "job_skipped_overlap",
                job=job.name,
                started_at=job.last_started_at.isoformat() if job.last_started_at else None,
                skipped=job.skipped,
            )
            return False
        job.running = True
        return True

    async def _run(self, job: ScheduledJob) -> None:
        job.last_started_at = datetime.now(timezone.utc)
        logger.info("job_started", job=job.name)
        try:
            await job.func()
            job.last_error = None
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.exception("job_failed", error_type="JOB_ERROR", job=job.name, error=str(e))
        finally:
            job.runs += 1
            job.running = False
            job.last_finished_at = datetime.now(timezone.utc)

        duration_ms = int((job.last_finished_at - job.last_started_at).total_seconds() * 1000)
        logger.info("job_finished", job=job.name, duration_ms=duration_ms, failed=job.last_error is not None)

    # ===================
    # REPORTING
    # ===================

    def get_status(self) -> list[JobStatus]:
        return [job.status() for job in self._jobs.values()]

    def job_names(self) -> list[str]:
        return list(self._jobs)

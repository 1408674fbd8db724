"""
Interval job scheduler with readiness gates.

Each job has its own interval, measured from the start of its previous run.
A scheduler tick starts every job that is not running, whose readiness
gates are all done and whose interval has elapsed; the job body runs as its
own asyncio task so a slow job never delays another job's timer. Job
failures are recorded and logged, never raised out of the scheduler.

State per job::

    IDLE ──(gate pending)──> WAITING ──(gates done)──> IDLE
    IDLE/WAITING/ERRORED ──(ready and due)──> RUNNING
    RUNNING ──(success)──> IDLE        (first success flips the owned gate)
    RUNNING ──(failure)──> ERRORED     (eligible again at its next interval)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from apigee_discovery.discovery.gate import ReadinessGate
from apigee_discovery.exceptions import DiscoveryError, JobError, PollCancelledError
from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.observability.structured_logging import add_correlation_id, new_correlation_id
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.scheduler")


class JobState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    ERRORED = "errored"


@dataclass(frozen=True)
class JobOutcome:
    success: bool
    started_at: float
    finished_at: float
    error: Exception | None = None


class Job:
    """
    A recurring unit of work.

    Args:
        job_id: Unique identity, also used for logs and metrics
        interval: Minimum seconds between two run starts
        execute: Coroutine function performing one run
        ready_when: Gates that must all be done before the first run
        owns: Gate flipped after this job's first successful run
    """

    def __init__(
        self,
        job_id: str,
        interval: float,
        execute: Callable[[], Awaitable[Any]],
        *,
        ready_when: Sequence[ReadinessGate] = (),
        owns: ReadinessGate | None = None,
    ):
        if interval <= 0:
            raise ValueError(f"job '{job_id}': interval must be > 0")
        self.id = job_id
        self.interval = interval
        self.execute = execute
        self.ready_when = tuple(ready_when)
        self.owns = owns

        self.state = JobState.IDLE
        self.last_started: float | None = None
        self.last_outcome: JobOutcome | None = None
        self.runs = 0
        self.failures = 0
        self.succeeded_once = False
        self.task: asyncio.Task | None = None

    def is_ready(self) -> bool:
        return all(gate.is_done() for gate in self.ready_when)

    def is_due(self, now: float) -> bool:
        return self.last_started is None or now - self.last_started >= self.interval

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def __repr__(self) -> str:
        return f"Job({self.id!r}, interval={self.interval}, state={self.state.value})"


class JobScheduler:
    """
    Runs registered jobs on their intervals until stopped.

    Args:
        clock: Monotonic time source (injectable for tests)
        tick_interval: Seconds between scheduler ticks
        shutdown_grace: Seconds ``stop()`` waits for running jobs before cancelling them
        metrics: Optional metrics registry
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 0.5,
        shutdown_grace: float = 10.0,
        metrics: MetricsRegistry | None = None,
    ):
        self._clock = clock
        self.tick_interval = tick_interval
        self.shutdown_grace = shutdown_grace
        self.metrics = metrics

        self.jobs: dict[str, Job] = {}
        self.stopping = asyncio.Event()
        self._loop_task: asyncio.Task | None = None

    def add_job(self, job: Job) -> Job:
        if job.id in self.jobs:
            raise ValueError(f"duplicate job id '{job.id}'")
        self.jobs[job.id] = job
        if job.owns is not None and self.metrics is not None:
            self.metrics.record_gate(job.owns.name, job.owns.is_done())
        return job

    def tick(self) -> list[str]:
        """
        Evaluate every job once and start the eligible ones.

        Returns:
            Ids of the jobs started by this tick
        """
        now = self._clock()
        started: list[str] = []
        for job in self.jobs.values():
            if job.running:
                continue
            if not job.is_ready():
                if job.state is not JobState.WAITING:
                    pending = [g.name for g in job.ready_when if not g.is_done()]
                    logger.info(f"Job '{job.id}' waiting on {', '.join(pending)}")
                    job.state = JobState.WAITING
                continue
            if job.state is JobState.WAITING:
                job.state = JobState.IDLE
            if not job.is_due(now):
                continue
            self._start(job, now)
            started.append(job.id)
        return started

    def _start(self, job: Job, now: float) -> None:
        job.last_started = now
        job.state = JobState.RUNNING
        job.task = asyncio.create_task(self._run(job, now), name=f"job:{job.id}")

    async def _run(self, job: Job, started_at: float) -> JobOutcome:
        with add_correlation_id(new_correlation_id(job.id)):
            logger.debug(f"Job '{job.id}' started")
            try:
                if self.metrics is not None:
                    with self.metrics.time_job(job.id):
                        await job.execute()
                else:
                    await job.execute()
            except asyncio.CancelledError:
                job.state = JobState.IDLE
                raise
            except PollCancelledError as e:
                logger.info(f"Job '{job.id}' stopped: {e}")
                return self._record_failure(job, started_at, e)
            except Exception as e:
                error = JobError(job.id, str(e) or type(e).__name__, cause=e)
                logger.error(str(error))
                return self._record_failure(job, started_at, error)

            outcome = JobOutcome(success=True, started_at=started_at, finished_at=self._clock())
            job.last_outcome = outcome
            job.runs += 1
            job.state = JobState.IDLE
            if not job.succeeded_once:
                job.succeeded_once = True
                logger.info(f"Job '{job.id}' completed its first successful run")
                if job.owns is not None and job.owns.mark_done() and self.metrics is not None:
                    self.metrics.record_gate(job.owns.name, True)
            logger.debug(f"Job '{job.id}' finished in {outcome.finished_at - started_at:.2f}s")
            return outcome

    def _record_failure(self, job: Job, started_at: float, error: DiscoveryError) -> JobOutcome:
        outcome = JobOutcome(success=False, started_at=started_at, finished_at=self._clock(), error=error)
        job.last_outcome = outcome
        job.runs += 1
        job.failures += 1
        job.state = JobState.ERRORED
        return outcome

    async def run_now(self, job_id: str) -> JobOutcome:
        """
        Run one job immediately and wait for it, bypassing interval and gates.

        Outcome recording and gate flipping behave as for a scheduled run.
        """
        job = self.jobs[job_id]
        if job.running:
            raise RuntimeError(f"job '{job_id}' is already running")
        now = self._clock()
        self._start(job, now)
        assert job.task is not None
        return await job.task

    def start(self) -> None:
        """Start the tick loop in the background."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self.stopping.clear()
        self._loop_task = asyncio.create_task(self._loop(), name="scheduler")
        logger.info(f"Scheduler started with {len(self.jobs)} jobs")

    async def _loop(self) -> None:
        while not self.stopping.is_set():
            self.tick()
            try:
                await asyncio.wait_for(self.stopping.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """
        Stop ticking and let running jobs finish.

        Pollers observe ``stopping`` at page boundaries; jobs still running
        after ``shutdown_grace`` seconds are cancelled.
        """
        self.stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        in_flight = [job.task for job in self.jobs.values() if job.running]
        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} running job(s)")
            _, pending = await asyncio.wait(in_flight, timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Scheduler stopped")

    def status(self) -> dict[str, Any]:
        """Per-job snapshot for the CLI and logs."""
        jobs = []
        for job in self.jobs.values():
            outcome = job.last_outcome
            jobs.append(
                {
                    "job": job.id,
                    "state": job.state.value,
                    "interval": job.interval,
                    "runs": job.runs,
                    "failures": job.failures,
                    "last_started": job.last_started,
                    "last_success": outcome.success if outcome else None,
                    "last_error": str(outcome.error) if outcome and outcome.error else None,
                    "waiting_on": [g.name for g in job.ready_when if not g.is_done()],
                }
            )
        return {"running": self._loop_task is not None and not self._loop_task.done(), "jobs": jobs}

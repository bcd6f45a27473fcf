"""
CronScheduler -- In-process scheduler for named cron jobs.

Contract:
    Jobs are registered with a 5-field cron expression and a zero-argument
    task.  A dedicated daemon thread sleeps until the earliest
    ``next_run_at`` (bounded by ``max_sleep_seconds``), then hands every
    due job to a bounded worker pool.  ``tick()`` performs one evaluation
    pass and runs due jobs inline when the thread is not running.

Architecture: recurring_batch/services.  Uses recurring_batch.domain.schedule
    for pure cron evaluation.  Knows nothing about obligations; the
    recurring-payments job is wired in by recurring_batch.startup.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - A job never runs twice concurrently (in-flight firings are skipped).
    - A failing task increments ``error_count`` and never stops the loop.
    - Graceful shutdown: ``stop()`` joins the thread and drains the pool.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from recurring_kernel.domain.clock import Clock, SystemClock
from recurring_kernel.exceptions import (
    JobAlreadyRegisteredError,
    JobAlreadyRunningError,
    JobNotFoundError,
)
from recurring_kernel.logging_config import LogContext, get_logger
from recurring_kernel.services.payment_monitor import MonitorSeverity, PaymentMonitor

from recurring_batch.domain.schedule import next_cron_run
from recurring_batch.domain.types import JobRunResult, ScheduleJob, SchedulerStats

logger = get_logger("batch.scheduler")

JobTask = Callable[[], Any]


class CronScheduler:
    """Named cron jobs with enable/disable and runtime statistics.

    Contract:
        - ``register_job()`` / ``unregister_job()`` manage the job table.
        - ``start()`` / ``stop()`` for background thread operation.
        - ``tick()`` and ``force_run()`` for direct invocation.

    Non-goals:
        - NOT a distributed scheduler (no leader election, no persistence).
        - Does NOT catch up missed firings; a job fires at most once per pass.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        max_workers: int = 4,
        max_sleep_seconds: float = 60.0,
        monitor: PaymentMonitor | None = None,
    ):
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._max_sleep = max_sleep_seconds
        self._monitor = monitor
        self._jobs: dict[str, ScheduleJob] = {}
        self._tasks: dict[str, JobTask] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._pool: ThreadPoolExecutor | None = None

    # -------------------------------------------------------------------------
    # Job table
    # -------------------------------------------------------------------------

    def register_job(
        self,
        job_id: str,
        name: str,
        cron_expression: str,
        task: JobTask,
        enabled: bool = True,
    ) -> ScheduleJob:
        """Add a job.

        Raises:
            JobAlreadyRegisteredError: If ``job_id`` is taken.
            InvalidCronExpressionError: If ``cron_expression`` is malformed.
        """
        next_run = next_cron_run(cron_expression, self._clock.now())
        with self._lock:
            if job_id in self._jobs:
                raise JobAlreadyRegisteredError(job_id)
            job = ScheduleJob(
                job_id=job_id,
                name=name,
                cron_expression=cron_expression,
                enabled=enabled,
                next_run_at=next_run if enabled else None,
            )
            self._jobs[job_id] = job
            self._tasks[job_id] = task

        logger.info(
            "cron_job_registered",
            extra={
                "job_id": job_id,
                "job_name": name,
                "cron_expression": cron_expression,
                "enabled": enabled,
                "next_run_at": job.next_run_at,
            },
        )
        self._log_monitor(f"Cron job registered: {job_id}", data={"schedule": cron_expression})
        self._wake_event.set()
        return job

    def unregister_job(self, job_id: str) -> None:
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            del self._jobs[job_id]
            del self._tasks[job_id]
        logger.info("cron_job_unregistered", extra={"job_id": job_id})
        self._wake_event.set()

    def set_job_enabled(self, job_id: str, enabled: bool) -> ScheduleJob:
        with self._lock:
            job = self._get(job_id)
            next_run = next_cron_run(job.cron_expression, self._clock.now()) if enabled else None
            job = replace(job, enabled=enabled, next_run_at=next_run)
            self._jobs[job_id] = job

        logger.info(
            "cron_job_enabled" if enabled else "cron_job_disabled",
            extra={"job_id": job_id},
        )
        self._log_monitor(f"Job {job_id} {'enabled' if enabled else 'disabled'}")
        self._wake_event.set()
        return job

    def update_job_schedule(self, job_id: str, cron_expression: str) -> ScheduleJob:
        """Replace a job's cadence and recompute its next run.

        Raises:
            JobNotFoundError: If ``job_id`` is unknown.
            InvalidCronExpressionError: If ``cron_expression`` is malformed.
        """
        next_run = next_cron_run(cron_expression, self._clock.now())
        with self._lock:
            job = self._get(job_id)
            job = replace(
                job,
                cron_expression=cron_expression,
                next_run_at=next_run if job.enabled else None,
            )
            self._jobs[job_id] = job

        logger.info(
            "cron_job_schedule_updated",
            extra={
                "job_id": job_id,
                "cron_expression": cron_expression,
                "next_run_at": job.next_run_at,
            },
        )
        self._log_monitor(f"Job {job_id} schedule updated to: {cron_expression}")
        self._wake_event.set()
        return job

    def get_job_status(self, job_id: str) -> ScheduleJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def get_all_jobs_status(self) -> tuple[ScheduleJob, ...]:
        with self._lock:
            return tuple(self._jobs.values())

    def get_stats(self) -> SchedulerStats:
        with self._lock:
            jobs = list(self._jobs.values())
        return SchedulerStats(
            is_running=self.is_scheduler_running(),
            total_jobs=len(jobs),
            enabled_jobs=sum(1 for j in jobs if j.enabled),
            active_jobs=sum(1 for j in jobs if j.in_flight),
            total_runs=sum(j.run_count for j in jobs),
            total_errors=sum(j.error_count for j in jobs),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self.is_scheduler_running():
            logger.warning("cron_scheduler_already_running")
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self._pool = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="cron-job",
        )
        self._thread = threading.Thread(
            target=self._run_loop,
            name="cron-scheduler",
            daemon=True,
        )
        self._thread.start()

        enabled = sum(1 for j in self.get_all_jobs_status() if j.enabled)
        logger.info(
            "cron_scheduler_started",
            extra={"enabled_jobs": enabled, "max_workers": self._max_workers},
        )
        self._log_monitor(f"Cron scheduler started with {enabled} active jobs")

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop, join the thread and drain the worker pool.

        Args:
            timeout: Max seconds to wait for the scheduler thread.
        """
        if not self.is_scheduler_running():
            logger.warning("cron_scheduler_not_running")
            return

        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        if self._pool is not None:
            self._pool.shutdown(wait=True)
        self._thread = None
        self._pool = None

        logger.info("cron_scheduler_stopped")
        self._log_monitor("Cron scheduler stopped")

    def is_scheduler_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Firing
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Fire every enabled job whose ``next_run_at`` has passed.

        Public for testing.  Jobs run inline when the background thread is
        not running.  Returns the number of jobs fired.
        """
        return self._fire_due(inline=not self.is_scheduler_running())

    def force_run(self, job_id: str) -> JobRunResult:
        """Run a job now in the caller's thread.

        Raises:
            JobNotFoundError: If ``job_id`` is unknown.
            JobAlreadyRunningError: If the job is in flight.
        """
        now = self._clock.now()
        with self._lock:
            job = self._get(job_id)
            if job.in_flight:
                raise JobAlreadyRunningError(job_id)
            self._jobs[job_id] = replace(
                job, in_flight=True, last_run_at=now, run_count=job.run_count + 1,
            )
            task = self._tasks[job_id]

        logger.info("cron_job_force_run", extra={"job_id": job_id})
        return self._execute(job_id, task)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _get(self, job_id: str) -> ScheduleJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _run_loop(self) -> None:
        """Background loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self._fire_due(inline=False)
            except Exception:
                logger.exception("cron_scheduler_tick_exception")
            self._wake_event.wait(timeout=self._seconds_until_next_run())
            self._wake_event.clear()

    def _seconds_until_next_run(self) -> float:
        now = self._clock.now()
        with self._lock:
            upcoming = [
                j.next_run_at for j in self._jobs.values()
                if j.enabled and j.next_run_at is not None
            ]
        if not upcoming:
            return self._max_sleep
        delay = (min(upcoming) - now).total_seconds()
        return min(max(delay, 0.0), self._max_sleep)

    def _fire_due(self, inline: bool) -> int:
        now = self._clock.now()
        dispatch: list[tuple[str, JobTask]] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.enabled or job.next_run_at is None or job.next_run_at > now:
                    continue
                next_run = next_cron_run(job.cron_expression, now)
                if job.in_flight:
                    self._jobs[job_id] = replace(job, next_run_at=next_run)
                    logger.warning(
                        "cron_job_skipped_in_flight",
                        extra={"job_id": job_id, "next_run_at": next_run},
                    )
                    continue
                self._jobs[job_id] = replace(
                    job,
                    in_flight=True,
                    last_run_at=now,
                    next_run_at=next_run,
                    run_count=job.run_count + 1,
                )
                dispatch.append((job_id, self._tasks[job_id]))

        for job_id, task in dispatch:
            pool = self._pool
            if inline or pool is None:
                self._execute(job_id, task)
            else:
                pool.submit(self._execute, job_id, task)

        return len(dispatch)

    def _execute(self, job_id: str, task: JobTask) -> JobRunResult:
        """Run one task; exceptions are recorded, never propagated."""
        started_at = self._clock.now()
        start = time.monotonic()
        data: Any = None
        error: str | None = None

        with LogContext.bind(job_id=job_id):
            logger.info("cron_job_started", extra={"started_at": started_at})
            try:
                data = task()
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                logger.exception("cron_job_failed")
                if self._monitor is not None:
                    self._monitor.log_scheduler(
                        f"Cron job {job_id} failed: {error}",
                        severity=MonitorSeverity.ERROR,
                        data={"job_id": job_id},
                    )
            finally:
                with self._lock:
                    job = self._jobs.get(job_id)
                    if job is not None:
                        self._jobs[job_id] = replace(
                            job,
                            in_flight=False,
                            error_count=job.error_count + (1 if error is not None else 0),
                        )

            duration_ms = int((time.monotonic() - start) * 1000)
            if error is None:
                logger.info("cron_job_completed", extra={"duration_ms": duration_ms})
                self._log_monitor(
                    f"Cron job {job_id} completed successfully in {duration_ms}ms",
                    data={"job_id": job_id, "duration_ms": duration_ms},
                )

        return JobRunResult(
            job_id=job_id,
            success=error is None,
            started_at=started_at,
            finished_at=self._clock.now(),
            duration_ms=duration_ms,
            data=data,
            error=error,
        )

    def _log_monitor(self, message: str, data: dict[str, Any] | None = None) -> None:
        if self._monitor is not None:
            self._monitor.log_scheduler(message, data=data)

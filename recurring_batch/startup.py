"""
SystemStartup -- Lifecycle facade for the recurring engine.

Contract:
    ``initialize()`` configures logging, starts the PaymentMonitor,
    registers the ``recurring-payments`` cron job and (when cron jobs are
    enabled) starts the CronScheduler.  ``shutdown()`` undoes all of it.
    Both are idempotent.  ``from_session_factory()`` wires a complete
    instance over the SQLAlchemy store.

Architecture: recurring_batch (top-level).  This is the canonical entry
    point for running the engine in a long-lived process.

Invariants enforced:
    - Clock injection (processor, scheduler and monitor share one Clock).
    - Graceful shutdown (scheduler thread joined, pool drained).
"""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from recurring_kernel.domain.clock import Clock, SystemClock
from recurring_kernel.logging_config import configure_logging, get_logger, set_log_level
from recurring_kernel.services.payment_monitor import (
    MonitorMetrics,
    MonitorSeverity,
    PaymentMonitor,
)
from recurring_config.schema import StartupConfig

from recurring_batch.domain.types import SchedulerStats
from recurring_batch.services.processor import RecurringPaymentProcessor
from recurring_batch.services.scheduler import CronScheduler
from recurring_batch.store.sql_store import SqlObligationStore

logger = get_logger("batch.startup")

RECURRING_PAYMENTS_JOB_ID = "recurring-payments"
RECURRING_PAYMENTS_JOB_NAME = "Process Recurring Payments"


@dataclass(frozen=True)
class SystemStatus:
    """Snapshot returned by ``get_status()`` / ``get_system_status()``."""

    initialized: bool
    config: StartupConfig | None
    timestamp: datetime
    scheduler: SchedulerStats | None = None
    monitor: MonitorMetrics | None = None


class SystemStartup:
    """Owns the processor, scheduler and monitor for one process.

    Contract:
        - ``initialize()`` / ``shutdown()`` are idempotent.
        - ``get_status()`` never raises.

    Non-goals:
        - Does NOT create database tables -- see recurring_kernel.db.engine.
    """

    def __init__(
        self,
        processor: RecurringPaymentProcessor,
        scheduler: CronScheduler,
        monitor: PaymentMonitor,
        clock: Clock | None = None,
    ) -> None:
        self._processor = processor
        self._scheduler = scheduler
        self._monitor = monitor
        self._clock = clock or SystemClock()
        self._config: StartupConfig | None = None
        self._initialized = False
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        max_workers: int = 1,
    ) -> SystemStartup:
        """Create a fully wired SystemStartup.

        Args:
            session_factory: Callable returning new sessions.
            clock: Optional clock for deterministic testing.
            max_workers: Worker threads per processor sweep.
        """
        effective_clock = clock or SystemClock()
        monitor = PaymentMonitor(clock=effective_clock)
        processor = RecurringPaymentProcessor(
            store=SqlObligationStore(session_factory),
            monitor=monitor,
            clock=effective_clock,
            max_workers=max_workers,
        )
        scheduler = CronScheduler(clock=effective_clock, monitor=monitor)
        return cls(processor, scheduler, monitor, clock=effective_clock)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self, config: StartupConfig | Mapping[str, Any] | None = None) -> None:
        """Bring the engine up.  A second call while initialized is a no-op.

        Raises:
            InvalidCronExpressionError / ValueError: if ``config`` is invalid.
        """
        with self._lock:
            if self._initialized:
                logger.info("system_already_initialized")
                return

            if config is None:
                config = StartupConfig()
            elif not isinstance(config, StartupConfig):
                config = StartupConfig.from_mapping(config)

            configure_logging(level=config.log_level.value)
            set_log_level(config.log_level.value)
            logger.info("system_initializing", extra=config.to_dict())

            self._monitor.start()
            try:
                self._scheduler.register_job(
                    RECURRING_PAYMENTS_JOB_ID,
                    RECURRING_PAYMENTS_JOB_NAME,
                    config.cron_job_schedule,
                    self._run_recurring_payments,
                    enabled=config.enable_cron_jobs,
                )
                if config.enable_cron_jobs:
                    self._scheduler.start()
            except Exception as exc:
                logger.exception("system_initialization_failed")
                self._monitor.log_system(
                    "System initialization failed",
                    severity=MonitorSeverity.ERROR,
                    data={"error": str(exc)},
                )
                self._teardown()
                raise

            self._config = config
            self._initialized = True

        logger.info("system_initialized", extra=config.to_dict())
        self._monitor.log_system("Recurring payment system initialized", data=config.to_dict())

    def shutdown(self) -> None:
        """Stop the scheduler and the monitor.  No-op when not initialized."""
        with self._lock:
            if not self._initialized:
                return
            logger.info("system_shutting_down")
            self._monitor.log_system("Recurring payment system shutting down")
            self._teardown()
            self._initialized = False
            self._config = None
        logger.info("system_shut_down")

    def is_initialized(self) -> bool:
        return self._initialized

    def get_status(self) -> SystemStatus:
        return SystemStatus(
            initialized=self._initialized,
            config=self._config,
            timestamp=self._clock.now(),
        )

    def get_system_status(self) -> SystemStatus:
        """``get_status()`` plus scheduler statistics and monitor metrics."""
        return replace(
            self.get_status(),
            scheduler=self._scheduler.get_stats(),
            monitor=self._monitor.get_metrics(),
        )

    def install_signal_handlers(self) -> dict[int, Any]:
        """Shut down gracefully on SIGTERM / SIGINT.

        Must be called from the main thread.  Returns the previous handlers
        keyed by signal number so callers can restore them.
        """
        previous: dict[int, Any] = {}
        for signum in (signal.SIGTERM, signal.SIGINT):
            previous[signum] = signal.signal(signum, self._handle_signal)
        logger.info("signal_handlers_installed")
        return previous

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def processor(self) -> RecurringPaymentProcessor:
        return self._processor

    @property
    def scheduler(self) -> CronScheduler:
        return self._scheduler

    @property
    def monitor(self) -> PaymentMonitor:
        return self._monitor

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _teardown(self) -> None:
        if self._scheduler.is_scheduler_running():
            self._scheduler.stop()
        if self._scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID) is not None:
            self._scheduler.unregister_job(RECURRING_PAYMENTS_JOB_ID)
        self._monitor.stop()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        logger.info("shutdown_signal_received", extra={"signal": signal.Signals(signum).name})
        self.shutdown()
        raise SystemExit(0)

    def _run_recurring_payments(self) -> dict[str, Any]:
        """Body of the ``recurring-payments`` job."""
        result = self._processor.process_all_due_recurring_payments()

        if result.processed_count > 0:
            self._monitor.log_scheduler(
                f"{result.processed_count} payments processed, "
                f"total amount: {result.total_amount:.2f}",
                data={"job_id": RECURRING_PAYMENTS_JOB_ID},
            )
        if result.errors:
            self._monitor.log_scheduler(
                f"{len(result.errors)} payments failed to process. "
                "Check logs for details.",
                severity=MonitorSeverity.WARNING,
                data={"job_id": RECURRING_PAYMENTS_JOB_ID},
            )

        return {
            "success": result.success,
            "processed_count": result.processed_count,
            "created_records": len(result.created_records),
            "error_count": len(result.errors),
            "deactivated_count": result.deactivated_count,
            "skipped_count": result.skipped_count,
        }

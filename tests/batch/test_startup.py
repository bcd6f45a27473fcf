"""
Tests for recurring_batch.startup.

Validates the initialize/shutdown lifecycle, status snapshots and the
body of the recurring-payments job.
"""

import logging
import signal

import pytest

from recurring_batch.startup import (
    RECURRING_PAYMENTS_JOB_ID,
    RECURRING_PAYMENTS_JOB_NAME,
    SystemStartup,
)
from recurring_config.schema import LogLevel, StartupConfig
from recurring_kernel.exceptions import InvalidCronExpressionError
from recurring_kernel.services.payment_monitor import MonitorCategory, MonitorSeverity


@pytest.fixture
def system(session_factory, clock):
    startup = SystemStartup.from_session_factory(session_factory, clock=clock)
    yield startup
    startup.shutdown()


class TestInitialize:
    def test_defaults(self, system):
        system.initialize()

        assert system.is_initialized() is True
        assert system.scheduler.is_scheduler_running() is True
        assert system.monitor.is_active is True

        job = system.scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID)
        assert job.name == RECURRING_PAYMENTS_JOB_NAME
        assert job.schedule == "0 0 * * *"
        assert job.enabled is True

    def test_mapping_config(self, system):
        system.initialize({"enableCronJobs": True, "cronJobSchedule": "*/15 * * * *"})
        job = system.scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID)
        assert job.schedule == "*/15 * * * *"

    def test_cron_disabled(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False))

        assert system.is_initialized() is True
        assert system.scheduler.is_scheduler_running() is False
        job = system.scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID)
        assert job.enabled is False
        assert job.next_run_at is None

    def test_second_call_is_noop(self, system, captured_logs):
        system.initialize(StartupConfig(enable_cron_jobs=False))
        system.initialize(StartupConfig(cron_job_schedule="0 6 * * *"))

        assert system.get_status().config.enable_cron_jobs is False
        assert len(system.scheduler.get_all_jobs_status()) == 1
        assert any(r["message"] == "system_already_initialized" for r in captured_logs())

    def test_invalid_config_leaves_system_down(self, system):
        with pytest.raises(InvalidCronExpressionError):
            system.initialize({"cron_job_schedule": "whenever"})
        assert system.is_initialized() is False
        assert system.scheduler.get_all_jobs_status() == ()

    def test_unknown_key_rejected(self, system):
        with pytest.raises(ValueError, match="Unknown startup config key"):
            system.initialize({"cronSchedule": "0 0 * * *"})

    def test_log_level_applied(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False, log_level=LogLevel.ERROR))
        assert logging.getLogger("recurring_kernel").level == logging.ERROR

    def test_monitor_records_initialization(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False))
        messages = [e.message for e in system.monitor.get_events(category=MonitorCategory.SYSTEM)]
        assert "Recurring payment system initialized" in messages
        assert "Payment monitor started" in messages


class TestShutdown:
    def test_shutdown(self, system):
        system.initialize()
        system.shutdown()

        assert system.is_initialized() is False
        assert system.scheduler.is_scheduler_running() is False
        assert system.scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID) is None
        assert system.monitor.is_active is False
        assert system.get_status().config is None

    def test_shutdown_without_initialize(self, system):
        system.shutdown()
        assert system.is_initialized() is False

    def test_reinitialize_after_shutdown(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False))
        system.shutdown()
        system.initialize(StartupConfig(enable_cron_jobs=False))
        assert system.is_initialized() is True

    def test_signal_handler_shuts_down(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False))
        with pytest.raises(SystemExit) as exc_info:
            system._handle_signal(signal.SIGTERM, None)
        assert exc_info.value.code == 0
        assert system.is_initialized() is False

    def test_install_signal_handlers(self, system):
        previous = system.install_signal_handlers()
        try:
            assert set(previous) == {signal.SIGTERM, signal.SIGINT}
            assert signal.getsignal(signal.SIGTERM) == system._handle_signal
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)


class TestStatus:
    def test_status_before_initialize(self, system, clock):
        status = system.get_status()
        assert status.initialized is False
        assert status.config is None
        assert status.timestamp == clock.now()
        assert status.scheduler is None

    def test_system_status(self, system):
        system.initialize(StartupConfig(enable_cron_jobs=False))
        status = system.get_system_status()
        assert status.initialized is True
        assert status.config == StartupConfig(enable_cron_jobs=False)
        assert status.scheduler.total_jobs == 1
        assert status.scheduler.enabled_jobs == 0
        assert status.monitor.total_runs == 0


class TestRecurringPaymentsJob:
    def test_force_run_processes_due_obligations(self, system, add_obligation):
        add_obligation(user_id="user-1", amount="1000")
        add_obligation(user_id="user-2", amount="250.25", kind="expense", vendor_id="v-1")
        system.initialize(StartupConfig(enable_cron_jobs=False))

        result = system.scheduler.force_run(RECURRING_PAYMENTS_JOB_ID)

        assert result.success is True
        assert result.data == {
            "success": True,
            "processed_count": 2,
            "created_records": 2,
            "error_count": 0,
            "deactivated_count": 0,
            "skipped_count": 0,
        }
        messages = [
            e.message for e in system.monitor.get_events(category=MonitorCategory.SCHEDULER)
        ]
        assert "2 payments processed, total amount: 1250.25" in messages

    def test_job_reports_failures(self, system, add_obligation, monkeypatch):
        add_obligation()
        system.initialize(StartupConfig(enable_cron_jobs=False))

        def broken(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(system.processor._store, "create_ledger_entry", broken)

        result = system.scheduler.force_run(RECURRING_PAYMENTS_JOB_ID)

        assert result.success is True  # the job ran; the sweep reported errors
        assert result.data["success"] is False
        assert result.data["error_count"] == 1
        warnings = system.monitor.get_events(
            category=MonitorCategory.SCHEDULER, severity=MonitorSeverity.WARNING,
        )
        assert warnings[0].message == "1 payments failed to process. Check logs for details."

    def test_scheduled_firing(self, system, clock, add_obligation):
        add_obligation()
        system.initialize(StartupConfig(enable_cron_jobs=False))
        system.scheduler.set_job_enabled(RECURRING_PAYMENTS_JOB_ID, True)
        clock.advance(12 * 3600)

        assert system.scheduler.tick() == 1
        job = system.scheduler.get_job_status(RECURRING_PAYMENTS_JOB_ID)
        assert job.run_count == 1
        assert job.error_count == 0
        assert system.monitor.get_metrics().total_successful == 1

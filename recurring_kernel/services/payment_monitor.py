"""
PaymentMonitor -- Append-only event sink for recurring payment processing.

Contract:
    ``log_success`` / ``log_error`` / ``log_processing_start`` /
    ``log_system`` / ``log_scheduler`` append one MonitorEvent, update the
    aggregate counters, and emit one structured log line.  None of them
    ever raise: a failure inside the monitor is reported to a fallback
    logger and dropped, so the processor's critical path is unaffected.

Architecture: recurring_kernel/services.  One instance is constructed at
    process start (see recurring_batch.startup) and passed by handle to the
    processor and scheduler.

Invariants enforced:
    - Counters and the event buffer are mutated under one lock.
    - The buffer is bounded (oldest events are dropped first).
    - Alert events never trigger further alerts.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from recurring_kernel.domain.clock import Clock, SystemClock
from recurring_kernel.logging_config import get_logger

logger = get_logger("monitor")
_fallback_logger = get_logger("monitor.fallback")


class MonitorSeverity(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class MonitorCategory(str, Enum):
    RECURRING_PAYMENT = "recurring-payment"
    SYSTEM = "system"
    SCHEDULER = "scheduler"
    NOTIFICATION = "notification"


_LOG_LEVELS = {
    MonitorSeverity.PROCESSING: logging.INFO,
    MonitorSeverity.SUCCESS: logging.INFO,
    MonitorSeverity.INFO: logging.INFO,
    MonitorSeverity.WARNING: logging.WARNING,
    MonitorSeverity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class MonitorEvent:
    """One structured monitor record."""

    event_id: str
    timestamp: datetime
    severity: MonitorSeverity
    category: MonitorCategory
    message: str
    user_id: str | None = None
    obligation_id: str | None = None
    record_id: str | None = None
    amount: Decimal | None = None
    processing_time_ms: int | None = None
    error: dict[str, str] | None = None  # {"code": ..., "message": ...}
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MonitorMetrics:
    """Aggregate counters over every event since the last reset."""

    total_runs: int = 0
    total_errors: int = 0
    total_successful: int = 0
    total_failed: int = 0
    total_amount: Decimal = Decimal("0")
    average_processing_time_ms: float = 0.0
    last_processing_at: datetime | None = None
    error_rate: float = 0.0  # percent of recurring-payment outcomes that failed
    uptime_seconds: float = 0.0


@dataclass(frozen=True)
class AlertConfig:
    enabled: bool = True
    error_threshold: int = 5
    time_window_minutes: int = 60


class PaymentMonitor:
    """Process-wide sink for processing events and counters."""

    def __init__(
        self,
        clock: Clock | None = None,
        max_events: int = 10_000,
        alert_config: AlertConfig | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._events: deque[MonitorEvent] = deque(maxlen=max_events)
        self._metrics = MonitorMetrics()
        self._timed_successes = 0
        self._alert_config = alert_config or AlertConfig()
        self._lock = threading.Lock()
        self._started_at = self._clock.now()
        self._active = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            self._started_at = self._clock.now()
        self.log_system("Payment monitor started")

    def stop(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self.log_system("Payment monitor stopped")

    @property
    def is_active(self) -> bool:
        return self._active

    # -------------------------------------------------------------------------
    # Writers
    # -------------------------------------------------------------------------

    def log_success(
        self,
        message: str,
        *,
        user_id: str | None = None,
        obligation_id: str | None = None,
        record_id: str | None = None,
        amount: Decimal | None = None,
        processing_time_ms: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._record(
            severity=MonitorSeverity.SUCCESS,
            category=MonitorCategory.RECURRING_PAYMENT,
            message=message,
            user_id=user_id,
            obligation_id=obligation_id,
            record_id=record_id,
            amount=amount,
            processing_time_ms=processing_time_ms,
            data=data,
        )

    def log_error(
        self,
        message: str,
        error: BaseException | str,
        *,
        user_id: str | None = None,
        obligation_id: str | None = None,
        processing_time_ms: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._record(
            severity=MonitorSeverity.ERROR,
            category=MonitorCategory.RECURRING_PAYMENT,
            message=message,
            user_id=user_id,
            obligation_id=obligation_id,
            processing_time_ms=processing_time_ms,
            error=error,
            data=data,
        )

    def log_processing_start(
        self,
        message: str,
        *,
        user_id: str | None = None,
        batch_size: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        payload = dict(data or {})
        if batch_size is not None:
            payload["batch_size"] = batch_size
        self._record(
            severity=MonitorSeverity.PROCESSING,
            category=MonitorCategory.RECURRING_PAYMENT,
            message=message,
            user_id=user_id,
            data=payload,
        )

    def log_system(
        self,
        message: str,
        severity: MonitorSeverity = MonitorSeverity.INFO,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._record(
            severity=severity,
            category=MonitorCategory.SYSTEM,
            message=message,
            data=data,
        )

    def log_scheduler(
        self,
        message: str,
        severity: MonitorSeverity = MonitorSeverity.INFO,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._record(
            severity=severity,
            category=MonitorCategory.SCHEDULER,
            message=message,
            data=data,
        )

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    def get_metrics(self) -> MonitorMetrics:
        with self._lock:
            uptime = (self._clock.now() - self._started_at).total_seconds()
            return replace(self._metrics, uptime_seconds=max(uptime, 0.0))

    def get_events(
        self,
        *,
        severity: MonitorSeverity | None = None,
        category: MonitorCategory | None = None,
        user_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> tuple[MonitorEvent, ...]:
        """Matching events, newest first."""
        with self._lock:
            events = list(self._events)

        if severity is not None:
            events = [e for e in events if e.severity == severity]
        if category is not None:
            events = [e for e in events if e.category == category]
        if user_id is not None:
            events = [e for e in events if e.user_id == user_id]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if until is not None:
            events = [e for e in events if e.timestamp <= until]

        events.reverse()
        if limit is not None:
            events = events[:limit]
        return tuple(events)

    def get_recent_errors(self, window_minutes: int = 60) -> tuple[MonitorEvent, ...]:
        cutoff = self._clock.now() - timedelta(minutes=window_minutes)
        return self.get_events(severity=MonitorSeverity.ERROR, since=cutoff)

    @property
    def alert_config(self) -> AlertConfig:
        return self._alert_config

    def update_alert_config(self, **changes: Any) -> AlertConfig:
        with self._lock:
            self._alert_config = replace(self._alert_config, **changes)
            config = self._alert_config
        self.log_system(
            "Alert configuration updated",
            data={
                "enabled": config.enabled,
                "error_threshold": config.error_threshold,
                "time_window_minutes": config.time_window_minutes,
            },
        )
        return config

    def clear_events(self) -> None:
        with self._lock:
            self._events.clear()
        self.log_system("Payment monitor events cleared")

    def reset_metrics(self) -> None:
        with self._lock:
            self._metrics = MonitorMetrics()
            self._timed_successes = 0
            self._started_at = self._clock.now()
        self.log_system("Payment monitor metrics reset")

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _record(
        self,
        *,
        severity: MonitorSeverity,
        category: MonitorCategory,
        message: str,
        error: BaseException | str | None = None,
        data: dict[str, Any] | None = None,
        **fields: Any,
    ) -> None:
        try:
            event = MonitorEvent(
                event_id=uuid4().hex,
                timestamp=self._clock.now(),
                severity=severity,
                category=category,
                message=message,
                error=_describe_error(error),
                data=dict(data or {}),
                **fields,
            )
            with self._lock:
                self._events.append(event)
                self._update_metrics(event)
            self._emit(event, error)
            self._check_alerts(event)
        except Exception:
            # The monitor must never fail its caller.
            _fallback_logger.debug("payment_monitor_write_failed", exc_info=True)

    def _update_metrics(self, event: MonitorEvent) -> None:
        m = self._metrics
        changes: dict[str, Any] = {}

        if event.severity == MonitorSeverity.ERROR:
            changes["total_errors"] = m.total_errors + 1

        if event.category == MonitorCategory.RECURRING_PAYMENT:
            successful = m.total_successful
            failed = m.total_failed
            if event.severity == MonitorSeverity.PROCESSING:
                changes["total_runs"] = m.total_runs + 1
                changes["last_processing_at"] = event.timestamp
            elif event.severity == MonitorSeverity.SUCCESS:
                successful += 1
                if event.amount is not None:
                    changes["total_amount"] = m.total_amount + Decimal(event.amount)
                if event.processing_time_ms is not None:
                    self._timed_successes += 1
                    n = self._timed_successes
                    changes["average_processing_time_ms"] = (
                        m.average_processing_time_ms * (n - 1) + event.processing_time_ms
                    ) / n
            elif event.severity == MonitorSeverity.ERROR:
                failed += 1
            outcomes = successful + failed
            changes["total_successful"] = successful
            changes["total_failed"] = failed
            changes["error_rate"] = (failed / outcomes * 100.0) if outcomes else 0.0

        if changes:
            self._metrics = replace(m, **changes)

    def _emit(self, event: MonitorEvent, error: BaseException | str | None) -> None:
        extra: dict[str, Any] = {
            "monitor_event_id": event.event_id,
            "severity": event.severity.value,
            "category": event.category.value,
        }
        for name in ("user_id", "obligation_id", "record_id", "amount", "processing_time_ms"):
            value = getattr(event, name)
            if value is not None:
                extra[name] = value
        if event.error is not None:
            extra["error"] = event.error
        if event.data:
            extra["data"] = event.data

        exc_info = None
        if isinstance(error, BaseException):
            exc_info = (type(error), error, error.__traceback__)
        logger.log(_LOG_LEVELS[event.severity], event.message, extra=extra, exc_info=exc_info)

    def _check_alerts(self, event: MonitorEvent) -> None:
        config = self._alert_config
        if not config.enabled or event.severity != MonitorSeverity.ERROR:
            return
        if event.category == MonitorCategory.NOTIFICATION:
            return

        recent = [
            e for e in self.get_recent_errors(config.time_window_minutes)
            if e.category != MonitorCategory.NOTIFICATION
        ]
        if len(recent) < config.error_threshold:
            return

        self._record(
            severity=MonitorSeverity.ERROR,
            category=MonitorCategory.NOTIFICATION,
            message=(
                f"ALERT: High Error Rate - {len(recent)} errors in the last "
                f"{config.time_window_minutes} minutes"
            ),
            data={
                "alert": "payment_monitor_alert",
                "error_count": len(recent),
                "time_window_minutes": config.time_window_minutes,
                "latest_event_id": event.event_id,
            },
        )


def _describe_error(error: BaseException | str | None) -> dict[str, str] | None:
    if error is None:
        return None
    if isinstance(error, str):
        return {"code": "UNKNOWN", "message": error}
    return {
        "code": getattr(error, "code", None) or type(error).__name__,
        "message": str(error),
    }

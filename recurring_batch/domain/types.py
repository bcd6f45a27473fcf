"""
recurring_batch.domain.types -- Pure frozen dataclasses for sweeps and jobs.

ZERO I/O.  Frozen dataclasses and tuples for immutable collections, the
same shape as recurring_kernel.domain.types.

Invariants enforced:
    - All DTOs are frozen (immutable).
    - ProcessingResult.success is False iff at least one error was recorded.
    - ScheduleJob snapshots are replaced, never mutated, by the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from recurring_kernel.domain.types import ObligationKind, RecurringObligation

SYSTEM_ERROR_ID = "system"


# =============================================================================
# Processing DTOs
# =============================================================================


@dataclass(frozen=True)
class CreatedRecord:
    """One ledger entry materialized during a sweep."""

    kind: ObligationKind
    record_id: str
    amount: Decimal
    description: str


@dataclass(frozen=True)
class ProcessingError:
    """One failure recorded during a sweep.

    ``obligation_id`` is the failing obligation's id as a string, or
    ``"system"`` when the sweep failed before reaching any obligation.
    """

    obligation_id: str
    error: str


@dataclass(frozen=True)
class ProcessingResult:
    """Immutable outcome of one batch sweep."""

    success: bool
    processed_count: int = 0
    deactivated_count: int = 0
    skipped_count: int = 0
    created_records: tuple[CreatedRecord, ...] = ()
    errors: tuple[ProcessingError, ...] = ()
    duration_ms: int = 0

    @property
    def total_amount(self) -> Decimal:
        return sum((r.amount for r in self.created_records), Decimal("0"))


@dataclass(frozen=True)
class ScheduleInfo:
    """An obligation annotated for the upcoming-schedule view.

    ``occurrences_in_horizon`` counts the occurrences from ``next_due_date``
    through the end of the requested horizon (capped by ``end_date``).
    """

    obligation: RecurringObligation
    is_overdue: bool
    days_past_due: int = 0
    occurrences_in_horizon: int = 0

    @property
    def next_due_date(self) -> datetime:
        return self.obligation.next_due_date


# =============================================================================
# Scheduler DTOs
# =============================================================================


@dataclass(frozen=True)
class ScheduleJob:
    """Immutable snapshot of a registered cron job."""

    job_id: str
    name: str
    cron_expression: str
    enabled: bool = True
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    in_flight: bool = False

    @property
    def schedule(self) -> str:
        return self.cron_expression


@dataclass(frozen=True)
class JobRunResult:
    """Outcome of one execution of a job's task."""

    job_id: str
    success: bool
    started_at: datetime
    finished_at: datetime
    duration_ms: int = 0
    data: Any = None
    error: str | None = None


@dataclass(frozen=True)
class SchedulerStats:
    is_running: bool
    total_jobs: int
    enabled_jobs: int
    active_jobs: int  # jobs currently in flight
    total_runs: int
    total_errors: int

"""
RecurringPaymentProcessor -- Claim-then-materialize batch sweep.

Contract:
    ``process_user_recurring_payments()`` / ``process_all_due_recurring_payments()``
    load active obligations that are due or expired and handle each one
    independently: expired obligations are deactivated, due ones are
    claimed (``next_due_date`` advanced one period along the series
    anchored on ``start_date``) and materialized
    into one ledger entry in the same transaction, anything else is
    skipped.  A failure on one obligation is recorded in
    ``ProcessingResult.errors`` and never aborts the sweep.

Architecture: recurring_batch/services.  Depends on the ObligationStore
    protocol, the due-date calculator, the validation engine and the
    PaymentMonitor; time comes from the injected Clock.

Invariants enforced:
    - One occurrence per obligation per sweep.
    - The claim is a conditional write; losing it is a skip, not an error.
    - The ledger insert shares the claim's transaction.
    - ``success`` is False iff ``errors`` is non-empty.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import UUID

from recurring_kernel.domain.clock import Clock, SystemClock
from recurring_kernel.domain.due_dates import (
    next_due_date,
    next_occurrence,
    occurrences_between,
)
from recurring_kernel.domain.types import (
    RECURRING_SUFFIX,
    Frequency,
    LedgerEntryDraft,
    ObligationDraft,
    ObligationKind,
    RecurringObligation,
    ValidationResult,
)
from recurring_kernel.domain.validation import validate_obligation
from recurring_kernel.exceptions import (
    ObligationNotFoundError,
    UnsupportedObligationKindError,
)
from recurring_kernel.logging_config import LogContext, get_logger
from recurring_kernel.services.payment_monitor import MonitorSeverity, PaymentMonitor

from recurring_batch.domain.types import (
    SYSTEM_ERROR_ID,
    CreatedRecord,
    ProcessingError,
    ProcessingResult,
    ScheduleInfo,
)
from recurring_batch.store.base import ObligationStore

logger = get_logger("batch.processor")

NOT_FOUND_ERROR = "Recurring payment not found"


# =============================================================================
# Ledger entry builders (dispatch on ObligationKind)
# =============================================================================


def _income_entry(obligation: RecurringObligation) -> LedgerEntryDraft:
    return LedgerEntryDraft(
        amount=obligation.amount,
        description=f"{obligation.description}{RECURRING_SUFFIX}",
        category_id=obligation.category_id,
        date=obligation.next_due_date,
        source_obligation_id=obligation.id,
        user_id=obligation.user_id,
    )


def _expense_entry(obligation: RecurringObligation) -> LedgerEntryDraft:
    return LedgerEntryDraft(
        amount=obligation.amount,
        description=f"{obligation.description}{RECURRING_SUFFIX}",
        category_id=obligation.category_id,
        vendor_id=obligation.vendor_id,
        date=obligation.next_due_date,
        source_obligation_id=obligation.id,
        user_id=obligation.user_id,
    )


ENTRY_BUILDERS: dict[ObligationKind, Callable[[RecurringObligation], LedgerEntryDraft]] = {
    ObligationKind.INCOME: _income_entry,
    ObligationKind.EXPENSE: _expense_entry,
}


# =============================================================================
# Per-item outcome
# =============================================================================


class _Outcome(str, Enum):
    PROCESSED = "processed"
    DEACTIVATED = "deactivated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class _ItemResult:
    outcome: _Outcome
    record: CreatedRecord | None = None
    error: ProcessingError | None = None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RecurringPaymentProcessor:
    """Turns due recurring obligations into ledger entries.

    Contract:
        - Sweeps never raise; failures are reported in the result.
        - ``get_upcoming_schedule()`` / ``get_overdue_payments()`` are
          read-only and propagate store errors.
        - ``max_workers > 1`` processes obligations on a bounded thread
          pool; result ordering still follows the loaded snapshot.

    Non-goals:
        - Does NOT catch up several missed periods in one sweep.
        - Does NOT cancel an in-flight sweep.
    """

    def __init__(
        self,
        store: ObligationStore,
        monitor: PaymentMonitor,
        clock: Clock | None = None,
        max_workers: int = 1,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._store = store
        self._monitor = monitor
        self._clock = clock or SystemClock()
        self._max_workers = max_workers

    # -------------------------------------------------------------------------
    # Sweeps
    # -------------------------------------------------------------------------

    def process_user_recurring_payments(self, user_id: str) -> ProcessingResult:
        """Process every due or expired obligation owned by ``user_id``."""
        with LogContext.bind(user_id=user_id):
            return self._sweep(
                scope=f"user {user_id}",
                load=lambda now: self._store.find_active_obligations_due_or_expired(
                    now, user_id=user_id,
                ),
                user_id=user_id,
            )

    def process_all_due_recurring_payments(self) -> ProcessingResult:
        """System-wide sweep; the body of the scheduled job."""
        return self._sweep(
            scope="system-wide",
            load=lambda now: self._store.find_active_obligations_due_or_expired(now),
        )

    def process_specific_recurring_payment(
        self,
        obligation_id: UUID,
        user_id: str | None = None,
    ) -> ProcessingResult:
        """Process one obligation by id, optionally scoped to its owner."""
        start = time.monotonic()
        try:
            obligation = self._store.get_obligation(obligation_id, user_id=user_id)
        except Exception as exc:
            logger.exception(
                "obligation_lookup_failed",
                extra={"obligation_id": str(obligation_id), "user_id": user_id},
            )
            return ProcessingResult(
                success=False,
                errors=(ProcessingError(str(obligation_id), str(exc)),),
                duration_ms=_elapsed_ms(start),
            )

        if obligation is None:
            missing = ObligationNotFoundError(str(obligation_id), user_id)
            logger.warning(
                "obligation_not_found",
                extra={"error_code": missing.code, "detail": str(missing)},
            )
            return ProcessingResult(
                success=False,
                errors=(ProcessingError(str(obligation_id), NOT_FOUND_ERROR),),
                duration_ms=_elapsed_ms(start),
            )

        return self._sweep(
            scope=f"obligation {obligation_id}",
            load=lambda now: (obligation,),
            user_id=obligation.user_id,
        )

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    def get_upcoming_schedule(
        self,
        user_id: str,
        horizon_days: int = 30,
    ) -> tuple[ScheduleInfo, ...]:
        """Active obligations due within ``horizon_days``, soonest first."""
        now = self._clock.now()
        horizon = now + timedelta(days=horizon_days)
        obligations = self._store.find_active_obligations(
            user_id, due_on_or_before=horizon,
        )
        return tuple(
            self._schedule_info(o, now, horizon)
            for o in sorted(obligations, key=lambda o: o.next_due_date)
        )

    def get_overdue_payments(self, user_id: str) -> tuple[ScheduleInfo, ...]:
        """Active obligations whose ``next_due_date`` is already past."""
        now = self._clock.now()
        obligations = self._store.find_active_obligations(
            user_id, due_on_or_before=now,
        )
        return tuple(
            self._schedule_info(o, now, now)
            for o in sorted(obligations, key=lambda o: o.next_due_date)
            if o.next_due_date < now
        )

    # -------------------------------------------------------------------------
    # Delegates
    # -------------------------------------------------------------------------

    def validate_recurring_payment(
        self,
        draft: ObligationDraft | Mapping[str, Any],
    ) -> ValidationResult:
        return validate_obligation(draft)

    def calculate_next_due_date(
        self,
        reference: datetime,
        frequency: Frequency | str,
    ) -> datetime:
        return next_due_date(reference, frequency)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _sweep(
        self,
        scope: str,
        load: Callable[[datetime], tuple[RecurringObligation, ...]],
        user_id: str | None = None,
    ) -> ProcessingResult:
        start = time.monotonic()
        self._monitor.log_processing_start(
            f"Starting recurring payment processing ({scope})", user_id=user_id,
        )

        try:
            now = self._clock.now()
            obligations = load(now)
            self._monitor.log_system(
                f"Found {len(obligations)} due payments ({scope})",
                data={"user_id": user_id, "due_count": len(obligations)},
            )
            items = self._run_items(obligations, now)
        except Exception as exc:
            duration_ms = _elapsed_ms(start)
            logger.exception(
                "recurring_sweep_failed",
                extra={"scope": scope, "duration_ms": duration_ms},
            )
            self._monitor.log_error(
                f"Recurring payment processing failed ({scope})",
                exc,
                user_id=user_id,
                processing_time_ms=duration_ms,
            )
            return ProcessingResult(
                success=False,
                errors=(ProcessingError(SYSTEM_ERROR_ID, str(exc)),),
                duration_ms=duration_ms,
            )

        errors = tuple(i.error for i in items if i.error is not None)
        result = ProcessingResult(
            success=not errors,
            processed_count=sum(1 for i in items if i.outcome == _Outcome.PROCESSED),
            deactivated_count=sum(1 for i in items if i.outcome == _Outcome.DEACTIVATED),
            skipped_count=sum(1 for i in items if i.outcome == _Outcome.SKIPPED),
            created_records=tuple(i.record for i in items if i.record is not None),
            errors=errors,
            duration_ms=_elapsed_ms(start),
        )

        summary = {
            "scope": scope,
            "success": result.success,
            "processed_count": result.processed_count,
            "deactivated_count": result.deactivated_count,
            "skipped_count": result.skipped_count,
            "error_count": len(result.errors),
            "total_amount": str(result.total_amount),
            "duration_ms": result.duration_ms,
        }
        logger.info("recurring_sweep_completed", extra=summary)
        self._monitor.log_system(
            f"Recurring payment processing batch completed ({scope})",
            severity=MonitorSeverity.INFO if result.success else MonitorSeverity.WARNING,
            data=summary,
        )
        return result

    def _run_items(
        self,
        obligations: tuple[RecurringObligation, ...],
        now: datetime,
    ) -> list[_ItemResult]:
        if self._max_workers == 1 or len(obligations) <= 1:
            return [self._process_one(o, now) for o in obligations]

        workers = min(self._max_workers, len(obligations))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="recurring-sweep",
        ) as pool:
            return list(pool.map(lambda o: self._process_one(o, now), obligations))

    def _process_one(self, obligation: RecurringObligation, now: datetime) -> _ItemResult:
        """Handle one obligation; every exception becomes an error entry."""
        item_start = time.monotonic()
        with LogContext.bind(user_id=obligation.user_id, obligation_id=str(obligation.id)):
            try:
                if obligation.is_expired(now):
                    return self._deactivate(obligation)
                if not obligation.is_due(now):
                    return _ItemResult(_Outcome.SKIPPED)
                return self._materialize(obligation, item_start)
            except Exception as exc:
                logger.exception(
                    "obligation_processing_failed",
                    extra={
                        "kind": obligation.kind.value,
                        "amount": str(obligation.amount),
                    },
                )
                self._monitor.log_error(
                    f"Failed to process recurring payment: {obligation.id}",
                    exc,
                    user_id=obligation.user_id,
                    obligation_id=str(obligation.id),
                    processing_time_ms=_elapsed_ms(item_start),
                    data={"kind": obligation.kind.value},
                )
                return _ItemResult(
                    _Outcome.FAILED,
                    error=ProcessingError(str(obligation.id), str(exc)),
                )

    def _deactivate(self, obligation: RecurringObligation) -> _ItemResult:
        if not self._store.update_obligation(obligation, is_active=False):
            logger.info("obligation_claim_lost", extra={"action": "deactivate"})
            return _ItemResult(_Outcome.SKIPPED)

        logger.info(
            "obligation_deactivated",
            extra={"end_date": obligation.end_date},
        )
        self._monitor.log_system(
            f"Deactivated expired recurring payment: {obligation.id}",
            data={
                "obligation_id": str(obligation.id),
                "user_id": obligation.user_id,
                "end_date": obligation.end_date,
            },
        )
        return _ItemResult(_Outcome.DEACTIVATED)

    def _materialize(self, obligation: RecurringObligation, item_start: float) -> _ItemResult:
        builder = ENTRY_BUILDERS.get(obligation.kind)
        if builder is None:
            raise UnsupportedObligationKindError(obligation.kind)

        advanced_to = next_occurrence(
            obligation.start_date, obligation.next_due_date, obligation.frequency,
        )
        record = None
        with self._store.atomic():
            if self._store.update_obligation(obligation, next_due_date=advanced_to):
                record = self._store.create_ledger_entry(
                    obligation.kind, builder(obligation),
                )

        if record is None:
            logger.info("obligation_claim_lost", extra={"action": "materialize"})
            return _ItemResult(_Outcome.SKIPPED)

        duration_ms = _elapsed_ms(item_start)
        logger.info(
            "obligation_processed",
            extra={
                "kind": obligation.kind.value,
                "record_id": record.record_id,
                "amount": str(record.amount),
                "next_due_date": advanced_to,
                "duration_ms": duration_ms,
            },
        )
        self._monitor.log_success(
            f"Successfully processed recurring payment: {obligation.description}",
            user_id=obligation.user_id,
            obligation_id=str(obligation.id),
            record_id=record.record_id,
            amount=record.amount,
            processing_time_ms=duration_ms,
            data={
                "kind": obligation.kind.value,
                "frequency": obligation.frequency.value,
                "next_due_date": advanced_to,
            },
        )
        return _ItemResult(
            _Outcome.PROCESSED,
            record=CreatedRecord(
                kind=obligation.kind,
                record_id=record.record_id,
                amount=record.amount,
                description=record.description,
            ),
        )

    @staticmethod
    def _schedule_info(
        obligation: RecurringObligation,
        now: datetime,
        horizon: datetime,
    ) -> ScheduleInfo:
        is_overdue = obligation.next_due_date < now
        days_past_due = (now - obligation.next_due_date).days if is_overdue else 0

        until = horizon
        if obligation.end_date is not None and obligation.end_date < until:
            until = obligation.end_date
        occurrences = sum(
            1 for _ in occurrences_between(
                obligation.next_due_date, until, obligation.frequency,
                anchor=obligation.start_date,
            )
        )

        return ScheduleInfo(
            obligation=obligation,
            is_overdue=is_overdue,
            days_past_due=days_past_due,
            occurrences_in_horizon=occurrences,
        )

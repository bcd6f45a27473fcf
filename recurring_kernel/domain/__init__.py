"""
recurring_kernel.domain -- Pure domain layer (ZERO I/O).

Frozen DTOs, the injectable clock, due-date arithmetic, and the
obligation validation engine.
"""

from recurring_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from recurring_kernel.domain.due_dates import (
    add_months,
    coerce_frequency,
    next_due_date,
    next_occurrence,
    occurrences_between,
)
from recurring_kernel.domain.types import (
    Frequency,
    LedgerEntryDraft,
    LedgerRecord,
    ObligationDraft,
    ObligationKind,
    RecurringObligation,
    ValidationResult,
)
from recurring_kernel.domain.validation import validate_obligation

__all__ = [
    "Clock",
    "DeterministicClock",
    "Frequency",
    "LedgerEntryDraft",
    "LedgerRecord",
    "ObligationDraft",
    "ObligationKind",
    "RecurringObligation",
    "SystemClock",
    "ValidationResult",
    "add_months",
    "coerce_frequency",
    "next_due_date",
    "next_occurrence",
    "occurrences_between",
    "validate_obligation",
]

"""
ObligationStore protocol -- the persistence boundary of the processor.

Contract:
    The processor only talks to storage through this protocol.  Reads
    return frozen ``RecurringObligation`` snapshots; the only mutation of
    an obligation is ``update_obligation``, which is conditional on the
    snapshot it is given (optimistic concurrency).

Architecture: recurring_batch/store.  Imports from recurring_kernel.domain
    only.  ``SqlObligationStore`` is the shipped SQLAlchemy implementation.

Invariants enforced:
    - ``update_obligation`` returns False (and writes nothing) when the
      stored row no longer matches the snapshot's id, active flag and
      ``next_due_date``.
    - Writes issued inside one ``atomic()`` block commit or roll back
      together.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from recurring_kernel.domain.types import (
    LedgerEntryDraft,
    LedgerRecord,
    ObligationKind,
    RecurringObligation,
)


@runtime_checkable
class ObligationStore(Protocol):
    """Storage operations consumed by the recurring payment processor."""

    def find_active_obligations_due_or_expired(
        self,
        as_of: datetime,
        user_id: str | None = None,
    ) -> tuple[RecurringObligation, ...]:
        """Active obligations with ``next_due_date <= as_of`` or
        ``end_date < as_of``, optionally restricted to one user."""
        ...

    def find_active_obligations(
        self,
        user_id: str,
        due_on_or_before: datetime | None = None,
    ) -> tuple[RecurringObligation, ...]:
        """Active obligations of ``user_id`` ordered by ``next_due_date``."""
        ...

    def get_obligation(
        self,
        obligation_id: UUID,
        user_id: str | None = None,
    ) -> RecurringObligation | None:
        ...

    def update_obligation(
        self,
        obligation: RecurringObligation,
        *,
        next_due_date: datetime | None = None,
        is_active: bool | None = None,
    ) -> bool:
        """Conditionally write new state; True iff the row was updated."""
        ...

    def create_ledger_entry(
        self,
        kind: ObligationKind,
        draft: LedgerEntryDraft,
    ) -> LedgerRecord:
        ...

    def atomic(self) -> AbstractContextManager[None]:
        """Transaction scope: commit on normal exit, roll back on error."""
        ...

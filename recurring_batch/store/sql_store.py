"""
SqlObligationStore -- SQLAlchemy implementation of ObligationStore.

Contract:
    Every call runs in a short-lived session that commits on success,
    unless the calling thread is inside ``atomic()``, in which case all
    calls share that block's session and commit (or roll back) together.

Architecture: recurring_batch/store.  Imports from recurring_kernel.models
    and recurring_kernel.domain.

Invariants enforced:
    - ``update_obligation`` is a single conditional UPDATE keyed on id,
      ``is_active`` and the previously read ``next_due_date``.
    - Ledger entries are only inserted, never updated.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from recurring_kernel.domain.types import (
    LedgerEntryDraft,
    LedgerRecord,
    ObligationKind,
    RecurringObligation,
)
from recurring_kernel.exceptions import UnsupportedObligationKindError
from recurring_kernel.logging_config import get_logger
from recurring_kernel.models import LEDGER_MODELS, RecurringObligationModel

logger = get_logger("batch.store")


class SqlObligationStore:
    """Obligation store backed by RecurringObligationModel and ledger models.

    Non-goals:
        - Does NOT validate drafts -- callers validate before ``add_obligation``.
        - Does NOT retry on lost claims -- the processor treats them as skips.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the enclosed store calls in one transaction.

        Nested ``atomic()`` blocks join the outermost transaction.
        """
        if getattr(self._local, "session", None) is not None:
            yield
            return

        session = self._session_factory()
        self._local.session = session
        try:
            yield
            session.commit()
        except Exception:
            session.rollback()
            logger.debug("store_transaction_rolled_back", exc_info=True)
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        shared = getattr(self._local, "session", None)
        if shared is not None:
            yield shared
            return

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_active_obligations_due_or_expired(
        self,
        as_of: datetime,
        user_id: str | None = None,
    ) -> tuple[RecurringObligation, ...]:
        stmt = (
            select(RecurringObligationModel)
            .where(
                RecurringObligationModel.is_active == True,  # noqa: E712
                or_(
                    RecurringObligationModel.next_due_date <= as_of,
                    RecurringObligationModel.end_date < as_of,
                ),
            )
            .order_by(RecurringObligationModel.next_due_date, RecurringObligationModel.id)
        )
        if user_id is not None:
            stmt = stmt.where(RecurringObligationModel.user_id == user_id)

        with self._session() as session:
            models = session.execute(stmt).scalars().all()
            return tuple(m.to_dto() for m in models)

    def find_active_obligations(
        self,
        user_id: str,
        due_on_or_before: datetime | None = None,
    ) -> tuple[RecurringObligation, ...]:
        stmt = (
            select(RecurringObligationModel)
            .where(
                RecurringObligationModel.user_id == user_id,
                RecurringObligationModel.is_active == True,  # noqa: E712
            )
            .order_by(RecurringObligationModel.next_due_date, RecurringObligationModel.id)
        )
        if due_on_or_before is not None:
            stmt = stmt.where(RecurringObligationModel.next_due_date <= due_on_or_before)

        with self._session() as session:
            models = session.execute(stmt).scalars().all()
            return tuple(m.to_dto() for m in models)

    def get_obligation(
        self,
        obligation_id: UUID,
        user_id: str | None = None,
    ) -> RecurringObligation | None:
        stmt = select(RecurringObligationModel).where(
            RecurringObligationModel.id == obligation_id,
        )
        if user_id is not None:
            stmt = stmt.where(RecurringObligationModel.user_id == user_id)

        with self._session() as session:
            model = session.execute(stmt).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_obligation(self, obligation: RecurringObligation) -> RecurringObligation:
        with self._session() as session:
            session.add(RecurringObligationModel.from_dto(obligation))
            session.flush()

        logger.info(
            "obligation_added",
            extra={
                "obligation_id": str(obligation.id),
                "user_id": obligation.user_id,
                "kind": obligation.kind.value,
                "frequency": obligation.frequency.value,
            },
        )
        return obligation

    def update_obligation(
        self,
        obligation: RecurringObligation,
        *,
        next_due_date: datetime | None = None,
        is_active: bool | None = None,
    ) -> bool:
        values: dict[str, Any] = {}
        if next_due_date is not None:
            values["next_due_date"] = next_due_date
        if is_active is not None:
            values["is_active"] = is_active
        if not values:
            raise ValueError("update_obligation requires next_due_date or is_active")

        stmt = (
            update(RecurringObligationModel)
            .where(
                RecurringObligationModel.id == obligation.id,
                RecurringObligationModel.is_active == True,  # noqa: E712
                RecurringObligationModel.next_due_date == obligation.next_due_date,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        with self._session() as session:
            result = session.execute(stmt)
            return result.rowcount == 1

    def create_ledger_entry(
        self,
        kind: ObligationKind,
        draft: LedgerEntryDraft,
    ) -> LedgerRecord:
        try:
            model_cls = LEDGER_MODELS[ObligationKind(kind)]
        except (ValueError, KeyError):
            raise UnsupportedObligationKindError(kind) from None

        with self._session() as session:
            model = model_cls.from_draft(draft)
            session.add(model)
            session.flush()
            return model.to_record()

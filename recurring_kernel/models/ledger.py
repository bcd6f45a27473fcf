"""
ORM models for materialized ledger entries (income and expense records).

Contract:
    IncomeModel and ExpenseModel are the concrete records a recurring
    obligation materializes into.  Both share the ledger columns; only
    expenses carry a vendor.  ``LEDGER_MODELS`` maps each ObligationKind
    to its model so callers dispatch on the kind instead of branching.

Invariants enforced:
    - Entries created by the recurring engine have ``is_recurring=True``
      and reference their source obligation.
    - Entries are never updated by this engine after creation.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from recurring_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from recurring_kernel.domain.types import (
    LedgerEntryDraft,
    LedgerRecord,
    ObligationKind,
)


class _LedgerEntryColumns:
    """Columns shared by income and expense records."""

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    @declared_attr
    def recurring_obligation_id(cls) -> Mapped[UUID | None]:
        return mapped_column(
            UUIDString(),
            ForeignKey("recurring_obligations.id"),
            nullable=True,
            index=True,
        )

    def to_record(self) -> LedgerRecord:
        return LedgerRecord(
            record_id=str(self.id),
            amount=self.amount,
            description=self.description,
        )


class IncomeModel(_LedgerEntryColumns, TrackedBase):
    """Persistent income record."""

    __tablename__ = "incomes"

    __table_args__ = (
        Index("ix_incomes_user_date", "user_id", "date"),
    )

    @classmethod
    def from_draft(cls, draft: LedgerEntryDraft) -> IncomeModel:
        return cls(
            amount=draft.amount,
            description=draft.description,
            category_id=draft.category_id,
            date=draft.date,
            is_recurring=True,
            recurring_obligation_id=draft.source_obligation_id,
            user_id=draft.user_id,
        )


class ExpenseModel(_LedgerEntryColumns, TrackedBase):
    """Persistent expense record."""

    __tablename__ = "expenses"

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
    )

    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    @classmethod
    def from_draft(cls, draft: LedgerEntryDraft) -> ExpenseModel:
        return cls(
            amount=draft.amount,
            description=draft.description,
            category_id=draft.category_id,
            vendor_id=draft.vendor_id,
            date=draft.date,
            is_recurring=True,
            recurring_obligation_id=draft.source_obligation_id,
            user_id=draft.user_id,
        )


LEDGER_MODELS: dict[ObligationKind, type[IncomeModel] | type[ExpenseModel]] = {
    ObligationKind.INCOME: IncomeModel,
    ObligationKind.EXPENSE: ExpenseModel,
}

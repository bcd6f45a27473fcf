"""
ORM model for recurring obligation definitions.

Contract:
    RecurringObligationModel persists one user-owned recurring income or
    expense.  ``to_dto()`` / ``from_dto()`` round-trip with the frozen
    ``RecurringObligation``.

Architecture: recurring_kernel/models.  Imports from recurring_kernel.db.base
    and recurring_kernel.domain.types only.

Invariants enforced:
    - ``kind`` / ``frequency`` stored as String(20) enum values.
    - ``next_due_date`` / ``is_active`` are only mutated by conditional
      UPDATEs issued from the store (never via ORM attribute assignment).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recurring_kernel.db.base import TrackedBase, UTCDateTime
from recurring_kernel.domain.types import (
    Frequency,
    ObligationKind,
    RecurringObligation,
)


class RecurringObligationModel(TrackedBase):
    """Persistent recurring obligation."""

    __tablename__ = "recurring_obligations"

    __table_args__ = (
        Index("ix_recurring_obligations_user_kind", "user_id", "kind"),
        Index("ix_recurring_obligations_user_active", "user_id", "is_active"),
        Index("ix_recurring_obligations_due_active", "next_due_date", "is_active"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    category_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    next_due_date: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    def to_dto(self) -> RecurringObligation:
        return RecurringObligation(
            id=self.id,
            kind=ObligationKind(self.kind),
            amount=self.amount,
            description=self.description,
            frequency=Frequency(self.frequency),
            category_id=self.category_id,
            vendor_id=self.vendor_id,
            start_date=self.start_date,
            end_date=self.end_date,
            next_due_date=self.next_due_date,
            is_active=self.is_active,
            user_id=self.user_id,
        )

    @classmethod
    def from_dto(cls, dto: RecurringObligation) -> RecurringObligationModel:
        return cls(
            id=dto.id,
            kind=dto.kind.value,
            amount=dto.amount,
            description=dto.description,
            frequency=dto.frequency.value,
            category_id=dto.category_id,
            vendor_id=dto.vendor_id,
            start_date=dto.start_date,
            end_date=dto.end_date,
            next_due_date=dto.next_due_date,
            is_active=dto.is_active,
            user_id=dto.user_id,
        )

    def __repr__(self) -> str:
        return f"<RecurringObligationModel {self.id} {self.kind} ({self.frequency})>"

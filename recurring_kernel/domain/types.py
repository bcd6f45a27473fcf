"""
recurring_kernel.domain.types -- Pure frozen dataclasses for obligations.

ZERO I/O.  Frozen dataclasses with enum fields and tuples for immutable
collections.  The ORM layer converts to and from these via ``to_dto()`` /
``from_dto()``; the processor and the store only exchange these types.

Invariants enforced:
    - All DTOs are frozen (immutable snapshots of persisted state).
    - Monetary amounts are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

RECURRING_SUFFIX = " (Recurring)"


# =============================================================================
# Enums
# =============================================================================


class ObligationKind(str, Enum):
    """Which ledger an obligation materializes into."""

    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """Recurrence frequency of an obligation."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# Obligation DTOs
# =============================================================================


@dataclass(frozen=True)
class RecurringObligation:
    """Immutable snapshot of a user-owned recurring income or expense.

    ``next_due_date`` and ``is_active`` change only through the store's
    conditional update, which is keyed on this snapshot.
    """

    id: UUID
    kind: ObligationKind
    amount: Decimal
    description: str
    frequency: Frequency
    category_id: str
    start_date: datetime
    next_due_date: datetime
    user_id: str
    vendor_id: str | None = None
    end_date: datetime | None = None  # Inclusive upper bound
    is_active: bool = True

    def is_expired(self, as_of: datetime) -> bool:
        return self.end_date is not None and self.end_date < as_of

    def is_due(self, as_of: datetime) -> bool:
        return self.is_active and self.next_due_date <= as_of


@dataclass(frozen=True)
class ObligationDraft:
    """Raw, unvalidated obligation definition as submitted by a caller.

    ``kind`` and ``frequency`` are plain strings and ``amount`` is untyped
    so that invalid input can be represented and reported on.
    """

    kind: str
    amount: Any
    frequency: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    category_id: str | None = None
    vendor_id: str | None = None
    description: str = ""

    _KEY_ALIASES = {
        "type": "kind",
        "startDate": "start_date",
        "endDate": "end_date",
        "categoryId": "category_id",
        "vendorId": "vendor_id",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ObligationDraft:
        """Build a draft from a request body (snake_case or camelCase keys)."""
        fields: dict[str, Any] = {}
        for key, value in data.items():
            name = cls._KEY_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                fields[name] = value
        fields.setdefault("kind", "")
        fields.setdefault("amount", None)
        fields.setdefault("frequency", "")
        return cls(**fields)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating an ObligationDraft."""

    is_valid: bool
    errors: tuple[str, ...] = ()


# =============================================================================
# Ledger DTOs
# =============================================================================


@dataclass(frozen=True)
class LedgerEntryDraft:
    """Fields of one income/expense record to materialize for an occurrence."""

    amount: Decimal
    description: str
    category_id: str
    date: datetime
    source_obligation_id: UUID
    user_id: str
    vendor_id: str | None = None


@dataclass(frozen=True)
class LedgerRecord:
    """What the store reports back after creating a ledger entry."""

    record_id: str
    amount: Decimal
    description: str

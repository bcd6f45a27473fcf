"""
Validation engine for recurring obligation drafts.

Contract:
    ``validate_obligation(draft)`` checks every rule independently and
    returns all violations in a ``ValidationResult``.  It never raises:
    validation errors are caller-correctable and travel back as messages.

Rules:
    - kind is income or expense
    - amount is a positive, finite number
    - frequency is daily, weekly, monthly, or yearly
    - end date is not before start date (when both are given)
    - kind-specific rules, only once the kind itself is valid:
      a category is required, income may not carry a vendor
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from recurring_kernel.domain.types import (
    Frequency,
    ObligationDraft,
    ObligationKind,
    ValidationResult,
)

KIND_ERROR = "Type must be either income or expense"
AMOUNT_ERROR = "Amount must be a positive number"
FREQUENCY_ERROR = "Frequency must be daily, weekly, monthly, or yearly"
DATE_ORDER_ERROR = "End date must not be before start date"
INCOME_CATEGORY_ERROR = "Income payments must have a category"
EXPENSE_CATEGORY_ERROR = "Expense payments must have a category"
INCOME_VENDOR_ERROR = "Income payments cannot have a vendor"

_KINDS = frozenset(k.value for k in ObligationKind)
_FREQUENCIES = frozenset(f.value for f in Frequency)


def _is_positive_finite(amount: Any) -> bool:
    # bool is an int subclass; True is not an amount.
    if amount is None or isinstance(amount, bool):
        return False
    if isinstance(amount, Decimal):
        return amount.is_finite() and amount > 0
    if isinstance(amount, (int, float)):
        return math.isfinite(amount) and amount > 0
    if isinstance(amount, str):
        try:
            parsed = Decimal(amount.strip())
        except InvalidOperation:
            return False
        return parsed.is_finite() and parsed > 0
    return False


def _as_utc(value: Any) -> Any:
    # naive datetimes are taken as UTC; plain dates as UTC midnight
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def validate_obligation(
    draft: ObligationDraft | Mapping[str, Any],
) -> ValidationResult:
    """Validate an obligation draft, reporting every violation."""
    if not isinstance(draft, ObligationDraft):
        if not isinstance(draft, Mapping):
            return ValidationResult(
                is_valid=False,
                errors=(KIND_ERROR, AMOUNT_ERROR, FREQUENCY_ERROR),
            )
        draft = ObligationDraft.from_mapping(draft)

    errors: list[str] = []

    kind = draft.kind.value if isinstance(draft.kind, ObligationKind) else draft.kind
    kind_is_valid = isinstance(kind, str) and kind in _KINDS
    if not kind_is_valid:
        errors.append(KIND_ERROR)

    if not _is_positive_finite(draft.amount):
        errors.append(AMOUNT_ERROR)

    frequency = (
        draft.frequency.value
        if isinstance(draft.frequency, Frequency)
        else draft.frequency
    )
    if not (isinstance(frequency, str) and frequency in _FREQUENCIES):
        errors.append(FREQUENCY_ERROR)

    if draft.start_date is not None and draft.end_date is not None:
        try:
            out_of_order = _as_utc(draft.end_date) < _as_utc(draft.start_date)
        except TypeError:
            # not dates at all
            out_of_order = True
        if out_of_order:
            errors.append(DATE_ORDER_ERROR)

    if kind_is_valid:
        if kind == ObligationKind.INCOME.value:
            if not draft.category_id:
                errors.append(INCOME_CATEGORY_ERROR)
            if draft.vendor_id:
                errors.append(INCOME_VENDOR_ERROR)
        elif not draft.category_id:
            errors.append(EXPENSE_CATEGORY_ERROR)

    return ValidationResult(is_valid=not errors, errors=tuple(errors))

"""
recurring_kernel.models -- ORM models for obligations and ledger entries.

Architecture: recurring_kernel/models. Imports from recurring_kernel.db.base
and recurring_kernel.domain only.
"""

from recurring_kernel.models.ledger import LEDGER_MODELS, ExpenseModel, IncomeModel
from recurring_kernel.models.obligation import RecurringObligationModel

__all__ = [
    "LEDGER_MODELS",
    "ExpenseModel",
    "IncomeModel",
    "RecurringObligationModel",
]

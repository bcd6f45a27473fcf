"""recurring_batch.store -- Persistence boundary for recurring obligations."""

from recurring_batch.store.base import ObligationStore
from recurring_batch.store.sql_store import SqlObligationStore

__all__ = [
    "ObligationStore",
    "SqlObligationStore",
]

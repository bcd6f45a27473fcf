"""
Recurring Kernel - obligation domain and shared infrastructure

Pure domain logic for recurring income and expense obligations:
- Due-date calculation with calendar-aware month/year clamping
- Non-raising validation of obligation drafts
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with contextual fields
- SQLAlchemy models for obligations and materialized ledger entries
- An in-process payment monitor with counters and alerting
"""

__version__ = "0.1.0"

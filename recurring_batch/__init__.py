"""
recurring_batch -- Recurring obligation sweeps and cron scheduling.

Provides the recurring payment processor (claim-then-materialize sweep
with per-obligation failure isolation), the persistence boundary it
consumes, an in-process cron scheduler, and the ``SystemStartup``
lifecycle facade that wires them together.

Architecture:
    recurring_batch/ is a top-level package.  Nothing in recurring_kernel
    imports from recurring_batch.

Invariants:
    - One occurrence materialized per obligation per sweep
    - Conditional (optimistic) claim on next_due_date
    - Ledger insert shares the claim's transaction
    - Clock injection (no datetime.now() calls)
    - Cron evaluation is pure
    - A job never runs twice concurrently
    - Graceful shutdown
"""

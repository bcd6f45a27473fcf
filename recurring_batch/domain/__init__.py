"""recurring_batch.domain -- Pure types and cron schedule evaluation (ZERO I/O)."""

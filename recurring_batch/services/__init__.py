"""recurring_batch.services -- Processor and scheduler."""

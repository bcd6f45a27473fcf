#!/usr/bin/env python3
"""
Run the recurring-obligation engine as a long-lived process.

Connects to the database, optionally creates the tables, loads the startup
configuration and brings up the scheduler.  SIGTERM / SIGINT shut it down
gracefully.

Usage:
    python3 scripts/run_scheduler.py --database-url <url> [options]

Examples:
    # Run the scheduler with the default daily-at-midnight cadence
    python3 scripts/run_scheduler.py --database-url sqlite:///recurring.db --create-tables

    # Use a YAML startup config
    python3 scripts/run_scheduler.py --database-url postgresql://... --config startup.yaml

    # Process everything due right now and exit (no scheduler)
    python3 scripts/run_scheduler.py --database-url sqlite:///recurring.db --run-once
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from recurring_batch.startup import SystemStartup  # noqa: E402
from recurring_config import StartupConfig, load_startup_config  # noqa: E402
from recurring_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from recurring_kernel.logging_config import configure_logging, get_logger  # noqa: E402

logger = get_logger("scripts.run_scheduler")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the recurring payment scheduler.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        required=True,
        help="SQLAlchemy database URL.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a startup YAML file (default: built-in defaults).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the obligation and ledger tables before starting.",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Process every due obligation once, print the result and exit.",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=1,
        help="Worker threads per processing sweep (default: 1).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    config = load_startup_config(args.config) if args.config else StartupConfig()
    configure_logging(level=config.log_level.value)

    init_engine_from_url(args.database_url)
    if args.create_tables:
        create_tables()

    system = SystemStartup.from_session_factory(
        get_session_factory(), max_workers=args.max_workers,
    )

    if args.run_once:
        result = system.processor.process_all_due_recurring_payments()
        print(json.dumps({
            "success": result.success,
            "processed_count": result.processed_count,
            "deactivated_count": result.deactivated_count,
            "skipped_count": result.skipped_count,
            "total_amount": str(result.total_amount),
            "errors": [
                {"obligation_id": e.obligation_id, "error": e.error}
                for e in result.errors
            ],
        }, indent=2))
        return 0 if result.success else 1

    system.initialize(config)
    system.install_signal_handlers()
    logger.info("scheduler_process_running", extra=config.to_dict())
    try:
        while system.is_initialized():
            time.sleep(1.0)
    finally:
        system.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())

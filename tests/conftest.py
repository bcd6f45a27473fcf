"""
Pytest fixtures for the recurring engine test suite.

Provides:
- Structured logging configured once per session
- In-memory SQLite databases built from the real ORM models
- A deterministic clock, payment monitor and obligation store
- An ``add_obligation`` factory for seeding obligations
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import recurring_kernel.models  # noqa: F401  (registers tables on Base.metadata)
from recurring_kernel.db.base import Base
from recurring_kernel.domain.clock import DeterministicClock
from recurring_kernel.domain.types import Frequency, ObligationKind, RecurringObligation
from recurring_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
    set_log_level,
)
from recurring_kernel.services.payment_monitor import PaymentMonitor

from recurring_batch.store.sql_store import SqlObligationStore

# Aware UTC, matching what UTCDateTime columns return.
TEST_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _restore_log_level():
    """SystemStartup.initialize() changes the level; put it back."""
    yield
    set_log_level(logging.DEBUG)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recurring_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_all_due_recurring_payments()
            logs = captured_logs()
            assert any(r["message"] == "obligation_processed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recurring_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=TEST_NOW)


@pytest.fixture
def monitor(clock):
    return PaymentMonitor(clock=clock)


@pytest.fixture
def store(session_factory):
    return SqlObligationStore(session_factory)


@pytest.fixture
def add_obligation(store, clock):
    """Factory that persists an obligation (due yesterday by default)."""

    def _add(
        kind: ObligationKind | str = ObligationKind.INCOME,
        amount: str = "1000",
        frequency: Frequency | str = Frequency.MONTHLY,
        next_due_date: datetime | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        user_id: str = "user-1",
        category_id: str = "cat-salary",
        vendor_id: str | None = None,
        description: str = "Salary",
        is_active: bool = True,
    ) -> RecurringObligation:
        due = next_due_date or clock.now() - timedelta(days=1)
        obligation = RecurringObligation(
            id=uuid4(),
            kind=ObligationKind(kind),
            amount=Decimal(amount),
            description=description,
            frequency=Frequency(frequency),
            category_id=category_id,
            vendor_id=vendor_id,
            start_date=start_date or due,
            end_date=end_date,
            next_due_date=due,
            is_active=is_active,
            user_id=user_id,
        )
        return store.add_obligation(obligation)

    return _add

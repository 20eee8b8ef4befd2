"""
Pytest fixtures for the ledger test suite.

Provides:
- An in-memory SQLite LedgerDatabase per test, initialized and migrated
- A store fixture bound to an open write transaction
- Small builders for companies, projects and transactions
- Structured log capture

No external services are needed; every database lives in memory.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from ledger_config.settings import LedgerSettings
from ledger_kernel.db.engine import LedgerDatabase, TxState
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, store):
            store.companies.create("Acme", "organization", "customer")
            logs = captured_logs()
            assert any(r["message"] == "company_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
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
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        database_url="sqlite://",
        base_currency="TRY",
        alternate_currencies=("USD", "EUR"),
    )


@pytest.fixture
def db(settings, clock):
    """Fresh in-memory ledger with the schema and all migrations applied."""
    database = LedgerDatabase(settings, clock)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def store(db):
    """A LedgerStore inside an open write transaction, rolled back afterwards."""
    ledger_store = db.begin()
    yield ledger_store
    if db.state is TxState.BEGUN:
        db.rollback()


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_company(store):
    def _make(name="Acme Yapi", role="customer", kind="organization", **fields):
        return store.companies.create(name, kind, role, **fields)

    return _make


@pytest.fixture
def make_project(store):
    def _make(name="Harbor Residences", ownership="own", client_company_id=None, **fields):
        return store.projects.create(name, ownership, client_company_id=client_company_id, **fields)

    return _make


@pytest.fixture
def add_tx(store):
    """
    Record a transaction with sensible defaults.

    Usage::

        inv = add_tx("invoice_out", "10000.00", company_id=customer.id)
        pay = add_tx("payment_in", "6000.00", company_id=customer.id, on=date(2024, 2, 1))
    """

    def _add(tx_type, amount, *, scope="cari", on=date(2024, 1, 10), description=None, **fields):
        return store.transactions.create(
            scope=scope,
            type=tx_type,
            date=on,
            description=description or f"{tx_type} {amount}",
            amount=Decimal(str(amount)),
            **fields,
        )

    return _add


@pytest.fixture
def customer(make_company):
    return make_company("Acme Yapi", role="customer")


@pytest.fixture
def supplier(make_company):
    return make_company("Demir Celik", role="supplier")

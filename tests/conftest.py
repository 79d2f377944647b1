"""
Pytest fixtures for the sales kernel test suite.

Provides:
- Structured logging for every test, plus a JSON log capture fixture
- A file-backed SQLite database per test (real commits, real connections)
- Deterministic clock, config and actor fixtures
- Service fixtures wired to the shared session
- Builders for the common sale -> ledger entry -> payment setup

Environment Variables:
- DATABASE_URL: optional override of the per-test SQLite URL (e.g. a
  disposable PostgreSQL database).  Tables are created and dropped around
  each test.
"""

import json
import logging
import os
from io import StringIO

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Generator
from uuid import uuid4

from sqlalchemy.orm import Session

from sales_config import SalesConfig
from sales_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from sales_kernel.domain.clock import DeterministicClock
from sales_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sales_modules.payments.service import PaymentService
from sales_modules.receivables.service import LedgerEntryService
from sales_modules.sales.models import LineItem
from sales_modules.sales.service import SaleService
from sales_services.reconciliation_service import ReconciliationService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# "Today" for every deterministic test
TEST_TODAY = date(2024, 3, 15)


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
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture sales_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sale_service):
            sale_service.confirm(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_confirmed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sales_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Clock / actor / config
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock pinned to noon UTC on ``TEST_TODAY``."""
    return DeterministicClock(datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def config() -> SalesConfig:
    """Built-in defaults (30 credit days, VTA/CXC/CXP/PAG folios)."""
    return SalesConfig()


# =============================================================================
# Per-test database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """A fresh database per test.

    File-backed SQLite so that several sessions (and threads) see each
    other's commits, exactly like separate clients of a server database.
    """
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'sales_test.db'}"
    eng = init_engine_from_url(url, echo=False)
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session; closed (and rolled back) at teardown."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def other_session(session_factory) -> Generator[Session, None, None]:
    """A second, independent session for interleaving tests."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def sale_service(session, deterministic_clock, config) -> SaleService:
    return SaleService(session, clock=deterministic_clock, config=config)


@pytest.fixture
def ledger_service(session, deterministic_clock, config) -> LedgerEntryService:
    return LedgerEntryService(session, clock=deterministic_clock, config=config)


@pytest.fixture
def reconciliation_service(session, deterministic_clock, config) -> ReconciliationService:
    return ReconciliationService(session, clock=deterministic_clock, config=config)


@pytest.fixture
def payment_service(session, deterministic_clock, config, reconciliation_service) -> PaymentService:
    return PaymentService(
        session,
        clock=deterministic_clock,
        config=config,
        reconciliation=reconciliation_service,
    )


# =============================================================================
# Builders
# =============================================================================


def scenario_a_lines() -> list[LineItem]:
    """qty 2 @ 50.00 and qty 1 @ 30.00 -> subtotal 130.00."""
    return [
        LineItem(product_id=uuid4(), quantity=2, unit_price=Decimal("50.00")),
        LineItem(product_id=uuid4(), quantity=1, unit_price=Decimal("30.00")),
    ]


@pytest.fixture
def confirmed_sale(sale_service, test_actor_id):
    """Scenario A sale (total 128.00), confirmed and persisted."""
    sale = sale_service.create_sale(
        uuid4(),
        TEST_TODAY,
        scenario_a_lines(),
        discount=Decimal("10.00"),
        tax=Decimal("8.00"),
        actor_id=test_actor_id,
    )
    return sale_service.confirm(sale.id, actor_id=test_actor_id)


@pytest.fixture
def sale_entry(ledger_service, confirmed_sale, test_actor_id):
    """Receivable for ``confirmed_sale`` (amount 128.00, due in 30 days)."""
    return ledger_service.open_from_sale(confirmed_sale.id, actor_id=test_actor_id)

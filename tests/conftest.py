"""
Pytest fixtures for the expense kernel test suite.

Provides:
- In-memory SQLite sessions (fresh schema per test)
- A deterministic clock
- Company / user factories and a wired ExpenseManager
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from expense_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.domain.org import Role
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from expense_kernel.services.profile_service import ProfileService
from expense_services.change_feed import ChangeFeed
from expense_services.expense_manager import ExpenseManager
from expense_services.receipts import LocalObjectStore, ReceiptService

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
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, expense_manager):
            expense_manager.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "expense_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite engine and schema for each test."""
    eng = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine):
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_company(session, deterministic_clock):
    """Create and commit a company."""

    def _make(name: str = "Acme Corp", currency: str = "USD"):
        company = ProfileService(session, deterministic_clock).create_company(name, currency)
        session.commit()
        return company

    return _make


@pytest.fixture
def make_user(session, deterministic_clock):
    """Create and commit a profile with roles and an optional manager."""

    def _make(
        company,
        roles=(Role.EMPLOYEE,),
        manager=None,
        full_name: str | None = None,
    ):
        user_id = uuid4()
        profile = ProfileService(session, deterministic_clock).create_profile(
            user_id=user_id,
            company_id=company.id,
            full_name=full_name or f"User {str(user_id)[:8]}",
            email=f"{str(user_id)[:8]}@example.com",
            roles=roles,
            manager_id=manager.id if manager is not None else None,
        )
        session.commit()
        return profile

    return _make


@pytest.fixture
def company(make_company):
    return make_company()


@pytest.fixture
def admin(make_user, company):
    return make_user(company, roles=(Role.ADMIN,), full_name="Avery Admin")


@pytest.fixture
def manager(make_user, company, admin):
    return make_user(company, roles=(Role.MANAGER,), manager=admin, full_name="Morgan Manager")


@pytest.fixture
def employee(make_user, company, manager):
    return make_user(company, manager=manager, full_name="Emery Employee")


@pytest.fixture
def receipt_service(tmp_path, deterministic_clock):
    return ReceiptService(LocalObjectStore(tmp_path / "storage"), clock=deterministic_clock)


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def expense_manager(session, deterministic_clock, receipt_service, change_feed):
    return ExpenseManager(
        session,
        clock=deterministic_clock,
        receipts=receipt_service,
        feed=change_feed,
    )

"""Shared fixtures for CashFlow Commander tests."""
import pytest
from datetime import datetime
from pathlib import Path

# Wednesday; the current week started on Sunday 2024-03-10
FIXED_NOW = datetime(2024, 3, 13, 12, 0, 0)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def now_ms() -> int:
    from cashflow_commander.intelligence.budget_tracker import to_epoch_ms
    return to_epoch_ms(FIXED_NOW)


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    """Path to a fresh database file."""
    return tmp_path / "test.db"


@pytest.fixture
def store(temp_db_path):
    """SQLite store on a temporary database."""
    from cashflow_commander.db.sqlite_store import SQLiteStore

    with SQLiteStore(temp_db_path) as s:
        yield s


@pytest.fixture
def service(temp_db_path):
    """Service on a temporary database with the clock pinned to FIXED_NOW."""
    from cashflow_commander.api.cashflow_service import CashflowService

    with CashflowService(db_path=temp_db_path, clock=lambda: FIXED_NOW) as svc:
        yield svc


@pytest.fixture
def alice(service):
    return service.resolve_identity("user_alice")


@pytest.fixture
def bob(service):
    return service.resolve_identity("user_bob")


@pytest.fixture
def founder(service):
    service.set_user_role("user_founder", "founder")
    return service.resolve_identity("user_founder")


@pytest.fixture
def checking(service, alice) -> int:
    """Alice's checking account holding 1000."""
    return service.create_account(
        alice, name="Checking", account_type="checking", currency="USD",
        balance=1000, color="#3B82F6"
    )

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from finance_tracker.database.connection import DatabaseConfig, DatabaseManager, initialize_database
from finance_tracker.domain.enums import TransactionType
from finance_tracker.domain.models import Transaction
from finance_tracker.repositories.base import StorageReadError
from finance_tracker.repositories.finance_store import FinanceStore
from finance_tracker.repositories.memory_store import InMemoryKeyValueStore
from finance_tracker.services.finance_service import FinanceService

@pytest.fixture
def today() -> date:
    """Fixed reference date for anything status related"""
    return date(2024, 6, 15)

@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for transactions with sensible defaults"""
    counter = {"n": 0}

    def _make(**overrides) -> Transaction:
        counter["n"] += 1
        fields = dict(
            id=f"txn-{counter['n']}",
            description="Mercado",
            amount=Decimal("100.00"),
            type=TransactionType.EXPENSE,
            category="5",
            date=date(2024, 1, 15),
            created_at=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        )
        fields.update(overrides)
        return Transaction(**fields)

    return _make

@pytest.fixture
def memory_backend() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()

@pytest.fixture
def fail_next_read(mocker, memory_backend) -> Callable[[], None]:
    """
    Call the returned function to make the next backend read raise
    StorageReadError. Reads after that one work normally.
    """
    real_get = memory_backend.get
    failures = []

    def get(key):
        if failures:
            raise failures.pop()
        return real_get(key)

    mocker.patch.object(memory_backend, "get", side_effect=get)

    def arm() -> None:
        failures.append(StorageReadError("disk busy"))

    return arm

@pytest.fixture
def store(memory_backend) -> FinanceStore:
    """Store backed by memory, empty on every test"""
    return FinanceStore(memory_backend)

@pytest.fixture
def service(store) -> FinanceService:
    return FinanceService(store)

@pytest.fixture
def test_db(tmp_path):
    """
    Create a real test database.

    Uses pytest's tmp_path fixture so every test gets its own file.
    """
    config = DatabaseConfig(tmp_path / "test.db")
    db_manager = DatabaseManager(config)
    initialize_database(db_manager)

    yield db_manager

    db_manager.close()

"""Test configuration and fixtures for the library lending service.

1. Isolated databases - each test gets its own SQLite file under tmp_path
2. A hand-driven clock - due dates and fines are exact
3. In-memory policy - tests change limits with ``policy.update(...)``
4. Seed helpers - books and readers are inserted through the repositories
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import logfire
import pytest

from library_lending.config import ServerConfig, reset_config
from library_lending.database.book_repository import BookCreateSchema, BookRepository
from library_lending.database.reader_repository import ReaderCreateSchema, ReaderRepository
from library_lending.database.session import DatabaseManager
from library_lending.models.book import Book
from library_lending.models.reader import ReaderAccount
from library_lending.models.status import BookStatus, CreditStatus
from library_lending.policy import StaticPolicyProvider
from library_lending.services import LibraryServices

FIXED_NOW = datetime(2024, 3, 1, 10, 0, 0)


def pytest_configure(config):
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


class FakeClock:
    """A clock tests move by hand."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """Each test gets its own database file."""
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    """A database manager with the schema created."""
    manager = DatabaseManager(test_database_url)
    manager.init_database()
    yield manager
    manager.close()


# === Service Fixtures ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> StaticPolicyProvider:
    """Default policy: 5 loans, 30 days, 1 renewal, 3 reservations, 0.50/day."""
    return StaticPolicyProvider()


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[ServerConfig, None, None]:
    reset_config()
    config = ServerConfig(
        server_name="test-library-lending",
        server_version="0.0.1-test",
        database_path=test_db_path,
        policy_source="static",
        lock_timeout_seconds=5.0,
        debug=True,
        log_level="DEBUG",
    )
    yield config
    reset_config()


@pytest.fixture
def services(
    test_config: ServerConfig,
    db_manager: DatabaseManager,
    policy: StaticPolicyProvider,
    clock: FakeClock,
) -> Generator[LibraryServices, None, None]:
    """Fully wired lending services on the test database."""
    services = LibraryServices(test_config, db=db_manager, policy_provider=policy, clock=clock)
    yield services
    services.close()


# === Data Helpers ===


@pytest.fixture
def add_book(db_manager: DatabaseManager):
    """Factory: insert a book and return its id."""
    counter = iter(range(1, 10_000))

    def _add_book(
        total_copies: int = 1,
        title: str = "Test Book",
        lifecycle_status: BookStatus = BookStatus.ACTIVE,
    ) -> int:
        with db_manager.session_scope() as session:
            book = BookRepository(session).create(
                BookCreateSchema(
                    isbn=f"978000000{next(counter):04d}",
                    title=title,
                    total_copies=total_copies,
                    lifecycle_status=lifecycle_status,
                )
            )
            return book.id

    return _add_book


@pytest.fixture
def add_reader(db_manager: DatabaseManager):
    """Factory: insert a reader account and return its number."""

    def _add_reader(
        reader_no: str,
        credit_status: CreditStatus = CreditStatus.GOOD,
        arrears_amount: Decimal | str = "0.00",
        name: str = "Test Reader",
    ) -> str:
        with db_manager.session_scope() as session:
            reader = ReaderRepository(session).create(
                ReaderCreateSchema(
                    reader_no=reader_no,
                    name=name,
                    credit_status=credit_status,
                    arrears_amount=Decimal(arrears_amount),
                )
            )
            return reader.reader_no

    return _add_reader


@pytest.fixture
def get_book(db_manager: DatabaseManager):
    """Read a book's current state as a model."""

    def _get_book(book_id: int) -> Book:
        with db_manager.session_scope() as session:
            return BookRepository(session).get_model(book_id)

    return _get_book


@pytest.fixture
def get_reader(db_manager: DatabaseManager):
    """Read a reader's current state as a model."""

    def _get_reader(reader_no: str) -> ReaderAccount:
        with db_manager.session_scope() as session:
            return ReaderRepository(session).get_model(reader_no)

    return _get_reader


# === Cleanup Fixtures ===


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Reset global configuration and LIBRARY_LENDING_* variables."""
    yield
    reset_config()
    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_LENDING_"):
            del os.environ[key]

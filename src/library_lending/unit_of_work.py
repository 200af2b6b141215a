"""
Unit of work for lending operations.

Every write-bearing operation runs the same way:

1. take the per-entity locks it needs (see ``locking.py``)
2. open one session and one transaction
3. read a single policy snapshot and the current time
4. validate, then write through the repositories
5. check the cross-entity invariants on the rows it touched
6. commit, or roll back on any exception

``OperationContext`` carries the session, the snapshot and the repositories
through steps 3 to 5. Nothing is committed unless the ``with`` block exits
normally.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count

from sqlalchemy.orm import Session

from .database.book_repository import BookRepository
from .database.loan_repository import LoanRepository
from .database.reader_repository import ReaderRepository
from .database.reservation_repository import ReservationRepository
from .database.schema import Book as BookDB
from .database.schema import ReaderAccount as ReaderDB
from .database.session import DatabaseManager
from .errors import InvariantViolation
from .locking import LockRegistry
from .models.status import CreditStatus
from .policy import LendingPolicy, PolicyProvider

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_sequence = count(1)

# An in-memory store shares one connection, so a commit by one operation would
# commit another's flushed writes. Every operation on it is serialized.
MEMORY_STORE_KEY = "store:memory"


def new_record_number(prefix: str, now: datetime) -> str:
    """
    Generate a loan ('B') or reservation ('A') number.

    ``<prefix><yyyymmddHHMMSSffffff><sequence>``, e.g.
    ``B20240115103000123456001``. The process-wide sequence is zero-padded to
    three digits and never wraps, so two calls never collide.
    """
    return f"{prefix}{now:%Y%m%d%H%M%S%f}{next(_sequence):03d}"


@dataclass
class OperationContext:
    """Everything one operation sees: one session, one policy, one clock reading."""

    session: Session
    policy: LendingPolicy
    now: datetime
    books: BookRepository = field(init=False)
    readers: ReaderRepository = field(init=False)
    loans: LoanRepository = field(init=False)
    reservations: ReservationRepository = field(init=False)

    def __post_init__(self):
        self.books = BookRepository(self.session)
        self.readers = ReaderRepository(self.session)
        self.loans = LoanRepository(self.session)
        self.reservations = ReservationRepository(self.session)

    def verify_book(self, book: BookDB) -> None:
        """
        Check a book's counters against its loan records.

        Raises:
            InvariantViolation: if the counters disagree; the transaction
                is rolled back and nothing is repaired
        """
        self.session.flush()
        open_loans = self.loans.count_open_for_book(book.id)
        if not (
            0 <= book.available_copies <= book.total_copies
            and book.available_copies == book.total_copies - open_loans
        ):
            logger.error(
                "Invariant violated for book %s: total=%s available=%s open_loans=%s",
                book.id,
                book.total_copies,
                book.available_copies,
                open_loans,
            )
            raise InvariantViolation(book_id=book.id)

    def verify_reader(self, reader: ReaderDB) -> None:
        """A reader with arrears must not be in good standing."""
        if reader.arrears_amount < 0 or (
            reader.arrears_amount > 0 and reader.credit_status == CreditStatus.GOOD
        ):
            logger.error(
                "Invariant violated for reader %s: status=%s arrears=%s",
                reader.reader_no,
                reader.credit_status,
                reader.arrears_amount,
            )
            raise InvariantViolation(reader_no=reader.reader_no)


class UnitOfWork:
    """
    Factory for operation contexts.

    Shared by the lending engine, reservation manager and credit ledger so
    they lock, snapshot and commit identically.
    """

    def __init__(
        self,
        db: DatabaseManager,
        policy_provider: PolicyProvider,
        locks: LockRegistry,
        clock: Clock = datetime.now,
    ):
        self.db = db
        self.policy_provider = policy_provider
        self.locks = locks
        self.clock = clock

    def _store_keys(self) -> tuple[str, ...]:
        return (MEMORY_STORE_KEY,) if self.db.is_memory_database else ()

    @contextmanager
    def begin(self, *lock_keys: str) -> Iterator[OperationContext]:
        """Hold ``lock_keys``, open a transaction and yield its context."""
        with self.locks.hold(*lock_keys, *self._store_keys()), self.db.session_scope() as session:
            yield OperationContext(
                session=session,
                policy=self.policy_provider.snapshot(session),
                now=self.clock(),
            )

    @contextmanager
    def read(self) -> Iterator[OperationContext]:
        """
        A context for queries; nothing it does is written.

        Lock-free, except on an in-memory store.
        """
        with self.locks.hold(*self._store_keys()), self.db.session_scope() as session:
            yield OperationContext(
                session=session,
                policy=self.policy_provider.snapshot(session),
                now=self.clock(),
            )

    def peek(self, query: Callable[[OperationContext], object]):
        """Run one short read outside any lock (resolving lock keys)."""
        with self.read() as ctx:
            return query(ctx)

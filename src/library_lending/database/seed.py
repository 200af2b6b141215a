"""
Demo data for the library lending service.

Books and readers are generated with Faker. Circulation history is not
written directly: it is replayed through the real lending engine with a
clock that walks back and forth over the last few weeks, so every copy
count, arrears balance and credit status in the seeded database satisfies
the same invariants as live data. Some loans come back late and leave
readers in debt; some remain open and overdue; books with no copy left
attract reservations.
"""

import logging
import random
from datetime import datetime, timedelta

from faker import Faker

from ..credit import CreditLedger
from ..errors import LendingError
from ..lending import LendingEngine
from ..locking import LockRegistry
from ..policy import POLICY_KEYS, DatabasePolicyProvider, LendingPolicy
from ..reservations import ReservationManager
from ..unit_of_work import UnitOfWork
from .book_repository import BookCreateSchema, BookRepository
from .reader_repository import ReaderCreateSchema, ReaderRepository
from .session import DatabaseManager

logger = logging.getLogger(__name__)


def generate_isbn13(rng: random.Random) -> str:
    """Generate a valid ISBN-13 number."""
    body = f"978{rng.randint(0, 9)}{rng.randint(1000, 9999)}{rng.randint(1000, 9999)}"
    total = sum(int(digit) * (3 if i % 2 else 1) for i, digit in enumerate(body))
    return f"{body}{(10 - total % 10) % 10}"


class _ReplayClock:
    """A clock the seeder moves by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def seed_database(
    db: DatabaseManager,
    *,
    num_books: int = 60,
    num_readers: int = 25,
    num_loans: int = 150,
    seed: int = 42,
    now: datetime | None = None,
) -> dict[str, int]:
    """
    Populate an initialized, empty database.

    Args:
        db: Database with the schema already created
        num_books: Catalog titles to create
        num_readers: Reader accounts to create
        num_loans: Borrow attempts to replay (rejections are skipped)
        seed: Seed for Faker and the random generator
        now: Reference time; defaults to the current time

    Returns:
        Counts of what was created
    """
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)
    now = now or datetime.now()

    with db.session_scope() as session:
        DatabasePolicyProvider.store(
            session, **{key: getattr(LendingPolicy(), key) for key in POLICY_KEYS}
        )

        books = BookRepository(session)
        book_ids = []
        isbns: set[str] = set()
        while len(book_ids) < num_books:
            isbn = generate_isbn13(rng)
            if isbn in isbns:
                continue
            isbns.add(isbn)
            book = books.create(
                BookCreateSchema(
                    isbn=isbn,
                    title=fake.catch_phrase().title(),
                    total_copies=rng.choice([1, 1, 2, 2, 3, 5]),
                )
            )
            book_ids.append(book.id)

        readers = ReaderRepository(session)
        reader_nos = []
        for i in range(num_readers):
            reader = readers.create(
                ReaderCreateSchema(reader_no=f"R{now.year}{i + 1:04d}", name=fake.name())
            )
            reader_nos.append(reader.reader_no)

    clock = _ReplayClock(now)
    uow = UnitOfWork(db, DatabasePolicyProvider(), LockRegistry(), clock)
    credit = CreditLedger(uow)
    lending = LendingEngine(uow, credit)
    reservations = ReservationManager(uow, lending, credit)

    counts = {"books": len(book_ids), "readers": len(reader_nos), "loans": 0, "returns": 0}
    open_loans: list[str] = []

    for _ in range(num_loans):
        clock.now = now - timedelta(days=rng.randint(0, 60), minutes=rng.randint(0, 600))
        try:
            result = lending.borrow_book(
                rng.choice(reader_nos), rng.choice(book_ids), operator_id="seed"
            )
        except LendingError as e:
            logger.debug("Seed borrow skipped: %s", e.code)
            continue
        counts["loans"] += 1

        if rng.random() < 0.6:
            # Most returns are on time; some are late enough to incur a fine
            clock.now = min(now, clock.now + timedelta(days=rng.randint(1, 40)))
            lending.return_book(result.loan_no, operator_id="seed")
            counts["returns"] += 1
        else:
            open_loans.append(result.loan_no)

    clock.now = now
    counts["reservations"] = 0
    for _ in range(num_books // 4):
        try:
            reservations.create_reservation(rng.choice(reader_nos), rng.choice(book_ids))
        except LendingError as e:
            logger.debug("Seed reservation skipped: %s", e.code)
            continue
        counts["reservations"] += 1

    counts["open_loans"] = len(open_loans)
    logger.info("Seeded database: %s", counts)
    return counts

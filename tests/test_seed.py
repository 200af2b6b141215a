"""
Tests for demo data seeding.

Seeded circulation history is replayed through the lending engine, so the
seeded database must satisfy the same invariants as live data.
"""

import random
from datetime import datetime

from sqlalchemy import func, select

from library_lending.database.schema import Book, LoanRecord, ReaderAccount, SystemConfig
from library_lending.database.seed import generate_isbn13, seed_database
from library_lending.models.status import CreditStatus, LoanStatus
from library_lending.policy import POLICY_KEYS

SEED_NOW = datetime(2024, 6, 1, 12, 0)


class TestIsbn:
    def test_generated_isbns_have_valid_check_digit(self):
        rng = random.Random(7)
        for _ in range(20):
            isbn = generate_isbn13(rng)
            assert len(isbn) == 13
            assert isbn.startswith("978")
            total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(isbn))
            assert total % 10 == 0


class TestSeedDatabase:
    """Test the seeded database."""

    def test_counts(self, db_manager):
        counts = seed_database(
            db_manager, num_books=12, num_readers=6, num_loans=30, now=SEED_NOW
        )

        assert counts["books"] == 12
        assert counts["readers"] == 6
        assert 0 < counts["loans"] <= 30
        assert counts["loans"] == counts["returns"] + counts["open_loans"]

        with db_manager.session_scope() as session:
            assert session.scalar(select(func.count()).select_from(Book)) == 12
            assert session.scalar(select(func.count()).select_from(LoanRecord)) == counts["loans"]
            keys = set(session.scalars(select(SystemConfig.key)))
            assert keys == set(POLICY_KEYS)

    def test_seeded_data_is_consistent(self, db_manager):
        seed_database(db_manager, num_books=12, num_readers=6, num_loans=40, now=SEED_NOW)

        with db_manager.session_scope() as session:
            for book in session.scalars(select(Book)):
                open_loans = session.scalar(
                    select(func.count())
                    .select_from(LoanRecord)
                    .where(LoanRecord.book_id == book.id, LoanRecord.status == LoanStatus.OPEN)
                )
                assert book.available_copies == book.total_copies - open_loans

            for reader in session.scalars(select(ReaderAccount)):
                if reader.arrears_amount > 0:
                    assert reader.credit_status != CreditStatus.GOOD

    def test_reader_numbers(self, db_manager):
        seed_database(db_manager, num_books=4, num_readers=3, num_loans=0, now=SEED_NOW)

        with db_manager.session_scope() as session:
            numbers = set(session.scalars(select(ReaderAccount.reader_no)))
        assert numbers == {"R20240001", "R20240002", "R20240003"}

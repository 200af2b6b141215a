"""
SQLAlchemy database schema for the library lending service.

Four lending tables plus the policy table:

1. ``books`` - catalog titles with copy counts (Catalog Store)
2. ``reader_accounts`` - credit standing and arrears (Credit Ledger)
3. ``loan_records`` - loan lifecycle, never deleted (Loan Record Store)
4. ``reservations`` - reservation lifecycle
5. ``sys_config`` - key/value lending policy (Configuration Provider)

Cross-table invariants are enforced by the lending engine. The per-row
invariants that can be expressed in SQL are also declared here as CHECK
constraints and a partial unique index, so that a bug in the engine fails
loudly at commit instead of corrupting data.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from ..models.status import BookStatus, CreditStatus, LoanStatus, ReservationStatus

# Base class for all SQLAlchemy models
Base = declarative_base()

# Enum columns store member names (e.g. 'PENDING'); the raw SQL below relies on that.
MONEY = Numeric(10, 2, asdecimal=True)


class Book(Base):
    """
    Books table - one row per catalog title.

    ``available_copies`` is the contended counter. The ``version`` column is
    an optimistic lock: an UPDATE that lost a race matches zero rows and
    SQLAlchemy raises StaleDataError.
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(13), nullable=False, unique=True)
    title = Column(String(500), nullable=False, index=True)
    total_copies = Column(Integer, nullable=False, default=0)
    available_copies = Column(Integer, nullable=False, default=0)
    borrow_count = Column(Integer, nullable=False, default=0)
    lifecycle_status = Column(Enum(BookStatus), nullable=False, default=BookStatus.ACTIVE)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("LoanRecord", back_populates="book")
    reservations = relationship("Reservation", back_populates="book")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_book_lifecycle", "lifecycle_status"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("borrow_count >= 0", name="check_borrow_count_non_negative"),
    )


class ReaderAccount(Base):
    """
    Reader accounts table - credit standing per reader.

    Invariant enforced in SQL: a reader with arrears is never GOOD.
    """

    __tablename__ = "reader_accounts"

    reader_no = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    credit_status = Column(Enum(CreditStatus), nullable=False, default=CreditStatus.GOOD)
    arrears_amount = Column(MONEY, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("LoanRecord", back_populates="reader")
    reservations = relationship("Reservation", back_populates="reader")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_reader_credit_status", "credit_status"),
        CheckConstraint("arrears_amount >= 0", name="check_arrears_non_negative"),
        CheckConstraint(
            "arrears_amount = 0 OR credit_status <> 'GOOD'",
            name="check_arrears_not_good",
        ),
    )


class LoanRecord(Base):
    """
    Loan records table - the audit trail of every loan.

    Rows are created on borrow, updated on renew and return, never deleted.
    """

    __tablename__ = "loan_records"

    loan_no = Column(String(50), primary_key=True)
    reader_no = Column(String(50), ForeignKey("reader_accounts.reader_no"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    borrow_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(Enum(LoanStatus), nullable=False, default=LoanStatus.OPEN)
    renewal_count = Column(Integer, nullable=False, default=0)
    overdue_days = Column(Integer, nullable=False, default=0)
    fine_amount = Column(MONEY, nullable=False, default=0)
    operator_id = Column(String(50), nullable=True)
    reservation_no = Column(String(50), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    reader = relationship("ReaderAccount", back_populates="loans")
    book = relationship("Book", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_reader_status", "reader_no", "status"),
        Index("idx_loan_book_status", "book_id", "status"),
        Index("idx_loan_due_date", "due_date"),
        CheckConstraint("renewal_count >= 0", name="check_renewal_count_non_negative"),
        CheckConstraint("overdue_days >= 0", name="check_overdue_days_non_negative"),
        CheckConstraint("fine_amount >= 0", name="check_fine_non_negative"),
        CheckConstraint(
            "status = 'RETURNED' OR return_date IS NULL",
            name="check_open_loan_not_returned",
        ),
    )


class Reservation(Base):
    """
    Reservations table - claims on books that cannot be borrowed directly.

    The partial unique index guarantees at most one PENDING reservation per
    (reader, book) pair.
    """

    __tablename__ = "reservations"

    reservation_no = Column(String(50), primary_key=True)
    reader_no = Column(String(50), ForeignKey("reader_accounts.reader_no"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    reservation_date = Column(DateTime, nullable=False)
    status = Column(
        Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING
    )
    resolved_date = Column(DateTime, nullable=True)
    loan_no = Column(String(50), nullable=True)
    operator_id = Column(String(50), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    reader = relationship("ReaderAccount", back_populates="reservations")
    book = relationship("Book", back_populates="reservations")

    __table_args__ = (
        Index("idx_reservation_reader_status", "reader_no", "status"),
        Index("idx_reservation_book_status", "book_id", "status"),
        Index(
            "uq_reservation_pending_reader_book",
            "reader_no",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )


class SystemConfig(Base):
    """Key/value lending policy, editable by staff while the service runs."""

    __tablename__ = "sys_config"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

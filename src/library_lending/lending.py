"""
Lending Engine: borrow, return and renew.

The engine is the only writer that spans books, loan records and reader
accounts. Each public method is one unit of work (see ``unit_of_work.py``):
every precondition is checked against state read under the locks of the
entities involved, every write lands in the same transaction, and the
counters are re-checked before commit.

Locks per operation:
- borrow: the book and the reader
- return: the loan, its book and its reader
- renew: the loan

Loan and book/reader references on a loan never change, so return and
renew read them once before locking to learn which locks to take.
"""

import logging
from decimal import Decimal

from .credit import CreditLedger
from .database.repository import PaginatedResponse, PaginationParams
from .database.schema import Book as BookDB
from .database.schema import LoanRecord as LoanDB
from .database.schema import ReaderAccount as ReaderDB
from .errors import (
    BookNotFound,
    BookUnavailable,
    ConcurrentModification,
    LoanAlreadyReturned,
    LoanLimitExceeded,
    LoanNotFound,
    LoanNotOpen,
    ReaderNotFound,
    RenewalLimitExceeded,
)
from .locking import book_key, loan_key, reader_key
from .models.circulation import LoanRecord as LoanModel
from .models.circulation import compute_fine, compute_overdue_days
from .models.operations import (
    BorrowResult,
    LoanSearchParams,
    ReaderSummary,
    RenewResult,
    ReturnResult,
)
from .models.status import LOAN_TRANSITIONS, BookStatus, LoanStatus, ensure_transition
from .observability import track_operation
from .unit_of_work import OperationContext, UnitOfWork, new_record_number

logger = logging.getLogger(__name__)

LOAN_PREFIX = "B"


class LendingEngine:
    """
    Orchestrates loans across the catalog, the loan records and the ledger.

    Args:
        uow: Unit of work factory (database, policy, locks, clock)
        credit: Credit ledger sharing the same unit of work factory
    """

    def __init__(self, uow: UnitOfWork, credit: CreditLedger):
        self.uow = uow
        self.credit = credit

    # === Borrow ===

    def borrow_book(
        self,
        reader_no: str,
        book_id: int,
        operator_id: str | None = None,
        loan_no: str | None = None,
    ) -> BorrowResult:
        """
        Lend one copy of a book to a reader.

        If ``loan_no`` is given and that loan already exists for the same
        reader and book, the existing loan is returned unchanged, so a
        caller may retry with the same number after a conflict or timeout.

        Raises:
            BookNotFound / ReaderNotFound: Unknown book or reader
            BookUnavailable: Book not active or no copy on the shelf
            ReaderIneligible: Reader suspended or owes arrears
            LoanLimitExceeded: Reader already holds the maximum open loans
            ConcurrentModification: ``loan_no`` belongs to a different loan
        """
        with track_operation(
            "borrow_book", reader_no=reader_no, book_id=book_id, operator_id=operator_id
        ):
            with self.uow.begin(book_key(book_id), reader_key(reader_no)) as ctx:
                if loan_no is not None:
                    existing = ctx.loans.get(loan_no)
                    if existing is not None:
                        return self._replay_borrow(existing, reader_no, book_id)

                book = self.load_book(ctx, book_id)
                reader = self.credit.load_account(ctx, reader_no)

                if book.lifecycle_status != BookStatus.ACTIVE:
                    raise BookUnavailable(
                        f"Book {book_id} is {book.lifecycle_status.value} and cannot be "
                        "borrowed directly",
                        book_id=book_id,
                    )
                self.ensure_copy_available(book)
                self.credit.ensure_can_borrow(reader)
                self.ensure_below_loan_limit(ctx, reader)

                loan = self.open_loan(ctx, book, reader, loan_no=loan_no, operator_id=operator_id)
                return BorrowResult(loan_no=loan.loan_no, due_date=loan.due_date)

    def _replay_borrow(self, existing: LoanDB, reader_no: str, book_id: int) -> BorrowResult:
        if existing.reader_no != reader_no or existing.book_id != book_id:
            raise ConcurrentModification(
                f"Loan number {existing.loan_no} is already used by another loan",
                loan_no=existing.loan_no,
            )
        logger.info("Borrow retry for existing loan %s", existing.loan_no)
        return BorrowResult(
            loan_no=existing.loan_no,
            due_date=existing.due_date,
            reservation_no=existing.reservation_no,
        )

    # === Steps shared with the reservation manager ===

    def load_book(self, ctx: OperationContext, book_id: int) -> BookDB:
        book = ctx.books.get(book_id, for_update=True)
        if book is None:
            raise BookNotFound(f"Book {book_id} not found", book_id=book_id)
        return book

    def ensure_copy_available(self, book: BookDB) -> None:
        if book.available_copies <= 0:
            raise BookUnavailable(
                f"No copies of book {book.id} are available", book_id=book.id
            )

    def ensure_below_loan_limit(self, ctx: OperationContext, reader: ReaderDB) -> None:
        open_loans = ctx.loans.count_open_for_reader(reader.reader_no)
        if open_loans >= ctx.policy.max_borrow_count:
            raise LoanLimitExceeded(
                f"Reader {reader.reader_no} already has {open_loans} open loans "
                f"(limit {ctx.policy.max_borrow_count})",
                reader_no=reader.reader_no,
            )

    def open_loan(
        self,
        ctx: OperationContext,
        book: BookDB,
        reader: ReaderDB,
        *,
        loan_no: str | None = None,
        operator_id: str | None = None,
        reservation_no: str | None = None,
    ) -> LoanDB:
        """
        Create the loan record and take the copy off the shelf.

        Callers have already checked eligibility; this step only re-checks
        the copy count it is about to decrement.
        """
        self.ensure_copy_available(book)

        loan = LoanDB(
            loan_no=loan_no or new_record_number(LOAN_PREFIX, ctx.now),
            reader_no=reader.reader_no,
            book_id=book.id,
            borrow_date=ctx.now,
            due_date=ctx.now + ctx.policy.loan_period,
            status=LoanStatus.OPEN,
            renewal_count=0,
            overdue_days=0,
            fine_amount=Decimal("0.00"),
            operator_id=operator_id,
            reservation_no=reservation_no,
        )
        ctx.loans.add(loan)

        book.available_copies -= 1
        book.borrow_count += 1
        ctx.verify_book(book)

        logger.info(
            "Loan %s opened: reader %s, book %s, due %s",
            loan.loan_no,
            reader.reader_no,
            book.id,
            loan.due_date,
        )
        return loan

    # === Return ===

    def return_book(self, loan_no: str, operator_id: str | None = None) -> ReturnResult:
        """
        Close a loan, put the copy back and charge any fine.

        ``overdue_days`` counts every started day past the due date;
        the fine is ``overdue_days * fine_rate_per_day`` and is added to the
        reader's arrears in the same transaction.

        Raises:
            LoanNotFound: Unknown loan
            LoanAlreadyReturned: Loan is already closed
        """
        with track_operation("return_book", loan_no=loan_no, operator_id=operator_id):
            loan_ref = self._resolve_loan(loan_no)
            with self.uow.begin(
                loan_key(loan_no), book_key(loan_ref.book_id), reader_key(loan_ref.reader_no)
            ) as ctx:
                loan = self._load_loan(ctx, loan_no)
                if loan.status != LoanStatus.OPEN:
                    raise LoanAlreadyReturned(
                        f"Loan {loan_no} was returned on {loan.return_date}", loan_no=loan_no
                    )
                ensure_transition(LOAN_TRANSITIONS, loan.status, LoanStatus.RETURNED)

                book = self.load_book(ctx, loan.book_id)
                overdue_days = compute_overdue_days(loan.due_date, ctx.now)
                fine = compute_fine(overdue_days, ctx.policy.fine_rate_per_day)

                loan.status = LoanStatus.RETURNED
                loan.return_date = ctx.now
                loan.overdue_days = overdue_days
                loan.fine_amount = fine
                if operator_id:
                    loan.operator_id = operator_id

                book.available_copies += 1
                self.credit.apply_fine(ctx, loan.reader_no, fine)
                ctx.verify_book(book)

                logger.info(
                    "Loan %s returned: %s days overdue, fine %s", loan_no, overdue_days, fine
                )
                return ReturnResult(loan_no=loan_no, overdue_days=overdue_days, fine_amount=fine)

    # === Renew ===

    def renew_loan(self, loan_no: str, operator_id: str | None = None) -> RenewResult:
        """
        Extend an open loan by one loan period.

        Eligibility and availability are not re-checked; the copy is
        already out.

        Raises:
            LoanNotFound: Unknown loan
            LoanNotOpen: Loan already returned
            RenewalLimitExceeded: Loan renewed ``max_renew_count`` times already
        """
        with track_operation("renew_loan", loan_no=loan_no, operator_id=operator_id):
            with self.uow.begin(loan_key(loan_no)) as ctx:
                loan = self._load_loan(ctx, loan_no)
                if loan.status != LoanStatus.OPEN:
                    raise LoanNotOpen(f"Loan {loan_no} is not open", loan_no=loan_no)
                if loan.renewal_count >= ctx.policy.max_renew_count:
                    raise RenewalLimitExceeded(
                        f"Loan {loan_no} has been renewed {loan.renewal_count} times "
                        f"(limit {ctx.policy.max_renew_count})",
                        loan_no=loan_no,
                    )
                ensure_transition(LOAN_TRANSITIONS, loan.status, LoanStatus.OPEN)

                loan.due_date = loan.due_date + ctx.policy.loan_period
                loan.renewal_count += 1

                logger.info("Loan %s renewed until %s", loan_no, loan.due_date)
                return RenewResult(
                    loan_no=loan_no,
                    new_due_date=loan.due_date,
                    renewal_count=loan.renewal_count,
                )

    # === Queries ===

    def get_loan(self, loan_no: str) -> LoanModel:
        with self.uow.read() as ctx:
            loan = self._load_loan(ctx, loan_no)
            return LoanModel.model_validate(loan)

    def get_reader_loans(
        self,
        reader_no: str,
        status: LoanStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """A reader's loans, newest first, optionally filtered by status."""
        with self.uow.read() as ctx:
            self._ensure_reader_exists(ctx, reader_no)
            return ctx.loans.list_for_reader(reader_no, status, pagination)

    def list_overdue_loans(
        self, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """Open loans past due, oldest due first; ``overdue_days`` as of now."""
        with self.uow.read() as ctx:
            return ctx.loans.list_overdue(ctx.now, pagination)

    def search_loans(
        self,
        params: LoanSearchParams | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """Every loan matching ``params``, newest first (staff view)."""
        with self.uow.read() as ctx:
            return ctx.loans.search(params or LoanSearchParams(), pagination)

    def get_reader_summary(self, reader_no: str) -> ReaderSummary:
        with self.uow.read() as ctx:
            reader = self._ensure_reader_exists(ctx, reader_no)
            return ReaderSummary(
                reader_no=reader.reader_no,
                credit_status=reader.credit_status,
                arrears_amount=reader.arrears_amount,
                **ctx.loans.reader_stats(reader_no, ctx.now),
                **ctx.reservations.reader_stats(reader_no),
            )

    # === Internals ===

    def _resolve_loan(self, loan_no: str) -> LoanModel:
        """Read a loan's immutable references before taking locks."""
        return self.uow.peek(lambda ctx: LoanModel.model_validate(self._load_loan(ctx, loan_no)))

    def _load_loan(self, ctx: OperationContext, loan_no: str) -> LoanDB:
        loan = ctx.loans.get(loan_no, for_update=True)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_no} not found", loan_no=loan_no)
        return loan

    def _ensure_reader_exists(self, ctx: OperationContext, reader_no: str) -> ReaderDB:
        reader = ctx.readers.get(reader_no)
        if reader is None:
            raise ReaderNotFound(f"Reader {reader_no} not found", reader_no=reader_no)
        return reader

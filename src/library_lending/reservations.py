"""
Reservation Manager: create, cancel and fulfill reservations.

A reservation is only for a book that cannot be borrowed directly: one
with no copy on the shelf, or one already held for other reservations.
The first pending reservation on a book moves it to RESERVED, which closes
it to direct loans; when the last pending reservation is resolved it
returns to ACTIVE.

Fulfilment converts a reservation into a loan through the lending engine's
own loan-opening step, skipping only the direct-loan check.
"""

import logging

from .credit import CreditLedger
from .database.repository import PaginatedResponse, PaginationParams
from .database.schema import Book as BookDB
from .database.schema import Reservation as ReservationDB
from .errors import (
    BookUnavailable,
    ConcurrentModification,
    DirectLoanAvailable,
    DuplicateReservation,
    InvalidState,
    ReaderIneligible,
    ReaderNotFound,
    ReservationLimitExceeded,
    ReservationNotFound,
)
from .lending import LendingEngine
from .locking import book_key, reader_key, reservation_key
from .models.circulation import Reservation as ReservationModel
from .models.operations import BorrowResult, ReservationResult, ReservationSearchParams
from .models.status import (
    BOOK_TRANSITIONS,
    RESERVATION_TRANSITIONS,
    BookStatus,
    CreditStatus,
    ReservationStatus,
    ensure_transition,
)
from .observability import track_operation
from .unit_of_work import OperationContext, UnitOfWork, new_record_number

logger = logging.getLogger(__name__)

RESERVATION_PREFIX = "A"


class ReservationManager:
    """Reservation lifecycle: PENDING -> FULFILLED | CANCELLED."""

    def __init__(self, uow: UnitOfWork, lending: LendingEngine, credit: CreditLedger):
        self.uow = uow
        self.lending = lending
        self.credit = credit

    def create_reservation(
        self, reader_no: str, book_id: int, reservation_no: str | None = None
    ) -> ReservationResult:
        """
        Reserve a book that cannot be borrowed directly.

        Raises:
            BookNotFound / ReaderNotFound: Unknown book or reader
            BookUnavailable: Book withdrawn from circulation
            DirectLoanAvailable: A copy can be borrowed right now
            ReaderIneligible: Reader suspended
            DuplicateReservation: Reader already has a pending reservation here
            ReservationLimitExceeded: Reader at the pending reservation cap
        """
        with track_operation("create_reservation", reader_no=reader_no, book_id=book_id):
            with self.uow.begin(book_key(book_id), reader_key(reader_no)) as ctx:
                if reservation_no is not None:
                    existing = ctx.reservations.get(reservation_no)
                    if existing is not None:
                        return self._replay_create(existing, reader_no, book_id)

                book = self.lending.load_book(ctx, book_id)
                if book.lifecycle_status == BookStatus.WITHDRAWN:
                    raise BookUnavailable(
                        f"Book {book_id} has been withdrawn", book_id=book_id
                    )
                if book.lifecycle_status == BookStatus.ACTIVE and book.available_copies > 0:
                    raise DirectLoanAvailable(
                        f"Book {book_id} has {book.available_copies} copies available; "
                        "borrow it directly",
                        book_id=book_id,
                    )

                reader = self.credit.load_account(ctx, reader_no)
                if reader.credit_status == CreditStatus.SUSPENDED:
                    raise ReaderIneligible(
                        f"Reader {reader_no} is suspended", reader_no=reader_no
                    )

                if ctx.reservations.find_pending(reader_no, book_id) is not None:
                    raise DuplicateReservation(
                        f"Reader {reader_no} already has a pending reservation for book {book_id}",
                        reader_no=reader_no,
                        book_id=book_id,
                    )

                pending = ctx.reservations.count_pending_for_reader(reader_no)
                if pending >= ctx.policy.max_reservation_count:
                    raise ReservationLimitExceeded(
                        f"Reader {reader_no} already has {pending} pending reservations "
                        f"(limit {ctx.policy.max_reservation_count})",
                        reader_no=reader_no,
                    )

                reservation = ReservationDB(
                    reservation_no=reservation_no or new_record_number(RESERVATION_PREFIX, ctx.now),
                    reader_no=reader_no,
                    book_id=book_id,
                    reservation_date=ctx.now,
                    status=ReservationStatus.PENDING,
                )
                ctx.reservations.add(reservation)

                if book.lifecycle_status == BookStatus.ACTIVE:
                    ensure_transition(BOOK_TRANSITIONS, book.lifecycle_status, BookStatus.RESERVED)
                    book.lifecycle_status = BookStatus.RESERVED
                    logger.info("Book %s reserved; direct loans closed", book_id)
                ctx.verify_book(book)

                logger.info(
                    "Reservation %s created: reader %s, book %s",
                    reservation.reservation_no,
                    reader_no,
                    book_id,
                )
                return ReservationResult(
                    reservation_no=reservation.reservation_no, book_id=book_id
                )

    def _replay_create(
        self, existing: ReservationDB, reader_no: str, book_id: int
    ) -> ReservationResult:
        if existing.reader_no != reader_no or existing.book_id != book_id:
            raise ConcurrentModification(
                f"Reservation number {existing.reservation_no} is already in use",
                reservation_no=existing.reservation_no,
            )
        logger.info("Reservation retry for existing reservation %s", existing.reservation_no)
        return ReservationResult(
            reservation_no=existing.reservation_no,
            book_id=existing.book_id,
            status=existing.status,
        )

    def cancel_reservation(
        self,
        reservation_no: str,
        reader_no: str | None = None,
        operator_id: str | None = None,
    ) -> ReservationResult:
        """
        Cancel a pending reservation.

        Readers may cancel their own reservations; staff (``operator_id``)
        may cancel any. Someone else's reservation is reported as not found.

        Raises:
            ReservationNotFound: Unknown reservation, or not the caller's
            InvalidState: Reservation already fulfilled or cancelled
        """
        with track_operation(
            "cancel_reservation",
            reservation_no=reservation_no,
            reader_no=reader_no,
            operator_id=operator_id,
        ):
            ref = self._resolve(reservation_no)
            with self.uow.begin(reservation_key(reservation_no), book_key(ref.book_id)) as ctx:
                reservation = self._load(ctx, reservation_no)
                if operator_id is None and reservation.reader_no != reader_no:
                    raise ReservationNotFound(
                        f"Reservation {reservation_no} not found", reservation_no=reservation_no
                    )
                self._ensure_pending(reservation)
                ensure_transition(
                    RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.CANCELLED
                )

                reservation.status = ReservationStatus.CANCELLED
                reservation.resolved_date = ctx.now
                reservation.operator_id = operator_id

                book = self.lending.load_book(ctx, reservation.book_id)
                self._release_book_if_unreserved(ctx, book)

                logger.info("Reservation %s cancelled", reservation_no)
                return ReservationResult(
                    reservation_no=reservation_no,
                    book_id=reservation.book_id,
                    status=reservation.status,
                )

    def fulfill_reservation(
        self,
        reservation_no: str,
        operator_id: str | None = None,
        loan_no: str | None = None,
    ) -> BorrowResult:
        """
        Turn a pending reservation into a loan for its reader.

        The reader must still be eligible and under the loan limit, and a
        copy must be on the shelf. Retrying with the ``loan_no`` of a
        completed fulfilment returns that loan.

        Raises:
            ReservationNotFound: Unknown reservation
            InvalidState: Reservation not pending
            BookUnavailable: Book withdrawn or no copy on the shelf
            ReaderIneligible / LoanLimitExceeded: As for a direct borrow
        """
        with track_operation(
            "fulfill_reservation", reservation_no=reservation_no, operator_id=operator_id
        ):
            ref = self._resolve(reservation_no)
            with self.uow.begin(
                reservation_key(reservation_no), book_key(ref.book_id), reader_key(ref.reader_no)
            ) as ctx:
                reservation = self._load(ctx, reservation_no)
                if (
                    loan_no is not None
                    and reservation.status == ReservationStatus.FULFILLED
                    and reservation.loan_no == loan_no
                ):
                    loan = ctx.loans.get(loan_no)
                    return BorrowResult(
                        loan_no=loan.loan_no, due_date=loan.due_date, reservation_no=reservation_no
                    )
                self._ensure_pending(reservation)
                ensure_transition(
                    RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.FULFILLED
                )

                book = self.lending.load_book(ctx, reservation.book_id)
                if book.lifecycle_status == BookStatus.WITHDRAWN:
                    raise BookUnavailable(
                        f"Book {book.id} has been withdrawn", book_id=book.id
                    )
                self.lending.ensure_copy_available(book)

                reader = self.credit.load_account(ctx, reservation.reader_no)
                self.credit.ensure_can_borrow(reader)
                self.lending.ensure_below_loan_limit(ctx, reader)

                loan = self.lending.open_loan(
                    ctx,
                    book,
                    reader,
                    loan_no=loan_no,
                    operator_id=operator_id,
                    reservation_no=reservation_no,
                )

                reservation.status = ReservationStatus.FULFILLED
                reservation.resolved_date = ctx.now
                reservation.loan_no = loan.loan_no
                reservation.operator_id = operator_id
                self._release_book_if_unreserved(ctx, book)

                logger.info("Reservation %s fulfilled as loan %s", reservation_no, loan.loan_no)
                return BorrowResult(
                    loan_no=loan.loan_no, due_date=loan.due_date, reservation_no=reservation_no
                )

    # === Queries ===

    def get_reservation(self, reservation_no: str) -> ReservationModel:
        with self.uow.read() as ctx:
            return ReservationModel.model_validate(self._load(ctx, reservation_no))

    def get_reader_reservations(
        self,
        reader_no: str,
        status: ReservationStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[ReservationModel]:
        """A reader's reservations, newest first, optionally filtered by status."""
        with self.uow.read() as ctx:
            if ctx.readers.get(reader_no) is None:
                raise ReaderNotFound(f"Reader {reader_no} not found", reader_no=reader_no)
            return ctx.reservations.list_for_reader(reader_no, status, pagination)

    def search_reservations(
        self,
        params: ReservationSearchParams | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[ReservationModel]:
        """Every reservation matching ``params``, newest first (staff view)."""
        with self.uow.read() as ctx:
            return ctx.reservations.search(params or ReservationSearchParams(), pagination)

    # === Internals ===

    def _resolve(self, reservation_no: str) -> ReservationModel:
        """Read a reservation's immutable references before taking locks."""
        return self.uow.peek(
            lambda ctx: ReservationModel.model_validate(self._load(ctx, reservation_no))
        )

    def _load(self, ctx: OperationContext, reservation_no: str) -> ReservationDB:
        reservation = ctx.reservations.get(reservation_no, for_update=True)
        if reservation is None:
            raise ReservationNotFound(
                f"Reservation {reservation_no} not found", reservation_no=reservation_no
            )
        return reservation

    def _ensure_pending(self, reservation: ReservationDB) -> None:
        if reservation.status != ReservationStatus.PENDING:
            raise InvalidState(
                f"Reservation {reservation.reservation_no} is already "
                f"{reservation.status.value}",
                reservation_no=reservation.reservation_no,
            )

    def _release_book_if_unreserved(self, ctx: OperationContext, book: BookDB) -> None:
        """Reopen a reserved book to direct loans once no reservation is pending."""
        ctx.session.flush()
        if (
            book.lifecycle_status == BookStatus.RESERVED
            and ctx.reservations.count_pending_for_book(book.id) == 0
        ):
            ensure_transition(BOOK_TRANSITIONS, book.lifecycle_status, BookStatus.ACTIVE)
            book.lifecycle_status = BookStatus.ACTIVE
            logger.info("Book %s has no pending reservations; direct loans reopened", book.id)
        ctx.verify_book(book)

"""
Error taxonomy for the lending engine.

Every failure an operation can produce is a ``LendingError`` subclass carrying
a stable machine-readable ``code`` and one of five kinds:

- NOT_FOUND: a book, reader, loan or reservation does not exist
- PRECONDITION_FAILED: a business rule rejected the request before any write
- CONFLICT: a concurrent mutation was detected; safe to retry
- TRANSIENT_FAILURE: the store or a lock was unavailable; safe to retry
- INVARIANT_VIOLATION: internal inconsistency; the transaction was aborted

Callers render errors with ``to_dict()``. Storage error text never appears in
the message; it is kept on ``__cause__`` for logs only.
"""

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Broad error category used for retry decisions and status mapping."""

    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"
    CONFLICT = "conflict"
    TRANSIENT_FAILURE = "transient_failure"
    INVARIANT_VIOLATION = "invariant_violation"


class LendingError(Exception):
    """Base class for all lending engine errors."""

    kind: ErrorKind = ErrorKind.PRECONDITION_FAILED
    code: str = "LENDING_ERROR"
    default_message: str = "Lending operation failed"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.CONFLICT, ErrorKind.TRANSIENT_FAILURE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }


# === Not found ===


class NotFoundError(LendingError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Record not found"


class BookNotFound(NotFoundError):
    code = "BOOK_NOT_FOUND"
    default_message = "Book not found"


class ReaderNotFound(NotFoundError):
    code = "READER_NOT_FOUND"
    default_message = "Reader not found"


class LoanNotFound(NotFoundError):
    code = "LOAN_NOT_FOUND"
    default_message = "Loan record not found"


class ReservationNotFound(NotFoundError):
    code = "RESERVATION_NOT_FOUND"
    default_message = "Reservation not found"


# === Precondition failures ===


class PreconditionFailed(LendingError):
    kind = ErrorKind.PRECONDITION_FAILED
    code = "PRECONDITION_FAILED"


class BookUnavailable(PreconditionFailed):
    code = "BOOK_UNAVAILABLE"
    default_message = "No copies of this book are available for loan"


class ReaderIneligible(PreconditionFailed):
    code = "READER_INELIGIBLE"
    default_message = "Reader is not eligible to borrow"


class LoanLimitExceeded(PreconditionFailed):
    code = "LOAN_LIMIT_EXCEEDED"
    default_message = "Reader has reached the maximum number of loans"


class LoanAlreadyReturned(PreconditionFailed):
    code = "LOAN_ALREADY_RETURNED"
    default_message = "Loan has already been returned"


class LoanNotOpen(PreconditionFailed):
    code = "LOAN_NOT_OPEN"
    default_message = "Only open loans can be renewed"


class RenewalLimitExceeded(PreconditionFailed):
    code = "RENEWAL_LIMIT_EXCEEDED"
    default_message = "Loan has reached the maximum number of renewals"


class DirectLoanAvailable(PreconditionFailed):
    code = "DIRECT_LOAN_AVAILABLE"
    default_message = "Book can be borrowed directly; no reservation needed"


class DuplicateReservation(PreconditionFailed):
    code = "DUPLICATE_RESERVATION"
    default_message = "Reader already has a pending reservation for this book"


class ReservationLimitExceeded(PreconditionFailed):
    code = "RESERVATION_LIMIT_EXCEEDED"
    default_message = "Reader has reached the maximum number of pending reservations"


class InvalidState(PreconditionFailed):
    code = "INVALID_STATE"
    default_message = "Operation is not allowed in the record's current state"


class PaymentExceedsArrears(PreconditionFailed):
    code = "PAYMENT_EXCEEDS_ARREARS"
    default_message = "Payment exceeds outstanding arrears"


# === Retryable failures ===


class ConcurrentModification(LendingError):
    kind = ErrorKind.CONFLICT
    code = "CONCURRENT_MODIFICATION"
    default_message = "Record was modified concurrently; retry the request"


class TransientFailure(LendingError):
    kind = ErrorKind.TRANSIENT_FAILURE
    code = "TRANSIENT_FAILURE"
    default_message = "Service temporarily unavailable; retry the request"


class StoreUnavailable(TransientFailure):
    code = "STORE_UNAVAILABLE"
    default_message = "Storage is temporarily unavailable; retry the request"


class LockTimeout(TransientFailure):
    code = "LOCK_TIMEOUT"
    default_message = "Timed out waiting for a concurrent operation; retry the request"


# === Internal ===


class InvariantViolation(LendingError):
    kind = ErrorKind.INVARIANT_VIOLATION
    code = "INVARIANT_VIOLATION"
    default_message = "Internal consistency check failed; operation aborted"

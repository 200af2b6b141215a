"""
Library lending models.

Pydantic v2 models for the entities the lending engine reads and returns,
plus the explicit status enumerations and state machines:

- Book: catalog title with copy counts
- ReaderAccount: credit standing and arrears
- LoanRecord / Reservation: circulation records
- operations: typed request and result structs per operation
"""

from .book import Book
from .circulation import LoanRecord, Reservation, compute_fine, compute_overdue_days
from .operations import (
    BorrowRequest,
    BorrowResult,
    CancelReservationRequest,
    CreditAdjustRequest,
    CreditResult,
    FulfillReservationRequest,
    LoanSearchParams,
    LoanSearchRequest,
    OverdueLoansRequest,
    PaymentRequest,
    ReaderLoansRequest,
    ReaderRequest,
    ReaderReservationsRequest,
    ReaderSummary,
    RenewRequest,
    RenewResult,
    ReservationRequest,
    ReservationResult,
    ReservationSearchParams,
    ReservationSearchRequest,
    ReturnRequest,
    ReturnResult,
)
from .reader import ReaderAccount
from .status import BookStatus, CreditStatus, LoanStatus, ReservationStatus

__all__ = [
    "Book",
    "BookStatus",
    "BorrowRequest",
    "BorrowResult",
    "CancelReservationRequest",
    "CreditAdjustRequest",
    "CreditResult",
    "CreditStatus",
    "FulfillReservationRequest",
    "LoanRecord",
    "LoanSearchParams",
    "LoanSearchRequest",
    "LoanStatus",
    "OverdueLoansRequest",
    "PaymentRequest",
    "ReaderAccount",
    "ReaderLoansRequest",
    "ReaderRequest",
    "ReaderReservationsRequest",
    "ReaderSummary",
    "RenewRequest",
    "RenewResult",
    "Reservation",
    "ReservationRequest",
    "ReservationResult",
    "ReservationSearchParams",
    "ReservationSearchRequest",
    "ReservationStatus",
    "ReturnRequest",
    "ReturnResult",
    "compute_fine",
    "compute_overdue_days",
]

"""
Request and result models for lending operations.

Requests are validated at the service boundary (the MCP tools) before they
reach the engine; results are what the engine hands back and what the
tools serialize.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .status import CreditStatus, LoanStatus, ReservationStatus

# === Requests ===


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class BorrowRequest(_Request):
    """Borrow one copy of a book."""

    reader_no: str = Field(..., min_length=1, max_length=50)
    book_id: int = Field(..., ge=1)
    operator_id: str | None = Field(None, max_length=50)
    loan_no: str | None = Field(
        None,
        min_length=1,
        max_length=50,
        description="Caller-chosen loan number; retries with the same number are safe",
    )


class ReturnRequest(_Request):
    """Return a borrowed copy."""

    loan_no: str = Field(..., min_length=1, max_length=50)
    operator_id: str | None = Field(None, max_length=50)


class RenewRequest(_Request):
    """Extend an open loan."""

    loan_no: str = Field(..., min_length=1, max_length=50)
    operator_id: str | None = Field(None, max_length=50)


class ReservationRequest(_Request):
    """Reserve a book that cannot be borrowed directly."""

    reader_no: str = Field(..., min_length=1, max_length=50)
    book_id: int = Field(..., ge=1)
    reservation_no: str | None = Field(
        None,
        min_length=1,
        max_length=50,
        description="Caller-chosen reservation number; retries with the same number are safe",
    )


class CancelReservationRequest(_Request):
    """
    Cancel a pending reservation.

    Readers pass their own ``reader_no``; staff pass ``operator_id`` and may
    cancel any reservation.
    """

    reservation_no: str = Field(..., min_length=1, max_length=50)
    reader_no: str | None = Field(None, min_length=1, max_length=50)
    operator_id: str | None = Field(None, min_length=1, max_length=50)


class FulfillReservationRequest(_Request):
    """Convert a pending reservation into a loan (staff only)."""

    reservation_no: str = Field(..., min_length=1, max_length=50)
    operator_id: str | None = Field(None, max_length=50)
    loan_no: str | None = Field(None, min_length=1, max_length=50)


class _StatusFilter(BaseModel):
    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def normalize_status(cls, v):
        """Accept 'Open', 'OPEN' or 'open'; treat '' as no filter."""
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v


class _ReaderListRequest(_StatusFilter, _Request):
    reader_no: str = Field(..., min_length=1, max_length=50)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)


class ReaderLoansRequest(_ReaderListRequest):
    """Page through one reader's loans."""

    status: LoanStatus | None = None


class ReaderReservationsRequest(_ReaderListRequest):
    """Page through one reader's reservations."""

    status: ReservationStatus | None = None


class OverdueLoansRequest(_Request):
    """Page through overdue loans."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)


class LoanSearchParams(_StatusFilter):
    """
    Filters for the staff-wide loan search; all optional.

    ``loan_no`` and ``reader_no`` match anywhere in the number. The borrow
    date range includes both ends.
    """

    loan_no: str | None = Field(None, min_length=1, max_length=50)
    reader_no: str | None = Field(None, min_length=1, max_length=50)
    book_id: int | None = Field(None, gt=0)
    status: LoanStatus | None = None
    borrowed_from: datetime | None = None
    borrowed_to: datetime | None = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "LoanSearchParams":
        if self.borrowed_from and self.borrowed_to and self.borrowed_from > self.borrowed_to:
            raise ValueError("borrowed_from must not be after borrowed_to")
        return self


class ReservationSearchParams(_StatusFilter):
    """Filters for the staff-wide reservation search; all optional."""

    reservation_no: str | None = Field(None, min_length=1, max_length=50)
    reader_no: str | None = Field(None, min_length=1, max_length=50)
    book_id: int | None = Field(None, gt=0)
    status: ReservationStatus | None = None
    reserved_from: datetime | None = None
    reserved_to: datetime | None = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "ReservationSearchParams":
        if self.reserved_from and self.reserved_to and self.reserved_from > self.reserved_to:
            raise ValueError("reserved_from must not be after reserved_to")
        return self


class LoanSearchRequest(LoanSearchParams, _Request):
    """Search all loans (staff)."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)


class ReservationSearchRequest(ReservationSearchParams, _Request):
    """Search all reservations (staff)."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)


class ReaderRequest(_Request):
    """Identify one reader."""

    reader_no: str = Field(..., min_length=1, max_length=50)


class CreditAdjustRequest(_Request):
    """Staff override of a reader's credit standing."""

    reader_no: str = Field(..., min_length=1, max_length=50)
    credit_status: CreditStatus
    operator_id: str | None = Field(None, max_length=50)


class PaymentRequest(_Request):
    """Record a payment against a reader's arrears."""

    reader_no: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    operator_id: str | None = Field(None, max_length=50)


# === Results ===


class BorrowResult(BaseModel):
    loan_no: str
    due_date: datetime
    reservation_no: str | None = None


class ReturnResult(BaseModel):
    loan_no: str
    overdue_days: int
    fine_amount: Decimal


class RenewResult(BaseModel):
    loan_no: str
    new_due_date: datetime
    renewal_count: int


class ReservationResult(BaseModel):
    reservation_no: str
    book_id: int
    status: ReservationStatus = ReservationStatus.PENDING


class CreditResult(BaseModel):
    """A reader's standing after a credit ledger action."""

    reader_no: str
    credit_status: CreditStatus
    arrears_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReaderSummary(BaseModel):
    """Lending statistics for one reader."""

    reader_no: str
    credit_status: CreditStatus
    arrears_amount: Decimal
    total_loans: int
    open_loans: int
    overdue_loans: int = Field(description="Loans returned late or currently past due")
    total_reservations: int
    pending_reservations: int


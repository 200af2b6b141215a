"""
Circulation models for the library lending service.

- LoanRecord: a reader borrowing one copy of a book
- Reservation: a reader's claim on a book that cannot be borrowed directly

Also home to the overdue and fine arithmetic, which is shared by returns
(persisted) and overdue listings (computed on read).
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .status import LoanStatus, ReservationStatus

ONE_DAY = timedelta(days=1)
CENTS = Decimal("0.01")


def compute_overdue_days(due_date: datetime, as_of: datetime) -> int:
    """
    Whole days past due, rounding any started day up.

    >>> compute_overdue_days(datetime(2024, 1, 1), datetime(2024, 1, 1, 0, 1))
    1
    """
    if as_of <= due_date:
        return 0
    return -(-(as_of - due_date) // ONE_DAY)


def compute_fine(overdue_days: int, fine_rate_per_day: Decimal) -> Decimal:
    """Fine for ``overdue_days`` at the given daily rate, rounded to cents."""
    if overdue_days <= 0:
        return Decimal("0.00")
    return (Decimal(overdue_days) * fine_rate_per_day).quantize(CENTS, rounding=ROUND_HALF_UP)


class LoanRecord(BaseModel):
    """
    Represents one loan.

    Created on borrow, extended on renew, closed on return. Loan records are
    the audit trail and are never deleted.
    """

    loan_no: str = Field(
        ...,
        description="Unique loan number",
        max_length=50,
        examples=["B20240115103000123456001"],
    )

    reader_no: str = Field(..., description="Borrowing reader", max_length=50)

    book_id: int = Field(..., description="Borrowed book", ge=1)

    borrow_date: datetime = Field(..., description="When the copy left the library")

    due_date: datetime = Field(..., description="When the copy is due back")

    return_date: datetime | None = Field(None, description="When the copy came back")

    status: LoanStatus = Field(default=LoanStatus.OPEN, description="Loan status")

    renewal_count: int = Field(default=0, description="Renewals so far", ge=0)

    overdue_days: int = Field(
        default=0,
        description="Days overdue, fixed at return",
        ge=0,
    )

    fine_amount: Decimal = Field(
        default=Decimal("0.00"),
        description="Fine charged at return",
        ge=0,
        decimal_places=2,
    )

    operator_id: str | None = Field(None, description="Staff member who processed the loan")

    reservation_no: str | None = Field(
        None,
        description="Reservation this loan fulfilled, if any",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "LoanRecord":
        """Validate date relationships."""
        if self.due_date <= self.borrow_date:
            raise ValueError("Due date must be after borrow date")

        if self.return_date and self.return_date < self.borrow_date:
            raise ValueError("Return date cannot be before borrow date")

        if self.status == LoanStatus.OPEN and self.return_date is not None:
            raise ValueError("Open loans cannot have a return date")

        return self

    @property
    def is_open(self) -> bool:
        return self.status == LoanStatus.OPEN

    def overdue_days_as_of(self, now: datetime) -> int:
        """Days overdue: fixed once returned, otherwise computed against ``now``."""
        if not self.is_open:
            return self.overdue_days
        return compute_overdue_days(self.due_date, now)

    model_config = ConfigDict(from_attributes=True)


class Reservation(BaseModel):
    """
    Represents a reservation.

    Pending reservations move to fulfilled (converted into a loan) or
    cancelled; both are terminal.
    """

    reservation_no: str = Field(..., description="Unique reservation number", max_length=50)

    reader_no: str = Field(..., description="Reserving reader", max_length=50)

    book_id: int = Field(..., description="Reserved book", ge=1)

    reservation_date: datetime = Field(..., description="When the reservation was made")

    status: ReservationStatus = Field(
        default=ReservationStatus.PENDING,
        description="Reservation status",
    )

    resolved_date: datetime | None = Field(
        None,
        description="When the reservation was fulfilled or cancelled",
    )

    loan_no: str | None = Field(None, description="Loan created on fulfilment")

    operator_id: str | None = Field(None, description="Staff member who resolved it")

    @property
    def is_pending(self) -> bool:
        return self.status == ReservationStatus.PENDING

    model_config = ConfigDict(from_attributes=True)

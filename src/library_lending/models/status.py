"""
Status enumerations and state machines for lending entities.

These replace the numeric status codes of earlier library systems
(``1`` active, ``2`` borrowed, ``3`` reserved) with explicit states, and
define the only transitions the engine is allowed to perform:

    LoanStatus:          OPEN -> RETURNED            (renewal is OPEN -> OPEN)
    ReservationStatus:   PENDING -> FULFILLED | CANCELLED
    BookStatus:          ACTIVE <-> RESERVED, * -> WITHDRAWN (catalog only)
    CreditStatus:        GOOD <-> IN_DEBT, * <-> SUSPENDED (staff only)

The same enums back the SQLAlchemy columns in ``database/schema.py``.
"""

import enum

from ..errors import InvalidState


class BookStatus(str, enum.Enum):
    """Lifecycle of a catalog title."""

    ACTIVE = "active"
    RESERVED = "reserved"
    WITHDRAWN = "withdrawn"


class LoanStatus(str, enum.Enum):
    """Lifecycle of a loan record."""

    OPEN = "open"
    RETURNED = "returned"


class ReservationStatus(str, enum.Enum):
    """Lifecycle of a reservation."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class CreditStatus(str, enum.Enum):
    """Reader credit standing."""

    GOOD = "good"
    IN_DEBT = "in_debt"
    SUSPENDED = "suspended"


LOAN_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.OPEN: frozenset({LoanStatus.OPEN, LoanStatus.RETURNED}),
    LoanStatus.RETURNED: frozenset(),
}

RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.FULFILLED, ReservationStatus.CANCELLED}),
    ReservationStatus.FULFILLED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}

BOOK_TRANSITIONS: dict[BookStatus, frozenset[BookStatus]] = {
    BookStatus.ACTIVE: frozenset({BookStatus.RESERVED, BookStatus.WITHDRAWN}),
    BookStatus.RESERVED: frozenset({BookStatus.ACTIVE, BookStatus.WITHDRAWN}),
    BookStatus.WITHDRAWN: frozenset({BookStatus.ACTIVE}),
}


def ensure_transition(transitions: dict, current: enum.Enum, target: enum.Enum) -> None:
    """
    Raise InvalidState unless ``current -> target`` is an allowed transition.

    Args:
        transitions: One of the transition tables above
        current: Current status
        target: Requested status

    Raises:
        InvalidState: If the transition is not allowed
    """
    if target not in transitions.get(current, frozenset()):
        raise InvalidState(
            f"Cannot move {type(current).__name__} from '{current.value}' to '{target.value}'"
        )


def is_borrow_eligible(credit_status: CreditStatus) -> bool:
    """Credit labels that permit borrowing (arrears are checked separately)."""
    return credit_status in (CreditStatus.GOOD, CreditStatus.IN_DEBT)

"""
Lending tools for the library lending MCP server.

Each tool:
1. validates its raw arguments with a pydantic request model
2. runs the engine operation in a worker thread (the engine is synchronous
   and holds locks across a database transaction)
3. returns ``{"content": [...], "data": {...}}`` on success, or
   ``{"isError": True, "error": {...}, "content": [...]}`` on failure

Errors carry the stable ``code``/``kind``/``retryable`` triple from
``errors.py``. Unexpected exceptions are logged with their traceback and
reported as ``INTERNAL_ERROR`` without internal detail.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from ..database.repository import PaginationParams
from ..errors import LendingError
from ..models.operations import (
    BorrowRequest,
    CancelReservationRequest,
    CreditAdjustRequest,
    FulfillReservationRequest,
    LoanSearchRequest,
    OverdueLoansRequest,
    PaymentRequest,
    ReaderLoansRequest,
    ReaderRequest,
    ReaderReservationsRequest,
    RenewRequest,
    ReservationRequest,
    ReservationSearchRequest,
    ReturnRequest,
)
from ..services import LibraryServices

logger = logging.getLogger(__name__)


def error_response(error: dict[str, Any]) -> dict[str, Any]:
    return {
        "isError": True,
        "error": error,
        "content": [{"type": "text", "text": f"{error['code']}: {error['message']}"}],
    }


def success_response(message: str, data: BaseModel) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data.model_dump(mode="json"),
    }


def invalid_arguments(tool_name: str, exc: ValidationError) -> dict[str, Any]:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
        for err in exc.errors()
    )
    logger.info("Invalid arguments for %s: %s", tool_name, problems)
    return error_response(
        {
            "code": "INVALID_ARGUMENTS",
            "kind": "precondition_failed",
            "message": f"Invalid {tool_name} arguments: {problems}",
            "retryable": False,
        }
    )


class LendingTools:
    """
    MCP tool handlers bound to one ``LibraryServices``.

    Register the bound methods listed in ``definitions()`` with FastMCP.
    """

    def __init__(self, services: LibraryServices):
        self.services = services

    async def _run(
        self,
        tool_name: str,
        request_model: type[BaseModel],
        arguments: dict[str, Any] | None,
        operation: Callable[[Any], dict[str, Any]],
    ) -> dict[str, Any]:
        try:
            params = request_model.model_validate(arguments or {})
        except ValidationError as e:
            return invalid_arguments(tool_name, e)

        try:
            return await asyncio.to_thread(operation, params)
        except LendingError as e:
            return error_response(e.to_dict())
        except Exception:
            logger.exception("Unexpected error in %s tool", tool_name)
            return error_response(
                {
                    "code": "INTERNAL_ERROR",
                    "kind": "transient_failure",
                    "message": "An unexpected error occurred; the operation was rolled back",
                    "retryable": True,
                }
            )

    # === Loans ===

    async def borrow_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Lend a copy of a book to a reader."""

        def run(params: BorrowRequest):
            result = self.services.lending.borrow_book(
                params.reader_no,
                params.book_id,
                operator_id=params.operator_id,
                loan_no=params.loan_no,
            )
            return success_response(
                f"Loan {result.loan_no} created; due {result.due_date:%Y-%m-%d %H:%M}",
                result,
            )

        return await self._run("borrow_book", BorrowRequest, arguments, run)

    async def return_book(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Return a borrowed copy and charge any overdue fine."""

        def run(params: ReturnRequest):
            result = self.services.lending.return_book(
                params.loan_no, operator_id=params.operator_id
            )
            message = f"Loan {result.loan_no} returned"
            if result.overdue_days:
                message += (
                    f" {result.overdue_days} days late; fine of {result.fine_amount} charged"
                )
            return success_response(message, result)

        return await self._run("return_book", ReturnRequest, arguments, run)

    async def renew_loan(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Extend an open loan by one loan period."""

        def run(params: RenewRequest):
            result = self.services.lending.renew_loan(
                params.loan_no, operator_id=params.operator_id
            )
            return success_response(
                f"Loan {result.loan_no} renewed; now due {result.new_due_date:%Y-%m-%d %H:%M}",
                result,
            )

        return await self._run("renew_loan", RenewRequest, arguments, run)

    # === Reservations ===

    async def create_reservation(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Reserve a book that cannot be borrowed directly."""

        def run(params: ReservationRequest):
            result = self.services.reservations.create_reservation(
                params.reader_no, params.book_id, reservation_no=params.reservation_no
            )
            return success_response(f"Reservation {result.reservation_no} created", result)

        return await self._run("create_reservation", ReservationRequest, arguments, run)

    async def cancel_reservation(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Cancel a pending reservation."""

        def run(params: CancelReservationRequest):
            result = self.services.reservations.cancel_reservation(
                params.reservation_no,
                reader_no=params.reader_no,
                operator_id=params.operator_id,
            )
            return success_response(f"Reservation {result.reservation_no} cancelled", result)

        return await self._run("cancel_reservation", CancelReservationRequest, arguments, run)

    async def fulfill_reservation(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Convert a pending reservation into a loan."""

        def run(params: FulfillReservationRequest):
            result = self.services.reservations.fulfill_reservation(
                params.reservation_no, operator_id=params.operator_id, loan_no=params.loan_no
            )
            return success_response(
                f"Reservation {result.reservation_no} fulfilled as loan {result.loan_no}; "
                f"due {result.due_date:%Y-%m-%d %H:%M}",
                result,
            )

        return await self._run(
            "fulfill_reservation", FulfillReservationRequest, arguments, run
        )

    # === Queries ===

    async def get_reader_loans(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List a reader's loans, newest first."""

        def run(params: ReaderLoansRequest):
            page = self.services.lending.get_reader_loans(
                params.reader_no,
                params.status,
                PaginationParams(page=params.page, page_size=params.page_size),
            )
            return success_response(
                f"{page.total} loans for reader {params.reader_no} (page {page.page})", page
            )

        return await self._run("get_reader_loans", ReaderLoansRequest, arguments, run)

    async def get_reader_reservations(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List a reader's reservations, newest first."""

        def run(params: ReaderReservationsRequest):
            page = self.services.reservations.get_reader_reservations(
                params.reader_no,
                params.status,
                PaginationParams(page=params.page, page_size=params.page_size),
            )
            return success_response(
                f"{page.total} reservations for reader {params.reader_no} (page {page.page})",
                page,
            )

        return await self._run(
            "get_reader_reservations", ReaderReservationsRequest, arguments, run
        )

    async def list_overdue_loans(self, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """List open loans past their due date."""

        def run(params: OverdueLoansRequest):
            page = self.services.lending.list_overdue_loans(
                PaginationParams(page=params.page, page_size=params.page_size)
            )
            return success_response(f"{page.total} overdue loans", page)

        return await self._run("list_overdue_loans", OverdueLoansRequest, arguments, run)

    async def search_loans(self, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Search all loans by number, reader, book, status and borrow date."""

        def run(params: LoanSearchRequest):
            page = self.services.lending.search_loans(
                params, PaginationParams(page=params.page, page_size=params.page_size)
            )
            return success_response(f"{page.total} matching loans (page {page.page})", page)

        return await self._run("search_loans", LoanSearchRequest, arguments, run)

    async def search_reservations(
        self, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Search all reservations by number, reader, book, status and date."""

        def run(params: ReservationSearchRequest):
            page = self.services.reservations.search_reservations(
                params, PaginationParams(page=params.page, page_size=params.page_size)
            )
            return success_response(
                f"{page.total} matching reservations (page {page.page})", page
            )

        return await self._run(
            "search_reservations", ReservationSearchRequest, arguments, run
        )

    async def get_reader_summary(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Loan, reservation and credit totals for one reader."""

        def run(params: ReaderRequest):
            summary = self.services.lending.get_reader_summary(params.reader_no)
            return success_response(
                f"Reader {summary.reader_no}: {summary.open_loans} open loans, "
                f"{summary.pending_reservations} pending reservations, "
                f"arrears {summary.arrears_amount}",
                summary,
            )

        return await self._run("get_reader_summary", ReaderRequest, arguments, run)

    # === Credit ===

    async def adjust_credit_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Staff override of a reader's credit standing."""

        def run(params: CreditAdjustRequest):
            result = self.services.credit.adjust_status(
                params.reader_no, params.credit_status, operator_id=params.operator_id
            )
            return success_response(
                f"Reader {result.reader_no} is now {result.credit_status.value}", result
            )

        return await self._run("adjust_credit_status", CreditAdjustRequest, arguments, run)

    async def pay_arrears(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Record a payment against a reader's arrears."""

        def run(params: PaymentRequest):
            result = self.services.credit.pay_arrears(
                params.reader_no, params.amount, operator_id=params.operator_id
            )
            return success_response(
                f"Payment recorded; reader {result.reader_no} owes {result.arrears_amount}",
                result,
            )

        return await self._run("pay_arrears", PaymentRequest, arguments, run)

    def definitions(self) -> list[dict[str, Any]]:
        """Tool metadata for server registration."""
        return [
            {
                "name": "borrow_book",
                "description": (
                    "Lend one copy of a book to a reader. The book must be active with a copy "
                    "on the shelf; the reader must not be suspended, must owe no arrears and "
                    "must be under the loan limit. Pass loan_no to make retries safe."
                ),
                "inputSchema": BorrowRequest.model_json_schema(),
                "handler": self.borrow_book,
            },
            {
                "name": "return_book",
                "description": (
                    "Return a borrowed copy. Overdue days are counted per started day and "
                    "the fine is added to the reader's arrears."
                ),
                "inputSchema": ReturnRequest.model_json_schema(),
                "handler": self.return_book,
            },
            {
                "name": "renew_loan",
                "description": "Extend an open loan by one loan period, up to the renewal limit.",
                "inputSchema": RenewRequest.model_json_schema(),
                "handler": self.renew_loan,
            },
            {
                "name": "create_reservation",
                "description": (
                    "Reserve a book that cannot be borrowed directly. Fails if a copy is "
                    "available, if the reader already has a pending reservation for it, or "
                    "if the reader is at the reservation limit."
                ),
                "inputSchema": ReservationRequest.model_json_schema(),
                "handler": self.create_reservation,
            },
            {
                "name": "cancel_reservation",
                "description": (
                    "Cancel a pending reservation. Readers may cancel their own; staff "
                    "(operator_id) may cancel any."
                ),
                "inputSchema": CancelReservationRequest.model_json_schema(),
                "handler": self.cancel_reservation,
            },
            {
                "name": "fulfill_reservation",
                "description": "Convert a pending reservation into a loan for its reader.",
                "inputSchema": FulfillReservationRequest.model_json_schema(),
                "handler": self.fulfill_reservation,
            },
            {
                "name": "get_reader_loans",
                "description": "List a reader's loans, newest first, optionally by status.",
                "inputSchema": ReaderLoansRequest.model_json_schema(),
                "handler": self.get_reader_loans,
            },
            {
                "name": "get_reader_reservations",
                "description": "List a reader's reservations, newest first, optionally by status.",
                "inputSchema": ReaderReservationsRequest.model_json_schema(),
                "handler": self.get_reader_reservations,
            },
            {
                "name": "list_overdue_loans",
                "description": "List open loans past their due date, oldest due first.",
                "inputSchema": OverdueLoansRequest.model_json_schema(),
                "handler": self.list_overdue_loans,
            },
            {
                "name": "search_loans",
                "description": (
                    "Search all loans (staff). Filter by loan_no or reader_no (partial match), "
                    "book_id, status and an inclusive borrow date range; newest first."
                ),
                "inputSchema": LoanSearchRequest.model_json_schema(),
                "handler": self.search_loans,
            },
            {
                "name": "search_reservations",
                "description": (
                    "Search all reservations (staff). Filter by reservation_no or reader_no "
                    "(partial match), book_id, status and an inclusive date range; newest first."
                ),
                "inputSchema": ReservationSearchRequest.model_json_schema(),
                "handler": self.search_reservations,
            },
            {
                "name": "get_reader_summary",
                "description": "Loan, reservation and credit totals for one reader.",
                "inputSchema": ReaderRequest.model_json_schema(),
                "handler": self.get_reader_summary,
            },
            {
                "name": "adjust_credit_status",
                "description": (
                    "Set a reader's credit status (staff). Good standing cannot be restored "
                    "while arrears are outstanding."
                ),
                "inputSchema": CreditAdjustRequest.model_json_schema(),
                "handler": self.adjust_credit_status,
            },
            {
                "name": "pay_arrears",
                "description": "Record a payment against a reader's outstanding arrears.",
                "inputSchema": PaymentRequest.model_json_schema(),
                "handler": self.pay_arrears,
            },
        ]

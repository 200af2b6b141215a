"""
Tests for the lending MCP tools.

These tests demonstrate comprehensive testing of MCP tools:
1. Input validation
2. Success scenarios and the structured data returned
3. Error handling with stable codes and retry hints
4. State modifications visible through other tools
"""

import pytest
from fastmcp import FastMCP

from library_lending.models.status import BookStatus, CreditStatus
from library_lending.server import create_server
from library_lending.tools import LendingTools


@pytest.fixture
def tools(services):
    return LendingTools(services)


def error_code(response):
    assert response.get("isError") is True
    return response["error"]["code"]


class TestBorrowTools:
    """Test borrow_book, return_book and renew_loan."""

    async def test_borrow_success(self, tools, add_book, add_reader):
        book_id = add_book()
        add_reader("R1")

        response = await tools.borrow_book({"reader_no": "R1", "book_id": book_id})

        assert "isError" not in response
        assert response["data"]["loan_no"].startswith("B")
        assert response["data"]["due_date"] == "2024-03-31T10:00:00"
        assert response["content"][0]["type"] == "text"
        assert response["data"]["loan_no"] in response["content"][0]["text"]

    async def test_borrow_unavailable(self, tools, add_book, add_reader):
        book_id = add_book()
        add_reader("R1")
        add_reader("R2")
        await tools.borrow_book({"reader_no": "R1", "book_id": book_id})

        response = await tools.borrow_book({"reader_no": "R2", "book_id": book_id})

        assert error_code(response) == "BOOK_UNAVAILABLE"
        assert response["error"]["kind"] == "precondition_failed"
        assert response["error"]["retryable"] is False
        assert "BOOK_UNAVAILABLE" in response["content"][0]["text"]

    async def test_borrow_not_found(self, tools, add_reader):
        add_reader("R1")
        response = await tools.borrow_book({"reader_no": "R1", "book_id": 999})
        assert error_code(response) == "BOOK_NOT_FOUND"
        assert response["error"]["kind"] == "not_found"

    @pytest.mark.parametrize(
        "arguments",
        [
            {},
            {"reader_no": "R1"},
            {"reader_no": "R1", "book_id": "not-a-number"},
            {"reader_no": "R1", "book_id": 0},
            {"reader_no": "", "book_id": 1},
            {"reader_no": "R1", "book_id": 1, "copies": 2},
        ],
    )
    async def test_borrow_invalid_arguments(self, tools, arguments):
        response = await tools.borrow_book(arguments)
        assert error_code(response) == "INVALID_ARGUMENTS"
        assert response["error"]["retryable"] is False

    async def test_return_with_fine(self, tools, services, add_book, add_reader, clock):
        add_reader("R1")
        borrowed = await tools.borrow_book({"reader_no": "R1", "book_id": add_book()})
        clock.advance(days=33)

        response = await tools.return_book({"loan_no": borrowed["data"]["loan_no"]})

        assert response["data"]["overdue_days"] == 3
        assert response["data"]["fine_amount"] == "1.50"
        assert "fine of 1.50" in response["content"][0]["text"]

        summary = await tools.get_reader_summary({"reader_no": "R1"})
        assert summary["data"]["credit_status"] == CreditStatus.IN_DEBT.value
        assert summary["data"]["arrears_amount"] == "1.50"

    async def test_return_twice(self, tools, add_book, add_reader):
        add_reader("R1")
        borrowed = await tools.borrow_book({"reader_no": "R1", "book_id": add_book()})
        arguments = {"loan_no": borrowed["data"]["loan_no"]}
        await tools.return_book(arguments)

        assert error_code(await tools.return_book(arguments)) == "LOAN_ALREADY_RETURNED"

    async def test_renew(self, tools, add_book, add_reader):
        add_reader("R1")
        borrowed = await tools.borrow_book({"reader_no": "R1", "book_id": add_book()})
        arguments = {"loan_no": borrowed["data"]["loan_no"]}

        renewed = await tools.renew_loan(arguments)
        assert renewed["data"]["renewal_count"] == 1
        assert renewed["data"]["new_due_date"] == "2024-04-30T10:00:00"

        assert error_code(await tools.renew_loan(arguments)) == "RENEWAL_LIMIT_EXCEEDED"

    async def test_borrow_retry_with_loan_no(self, tools, add_book, add_reader):
        book_id = add_book()
        add_reader("R1")
        arguments = {"reader_no": "R1", "book_id": book_id, "loan_no": "B-CLIENT-9"}

        first = await tools.borrow_book(arguments)
        again = await tools.borrow_book(arguments)

        assert first["data"] == again["data"]


class TestReservationTools:
    """Test the reservation tools."""

    async def _lent_out(self, tools, add_book, add_reader):
        book_id = add_book()
        add_reader("HOLDER")
        borrowed = await tools.borrow_book({"reader_no": "HOLDER", "book_id": book_id})
        return book_id, borrowed["data"]["loan_no"]

    async def test_reserve_and_fulfill(self, tools, add_book, add_reader, get_book):
        book_id, loan_no = await self._lent_out(tools, add_book, add_reader)
        add_reader("R1")

        reserved = await tools.create_reservation({"reader_no": "R1", "book_id": book_id})
        assert reserved["data"]["status"] == "pending"
        assert get_book(book_id).lifecycle_status == BookStatus.RESERVED

        await tools.return_book({"loan_no": loan_no})
        fulfilled = await tools.fulfill_reservation(
            {"reservation_no": reserved["data"]["reservation_no"], "operator_id": "staff-1"}
        )
        assert fulfilled["data"]["reservation_no"] == reserved["data"]["reservation_no"]

        loans = await tools.get_reader_loans({"reader_no": "R1", "status": "OPEN"})
        assert loans["data"]["total"] == 1
        assert loans["data"]["items"][0]["loan_no"] == fulfilled["data"]["loan_no"]

    async def test_reserve_available_book(self, tools, add_book, add_reader):
        add_reader("R1")
        response = await tools.create_reservation({"reader_no": "R1", "book_id": add_book()})
        assert error_code(response) == "DIRECT_LOAN_AVAILABLE"

    async def test_cancel(self, tools, add_book, add_reader):
        book_id, _ = await self._lent_out(tools, add_book, add_reader)
        add_reader("R1")
        add_reader("R2")
        reserved = await tools.create_reservation({"reader_no": "R1", "book_id": book_id})
        reservation_no = reserved["data"]["reservation_no"]

        stranger = await tools.cancel_reservation(
            {"reservation_no": reservation_no, "reader_no": "R2"}
        )
        assert error_code(stranger) == "RESERVATION_NOT_FOUND"

        cancelled = await tools.cancel_reservation(
            {"reservation_no": reservation_no, "reader_no": "R1"}
        )
        assert cancelled["data"]["status"] == "cancelled"

        again = await tools.cancel_reservation(
            {"reservation_no": reservation_no, "operator_id": "staff-1"}
        )
        assert error_code(again) == "INVALID_STATE"

    async def test_reader_reservations(self, tools, add_book, add_reader):
        book_id, _ = await self._lent_out(tools, add_book, add_reader)
        add_reader("R1")
        await tools.create_reservation({"reader_no": "R1", "book_id": book_id})

        response = await tools.get_reader_reservations({"reader_no": "R1", "status": "pending"})

        assert response["data"]["total"] == 1
        assert response["data"]["items"][0]["book_id"] == book_id

    async def test_invalid_status_filter(self, tools, add_reader):
        add_reader("R1")
        response = await tools.get_reader_reservations({"reader_no": "R1", "status": "lost"})
        assert error_code(response) == "INVALID_ARGUMENTS"


class TestQueryAndCreditTools:
    """Test listings and credit tools."""

    async def test_list_overdue(self, tools, add_book, add_reader, clock):
        add_reader("R1")
        borrowed = await tools.borrow_book({"reader_no": "R1", "book_id": add_book()})
        clock.advance(days=32)

        response = await tools.list_overdue_loans()

        assert response["data"]["total"] == 1
        assert response["data"]["items"][0]["loan_no"] == borrowed["data"]["loan_no"]
        assert response["data"]["items"][0]["overdue_days"] == 2

    async def test_search_loans(self, tools, add_book, add_reader, clock):
        add_reader("R100")
        add_reader("R200")
        first = await tools.borrow_book({"reader_no": "R100", "book_id": add_book()})
        clock.advance(days=1)
        await tools.borrow_book({"reader_no": "R200", "book_id": add_book()})

        response = await tools.search_loans({"reader_no": "R1", "status": "OPEN"})

        assert response["data"]["total"] == 1
        assert response["data"]["items"][0]["loan_no"] == first["data"]["loan_no"]

        everything = await tools.search_loans()
        assert everything["data"]["total"] == 2

    @pytest.mark.parametrize(
        "arguments",
        [
            {"borrowed_from": "2024-03-02T00:00:00", "borrowed_to": "2024-03-01T00:00:00"},
            {"book_id": 0},
            {"status": "lost"},
            {"page_size": 500},
            {"title": "Dune"},
        ],
    )
    async def test_search_loans_invalid_arguments(self, tools, arguments):
        response = await tools.search_loans(arguments)
        assert error_code(response) == "INVALID_ARGUMENTS"

    async def test_search_reservations(self, tools, add_book, add_reader):
        book_id = add_book()
        add_reader("HOLDER")
        add_reader("R1")
        await tools.borrow_book({"reader_no": "HOLDER", "book_id": book_id})
        reserved = await tools.create_reservation({"reader_no": "R1", "book_id": book_id})

        response = await tools.search_reservations({"book_id": book_id, "status": "pending"})

        assert response["data"]["total"] == 1
        assert (
            response["data"]["items"][0]["reservation_no"]
            == reserved["data"]["reservation_no"]
        )
        inverted = await tools.search_reservations(
            {"reserved_from": "2024-03-02T00:00:00", "reserved_to": "2024-03-01T00:00:00"}
        )
        assert error_code(inverted) == "INVALID_ARGUMENTS"

    async def test_unknown_reader(self, tools):
        response = await tools.get_reader_summary({"reader_no": "nobody"})
        assert error_code(response) == "READER_NOT_FOUND"

    async def test_pay_and_adjust(self, tools, add_reader):
        add_reader("R1", credit_status=CreditStatus.IN_DEBT, arrears_amount="3.00")

        refused = await tools.adjust_credit_status(
            {"reader_no": "R1", "credit_status": "good", "operator_id": "staff-1"}
        )
        assert error_code(refused) == "INVALID_STATE"

        overpaid = await tools.pay_arrears({"reader_no": "R1", "amount": "5.00"})
        assert error_code(overpaid) == "PAYMENT_EXCEEDS_ARREARS"

        paid = await tools.pay_arrears({"reader_no": "R1", "amount": "3.00"})
        assert paid["data"]["arrears_amount"] == "0.00"
        assert paid["data"]["credit_status"] == "good"

        suspended = await tools.adjust_credit_status(
            {"reader_no": "R1", "credit_status": "suspended"}
        )
        assert suspended["data"]["credit_status"] == "suspended"

    async def test_unexpected_error_is_reported_without_detail(
        self, tools, services, monkeypatch
    ):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(services.lending, "get_reader_summary", explode)

        response = await tools.get_reader_summary({"reader_no": "R1"})

        assert error_code(response) == "INTERNAL_ERROR"
        assert response["error"]["retryable"] is True
        assert "disk on fire" not in response["error"]["message"]


class TestServer:
    """Test server construction."""

    def test_definitions_cover_every_operation(self, tools):
        names = {tool["name"] for tool in tools.definitions()}
        assert names == {
            "borrow_book",
            "return_book",
            "renew_loan",
            "create_reservation",
            "cancel_reservation",
            "fulfill_reservation",
            "get_reader_loans",
            "get_reader_reservations",
            "list_overdue_loans",
            "search_loans",
            "search_reservations",
            "get_reader_summary",
            "adjust_credit_status",
            "pay_arrears",
        }
        for tool in tools.definitions():
            assert tool["inputSchema"]["type"] == "object"
            assert tool["description"]

    def test_create_server(self, services):
        server = create_server(services)
        assert isinstance(server, FastMCP)
        assert server.name == "test-library-lending"


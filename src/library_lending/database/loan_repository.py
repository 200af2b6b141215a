"""
Loan record repository for the library lending service.

The Loan Record Store: rows are added on borrow and updated on renew and
return, never deleted. Besides lookups it answers the counting questions
the engine asks while it holds its locks:

- how many loans a reader has open (loan limit)
- how many loans a book has out (availability invariant)
- which loans are past due (overdue listing, computed on read)
"""

from datetime import datetime

from sqlalchemy import and_, desc, func, or_, select

from ..database.schema import LoanRecord as LoanDB
from ..database.session import safe_query
from ..models.circulation import LoanRecord as LoanModel
from ..models.operations import LoanSearchParams
from ..models.status import LoanStatus
from .repository import BaseRepository, PaginatedResponse, PaginationParams


class LoanRepository(BaseRepository[LoanDB, LoanModel]):
    """Repository for loan records."""

    @property
    def model_class(self):
        return LoanDB

    @property
    def response_schema(self):
        return LoanModel

    def count_open_for_reader(self, reader_no: str) -> int:
        return self._count(
            select(LoanDB.loan_no).where(
                and_(LoanDB.reader_no == reader_no, LoanDB.status == LoanStatus.OPEN)
            )
        )

    def count_open_for_book(self, book_id: int) -> int:
        return self._count(
            select(LoanDB.loan_no).where(
                and_(LoanDB.book_id == book_id, LoanDB.status == LoanStatus.OPEN)
            )
        )

    def list_for_reader(
        self,
        reader_no: str,
        status: LoanStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """
        Page through a reader's loans, newest first.

        Args:
            reader_no: Reader whose loans to list
            status: Only loans in this status, if given
            pagination: Page and page size

        Returns:
            Paginated loan records
        """
        query = select(LoanDB).where(LoanDB.reader_no == reader_no)
        if status is not None:
            query = query.where(LoanDB.status == status)
        query = query.order_by(desc(LoanDB.borrow_date), desc(LoanDB.loan_no))
        return self._paginate_query(query, pagination)

    def search(
        self, params: LoanSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """
        Page through every loan matching ``params``, newest first.

        Args:
            params: Search filters; unset fields do not filter
            pagination: Page and page size

        Returns:
            Paginated loan records
        """
        filters = []
        if params.loan_no:
            filters.append(LoanDB.loan_no.contains(params.loan_no, autoescape=True))
        if params.reader_no:
            filters.append(LoanDB.reader_no.contains(params.reader_no, autoescape=True))
        if params.book_id is not None:
            filters.append(LoanDB.book_id == params.book_id)
        if params.status is not None:
            filters.append(LoanDB.status == params.status)
        if params.borrowed_from is not None:
            filters.append(LoanDB.borrow_date >= params.borrowed_from)
        if params.borrowed_to is not None:
            filters.append(LoanDB.borrow_date <= params.borrowed_to)

        query = select(LoanDB)
        if filters:
            query = query.where(and_(*filters))
        query = query.order_by(desc(LoanDB.borrow_date), desc(LoanDB.loan_no))
        return self._paginate_query(query, pagination)

    def list_overdue(
        self, now: datetime, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """
        Page through open loans past their due date, oldest due first.

        ``overdue_days`` on each item is computed against ``now``; nothing
        is written.
        """
        query = (
            select(LoanDB)
            .where(and_(LoanDB.status == LoanStatus.OPEN, LoanDB.due_date < now))
            .order_by(LoanDB.due_date, LoanDB.loan_no)
        )
        page = self._paginate_query(query, pagination)
        page.items = [
            item.model_copy(update={"overdue_days": item.overdue_days_as_of(now)})
            for item in page.items
        ]
        return page

    def reader_stats(self, reader_no: str, now: datetime) -> dict[str, int]:
        """Total, open and overdue loan counts for one reader."""
        is_open = LoanDB.status == LoanStatus.OPEN
        is_overdue = or_(LoanDB.overdue_days > 0, and_(is_open, LoanDB.due_date < now))
        query = select(
            func.count(LoanDB.loan_no),
            func.count(LoanDB.loan_no).filter(is_open),
            func.count(LoanDB.loan_no).filter(is_overdue),
        ).where(LoanDB.reader_no == reader_no)
        total, open_loans, overdue = safe_query(
            self.session,
            lambda s: s.execute(query).one(),
            f"Failed to get loan stats for reader {reader_no}",
        )
        return {"total_loans": total, "open_loans": open_loans, "overdue_loans": overdue}

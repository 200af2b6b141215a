"""
Reservation repository for the library lending service.

Lookups and counts for the Reservation Manager. The partial unique index on
``(reader_no, book_id) WHERE status = 'PENDING'`` backs the one-pending-
reservation-per-pair rule; ``find_pending`` lets the manager report a
duplicate before the index has to.
"""

from sqlalchemy import and_, desc, func, select

from ..database.schema import Reservation as ReservationDB
from ..database.session import safe_query
from ..models.circulation import Reservation as ReservationModel
from ..models.operations import ReservationSearchParams
from ..models.status import ReservationStatus
from .repository import BaseRepository, PaginatedResponse, PaginationParams


class ReservationRepository(BaseRepository[ReservationDB, ReservationModel]):
    """Repository for reservations."""

    @property
    def model_class(self):
        return ReservationDB

    @property
    def response_schema(self):
        return ReservationModel

    def find_pending(self, reader_no: str, book_id: int) -> ReservationDB | None:
        query = select(ReservationDB).where(
            and_(
                ReservationDB.reader_no == reader_no,
                ReservationDB.book_id == book_id,
                ReservationDB.status == ReservationStatus.PENDING,
            )
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to find pending reservation for {reader_no}/{book_id}",
        )

    def count_pending_for_reader(self, reader_no: str) -> int:
        return self._count(
            select(ReservationDB.reservation_no).where(
                and_(
                    ReservationDB.reader_no == reader_no,
                    ReservationDB.status == ReservationStatus.PENDING,
                )
            )
        )

    def count_pending_for_book(self, book_id: int) -> int:
        return self._count(
            select(ReservationDB.reservation_no).where(
                and_(
                    ReservationDB.book_id == book_id,
                    ReservationDB.status == ReservationStatus.PENDING,
                )
            )
        )

    def list_for_reader(
        self,
        reader_no: str,
        status: ReservationStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[ReservationModel]:
        """Page through a reader's reservations, newest first."""
        query = select(ReservationDB).where(ReservationDB.reader_no == reader_no)
        if status is not None:
            query = query.where(ReservationDB.status == status)
        query = query.order_by(
            desc(ReservationDB.reservation_date), desc(ReservationDB.reservation_no)
        )
        return self._paginate_query(query, pagination)

    def search(
        self, params: ReservationSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[ReservationModel]:
        """Page through every reservation matching ``params``, newest first."""
        filters = []
        if params.reservation_no:
            filters.append(
                ReservationDB.reservation_no.contains(params.reservation_no, autoescape=True)
            )
        if params.reader_no:
            filters.append(ReservationDB.reader_no.contains(params.reader_no, autoescape=True))
        if params.book_id is not None:
            filters.append(ReservationDB.book_id == params.book_id)
        if params.status is not None:
            filters.append(ReservationDB.status == params.status)
        if params.reserved_from is not None:
            filters.append(ReservationDB.reservation_date >= params.reserved_from)
        if params.reserved_to is not None:
            filters.append(ReservationDB.reservation_date <= params.reserved_to)

        query = select(ReservationDB)
        if filters:
            query = query.where(and_(*filters))
        query = query.order_by(
            desc(ReservationDB.reservation_date), desc(ReservationDB.reservation_no)
        )
        return self._paginate_query(query, pagination)

    def reader_stats(self, reader_no: str) -> dict[str, int]:
        query = select(
            func.count(ReservationDB.reservation_no),
            func.count(ReservationDB.reservation_no).filter(
                ReservationDB.status == ReservationStatus.PENDING
            ),
        ).where(ReservationDB.reader_no == reader_no)
        total, pending = safe_query(
            self.session,
            lambda s: s.execute(query).one(),
            f"Failed to get reservation stats for reader {reader_no}",
        )
        return {"total_reservations": total, "pending_reservations": pending}

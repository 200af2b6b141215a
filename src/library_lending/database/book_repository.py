"""
Book repository for the library lending service.

Data access for the Catalog Store:

1. **Locked reads**: the lending engine loads the book row it is about to
   mutate with ``for_update=True``
2. **Availability**: copy counts are changed through the ORM so the row's
   version column is bumped and checked on every write
3. **Catalog intake**: ``create`` exists for seeding and tests; catalog
   management proper lives outside this service
"""

from pydantic import BaseModel, Field
from sqlalchemy import select

from ..database.schema import Book as BookDB
from ..database.session import safe_query
from ..models.book import Book as BookModel
from ..models.status import BookStatus
from .repository import BaseRepository


class BookCreateSchema(BaseModel):
    """Schema for adding a title to the catalog."""

    isbn: str = Field(..., pattern=r"^\d{13}$")
    title: str = Field(..., min_length=1, max_length=500)
    total_copies: int = Field(default=1, ge=0)
    lifecycle_status: BookStatus = BookStatus.ACTIVE


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Repository for catalog titles."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def create(self, data: BookCreateSchema) -> BookDB:
        """Add a title with every copy on the shelf."""
        book = BookDB(
            isbn=data.isbn,
            title=data.title,
            total_copies=data.total_copies,
            available_copies=data.total_copies,
            borrow_count=0,
            lifecycle_status=data.lifecycle_status,
        )
        return self.add(book)

    def get_by_isbn(self, isbn: str) -> BookDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(select(BookDB).where(BookDB.isbn == isbn)).scalar_one_or_none(),
            f"Failed to get book by ISBN {isbn}",
        )

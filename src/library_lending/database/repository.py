"""
Repository pattern base for the library lending service.

Repositories hold the SQL; the lending engine holds the rules. Every
repository works on a session it is handed, so several repositories can
take part in one transaction opened by the engine's unit of work. No
repository commits: the unit of work decides.

All statements are built with SQLAlchemy expressions and bound parameters.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from ..database.schema import Base
from ..database.session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """
    Standard paginated response for list operations.

    ``items``/``total`` are the ``{list, total}`` pair callers render;
    the remaining fields save clients the arithmetic.
    """

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing lookups and pagination.

    Subclasses name their SQLAlchemy model, their pydantic response
    schema and their primary key column.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def get(self, key, *, for_update: bool = False) -> ModelType | None:
        """
        Get a row by primary key.

        Args:
            key: Primary key value
            for_update: Take a row lock (SELECT ... FOR UPDATE) where supported

        Returns:
            The ORM row or None
        """
        pk = self.model_class.__mapper__.primary_key[0]
        query = select(self.model_class).where(pk == key)
        if for_update:
            query = query.with_for_update()
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} {key}",
        )

    def get_model(self, key) -> ResponseSchemaType | None:
        """Get a row by primary key as a response model."""
        db_obj = self.get(key)
        return None if db_obj is None else self._to_response_model(db_obj)

    def add(self, db_obj: ModelType) -> ModelType:
        """Stage a new row and flush so constraints are checked immediately."""
        self.session.add(db_obj)
        safe_query(self.session, lambda s: s.flush(), f"Failed to add {type(db_obj).__name__}")
        return db_obj

    def _count(self, query: Select) -> int:
        count_query = select(func.count()).select_from(query.subquery())
        return (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count rows",
            )
            or 0
        )

    def _paginate_query(
        self, query: Select, pagination: PaginationParams | None
    ) -> PaginatedResponse[ResponseSchemaType]:
        """Helper method to paginate a query."""
        if not pagination:
            pagination = PaginationParams()

        total = self._count(query)

        query = query.offset(pagination.offset).limit(pagination.page_size)
        results = safe_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to get paginated results",
        )

        items = [self._to_response_model(item) for item in results]

        return PaginatedResponse(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=(total + pagination.page_size - 1) // pagination.page_size,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )

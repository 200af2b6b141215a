"""
Book model for the library lending service.

A read-only view of a catalog title as the lending engine sees it: how many
copies exist, how many are on the shelf, and whether the title is open for
direct loans. Catalog management itself happens elsewhere.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .status import BookStatus


class Book(BaseModel):
    """
    Represents a catalog title and its circulating copies.

    Invariant: ``0 <= available_copies <= total_copies``.
    """

    id: int = Field(..., description="Catalog identifier", ge=1)

    isbn: str = Field(
        ...,
        description="13-digit ISBN",
        pattern=r"^\d{13}$",
        examples=["9780134685479"],
    )

    title: str = Field(..., description="Title of the book", min_length=1, max_length=500)

    total_copies: int = Field(..., description="Copies owned by the library", ge=0)

    available_copies: int = Field(..., description="Copies on the shelf", ge=0)

    borrow_count: int = Field(default=0, description="Loans ever made of this title", ge=0)

    lifecycle_status: BookStatus = Field(
        default=BookStatus.ACTIVE,
        description="Active titles lend directly; reserved titles go through reservations",
    )

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_direct_loanable(self) -> bool:
        """True if a reader can borrow this title without a reservation."""
        return self.lifecycle_status == BookStatus.ACTIVE and self.available_copies > 0

    model_config = ConfigDict(from_attributes=True)

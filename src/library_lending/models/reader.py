"""
Reader account model for the library lending service.

The credit ledger view of a reader: standing and outstanding arrears.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .status import CreditStatus, is_borrow_eligible


class ReaderAccount(BaseModel):
    """
    Represents a reader's credit standing.

    A reader with arrears is never in good standing; the model refuses to
    represent that state.
    """

    reader_no: str = Field(
        ...,
        description="Reader number",
        min_length=1,
        max_length=50,
        examples=["R2024001"],
    )

    name: str = Field(..., description="Reader's name", max_length=200)

    credit_status: CreditStatus = Field(
        default=CreditStatus.GOOD,
        description="Credit standing",
    )

    arrears_amount: Decimal = Field(
        default=Decimal("0.00"),
        description="Outstanding fines",
        ge=0,
        decimal_places=2,
    )

    @model_validator(mode="after")
    def validate_standing(self) -> "ReaderAccount":
        if self.arrears_amount > 0 and self.credit_status == CreditStatus.GOOD:
            raise ValueError("A reader with arrears cannot be in good standing")
        return self

    @property
    def can_borrow(self) -> bool:
        """Eligible to borrow: not suspended and nothing owed."""
        return is_borrow_eligible(self.credit_status) and self.arrears_amount == 0

    model_config = ConfigDict(from_attributes=True)

"""
Reader account repository for the library lending service.

Backs the Credit Ledger. Arrears and credit status are only ever changed
by the ledger inside a lending unit of work; this module only loads and
creates rows.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from ..database.schema import ReaderAccount as ReaderDB
from ..models.reader import ReaderAccount as ReaderModel
from ..models.status import CreditStatus
from .repository import BaseRepository


class ReaderCreateSchema(BaseModel):
    """Schema for registering a reader account."""

    reader_no: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    credit_status: CreditStatus = CreditStatus.GOOD
    arrears_amount: Decimal = Field(default=Decimal("0.00"), ge=0)


class ReaderRepository(BaseRepository[ReaderDB, ReaderModel]):
    """Repository for reader accounts."""

    @property
    def model_class(self):
        return ReaderDB

    @property
    def response_schema(self):
        return ReaderModel

    def create(self, data: ReaderCreateSchema) -> ReaderDB:
        # Validates the arrears/standing rule before the CHECK constraint does
        ReaderModel(
            reader_no=data.reader_no,
            name=data.name,
            credit_status=data.credit_status,
            arrears_amount=data.arrears_amount,
        )
        reader = ReaderDB(
            reader_no=data.reader_no,
            name=data.name,
            credit_status=data.credit_status,
            arrears_amount=data.arrears_amount,
        )
        return self.add(reader)

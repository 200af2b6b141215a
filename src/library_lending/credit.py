"""
Credit Ledger: reader standing and arrears.

Arrears only grow through ``apply_fine``, which the lending engine calls in
the same unit of work as the return that incurred the fine. Staff actions
(``adjust_status``, ``pay_arrears``) run in their own unit of work under
the reader's lock.

Standing rules:
- a reader with arrears is never GOOD
- a fine always leaves the reader IN_DEBT, even a suspended one
- payments never lift a suspension; that is a staff decision
- borrowing requires a non-suspended reader with zero arrears
"""

import logging
from decimal import Decimal

from .database.schema import ReaderAccount as ReaderDB
from .errors import InvalidState, PaymentExceedsArrears, ReaderIneligible, ReaderNotFound
from .locking import reader_key
from .models.circulation import CENTS
from .models.operations import CreditResult
from .models.status import CreditStatus, is_borrow_eligible
from .observability import track_operation
from .unit_of_work import OperationContext, UnitOfWork

logger = logging.getLogger(__name__)


class CreditLedger:
    """Reads and mutates reader accounts."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    # === Helpers used inside another operation's unit of work ===

    def load_account(self, ctx: OperationContext, reader_no: str) -> ReaderDB:
        reader = ctx.readers.get(reader_no, for_update=True)
        if reader is None:
            raise ReaderNotFound(f"Reader {reader_no} not found", reader_no=reader_no)
        return reader

    def ensure_can_borrow(self, reader: ReaderDB) -> None:
        """
        Raise ReaderIneligible unless the reader may take out a loan.

        Arrears disqualify regardless of the status label.
        """
        if not is_borrow_eligible(reader.credit_status):
            raise ReaderIneligible(
                f"Reader {reader.reader_no} is {reader.credit_status.value}",
                reader_no=reader.reader_no,
            )
        if reader.arrears_amount > 0:
            raise ReaderIneligible(
                f"Reader {reader.reader_no} has outstanding arrears of {reader.arrears_amount}",
                reader_no=reader.reader_no,
            )

    def apply_fine(self, ctx: OperationContext, reader_no: str, amount: Decimal) -> ReaderDB:
        """
        Add a fine to a reader's arrears within ``ctx``'s transaction.

        A positive fine sets the reader IN_DEBT whatever their standing;
        a suspension is lifted along with it.
        """
        if amount < 0:
            raise ValueError("Fine amount cannot be negative")

        reader = self.load_account(ctx, reader_no)
        if amount == 0:
            return reader

        reader.arrears_amount = (Decimal(reader.arrears_amount) + amount).quantize(CENTS)
        reader.credit_status = CreditStatus.IN_DEBT
        ctx.verify_reader(reader)
        logger.info(
            "Fine of %s applied to reader %s, arrears now %s",
            amount,
            reader_no,
            reader.arrears_amount,
        )
        return reader

    # === Ledger operations ===

    def get_status(self, reader_no: str) -> CreditResult:
        with self.uow.read() as ctx:
            reader = ctx.readers.get(reader_no)
            if reader is None:
                raise ReaderNotFound(f"Reader {reader_no} not found", reader_no=reader_no)
            return CreditResult.model_validate(reader)

    def adjust_status(
        self, reader_no: str, credit_status: CreditStatus, operator_id: str | None = None
    ) -> CreditResult:
        """
        Staff override of a reader's standing.

        Raises:
            ReaderNotFound: Unknown reader
            InvalidState: GOOD requested while arrears are outstanding
        """
        with track_operation(
            "adjust_status",
            reader_no=reader_no,
            credit_status=credit_status.value,
            operator_id=operator_id,
        ):
            with self.uow.begin(reader_key(reader_no)) as ctx:
                reader = self.load_account(ctx, reader_no)
                if credit_status == CreditStatus.GOOD and reader.arrears_amount > 0:
                    raise InvalidState(
                        f"Reader {reader_no} has outstanding arrears of {reader.arrears_amount}; "
                        "clear them before restoring good standing",
                        reader_no=reader_no,
                    )
                reader.credit_status = credit_status
                ctx.verify_reader(reader)
                return CreditResult.model_validate(reader)

    def pay_arrears(
        self, reader_no: str, amount: Decimal, operator_id: str | None = None
    ) -> CreditResult:
        """
        Record a payment against a reader's arrears.

        Clearing the balance returns an IN_DEBT reader to GOOD; a suspended
        reader stays suspended.

        Raises:
            ReaderNotFound: Unknown reader
            InvalidState: Non-positive amount
            PaymentExceedsArrears: Amount larger than the balance
        """
        amount = Decimal(amount).quantize(CENTS)
        with track_operation(
            "pay_arrears",
            reader_no=reader_no,
            amount=str(amount),
            operator_id=operator_id,
        ):
            with self.uow.begin(reader_key(reader_no)) as ctx:
                if amount <= 0:
                    raise InvalidState("Payment amount must be positive", reader_no=reader_no)

                reader = self.load_account(ctx, reader_no)
                arrears = Decimal(reader.arrears_amount)
                if amount > arrears:
                    raise PaymentExceedsArrears(
                        f"Payment of {amount} exceeds outstanding arrears of {arrears}",
                        reader_no=reader_no,
                    )

                reader.arrears_amount = (arrears - amount).quantize(CENTS)
                if reader.arrears_amount == 0 and reader.credit_status == CreditStatus.IN_DEBT:
                    reader.credit_status = CreditStatus.GOOD
                ctx.verify_reader(reader)
                return CreditResult.model_validate(reader)

"""
Loan Lifecycle Controller

Owns loan status transitions:
    active -> closed       every installment paid (automatic)
    closed -> active       a payment was reset
    active -> foreclosed   foreclosure, or settle & close
Foreclosed is terminal.
"""

from datetime import date
from typing import Optional

from .audit import AuditTrail, AuditEventType
from .currency import Money
from .exceptions import ValidationError, LoanStateError, ConsistencyError
from .installments import InstallmentLedger, InstallmentStatus
from .loans import Loan, LoanManager, LoanStatus
from .logging_config import get_logger, log_action
from .storage import StorageInterface

FORECLOSURE_NOTE = "Loan foreclosed - closed as paid"
SETTLEMENT_NOTE = "Settle & close - settlement amount"


class LoanLifecycleController:
    """
    Drives loan status from the state of its installments
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        installments: InstallmentLedger,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.installments = installments
        self.audit_trail = audit_trail
        self.logger = get_logger("ledger.lifecycle")

    def _require_active(self, loan: Loan, operation: str) -> None:
        if loan.status != LoanStatus.ACTIVE:
            raise LoanStateError(
                f"Cannot {operation} loan {loan.id}: loan is {loan.status.value}"
            )

    def check_and_close(self, loan_id: str) -> bool:
        """
        Close an active loan once every installment is paid

        Returns:
            True if the loan was closed by this call
        """
        loan = self.loan_manager.require_loan(loan_id)
        installments = self.installments.list_for_loan(loan_id)
        if not installments:
            raise ConsistencyError(f"Loan {loan_id} has no installments")

        if loan.status != LoanStatus.ACTIVE:
            return False
        if any(i.status != InstallmentStatus.PAID for i in installments):
            return False

        loan.status = LoanStatus.CLOSED
        loan.touch()
        with self.storage.atomic():
            self.loan_manager.save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CLOSED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"installments": len(installments)},
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Loan #{loan.loan_number} closed, all installments paid",
            user_id=loan.user_id, action="close_loan", borrower_id=loan.borrower_id, loan_id=loan.id
        )
        return True

    def reopen_if_closed(self, loan_id: str) -> bool:
        """
        Move a closed loan back to active. Foreclosed loans stay foreclosed.

        Returns:
            True if the loan was reopened by this call
        """
        loan = self.loan_manager.require_loan(loan_id)
        if loan.status != LoanStatus.CLOSED:
            return False

        loan.status = LoanStatus.ACTIVE
        loan.touch()
        with self.storage.atomic():
            self.loan_manager.save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_REOPENED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={},
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Loan #{loan.loan_number} reopened",
            user_id=loan.user_id, action="reopen_loan", borrower_id=loan.borrower_id, loan_id=loan.id
        )
        return True

    def foreclose_loan(
        self,
        loan_id: str,
        foreclosure_date: date,
        settlement_amount: Optional[Money] = None
    ) -> Loan:
        """
        Foreclose a loan, writing off every outstanding installment as paid

        Outstanding installments get amount_paid = amount_due and
        paid_date = foreclosure_date. Already paid installments are untouched.
        The settlement amount is stored on the loan only; it is not spread
        over installments.

        Args:
            loan_id: Loan to foreclose
            foreclosure_date: Date the relationship ends
            settlement_amount: Cash actually recovered, if recorded

        Returns:
            The foreclosed loan
        """
        if foreclosure_date is None:
            raise ValidationError("Foreclosure date is required")
        if settlement_amount is not None and settlement_amount.is_negative():
            raise ValidationError("Settlement amount cannot be negative")

        loan = self.loan_manager.require_loan(loan_id)
        self._require_active(loan, "foreclose")
        if settlement_amount is not None and settlement_amount.currency != loan.currency:
            raise ValidationError(
                f"Settlement currency {settlement_amount.currency.code} does not match loan"
            )

        written_off = 0
        with self.storage.atomic():
            for installment in self.installments.outstanding_for_loan(loan.id):
                installment.apply_amount(installment.amount_due, foreclosure_date, FORECLOSURE_NOTE)
                self.installments.save(installment)
                written_off += 1

            loan.status = LoanStatus.FORECLOSED
            loan.foreclosure_date = foreclosure_date
            loan.foreclosure_settlement_amount = settlement_amount
            loan.touch()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_FORECLOSED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "foreclosure_date": foreclosure_date,
                    "settlement_amount": settlement_amount.amount if settlement_amount else None,
                    "installments_written_off": written_off
                },
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Loan #{loan.loan_number} foreclosed",
            user_id=loan.user_id, action="foreclose_loan", borrower_id=loan.borrower_id, loan_id=loan.id,
            extra={"installments_written_off": written_off}
        )
        return loan

    def settle_and_close_loan(
        self,
        loan_id: str,
        settlement_amount: Money,
        settlement_date: date
    ) -> Loan:
        """
        Close a loan early on a negotiated settlement

        The oldest outstanding installment receives the settlement amount and
        is marked paid; every other outstanding installment becomes
        foreclosed with its amount_paid left as it was.
        """
        if settlement_amount is None or settlement_amount.is_negative():
            raise ValidationError("Settlement amount cannot be negative")
        if settlement_date is None:
            raise ValidationError("Settlement date is required")

        loan = self.loan_manager.require_loan(loan_id)
        self._require_active(loan, "settle")
        if settlement_amount.currency != loan.currency:
            raise ValidationError(
                f"Settlement currency {settlement_amount.currency.code} does not match loan"
            )

        outstanding = self.installments.outstanding_for_loan(loan.id)

        with self.storage.atomic():
            if outstanding:
                first, rest = outstanding[0], outstanding[1:]
                first.amount_paid = settlement_amount
                first.paid_date = settlement_date
                first.notes = SETTLEMENT_NOTE
                first.status = InstallmentStatus.PAID
                first.touch()
                self.installments.save(first)

                for installment in rest:
                    installment.status = InstallmentStatus.FORECLOSED
                    installment.touch()
                    self.installments.save(installment)

            loan.status = LoanStatus.FORECLOSED
            loan.foreclosure_date = settlement_date
            loan.foreclosure_settlement_amount = settlement_amount
            loan.touch()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_SETTLED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "settlement_amount": settlement_amount.amount,
                    "settlement_date": settlement_date,
                    "settled_week": outstanding[0].week_number if outstanding else None,
                    "installments_foreclosed": max(len(outstanding) - 1, 0)
                },
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Loan #{loan.loan_number} settled and closed",
            user_id=loan.user_id, action="settle_loan", borrower_id=loan.borrower_id, loan_id=loan.id,
            extra={"settlement_amount": settlement_amount.to_string()}
        )
        return loan

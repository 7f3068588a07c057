"""
Payment Allocation Engine

Applies money received to installments. Three modes:

- single installment: the recorded amount replaces whatever was there
- FIFO: a lump sum from a borrower is spread over the oldest unpaid
  installments of all their active loans
- reset: clears a recorded payment

Plus a bulk backfill that records every past-due week as paid on its due date.
"""

from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .config import LendingSettings
from .currency import Money, money_min
from .exceptions import ValidationError, LoanStateError, ConsistencyError
from .installments import Installment, InstallmentLedger, InstallmentStatus
from .lifecycle import LoanLifecycleController
from .loans import Loan, LoanManager, LoanStatus
from .logging_config import get_logger, log_action
from .storage import StorageInterface

BACKFILL_NOTE = "Mass backfill - actual due date"


def fifo_key(loan: Loan, installment: Installment):
    """Oldest obligation first; ties by week, then loan"""
    return (installment.due_date, installment.week_number, loan.loan_number, loan.id)


@dataclass
class Allocation:
    """Amount applied to one installment by a FIFO payment"""
    installment_id: str
    loan_id: str
    week_number: int
    amount_applied: Money
    resulting_status: InstallmentStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installment_id": self.installment_id,
            "loan_id": self.loan_id,
            "week_number": self.week_number,
            "amount_applied": str(self.amount_applied.amount),
            "resulting_status": self.resulting_status.value,
        }


@dataclass
class AllocationResult:
    """Outcome of a FIFO payment"""
    borrower_id: str
    amount: Money
    paid_date: date
    allocations: List[Allocation] = field(default_factory=list)
    overpayment: Optional[Money] = None
    closed_loans: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.overpayment is None:
            self.overpayment = Money.zero(self.amount.currency)

    @property
    def amount_applied(self) -> Money:
        return self.amount - self.overpayment

    def to_dict(self) -> Dict[str, Any]:
        return {
            "borrower_id": self.borrower_id,
            "amount": str(self.amount.amount),
            "paid_date": self.paid_date.isoformat(),
            "allocations": [a.to_dict() for a in self.allocations],
            "amount_applied": str(self.amount_applied.amount),
            "overpayment": str(self.overpayment.amount),
            "closed_loans": list(self.closed_loans),
        }


@dataclass
class UnpaidInstallment:
    """Outstanding installment tagged with its loan"""
    installment: Installment
    loan_number: int
    loan_principal: Money
    loan_weekly_amount: Money


class PaymentAllocationEngine:
    """
    Records collections against installment schedules
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        installments: InstallmentLedger,
        lifecycle: LoanLifecycleController,
        audit_trail: AuditTrail,
        settings: Optional[LendingSettings] = None
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.installments = installments
        self.lifecycle = lifecycle
        self.audit_trail = audit_trail
        self.settings = settings or LendingSettings()
        self.logger = get_logger("ledger.payments")

    def _loan_for(self, installment: Installment) -> Loan:
        loan = self.loan_manager.get_loan(installment.loan_id)
        if loan is None:
            raise ConsistencyError(
                f"Installment {installment.id} references missing loan {installment.loan_id}"
            )
        return loan

    def _check_amount(self, amount: Money) -> None:
        if amount is None:
            raise ValidationError("Amount is required")
        if amount.currency != self.settings.currency:
            raise ValidationError(
                f"Amount currency {amount.currency.code} does not match "
                f"ledger currency {self.settings.currency.code}"
            )

    def record_single_installment(
        self,
        installment_id: str,
        amount: Money,
        paid_date: Optional[date],
        notes: Optional[str] = None
    ) -> Installment:
        """
        Record the amount collected for one installment

        The amount replaces the previous amount_paid, so recording the same
        value twice leaves the installment unchanged. Overpayment is kept as is.
        A zero amount clears the paid date.

        Args:
            installment_id: Installment to record against
            amount: Total collected for this installment (>= 0)
            paid_date: Collection date, required when amount > 0
            notes: Free-text note stored on the installment

        Returns:
            The updated installment
        """
        self._check_amount(amount)
        if amount.is_negative():
            raise ValidationError("Payment amount cannot be negative")
        if amount.is_positive() and paid_date is None:
            raise ValidationError("Paid date is required when an amount is recorded")

        installment = self.installments.require(installment_id)
        loan = self._loan_for(installment)
        if loan.status != LoanStatus.ACTIVE:
            raise LoanStateError(
                f"Cannot record payment on a {loan.status.value} loan"
            )

        previous = installment.amount_paid
        with self.storage.atomic():
            installment.apply_amount(
                amount,
                paid_date if amount.is_positive() else None,
                notes or None
            )
            self.installments.save(installment)
            self.audit_trail.log_event(
                event_type=AuditEventType.INSTALLMENT_RECORDED,
                entity_type="installment",
                entity_id=installment.id,
                metadata={
                    "loan_id": loan.id,
                    "week_number": installment.week_number,
                    "previous_amount_paid": previous.amount,
                    "amount_paid": amount.amount,
                    "paid_date": installment.paid_date,
                    "status": installment.status
                },
                user_id=loan.user_id
            )
            self.lifecycle.check_and_close(loan.id)

        log_action(
            self.logger, "info", f"Week {installment.week_number} recorded",
            user_id=loan.user_id, action="record_installment",
            loan_id=loan.id, installment_id=installment.id,
            extra={"amount_paid": amount.to_string(), "status": installment.status.value}
        )
        return installment

    def reset_installment(self, installment_id: str) -> Installment:
        """
        Clear a recorded payment; the installment goes back to pending

        A closed loan is reopened. A foreclosed loan stays foreclosed.
        """
        installment = self.installments.require(installment_id)
        loan = self._loan_for(installment)

        previous = installment.amount_paid
        with self.storage.atomic():
            installment.clear_payment()
            self.installments.save(installment)
            self.audit_trail.log_event(
                event_type=AuditEventType.INSTALLMENT_RESET,
                entity_type="installment",
                entity_id=installment.id,
                metadata={
                    "loan_id": loan.id,
                    "week_number": installment.week_number,
                    "previous_amount_paid": previous.amount
                },
                user_id=loan.user_id
            )
            self.lifecycle.reopen_if_closed(loan.id)

        log_action(
            self.logger, "info", f"Week {installment.week_number} reset",
            user_id=loan.user_id, action="reset_installment",
            loan_id=loan.id, installment_id=installment.id
        )
        return installment

    def allocate_fifo(
        self,
        borrower_id: str,
        amount: Money,
        paid_date: date,
        notes: Optional[str] = None
    ) -> AllocationResult:
        """
        Spread a lump-sum payment over the borrower's oldest unpaid installments

        Installments of all active loans are taken in (due date, week number)
        order. Each receives min(remaining, amount still owed). Whatever is
        left once nothing is owed is reported as overpayment; it is not
        applied to principal.

        Args:
            borrower_id: Borrower paying
            amount: Cash received (> 0)
            paid_date: Collection date written on every touched installment
            notes: Note written on every touched installment

        Returns:
            AllocationResult with per-installment allocations and overpayment
        """
        self._check_amount(amount)
        if not amount.is_positive():
            raise ValidationError("Payment amount must be positive")
        if paid_date is None:
            raise ValidationError("Paid date is required")

        borrower = self.loan_manager.borrower_manager.require_borrower(borrower_id)
        result = AllocationResult(borrower_id=borrower.id, amount=amount, paid_date=paid_date)

        outstanding = self._outstanding_for_borrower(borrower.id)
        if not outstanding:
            raise LoanStateError(f"Borrower {borrower.id} has no unpaid installments on active loans")

        with self.storage.atomic():
            remaining = amount
            touched: List[str] = []

            for tagged in outstanding:
                if not remaining.is_positive():
                    break
                installment = tagged.installment

                to_apply = money_min(remaining, installment.balance)
                installment.apply_amount(installment.amount_paid + to_apply, paid_date, notes or None)
                self.installments.save(installment)

                result.allocations.append(Allocation(
                    installment_id=installment.id,
                    loan_id=installment.loan_id,
                    week_number=installment.week_number,
                    amount_applied=to_apply,
                    resulting_status=installment.status,
                ))
                if installment.loan_id not in touched:
                    touched.append(installment.loan_id)
                remaining = remaining - to_apply

            result.overpayment = remaining

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_ALLOCATED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={
                    "amount": amount.amount,
                    "paid_date": paid_date,
                    "allocations": [a.to_dict() for a in result.allocations],
                    "overpayment": remaining.amount
                },
                user_id=borrower.user_id
            )

            for loan_id in touched:
                if self.lifecycle.check_and_close(loan_id):
                    result.closed_loans.append(loan_id)

        log_action(
            self.logger, "info", f"FIFO payment allocated over {len(result.allocations)} installments",
            user_id=borrower.user_id, action="allocate_fifo", borrower_id=borrower.id,
            extra={"amount": amount.to_string(), "closed_loans": result.closed_loans}
        )
        if result.overpayment.is_positive():
            log_action(
                self.logger, "warning", "Payment exceeds amount owed, overpayment not applied",
                user_id=borrower.user_id, action="allocate_fifo", borrower_id=borrower.id,
                extra={"overpayment": result.overpayment.to_string()}
            )
        return result

    def record_past_due_as_paid(self, loan_id: str, as_of: date) -> List[Installment]:
        """
        Record every unpaid installment due before as_of as paid in full on
        its own due date

        Returns:
            The installments that were recorded
        """
        if not self.settings.allow_mass_record_past:
            raise ValidationError("Recording past payments in bulk is disabled")
        if as_of is None:
            raise ValidationError("As-of date is required")

        loan = self.loan_manager.require_loan(loan_id)
        if loan.status != LoanStatus.ACTIVE:
            raise LoanStateError(f"Cannot backfill a {loan.status.value} loan")

        past_due = [
            i for i in self.installments.outstanding_for_loan(loan.id)
            if i.is_overdue(as_of, inclusive=False)
        ]

        recorded: List[Installment] = []
        with self.storage.atomic():
            for installment in past_due:
                recorded.append(self.record_single_installment(
                    installment.id, installment.amount_due, installment.due_date, BACKFILL_NOTE
                ))
            self.audit_trail.log_event(
                event_type=AuditEventType.PAST_PAYMENTS_BACKFILLED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"as_of": as_of, "recorded": len(recorded)},
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Backfilled {len(recorded)} past-due installments",
            user_id=loan.user_id, action="record_past_due", borrower_id=loan.borrower_id, loan_id=loan.id
        )
        return recorded

    def _outstanding_for_borrower(self, borrower_id: str) -> List[UnpaidInstallment]:
        loans = self.loan_manager.get_borrower_loans(borrower_id, status=LoanStatus.ACTIVE)
        by_id = {loan.id: loan for loan in loans}

        tagged = [
            UnpaidInstallment(
                installment=installment,
                loan_number=by_id[installment.loan_id].loan_number,
                loan_principal=by_id[installment.loan_id].principal_amount,
                loan_weekly_amount=by_id[installment.loan_id].weekly_amount,
            )
            for installment in self.installments.list_for_loans(by_id)
            if installment.is_outstanding
        ]
        tagged.sort(key=lambda t: fifo_key(by_id[t.installment.loan_id], t.installment))
        return tagged

    def get_unpaid_installments_for_borrower(self, borrower_id: str) -> List[UnpaidInstallment]:
        """Outstanding installments across the borrower's active loans, in FIFO order"""
        self.loan_manager.borrower_manager.require_borrower(borrower_id)
        return self._outstanding_for_borrower(borrower_id)

    def get_unpaid_installments_for_loan(self, loan_id: str) -> List[UnpaidInstallment]:
        """Outstanding installments of one loan by week number"""
        loan = self.loan_manager.require_loan(loan_id)
        return [
            UnpaidInstallment(
                installment=installment,
                loan_number=loan.loan_number,
                loan_principal=loan.principal_amount,
                loan_weekly_amount=loan.weekly_amount,
            )
            for installment in self.installments.outstanding_for_loan(loan.id)
        ]

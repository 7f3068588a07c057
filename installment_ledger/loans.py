"""
Loan Module

Handles loan creation with its weekly installment schedule, loan edits
(principal and first payment date), lookups and per-loan summaries.
Interest is flat: weekly amount = principal x weekly rate, fixed for the term.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .config import LendingSettings
from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .borrowers import BorrowerManager
from .exceptions import ValidationError, LoanStateError, EntityNotFoundError
from .installments import Installment, InstallmentLedger, InstallmentStatus, derive_status
from .logging_config import get_logger, log_action
from .schedule import LoanTerms, generate_schedule, due_dates_from


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"            # collecting weekly installments
    CLOSED = "closed"            # every installment paid
    FORECLOSED = "foreclosed"    # ended early by foreclosure or settlement


@dataclass
class Loan(StorageRecord):
    """Flat-interest weekly loan"""
    user_id: str                        # field agent who owns the book
    borrower_id: str
    loan_number: int                    # 1, 2, 3... per borrower
    principal_amount: Money
    weekly_rate: Decimal
    weekly_amount: Money
    number_of_weeks: int
    total_amount: Money
    start_date: date
    first_payment_date: date
    collection_day: int = 0
    status: LoanStatus = LoanStatus.ACTIVE
    foreclosure_date: Optional[date] = None
    foreclosure_settlement_amount: Optional[Money] = None

    @property
    def currency(self) -> Currency:
        return self.principal_amount.currency

    @property
    def interest_amount(self) -> Money:
        """Flat interest over the term"""
        return self.total_amount - self.principal_amount

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def terms(self) -> LoanTerms:
        """Loan terms as currently stored"""
        return LoanTerms(
            principal_amount=self.principal_amount,
            weekly_rate=self.weekly_rate,
            number_of_weeks=self.number_of_weeks,
            start_date=self.start_date,
            collection_day=self.collection_day,
            first_payment_date=self.first_payment_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'user_id': self.user_id,
            'borrower_id': self.borrower_id,
            'loan_number': self.loan_number,
            'currency': self.currency.code,
            'principal_amount': str(self.principal_amount.amount),
            'weekly_rate': str(self.weekly_rate),
            'weekly_amount': str(self.weekly_amount.amount),
            'number_of_weeks': self.number_of_weeks,
            'total_amount': str(self.total_amount.amount),
            'start_date': self.start_date.isoformat(),
            'first_payment_date': self.first_payment_date.isoformat(),
            'collection_day': self.collection_day,
            'status': self.status.value,
            'foreclosure_date': self.foreclosure_date.isoformat() if self.foreclosure_date else None,
            'foreclosure_settlement_amount': (
                str(self.foreclosure_settlement_amount.amount)
                if self.foreclosure_settlement_amount is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        currency = Currency[data['currency']]

        def get_money(field: str) -> Optional[Money]:
            if data.get(field) is None:
                return None
            return Money(Decimal(data[field]), currency)

        def get_date(field: str) -> Optional[date]:
            if data.get(field):
                return date.fromisoformat(data[field])
            return None

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            borrower_id=data['borrower_id'],
            loan_number=data['loan_number'],
            principal_amount=get_money('principal_amount'),
            weekly_rate=Decimal(data['weekly_rate']),
            weekly_amount=get_money('weekly_amount'),
            number_of_weeks=data['number_of_weeks'],
            total_amount=get_money('total_amount'),
            start_date=get_date('start_date'),
            first_payment_date=get_date('first_payment_date'),
            collection_day=data.get('collection_day', 0),
            status=LoanStatus(data['status']),
            foreclosure_date=get_date('foreclosure_date'),
            foreclosure_settlement_amount=get_money('foreclosure_settlement_amount'),
        )


@dataclass
class LoanSummary:
    """Repayment position of a single loan"""
    loan_id: str
    status: LoanStatus
    principal_amount: Money
    total_amount: Money
    weekly_amount: Money
    number_of_weeks: int
    total_paid: Money
    balance: Money
    progress: Decimal           # percent of total collected, capped at 100
    interest_amount: Money
    weeks_paid: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "status": self.status.value,
            "principal_amount": str(self.principal_amount.amount),
            "total_amount": str(self.total_amount.amount),
            "weekly_amount": str(self.weekly_amount.amount),
            "number_of_weeks": self.number_of_weeks,
            "total_paid": str(self.total_paid.amount),
            "balance": str(self.balance.amount),
            "progress": str(self.progress),
            "interest_amount": str(self.interest_amount.amount),
            "weeks_paid": self.weeks_paid,
        }


class LoanManager:
    """
    Manages loan records and their installment schedules
    """

    def __init__(
        self,
        storage: StorageInterface,
        installments: InstallmentLedger,
        borrower_manager: BorrowerManager,
        audit_trail: AuditTrail,
        settings: Optional[LendingSettings] = None
    ):
        self.storage = storage
        self.installments = installments
        self.borrower_manager = borrower_manager
        self.audit_trail = audit_trail
        self.settings = settings or LendingSettings()
        # wired by LedgerSystem; re-evaluates closure after amount edits
        self.lifecycle = None

        self.loans_table = "loans"
        self.logger = get_logger("ledger.loans")

    def create_loan(
        self,
        borrower_id: str,
        principal_amount: Money,
        start_date: date,
        number_of_weeks: Optional[int] = None,
        collection_day: Optional[int] = None,
        first_payment_date: Optional[date] = None,
        weekly_rate: Optional[Decimal] = None
    ) -> Loan:
        """
        Create a loan and its weekly installment schedule in one atomic step

        Args:
            borrower_id: Borrower taking the loan
            principal_amount: Amount disbursed
            start_date: Disbursement date
            number_of_weeks: Term, defaults to settings.default_weeks
            collection_day: Weekday 0=Sunday..6=Saturday, defaults to settings
            first_payment_date: Week 1 due date, defaults to the next collection day
            weekly_rate: Flat weekly rate, defaults to settings.weekly_rate

        Returns:
            Created Loan object
        """
        borrower = self.borrower_manager.require_borrower(borrower_id)
        if principal_amount is not None and principal_amount.currency != self.settings.currency:
            raise ValidationError(
                f"Loan currency {principal_amount.currency.code} does not match "
                f"ledger currency {self.settings.currency.code}"
            )

        terms = LoanTerms.from_settings(
            principal_amount=principal_amount,
            start_date=start_date,
            settings=self.settings,
            number_of_weeks=number_of_weeks,
            collection_day=collection_day,
            first_payment_date=first_payment_date,
            weekly_rate=weekly_rate,
        )

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=borrower.user_id,
            borrower_id=borrower.id,
            loan_number=len(self.storage.find(self.loans_table, {"borrower_id": borrower.id})) + 1,
            principal_amount=terms.principal_amount,
            weekly_rate=terms.weekly_rate,
            weekly_amount=terms.weekly_amount,
            number_of_weeks=terms.number_of_weeks,
            total_amount=terms.total_amount,
            start_date=terms.start_date,
            first_payment_date=terms.resolve_first_payment_date(),
            collection_day=terms.collection_day,
        )

        with self.storage.atomic():
            self.save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "borrower_id": borrower.id,
                    "loan_number": loan.loan_number,
                    "principal_amount": loan.principal_amount.amount,
                    "weekly_rate": loan.weekly_rate,
                    "weekly_amount": loan.weekly_amount.amount,
                    "number_of_weeks": loan.number_of_weeks,
                    "first_payment_date": loan.first_payment_date
                },
                user_id=loan.user_id
            )
            self.ensure_schedule(loan.id)

        log_action(
            self.logger, "info", f"Loan #{loan.loan_number} created",
            user_id=loan.user_id, action="create_loan", borrower_id=loan.borrower_id, loan_id=loan.id,
            extra={
                "borrower_id": borrower.id,
                "principal_amount": loan.principal_amount.to_string(),
                "total_amount": loan.total_amount.to_string(),
                "number_of_weeks": loan.number_of_weeks
            }
        )
        return loan

    def ensure_schedule(self, loan_id: str) -> List[Installment]:
        """
        Return the loan's installments, generating the schedule if it has none
        """
        loan = self.require_loan(loan_id)
        existing = self.installments.list_for_loan(loan_id)
        if existing:
            return existing

        schedule = generate_schedule(loan.terms(), loan.id)
        with self.storage.atomic():
            self.installments.save_many(schedule)
            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULE_GENERATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "installments": len(schedule),
                    "first_due_date": schedule[0].due_date,
                    "last_due_date": schedule[-1].due_date
                },
                user_id=loan.user_id
            )

        log_action(
            self.logger, "info", f"Generated {len(schedule)} installments",
            user_id=loan.user_id, action="generate_schedule", borrower_id=loan.borrower_id, loan_id=loan.id
        )
        return schedule

    def update_loan_details(
        self,
        loan_id: str,
        principal_amount: Optional[Money] = None,
        start_date: Optional[date] = None,
        first_payment_date: Optional[date] = None
    ) -> Loan:
        """
        Edit principal, start date and/or first payment date

        A new principal recomputes weekly and total amounts with the loan's own
        weekly rate and updates amount_due on unpaid installments only. A new
        first payment date re-walks every installment's due date.
        """
        loan = self.require_loan(loan_id)
        if principal_amount is None and start_date is None and first_payment_date is None:
            return loan

        changes: Dict[str, Any] = {}

        if principal_amount is not None:
            if not loan.is_active:
                raise LoanStateError(f"Cannot change principal of a {loan.status.value} loan")
            terms = LoanTerms(
                principal_amount=principal_amount,
                weekly_rate=loan.weekly_rate,
                number_of_weeks=loan.number_of_weeks,
                start_date=loan.start_date,
                collection_day=loan.collection_day,
                first_payment_date=loan.first_payment_date,
            )
            loan.principal_amount = terms.principal_amount
            loan.weekly_amount = terms.weekly_amount
            loan.total_amount = terms.total_amount
            changes["principal_amount"] = loan.principal_amount.amount
            changes["weekly_amount"] = loan.weekly_amount.amount

        if start_date is not None:
            loan.start_date = start_date
            changes["start_date"] = start_date

        if first_payment_date is not None:
            loan.first_payment_date = first_payment_date
            changes["first_payment_date"] = first_payment_date

        loan.touch()

        with self.storage.atomic():
            self.save_loan(loan)
            installments = self.installments.list_for_loan(loan.id)

            if "weekly_amount" in changes:
                for installment in installments:
                    if installment.is_outstanding:
                        installment.amount_due = loan.weekly_amount
                        installment.status = derive_status(installment.amount_paid, installment.amount_due)
                        installment.touch()
                        self.installments.save(installment)

            if first_payment_date is not None:
                dates = due_dates_from(first_payment_date, len(installments))
                for installment in installments:
                    installment.due_date = dates[installment.week_number - 1]
                    installment.touch()
                    self.installments.save(installment)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_UPDATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata=changes,
                user_id=loan.user_id
            )

            if "weekly_amount" in changes and self.lifecycle is not None:
                self.lifecycle.check_and_close(loan.id)

        log_action(
            self.logger, "info", "Loan details updated",
            user_id=loan.user_id, action="update_loan", borrower_id=loan.borrower_id, loan_id=loan.id,
            extra={k: str(v) for k, v in changes.items()}
        )
        return self.require_loan(loan.id)

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.loans_table, loan_id)
        if loan_dict:
            return Loan.from_dict(loan_dict)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return loan

    def get_borrower_loans(self, borrower_id: str, status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans of a borrower ordered by loan number"""
        filters: Dict[str, Any] = {"borrower_id": borrower_id}
        if status is not None:
            filters["status"] = status.value
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: loan.loan_number)
        return loans

    def get_user_loans(self, user_id: str) -> List[Loan]:
        """All loans in a field agent's book, newest first"""
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, {"user_id": user_id})]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_installments(self, loan_id: str) -> List[Installment]:
        self.require_loan(loan_id)
        return self.installments.list_for_loan(loan_id)

    def get_loan_summary(self, loan_id: str) -> LoanSummary:
        """Total paid, balance and progress of one loan"""
        loan = self.require_loan(loan_id)
        installments = self.installments.list_for_loan(loan_id)

        total_paid = Money.zero(loan.currency)
        for installment in installments:
            total_paid = total_paid + installment.amount_paid

        balance = loan.total_amount - total_paid
        if balance.is_negative():
            balance = Money.zero(loan.currency)

        progress = Decimal('0')
        if loan.total_amount.is_positive():
            progress = min(
                total_paid.amount / loan.total_amount.amount * Decimal('100'),
                Decimal('100')
            ).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

        return LoanSummary(
            loan_id=loan.id,
            status=loan.status,
            principal_amount=loan.principal_amount,
            total_amount=loan.total_amount,
            weekly_amount=loan.weekly_amount,
            number_of_weeks=loan.number_of_weeks,
            total_paid=total_paid,
            balance=balance,
            progress=progress,
            interest_amount=loan.interest_amount,
            weeks_paid=sum(1 for i in installments if i.status == InstallmentStatus.PAID),
        )

    def save_loan(self, loan: Loan) -> None:
        """Save loan to storage"""
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

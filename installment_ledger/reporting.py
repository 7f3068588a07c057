"""
Aggregation Engine Module

Read-only views over loans and installments for a field agent's book:
due-in-range, overdue-as-of and collected-in-range installment lists,
interest earned, and the portfolio summary behind the analytics screen.
Reads are best-effort snapshots; nothing here writes.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Any

from .borrowers import BorrowerManager
from .currency import Money, Currency, money_sum
from .exceptions import ValidationError
from .installments import Installment, InstallmentLedger
from .loans import Loan, LoanManager, LoanStatus


@dataclass
class InstallmentView:
    """Installment flattened with its loan and borrower for listing"""
    installment: Installment
    loan_number: int
    loan_status: LoanStatus
    borrower_id: str
    borrower_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        i = self.installment
        return {
            "id": i.id,
            "loan_id": i.loan_id,
            "week_number": i.week_number,
            "due_date": i.due_date.isoformat(),
            "amount_due": str(i.amount_due.amount),
            "amount_paid": str(i.amount_paid.amount),
            "balance": str(i.balance.amount),
            "paid_date": i.paid_date.isoformat() if i.paid_date else None,
            "status": i.status.value,
            "notes": i.notes,
            "loan_number": self.loan_number,
            "loan_status": self.loan_status.value,
            "borrower_id": self.borrower_id,
            "borrower_name": self.borrower_name,
        }


@dataclass
class InterestEarned:
    """Interest earned to date, split by loan status"""
    closed: Money
    active: Money
    foreclosed: Money

    @property
    def total(self) -> Money:
        return self.closed + self.active + self.foreclosed

    def to_dict(self) -> Dict[str, str]:
        return {
            "closed": str(self.closed.amount),
            "active": str(self.active.amount),
            "foreclosed": str(self.foreclosed.amount),
            "total": str(self.total.amount),
        }


@dataclass
class PortfolioSummary:
    """Headline figures for one field agent's book"""
    currency: Currency
    as_of: date
    total_principal_disbursed: Money
    active_principal: Money
    total_expected: Money           # full repayable on active loans
    total_collected: Money          # collected on active loans
    total_collected_all: Money      # collected on every loan
    outstanding: Money
    collection_rate: Decimal        # percent, collected / expected on active loans
    overdue_amount: Money
    overdue_loan_count: int
    interest_earned: InterestEarned
    potential_interest: Money       # interest on active loans if fully repaid
    average_loan_size: Money
    loan_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency.code,
            "as_of": self.as_of.isoformat(),
            "total_principal_disbursed": str(self.total_principal_disbursed.amount),
            "active_principal": str(self.active_principal.amount),
            "total_expected": str(self.total_expected.amount),
            "total_collected": str(self.total_collected.amount),
            "total_collected_all": str(self.total_collected_all.amount),
            "outstanding": str(self.outstanding.amount),
            "collection_rate": str(self.collection_rate),
            "overdue_amount": str(self.overdue_amount.amount),
            "overdue_loan_count": self.overdue_loan_count,
            "interest_earned": self.interest_earned.to_dict(),
            "potential_interest": str(self.potential_interest.amount),
            "average_loan_size": str(self.average_loan_size.amount),
            "loan_counts": dict(self.loan_counts),
        }


def interest_earned_for_loan(loan: Loan, total_paid: Money) -> Money:
    """
    Interest realised on one loan

    A closed loan has earned its full flat interest. For active and
    foreclosed loans each unit collected is split pro rata between principal
    and interest, so only the interest share counts.
    """
    zero = Money.zero(loan.currency)
    if loan.status == LoanStatus.CLOSED:
        return loan.total_amount - loan.principal_amount
    if not loan.total_amount.is_positive():
        return zero

    principal_portion = loan.principal_amount.amount * total_paid.amount / loan.total_amount.amount
    interest = Money(total_paid.amount - principal_portion, loan.currency)
    if interest.is_negative():
        return zero
    return interest


def _check_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise ValidationError("Both start and end dates are required")
    if start > end:
        raise ValidationError("Start date must not be after end date")


class AggregationEngine:
    """
    Derived aggregates over a field agent's loans
    """

    def __init__(
        self,
        loan_manager: LoanManager,
        installments: InstallmentLedger,
        borrower_manager: BorrowerManager,
        currency: Currency = Currency.INR
    ):
        self.loan_manager = loan_manager
        self.installments = installments
        self.borrower_manager = borrower_manager
        self.currency = currency

    def _views(self, loans: List[Loan], predicate) -> List[InstallmentView]:
        by_id = {loan.id: loan for loan in loans}
        names: Dict[str, Optional[str]] = {}
        views = []
        for installment in self.installments.list_for_loans(by_id):
            if not predicate(installment):
                continue
            loan = by_id[installment.loan_id]
            if loan.borrower_id not in names:
                borrower = self.borrower_manager.get_borrower(loan.borrower_id)
                names[loan.borrower_id] = borrower.name if borrower else None
            views.append(InstallmentView(
                installment=installment,
                loan_number=loan.loan_number,
                loan_status=loan.status,
                borrower_id=loan.borrower_id,
                borrower_name=names[loan.borrower_id],
            ))
        return views

    def query_due_in_range(
        self,
        user_id: str,
        start: date,
        end: date,
        include_inactive: bool = False
    ) -> List[InstallmentView]:
        """
        Installments due between start and end inclusive, any status

        Only active loans are included unless include_inactive is set.
        """
        _check_range(start, end)
        loans = self.loan_manager.get_user_loans(user_id)
        if not include_inactive:
            loans = [loan for loan in loans if loan.status == LoanStatus.ACTIVE]

        views = self._views(loans, lambda i: start <= i.due_date <= end)
        views.sort(key=lambda v: (v.installment.due_date, v.loan_number, v.installment.week_number))
        return views

    def query_overdue_as_of(self, user_id: str, as_of: date) -> List[InstallmentView]:
        """
        Unpaid installments due on or before as_of, across loans that are not
        foreclosed
        """
        if as_of is None:
            raise ValidationError("As-of date is required")
        loans = [
            loan for loan in self.loan_manager.get_user_loans(user_id)
            if loan.status != LoanStatus.FORECLOSED
        ]

        views = self._views(loans, lambda i: i.is_overdue(as_of))
        views.sort(key=lambda v: (v.installment.due_date, v.loan_number, v.installment.week_number))
        return views

    def query_collected_in_range(self, user_id: str, start: date, end: date) -> List[InstallmentView]:
        """
        Installments with a paid date between start and end inclusive

        Selection is by paid date only, so a week due long ago but paid in the
        range is included. Loans of every status are considered.
        """
        _check_range(start, end)
        loans = self.loan_manager.get_user_loans(user_id)

        views = self._views(
            loans, lambda i: i.paid_date is not None and start <= i.paid_date <= end
        )
        views.sort(key=lambda v: (v.installment.paid_date, v.loan_number, v.installment.week_number))
        return views

    def _paid_totals(self, loans: Iterable[Loan]) -> Dict[str, Money]:
        loans = list(loans)
        totals = {loan.id: Money.zero(loan.currency) for loan in loans}
        for installment in self.installments.list_for_loans(totals):
            totals[installment.loan_id] = totals[installment.loan_id] + installment.amount_paid
        return totals

    def compute_interest_earned(
        self,
        loans: Iterable[Loan],
        paid_totals: Optional[Dict[str, Money]] = None
    ) -> InterestEarned:
        """
        Interest earned across a set of loans, split by status

        Args:
            loans: Loans to aggregate
            paid_totals: Amount collected per loan id; read from the ledger if omitted
        """
        loans = list(loans)
        if paid_totals is None:
            paid_totals = self._paid_totals(loans)

        buckets = {status: Money.zero(self.currency) for status in LoanStatus}
        for loan in loans:
            paid = paid_totals.get(loan.id, Money.zero(loan.currency))
            buckets[loan.status] = buckets[loan.status] + interest_earned_for_loan(loan, paid)

        return InterestEarned(
            closed=buckets[LoanStatus.CLOSED],
            active=buckets[LoanStatus.ACTIVE],
            foreclosed=buckets[LoanStatus.FORECLOSED],
        )

    def get_portfolio_summary(self, user_id: str, as_of: date) -> PortfolioSummary:
        """
        Portfolio figures for one field agent as of a date
        """
        loans = self.loan_manager.get_user_loans(user_id)
        active = [loan for loan in loans if loan.status == LoanStatus.ACTIVE]
        paid_totals = self._paid_totals(loans)
        zero = Money.zero(self.currency)

        total_principal = money_sum((loan.principal_amount for loan in loans), self.currency)
        active_principal = money_sum((loan.principal_amount for loan in active), self.currency)
        total_expected = money_sum((loan.total_amount for loan in active), self.currency)
        total_collected = money_sum((paid_totals[loan.id] for loan in active), self.currency)
        total_collected_all = money_sum(paid_totals.values(), self.currency)

        collection_rate = Decimal('0')
        if total_expected.is_positive():
            collection_rate = (
                total_collected.amount / total_expected.amount * Decimal('100')
            ).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

        overdue = self.query_overdue_as_of(user_id, as_of)
        overdue_amount = money_sum((v.installment.balance for v in overdue), self.currency)

        average_loan_size = zero
        if loans:
            average_loan_size = Money(total_principal.amount / len(loans), self.currency)

        return PortfolioSummary(
            currency=self.currency,
            as_of=as_of,
            total_principal_disbursed=total_principal,
            active_principal=active_principal,
            total_expected=total_expected,
            total_collected=total_collected,
            total_collected_all=total_collected_all,
            outstanding=total_expected - total_collected,
            collection_rate=collection_rate,
            overdue_amount=overdue_amount,
            overdue_loan_count=len({v.installment.loan_id for v in overdue}),
            interest_earned=self.compute_interest_earned(loans, paid_totals),
            potential_interest=money_sum((loan.interest_amount for loan in active), self.currency),
            average_loan_size=average_loan_size,
            loan_counts={status.value: sum(1 for l in loans if l.status == status) for status in LoanStatus},
        )

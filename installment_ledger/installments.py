"""
Installment Ledger Store

Persists the weekly installment records of every loan. Owns installment
identity ("{loan_id}_{week_number}") and the status rules that tie status to
the amount paid. "Overdue" is never stored; it is derived from the due date.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .exceptions import EntityNotFoundError


class InstallmentStatus(Enum):
    """Stored installment states"""
    PENDING = "pending"          # nothing paid yet
    PARTIAL = "partial"          # something paid, less than due
    PAID = "paid"                # paid in full (or more)
    FORECLOSED = "foreclosed"    # written off by settle & close


OUTSTANDING_STATUSES = frozenset({InstallmentStatus.PENDING, InstallmentStatus.PARTIAL})


def installment_id_for(loan_id: str, week_number: int) -> str:
    return f"{loan_id}_{week_number}"


def derive_status(amount_paid: Money, amount_due: Money) -> InstallmentStatus:
    """Status implied by the amounts: paid, partial or pending"""
    if amount_paid >= amount_due:
        return InstallmentStatus.PAID
    if amount_paid.is_positive():
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING


@dataclass
class Installment(StorageRecord):
    """One scheduled weekly obligation on a loan"""
    loan_id: str
    week_number: int
    due_date: date
    amount_due: Money
    amount_paid: Money = None
    paid_date: Optional[date] = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    notes: Optional[str] = None

    def __post_init__(self):
        if self.amount_paid is None:
            self.amount_paid = Money.zero(self.amount_due.currency)

    @property
    def currency(self) -> Currency:
        return self.amount_due.currency

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES

    @property
    def balance(self) -> Money:
        """Amount still owed, never negative"""
        owed = self.amount_due - self.amount_paid
        if owed.is_negative():
            return Money.zero(self.currency)
        return owed

    def is_overdue(self, as_of: date, inclusive: bool = True) -> bool:
        """
        Unpaid and due by as_of

        With inclusive=False a week due on as_of itself is not yet overdue.
        """
        if not self.is_outstanding:
            return False
        if inclusive:
            return self.due_date <= as_of
        return self.due_date < as_of

    def apply_amount(self, amount_paid: Money, paid_date: Optional[date],
                     notes: Optional[str]) -> None:
        """Overwrite the recorded payment and re-derive status"""
        self.amount_paid = amount_paid
        self.paid_date = paid_date
        self.notes = notes
        self.status = derive_status(amount_paid, self.amount_due)
        self.touch()

    def clear_payment(self) -> None:
        self.amount_paid = Money.zero(self.currency)
        self.paid_date = None
        self.notes = None
        self.status = InstallmentStatus.PENDING
        self.touch()

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'loan_id': self.loan_id,
            'week_number': self.week_number,
            'due_date': self.due_date.isoformat(),
            'amount_due': str(self.amount_due.amount),
            'amount_paid': str(self.amount_paid.amount),
            'currency': self.currency.code,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
            'status': self.status.value,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Installment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            week_number=data['week_number'],
            due_date=date.fromisoformat(data['due_date']),
            amount_due=Money(Decimal(data['amount_due']), currency),
            amount_paid=Money(Decimal(data['amount_paid']), currency),
            paid_date=date.fromisoformat(data['paid_date']) if data.get('paid_date') else None,
            status=InstallmentStatus(data['status']),
            notes=data.get('notes'),
        )


class InstallmentLedger:
    """
    Storage-backed collection of installments, keyed by loan
    """

    def __init__(self, storage: StorageInterface, table_name: str = "installments"):
        self.storage = storage
        self.table_name = table_name

    def save(self, installment: Installment) -> None:
        self.storage.save(self.table_name, installment.id, installment.to_dict())

    def save_many(self, installments: Iterable[Installment]) -> None:
        with self.storage.atomic():
            for installment in installments:
                self.save(installment)

    def get(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.table_name, installment_id)
        if data:
            return Installment.from_dict(data)
        return None

    def require(self, installment_id: str) -> Installment:
        installment = self.get(installment_id)
        if not installment:
            raise EntityNotFoundError(f"Installment {installment_id} not found")
        return installment

    def list_for_loan(self, loan_id: str) -> List[Installment]:
        """All installments of a loan ordered by week number"""
        rows = self.storage.find(self.table_name, {"loan_id": loan_id})
        installments = [Installment.from_dict(row) for row in rows]
        installments.sort(key=lambda i: i.week_number)
        return installments

    def list_for_loans(self, loan_ids: Iterable[str]) -> List[Installment]:
        """All installments belonging to any of the given loans"""
        wanted = set(loan_ids)
        if not wanted:
            return []
        rows = self.storage.load_all(self.table_name)
        return [Installment.from_dict(row) for row in rows if row.get('loan_id') in wanted]

    def outstanding_for_loan(self, loan_id: str) -> List[Installment]:
        return [i for i in self.list_for_loan(loan_id) if i.is_outstanding]

    def count_for_loan(self, loan_id: str) -> int:
        return len(self.storage.find(self.table_name, {"loan_id": loan_id}))

    def total_paid(self, loan_id: str, currency: Currency) -> Money:
        total = Money.zero(currency)
        for installment in self.list_for_loan(loan_id):
            total = total + installment.amount_paid
        return total

"""
Test suite for the installment ledger store

Tests status derivation, the overdue predicate and storage round trips.
"""

from decimal import Decimal
from datetime import datetime, timezone, date

import pytest

from installment_ledger.currency import Money, Currency
from installment_ledger.exceptions import EntityNotFoundError
from installment_ledger.installments import (
    Installment, InstallmentLedger, InstallmentStatus, derive_status, installment_id_for
)
from installment_ledger.storage import InMemoryStorage


def inr(value) -> Money:
    return Money(Decimal(str(value)), Currency.INR)


def make_installment(loan_id="L1", week=1, due=date(2024, 1, 7), amount_due=500) -> Installment:
    now = datetime.now(timezone.utc)
    return Installment(
        id=installment_id_for(loan_id, week),
        created_at=now,
        updated_at=now,
        loan_id=loan_id,
        week_number=week,
        due_date=due,
        amount_due=inr(amount_due),
    )


class TestStatusDerivation:
    """Status follows the amounts"""

    @pytest.mark.parametrize("paid,expected", [
        (0, InstallmentStatus.PENDING),
        (Decimal('0.01'), InstallmentStatus.PARTIAL),
        (200, InstallmentStatus.PARTIAL),
        (Decimal('499.99'), InstallmentStatus.PARTIAL),
        (500, InstallmentStatus.PAID),
        (700, InstallmentStatus.PAID),
    ])
    def test_derive_status(self, paid, expected):
        """Test status derived from amount paid"""
        assert derive_status(inr(paid), inr(500)) == expected


class TestInstallment:
    """Test Installment behaviour"""

    def test_defaults(self):
        """Test a new installment is pending and unpaid"""
        installment = make_installment()
        assert installment.amount_paid == inr(0)
        assert installment.status == InstallmentStatus.PENDING
        assert installment.balance == inr(500)
        assert installment.is_outstanding

    def test_apply_amount_keeps_overpayment(self):
        """Test applying more than due keeps the excess"""
        installment = make_installment()
        installment.apply_amount(inr(700), date(2024, 1, 7), "extra")

        assert installment.amount_paid == inr(700)
        assert installment.status == InstallmentStatus.PAID
        assert installment.balance == inr(0)
        assert installment.notes == "extra"

    def test_clear_payment(self):
        """Test clearing a payment returns the week to pending"""
        installment = make_installment()
        installment.apply_amount(inr(200), date(2024, 1, 7), "partial")
        installment.clear_payment()

        assert installment.amount_paid == inr(0)
        assert installment.paid_date is None
        assert installment.notes is None
        assert installment.status == InstallmentStatus.PENDING

    def test_is_overdue(self):
        """Overdue counts the due date itself unless asked to be strict"""
        installment = make_installment(due=date(2024, 1, 7))

        assert not installment.is_overdue(date(2024, 1, 6))
        assert installment.is_overdue(date(2024, 1, 7))
        assert not installment.is_overdue(date(2024, 1, 7), inclusive=False)
        assert installment.is_overdue(date(2024, 1, 8), inclusive=False)

        installment.apply_amount(inr(500), date(2024, 1, 9), None)
        assert not installment.is_overdue(date(2024, 2, 1))

    def test_foreclosed_is_not_overdue(self):
        """Test foreclosed weeks are never overdue"""
        installment = make_installment()
        installment.status = InstallmentStatus.FORECLOSED
        assert not installment.is_outstanding
        assert not installment.is_overdue(date(2025, 1, 1))

    def test_dict_round_trip(self):
        installment = make_installment()
        installment.apply_amount(inr(250), date(2024, 1, 8), "half")

        restored = Installment.from_dict(installment.to_dict())
        assert restored == installment


class TestInstallmentLedger:
    """Test storage-backed installment collection"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = InstallmentLedger(self.storage)

    def test_save_and_list_sorted_by_week(self):
        """Test installments listed in week order"""
        self.ledger.save_many([make_installment(week=w) for w in (3, 1, 2)])
        self.ledger.save(make_installment(loan_id="L2", week=1))

        weeks = [i.week_number for i in self.ledger.list_for_loan("L1")]
        assert weeks == [1, 2, 3]
        assert self.ledger.count_for_loan("L1") == 3
        assert len(self.ledger.list_for_loans(["L1", "L2"])) == 4
        assert self.ledger.list_for_loans([]) == []

    def test_require_missing(self):
        with pytest.raises(EntityNotFoundError):
            self.ledger.require("nope_1")

    def test_outstanding_and_total_paid(self):
        """Test outstanding weeks and total paid for a loan"""
        first, second = make_installment(week=1), make_installment(week=2)
        first.apply_amount(inr(500), date(2024, 1, 7), None)
        second.apply_amount(inr(100), date(2024, 1, 14), None)
        self.ledger.save_many([first, second, make_installment(week=3)])

        outstanding = self.ledger.outstanding_for_loan("L1")
        assert [i.week_number for i in outstanding] == [2, 3]
        assert self.ledger.total_paid("L1", Currency.INR) == inr(600)

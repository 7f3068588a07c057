"""
Test suite for loan lifecycle transitions

Tests auto-close, reopen, foreclosure and settle & close.
"""

import pytest
from decimal import Decimal
from datetime import date

from installment_ledger.api.dependencies import LedgerSystem
from installment_ledger.audit import AuditEventType
from installment_ledger.config import LedgerConfig, LendingSettings
from installment_ledger.currency import Money, Currency
from installment_ledger.exceptions import ValidationError, LoanStateError, ConsistencyError
from installment_ledger.installments import InstallmentStatus
from installment_ledger.lifecycle import FORECLOSURE_NOTE, SETTLEMENT_NOTE
from installment_ledger.loans import LoanStatus
from installment_ledger.storage import InMemoryStorage


def inr(value) -> Money:
    return Money(Decimal(str(value)), Currency.INR)


MONDAY = date(2024, 1, 1)
SUNDAY = date(2024, 1, 7)


class TestLifecycle:
    """Loan status transitions"""

    def setup_method(self):
        self.system = LedgerSystem(
            storage=InMemoryStorage(),
            ledger_config=LedgerConfig(storage_backend="memory", database_url=":memory:"),
            settings=LendingSettings(),
        )
        self.lifecycle = self.system.lifecycle
        self.engine = self.system.payment_engine
        borrower = self.system.borrower_manager.create_borrower("agent-1", "Lakshmi")
        self.loan = self.system.loan_manager.create_loan(borrower.id, inr(10000), MONDAY, number_of_weeks=4)

    def installments(self):
        return self.system.installments.list_for_loan(self.loan.id)

    def status(self):
        return self.system.loan_manager.require_loan(self.loan.id).status

    def test_check_and_close_requires_every_week_paid(self):
        """Test a loan closes only when every week is paid"""
        for week in (1, 2, 3):
            self.engine.record_single_installment(f"{self.loan.id}_{week}", inr(500), SUNDAY)
        assert not self.lifecycle.check_and_close(self.loan.id)
        assert self.status() == LoanStatus.ACTIVE

        self.engine.record_single_installment(f"{self.loan.id}_4", inr(500), SUNDAY)
        assert self.status() == LoanStatus.CLOSED

        events = self.system.audit_trail.get_events_by_type(AuditEventType.LOAN_CLOSED)
        assert [e.entity_id for e in events] == [self.loan.id]

    def sibling_state(self, loan_id):
        loan = self.system.loan_manager.require_loan(loan_id)
        weeks = [(i.amount_paid, i.status) for i in self.system.installments.list_for_loan(loan_id)]
        return loan.status, weeks

    def test_closing_one_loan_leaves_sibling_untouched(self):
        """Paying off one loan week by week never changes another loan of the borrower"""
        sibling = self.system.loan_manager.create_loan(
            self.loan.borrower_id, inr(2000), MONDAY, number_of_weeks=4
        )
        self.engine.record_single_installment(f"{sibling.id}_1", inr(40), SUNDAY)
        before = self.sibling_state(sibling.id)

        for week in range(1, 5):
            self.engine.record_single_installment(f"{self.loan.id}_{week}", inr(500), SUNDAY)

        assert self.status() == LoanStatus.CLOSED
        assert self.sibling_state(sibling.id) == before
        assert before[0] == LoanStatus.ACTIVE

    def test_fifo_closing_one_loan_leaves_sibling_untouched(self):
        """A FIFO payment that closes one loan leaves a later, part-paid loan as it was"""
        # sibling weeks fall due after every week of self.loan
        sibling = self.system.loan_manager.create_loan(
            self.loan.borrower_id, inr(2000), date(2024, 2, 5), number_of_weeks=4
        )
        self.engine.record_single_installment(f"{sibling.id}_1", inr(40), date(2024, 2, 11))
        before = self.sibling_state(sibling.id)

        result = self.engine.allocate_fifo(self.loan.borrower_id, inr(2000), date(2024, 1, 28))

        assert result.closed_loans == [self.loan.id]
        assert result.overpayment == inr(0)
        assert self.sibling_state(sibling.id) == before

    def test_check_and_close_without_installments(self):
        """Test a loan without installments is a consistency error"""
        self.system.storage.clear_table("installments")
        with pytest.raises(ConsistencyError):
            self.lifecycle.check_and_close(self.loan.id)

    def test_reopen_only_from_closed(self):
        """Test only closed loans are reopened"""
        assert not self.lifecycle.reopen_if_closed(self.loan.id)

        for week in range(1, 5):
            self.engine.record_single_installment(f"{self.loan.id}_{week}", inr(500), SUNDAY)
        assert self.lifecycle.reopen_if_closed(self.loan.id)
        assert self.status() == LoanStatus.ACTIVE

    def test_foreclose(self):
        """Test foreclosure writes off outstanding weeks"""
        self.engine.record_single_installment(f"{self.loan.id}_1", inr(500), SUNDAY, "cash")
        self.engine.record_single_installment(f"{self.loan.id}_2", inr(200), date(2024, 1, 14))

        foreclosure_date = date(2024, 1, 20)
        loan = self.lifecycle.foreclose_loan(self.loan.id, foreclosure_date, settlement_amount=inr(900))

        assert loan.status == LoanStatus.FORECLOSED
        assert loan.foreclosure_date == foreclosure_date
        assert loan.foreclosure_settlement_amount == inr(900)

        first, *rest = self.installments()
        # already paid week untouched
        assert first.paid_date == SUNDAY
        assert first.notes == "cash"
        for installment in rest:
            assert installment.status == InstallmentStatus.PAID
            assert installment.amount_paid == installment.amount_due
            assert installment.paid_date == foreclosure_date
            assert installment.notes == FORECLOSURE_NOTE

    def test_foreclose_settlement_not_distributed(self):
        """Test the foreclosure settlement is kept on the loan only"""
        self.lifecycle.foreclose_loan(self.loan.id, date(2024, 1, 20), settlement_amount=inr(50))
        assert sum(i.amount_paid.amount for i in self.installments()) == Decimal('2000.00')

    def test_foreclose_rejects_foreign_currency_settlement(self):
        """Foreclosure settlement must be in the loan currency"""
        with pytest.raises(ValidationError):
            self.lifecycle.foreclose_loan(
                self.loan.id, date(2024, 1, 20), settlement_amount=Money(Decimal('50'), Currency.USD)
            )
        assert self.status() == LoanStatus.ACTIVE

    def test_foreclose_rejects_inactive_loan(self):
        """Test a foreclosed loan cannot be foreclosed again"""
        self.lifecycle.foreclose_loan(self.loan.id, date(2024, 1, 20))
        with pytest.raises(LoanStateError):
            self.lifecycle.foreclose_loan(self.loan.id, date(2024, 1, 21))

    def test_settle_and_close(self):
        """Test settlement pays the oldest week and forecloses the rest"""
        self.engine.record_single_installment(f"{self.loan.id}_1", inr(500), SUNDAY)
        self.engine.record_single_installment(f"{self.loan.id}_3", inr(100), SUNDAY)

        settled_on = date(2024, 1, 16)
        loan = self.lifecycle.settle_and_close_loan(self.loan.id, inr(800), settled_on)

        assert loan.status == LoanStatus.FORECLOSED
        assert loan.foreclosure_settlement_amount == inr(800)
        assert loan.foreclosure_date == settled_on

        week1, week2, week3, week4 = self.installments()
        assert week1.status == InstallmentStatus.PAID
        assert week1.amount_paid == inr(500)

        assert week2.status == InstallmentStatus.PAID
        assert week2.amount_paid == inr(800)
        assert week2.paid_date == settled_on
        assert week2.notes == SETTLEMENT_NOTE

        assert week3.status == InstallmentStatus.FORECLOSED
        assert week3.amount_paid == inr(100)
        assert week4.status == InstallmentStatus.FORECLOSED
        assert week4.amount_paid == inr(0)

    def test_settle_zero_amount_allowed(self):
        """Test a zero settlement is accepted"""
        loan = self.lifecycle.settle_and_close_loan(self.loan.id, inr(0), date(2024, 1, 16))
        assert loan.status == LoanStatus.FORECLOSED
        assert self.installments()[0].status == InstallmentStatus.PAID

    def test_settle_negative_rejected(self):
        """Test a negative settlement is rejected"""
        with pytest.raises(ValidationError):
            self.lifecycle.settle_and_close_loan(self.loan.id, inr(-1), date(2024, 1, 16))
        assert self.status() == LoanStatus.ACTIVE

    def test_settle_rejects_closed_loan(self):
        """Test a closed loan cannot be settled"""
        for week in range(1, 5):
            self.engine.record_single_installment(f"{self.loan.id}_{week}", inr(500), SUNDAY)
        with pytest.raises(LoanStateError):
            self.lifecycle.settle_and_close_loan(self.loan.id, inr(100), date(2024, 2, 1))

    def test_foreclosed_loan_not_overdue(self):
        """Test settled loans drop out of the overdue report"""
        self.lifecycle.settle_and_close_loan(self.loan.id, inr(100), date(2024, 1, 16))
        overdue = self.system.aggregation_engine.query_overdue_as_of("agent-1", date(2024, 6, 1))
        assert overdue == []

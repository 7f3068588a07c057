"""
Loan endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import LedgerSystem, get_ledger_system, http_error
from .schemas import (
    CreateLoanRequest, UpdateLoanRequest, ForecloseLoanRequest, SettleLoanRequest,
    BackfillRequest, parse_money, loan_to_dict, installment_to_dict
)
from ..currency import to_decimal
from ..exceptions import LedgerError, ValidationError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Issue a loan and generate its weekly schedule"""
    try:
        weekly_rate = None
        if request.weekly_rate is not None:
            try:
                weekly_rate = to_decimal(request.weekly_rate)
            except ValueError as e:
                raise ValidationError(str(e))

        loan = system.loan_manager.create_loan(
            borrower_id=request.borrower_id,
            principal_amount=parse_money(request.principal_amount, system.settings.currency),
            start_date=request.start_date,
            number_of_weeks=request.number_of_weeks,
            collection_day=request.collection_day,
            first_payment_date=request.first_payment_date,
            weekly_rate=weekly_rate
        )
        return {
            "loan_id": loan.id,
            "loan_number": loan.loan_number,
            "weekly_amount": str(loan.weekly_amount.amount),
            "total_amount": str(loan.total_amount.amount),
            "first_payment_date": loan.first_payment_date.isoformat(),
            "message": "Loan created successfully"
        }

    except LedgerError as e:
        raise http_error(e)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get loan details"""
    try:
        return loan_to_dict(system.loan_manager.require_loan(loan_id))
    except LedgerError as e:
        raise http_error(e)


@router.patch("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Edit principal, start date or first payment date"""
    try:
        principal = None
        if request.principal_amount is not None:
            principal = parse_money(request.principal_amount, system.settings.currency)

        loan = system.loan_manager.update_loan_details(
            loan_id,
            principal_amount=principal,
            start_date=request.start_date,
            first_payment_date=request.first_payment_date
        )
        return loan_to_dict(loan)

    except LedgerError as e:
        raise http_error(e)


@router.get("/{loan_id}/installments")
async def get_loan_installments(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get the loan's weekly installments"""
    try:
        installments = system.loan_manager.get_installments(loan_id)
        return {"installments": [installment_to_dict(i) for i in installments]}
    except LedgerError as e:
        raise http_error(e)


@router.get("/{loan_id}/summary")
async def get_loan_summary(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get total paid, balance and progress"""
    try:
        return system.loan_manager.get_loan_summary(loan_id).to_dict()
    except LedgerError as e:
        raise http_error(e)


@router.post("/{loan_id}/foreclose")
async def foreclose_loan(
    loan_id: str,
    request: ForecloseLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Foreclose a loan, writing off outstanding weeks as paid"""
    try:
        settlement = None
        if request.settlement_amount is not None:
            settlement = parse_money(request.settlement_amount, system.settings.currency)

        loan = system.lifecycle.foreclose_loan(
            loan_id,
            foreclosure_date=request.foreclosure_date,
            settlement_amount=settlement
        )
        return {
            "loan_id": loan.id,
            "status": loan.status.value,
            "message": "Loan foreclosed successfully"
        }

    except LedgerError as e:
        raise http_error(e)


@router.post("/{loan_id}/settle")
async def settle_loan(
    loan_id: str,
    request: SettleLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Settle and close a loan early"""
    try:
        loan = system.lifecycle.settle_and_close_loan(
            loan_id,
            settlement_amount=parse_money(request.settlement_amount, system.settings.currency),
            settlement_date=request.settlement_date
        )
        return {
            "loan_id": loan.id,
            "status": loan.status.value,
            "message": "Loan settled successfully"
        }

    except LedgerError as e:
        raise http_error(e)


@router.post("/{loan_id}/backfill")
async def backfill_past_payments(
    loan_id: str,
    request: BackfillRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record every past-due week as paid on its due date"""
    try:
        recorded = system.payment_engine.record_past_due_as_paid(loan_id, request.as_of)
        return {
            "loan_id": loan_id,
            "recorded": len(recorded),
            "message": f"Recorded {len(recorded)} past payments"
        }

    except LedgerError as e:
        raise http_error(e)


@router.get("/{loan_id}/unpaid")
async def get_unpaid_installments(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Outstanding weeks of one loan, for recording a payment against it"""
    try:
        unpaid = system.payment_engine.get_unpaid_installments_for_loan(loan_id)
    except LedgerError as e:
        raise http_error(e)

    return {
        "loan_id": loan_id,
        "installments": [installment_to_dict(t.installment) for t in unpaid]
    }

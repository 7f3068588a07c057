"""
Borrower payment endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system, http_error
from .schemas import FIFOPaymentRequest, parse_money, installment_to_dict
from ..exceptions import LedgerError


router = APIRouter()


@router.post("/fifo")
async def record_fifo_payment(
    request: FIFOPaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Spread a lump-sum payment over the borrower's oldest unpaid weeks"""
    try:
        result = system.payment_engine.allocate_fifo(
            borrower_id=request.borrower_id,
            amount=parse_money(request.amount, system.settings.currency),
            paid_date=request.paid_date,
            notes=request.notes
        )
        return result.to_dict()

    except LedgerError as e:
        raise http_error(e)


@router.get("/unpaid/{borrower_id}")
async def get_unpaid_installments(
    borrower_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Unpaid weeks across the borrower's active loans, oldest first"""
    try:
        unpaid = system.payment_engine.get_unpaid_installments_for_borrower(borrower_id)
    except LedgerError as e:
        raise http_error(e)

    result = []
    for tagged in unpaid:
        data = installment_to_dict(tagged.installment)
        data["loan_number"] = tagged.loan_number
        data["loan_principal"] = str(tagged.loan_principal.amount)
        data["loan_weekly_amount"] = str(tagged.loan_weekly_amount.amount)
        result.append(data)

    return {
        "installments": result,
        "total_loans": len({t.installment.loan_id for t in unpaid})
    }

"""
Installment endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system, http_error
from .schemas import RecordInstallmentRequest, parse_money, installment_to_dict
from ..exceptions import LedgerError


router = APIRouter()


@router.put("/{installment_id}/payment")
async def record_installment_payment(
    installment_id: str,
    request: RecordInstallmentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record the amount collected for one week"""
    try:
        installment = system.payment_engine.record_single_installment(
            installment_id,
            amount=parse_money(request.amount, system.settings.currency),
            paid_date=request.paid_date,
            notes=request.notes
        )
        loan = system.loan_manager.require_loan(installment.loan_id)
        return {
            "installment": installment_to_dict(installment),
            "loan_status": loan.status.value,
            "message": "Payment recorded successfully"
        }

    except LedgerError as e:
        raise http_error(e)


@router.post("/{installment_id}/reset")
async def reset_installment(
    installment_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Clear a recorded payment"""
    try:
        installment = system.payment_engine.reset_installment(installment_id)
        loan = system.loan_manager.require_loan(installment.loan_id)
        return {
            "installment": installment_to_dict(installment),
            "loan_status": loan.status.value,
            "message": "Payment reset successfully"
        }

    except LedgerError as e:
        raise http_error(e)

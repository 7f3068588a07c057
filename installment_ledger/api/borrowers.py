"""
Borrower endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LedgerSystem, get_ledger_system, http_error
from .schemas import CreateBorrowerRequest, SetBorrowerActiveRequest, borrower_to_dict
from ..exceptions import LedgerError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_borrower(
    request: CreateBorrowerRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Register a borrower"""
    try:
        borrower = system.borrower_manager.create_borrower(
            user_id=request.user_id,
            name=request.name,
            area=request.area,
            phone=request.phone,
            leader_tag=request.leader_tag
        )
        return {
            "borrower_id": borrower.id,
            "message": "Borrower created successfully"
        }

    except LedgerError as e:
        raise http_error(e)


@router.get("")
async def list_borrowers(
    user_id: str,
    active_only: bool = False,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List a field agent's borrowers"""
    borrowers = system.borrower_manager.list_borrowers(user_id, active_only=active_only)
    return {"borrowers": [borrower_to_dict(b) for b in borrowers]}


@router.get("/{borrower_id}")
async def get_borrower(
    borrower_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get borrower details with their loans"""
    borrower = system.borrower_manager.get_borrower(borrower_id)
    if not borrower:
        raise HTTPException(status_code=404, detail="Borrower not found")

    data = borrower_to_dict(borrower)
    data["loans"] = [
        {"id": loan.id, "loan_number": loan.loan_number, "status": loan.status.value}
        for loan in system.loan_manager.get_borrower_loans(borrower_id)
    ]
    return data


@router.put("/{borrower_id}/active")
async def set_borrower_active(
    borrower_id: str,
    request: SetBorrowerActiveRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Activate or deactivate a borrower"""
    try:
        borrower = system.borrower_manager.set_active(borrower_id, request.is_active)
        return borrower_to_dict(borrower)
    except LedgerError as e:
        raise http_error(e)

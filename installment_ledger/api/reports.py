"""
Reporting endpoints
"""

from datetime import date
from typing import Optional, Tuple
from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system, http_error
from ..exceptions import LedgerError, ValidationError
from ..schedule import week_range_for_collection_day


router = APIRouter()


def resolve_range(
    system: LedgerSystem,
    start: Optional[date],
    end: Optional[date],
    collection_day: Optional[int],
    week_offset: int,
    reference: Optional[date]
) -> Tuple[date, date]:
    """
    Explicit start/end, or the collection week containing reference
    (today by default) shifted by week_offset weeks
    """
    if start is not None or end is not None:
        if start is None or end is None:
            raise ValidationError("Both start and end are required for a custom range")
        return start, end

    day = collection_day if collection_day is not None else system.settings.collection_day
    if day not in range(7):
        raise ValidationError("Collection day must be between 0 (Sunday) and 6 (Saturday)")
    return week_range_for_collection_day(day, reference or date.today(), offset=week_offset)


@router.get("/due")
async def get_due_installments(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    collection_day: Optional[int] = None,
    week_offset: int = 0,
    reference: Optional[date] = None,
    include_inactive: bool = False,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Installments due in a date range or collection week"""
    try:
        start, end = resolve_range(system, start, end, collection_day, week_offset, reference)
        views = system.aggregation_engine.query_due_in_range(
            user_id, start, end, include_inactive=include_inactive
        )
        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "installments": [v.to_dict() for v in views]
        }
    except LedgerError as e:
        raise http_error(e)


@router.get("/overdue")
async def get_overdue_installments(
    user_id: str,
    as_of: Optional[date] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Unpaid installments due on or before a date (today by default)"""
    try:
        views = system.aggregation_engine.query_overdue_as_of(user_id, as_of or date.today())
        return {"installments": [v.to_dict() for v in views]}
    except LedgerError as e:
        raise http_error(e)


@router.get("/collected")
async def get_collected_installments(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    collection_day: Optional[int] = None,
    week_offset: int = 0,
    reference: Optional[date] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Installments paid in a date range or collection week"""
    try:
        start, end = resolve_range(system, start, end, collection_day, week_offset, reference)
        views = system.aggregation_engine.query_collected_in_range(user_id, start, end)
        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "installments": [v.to_dict() for v in views]
        }
    except LedgerError as e:
        raise http_error(e)


@router.get("/interest")
async def get_interest_earned(
    user_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Interest earned to date by loan status"""
    loans = system.loan_manager.get_user_loans(user_id)
    return system.aggregation_engine.compute_interest_earned(loans).to_dict()


@router.get("/portfolio")
async def get_portfolio_summary(
    user_id: str,
    as_of: Optional[date] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Portfolio summary for a field agent"""
    try:
        summary = system.aggregation_engine.get_portfolio_summary(user_id, as_of or date.today())
        return summary.to_dict()
    except LedgerError as e:
        raise http_error(e)

"""
Pydantic schemas for API requests and responses
"""

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, to_decimal
from ..exceptions import ValidationError
from ..installments import Installment
from ..loans import Loan
from ..borrowers import Borrower


def parse_money(amount: str, currency: Currency) -> Money:
    """Decimal string from a request body to Money in the ledger currency"""
    try:
        return Money(to_decimal(amount), currency)
    except ValueError as e:
        raise ValidationError(str(e))


# Borrower schemas
class CreateBorrowerRequest(BaseModel):
    user_id: str = Field(..., description="Field agent who owns the borrower")
    name: str
    area: Optional[str] = None
    phone: Optional[str] = None
    leader_tag: Optional[str] = None


class SetBorrowerActiveRequest(BaseModel):
    is_active: bool


# Loan schemas
class CreateLoanRequest(BaseModel):
    borrower_id: str
    principal_amount: str = Field(..., description="Decimal amount as string")
    start_date: date
    number_of_weeks: Optional[int] = None
    collection_day: Optional[int] = Field(None, description="0=Sunday ... 6=Saturday")
    first_payment_date: Optional[date] = None
    weekly_rate: Optional[str] = Field(None, description="Flat weekly rate, e.g. 0.05")


class UpdateLoanRequest(BaseModel):
    principal_amount: Optional[str] = None
    start_date: Optional[date] = None
    first_payment_date: Optional[date] = None


class ForecloseLoanRequest(BaseModel):
    foreclosure_date: date
    settlement_amount: Optional[str] = None


class SettleLoanRequest(BaseModel):
    settlement_amount: str
    settlement_date: date


class BackfillRequest(BaseModel):
    as_of: date


# Payment schemas
class RecordInstallmentRequest(BaseModel):
    amount: str = Field(..., description="Total collected for the week, replaces any earlier amount")
    paid_date: Optional[date] = None
    notes: Optional[str] = None


class FIFOPaymentRequest(BaseModel):
    borrower_id: str
    amount: str
    paid_date: date
    notes: Optional[str] = None


def borrower_to_dict(borrower: Borrower) -> dict:
    return {
        "id": borrower.id,
        "user_id": borrower.user_id,
        "name": borrower.name,
        "area": borrower.area,
        "phone": borrower.phone,
        "leader_tag": borrower.leader_tag,
        "is_active": borrower.is_active,
        "created_at": borrower.created_at.isoformat(),
    }


def loan_to_dict(loan: Loan) -> dict:
    data = loan.to_dict()
    data["interest_amount"] = str(loan.interest_amount.amount)
    return data


def installment_to_dict(installment: Installment) -> dict:
    data = installment.to_dict()
    data["balance"] = str(installment.balance.amount)
    return data

"""
Schedule Generator

Turns flat-interest weekly loan terms into the ordered list of installments.
Weekly amount is principal x weekly rate; every week is due the same amount,
seven days after the previous one. Nothing here touches storage.

Weekdays use the field convention 0=Sunday ... 6=Saturday.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta, date
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import LendingSettings
from .currency import Money
from .exceptions import ValidationError
from .installments import Installment, InstallmentStatus, installment_id_for

DAYS_PER_WEEK = 7


def collection_weekday(value: date) -> int:
    """Weekday of a date as 0=Sunday ... 6=Saturday"""
    return (value.weekday() + 1) % DAYS_PER_WEEK


def next_collection_date(start_date: date, collection_day: int) -> date:
    """
    Next occurrence of collection_day strictly after start_date.

    A start date that already falls on the collection day moves a full week
    ahead: the first collection is never on the disbursement day.
    """
    days_ahead = (collection_day - collection_weekday(start_date)) % DAYS_PER_WEEK
    if days_ahead == 0:
        days_ahead = DAYS_PER_WEEK
    return start_date + timedelta(days=days_ahead)


def due_dates_from(first_payment_date: date, number_of_weeks: int) -> List[date]:
    """Weekly due dates starting at first_payment_date"""
    return [
        first_payment_date + timedelta(days=DAYS_PER_WEEK * (week - 1))
        for week in range(1, number_of_weeks + 1)
    ]


def week_range_for_collection_day(collection_day: int, reference: date,
                                  offset: int = 0) -> Tuple[date, date]:
    """
    The seven-day collection week that starts on collection_day and contains
    reference, shifted by offset weeks (-1 previous, 1 next).
    """
    days_back = (collection_weekday(reference) - collection_day) % DAYS_PER_WEEK
    start = reference - timedelta(days=days_back) + timedelta(days=DAYS_PER_WEEK * offset)
    return start, start + timedelta(days=DAYS_PER_WEEK - 1)


@dataclass
class LoanTerms:
    """Terms of a flat-interest weekly loan"""
    principal_amount: Money
    weekly_rate: Decimal               # e.g. 0.05 for 5% of principal per week
    number_of_weeks: int
    start_date: Optional[date]         # disbursement date
    collection_day: int = 0
    first_payment_date: Optional[date] = None

    def __post_init__(self):
        if not isinstance(self.weekly_rate, Decimal):
            self.weekly_rate = Decimal(str(self.weekly_rate))

        if self.principal_amount is None or not self.principal_amount.is_positive():
            raise ValidationError("Principal amount must be positive")
        if not isinstance(self.number_of_weeks, int) or self.number_of_weeks <= 0:
            raise ValidationError("Number of weeks must be a positive integer")
        if self.start_date is None:
            raise ValidationError("Start date is required")
        if self.collection_day not in range(DAYS_PER_WEEK):
            raise ValidationError("Collection day must be between 0 (Sunday) and 6 (Saturday)")
        if self.weekly_rate <= 0:
            raise ValidationError("Weekly rate must give a positive weekly amount")
        try:
            weekly_amount = self.weekly_amount
            self.total_amount
        except ValueError as e:
            raise ValidationError(f"Loan amounts out of range: {e}")
        if not weekly_amount.is_positive():
            raise ValidationError("Weekly rate must give a positive weekly amount")

    @classmethod
    def from_settings(
        cls,
        principal_amount: Money,
        start_date: date,
        settings: LendingSettings,
        number_of_weeks: Optional[int] = None,
        collection_day: Optional[int] = None,
        first_payment_date: Optional[date] = None,
        weekly_rate: Optional[Decimal] = None
    ) -> 'LoanTerms':
        """Fill unspecified terms from the lending settings"""
        return cls(
            principal_amount=principal_amount,
            weekly_rate=weekly_rate if weekly_rate is not None else settings.weekly_rate,
            number_of_weeks=number_of_weeks if number_of_weeks is not None else settings.default_weeks,
            start_date=start_date,
            collection_day=collection_day if collection_day is not None else settings.collection_day,
            first_payment_date=first_payment_date,
        )

    @property
    def weekly_amount(self) -> Money:
        return self.principal_amount * self.weekly_rate

    @property
    def total_amount(self) -> Money:
        return self.weekly_amount * self.number_of_weeks

    @property
    def interest_amount(self) -> Money:
        """Flat interest over the whole term"""
        return self.total_amount - self.principal_amount

    def resolve_first_payment_date(self) -> date:
        if self.first_payment_date:
            return self.first_payment_date
        return next_collection_date(self.start_date, self.collection_day)


def generate_schedule(terms: LoanTerms, loan_id: str) -> List[Installment]:
    """
    Generate the installment schedule for a loan

    Args:
        terms: Validated loan terms
        loan_id: Loan the installments belong to

    Returns:
        number_of_weeks pending installments, week 1..N, due dates 7 days apart
    """
    now = datetime.now(timezone.utc)
    weekly_amount = terms.weekly_amount
    dates = due_dates_from(terms.resolve_first_payment_date(), terms.number_of_weeks)

    return [
        Installment(
            id=installment_id_for(loan_id, week),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            week_number=week,
            due_date=due_date,
            amount_due=weekly_amount,
            status=InstallmentStatus.PENDING,
        )
        for week, due_date in enumerate(dates, start=1)
    ]

"""
Pydantic schemas for event records and loan snapshots crossing the core's
boundary. Amounts and rates travel as decimal strings.
"""

from decimal import Decimal
from datetime import date
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .decimal_math import to_decimal
from .events import (
    LoanEvent, ExtraPaymentStrategy, InterestHandling, make_event
)
from .exceptions import InvalidArgumentError
from .models import Arrears, Loan, RatePeriod, ScheduleRow


# Event schemas
class EventModelBase(BaseModel):
    loan_id: Optional[str] = None
    event_date: date
    amount: str = Field("0", description="Decimal amount as string")
    notes: str = ""

    def _fields(self) -> Dict[str, Any]:
        return {}

    def to_event(self) -> LoanEvent:
        return make_event(
            self.event_type,
            self.loan_id,
            self.event_date,
            amount=to_decimal(self.amount),
            notes=self.notes,
            **self._fields()
        )


class SkipPaymentModel(EventModelBase):
    event_type: Literal["skip_payment", "skip_payments"]


class ExtraPaymentModel(EventModelBase):
    event_type: Literal["extra_payment"]
    strategy: Optional[Literal["reduce_term", "reduce_payment"]] = Field(
        None, description="Defaults to reduce_term unless notes flag reduce_payment"
    )

    def _fields(self) -> Dict[str, Any]:
        if self.strategy is None:
            return {}
        return {'strategy': ExtraPaymentStrategy(self.strategy)}


class PartialPaymentModel(EventModelBase):
    event_type: Literal["partial_payment"]


class RateChangeModel(EventModelBase):
    event_type: Literal["rate_change"]
    new_rate: str = Field(..., description="Annual rate as a decimal fraction string")
    end_date: Optional[date] = None

    def _fields(self) -> Dict[str, Any]:
        return {'new_rate': to_decimal(self.new_rate), 'end_date': self.end_date}


class GracePeriodModel(EventModelBase):
    event_type: Literal["grace_period", "grace"]


class PenaltyModel(EventModelBase):
    event_type: Literal["penalty"]


class ArrearsPaymentModel(EventModelBase):
    event_type: Literal["arrears_payment"]


class PaymentHolidayModel(EventModelBase):
    event_type: Literal["payment_holiday"]
    months: int = Field(..., ge=1)
    interest_handling: Literal["accrual", "deferral"] = "accrual"
    reason: str = ""

    def _fields(self) -> Dict[str, Any]:
        return {
            'months': self.months,
            'interest_handling': InterestHandling(self.interest_handling),
            'reason': self.reason,
        }


EventModel = Annotated[
    Union[
        SkipPaymentModel,
        ExtraPaymentModel,
        PartialPaymentModel,
        RateChangeModel,
        GracePeriodModel,
        PenaltyModel,
        ArrearsPaymentModel,
        PaymentHolidayModel,
    ],
    Field(discriminator="event_type"),
]

_event_adapter = TypeAdapter(EventModel)


def parse_event(data: Dict[str, Any]) -> LoanEvent:
    """
    Validate a raw event record and build the matching LoanEvent variant.

    Raises:
        InvalidArgumentError: If the record does not validate
    """
    try:
        model = _event_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidArgumentError(f"Invalid event record: {e}")
    return model.to_event()


def parse_events(records: List[Dict[str, Any]]) -> List[LoanEvent]:
    return [parse_event(record) for record in records]


# Snapshot schemas
class ScheduleRowModel(BaseModel):
    payment_number: int
    payment_date: date
    payment_amount: str
    interest_amount: str
    principal_amount: str
    remaining_balance: str
    annual_rate: Optional[str] = None
    balloon_amount: Optional[str] = None

    @classmethod
    def from_row(cls, row: ScheduleRow) -> 'ScheduleRowModel':
        return cls(
            payment_number=row.payment_number,
            payment_date=row.payment_date,
            payment_amount=str(row.payment_amount),
            interest_amount=str(row.interest_amount),
            principal_amount=str(row.principal_amount),
            remaining_balance=str(row.remaining_balance),
            annual_rate=str(row.annual_rate) if row.annual_rate is not None else None,
            balloon_amount=str(row.balloon_amount) if row.balloon_amount is not None else None,
        )

    def to_row(self) -> ScheduleRow:
        return ScheduleRow(
            payment_number=self.payment_number,
            payment_date=self.payment_date,
            payment_amount=Decimal(self.payment_amount),
            interest_amount=Decimal(self.interest_amount),
            principal_amount=Decimal(self.principal_amount),
            remaining_balance=Decimal(self.remaining_balance),
            annual_rate=Decimal(self.annual_rate) if self.annual_rate is not None else None,
            balloon_amount=Decimal(self.balloon_amount) if self.balloon_amount is not None else None,
        )


class RatePeriodModel(BaseModel):
    id: str
    rate: str
    start_date: date
    end_date: Optional[date] = None

    @classmethod
    def from_period(cls, period: RatePeriod) -> 'RatePeriodModel':
        return cls(
            id=period.id,
            rate=str(period.rate),
            start_date=period.start_date,
            end_date=period.end_date
        )


class ArrearsModel(BaseModel):
    id: str
    principal_amount: str
    interest_amount: str
    penalty_amount: str
    total_amount: str
    days_overdue: int

    @classmethod
    def from_arrears(cls, arrears: Arrears) -> 'ArrearsModel':
        return cls(
            id=arrears.id,
            principal_amount=str(arrears.principal_amount),
            interest_amount=str(arrears.interest_amount),
            penalty_amount=str(arrears.penalty_amount),
            total_amount=str(arrears.total_amount),
            days_overdue=arrears.days_overdue
        )


class LoanSnapshotModel(BaseModel):
    """Read-only view of a loan handed to persistence, posting and reporting"""
    id: Optional[str] = None
    principal: str
    annual_rate: str
    months: int
    start_date: date
    current_balance: str
    payments_made: int
    balloon_amount: Optional[str] = None
    total_arrears: str
    rate_periods: List[RatePeriodModel] = []
    arrears: List[ArrearsModel] = []
    schedule: List[ScheduleRowModel] = []

    @classmethod
    def from_loan(cls, loan: Loan) -> 'LoanSnapshotModel':
        return cls(
            id=loan.id,
            principal=str(loan.principal),
            annual_rate=str(loan.annual_rate),
            months=loan.months,
            start_date=loan.start_date,
            current_balance=str(loan.current_balance),
            payments_made=loan.payments_made,
            balloon_amount=str(loan.balloon_amount) if loan.balloon_amount is not None else None,
            total_arrears=str(loan.total_arrears),
            rate_periods=[RatePeriodModel.from_period(p) for p in loan.rate_periods],
            arrears=[ArrearsModel.from_arrears(a) for a in loan.arrears],
            schedule=[ScheduleRowModel.from_row(row) for row in loan.schedule],
        )

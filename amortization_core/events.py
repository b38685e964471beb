"""
Loan Events Module

Borrower-initiated events that mutate a loan. Each event type has its own
variant carrying strongly-typed fields; the base LoanEvent is kept for
plain records arriving from older sources.
"""

from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import uuid

from .decimal_math import DecimalLike, to_decimal, ZERO
from .exceptions import InvalidArgumentError


class LoanEventType(Enum):
    """Borrower event types recognised by the handler pipeline"""
    SKIP_PAYMENT = "skip_payment"
    SKIP_PAYMENTS = "skip_payments"
    EXTRA_PAYMENT = "extra_payment"
    PARTIAL_PAYMENT = "partial_payment"
    PAYMENT_HOLIDAY = "payment_holiday"
    RATE_CHANGE = "rate_change"
    GRACE_PERIOD = "grace_period"
    GRACE = "grace"
    PENALTY = "penalty"
    ARREARS_PAYMENT = "arrears_payment"


class ExtraPaymentStrategy(Enum):
    """What an extra payment buys the borrower"""
    REDUCE_TERM = "reduce_term"
    REDUCE_PAYMENT = "reduce_payment"

    @classmethod
    def from_notes(cls, notes: Optional[str]) -> 'ExtraPaymentStrategy':
        """Legacy records flag reduce_payment inside free-text notes"""
        if notes and cls.REDUCE_PAYMENT.value in notes:
            return cls.REDUCE_PAYMENT
        return cls.REDUCE_TERM


class InterestHandling(Enum):
    """How interest is treated during a payment holiday"""
    ACCRUAL = "accrual"      # added to balance
    DEFERRAL = "deferral"    # capitalized, term extended


def _to_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid event date: {value!r}")


@dataclass(kw_only=True)
class LoanEvent:
    """Single borrower event applied to one loan"""
    event_type: LoanEventType
    loan_id: Optional[str]
    event_date: date
    amount: Decimal = ZERO
    notes: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    outcome: Dict[str, Any] = field(default_factory=dict)   # filled by the handler that applied it

    def __post_init__(self):
        if not isinstance(self.event_type, LoanEventType):
            try:
                self.event_type = LoanEventType(self.event_type)
            except ValueError:
                raise InvalidArgumentError(f"Unknown event type: {self.event_type}")
        self.event_date = _to_date(self.event_date)
        self.amount = to_decimal(self.amount)

    @property
    def type_code(self) -> str:
        return self.event_type.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'event_type': self.event_type.value,
            'loan_id': self.loan_id,
            'event_date': self.event_date.isoformat(),
            'amount': str(self.amount),
            'notes': self.notes,
            'outcome': self.outcome,
        }


@dataclass(kw_only=True)
class SkipPaymentEvent(LoanEvent):
    """``amount`` holds the number of payments to skip"""
    event_type: LoanEventType = LoanEventType.SKIP_PAYMENT

    @property
    def payments_to_skip(self) -> int:
        return int(self.amount)


@dataclass(kw_only=True)
class ExtraPaymentEvent(LoanEvent):
    event_type: LoanEventType = LoanEventType.EXTRA_PAYMENT
    strategy: ExtraPaymentStrategy = ExtraPaymentStrategy.REDUCE_TERM

    def __post_init__(self):
        super().__post_init__()
        try:
            self.strategy = ExtraPaymentStrategy(self.strategy)
        except ValueError:
            raise InvalidArgumentError(f"Unknown extra payment strategy: {self.strategy}")

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['strategy'] = self.strategy.value
        return result


@dataclass(kw_only=True)
class PartialPaymentEvent(LoanEvent):
    event_type: LoanEventType = LoanEventType.PARTIAL_PAYMENT


@dataclass(kw_only=True)
class RateChangeEvent(LoanEvent):
    """New annual rate (fraction in [0, 1]) effective from ``event_date``"""
    event_type: LoanEventType = LoanEventType.RATE_CHANGE
    new_rate: Decimal = ZERO
    end_date: Optional[date] = None

    def __post_init__(self):
        super().__post_init__()
        self.new_rate = to_decimal(self.new_rate)
        if self.end_date is not None:
            self.end_date = _to_date(self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['new_rate'] = str(self.new_rate)
        result['end_date'] = self.end_date.isoformat() if self.end_date else None
        return result


@dataclass(kw_only=True)
class GracePeriodEvent(LoanEvent):
    """``amount`` holds the number of grace months"""
    event_type: LoanEventType = LoanEventType.GRACE_PERIOD

    @property
    def months(self) -> int:
        return int(self.amount)


@dataclass(kw_only=True)
class PenaltyEvent(LoanEvent):
    event_type: LoanEventType = LoanEventType.PENALTY


@dataclass(kw_only=True)
class ArrearsPaymentEvent(LoanEvent):
    event_type: LoanEventType = LoanEventType.ARREARS_PAYMENT


@dataclass(kw_only=True)
class PaymentHolidayEvent(LoanEvent):
    event_type: LoanEventType = LoanEventType.PAYMENT_HOLIDAY
    months: int = 1
    interest_handling: InterestHandling = InterestHandling.ACCRUAL
    reason: str = ""

    def __post_init__(self):
        super().__post_init__()
        try:
            self.interest_handling = InterestHandling(self.interest_handling)
        except ValueError:
            raise InvalidArgumentError(
                f"Interest handling must be 'accrual' or 'deferral', got: {self.interest_handling}"
            )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['months'] = self.months
        result['interest_handling'] = self.interest_handling.value
        result['reason'] = self.reason
        return result


def make_event(
    event_type,
    loan_id: Optional[str],
    event_date,
    amount: DecimalLike = ZERO,
    notes: str = "",
    **fields
) -> LoanEvent:
    """Build the variant matching event_type"""
    if not isinstance(event_type, LoanEventType):
        try:
            event_type = LoanEventType(event_type)
        except ValueError:
            raise InvalidArgumentError(f"Unknown event type: {event_type}")
    if event_type == LoanEventType.EXTRA_PAYMENT and 'strategy' not in fields:
        fields['strategy'] = ExtraPaymentStrategy.from_notes(notes)
    variant = EVENT_VARIANTS.get(event_type, LoanEvent)
    return variant(
        event_type=event_type,
        loan_id=loan_id,
        event_date=event_date,
        amount=amount,
        notes=notes,
        **fields
    )


EVENT_VARIANTS = {
    LoanEventType.SKIP_PAYMENT: SkipPaymentEvent,
    LoanEventType.SKIP_PAYMENTS: SkipPaymentEvent,
    LoanEventType.EXTRA_PAYMENT: ExtraPaymentEvent,
    LoanEventType.PARTIAL_PAYMENT: PartialPaymentEvent,
    LoanEventType.PAYMENT_HOLIDAY: PaymentHolidayEvent,
    LoanEventType.RATE_CHANGE: RateChangeEvent,
    LoanEventType.GRACE_PERIOD: GracePeriodEvent,
    LoanEventType.GRACE: GracePeriodEvent,
    LoanEventType.PENALTY: PenaltyEvent,
    LoanEventType.ARREARS_PAYMENT: ArrearsPaymentEvent,
}

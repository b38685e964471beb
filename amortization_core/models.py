"""
Loan Model Module

The Loan aggregate and the value/entity objects it owns: rate periods for
variable-rate loans, arrears ledgers, and amortization schedule rows.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import uuid

from .decimal_math import DecimalLike, to_decimal, quantize, ZERO, ONE, CENT
from .exceptions import InvalidArgumentError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_rate(rate: Decimal) -> None:
    if rate < ZERO or rate > ONE:
        raise InvalidArgumentError(f"Rate must be between 0 and 1, got: {rate}")


def _money(value: DecimalLike, label: str) -> Decimal:
    amount = quantize(value)
    if amount < ZERO:
        raise InvalidArgumentError(f"{label} cannot be negative, got: {amount}")
    return amount


@dataclass(frozen=True)
class ScheduleRow:
    """Single entry in an amortization schedule"""
    payment_number: int
    payment_date: date
    payment_amount: Decimal
    interest_amount: Decimal
    principal_amount: Decimal
    remaining_balance: Decimal
    annual_rate: Optional[Decimal] = None       # set by variable-rate schedules
    balloon_amount: Optional[Decimal] = None    # set on the final balloon row

    def __post_init__(self):
        for name in ('payment_amount', 'interest_amount', 'principal_amount', 'remaining_balance'):
            object.__setattr__(self, name, quantize(getattr(self, name)))
        if self.balloon_amount is not None:
            object.__setattr__(self, 'balloon_amount', quantize(self.balloon_amount))

        calculated_payment = self.principal_amount + self.interest_amount
        if abs(calculated_payment - self.payment_amount) > CENT:
            raise InvalidArgumentError(
                f"Payment amount {self.payment_amount} does not equal "
                f"principal {self.principal_amount} + interest {self.interest_amount}"
            )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'payment_number': self.payment_number,
            'payment_date': self.payment_date.isoformat(),
            'payment_amount': str(self.payment_amount),
            'interest_amount': str(self.interest_amount),
            'principal_amount': str(self.principal_amount),
            'remaining_balance': str(self.remaining_balance),
        }
        if self.annual_rate is not None:
            result['annual_rate'] = str(self.annual_rate)
        if self.balloon_amount is not None:
            result['balloon_amount'] = str(self.balloon_amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduleRow':
        payment_date = data['payment_date']
        if isinstance(payment_date, str):
            payment_date = date.fromisoformat(payment_date)
        return cls(
            payment_number=int(data['payment_number']),
            payment_date=payment_date,
            payment_amount=to_decimal(data['payment_amount']),
            interest_amount=to_decimal(data['interest_amount']),
            principal_amount=to_decimal(data['principal_amount']),
            remaining_balance=to_decimal(data['remaining_balance']),
            annual_rate=to_decimal(data['annual_rate']) if data.get('annual_rate') is not None else None,
            balloon_amount=to_decimal(data['balloon_amount']) if data.get('balloon_amount') is not None else None,
        )


@dataclass
class RatePeriod:
    """Time-bounded interest rate override for variable-rate loans"""
    loan_id: Optional[str]
    rate: Decimal                       # e.g., 0.055 for 5.5%
    start_date: date                    # inclusive
    end_date: Optional[date] = None     # inclusive, None = ongoing
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.rate = to_decimal(self.rate)
        _validate_rate(self.rate)
        if self.end_date is not None and self.start_date > self.end_date:
            raise InvalidArgumentError("Start date cannot be after end date")

    def is_active(self, on_date: date) -> bool:
        """True if on_date falls inside the period (both ends inclusive)"""
        if on_date < self.start_date:
            return False
        if self.end_date is None:
            return True
        return on_date <= self.end_date

    def close(self, end_date: date) -> None:
        """End an ongoing period on end_date"""
        if end_date < self.start_date:
            raise InvalidArgumentError("Start date cannot be after end date")
        self.end_date = end_date
        self.updated_at = _utcnow()

    def __str__(self) -> str:
        end = self.end_date.isoformat() if self.end_date else 'ongoing'
        return f"{quantize(self.rate * 100)}% from {self.start_date.isoformat()} to {end}"


@dataclass
class Arrears:
    """
    Overdue-amount ledger for a loan.

    Payments clear penalty first, then interest, then principal. The total
    is always the rounded sum of the three components.
    """
    loan_id: Optional[str]
    principal_amount: Decimal = ZERO
    interest_amount: Decimal = ZERO
    days_overdue: int = 0
    penalty_amount: Decimal = ZERO
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    total_amount: Decimal = field(init=False)

    def __post_init__(self):
        self.principal_amount = _money(self.principal_amount, "Principal arrears")
        self.interest_amount = _money(self.interest_amount, "Interest arrears")
        self.penalty_amount = _money(self.penalty_amount, "Penalty")
        if self.days_overdue < 0:
            raise InvalidArgumentError("Days overdue cannot be negative")
        self._recalculate_total()

    def _recalculate_total(self) -> None:
        self.total_amount = quantize(self.principal_amount + self.interest_amount + self.penalty_amount)

    def _mark_updated(self) -> None:
        self.updated_at = _utcnow()

    def apply_payment(self, payment_amount: DecimalLike) -> Decimal:
        """
        Apply a payment in priority order: penalty, interest, principal.

        Returns:
            The part of the payment left over after clearing the arrears
        """
        remaining = quantize(payment_amount)
        if remaining < ZERO:
            raise InvalidArgumentError("Payment cannot be negative")

        self._mark_updated()

        for component in ('penalty_amount', 'interest_amount', 'principal_amount'):
            outstanding = getattr(self, component)
            if remaining > ZERO and outstanding > ZERO:
                applied = min(remaining, outstanding)
                setattr(self, component, quantize(outstanding - applied))
                remaining = quantize(remaining - applied)

        self._recalculate_total()
        return remaining

    def add_penalty(self, amount: DecimalLike) -> None:
        penalty = quantize(amount)
        if penalty < ZERO:
            raise InvalidArgumentError("Penalty cannot be negative")
        self.penalty_amount = quantize(self.penalty_amount + penalty)
        self._recalculate_total()
        self._mark_updated()

    def add_principal(self, amount: DecimalLike) -> None:
        """Add a principal shortfall to the ledger"""
        shortfall = quantize(amount)
        if shortfall < ZERO:
            raise InvalidArgumentError("Principal arrears cannot be negative")
        self.principal_amount = quantize(self.principal_amount + shortfall)
        self._recalculate_total()
        self._mark_updated()

    def set_days_overdue(self, days: int) -> None:
        if days < 0:
            raise InvalidArgumentError("Days overdue cannot be negative")
        self.days_overdue = days
        self._mark_updated()

    def is_cleared(self) -> bool:
        return abs(self.total_amount) < CENT

    def __str__(self) -> str:
        return (f"${self.total_amount} arrears (${self.principal_amount} principal, "
                f"${self.interest_amount} interest, ${self.penalty_amount} penalty) - "
                f"{self.days_overdue} days overdue")


@dataclass
class Loan:
    """Loan aggregate: terms, current state, rate periods, arrears and schedule"""
    principal: Decimal
    annual_rate: Decimal                # e.g., 0.05 for 5%
    months: int                         # number of payment periods
    start_date: date = field(default_factory=date.today)
    id: Optional[str] = None
    balloon_amount: Optional[Decimal] = None
    current_balance: Optional[Decimal] = None
    payments_made: int = 0
    rate_periods: List[RatePeriod] = field(default_factory=list)
    arrears: List[Arrears] = field(default_factory=list)
    schedule: List[ScheduleRow] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.principal = quantize(self.principal)
        if self.principal <= ZERO:
            raise InvalidArgumentError("Principal must be greater than 0")

        self.annual_rate = to_decimal(self.annual_rate)
        _validate_rate(self.annual_rate)

        if self.months <= 0:
            raise InvalidArgumentError("Months must be greater than 0")

        if self.balloon_amount is not None:
            self.balloon_amount = _money(self.balloon_amount, "Balloon amount")

        # Initialize balance if None
        if self.current_balance is None:
            self.current_balance = self.principal
        else:
            self.current_balance = max(ZERO, quantize(self.current_balance))

        self.payments_made = max(0, self.payments_made)

    # Mutations used by event handlers and schedule regeneration

    def mark_updated(self) -> None:
        self.updated_at = _utcnow()

    def set_current_balance(self, balance: DecimalLike) -> None:
        """Set outstanding balance, clamped at zero"""
        self.current_balance = max(ZERO, quantize(balance))
        self.mark_updated()

    def set_months(self, months: int) -> None:
        if months <= 0:
            raise InvalidArgumentError("Months must be greater than 0")
        self.months = months
        self.mark_updated()

    def set_annual_rate(self, rate: DecimalLike) -> None:
        rate = to_decimal(rate)
        _validate_rate(rate)
        self.annual_rate = rate
        self.mark_updated()

    def set_payments_made(self, count: int) -> None:
        self.payments_made = max(0, count)
        self.mark_updated()

    def record_payment(self, principal_paid: DecimalLike = ZERO) -> None:
        """Count one scheduled payment as made, less its principal portion"""
        self.current_balance = max(ZERO, quantize(self.current_balance - to_decimal(principal_paid)))
        self.set_payments_made(self.payments_made + 1)

    def set_schedule(self, schedule: List[ScheduleRow]) -> None:
        self.schedule = list(schedule)
        self.mark_updated()

    def add_rate_period(self, period: RatePeriod) -> None:
        if self.id is not None and period.loan_id != self.id:
            raise InvalidArgumentError("Rate period belongs to different loan")
        self.rate_periods.append(period)
        self.mark_updated()

    def add_arrears(self, arrears: Arrears) -> None:
        if self.id is not None and arrears.loan_id != self.id:
            raise InvalidArgumentError("Arrears belongs to different loan")
        self.arrears.append(arrears)
        self.mark_updated()

    # Derived values

    def rate_for_date(self, on_date: date) -> Decimal:
        """Rate of the first active rate period, else the base annual rate"""
        for period in self.rate_periods:
            if period.is_active(on_date):
                return period.rate
        return self.annual_rate

    @property
    def has_balloon_payment(self) -> bool:
        return self.balloon_amount is not None and self.balloon_amount > ZERO

    @property
    def active_arrears(self) -> List[Arrears]:
        return [record for record in self.arrears if not record.is_cleared()]

    @property
    def total_arrears(self) -> Decimal:
        return quantize(sum((record.total_amount for record in self.arrears), ZERO))

    @property
    def payments_remaining(self) -> int:
        return max(0, self.months - self.payments_made)

    @property
    def is_paid_off(self) -> bool:
        return self.current_balance < CENT

    def __str__(self) -> str:
        balloon = f" (with ${self.balloon_amount} balloon)" if self.has_balloon_payment else ""
        return (f"${self.principal:,.2f} @ {quantize(self.annual_rate * 100)}% "
                f"for {self.months} months{balloon}")

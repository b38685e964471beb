"""
Payment Holiday Module

Forbearance for a loan: a borrower stops paying for a number of months while
interest either accrues onto the balance or is deferred and capitalized with
the term extended. Holidays move through a linear approval workflow.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from threading import RLock
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from .audit import AuditTrail, AuditEventType
from .config import AmortizationSettings, get_config
from .decimal_math import quantize, HUNDRED
from .events import InterestHandling, PaymentHolidayEvent
from .exceptions import InvalidArgumentError, LogicError
from .interest import PeriodicInterestCalculator
from .logging_config import log_action
from .models import Loan
from .payments import FrequencyLike, PaymentFrequency
from .schedule import ScheduleGenerator, add_months


class HolidayStatus(Enum):
    """Payment holiday workflow states"""
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    COMPLETED = "completed"


# Each state has exactly one successor
HOLIDAY_TRANSITIONS = {
    HolidayStatus.PENDING: HolidayStatus.APPROVED,
    HolidayStatus.APPROVED: HolidayStatus.ACTIVE,
    HolidayStatus.ACTIVE: HolidayStatus.COMPLETED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PaymentHoliday:
    """Payment holiday granted on a loan"""
    loan_id: Optional[str]
    months: int
    interest_handling: InterestHandling
    start_date: date
    reason: str = ""
    status: HolidayStatus = HolidayStatus.PENDING
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    approved_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    interest_amount: Optional[Decimal] = None   # set once applied to the loan
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def end_date(self) -> date:
        """First payment date after the holiday"""
        return add_months(self.start_date, self.months)

    @property
    def is_applied(self) -> bool:
        return self.interest_amount is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'months': self.months,
            'interest_handling': self.interest_handling.value,
            'reason': self.reason,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'activated_at': self.activated_at.isoformat() if self.activated_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'interest_amount': str(self.interest_amount) if self.interest_amount is not None else None,
        }


class PaymentHolidayHandler:
    """
    Creates, approves and applies payment holidays.

    Holidays are held by the handler instance; nothing is shared between
    handlers.
    """

    def __init__(
        self,
        generator: Optional[ScheduleGenerator] = None,
        audit_trail: Optional[AuditTrail] = None,
        settings: Optional[AmortizationSettings] = None,
        interest_calculator: Optional[PeriodicInterestCalculator] = None
    ):
        self.generator = generator or ScheduleGenerator()
        self.audit_trail = audit_trail
        self._settings = settings
        self.interest_calculator = interest_calculator or PeriodicInterestCalculator()
        self._holidays: Dict[str, PaymentHoliday] = {}
        self._lock = RLock()
        self.logger = logging.getLogger("amortization.holidays")

    @property
    def settings(self) -> AmortizationSettings:
        return self._settings or get_config()

    # Creation

    def is_valid_holiday(self, loan: Loan, months: int) -> bool:
        return 1 <= months <= self.settings.max_holiday_months and months <= loan.months

    def create_holiday(
        self,
        loan: Loan,
        months: int,
        interest_handling: Union[InterestHandling, str] = InterestHandling.ACCRUAL,
        reason: str = "",
        start_date: Optional[date] = None
    ) -> PaymentHoliday:
        """
        Create a pending payment holiday for a loan.

        Raises:
            InvalidArgumentError: If months is outside 1..max_holiday_months,
                exceeds the loan term, or interest handling is unknown
        """
        if not self.is_valid_holiday(loan, months):
            raise InvalidArgumentError(
                f"Holiday months must be between 1 and "
                f"{min(self.settings.max_holiday_months, loan.months)}, got: {months}"
            )
        try:
            interest_handling = InterestHandling(interest_handling)
        except ValueError:
            raise InvalidArgumentError(
                f"Interest handling must be 'accrual' or 'deferral', got: {interest_handling}"
            )

        holiday = PaymentHoliday(
            loan_id=loan.id,
            months=months,
            interest_handling=interest_handling,
            start_date=start_date or date.today(),
            reason=reason
        )
        self._record_history(holiday, "created")

        with self._lock:
            self._holidays[holiday.id] = holiday

        log_action(
            self.logger, "info", f"Created {months}-month payment holiday",
            loan_id=loan.id, action="holiday_created",
            extra={'holiday_id': holiday.id, 'interest_handling': interest_handling.value}
        )
        self._audit(AuditEventType.HOLIDAY_CREATED, holiday, {
            'months': months,
            'interest_handling': interest_handling.value,
            'start_date': holiday.start_date,
            'reason': reason,
        })
        return holiday

    def create_from_event(self, loan: Loan, event: PaymentHolidayEvent) -> PaymentHoliday:
        return self.create_holiday(
            loan,
            event.months,
            event.interest_handling,
            reason=event.reason or event.notes,
            start_date=event.event_date
        )

    # Workflow

    def _transition(self, holiday_id: str, target: HolidayStatus) -> PaymentHoliday:
        with self._lock:
            holiday = self._holidays.get(holiday_id)
            if holiday is None:
                raise InvalidArgumentError(f"Payment holiday {holiday_id} not found")

            if HOLIDAY_TRANSITIONS.get(holiday.status) != target:
                raise LogicError(
                    f"Cannot move payment holiday from {holiday.status.value} to {target.value}"
                )

            previous = holiday.status
            holiday.status = target
            now = _utcnow()
            if target == HolidayStatus.APPROVED:
                holiday.approved_at = now
            elif target == HolidayStatus.ACTIVE:
                holiday.activated_at = now
            elif target == HolidayStatus.COMPLETED:
                holiday.completed_at = now
            self._record_history(holiday, target.value)

        self.logger.info(f"Payment holiday {holiday_id}: {previous.value} -> {target.value}")
        self._audit(AuditEventType.HOLIDAY_STATUS_CHANGED, holiday, {
            'from_status': previous,
            'to_status': target,
        })
        return holiday

    def approve(self, holiday_id: str) -> PaymentHoliday:
        return self._transition(holiday_id, HolidayStatus.APPROVED)

    def activate(self, holiday_id: str) -> PaymentHoliday:
        return self._transition(holiday_id, HolidayStatus.ACTIVE)

    def complete(self, holiday_id: str) -> PaymentHoliday:
        return self._transition(holiday_id, HolidayStatus.COMPLETED)

    # Interest

    def calculate_monthly_interest(self, loan: Loan, on_date: Optional[date] = None) -> Decimal:
        """One month of interest on the current balance at the rate in force on on_date"""
        rate = loan.rate_for_date(on_date) if on_date else loan.annual_rate
        return self.interest_calculator.calculate(
            loan.current_balance, rate * HUNDRED, PaymentFrequency.MONTHLY
        )

    def calculate_accrued_interest(self, loan: Loan, months: int, on_date: Optional[date] = None) -> Decimal:
        """Interest accruing over the holiday at the loan's balance and rate"""
        return quantize(self.calculate_monthly_interest(loan, on_date) * Decimal(months))

    def calculate_deferred_interest(self, loan: Loan, months: int, on_date: Optional[date] = None) -> Decimal:
        """Interest deferred over the holiday; capitalized when the holiday is applied"""
        return self.calculate_accrued_interest(loan, months, on_date)

    def apply_accrual(self, loan: Loan, holiday: PaymentHoliday) -> Decimal:
        interest = self.calculate_accrued_interest(loan, holiday.months, holiday.start_date)
        loan.set_current_balance(loan.current_balance + interest)
        return interest

    def apply_deferral(self, loan: Loan, holiday: PaymentHoliday) -> Decimal:
        interest = self.calculate_deferred_interest(loan, holiday.months, holiday.start_date)
        loan.set_current_balance(loan.current_balance + interest)
        loan.set_months(loan.months + holiday.months)
        return interest

    def apply_holiday(self, loan: Loan, holiday: PaymentHoliday) -> Decimal:
        """
        Apply an active holiday's interest treatment to the loan.

        Returns:
            Interest added to the balance
        """
        if holiday.loan_id != loan.id:
            raise InvalidArgumentError("Payment holiday belongs to different loan")
        if holiday.status != HolidayStatus.ACTIVE:
            raise LogicError(
                f"Payment holiday must be active to apply, status is {holiday.status.value}"
            )
        if holiday.is_applied:
            raise LogicError(f"Payment holiday {holiday.id} has already been applied")

        if holiday.interest_handling == InterestHandling.DEFERRAL:
            interest = self.apply_deferral(loan, holiday)
        else:
            interest = self.apply_accrual(loan, holiday)

        holiday.interest_amount = interest
        self._record_history(holiday, "applied")

        log_action(
            self.logger, "info", f"Applied payment holiday ({holiday.interest_handling.value})",
            loan_id=loan.id, action="holiday_applied",
            extra={'holiday_id': holiday.id, 'interest': interest, 'resulting_months': loan.months}
        )
        self._audit(AuditEventType.HOLIDAY_APPLIED, holiday, {
            'interest_handling': holiday.interest_handling,
            'interest_amount': interest,
            'resulting_balance': loan.current_balance,
            'resulting_months': loan.months,
        })
        return interest

    # Schedule

    def recalculate_schedule(
        self,
        loan: Loan,
        holiday: PaymentHoliday,
        frequency: Optional[FrequencyLike] = None
    ) -> Dict[str, Any]:
        """
        Drop the payments falling inside the holiday and regenerate the
        schedule starting at the holiday end date.
        """
        end_date = holiday.end_date
        schedule = self.generator.recalculate_from(
            loan, holiday.start_date, frequency, tail_start=end_date
        )
        regenerated = [row for row in schedule if row.payment_date >= end_date]
        return {
            'holiday_end_date': end_date,
            'periods': len(regenerated),
            'total_periods': len(schedule),
        }

    def process_event(
        self,
        loan: Loan,
        event: PaymentHolidayEvent,
        frequency: Optional[FrequencyLike] = None
    ) -> PaymentHoliday:
        """Create, approve, activate and apply a holiday in one step"""
        holiday = self.create_from_event(loan, event)
        # Interest accrues on the balance left once earlier payments are made
        self.generator.settle_through(loan, event.event_date)
        self.approve(holiday.id)
        self.activate(holiday.id)
        interest = self.apply_holiday(loan, holiday)
        recalculation = self.recalculate_schedule(loan, holiday, frequency)
        event.outcome.update({
            'holiday_id': holiday.id,
            'interest_handling': holiday.interest_handling.value,
            'interest_amount': interest,
            'resulting_months': loan.months,
            **recalculation,
        })
        return holiday

    # Lookup

    def get_holiday(self, holiday_id: str) -> Optional[PaymentHoliday]:
        with self._lock:
            return self._holidays.get(holiday_id)

    def get_holidays_for_loan(self, loan_id: Optional[str]) -> List[PaymentHoliday]:
        with self._lock:
            holidays = [h for h in self._holidays.values() if h.loan_id == loan_id]
        return sorted(holidays, key=lambda h: h.created_at)

    def get_holiday_history(self, holiday_id: str) -> List[Dict[str, Any]]:
        holiday = self.get_holiday(holiday_id)
        if holiday is None:
            raise InvalidArgumentError(f"Payment holiday {holiday_id} not found")
        return list(holiday.history)

    def _record_history(self, holiday: PaymentHoliday, action: str) -> None:
        holiday.history.append({
            'action': action,
            'status': holiday.status.value,
            'timestamp': _utcnow().isoformat(),
        })

    def _audit(self, event_type: AuditEventType, holiday: PaymentHoliday, metadata: Dict[str, Any]) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type,
                "payment_holiday",
                holiday.id,
                metadata={'loan_id': holiday.loan_id, **metadata}
            )

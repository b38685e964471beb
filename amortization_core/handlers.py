"""
Event Handler Pipeline Module

One handler per borrower event type plus a priority dispatcher. Handlers
validate before they mutate; every applied event is logged and recorded in
the audit trail when one is attached.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple
import logging

from .audit import AuditTrail, AuditEventType
from .config import AmortizationSettings, get_config
from .decimal_math import quantize, round_half_up_int, ZERO
from .events import (
    LoanEvent, LoanEventType, ExtraPaymentEvent, ExtraPaymentStrategy, RateChangeEvent
)
from .exceptions import AmortizationError, InvalidArgumentError, LogicError, MalformedScheduleError
from .logging_config import log_action
from .models import Arrears, Loan, RatePeriod
from .payments import PaymentCalculator, PaymentFrequency


MONTHS_PER_YEAR = Decimal(12)


class LoanEventHandler(ABC):
    """
    Applies one kind of borrower event to a loan.

    Subclasses declare the event types they accept and a priority; higher
    priorities run first when several handlers accept the same event.
    """

    event_types: Tuple[LoanEventType, ...] = ()
    priority: int = 10
    audit_event_type: Optional[AuditEventType] = None

    def __init__(
        self,
        audit_trail: Optional[AuditTrail] = None,
        settings: Optional[AmortizationSettings] = None
    ):
        self.audit_trail = audit_trail
        self._settings = settings
        self.logger = logging.getLogger(f"amortization.handlers.{type(self).__name__}")

    @property
    def settings(self) -> AmortizationSettings:
        return self._settings or get_config()

    def supports(self, event: LoanEvent) -> bool:
        return event.event_type in self.event_types

    def get_priority(self) -> int:
        return self.priority

    def handle(self, loan: Loan, event: LoanEvent) -> Loan:
        """
        Apply the event to the loan and return the same loan instance.

        Raises:
            LogicError: If this handler does not support the event
            InvalidArgumentError: If the event fails validation (loan unchanged)
        """
        if not self.supports(event):
            raise LogicError(
                f"{type(self).__name__} cannot handle event type {event.event_type.value}"
            )

        try:
            outcome = self._apply(loan, event)
        except AmortizationError as e:
            log_action(
                self.logger, "warning", f"Rejected {event.event_type.value} event: {e}",
                loan_id=loan.id, action="event_rejected", event_type=event.event_type.value
            )
            raise

        event.outcome.update(outcome)
        log_action(
            self.logger, "info", f"Applied {event.event_type.value} event",
            loan_id=loan.id, action="event_applied", event_type=event.event_type.value,
            extra=outcome
        )
        if self.audit_trail is not None and self.audit_event_type is not None:
            self.audit_trail.log_event(
                self.audit_event_type,
                "loan",
                loan.id,
                metadata={
                    'event_id': event.id,
                    'event_date': event.event_date,
                    'amount': event.amount,
                    **outcome
                }
            )
        return loan

    @abstractmethod
    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        """Validate, mutate the loan and return the outcome record"""
        pass

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()


class ArrearsPaymentHandler(LoanEventHandler):
    """Clears outstanding arrears first; any remainder reduces the balance"""

    event_types = (LoanEventType.ARREARS_PAYMENT,)
    priority = 100
    audit_event_type = AuditEventType.ARREARS_PAYMENT_APPLIED

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        amount = quantize(event.amount)
        if amount <= ZERO:
            raise InvalidArgumentError(f"Arrears payment must be greater than 0, got: {amount}")

        remaining = amount
        for arrears in loan.active_arrears:
            remaining = arrears.apply_payment(remaining)
            if remaining == ZERO:
                break

        applied_to_balance = min(remaining, loan.current_balance)
        if applied_to_balance > ZERO:
            loan.set_current_balance(loan.current_balance - applied_to_balance)
        else:
            loan.mark_updated()

        return {
            'applied_to_arrears': amount - remaining,
            'applied_to_balance': applied_to_balance,
            'unapplied': remaining - applied_to_balance,
            'remaining_arrears': loan.total_arrears,
            'timestamp': self._timestamp(),
        }


class PenaltyHandler(LoanEventHandler):
    """Books a penalty against the first open arrears record"""

    event_types = (LoanEventType.PENALTY,)
    priority = 90
    audit_event_type = AuditEventType.PENALTY_APPLIED

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        amount = quantize(event.amount)
        if amount <= ZERO:
            raise InvalidArgumentError(f"Penalty must be greater than 0, got: {amount}")

        active = loan.active_arrears
        if active:
            arrears = active[0]
            arrears.add_penalty(amount)
            loan.mark_updated()
        else:
            arrears = Arrears(loan_id=loan.id, penalty_amount=amount)
            loan.add_arrears(arrears)

        return {
            'arrears_id': arrears.id,
            'penalty': amount,
            'arrears_total': arrears.total_amount,
            'timestamp': self._timestamp(),
        }


class RateChangeHandler(LoanEventHandler):
    """
    Starts a new rate period on the event date.

    Periods running on the event date are closed the day before; periods
    that had not yet started by then are superseded and dropped.
    """

    event_types = (LoanEventType.RATE_CHANGE,)
    priority = 80
    audit_event_type = AuditEventType.RATE_CHANGED

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        if isinstance(event, RateChangeEvent):
            new_rate, end_date = event.new_rate, event.end_date
        else:
            new_rate, end_date = event.amount, None

        previous_rate = loan.rate_for_date(event.event_date)
        # Validates rate range and date order before anything on the loan changes
        period = RatePeriod(
            loan_id=loan.id,
            rate=new_rate,
            start_date=event.event_date,
            end_date=end_date
        )

        day_before = event.event_date - timedelta(days=1)
        superseded = [p for p in loan.rate_periods if p.start_date >= event.event_date]
        for existing in loan.rate_periods:
            if existing.start_date < event.event_date and existing.is_active(event.event_date):
                existing.close(day_before)
        for existing in superseded:
            loan.rate_periods.remove(existing)

        loan.add_rate_period(period)

        return {
            'previous_rate': previous_rate,
            'new_rate': period.rate,
            'rate_period_id': period.id,
            'superseded_periods': len(superseded),
            'timestamp': self._timestamp(),
        }


class PartialPaymentEventHandler(LoanEventHandler):
    """Pays less than the scheduled amount; the shortfall goes to arrears"""

    event_types = (LoanEventType.PARTIAL_PAYMENT,)
    priority = 60
    audit_event_type = AuditEventType.PARTIAL_PAYMENT_APPLIED

    def _regular_payment(self, loan: Loan, event: LoanEvent) -> Decimal:
        for row in loan.schedule:
            if row.payment_date == event.event_date:
                return row.payment_amount
        if loan.schedule:
            return loan.schedule[0].payment_amount
        raise MalformedScheduleError(
            f"Loan {loan.id} has no schedule rows to determine the regular payment"
        )

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        amount = quantize(event.amount)
        if amount < ZERO:
            raise InvalidArgumentError(f"Partial payment cannot be negative, got: {amount}")

        regular_payment = self._regular_payment(loan, event)
        if amount > regular_payment:
            raise LogicError(
                f"Partial payment {amount} exceeds regular payment {regular_payment}; "
                f"use an extra payment instead"
            )

        shortfall = quantize(regular_payment - amount)
        arrears_id = None
        if shortfall > ZERO:
            active = loan.active_arrears
            if active:
                arrears = active[0]
                arrears.add_principal(shortfall)
                arrears.set_days_overdue(arrears.days_overdue + self.settings.arrears_days_increment)
                loan.mark_updated()
            else:
                arrears = Arrears(
                    loan_id=loan.id,
                    principal_amount=shortfall,
                    interest_amount=ZERO,
                    days_overdue=0
                )
                loan.add_arrears(arrears)
            arrears_id = arrears.id

        loan.set_current_balance(loan.current_balance - amount)

        return {
            'regular_payment': regular_payment,
            'amount_paid': amount,
            'shortfall': shortfall,
            'arrears_id': arrears_id,
            'timestamp': self._timestamp(),
        }


class ExtraPaymentHandler(LoanEventHandler):
    """
    Applies a payment on top of the schedule.

    reduce_term shortens the loan in proportion to the amount paid;
    reduce_payment keeps the term and lowers the periodic payment.
    """

    event_types = (LoanEventType.EXTRA_PAYMENT,)
    priority = 30
    audit_event_type = AuditEventType.EXTRA_PAYMENT_APPLIED

    @staticmethod
    def strategy_for(event: LoanEvent) -> ExtraPaymentStrategy:
        if isinstance(event, ExtraPaymentEvent):
            return event.strategy
        return ExtraPaymentStrategy.from_notes(event.notes)

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        amount = quantize(event.amount)
        if amount <= ZERO:
            raise InvalidArgumentError(f"Extra payment must be greater than 0, got: {amount}")
        if amount > loan.current_balance:
            raise InvalidArgumentError(
                f"Extra payment {amount} exceeds current balance {loan.current_balance}"
            )

        strategy = self.strategy_for(event)
        monthly_rate = loan.rate_for_date(event.event_date) / MONTHS_PER_YEAR
        balance_before = loan.current_balance
        original_months = loan.months

        loan.set_current_balance(balance_before - amount)

        if strategy == ExtraPaymentStrategy.REDUCE_PAYMENT:
            return self._reduce_payment(loan, amount, balance_before, monthly_rate)
        return self._reduce_term(loan, amount, original_months, monthly_rate)

    def _reduce_term(
        self,
        loan: Loan,
        amount: Decimal,
        original_months: int,
        monthly_rate: Decimal
    ) -> Dict[str, Any]:
        terms_reduction = round_half_up_int(amount / loan.principal * Decimal(original_months))
        # Never below the payments already made plus one more
        new_months = max(loan.payments_made + 1, original_months - terms_reduction)
        months_saved = original_months - new_months
        loan.set_months(new_months)

        interest_savings = quantize(
            quantize(loan.current_balance * monthly_rate) * Decimal(months_saved)
        )

        return {
            'strategy': ExtraPaymentStrategy.REDUCE_TERM.value,
            'extra_payment': amount,
            'resulting_months': new_months,
            'months_saved': months_saved,
            'interest_savings': interest_savings,
            'timestamp': self._timestamp(),
        }

    def _reduce_payment(
        self,
        loan: Loan,
        amount: Decimal,
        balance_before: Decimal,
        monthly_rate: Decimal
    ) -> Dict[str, Any]:
        periods = max(1, loan.payments_remaining)
        old_payment = quantize(PaymentCalculator.annuity_payment(balance_before, monthly_rate, periods))
        if loan.current_balance > ZERO:
            new_payment = quantize(
                PaymentCalculator.annuity_payment(loan.current_balance, monthly_rate, periods)
            )
        else:
            new_payment = ZERO

        payment_reduction = old_payment - new_payment
        interest_savings = max(ZERO, quantize(payment_reduction * Decimal(periods) - amount))

        return {
            'strategy': ExtraPaymentStrategy.REDUCE_PAYMENT.value,
            'extra_payment': amount,
            'resulting_months': loan.months,
            'new_payment': new_payment,
            'payment_reduction': payment_reduction,
            'interest_savings': interest_savings,
            'timestamp': self._timestamp(),
        }


class SkipPaymentHandler(LoanEventHandler):
    """Skips one or more payments for a penalty, extending the term"""

    event_types = (LoanEventType.SKIP_PAYMENT, LoanEventType.SKIP_PAYMENTS)
    priority = 20
    audit_event_type = AuditEventType.PAYMENT_SKIPPED

    def penalty_base(self, loan: Loan, event: LoanEvent) -> Decimal:
        """Payment amount the skip penalty is charged on"""
        if self.settings.skip_penalty_base == "scheduled":
            return PaymentCalculator().calculate(
                loan.principal,
                loan.rate_for_date(event.event_date) * Decimal(100),
                PaymentFrequency.MONTHLY,
                loan.months
            )
        return loan.principal / Decimal(loan.months)

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        payments_to_skip = int(event.amount)
        max_skip = self.settings.max_skip_payments
        if payments_to_skip < 1 or payments_to_skip > max_skip:
            raise InvalidArgumentError(
                f"Payments to skip must be between 1 and {max_skip}, got: {payments_to_skip}"
            )

        penalty = quantize(
            self.penalty_base(loan, event) * self.settings.skip_penalty_rate * Decimal(payments_to_skip)
        )

        loan.set_months(loan.months + payments_to_skip)
        loan.set_current_balance(loan.current_balance + penalty)

        return {
            'payments_skipped': payments_to_skip,
            'penalty': penalty,
            'resulting_months': loan.months,
            'timestamp': self._timestamp(),
        }


class GracePeriodHandler(LoanEventHandler):
    """Grants interest-accruing grace months by extending the term"""

    event_types = (LoanEventType.GRACE_PERIOD, LoanEventType.GRACE)
    priority = 10
    audit_event_type = AuditEventType.GRACE_PERIOD_GRANTED

    def _apply(self, loan: Loan, event: LoanEvent) -> Dict[str, Any]:
        grace_months = int(event.amount)
        if grace_months < 1:
            raise InvalidArgumentError(f"Grace period must be at least 1 month, got: {grace_months}")

        monthly_rate = loan.rate_for_date(event.event_date) / MONTHS_PER_YEAR
        accrued_interest = quantize(
            quantize(loan.current_balance * monthly_rate) * Decimal(grace_months)
        )
        loan.set_months(loan.months + grace_months)

        return {
            'grace_months': grace_months,
            'accrued_interest': accrued_interest,
            'resulting_months': loan.months,
            'timestamp': self._timestamp(),
        }


class LoanEventDispatcher:
    """Routes a loan event to every supporting handler in priority order"""

    def __init__(self, handlers: Optional[List[LoanEventHandler]] = None):
        self._handlers: List[LoanEventHandler] = []
        self._lock = RLock()  # Thread-safe access
        self.logger = logging.getLogger("amortization.dispatcher")
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: LoanEventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)
            self.logger.debug(
                f"Registered handler {type(handler).__name__} with priority {handler.get_priority()}"
            )

    def unregister(self, handler: LoanEventHandler) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
                self.logger.debug(f"Unregistered handler {type(handler).__name__}")
            except ValueError:
                self.logger.warning(f"Handler {type(handler).__name__} was not registered")

    def handlers_for(self, event: LoanEvent) -> List[LoanEventHandler]:
        """Supporting handlers, highest priority first (registration order on ties)"""
        with self._lock:
            matching = [h for h in self._handlers if h.supports(event)]
        return sorted(matching, key=lambda h: h.get_priority(), reverse=True)

    def get_priority(self, event: LoanEvent) -> int:
        """Priority of the first handler that would run for the event"""
        handlers = self.handlers_for(event)
        if not handlers:
            raise LogicError(f"No handler registered for event type {event.event_type.value}")
        return handlers[0].get_priority()

    def dispatch(self, loan: Loan, event: LoanEvent) -> Loan:
        """Apply every supporting handler to the same loan instance"""
        handlers = self.handlers_for(event)
        if not handlers:
            raise LogicError(f"No handler registered for event type {event.event_type.value}")

        self.logger.debug(
            f"Dispatching {event.event_type.value} for loan {loan.id} to "
            f"{', '.join(type(h).__name__ for h in handlers)}"
        )
        for handler in handlers:
            loan = handler.handle(loan, event)
        return loan

    def get_handler_count(self) -> int:
        with self._lock:
            return len(self._handlers)


def create_default_dispatcher(
    audit_trail: Optional[AuditTrail] = None,
    settings: Optional[AmortizationSettings] = None
) -> LoanEventDispatcher:
    """Dispatcher with every standard handler registered"""
    return LoanEventDispatcher([
        ArrearsPaymentHandler(audit_trail, settings),
        PenaltyHandler(audit_trail, settings),
        RateChangeHandler(audit_trail, settings),
        PartialPaymentEventHandler(audit_trail, settings),
        ExtraPaymentHandler(audit_trail, settings),
        SkipPaymentHandler(audit_trail, settings),
        GracePeriodHandler(audit_trail, settings),
    ])

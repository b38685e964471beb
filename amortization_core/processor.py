"""
Loan Event Processor Module

Orchestrates the core for a caller: originates loans with their initial
schedule, replays batches of borrower events in a deterministic order,
regenerates the schedule and persists the result through the injected
repository.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional
import logging
import threading
import uuid

from .audit import AuditTrail, AuditEventType
from .config import AmortizationSettings, get_config
from .decimal_math import DecimalLike
from .events import LoanEvent, LoanEventType, PaymentHolidayEvent
from .exceptions import InvalidArgumentError, LogicError
from .handlers import LoanEventDispatcher, create_default_dispatcher
from .holidays import PaymentHolidayHandler
from .logging_config import log_action
from .models import Loan, ScheduleRow
from .payments import FrequencyLike, PaymentFrequency
from .repository import LoanRepository
from .schedule import ScheduleGenerator
from .strategies import BalloonPaymentStrategy, VariableRateStrategy


# Holidays run after every dispatched event on the same date
HOLIDAY_PRIORITY = 0


class LoanEventProcessor:
    """
    Loan processing with per-loan serialization.

    Events for one loan are applied one batch at a time; the loan is read
    from the repository, mutated, rescheduled and written back atomically.
    """

    def __init__(
        self,
        repository: LoanRepository,
        dispatcher: Optional[LoanEventDispatcher] = None,
        generator: Optional[ScheduleGenerator] = None,
        audit_trail: Optional[AuditTrail] = None,
        payment_frequency: Optional[FrequencyLike] = None,
        settings: Optional[AmortizationSettings] = None,
        holiday_handler: Optional[PaymentHolidayHandler] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.settings = settings or get_config()
        self.dispatcher = dispatcher or create_default_dispatcher(audit_trail, settings)
        self.generator = generator or ScheduleGenerator()
        self.holiday_handler = holiday_handler or PaymentHolidayHandler(
            self.generator, audit_trail, settings
        )
        self.payment_frequency = PaymentFrequency.from_value(
            payment_frequency or self.settings.default_payment_frequency
        )
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.logger = logging.getLogger("amortization.processor")

    def _loan_lock(self, loan_id: str) -> threading.Lock:
        with self._locks_guard:
            if loan_id not in self._locks:
                self._locks[loan_id] = threading.Lock()
            return self._locks[loan_id]

    def build_schedule(self, loan: Loan) -> List[ScheduleRow]:
        """Initial schedule for a loan, picking the strategy its features need"""
        balloon = BalloonPaymentStrategy()
        if balloon.supports(loan):
            return balloon.calculate_schedule(loan)
        variable = VariableRateStrategy()
        if variable.supports(loan):
            return variable.calculate_schedule(loan)
        return self.generator.generate_for_loan(loan, self.payment_frequency)

    def originate(
        self,
        principal: DecimalLike,
        annual_rate: DecimalLike,
        months: int,
        start_date: Optional[date] = None,
        loan_id: Optional[str] = None,
        balloon_amount: Optional[DecimalLike] = None
    ) -> Loan:
        """
        Create a loan, generate its schedule and save it.

        Args:
            principal: Amount financed
            annual_rate: Annual rate as a fraction (0.05 for 5%)
            months: Number of payment periods
            start_date: First payment date (defaults to today)
            loan_id: Identifier to use (generated if omitted)
            balloon_amount: Final balloon payment, if any

        Returns:
            The saved loan with its schedule
        """
        loan = Loan(
            id=loan_id or str(uuid.uuid4()),
            principal=principal,
            annual_rate=annual_rate,
            months=months,
            start_date=start_date or date.today(),
            balloon_amount=balloon_amount
        )
        loan.set_schedule(self.build_schedule(loan))

        with self.repository.atomic():
            self.repository.save(loan)

        log_action(
            self.logger, "info", f"Originated loan {loan}",
            loan_id=loan.id, action="loan_originated",
            extra={'payments': len(loan.schedule)}
        )
        if self.audit_trail is not None:
            self.audit_trail.log_event(
                AuditEventType.LOAN_ORIGINATED,
                "loan",
                loan.id,
                metadata={
                    'principal': loan.principal,
                    'annual_rate': loan.annual_rate,
                    'months': loan.months,
                    'start_date': loan.start_date,
                    'balloon_amount': loan.balloon_amount,
                }
            )
        return loan

    def event_priority(self, event: LoanEvent) -> int:
        if event.event_type == LoanEventType.PAYMENT_HOLIDAY:
            return HOLIDAY_PRIORITY
        return self.dispatcher.get_priority(event)

    def order_events(self, events: Iterable[LoanEvent]) -> List[LoanEvent]:
        """Events by date, then highest handler priority; ties keep input order"""
        return sorted(events, key=lambda e: (e.event_date, -self.event_priority(e)))

    def apply_event(self, loan_id: str, event: LoanEvent) -> Loan:
        return self.apply_events(loan_id, [event])

    def apply_events(self, loan_id: str, events: Iterable[LoanEvent]) -> Loan:
        """
        Apply a batch of events to a loan and regenerate its schedule.

        Scheduled payments dated before each event are recorded as made
        before the event applies, and the schedule is rebuilt from the event
        date after it; payment holidays rebuild their own part of the
        schedule. Nothing is saved if any event is rejected.

        Raises:
            LoanNotFoundError: If the loan does not exist
            InvalidArgumentError: If an event targets a different loan or fails validation
            LogicError: If no handler supports an event
        """
        events = list(events)
        for event in events:
            if event.loan_id is not None and event.loan_id != loan_id:
                raise InvalidArgumentError(
                    f"Event {event.id} targets loan {event.loan_id}, not {loan_id}"
                )
        ordered = self.order_events(events)

        with self._loan_lock(loan_id):
            loan = self.repository.get(loan_id)

            dispatched_dates = []
            for event in ordered:
                if isinstance(event, PaymentHolidayEvent):
                    self.holiday_handler.process_event(loan, event, self.payment_frequency)
                else:
                    # Payments due before the event are made before it applies
                    self.generator.settle_through(loan, event.event_date)
                    loan = self.dispatcher.dispatch(loan, event)
                    self.generator.recalculate_from(loan, event.event_date, self.payment_frequency)
                    dispatched_dates.append(event.event_date)

            if dispatched_dates:
                recalculate_from = min(dispatched_dates)
                if self.audit_trail is not None:
                    self.audit_trail.log_event(
                        AuditEventType.SCHEDULE_RECALCULATED,
                        "loan",
                        loan.id,
                        metadata={
                            'from_date': recalculate_from,
                            'events': len(ordered),
                            'payments': len(loan.schedule),
                            'payments_made': loan.payments_made,
                            'current_balance': loan.current_balance,
                        }
                    )

            with self.repository.atomic():
                self.repository.save(loan)

        log_action(
            self.logger, "info", f"Applied {len(ordered)} events",
            loan_id=loan_id, action="events_applied",
            extra={
                'event_types': [e.event_type.value for e in ordered],
                'current_balance': loan.current_balance,
                'months': loan.months,
            }
        )
        return loan

    def get_loan(self, loan_id: str) -> Loan:
        return self.repository.get(loan_id)

    def get_schedule(self, loan_id: str) -> List[ScheduleRow]:
        return list(self.repository.get(loan_id).schedule)

    def get_summary(self, loan_id: str) -> Dict[str, object]:
        loan = self.repository.get(loan_id)
        summary = ScheduleGenerator.summarize(loan.schedule)
        summary.update({
            'loan_id': loan.id,
            'current_balance': loan.current_balance,
            'months': loan.months,
            'total_arrears': loan.total_arrears,
        })
        return summary

    def get_audit_history(self, loan_id: str) -> List[Dict[str, Any]]:
        """
        Audit entries recorded against a loan, oldest first.

        The whole chain is verified before anything is returned.

        Raises:
            LogicError: If no audit trail is attached or the chain fails verification
        """
        if self.audit_trail is None:
            raise LogicError("No audit trail attached to this processor")

        integrity = self.audit_trail.verify_integrity()
        if not integrity['valid']:
            log_action(
                self.logger, "error", "Audit chain failed verification",
                loan_id=loan_id, action="audit_verification_failed",
                extra={
                    'hash_errors': integrity['hash_errors'],
                    'chain_breaks': integrity['chain_breaks'],
                }
            )
            raise LogicError(
                f"Audit chain failed verification: {len(integrity['hash_errors'])} altered, "
                f"{len(integrity['chain_breaks'])} broken links"
            )

        return [event.to_dict() for event in self.audit_trail.get_events_for_entity("loan", loan_id)]

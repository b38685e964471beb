"""
Test suite for holidays module

Tests the payment holiday workflow, interest treatments and schedule
regeneration around the holiday window.
"""

import pytest
from decimal import Decimal
from datetime import date

from amortization_core.audit import AuditTrail, AuditEventType
from amortization_core.events import InterestHandling, PaymentHolidayEvent
from amortization_core.exceptions import InvalidArgumentError, LogicError
from amortization_core.holidays import PaymentHolidayHandler, HolidayStatus
from amortization_core.interest import PeriodicInterestCalculator
from amortization_core.models import Loan
from amortization_core.schedule import ScheduleGenerator


class TestPaymentHolidayWorkflow:
    """Test holiday creation and status transitions"""

    def setup_method(self):
        self.handler = PaymentHolidayHandler()
        self.loan = Loan(
            id="LOAN001",
            principal=Decimal('10000'),
            annual_rate=Decimal('0.05'),
            months=60,
            start_date=date(2025, 1, 1)
        )

    def test_create_pending_holiday(self):
        holiday = self.handler.create_holiday(self.loan, 3, start_date=date(2025, 3, 1))

        assert holiday.status == HolidayStatus.PENDING
        assert holiday.interest_handling == InterestHandling.ACCRUAL
        assert holiday.end_date == date(2025, 6, 1)
        assert not holiday.is_applied
        assert self.handler.get_holiday(holiday.id) is holiday

    @pytest.mark.parametrize("months", [0, 13])
    def test_months_out_of_range_rejected(self, months):
        with pytest.raises(InvalidArgumentError, match="Holiday months"):
            self.handler.create_holiday(self.loan, months)

    def test_months_beyond_term_rejected(self):
        short_loan = Loan(id="SHORT", principal=Decimal('1000'), annual_rate=Decimal('0.05'), months=6)
        with pytest.raises(InvalidArgumentError):
            self.handler.create_holiday(short_loan, 8)

    def test_unknown_interest_handling_rejected(self):
        with pytest.raises(InvalidArgumentError, match="Interest handling"):
            self.handler.create_holiday(self.loan, 2, interest_handling="forgive")

    def test_linear_workflow(self):
        holiday = self.handler.create_holiday(self.loan, 2)
        self.handler.approve(holiday.id)
        assert holiday.approved_at is not None
        self.handler.activate(holiday.id)
        assert holiday.activated_at is not None
        self.handler.complete(holiday.id)
        assert holiday.status == HolidayStatus.COMPLETED
        assert holiday.completed_at is not None

        actions = [entry['action'] for entry in self.handler.get_holiday_history(holiday.id)]
        assert actions == ['created', 'approved', 'active', 'completed']

    def test_skipping_a_state_rejected(self):
        holiday = self.handler.create_holiday(self.loan, 2)
        with pytest.raises(LogicError, match="pending to active"):
            self.handler.activate(holiday.id)
        self.handler.approve(holiday.id)
        with pytest.raises(LogicError):
            self.handler.approve(holiday.id)
        assert holiday.status == HolidayStatus.APPROVED

    def test_unknown_holiday(self):
        with pytest.raises(InvalidArgumentError, match="not found"):
            self.handler.approve("missing")
        with pytest.raises(InvalidArgumentError):
            self.handler.get_holiday_history("missing")

    def test_holidays_for_loan(self):
        first = self.handler.create_holiday(self.loan, 1)
        second = self.handler.create_holiday(self.loan, 2)
        assert self.handler.get_holidays_for_loan("LOAN001") == [first, second]
        assert self.handler.get_holidays_for_loan("OTHER") == []

    def test_handlers_do_not_share_holidays(self):
        holiday = self.handler.create_holiday(self.loan, 1)
        assert PaymentHolidayHandler().get_holiday(holiday.id) is None


class TestPaymentHolidayApplication:
    """Test interest treatment and schedule regeneration"""

    def setup_method(self):
        self.audit_trail = AuditTrail()
        self.handler = PaymentHolidayHandler(audit_trail=self.audit_trail)
        self.loan = Loan(
            id="LOAN001",
            principal=Decimal('10000'),
            annual_rate=Decimal('0.05'),
            months=60,
            start_date=date(2025, 1, 1)
        )
        self.loan.set_schedule(ScheduleGenerator().generate_for_loan(self.loan, 'monthly'))

    def active_holiday(self, months, handling):
        holiday = self.handler.create_holiday(
            self.loan, months, handling, start_date=date(2025, 3, 1)
        )
        self.handler.approve(holiday.id)
        self.handler.activate(holiday.id)
        return holiday

    def test_monthly_interest(self):
        assert self.handler.calculate_monthly_interest(self.loan) == Decimal('41.67')
        assert self.handler.calculate_accrued_interest(self.loan, 3) == Decimal('125.01')
        assert self.handler.calculate_deferred_interest(self.loan, 3) == Decimal('125.01')

    def test_accrual_adds_interest_to_balance(self):
        holiday = self.active_holiday(3, InterestHandling.ACCRUAL)
        interest = self.handler.apply_holiday(self.loan, holiday)

        assert interest == Decimal('125.01')
        assert self.loan.current_balance == Decimal('10125.01')
        assert self.loan.months == 60
        assert holiday.interest_amount == Decimal('125.01')

    def test_deferral_extends_term(self):
        holiday = self.active_holiday(3, InterestHandling.DEFERRAL)
        self.handler.apply_holiday(self.loan, holiday)

        assert self.loan.current_balance == Decimal('10125.01')
        assert self.loan.months == 63

    def test_apply_requires_active_status(self):
        holiday = self.handler.create_holiday(self.loan, 3, start_date=date(2025, 3, 1))
        with pytest.raises(LogicError, match="must be active"):
            self.handler.apply_holiday(self.loan, holiday)
        assert self.loan.current_balance == Decimal('10000.00')

    def test_apply_only_once(self):
        holiday = self.active_holiday(3, InterestHandling.ACCRUAL)
        self.handler.apply_holiday(self.loan, holiday)
        with pytest.raises(LogicError, match="already been applied"):
            self.handler.apply_holiday(self.loan, holiday)
        assert self.loan.current_balance == Decimal('10125.01')

    def test_apply_to_other_loan_rejected(self):
        holiday = self.active_holiday(3, InterestHandling.ACCRUAL)
        other = Loan(id="OTHER", principal=Decimal('5000'), annual_rate=Decimal('0.05'), months=24)
        with pytest.raises(InvalidArgumentError, match="different loan"):
            self.handler.apply_holiday(other, holiday)

    def test_schedule_resumes_after_holiday(self):
        holiday = self.active_holiday(3, InterestHandling.ACCRUAL)
        self.handler.apply_holiday(self.loan, holiday)
        result = self.handler.recalculate_schedule(self.loan, holiday, 'monthly')

        # Jan 1 and Jan 31 precede the holiday
        assert result['holiday_end_date'] == date(2025, 6, 1)
        assert result['periods'] == 58
        assert result['total_periods'] == 60

        schedule = self.loan.schedule
        assert schedule[1].payment_date == date(2025, 1, 31)
        assert schedule[2].payment_date == date(2025, 6, 1)
        assert schedule[2].payment_number == 3
        assert schedule[-1].remaining_balance == Decimal('0.00')

    def test_process_event(self):
        paid_down = self.loan.schedule[1].remaining_balance
        event = PaymentHolidayEvent(
            loan_id="LOAN001", event_date=date(2025, 3, 1), months=3,
            interest_handling=InterestHandling.DEFERRAL, reason="relocation"
        )
        holiday = self.handler.process_event(self.loan, event, 'monthly')

        # Jan 1 and Jan 31 are paid before the holiday starts
        interest = PeriodicInterestCalculator().calculate(paid_down, 5, 'monthly') * 3
        assert holiday.status == HolidayStatus.ACTIVE
        assert holiday.reason == "relocation"
        assert self.loan.payments_made == 2
        assert event.outcome['interest_amount'] == interest
        assert event.outcome['resulting_months'] == 63
        assert event.outcome['total_periods'] == 63
        assert len(self.loan.schedule) == 63

        schedule = self.loan.schedule
        assert schedule[1].remaining_balance + interest - schedule[2].principal_amount \
            == schedule[2].remaining_balance
        for previous, row in zip(schedule[2:], schedule[3:]):
            assert previous.remaining_balance - row.principal_amount == row.remaining_balance
        assert schedule[-1].remaining_balance == Decimal('0.00')

    def test_audit_records(self):
        holiday = self.active_holiday(2, InterestHandling.ACCRUAL)
        self.handler.apply_holiday(self.loan, holiday)

        events = self.audit_trail.get_events_for_entity("payment_holiday", holiday.id)
        assert [e.event_type for e in events] == [
            AuditEventType.HOLIDAY_CREATED,
            AuditEventType.HOLIDAY_STATUS_CHANGED,
            AuditEventType.HOLIDAY_STATUS_CHANGED,
            AuditEventType.HOLIDAY_APPLIED,
        ]
        assert events[1].metadata['to_status'] == 'approved'
        assert events[-1].metadata['interest_amount'] == '83.34'
        assert events[-1].metadata['loan_id'] == 'LOAN001'

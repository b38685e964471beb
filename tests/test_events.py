"""
Test suite for events module

Tests event construction, variant selection and legacy note parsing.
"""

import pytest
from decimal import Decimal
from datetime import date

from amortization_core.events import (
    LoanEvent, LoanEventType, ExtraPaymentStrategy, InterestHandling,
    SkipPaymentEvent, ExtraPaymentEvent, RateChangeEvent, GracePeriodEvent,
    PaymentHolidayEvent, PenaltyEvent, make_event
)
from amortization_core.exceptions import InvalidArgumentError


class TestLoanEvent:
    """Test base LoanEvent"""

    def test_coerces_type_date_and_amount(self):
        event = LoanEvent(event_type="penalty", loan_id="L1", event_date="2025-03-01", amount=12.5)
        assert event.event_type is LoanEventType.PENALTY
        assert event.event_date == date(2025, 3, 1)
        assert event.amount == Decimal('12.5')
        assert event.type_code == "penalty"

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidArgumentError, match="Unknown event type"):
            LoanEvent(event_type="refinance", loan_id="L1", event_date=date(2025, 1, 1))

    def test_invalid_date_rejected(self):
        with pytest.raises(InvalidArgumentError, match="Invalid event date"):
            LoanEvent(event_type="penalty", loan_id="L1", event_date="03/01/2025")

    def test_each_event_gets_unique_id(self):
        first = PenaltyEvent(loan_id="L1", event_date=date(2025, 1, 1), amount=Decimal('5'))
        second = PenaltyEvent(loan_id="L1", event_date=date(2025, 1, 1), amount=Decimal('5'))
        assert first.id != second.id

    def test_to_dict(self):
        event = PenaltyEvent(loan_id="L1", event_date=date(2025, 1, 1), amount=Decimal('5.00'))
        data = event.to_dict()
        assert data['event_type'] == 'penalty'
        assert data['event_date'] == '2025-01-01'
        assert data['amount'] == '5.00'
        assert data['outcome'] == {}


class TestEventVariants:
    """Test typed event variants"""

    def test_skip_payment_count(self):
        event = SkipPaymentEvent(loan_id="L1", event_date=date(2025, 1, 1), amount=Decimal('3'))
        assert event.event_type is LoanEventType.SKIP_PAYMENT
        assert event.payments_to_skip == 3

    def test_grace_months(self):
        event = GracePeriodEvent(loan_id="L1", event_date=date(2025, 1, 1), amount=2)
        assert event.months == 2

    def test_rate_change_fields(self):
        event = RateChangeEvent(
            loan_id="L1", event_date=date(2025, 1, 1), new_rate='0.065', end_date='2025-12-31'
        )
        assert event.new_rate == Decimal('0.065')
        assert event.end_date == date(2025, 12, 31)
        assert event.to_dict()['new_rate'] == '0.065'

    def test_extra_payment_strategy_coerced(self):
        event = ExtraPaymentEvent(
            loan_id="L1", event_date=date(2025, 1, 1), amount=100, strategy="reduce_payment"
        )
        assert event.strategy is ExtraPaymentStrategy.REDUCE_PAYMENT
        assert event.to_dict()['strategy'] == 'reduce_payment'

    def test_extra_payment_unknown_strategy(self):
        with pytest.raises(InvalidArgumentError, match="strategy"):
            ExtraPaymentEvent(loan_id="L1", event_date=date(2025, 1, 1), strategy="reduce_rate")

    def test_holiday_interest_handling(self):
        event = PaymentHolidayEvent(
            loan_id="L1", event_date=date(2025, 1, 1), months=3, interest_handling="deferral"
        )
        assert event.interest_handling is InterestHandling.DEFERRAL
        with pytest.raises(InvalidArgumentError, match="accrual"):
            PaymentHolidayEvent(loan_id="L1", event_date=date(2025, 1, 1), interest_handling="waive")


class TestMakeEvent:
    """Test make_event factory"""

    @pytest.mark.parametrize("code,variant", [
        ("skip_payment", SkipPaymentEvent),
        ("skip_payments", SkipPaymentEvent),
        ("grace_period", GracePeriodEvent),
        ("grace", GracePeriodEvent),
        ("penalty", PenaltyEvent),
        ("payment_holiday", PaymentHolidayEvent),
    ])
    def test_variant_selected_by_type(self, code, variant):
        event = make_event(code, "L1", date(2025, 1, 1), amount=Decimal('1'))
        assert isinstance(event, variant)
        assert event.type_code == code

    def test_unknown_type(self):
        with pytest.raises(InvalidArgumentError, match="Unknown event type: foo"):
            make_event("foo", "L1", date(2025, 1, 1))

    def test_extra_payment_strategy_from_notes(self):
        event = make_event("extra_payment", "L1", date(2025, 1, 1), Decimal('500'),
                           notes="borrower asked to reduce_payment")
        assert event.strategy is ExtraPaymentStrategy.REDUCE_PAYMENT

    def test_extra_payment_defaults_to_reduce_term(self):
        event = make_event("extra_payment", "L1", date(2025, 1, 1), Decimal('500'))
        assert event.strategy is ExtraPaymentStrategy.REDUCE_TERM

    def test_explicit_strategy_wins_over_notes(self):
        event = make_event("extra_payment", "L1", date(2025, 1, 1), Decimal('500'),
                           notes="reduce_payment", strategy=ExtraPaymentStrategy.REDUCE_TERM)
        assert event.strategy is ExtraPaymentStrategy.REDUCE_TERM

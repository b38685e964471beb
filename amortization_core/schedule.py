"""
Amortization Schedule Module

Builds period-by-period amortization schedules and regenerates the tail of
a loan's schedule after borrower events change its balance, rate or term.
"""

import calendar
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional

from .config import get_config
from .decimal_math import DecimalLike, quantize, ZERO, HUNDRED
from .exceptions import InvalidArgumentError
from .interest import PeriodicInterestCalculator
from .models import Loan, ScheduleRow
from .payments import PaymentCalculator, FrequencyLike


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class ScheduleGenerator:
    """
    Drives PaymentCalculator and PeriodicInterestCalculator across the
    payment periods of a loan.

    ``generate_schedule`` is pure: identical arguments always produce an
    identical list of rows.
    """

    def __init__(
        self,
        payment_calculator: Optional[PaymentCalculator] = None,
        interest_calculator: Optional[PeriodicInterestCalculator] = None
    ):
        self.payment_calculator = payment_calculator or PaymentCalculator()
        self.interest_calculator = interest_calculator or PeriodicInterestCalculator()
        self.logger = logging.getLogger("amortization.schedule")

    def generate_schedule(
        self,
        principal: DecimalLike,
        annual_rate: DecimalLike,
        payment_frequency: FrequencyLike,
        number_of_payments: int,
        start_date: Optional[date] = None,
        interest_calc_frequency: Optional[FrequencyLike] = None
    ) -> List[ScheduleRow]:
        """
        Generate a full amortization schedule.

        Args:
            principal: Amount financed
            annual_rate: Annual rate as a percentage (5.0 for 5%)
            payment_frequency: Payment frequency name or enum
            number_of_payments: Number of rows to produce
            start_date: Date of the first payment (defaults to today)
            interest_calc_frequency: Frequency used for interest (defaults to payment_frequency)

        Returns:
            Rows numbered 1..number_of_payments, the last ending at 0.00
        """
        # Validates principal, term, rate and frequency before any row is built
        payment_amount = self.payment_calculator.calculate(
            principal, annual_rate, payment_frequency, number_of_payments
        )
        if start_date is None:
            start_date = date.today()
        if interest_calc_frequency is None:
            interest_calc_frequency = payment_frequency

        interval = timedelta(days=self.payment_calculator.get_payment_interval_days(payment_frequency))
        remaining_balance = quantize(principal)
        payment_date = start_date
        schedule = []

        for payment_num in range(1, number_of_payments + 1):
            interest_amount = self.interest_calculator.calculate(
                remaining_balance, annual_rate, interest_calc_frequency
            )
            period_payment = payment_amount
            principal_amount = period_payment - interest_amount

            # Ensure we don't overpay before the final payment
            if principal_amount > remaining_balance:
                principal_amount = remaining_balance
                period_payment = principal_amount + interest_amount

            # Final payment settles the exact remaining balance
            if payment_num == number_of_payments:
                principal_amount = remaining_balance
                period_payment = principal_amount + interest_amount

            remaining_balance = max(ZERO, remaining_balance - principal_amount)

            schedule.append(ScheduleRow(
                payment_number=payment_num,
                payment_date=payment_date,
                payment_amount=period_payment,
                interest_amount=interest_amount,
                principal_amount=principal_amount,
                remaining_balance=remaining_balance
            ))

            payment_date = payment_date + interval

        return schedule

    def generate_for_loan(
        self,
        loan: Loan,
        frequency: Optional[FrequencyLike] = None
    ) -> List[ScheduleRow]:
        """Schedule for the loan's outstanding balance over its remaining term"""
        if frequency is None:
            frequency = get_config().default_payment_frequency

        if loan.current_balance <= ZERO or loan.payments_remaining <= 0:
            return []

        return self.generate_schedule(
            loan.current_balance,
            loan.annual_rate * HUNDRED,
            frequency,
            loan.payments_remaining,
            start_date=loan.start_date
        )

    @staticmethod
    def due_rows(loan: Loan, on_date: date) -> List[ScheduleRow]:
        """Scheduled rows dated before on_date not yet recorded as paid"""
        due = []
        for row in loan.schedule[loan.payments_made:]:
            if row.payment_date >= on_date:
                break
            due.append(row)
        return due

    def settle_through(self, loan: Loan, on_date: date) -> int:
        """
        Record every scheduled payment falling before on_date as made.

        Each settled row lowers the loan's balance by its principal portion,
        so events dated on_date see the balance actually outstanding then.

        Returns:
            Number of payments recorded
        """
        due = self.due_rows(loan, on_date)
        for row in due:
            loan.record_payment(row.principal_amount)
        if due:
            self.logger.debug(
                f"Settled {len(due)} scheduled payments for loan {loan.id} "
                f"before {on_date.isoformat()}, balance {loan.current_balance}"
            )
        return len(due)

    def recalculate_from(
        self,
        loan: Loan,
        from_date: date,
        frequency: Optional[FrequencyLike] = None,
        tail_start: Optional[date] = None
    ) -> List[ScheduleRow]:
        """
        Regenerate the loan's schedule from from_date forward.

        Rows dated before from_date, and any already recorded as paid, are
        kept as they are; the unpaid ones among them are settled first, so
        the loan's current balance is what remains after the kept rows plus
        whatever events changed it. The tail is built from that balance at
        the rate effective on from_date, over whatever term remains after the
        kept rows, and numbered on from the last kept row. The combined
        schedule is stored on the loan.

        The first regenerated payment falls on tail_start when given, else on
        the date of the first replaced row (or from_date if none remain).

        Raises:
            InvalidArgumentError: If a balance remains but no periods do (loan unchanged)
        """
        if frequency is None:
            frequency = get_config().default_payment_frequency

        due = self.due_rows(loan, from_date)
        kept = loan.schedule[:loan.payments_made + len(due)]
        replaced = loan.schedule[len(kept):]
        if tail_start is None:
            tail_start = replaced[0].payment_date if replaced else from_date
        remaining_periods = loan.months - len(kept)
        balance = max(ZERO, loan.current_balance - sum((row.principal_amount for row in due), ZERO))

        tail: List[ScheduleRow] = []
        if balance > ZERO:
            if remaining_periods <= 0:
                raise InvalidArgumentError(
                    f"No periods left to amortize balance {balance} "
                    f"after {len(kept)} kept rows of a {loan.months}-month term"
                )
            rate_percent = loan.rate_for_date(from_date) * HUNDRED
            tail = self.generate_schedule(
                balance,
                rate_percent,
                frequency,
                remaining_periods,
                start_date=tail_start
            )

        offset = len(kept)
        renumbered = [replace(row, payment_number=offset + row.payment_number) for row in tail]

        for row in due:
            loan.record_payment(row.principal_amount)
        schedule = kept + renumbered
        loan.set_schedule(schedule)
        self.logger.debug(
            f"Recalculated schedule for loan {loan.id} from {from_date.isoformat()}: "
            f"{len(kept)} kept, {len(renumbered)} regenerated"
        )
        return schedule

    @staticmethod
    def summarize(rows: List[ScheduleRow]) -> Dict[str, object]:
        """Totals across a schedule"""
        total_payments = sum((row.payment_amount for row in rows), ZERO)
        total_interest = sum((row.interest_amount for row in rows), ZERO)
        total_principal = sum((row.principal_amount for row in rows), ZERO)
        return {
            'number_of_payments': len(rows),
            'total_payments': quantize(total_payments),
            'total_interest': quantize(total_interest),
            'total_principal': quantize(total_principal),
            'final_payment_date': rows[-1].payment_date if rows else None,
        }

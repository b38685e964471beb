"""
Schedule Strategies Module

Alternative monthly schedule shapes for loans that do not fit the plain
fixed-payment annuity: balloon loans and loans with variable rate periods.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import List

from .decimal_math import quantize, ZERO, ONE
from .exceptions import InvalidArgumentError, LogicError
from .models import Loan, ScheduleRow
from .payments import PaymentCalculator
from .schedule import add_months


MONTHS_PER_YEAR = Decimal(12)


class ScheduleStrategy(ABC):
    """Monthly schedule strategy selected by loan features"""

    @abstractmethod
    def supports(self, loan: Loan) -> bool:
        pass

    @abstractmethod
    def calculate_payment(self, loan: Loan) -> Decimal:
        pass

    @abstractmethod
    def calculate_schedule(self, loan: Loan) -> List[ScheduleRow]:
        pass

    def _require_support(self, loan: Loan) -> None:
        if not self.supports(loan):
            raise LogicError(f"{type(self).__name__} does not support loan {loan}")

    @staticmethod
    def _periods(loan: Loan) -> int:
        return max(1, loan.payments_remaining)


class BalloonPaymentStrategy(ScheduleStrategy):
    """
    Level payments that leave ``balloon_amount`` outstanding until the final
    period, where the remaining balance is settled in one payment.
    """

    def supports(self, loan: Loan) -> bool:
        return loan.has_balloon_payment

    def calculate_payment(self, loan: Loan) -> Decimal:
        """
        PMT with a future value: (P - B(1+r)^-n) * r / (1 - (1+r)^-n)
        """
        self._require_support(loan)
        if loan.balloon_amount >= loan.current_balance:
            raise InvalidArgumentError(
                f"Balloon amount {loan.balloon_amount} must be less than "
                f"outstanding balance {loan.current_balance}"
            )

        principal = loan.current_balance
        balloon = loan.balloon_amount
        periods = self._periods(loan)
        monthly_rate = loan.annual_rate / MONTHS_PER_YEAR

        if monthly_rate == ZERO:
            return quantize((principal - balloon) / Decimal(periods))

        discount = (ONE + monthly_rate) ** -periods
        return quantize((principal - balloon * discount) * monthly_rate / (ONE - discount))

    def calculate_schedule(self, loan: Loan) -> List[ScheduleRow]:
        payment_amount = self.calculate_payment(loan)
        periods = self._periods(loan)
        monthly_rate = loan.annual_rate / MONTHS_PER_YEAR
        remaining_balance = loan.current_balance
        schedule = []

        for payment_num in range(1, periods + 1):
            interest_amount = quantize(remaining_balance * monthly_rate)
            principal_amount = payment_amount - interest_amount
            balloon_amount = None

            if payment_num == periods:
                principal_amount = remaining_balance
                balloon_amount = loan.balloon_amount
            elif principal_amount > remaining_balance:
                principal_amount = remaining_balance

            remaining_balance = max(ZERO, remaining_balance - principal_amount)
            schedule.append(ScheduleRow(
                payment_number=payment_num,
                payment_date=add_months(loan.start_date, payment_num - 1),
                payment_amount=principal_amount + interest_amount,
                interest_amount=interest_amount,
                principal_amount=principal_amount,
                remaining_balance=remaining_balance,
                balloon_amount=balloon_amount
            ))

        return schedule


class VariableRateStrategy(ScheduleStrategy):
    """
    Level payment sized at the average of the loan's rate periods, with each
    period's interest charged at the rate in force on its payment date.
    """

    def supports(self, loan: Loan) -> bool:
        return bool(loan.rate_periods)

    def average_rate(self, loan: Loan) -> Decimal:
        self._require_support(loan)
        total = sum((period.rate for period in loan.rate_periods), ZERO)
        return total / Decimal(len(loan.rate_periods))

    def calculate_payment(self, loan: Loan) -> Decimal:
        monthly_rate = self.average_rate(loan) / MONTHS_PER_YEAR
        return quantize(PaymentCalculator.annuity_payment(
            loan.current_balance, monthly_rate, self._periods(loan)
        ))

    def calculate_schedule(self, loan: Loan) -> List[ScheduleRow]:
        payment_amount = self.calculate_payment(loan)
        periods = self._periods(loan)
        remaining_balance = loan.current_balance
        schedule = []

        for payment_num in range(1, periods + 1):
            payment_date: date = add_months(loan.start_date, payment_num - 1)
            annual_rate = loan.rate_for_date(payment_date)
            interest_amount = quantize(remaining_balance * annual_rate / MONTHS_PER_YEAR)
            principal_amount = payment_amount - interest_amount

            if payment_num == periods or principal_amount > remaining_balance:
                principal_amount = remaining_balance

            remaining_balance = max(ZERO, remaining_balance - principal_amount)
            schedule.append(ScheduleRow(
                payment_number=payment_num,
                payment_date=payment_date,
                payment_amount=principal_amount + interest_amount,
                interest_amount=interest_amount,
                principal_amount=principal_amount,
                remaining_balance=remaining_balance,
                annual_rate=annual_rate
            ))

        return schedule

"""
Payment Calculation Module

Fixed periodic payment via the annuity (PMT) formula and the
frequency-to-periods lookup that every rate and interval conversion uses.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Union

from .decimal_math import DecimalLike, to_decimal, quantize, round_half_up_int, ZERO, ONE, HUNDRED
from .exceptions import InvalidArgumentError


class PaymentFrequency(Enum):
    """Payment frequencies with their periods per year"""
    MONTHLY = ("monthly", 12)
    BIWEEKLY = ("biweekly", 26)
    WEEKLY = ("weekly", 52)
    DAILY = ("daily", 365)
    SEMIANNUAL = ("semiannual", 2)
    ANNUAL = ("annual", 1)

    def __init__(self, code: str, periods_per_year: int):
        self.code = code
        self.periods_per_year = periods_per_year

    @classmethod
    def from_value(cls, frequency: Union[str, 'PaymentFrequency']) -> 'PaymentFrequency':
        """Resolve a frequency name (case-insensitive) or enum member"""
        if isinstance(frequency, cls):
            return frequency
        if isinstance(frequency, str):
            code = frequency.strip().lower()
            for member in cls:
                if member.code == code:
                    return member
        supported = ", ".join(member.code for member in cls)
        raise InvalidArgumentError(
            f"Unknown frequency: {frequency}. Supported frequencies: {supported}"
        )


FrequencyLike = Union[str, PaymentFrequency]


class PaymentCalculator:
    """Computes the fixed periodic payment for an amortizing loan"""

    @staticmethod
    def get_periods_per_year(frequency: FrequencyLike) -> int:
        return PaymentFrequency.from_value(frequency).periods_per_year

    @staticmethod
    def get_supported_frequencies() -> List[str]:
        return [member.code for member in PaymentFrequency]

    def get_payment_interval_days(self, frequency: FrequencyLike) -> int:
        """Calendar days between consecutive payments"""
        periods_per_year = self.get_periods_per_year(frequency)
        return round_half_up_int(Decimal(365) / Decimal(periods_per_year))

    def calculate(
        self,
        principal: DecimalLike,
        annual_rate_percent: DecimalLike,
        frequency: FrequencyLike,
        number_of_payments: int
    ) -> Decimal:
        """
        Calculate the fixed periodic payment.

        Args:
            principal: Amount financed
            annual_rate_percent: Annual rate as a percentage (5.0 for 5%)
            frequency: Payment frequency
            number_of_payments: Total number of payments

        Returns:
            Payment rounded to 2 decimal places
        """
        principal = to_decimal(principal)
        annual_rate = to_decimal(annual_rate_percent)

        if principal <= ZERO:
            raise InvalidArgumentError(f"Principal must be greater than 0, got: {principal}")
        if number_of_payments <= 0:
            raise InvalidArgumentError(
                f"Number of payments must be greater than 0, got: {number_of_payments}"
            )
        if annual_rate < ZERO:
            raise InvalidArgumentError(f"Annual rate cannot be negative, got: {annual_rate}")
        periods_per_year = self.get_periods_per_year(frequency)

        if annual_rate == ZERO:
            return quantize(principal / Decimal(number_of_payments))

        periodic_rate = (annual_rate / HUNDRED) / Decimal(periods_per_year)
        return quantize(self.annuity_payment(principal, periodic_rate, number_of_payments))

    @staticmethod
    def annuity_payment(principal: Decimal, periodic_rate: Decimal, number_of_payments: int) -> Decimal:
        """
        Unrounded PMT: r * PV / (1 - (1 + r)^-n)

        A zero periodic rate falls back to straight-line repayment.
        """
        if periodic_rate == ZERO:
            return principal / Decimal(number_of_payments)
        denominator = ONE - (ONE + periodic_rate) ** -number_of_payments
        return periodic_rate * principal / denominator

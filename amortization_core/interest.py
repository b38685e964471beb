"""
Interest Calculation Module

One calculator per interest convention (periodic, simple, compound, daily
accrual) plus nominal-to-effective and cross-frequency rate conversion.
Rates are percentages at these entry points (5.0 means 5%).
"""

from datetime import date
from decimal import Decimal
from typing import Union

from .decimal_math import DecimalLike, to_decimal, quantize, ZERO, ONE, HUNDRED
from .exceptions import InvalidArgumentError
from .payments import PaymentCalculator, FrequencyLike


DateLike = Union[date, str]

DAYS_PER_YEAR = Decimal(365)


def _require_non_negative(value: Decimal, label: str) -> None:
    if value < ZERO:
        raise InvalidArgumentError(f"{label} cannot be negative, got: {value}")


def _to_date(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid date: {value!r}")


class PeriodicInterestCalculator:
    """Interest for a single payment period; used by schedule generation"""

    def calculate(
        self,
        balance: DecimalLike,
        annual_rate_percent: DecimalLike,
        frequency: FrequencyLike
    ) -> Decimal:
        balance = to_decimal(balance)
        annual_rate = to_decimal(annual_rate_percent)
        _require_non_negative(balance, "Balance")
        _require_non_negative(annual_rate, "Annual rate")
        periods_per_year = PaymentCalculator.get_periods_per_year(frequency)

        return quantize(balance * (annual_rate / HUNDRED) / Decimal(periods_per_year))


class SimpleInterestCalculator:
    """I = P * (R / 100) * T"""

    def calculate(
        self,
        principal: DecimalLike,
        annual_rate_percent: DecimalLike,
        years: DecimalLike
    ) -> Decimal:
        principal = to_decimal(principal)
        annual_rate = to_decimal(annual_rate_percent)
        years = to_decimal(years)
        _require_non_negative(principal, "Principal")
        _require_non_negative(annual_rate, "Annual rate")
        if years <= ZERO:
            raise InvalidArgumentError(f"Time must be greater than 0, got: {years}")

        return quantize(principal * (annual_rate / HUNDRED) * years)


class CompoundInterestCalculator:
    """Interest earned by compounding over a number of periods"""

    def calculate(
        self,
        principal: DecimalLike,
        annual_rate_percent: DecimalLike,
        periods: int,
        frequency: FrequencyLike
    ) -> Decimal:
        principal = to_decimal(principal)
        annual_rate = to_decimal(annual_rate_percent)
        _require_non_negative(principal, "Principal")
        _require_non_negative(annual_rate, "Annual rate")
        if periods <= 0:
            raise InvalidArgumentError(f"Periods must be greater than 0, got: {periods}")

        periodic_rate = (annual_rate / HUNDRED) / Decimal(PaymentCalculator.get_periods_per_year(frequency))
        final_amount = principal * (ONE + periodic_rate) ** int(periods)
        return quantize(final_amount - principal)


class DailyInterestCalculator:
    """Actual/365 daily interest and accrual between two dates"""

    def calculate_daily(self, balance: DecimalLike, annual_rate_percent: DecimalLike) -> Decimal:
        balance = to_decimal(balance)
        annual_rate = to_decimal(annual_rate_percent)
        _require_non_negative(balance, "Balance")
        _require_non_negative(annual_rate, "Annual rate")

        return quantize(balance * (annual_rate / HUNDRED) / DAYS_PER_YEAR)

    def calculate_accrual(
        self,
        balance: DecimalLike,
        annual_rate_percent: DecimalLike,
        start_date: DateLike,
        end_date: DateLike
    ) -> Decimal:
        """
        Interest accrued from start_date through end_date.

        Both dates count, so a single-day range accrues one day of interest.
        """
        start = _to_date(start_date)
        end = _to_date(end_date)
        if end < start:
            raise InvalidArgumentError(
                f"End date must be after or equal to start date, got: {start} to {end}"
            )

        days = (end - start).days + 1
        daily_interest = self.calculate_daily(balance, annual_rate_percent)
        return quantize(daily_interest * Decimal(days))


class EffectiveRateCalculator:
    """Nominal APR to effective annual yield"""

    def calculate_apy(self, apr_percent: DecimalLike, frequency: FrequencyLike) -> Decimal:
        """
        APY = (1 + (APR / 100) / n)^n - 1, returned as a percentage to 4 places
        """
        apr = to_decimal(apr_percent)
        if apr < ZERO:
            raise InvalidArgumentError(f"APR cannot be negative, got: {apr}")

        periods_per_year = PaymentCalculator.get_periods_per_year(frequency)
        periodic_rate = (apr / HUNDRED) / Decimal(periods_per_year)
        apy = (ONE + periodic_rate) ** periods_per_year - ONE
        return quantize(apy * HUNDRED, 4)

    def calculate_effective_rate(self, nominal_percent: DecimalLike, frequency: FrequencyLike) -> Decimal:
        return self.calculate_apy(nominal_percent, frequency)


class InterestRateConverter:
    """Re-expresses a per-period rate in another frequency"""

    def convert(
        self,
        rate: DecimalLike,
        from_frequency: FrequencyLike,
        to_frequency: FrequencyLike
    ) -> Decimal:
        from_periods = Decimal(PaymentCalculator.get_periods_per_year(from_frequency))
        to_periods = Decimal(PaymentCalculator.get_periods_per_year(to_frequency))
        return quantize(to_decimal(rate) * (from_periods / to_periods), 4)

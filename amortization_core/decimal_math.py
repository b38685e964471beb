"""
Decimal Math Module

Arbitrary-precision arithmetic for loan calculations. Every balance, rate
and payment goes through Decimal with ROUND_HALF_UP. NEVER uses float for
monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Optional, Union

from .exceptions import InvalidArgumentError, DivisionByZeroError

# Set global decimal context for financial precision
getcontext().prec = 28

DecimalLike = Union[Decimal, int, str, float]

CENT = Decimal('0.01')
ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def to_decimal(value: DecimalLike) -> Decimal:
    """
    Convert a value to Decimal without passing through binary float.

    Floats are converted via their string representation so 0.1 becomes
    Decimal('0.1') rather than the nearest binary fraction.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Cannot convert boolean {value!r} to Decimal")
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        raise InvalidArgumentError(f"Cannot convert {type(value).__name__} to Decimal")
    try:
        result = Decimal(value.strip())
    except InvalidOperation:
        raise InvalidArgumentError(f"Invalid decimal value: {value!r}")
    if not result.is_finite():
        raise InvalidArgumentError(f"Decimal value must be finite, got: {value!r}")
    return result


def quantize(value: DecimalLike, places: int = 2) -> Decimal:
    """Round to a fixed number of decimal places using ROUND_HALF_UP"""
    return to_decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_half_up_int(value: DecimalLike) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(to_decimal(value).quantize(ONE, rounding=ROUND_HALF_UP))


class DecimalMath:
    """
    String-in, string-out decimal arithmetic at a fixed scale.

    Results are rendered at ``internal_precision`` decimal places unless a
    precision is passed explicitly; ``round`` defaults to
    ``output_precision``.
    """

    def __init__(self, internal_precision: int = 10, output_precision: int = 2):
        if internal_precision < 2:
            raise InvalidArgumentError("Internal precision must be at least 2")
        if output_precision < 0:
            raise InvalidArgumentError("Output precision must be non-negative")
        self.internal_precision = internal_precision
        self.output_precision = output_precision

    def _render(self, value: Decimal, precision: Optional[int]) -> str:
        if precision is None:
            precision = self.internal_precision
        return str(quantize(value, precision))

    def add(self, a: DecimalLike, b: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(to_decimal(a) + to_decimal(b), precision)

    def subtract(self, a: DecimalLike, b: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(to_decimal(a) - to_decimal(b), precision)

    def multiply(self, a: DecimalLike, b: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(to_decimal(a) * to_decimal(b), precision)

    def divide(self, a: DecimalLike, b: DecimalLike, precision: Optional[int] = None) -> str:
        divisor = to_decimal(b)
        if divisor == ZERO:
            raise DivisionByZeroError(f"Division by zero: {a} / {b}")
        return self._render(to_decimal(a) / divisor, precision)

    def power(self, base: DecimalLike, exponent: int, precision: Optional[int] = None) -> str:
        """Raise base to an integer exponent"""
        base_value = to_decimal(base)
        if base_value == ZERO and exponent < 0:
            raise DivisionByZeroError("Zero cannot be raised to a negative power")
        return self._render(base_value ** int(exponent), precision)

    def round(self, value: DecimalLike, decimals: Optional[int] = None) -> str:
        if decimals is None:
            decimals = self.output_precision
        return str(quantize(value, decimals))

    def compare(self, a: DecimalLike, b: DecimalLike) -> int:
        """Return -1, 0 or 1"""
        left, right = to_decimal(a), to_decimal(b)
        if left < right:
            return -1
        if left > right:
            return 1
        return 0

    def min(self, a: DecimalLike, b: DecimalLike, *others: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(min(to_decimal(v) for v in (a, b) + others), precision)

    def max(self, a: DecimalLike, b: DecimalLike, *others: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(max(to_decimal(v) for v in (a, b) + others), precision)

    def abs(self, value: DecimalLike, precision: Optional[int] = None) -> str:
        return self._render(abs(to_decimal(value)), precision)

    def is_zero(self, value: DecimalLike) -> bool:
        return to_decimal(value) == ZERO

"""
Test suite for decimal_math module

Tests string-in/string-out decimal arithmetic, rounding behaviour and the
Decimal conversion helpers. No binary float may leak into a result.
"""

import pytest
from decimal import Decimal

from amortization_core.decimal_math import (
    DecimalMath, to_decimal, quantize, round_half_up_int
)
from amortization_core.exceptions import (
    InvalidArgumentError, DivisionByZeroError, AmortizationError
)


class TestConversionHelpers:
    """Test to_decimal / quantize helpers"""

    def test_float_goes_through_string(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(0.1) + to_decimal(0.2) == Decimal('0.3')

    def test_int_and_string_inputs(self):
        assert to_decimal(5) == Decimal('5')
        assert to_decimal(' 12.50 ') == Decimal('12.50')

    def test_decimal_passthrough(self):
        value = Decimal('3.14159')
        assert to_decimal(value) is value

    def test_invalid_string_rejected(self):
        with pytest.raises(InvalidArgumentError, match="Invalid decimal value"):
            to_decimal("abc")

    def test_non_finite_rejected(self):
        with pytest.raises(InvalidArgumentError, match="finite"):
            to_decimal("NaN")
        with pytest.raises(InvalidArgumentError, match="finite"):
            to_decimal(float('inf'))

    def test_boolean_rejected(self):
        with pytest.raises(InvalidArgumentError):
            to_decimal(True)

    def test_quantize_rounds_half_up(self):
        assert quantize('2.345') == Decimal('2.35')
        assert quantize('2.344') == Decimal('2.34')
        assert quantize('-2.345') == Decimal('-2.35')
        assert quantize('1.23456', 4) == Decimal('1.2346')

    def test_round_half_up_int(self):
        assert round_half_up_int('14.5') == 15
        assert round_half_up_int('14.49') == 14
        assert round_half_up_int(Decimal('182.5')) == 183


class TestDecimalMath:
    """Test DecimalMath primitives"""

    def setup_method(self):
        self.math = DecimalMath()

    def test_default_precisions(self):
        assert self.math.internal_precision == 10
        assert self.math.output_precision == 2

    def test_add_avoids_float_drift(self):
        assert self.math.add('0.1', '0.2') == '0.3000000000'
        assert self.math.add('0.1', '0.2', 2) == '0.30'

    def test_subtract(self):
        assert self.math.subtract('10', '0.01', 2) == '9.99'

    def test_multiply(self):
        assert self.math.multiply('100000', '0.0041666667', 2) == '416.67'

    def test_divide(self):
        assert self.math.divide('1', '3') == '0.3333333333'
        assert self.math.divide('2', '3', 2) == '0.67'

    @pytest.mark.parametrize("dividend", ['0', '1', '-5.5', '123456789.01'])
    def test_divide_by_zero_fails(self, dividend):
        with pytest.raises(DivisionByZeroError):
            self.math.divide(dividend, '0')

    def test_divide_by_zero_is_zero_division_error(self):
        with pytest.raises(ZeroDivisionError):
            self.math.divide('1', '0.00')
        with pytest.raises(AmortizationError):
            self.math.divide('1', 0)

    def test_power(self):
        assert self.math.power('1.05', 2, 4) == '1.1025'
        assert self.math.power('2', -1, 2) == '0.50'

    def test_round_defaults_to_output_precision(self):
        assert self.math.round('536.821') == '536.82'
        assert self.math.round('0.125') == '0.13'
        assert self.math.round('0.125', 1) == '0.1'

    def test_compare(self):
        assert self.math.compare('1.00', '1') == 0
        assert self.math.compare('0.99', '1') == -1
        assert self.math.compare('1.01', '1') == 1

    def test_min_max(self):
        assert self.math.min('3', '1.5', '2') == '1.5000000000'
        assert self.math.max('3', '1.5', '7.25') == '7.2500000000'
        assert self.math.min('3', '1.005', precision=2) == '1.01'
        assert self.math.max('3', '1.5', '7.25', precision=1) == '7.3'

    def test_abs_and_is_zero(self):
        assert self.math.abs('-4.2') == '4.2000000000'
        assert self.math.abs('-4.235', 2) == '4.24'
        assert self.math.is_zero('0.000')
        assert not self.math.is_zero('0.001')

    def test_invalid_precision_rejected(self):
        with pytest.raises(InvalidArgumentError):
            DecimalMath(internal_precision=1)
        with pytest.raises(InvalidArgumentError):
            DecimalMath(output_precision=-1)

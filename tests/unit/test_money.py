"""
Unit tests for Money and decimal handling.

Verifies:
- Construction from Decimal, int, str and float (via repr)
- Rejection of NaN/infinity, booleans, over-precise and negative input
- Exact arithmetic, comparison and the single rounding point
"""

import pytest
from decimal import Decimal

from sales_kernel.domain.values import Money, to_decimal
from sales_kernel.exceptions import (
    InvalidAmountError,
    NegativeResultError,
    ValidationError,
)


class TestMoneyConstruction:
    """Tests for Money.of and the constructor."""

    def test_from_string(self):
        assert Money.of("100.50").amount == Decimal("100.50")

    def test_from_int_is_scaled(self):
        money = Money.of(128)
        assert money.amount == Decimal("128.00")
        assert str(money) == "128.00"

    def test_from_decimal(self):
        assert Money.of(Decimal("0.1")).amount == Decimal("0.10")

    def test_float_goes_through_repr(self):
        """0.1 is Decimal('0.1'), not the binary expansion."""
        assert Money.of(0.1).amount == Decimal("0.10")
        assert Money.of(19.99).amount == Decimal("19.99")

    def test_money_passes_through(self):
        money = Money.of("5.00")
        assert Money.of(money) is money

    def test_zero(self):
        assert Money.zero().amount == Decimal("0.00")
        assert Money.zero().is_zero

    def test_negative_zero_is_normalized(self):
        assert str(Money(Decimal("-0.00"))) == "0.00"

    @pytest.mark.parametrize("value", ["NaN", float("nan"), float("inf"), "-Infinity"])
    def test_non_finite_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            Money.of(value)

    @pytest.mark.parametrize("value", [True, False])
    def test_booleans_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            Money.of(value)

    def test_unparsable_string_rejected(self):
        with pytest.raises(InvalidAmountError):
            Money.of("twelve")

    def test_unsupported_type_rejected(self):
        with pytest.raises(InvalidAmountError):
            Money.of([1, 2])

    def test_more_than_two_decimals_rejected(self):
        """Construction never rounds silently."""
        with pytest.raises(InvalidAmountError) as exc_info:
            Money.of("10.005")
        assert "decimal places" in str(exc_info.value)

    def test_trailing_zeros_beyond_scale_accepted(self):
        assert Money.of("10.500").amount == Decimal("10.50")

    def test_negative_requires_signed(self):
        with pytest.raises(InvalidAmountError):
            Money.of("-1.00")
        assert Money.of("-1.00", signed=True).is_negative

    def test_invalid_amount_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Money.of("abc")
        assert exc_info.value.code == "INVALID_AMOUNT"

    def test_to_decimal_strips_whitespace(self):
        assert to_decimal(" 3.50 ") == Decimal("3.50")


class TestMoneyArithmetic:
    """Tests for exact arithmetic."""

    def test_add(self):
        assert Money.of("0.10").add(Money.of("0.20")) == Money.of("0.30")

    def test_add_operator(self):
        assert Money.of("100.00") + Money.of("28.00") == Money.of("128.00")

    def test_subtract(self):
        assert Money.of("128.00").subtract(Money.of("100.00")) == Money.of("28.00")

    def test_subtract_below_zero_raises(self):
        with pytest.raises(NegativeResultError):
            Money.of("10.00").subtract(Money.of("10.01"))

    def test_subtract_operator_below_zero_raises(self):
        with pytest.raises(NegativeResultError):
            Money.of("10.00") - Money.of("10.01")

    def test_subtract_allow_negative(self):
        result = Money.of("10.00").subtract(Money.of("12.50"), allow_negative=True)
        assert result == Money.of("-2.50", signed=True)

    def test_multiply_by_quantity(self):
        assert Money.of("50.00").multiply_by_quantity(2) == Money.of("100.00")

    @pytest.mark.parametrize("quantity", [1.5, "2", True])
    def test_multiply_requires_int(self, quantity):
        with pytest.raises(TypeError):
            Money.of("50.00").multiply_by_quantity(quantity)

    def test_percent_of_rounds_half_up_once(self):
        # 10.05 * 15% = 1.5075 -> 1.51
        assert Money.of("10.05").percent_of(15) == Money.of("1.51")
        # 0.50 * 5% = 0.025 -> 0.03 (half-up, not banker's)
        assert Money.of("0.50").percent_of(5) == Money.of("0.03")

    def test_round_half_up(self):
        assert Money.round_half_up("2.345") == Money.of("2.35")
        assert Money.round_half_up("2.344") == Money.of("2.34")

    def test_sum(self):
        total = Money.sum([Money.of("100.00"), Money.of("30.00"), Money.of("0.01")])
        assert total == Money.of("130.01")

    def test_sum_empty_is_zero(self):
        assert Money.sum([]) == Money.zero()

    def test_mixing_with_raw_numbers_raises(self):
        with pytest.raises(TypeError):
            Money.of("1.00") + Decimal("1.00")
        with pytest.raises(TypeError):
            Money.of("1.00").add(1)


class TestMoneyComparison:
    """Tests for ordering and equality."""

    def test_compare(self):
        a, b = Money.of("1.00"), Money.of("2.00")
        assert a.compare(b) == -1
        assert b.compare(a) == 1
        assert a.compare(Money.of(1)) == 0

    def test_operators(self):
        assert Money.of("1.00") < Money.of("1.01")
        assert Money.of("1.01") > Money.of("1.00")
        assert Money.of("1.00") <= Money.of("1")
        assert Money.of("1.00") >= Money.of("1")

    def test_equality_and_hash(self):
        assert Money.of("1.0") == Money.of(1)
        assert hash(Money.of("1.0")) == hash(Money.of(1))

    def test_repr(self):
        assert repr(Money.of("7.5")) == "Money('7.50')"

    def test_frozen(self):
        money = Money.of("1.00")
        with pytest.raises(AttributeError):
            money.amount = Decimal("2.00")

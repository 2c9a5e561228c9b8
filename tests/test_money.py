"""
Tests for monetary amount handling
"""

import pytest
from decimal import Decimal

from console_banking.errors import InvalidAmount
from console_banking.money import (
    MAX_AMOUNT, ZERO, decimal_from_string, format_amount, quantize, to_amount,
    to_balance
)


class TestToAmount:
    """Test validation of caller-supplied amounts"""

    def test_accepts_decimal_int_and_string(self):
        assert to_amount(Decimal("10.5")) == Decimal("10.50")
        assert to_amount(25) == Decimal("25.00")
        assert to_amount(" 7.25 ") == Decimal("7.25")

    def test_float_keeps_its_printed_value(self):
        assert to_amount(0.1) == Decimal("0.10")

    def test_result_has_two_places(self):
        assert to_amount(3).as_tuple().exponent == -2

    @pytest.mark.parametrize("value", [0, "0.00", -1, Decimal("-0.01")])
    def test_rejects_non_positive(self, value):
        with pytest.raises(InvalidAmount):
            to_amount(value)

    @pytest.mark.parametrize("value", ["abc", "", None, True, [10], "NaN", "Infinity"])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(InvalidAmount):
            to_amount(value)

    def test_rejects_sub_cent_precision(self):
        with pytest.raises(InvalidAmount, match="two decimal places"):
            to_amount("10.005")

    def test_trailing_zeros_are_not_sub_cent(self):
        assert to_amount("10.500") == Decimal("10.50")

    @pytest.mark.parametrize("value", [
        Decimal("1" + "0" * 26), "1e30", 10 ** 40, MAX_AMOUNT + Decimal("0.01")
    ])
    def test_rejects_oversized_amounts(self, value):
        with pytest.raises(InvalidAmount, match="too large"):
            to_amount(value)

    def test_largest_amount_accepted(self):
        assert to_amount(MAX_AMOUNT) == MAX_AMOUNT


class TestToBalance:
    def test_balance_limit(self):
        assert to_balance(MAX_AMOUNT) == MAX_AMOUNT
        with pytest.raises(InvalidAmount, match="balance limit"):
            to_balance(MAX_AMOUNT + Decimal("0.01"))
        with pytest.raises(InvalidAmount):
            to_balance(Decimal("1e30"))

    def test_zero_is_allowed(self):
        assert to_balance(0) == ZERO

    def test_negative_is_rejected(self):
        with pytest.raises(ValueError):
            to_balance("-5")

    def test_rounds_half_up(self):
        assert to_balance(Decimal("1.005")) == Decimal("1.01")
        assert quantize(Decimal("2.344")) == Decimal("2.34")


class TestDecimalFromString:
    """Test parsing of typed console input"""

    @pytest.mark.parametrize("text,expected", [
        ("1234.56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("1234,56", Decimal("1234.56")),
        ("1,234", Decimal("1234")),
        ("R$ 50,00", Decimal("50.00")),
        ("-3", Decimal("-3")),
    ])
    def test_formats(self, text, expected):
        assert decimal_from_string(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "R$", "1.2.3"])
    def test_invalid_input(self, text):
        with pytest.raises(InvalidAmount):
            decimal_from_string(text)

    @pytest.mark.parametrize("text", ["12abc3", "1e5", "5 reais", "10$", "1 000", "R$ 1O0", "--5"])
    def test_stray_characters_are_rejected(self, text):
        """Mistyped input must never turn into a different number"""
        with pytest.raises(InvalidAmount):
            decimal_from_string(text)

    @pytest.mark.parametrize("text,expected", [
        ("$10", Decimal("10")),
        ("  R$10,5 ", Decimal("10.5")),
        ("+7", Decimal("7")),
    ])
    def test_currency_prefix_and_whitespace(self, text, expected):
        assert decimal_from_string(text) == expected


class TestFormatAmount:
    def test_default_symbol(self):
        assert format_amount(Decimal("1234.5")) == "R$ 1,234.50"

    def test_custom_symbol(self):
        assert format_amount(Decimal("0"), "$") == "$ 0.00"

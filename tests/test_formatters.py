"""Tests for amount conversion and display formatting."""

from decimal import Decimal

from formatters import (
    decimal_str,
    format_near_amount,
    format_token_amount,
    format_token_balance,
    format_usd_value,
    near_to_yocto,
    readable_amount,
    to_decimal,
    to_int,
)


class TestConversions:
    def test_to_decimal(self):
        assert to_decimal(None) == 0
        assert to_decimal("") == 0
        assert to_decimal("garbage") == 0
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("12.5") == Decimal("12.5")

    def test_to_int_keeps_u128_precision(self):
        assert to_int("340282366920938463463374607431768211455") == 2 ** 128 - 1
        assert to_int(None) == 0
        assert to_int("1e3") == 1000

    def test_readable_amount(self):
        assert readable_amount("2500000", 6) == Decimal("2.5")
        assert readable_amount("1", "not-a-number") == Decimal("1e-18")

    def test_near_to_yocto(self):
        assert near_to_yocto(Decimal("1.25")) == 1_250_000_000_000_000_000_000_000
        assert near_to_yocto("0") == 0


class TestFormatNearAmount:
    def test_rounds_half_up(self):
        assert format_near_amount(995_000_000_000_000_000_000_000) == "1.00"
        assert format_near_amount(994_999_999_999_999_999_999_999) == "0.99"

    def test_zero(self):
        assert format_near_amount(0) == "0.00"


class TestDecimalStr:
    def test_strips_trailing_zeros(self):
        assert decimal_str(Decimal("10.00")) == "10"
        assert decimal_str(Decimal("2.50")) == "2.5"

    def test_no_exponent(self):
        assert decimal_str(Decimal("1E+3")) == "1000"
        assert decimal_str(Decimal("1E-8")) == "0.00000001"

    def test_negative_zero(self):
        assert decimal_str(Decimal("-0.00")) == "0"


class TestTokenFormatting:
    def test_balance(self):
        assert format_token_balance("1234.5678") == "1,234.57"
        assert format_token_balance("0.00001234") == "0.00001234"
        assert format_token_balance("10.00") == "10"
        assert format_token_balance(0) == "0"

    def test_amount_precision_follows_price(self):
        assert format_token_amount("1.23456789", "2000") == "1.234568"
        assert format_token_amount("5.678", "1") == "5.68"
        assert format_token_amount("5", "0") == "0"

    def test_usd_value(self):
        assert format_usd_value(2, "1234.567") == "$2,469.13"
        assert format_usd_value("0.001", 1) == "< $0.01"
        assert format_usd_value(0, 5) == "$0.00"

"""Tests for core/money.py - monetary arithmetic."""

from decimal import Decimal

import pytest

from core.money import (
    ZERO,
    compute_balance,
    compute_tax,
    compute_total,
    convert,
    round_money,
    sum_money,
    to_money,
)


class TestRoundMoney:

    def test_rounds_half_up(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("2.675")) == Decimal("2.68")

    def test_keeps_two_places(self):
        assert str(round_money(Decimal("7"))) == "7.00"


class TestToMoney:

    def test_accepts_string_and_int(self):
        assert to_money("12.5") == Decimal("12.50")
        assert to_money(3) == Decimal("3.00")

    def test_rejects_float(self):
        with pytest.raises(ValueError, match="float"):
            to_money(1.1)

    def test_rejects_three_decimal_places(self):
        with pytest.raises(ValueError, match="two decimal places"):
            to_money("10.001")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", None])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            to_money(value)


class TestComputeTax:
    """Tax is the only place rounding happens on an invoice."""

    def test_six_percent_of_1850(self):
        assert compute_tax(Decimal("1850.00"), 6) == Decimal("111.00")

    def test_rounds_half_up_to_cents(self):
        # 99.99 * 7% = 6.9993
        assert compute_tax(Decimal("99.99"), 7) == Decimal("7.00")
        # 0.50 * 1% = 0.005
        assert compute_tax(Decimal("0.50"), 1) == Decimal("0.01")

    def test_zero_rate(self):
        assert compute_tax(Decimal("123.45"), 0) == ZERO


class TestTotalsAndBalance:

    def test_total_is_exact_sum(self):
        assert compute_total(Decimal("1850.00"), Decimal("111.00")) == Decimal("1961.00")

    def test_balance_floors_at_zero(self):
        assert compute_balance(Decimal("100.00"), Decimal("150.00")) == ZERO

    def test_balance(self):
        assert compute_balance(Decimal("1961.00"), Decimal("1200.00")) == Decimal("761.00")


class TestConvertAndSum:

    def test_convert_rounds_half_up(self):
        # 100.00 * 0.21345 = 21.345
        assert convert(Decimal("100.00"), Decimal("0.21345")) == Decimal("21.35")

    def test_sum_of_nothing_is_zero(self):
        assert sum_money([]) == ZERO

    def test_sum(self):
        assert sum_money([Decimal("1.10"), Decimal("2.20")]) == Decimal("3.30")

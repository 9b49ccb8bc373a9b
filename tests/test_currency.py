"""
Test suite for money module

Money must round half away from zero at currency precision and refuse to
mix currencies.
"""

import pytest
from decimal import Decimal

from loan_desk.currency import Money, Currency, round_money


class TestCurrency:
    """Test currency metadata"""

    def test_precision_and_quantum(self):
        assert Currency.INR.code == "INR"
        assert Currency.INR.precision == 2
        assert Currency.INR.quantum == Decimal('0.01')
        assert Currency.JPY.quantum == Decimal('1')


class TestMoney:
    """Test Money value semantics"""

    def test_default_currency_is_inr(self):
        assert Money(Decimal('10')).currency == Currency.INR

    def test_rounds_half_up(self):
        assert Money(Decimal('1.005')).amount == Decimal('1.01')
        assert Money(Decimal('1.004')).amount == Decimal('1.00')
        assert Money(Decimal('-1.005')).amount == Decimal('-1.01')

    def test_non_decimal_amount_is_converted(self):
        money = Money("120000")
        assert money.amount == Decimal('120000.00')

    def test_arithmetic(self):
        a = Money(Decimal('100.50'))
        b = Money(Decimal('20.25'))
        assert a + b == Money(Decimal('120.75'))
        assert a - b == Money(Decimal('80.25'))
        assert a * Decimal('2') == Money(Decimal('201.00'))
        assert a * 2 == Money(Decimal('201.00'))
        assert Money(Decimal('1000')) / 3 == Money(Decimal('333.33'))

    def test_mixed_currency_rejected(self):
        with pytest.raises(ValueError, match="Cannot add"):
            Money(Decimal('1'), Currency.INR) + Money(Decimal('1'), Currency.USD)
        with pytest.raises(ValueError, match="Cannot compare"):
            Money(Decimal('1'), Currency.INR) < Money(Decimal('1'), Currency.USD)

    def test_comparisons_and_predicates(self):
        assert Money(Decimal('1')) < Money(Decimal('2'))
        assert Money(Decimal('2')) > Money(Decimal('1'))
        assert Money.zero().is_zero()
        assert Money(Decimal('0.01')).is_positive()
        assert not Money(Decimal('-0.01')).is_positive()

    def test_equal_values_hash_equal(self):
        assert len({Money(Decimal('5')), Money(Decimal('5.00'))}) == 1
        assert Money(Decimal('5')) != Decimal('5')

    def test_to_string(self):
        assert Money(Decimal('120000')).to_string() == "INR 120,000.00"
        assert Money(Decimal('1500'), Currency.JPY).to_string() == "JPY 1,500"


class TestHelpers:
    """Test the rounding helper"""

    def test_round_money(self):
        assert round_money(Decimal('1200.005')) == Decimal('1200.01')
        assert round_money(Decimal('10.5'), Currency.JPY) == Decimal('11')

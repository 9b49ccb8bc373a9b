"""
Test suite for amortization module

Schedules are checked against hand-computed reducing-balance figures. The
principal column must always sum to the loan amount exactly.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from loan_desk.amortization import (
    Installment, InstallmentStatus, PaymentMethod,
    add_months, calculate_installment, monthly_rate, schedule
)
from loan_desk.currency import Money, Currency
from loan_desk.errors import InvalidParameters


def total(values):
    result = Money.zero()
    for value in values:
        result = result + value
    return result


class TestCalculateInstallment:
    """Test the fixed EMI formula"""

    def test_twelve_percent_one_year(self):
        emi = calculate_installment(Money(Decimal('120000')), Decimal('12'), 12)
        assert emi == Money(Decimal('10661.85'))

    def test_ten_percent_one_year(self):
        emi = calculate_installment(Decimal('100000'), Decimal('10'), 12)
        assert emi == Money(Decimal('8791.59'))

    def test_zero_rate_is_straight_division(self):
        emi = calculate_installment(Decimal('1000'), Decimal('0'), 3)
        assert emi == Money(Decimal('333.33'))

    def test_monthly_rate(self):
        assert monthly_rate(Decimal('12')) == Decimal('0.01')

    @pytest.mark.parametrize("principal, rate, tenure", [
        (Decimal('0'), Decimal('12'), 12),
        (Decimal('-500'), Decimal('12'), 12),
        (Decimal('1000'), Decimal('-1'), 12),
        (Decimal('1000'), Decimal('12'), 0),
        (Decimal('1000'), Decimal('12'), -3),
        (Decimal('1000'), Decimal('12'), 2.5),
        (Decimal('1000'), Decimal('12'), True),
    ])
    def test_invalid_parameters(self, principal, rate, tenure):
        with pytest.raises(InvalidParameters):
            calculate_installment(principal, rate, tenure)


class TestSchedule:
    """Test full schedule generation"""

    def test_first_row_figures(self):
        rows = schedule(Decimal('120000'), Decimal('12'), 12, date(2024, 1, 15), loan_id="L1")

        first = rows[0]
        assert first.id == "L1_EMI_1"
        assert first.number == 1
        assert first.due_date == date(2024, 2, 15)
        assert first.amount == Money(Decimal('10661.85'))
        assert first.interest == Money(Decimal('1200.00'))
        assert first.principal == Money(Decimal('9461.85'))
        assert first.balance == Money(Decimal('110538.15'))
        assert first.status == InstallmentStatus.PENDING
        assert first.payment_date is None

    def test_principal_sums_to_amount_and_balance_ends_at_zero(self):
        rows = schedule(Decimal('120000'), Decimal('12'), 12, date(2024, 1, 15))

        assert len(rows) == 12
        assert total(row.principal for row in rows) == Money(Decimal('120000'))
        assert rows[-1].balance.is_zero()
        for row in rows:
            assert row.amount == row.principal + row.interest

    def test_rows_before_last_share_the_installment(self):
        rows = schedule(Decimal('120000'), Decimal('12'), 12, date(2024, 1, 15))
        for row in rows[:-1]:
            assert row.amount == Money(Decimal('10661.85'))
        # Rounding drift lands on the final row only
        assert Money(Decimal('10660.85')) < rows[-1].amount < Money(Decimal('10662.85'))

    def test_balances_strictly_decrease(self):
        rows = schedule(Decimal('50000'), Decimal('18'), 24, date(2024, 3, 1))
        balances = [row.balance.amount for row in rows]
        assert balances == sorted(balances, reverse=True)
        assert len(set(balances)) == len(balances)

    def test_zero_rate_schedule(self):
        rows = schedule(Decimal('1000'), Decimal('0'), 3, date(2024, 1, 1))

        assert [row.principal for row in rows] == [
            Money(Decimal('333.33')), Money(Decimal('333.33')), Money(Decimal('333.34'))
        ]
        assert all(row.interest.is_zero() for row in rows)
        assert rows[-1].balance.is_zero()

    def test_due_dates_clamp_to_month_end(self):
        rows = schedule(Decimal('30000'), Decimal('12'), 3, date(2024, 1, 31))
        assert [row.due_date for row in rows] == [
            date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]

    def test_due_dates_roll_over_year(self):
        rows = schedule(Decimal('30000'), Decimal('12'), 3, date(2024, 11, 10))
        assert [row.due_date for row in rows] == [
            date(2024, 12, 10), date(2025, 1, 10), date(2025, 2, 10)
        ]

    def test_datetime_disbursal_is_accepted(self):
        rows = schedule(Decimal('30000'), Decimal('12'), 3, datetime(2024, 5, 1, 10, 30))
        assert rows[0].due_date == date(2024, 6, 1)

    def test_non_date_disbursal_rejected(self):
        with pytest.raises(InvalidParameters):
            schedule(Decimal('30000'), Decimal('12'), 3, "2024-05-01")

    def test_currency_follows_principal(self):
        rows = schedule(Money(Decimal('30000'), Currency.USD), Decimal('12'), 3, date(2024, 5, 1))
        assert all(row.amount.currency == Currency.USD for row in rows)


class TestScheduleInvariants:
    """Schedule properties across a range of principals, rates and tenures"""

    @pytest.mark.parametrize("principal", [Decimal('1000'), Decimal('99999.99'), Decimal('2500000')])
    @pytest.mark.parametrize("rate", [Decimal('0'), Decimal('7.5'), Decimal('12'), Decimal('36')])
    @pytest.mark.parametrize("tenure", [1, 2, 60, 360])
    def test_schedule_retires_principal(self, principal, rate, tenure):
        rows = schedule(principal, rate, tenure, date(2024, 1, 31))

        assert len(rows) == tenure
        assert [row.number for row in rows] == list(range(1, tenure + 1))
        assert total(row.principal for row in rows) == Money(principal)
        assert rows[-1].balance.is_zero()
        for row in rows:
            assert row.amount == row.principal + row.interest
            assert not row.principal < Money.zero()
            assert not row.balance < Money.zero()

    @pytest.mark.parametrize("tenure", [1, 2, 60, 360])
    def test_month_end_disbursal_due_dates(self, tenure):
        rows = schedule(Decimal('120000'), Decimal('12'), tenure, date(2023, 8, 31))

        assert rows[0].due_date == date(2023, 9, 30)
        for row in rows:
            assert row.due_date == add_months(date(2023, 8, 31), row.number)
        dates = [row.due_date for row in rows]
        assert dates == sorted(dates)
        assert len(set(dates)) == len(dates)


class TestAddMonths:
    """Test calendar month arithmetic"""

    def test_plain(self):
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)

    def test_clamps_non_leap_february(self):
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_many_months(self):
        assert add_months(date(2024, 1, 31), 25) == date(2026, 2, 28)


class TestInstallment:
    """Test installment record invariants"""

    def test_amount_must_equal_components(self):
        with pytest.raises(ValueError):
            Installment(
                id="X_EMI_1", number=1, due_date=date(2024, 2, 1),
                amount=Money(Decimal('100')), principal=Money(Decimal('60')),
                interest=Money(Decimal('30')), balance=Money(Decimal('0'))
            )

    def test_dict_round_trip_keeps_payment_details(self):
        row = schedule(Decimal('30000'), Decimal('12'), 3, date(2024, 5, 1), loan_id="L9")[0]
        row.status = InstallmentStatus.PAID
        row.payment_date = date(2024, 6, 1)
        row.receipt_number = "R-0001"
        row.payment_method = PaymentMethod.CASH

        restored = Installment.from_dict(row.to_dict())
        assert restored == row

    def test_is_overdue(self):
        row = schedule(Decimal('30000'), Decimal('12'), 3, date(2024, 5, 1))[0]
        assert row.is_overdue(date(2024, 6, 2))
        assert not row.is_overdue(date(2024, 6, 1))
        row.status = InstallmentStatus.PAID
        assert not row.is_overdue(date(2024, 7, 1))

"""
Amortization Module

Reducing-balance EMI (equated monthly installment) schedule generation.
Pure functions over Decimal money; nothing here touches storage.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import calendar

from .currency import Money, Currency, round_money
from .errors import InvalidParameters


class InstallmentStatus(Enum):
    """Collection status of a single EMI"""
    PENDING = "Pending"
    PAID = "Paid"


class PaymentMethod(Enum):
    """How an EMI was collected"""
    CASH = "Cash"
    ONLINE = "Online"


@dataclass
class Installment:
    """Single EMI row of an amortization schedule"""
    id: str
    number: int
    due_date: date
    amount: Money
    principal: Money
    interest: Money
    balance: Money                       # Remaining principal after this EMI
    status: InstallmentStatus = InstallmentStatus.PENDING
    payment_date: Optional[date] = None
    receipt_number: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None

    def __post_init__(self):
        calculated = self.principal + self.interest
        if calculated != self.amount:
            raise ValueError(f"Installment {self.id}: amount {self.amount.to_string()} does not equal "
                             f"principal {self.principal.to_string()} + interest {self.interest.to_string()}")

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    def is_overdue(self, as_of: date) -> bool:
        """Pending and due strictly before as_of"""
        return not self.is_paid and self.due_date < as_of

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'number': self.number,
            'due_date': self.due_date.isoformat(),
            'amount': str(self.amount.amount),
            'principal': str(self.principal.amount),
            'interest': str(self.interest.amount),
            'balance': str(self.balance.amount),
            'currency': self.amount.currency.code,
            'status': self.status.value,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'receipt_number': self.receipt_number,
            'payment_method': self.payment_method.value if self.payment_method else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        currency = Currency[data['currency']]

        def money(key: str) -> Money:
            return Money(Decimal(data[key]), currency)

        return cls(
            id=data['id'],
            number=data['number'],
            due_date=date.fromisoformat(data['due_date']),
            amount=money('amount'),
            principal=money('principal'),
            interest=money('interest'),
            balance=money('balance'),
            status=InstallmentStatus(data['status']),
            payment_date=date.fromisoformat(data['payment_date']) if data.get('payment_date') else None,
            receipt_number=data.get('receipt_number'),
            payment_method=PaymentMethod(data['payment_method']) if data.get('payment_method') else None,
        )


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the target month's length"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """12 (% p.a.) -> 0.01 per month"""
    return Decimal(str(annual_rate_percent)) / Decimal('12') / Decimal('100')


def _as_money(principal: Union[Money, Decimal, int, str], currency: Currency) -> Money:
    if isinstance(principal, Money):
        return principal
    return Money(Decimal(str(principal)), currency)


def _validate(principal: Money, annual_rate_percent: Decimal, tenure_months: int) -> None:
    if not principal.is_positive():
        raise InvalidParameters(f"Principal must be positive, got {principal.to_string()}")
    if isinstance(tenure_months, bool) or not isinstance(tenure_months, int) or tenure_months <= 0:
        raise InvalidParameters(f"Tenure must be a positive whole number of months, got {tenure_months!r}")
    if Decimal(str(annual_rate_percent)) < 0:
        raise InvalidParameters(f"Interest rate cannot be negative, got {annual_rate_percent}")


def calculate_installment(
    principal: Union[Money, Decimal],
    annual_rate_percent: Decimal,
    tenure_months: int,
    currency: Currency = Currency.INR
) -> Money:
    """
    Fixed monthly installment for a reducing-balance loan.

    EMI = P * r * (1 + r)^n / ((1 + r)^n - 1), or P / n when r is zero.

    Raises:
        InvalidParameters: principal <= 0, tenure <= 0 or rate < 0
    """
    principal = _as_money(principal, currency)
    _validate(principal, annual_rate_percent, tenure_months)

    rate = monthly_rate(annual_rate_percent)
    n = Decimal(tenure_months)

    if rate == 0:
        return principal / n

    factor = (Decimal('1') + rate) ** tenure_months
    return Money(principal.amount * rate * factor / (factor - Decimal('1')), principal.currency)


def schedule(
    principal: Union[Money, Decimal],
    annual_rate_percent: Decimal,
    tenure_months: int,
    disbursal_date: date,
    loan_id: str = "",
    currency: Currency = Currency.INR
) -> List[Installment]:
    """
    Build the full amortization table for a loan disbursed on disbursal_date.

    Each row is rounded to the currency precision before it is stored. The
    rounding drift is absorbed by the final row's principal so that the
    principal components sum to exactly the loan amount and the last
    balance is zero.

    Args:
        principal: Loan amount
        annual_rate_percent: Annual interest rate in percent, e.g. 12 for 12%
        tenure_months: Number of monthly installments
        disbursal_date: First EMI falls one calendar month after this
        loan_id: Prefix for installment ids ("{loan_id}_EMI_{n}")

    Returns:
        Installments ordered by due date

    Raises:
        InvalidParameters: bad principal, rate, tenure or date
    """
    principal = _as_money(principal, currency)
    if isinstance(disbursal_date, datetime):
        disbursal_date = disbursal_date.date()
    if not isinstance(disbursal_date, date):
        raise InvalidParameters(f"Disbursal date must be a date, got {disbursal_date!r}")

    installment = calculate_installment(principal, annual_rate_percent, tenure_months)
    rate = monthly_rate(annual_rate_percent)
    ccy = principal.currency

    rows: List[Installment] = []
    balance = principal

    for number in range(1, tenure_months + 1):
        interest = Money(round_money(balance.amount * rate, ccy), ccy)

        if number == tenure_months:
            # Retire whatever is left, absorbing accumulated rounding
            principal_part = balance
        else:
            principal_part = installment - interest
            if principal_part > balance:
                principal_part = balance

        balance = balance - principal_part

        rows.append(Installment(
            id=f"{loan_id}_EMI_{number}",
            number=number,
            due_date=add_months(disbursal_date, number),
            amount=principal_part + interest,
            principal=principal_part,
            interest=interest,
            balance=balance,
        ))

    return rows

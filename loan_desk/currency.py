"""
Money Module

Loan amounts, installments and fees are Money: a Decimal amount tied to a
currency and held at that currency's precision. Floats never enter.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from enum import Enum

# (1 + r) ** n over a 30-year tenure needs the headroom
getcontext().prec = 28


class Currency(Enum):
    """Currencies a desk can lend in, as (code, minor-unit digits)"""
    INR = ("INR", 2)
    USD = ("USD", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def quantum(self) -> Decimal:
        """One minor unit: Decimal('0.01') for INR, Decimal('1') for JPY"""
        return Decimal(1).scaleb(-self.precision)


def round_money(value: Decimal, currency: Currency = Currency.INR) -> Decimal:
    """Round a raw Decimal to currency precision, half away from zero"""
    return value.quantize(currency.quantum, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable amount in one currency.

    The amount is rounded with round_money on construction, so every Money
    is already at paise (or cent, or yen) precision. Arithmetic between two
    currencies raises ValueError.
    """
    amount: Decimal
    currency: Currency = Currency.INR

    def __post_init__(self):
        amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
        object.__setattr__(self, 'amount', round_money(amount, self.currency))

    @classmethod
    def zero(cls, currency: Currency = Currency.INR) -> 'Money':
        return cls(Decimal('0'), currency)

    def _same_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._same_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._same_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Decimal) -> 'Money':
        return Money(self.amount * Decimal(str(factor)), self.currency)

    def __truediv__(self, divisor: Decimal) -> 'Money':
        return Money(self.amount / Decimal(str(divisor)), self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._same_currency(other, "compare")
        return self.amount < other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._same_currency(other, "compare")
        return self.amount > other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def to_string(self) -> str:
        """'INR 120,000.00'"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"

"""
Loan Module

Loan records, the loan lifecycle state machine and the loan repository.

Lifecycle:
    Pending -> Approved -> Disbursed -> Closed
    Pending -> Rejected

The lifecycle works purely on in-memory Loan values. Persistence, auditing
and authorization are layered on top by the service managers.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional
from enum import Enum

from .amortization import Installment, InstallmentStatus, PaymentMethod, schedule
from .currency import Money, Currency
from .errors import (
    AlreadyPaid, ImmutableAfterDisbursal, InstallmentNotFound,
    InvalidParameters, InvalidTransition
)
from .storage import StorageInterface, StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "Pending"        # Application submitted, awaiting decision
    APPROVED = "Approved"      # Approved, awaiting disbursal
    DISBURSED = "Disbursed"    # Funds released, EMIs being collected
    REJECTED = "Rejected"      # Application declined (terminal)
    CLOSED = "Closed"          # Every EMI collected (terminal)

    @property
    def is_terminal(self) -> bool:
        return self in (LoanStatus.REJECTED, LoanStatus.CLOSED)

    @property
    def has_schedule(self) -> bool:
        return self in (LoanStatus.DISBURSED, LoanStatus.CLOSED)


# Statuses from which each transition may start
TRANSITIONS: Dict[str, FrozenSet[LoanStatus]] = {
    "approve": frozenset({LoanStatus.PENDING}),
    "reject": frozenset({LoanStatus.PENDING}),
    "disburse": frozenset({LoanStatus.APPROVED}),
    "record_payment": frozenset({LoanStatus.DISBURSED}),
    "edit": frozenset({LoanStatus.PENDING, LoanStatus.APPROVED}),
}


@dataclass
class LoanTerms:
    """Financial terms of a loan application"""
    amount: Money
    interest_rate: Decimal              # Annual percent, e.g. 12 for 12%
    tenure: int                         # Months
    processing_fee: Decimal = Decimal('0')  # Percent of amount

    def __post_init__(self):
        if not isinstance(self.interest_rate, Decimal):
            self.interest_rate = Decimal(str(self.interest_rate))
        if not isinstance(self.processing_fee, Decimal):
            self.processing_fee = Decimal(str(self.processing_fee))

        if not self.amount.is_positive():
            raise InvalidParameters(f"Loan amount must be positive, got {self.amount.to_string()}")
        if self.interest_rate < 0:
            raise InvalidParameters(f"Interest rate cannot be negative, got {self.interest_rate}")
        if isinstance(self.tenure, bool) or not isinstance(self.tenure, int) or self.tenure < 1:
            raise InvalidParameters(f"Tenure must be at least one month, got {self.tenure!r}")
        if self.processing_fee < 0:
            raise InvalidParameters(f"Processing fee cannot be negative, got {self.processing_fee}")


@dataclass
class LoanHistoryEntry:
    """One line of a loan's lifecycle history"""
    date: date
    amount: Money
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanHistoryEntry':
        return cls(
            date=date.fromisoformat(data['date']),
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            description=data['description'],
        )


@dataclass
class Loan(StorageRecord):
    """Loan application / account with its EMI schedule"""
    customer_id: str
    customer_name: str                  # Denormalised for listings
    amount: Money
    interest_rate: Decimal
    tenure: int
    processing_fee: Decimal = Decimal('0')
    status: LoanStatus = LoanStatus.PENDING
    disbursal_date: Optional[date] = None
    emis: List[Installment] = field(default_factory=list)
    history: List[LoanHistoryEntry] = field(default_factory=list)

    @property
    def terms(self) -> LoanTerms:
        return LoanTerms(
            amount=self.amount,
            interest_rate=self.interest_rate,
            tenure=self.tenure,
            processing_fee=self.processing_fee,
        )

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def processing_fee_amount(self) -> Money:
        """Fee deducted at disbursal"""
        return self.amount * (self.processing_fee / Decimal('100'))

    @property
    def net_disbursed(self) -> Money:
        """Cash actually handed to the borrower"""
        return self.amount - self.processing_fee_amount

    @property
    def paid_installments(self) -> List[Installment]:
        return [emi for emi in self.emis if emi.is_paid]

    @property
    def pending_installments(self) -> List[Installment]:
        return [emi for emi in self.emis if not emi.is_paid]

    @property
    def all_paid(self) -> bool:
        return bool(self.emis) and all(emi.is_paid for emi in self.emis)

    @property
    def principal_remaining(self) -> Money:
        """Principal still owed after the paid EMIs"""
        remaining = self.amount
        for emi in self.paid_installments:
            remaining = remaining - emi.principal
        return remaining

    @property
    def outstanding_amount(self) -> Money:
        """Sum of the EMIs still to be collected"""
        total = Money.zero(self.currency)
        for emi in self.pending_installments:
            total = total + emi.amount
        return total

    @property
    def next_due_installment(self) -> Optional[Installment]:
        pending = self.pending_installments
        if not pending:
            return None
        return min(pending, key=lambda emi: emi.due_date)

    def find_installment(self, installment_id: str) -> Optional[Installment]:
        for emi in self.emis:
            if emi.id == installment_id:
                return emi
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'interest_rate': str(self.interest_rate),
            'tenure': self.tenure,
            'processing_fee': str(self.processing_fee),
            'status': self.status.value,
            'disbursal_date': self.disbursal_date.isoformat() if self.disbursal_date else "",
            'emis': [emi.to_dict() for emi in self.emis],
            'history': [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            customer_name=data['customer_name'],
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            interest_rate=Decimal(data['interest_rate']),
            tenure=data['tenure'],
            processing_fee=Decimal(data['processing_fee']),
            status=LoanStatus(data['status']),
            disbursal_date=date.fromisoformat(data['disbursal_date']) if data.get('disbursal_date') else None,
            emis=[Installment.from_dict(emi) for emi in data.get('emis', [])],
            history=[LoanHistoryEntry.from_dict(entry) for entry in data.get('history', [])],
        )


class LoanLifecycle:
    """
    Loan state machine.

    Every method checks all of its preconditions before touching the loan,
    so a failed call leaves the record exactly as it was.
    """

    def _require(self, loan: Loan, operation: str) -> None:
        allowed = TRANSITIONS[operation]
        if loan.status not in allowed:
            raise InvalidTransition(operation, loan.status, sorted(allowed, key=lambda s: s.value))

    def note(self, loan: Loan, on: date, amount: Money, description: str) -> None:
        """Append a history line and bump updated_at"""
        loan.history.append(LoanHistoryEntry(date=on, amount=amount, description=description))
        loan.updated_at = datetime.now(timezone.utc)

    def approve(self, loan: Loan, on: Optional[date] = None) -> Loan:
        """Pending -> Approved"""
        self._require(loan, "approve")
        loan.status = LoanStatus.APPROVED
        self.note(loan, on or date.today(), loan.amount, "Loan approved")
        return loan

    def reject(self, loan: Loan, on: Optional[date] = None, reason: Optional[str] = None) -> Loan:
        """Pending -> Rejected"""
        self._require(loan, "reject")
        loan.status = LoanStatus.REJECTED
        description = f"Loan rejected: {reason}" if reason else "Loan rejected"
        self.note(loan, on or date.today(), loan.amount, description)
        return loan

    def disburse(self, loan: Loan, disbursal_date: date) -> Loan:
        """
        Approved -> Disbursed. Materialises the EMI schedule.

        Raises:
            InvalidTransition: loan is not Approved (including a second disbursal)
            InvalidParameters: disbursal_date is not a date
        """
        self._require(loan, "disburse")
        if isinstance(disbursal_date, datetime):
            disbursal_date = disbursal_date.date()
        if not isinstance(disbursal_date, date):
            raise InvalidParameters(f"Disbursal date must be a date, got {disbursal_date!r}")

        emis = schedule(
            loan.amount,
            loan.interest_rate,
            loan.tenure,
            disbursal_date,
            loan_id=loan.id,
        )

        loan.emis = emis
        loan.disbursal_date = disbursal_date
        loan.status = LoanStatus.DISBURSED
        self.note(loan, disbursal_date, loan.net_disbursed,
                  f"Loan disbursed (processing fee {loan.processing_fee_amount.to_string()})")
        return loan

    def record_payment(
        self,
        loan: Loan,
        installment_id: str,
        payment_date: date,
        receipt_number: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None
    ) -> Loan:
        """
        Mark one EMI Paid; close the loan once every EMI is Paid.

        Raises:
            InvalidTransition: loan is not Disbursed
            InstallmentNotFound: no EMI with that id on this loan
            AlreadyPaid: EMI was already collected
        """
        self._require(loan, "record_payment")
        installment = loan.find_installment(installment_id)
        if installment is None:
            raise InstallmentNotFound(loan.id, installment_id)
        if installment.is_paid:
            raise AlreadyPaid(installment_id)
        if isinstance(payment_date, datetime):
            payment_date = payment_date.date()
        if not isinstance(payment_date, date):
            raise InvalidParameters(f"Payment date must be a date, got {payment_date!r}")

        installment.status = InstallmentStatus.PAID
        installment.payment_date = payment_date
        installment.receipt_number = receipt_number
        installment.payment_method = payment_method
        self.note(loan, payment_date, installment.amount, f"EMI {installment.number} collected")

        if loan.all_paid:
            loan.status = LoanStatus.CLOSED
            self.note(loan, payment_date, loan.amount, "Loan closed")
        return loan

    def check_editable(self, loan: Loan) -> None:
        if loan.status.has_schedule:
            raise ImmutableAfterDisbursal(
                f"Loan {loan.id} is {loan.status.value}; terms are frozen after disbursal"
            )
        self._require(loan, "edit")

    def edit(self, loan: Loan, new_terms: LoanTerms, on: Optional[date] = None) -> Loan:
        """
        Replace financial terms while the loan is Pending or Approved.

        Raises:
            ImmutableAfterDisbursal: loan is Disbursed or Closed
            InvalidTransition: loan is Rejected
        """
        self.check_editable(loan)
        if new_terms.amount.currency != loan.currency:
            raise InvalidParameters(
                f"Cannot change loan currency from {loan.currency.code} to {new_terms.amount.currency.code}"
            )

        loan.amount = new_terms.amount
        loan.interest_rate = new_terms.interest_rate
        loan.tenure = new_terms.tenure
        loan.processing_fee = new_terms.processing_fee
        self.note(loan, on or date.today(), loan.amount, "Loan terms edited")
        return loan


class LoanRepository(ABC):
    """Persistence collaborator for loans; each call is atomic on its own"""

    @abstractmethod
    def load(self, loan_id: str) -> Optional[Loan]:
        pass

    @abstractmethod
    def save(self, loan: Loan) -> None:
        pass

    @abstractmethod
    def delete(self, loan_id: str) -> bool:
        pass

    @abstractmethod
    def list(self, status: Optional[LoanStatus] = None,
             customer_id: Optional[str] = None) -> List[Loan]:
        pass


class StorageLoanRepository(LoanRepository):
    """LoanRepository over a StorageInterface table; EMIs are embedded"""

    def __init__(self, storage: StorageInterface, table_name: str = "loans"):
        self.storage = storage
        self.table_name = table_name

    def load(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def save(self, loan: Loan) -> None:
        self.storage.save(self.table_name, loan.id, loan.to_dict())

    def delete(self, loan_id: str) -> bool:
        return self.storage.delete(self.table_name, loan_id)

    def list(self, status: Optional[LoanStatus] = None,
             customer_id: Optional[str] = None) -> List[Loan]:
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if customer_id:
            filters['customer_id'] = customer_id
        loans = [Loan.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

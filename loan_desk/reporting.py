"""
Reporting Module

Derived views over loans and customers: the desk dashboard, the monthly EMI
collection sheet, a borrower's outstanding summary and the application
queue. Nothing here is persisted; every figure is recomputed from the
current loan records.
"""

from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .amortization import Installment
from .config import LoanDeskConfig, get_config
from .currency import Money, Currency
from .customers import Customer, CustomerRepository
from .errors import CustomerNotFound, InvalidParameters, PermissionDenied
from .loans import Loan, LoanRepository, LoanStatus
from .rbac import AccessPolicy, Actor, Operation, Role


@dataclass
class DashboardStats:
    """Portfolio figures for admins and agents"""
    total_customers: int
    total_loans: int                    # Disbursed + Closed
    net_disbursed: Money
    overdue_emis: int
    upcoming_emis: int                  # Due within the configured window
    pending_applications: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_customers": self.total_customers,
            "total_loans": self.total_loans,
            "net_disbursed": str(self.net_disbursed.amount),
            "currency": self.net_disbursed.currency.code,
            "overdue_emis": self.overdue_emis,
            "upcoming_emis": self.upcoming_emis,
            "pending_applications": self.pending_applications,
        }


@dataclass
class CustomerSummary:
    """What a borrower still owes"""
    customer_id: str
    active_loans: int
    total_outstanding: Money
    next_emi_date: Optional[date] = None
    next_emi_amount: Optional[Money] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "active_loans": self.active_loans,
            "total_outstanding": str(self.total_outstanding.amount),
            "currency": self.total_outstanding.currency.code,
            "next_emi_date": self.next_emi_date.isoformat() if self.next_emi_date else None,
            "next_emi_amount": str(self.next_emi_amount.amount) if self.next_emi_amount else None,
        }


@dataclass
class DueEmi:
    """One line of the collection sheet"""
    loan_id: str
    installment: Installment
    customer: Customer

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "installment_id": self.installment.id,
            "number": self.installment.number,
            "due_date": self.installment.due_date.isoformat(),
            "amount": str(self.installment.amount.amount),
            "customer_id": self.customer.id,
            "customer_name": self.customer.name,
            "phone": self.customer.phone,
            "guarantor_name": self.customer.guarantor_name,
            "guarantor_phone": self.customer.guarantor_phone,
        }


@dataclass
class CollectionSheet:
    """Pending EMIs falling due in one calendar month"""
    year: int
    month: int
    rows: List[DueEmi] = field(default_factory=list)
    total_due: Money = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "rows": [row.to_dict() for row in self.rows],
            "total_due": str(self.total_due.amount),
            "currency": self.total_due.currency.code,
        }


class ReportingEngine:
    """
    Read-only reports over the loan and customer repositories
    """

    def __init__(
        self,
        loans: LoanRepository,
        customers: CustomerRepository,
        policy: Optional[AccessPolicy] = None,
        config: Optional[LoanDeskConfig] = None
    ):
        self.loans = loans
        self.customers = customers
        self.policy = policy or AccessPolicy()
        self.config = config or get_config()

    @property
    def currency(self) -> Currency:
        return Currency[self.config.currency]

    def _total(self, amounts: Iterable[Money]) -> Money:
        """
        Sum amounts in the currency they were booked in. An empty total is
        zero in the configured currency.

        Raises:
            InvalidParameters: the amounts span more than one currency
        """
        total = None
        for amount in amounts:
            if total is None:
                total = amount
            elif amount.currency != total.currency:
                raise InvalidParameters(
                    f"Cannot total {total.currency.code} and {amount.currency.code} loans in one report"
                )
            else:
                total = total + amount
        return total if total is not None else Money.zero(self.currency)

    def dashboard(self, as_of: Optional[date] = None, actor: Optional[Actor] = None) -> DashboardStats:
        """
        Portfolio dashboard as of a date (today by default).

        Overdue means pending and due before as_of; upcoming means due
        between as_of and as_of + upcoming_emi_window_days inclusive.
        """
        self.policy.require(actor, Operation.VIEW_DASHBOARD)
        as_of = as_of or date.today()
        horizon = as_of + timedelta(days=self.config.upcoming_emi_window_days)

        loans = self.loans.list()
        booked = [loan for loan in loans if loan.status.has_schedule]

        net_disbursed = self._total(loan.net_disbursed for loan in booked)
        overdue = upcoming = 0
        for loan in booked:
            for emi in loan.pending_installments:
                if emi.is_overdue(as_of):
                    overdue += 1
                elif emi.due_date <= horizon:
                    upcoming += 1

        return DashboardStats(
            total_customers=len(self.customers.list()),
            total_loans=len(booked),
            net_disbursed=net_disbursed,
            overdue_emis=overdue,
            upcoming_emis=upcoming,
            pending_applications=sum(1 for loan in loans if loan.status == LoanStatus.PENDING),
        )

    def customer_summary(self, customer_id: str, actor: Optional[Actor] = None) -> CustomerSummary:
        """
        Outstanding position of one borrower. Customers may only see their own.

        Raises:
            CustomerNotFound: unknown borrower
            PermissionDenied: a customer asking about someone else
        """
        if actor is not None and actor.role == Role.CUSTOMER:
            self.policy.require(actor, Operation.VIEW_OWN_SUMMARY)
            if actor.customer_id != customer_id:
                raise PermissionDenied(actor.role, Operation.VIEW_OWN_SUMMARY)
        else:
            self.policy.require(actor, Operation.VIEW_CUSTOMER)

        if self.customers.load(customer_id) is None:
            raise CustomerNotFound(customer_id)

        active = [loan for loan in self.loans.list(customer_id=customer_id)
                  if loan.pending_installments]

        outstanding = self._total(loan.outstanding_amount for loan in active)
        next_emi = None
        for loan in active:
            candidate = loan.next_due_installment
            if next_emi is None or candidate.due_date < next_emi.due_date:
                next_emi = candidate

        return CustomerSummary(
            customer_id=customer_id,
            active_loans=len(active),
            total_outstanding=outstanding,
            next_emi_date=next_emi.due_date if next_emi else None,
            next_emi_amount=next_emi.amount if next_emi else None,
        )

    def emi_collection_sheet(self, year: int, month: int,
                             actor: Optional[Actor] = None) -> CollectionSheet:
        """
        Pending EMIs of disbursed loans due in the given month, with the
        borrower and guarantor contacts an agent needs to collect them.
        """
        self.policy.require(actor, Operation.VIEW_COLLECTION_SHEET)
        if not 1 <= month <= 12:
            raise InvalidParameters(f"Month must be 1-12, got {month}")

        sheet = CollectionSheet(year=year, month=month, total_due=Money.zero(self.currency))
        customers: Dict[str, Optional[Customer]] = {}

        for loan in self.loans.list(status=LoanStatus.DISBURSED):
            if loan.customer_id not in customers:
                customers[loan.customer_id] = self.customers.load(loan.customer_id)
            customer = customers[loan.customer_id]
            if customer is None:
                continue

            for emi in loan.pending_installments:
                if emi.due_date.year == year and emi.due_date.month == month:
                    sheet.rows.append(DueEmi(loan_id=loan.id, installment=emi, customer=customer))

        sheet.rows.sort(key=lambda row: (row.installment.due_date, row.customer.name))
        sheet.total_due = self._total(row.installment.amount for row in sheet.rows)
        return sheet

    def applications(self, actor: Optional[Actor] = None) -> Dict[str, List[Loan]]:
        """Application queue grouped by decision, for whoever decides them"""
        self.policy.require(actor, Operation.APPROVE_LOAN)
        loans = self.loans.list()
        return {
            "pending": [loan for loan in loans if loan.status == LoanStatus.PENDING],
            "approved": [loan for loan in loans if loan.status == LoanStatus.APPROVED],
            "rejected": [loan for loan in loans if loan.status == LoanStatus.REJECTED],
        }

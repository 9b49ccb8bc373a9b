"""
Service Managers

CustomerManager and LoanManager wrap the pure lifecycle in the operational
shell: repository load/save inside one atomic block, access-policy checks,
audit events and structured logging. A failure anywhere inside the block
rolls the storage back, so a record is either fully updated or untouched.
"""

from dataclasses import replace
from datetime import datetime, timezone, date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
import uuid

from .amortization import PaymentMethod, calculate_installment, schedule
from .audit import AuditTrail, AuditEventType
from .config import LoanDeskConfig, get_config
from .currency import Money, Currency
from .customers import (
    Customer, CustomerRepository, StorageCustomerRepository, KYC_FIELDS, PROFILE_FIELDS
)
from .errors import (
    CustomerHasLoans, CustomerNotFound, InvalidParameters, KYCImmutable,
    LoanNotFound, PermissionDenied
)
from .loans import Loan, LoanLifecycle, LoanRepository, LoanStatus, LoanTerms, StorageLoanRepository
from .logging_config import get_logger, log_action
from .rbac import AccessPolicy, Actor, Operation, Role
from .storage import StorageInterface


logger = get_logger("loan_desk.services")


class _Manager:
    """Shared plumbing for the managers"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        policy: Optional[AccessPolicy] = None,
        config: Optional[LoanDeskConfig] = None,
        loans: Optional[LoanRepository] = None,
        customers: Optional[CustomerRepository] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.policy = policy or AccessPolicy()
        self.config = config or get_config()
        self.loans = loans or StorageLoanRepository(storage)
        self.customers = customers or StorageCustomerRepository(storage)

    @property
    def currency(self) -> Currency:
        return Currency[self.config.currency]

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: Dict[str, Any], actor: Optional[Actor]) -> None:
        if not self.config.enable_audit_logging:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
            user_id=actor.user_id if actor else None,
            role=actor.role.value if actor else None
        )

    def _log(self, message: str, operation: Operation, resource: str,
             actor: Optional[Actor], extra: Optional[dict] = None) -> None:
        log_action(
            logger, "info", message,
            user_id=actor.user_id if actor else None,
            role=actor.role.value if actor else None,
            action=operation.value,
            resource=resource,
            extra=extra
        )

    def _load_customer(self, customer_id: str) -> Customer:
        customer = self.customers.load(customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)
        return customer

    def _load_loan(self, loan_id: str) -> Loan:
        loan = self.loans.load(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan


class CustomerManager(_Manager):
    """
    Customer onboarding and profile maintenance
    """

    def register_customer(
        self,
        name: str,
        phone: str,
        address: str,
        aadhaar_number: Optional[str] = None,
        pan_number: Optional[str] = None,
        guarantor_name: Optional[str] = None,
        guarantor_phone: Optional[str] = None,
        actor: Optional[Actor] = None
    ) -> Customer:
        """
        Register a new borrower

        Raises:
            InvalidParameters: profile or KYC fields are malformed
        """
        self.policy.require(actor, Operation.REGISTER_CUSTOMER)
        now = datetime.now(timezone.utc)

        customer = Customer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            phone=phone,
            address=address,
            aadhaar_number=aadhaar_number,
            pan_number=pan_number,
            guarantor_name=guarantor_name,
            guarantor_phone=guarantor_phone
        )

        with self.storage.atomic():
            self.customers.save(customer)
            self._audit(AuditEventType.CUSTOMER_REGISTERED, "customer", customer.id,
                        {"name": customer.name, "has_kyc": customer.has_kyc}, actor)

        self._log("Customer registered", Operation.REGISTER_CUSTOMER, f"customer:{customer.id}", actor)
        return customer

    def get_customer(self, customer_id: str, actor: Optional[Actor] = None) -> Customer:
        self.policy.require(actor, Operation.VIEW_CUSTOMER)
        return self._load_customer(customer_id)

    def list_customers(self, actor: Optional[Actor] = None) -> List[Customer]:
        self.policy.require(actor, Operation.VIEW_CUSTOMER)
        return self.customers.list()

    def update_profile(self, customer_id: str, changes: Dict[str, Any],
                       actor: Optional[Actor] = None) -> Customer:
        """
        Edit profile fields. A rename is copied onto the customer's loans.

        Raises:
            KYCImmutable: changes touch KYC references already on file
            InvalidParameters: unknown field or invalid value
        """
        self.policy.require(actor, Operation.EDIT_CUSTOMER)

        kyc_changes = {k: v for k, v in changes.items() if k in KYC_FIELDS}
        unknown = set(changes) - set(PROFILE_FIELDS) - set(KYC_FIELDS)
        if unknown:
            raise InvalidParameters(f"Unknown customer fields: {', '.join(sorted(unknown))}")

        with self.storage.atomic():
            customer = self._load_customer(customer_id)

            if kyc_changes:
                current = {k: getattr(customer, k) for k in kyc_changes}
                if customer.has_kyc and current != kyc_changes:
                    raise KYCImmutable(f"Customer {customer_id} KYC references cannot be changed")

            profile_changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
            updated = replace(customer, updated_at=datetime.now(timezone.utc), **profile_changes)
            if kyc_changes and not customer.has_kyc:
                updated.attach_kyc(**kyc_changes)

            self.customers.save(updated)

            renamed = updated.name != customer.name
            if renamed:
                for loan in self.loans.list(customer_id=customer_id):
                    loan.customer_name = updated.name
                    loan.touch()
                    self.loans.save(loan)

            self._audit(AuditEventType.CUSTOMER_UPDATED, "customer", customer_id,
                        {"fields": sorted(changes), "renamed": renamed}, actor)

        self._log("Customer profile updated", Operation.EDIT_CUSTOMER, f"customer:{customer_id}",
                  actor, extra={"fields": sorted(changes)})
        return updated

    def attach_kyc(self, customer_id: str, aadhaar_number: Optional[str] = None,
                   pan_number: Optional[str] = None, actor: Optional[Actor] = None) -> Customer:
        """
        Raises:
            KYCImmutable: KYC already attached
        """
        self.policy.require(actor, Operation.ATTACH_KYC)
        with self.storage.atomic():
            customer = self._load_customer(customer_id)
            customer.attach_kyc(aadhaar_number=aadhaar_number, pan_number=pan_number)
            self.customers.save(customer)
            self._audit(AuditEventType.CUSTOMER_KYC_ATTACHED, "customer", customer_id,
                        {"aadhaar": bool(aadhaar_number), "pan": bool(pan_number)}, actor)

        self._log("Customer KYC attached", Operation.ATTACH_KYC, f"customer:{customer_id}", actor)
        return customer

    def delete_customer(self, customer_id: str, actor: Optional[Actor] = None) -> None:
        """
        Raises:
            CustomerHasLoans: the customer still has loan records
        """
        self.policy.require(actor, Operation.DELETE_CUSTOMER)
        with self.storage.atomic():
            self._load_customer(customer_id)
            loans = self.loans.list(customer_id=customer_id)
            if loans:
                raise CustomerHasLoans(customer_id, len(loans))
            self.customers.delete(customer_id)
            self._audit(AuditEventType.CUSTOMER_DELETED, "customer", customer_id, {}, actor)

        self._log("Customer deleted", Operation.DELETE_CUSTOMER, f"customer:{customer_id}", actor)


class LoanManager(_Manager):
    """
    Loan lifecycle from application through closure
    """

    def __init__(self, *args, lifecycle: Optional[LoanLifecycle] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.lifecycle = lifecycle or LoanLifecycle()

    # -- terms -------------------------------------------------------------

    def build_terms(
        self,
        amount: Decimal,
        interest_rate: Decimal,
        tenure: int,
        processing_fee: Optional[Decimal] = None
    ) -> LoanTerms:
        """
        Build LoanTerms and check them against the configured application bounds

        Raises:
            InvalidParameters: any value outside its bound
        """
        cfg = self.config
        if processing_fee is None:
            processing_fee = Decimal(cfg.default_processing_fee)

        amount = Decimal(str(amount))
        interest_rate = Decimal(str(interest_rate))
        processing_fee = Decimal(str(processing_fee))

        if not Decimal(cfg.min_loan_amount) <= amount <= Decimal(cfg.max_loan_amount):
            raise InvalidParameters(
                f"Loan amount must be between {cfg.min_loan_amount} and {cfg.max_loan_amount}"
            )
        if not Decimal(cfg.min_interest_rate) <= interest_rate <= Decimal(cfg.max_interest_rate):
            raise InvalidParameters(
                f"Interest rate must be between {cfg.min_interest_rate}% and {cfg.max_interest_rate}%"
            )
        if isinstance(tenure, bool) or not isinstance(tenure, int) or \
                not cfg.min_tenure_months <= tenure <= cfg.max_tenure_months:
            raise InvalidParameters(
                f"Tenure must be between {cfg.min_tenure_months} and {cfg.max_tenure_months} months"
            )
        if not Decimal('0') <= processing_fee <= Decimal(cfg.max_processing_fee):
            raise InvalidParameters(f"Processing fee must be between 0% and {cfg.max_processing_fee}%")

        return LoanTerms(
            amount=Money(amount, self.currency),
            interest_rate=interest_rate,
            tenure=tenure,
            processing_fee=processing_fee
        )

    def quote(self, amount: Decimal, interest_rate: Decimal, tenure: int) -> Dict[str, Money]:
        """Installment preview for an application form, totalled over the schedule disbursal would build"""
        principal = Money(Decimal(str(amount)), self.currency)
        rate = Decimal(str(interest_rate))
        installment = calculate_installment(principal, rate, tenure)
        rows = schedule(principal, rate, tenure, date.today())
        zero = Money.zero(principal.currency)
        return {
            "installment": installment,
            "total_payable": sum((row.amount for row in rows), zero),
            "total_interest": sum((row.interest for row in rows), zero),
        }

    # -- queries -----------------------------------------------------------

    def _check_owner(self, loan: Loan, actor: Optional[Actor]) -> None:
        if actor is not None and actor.role == Role.CUSTOMER and loan.customer_id != actor.customer_id:
            raise PermissionDenied(actor.role, Operation.VIEW_LOAN)

    def get_loan(self, loan_id: str, actor: Optional[Actor] = None) -> Loan:
        self.policy.require(actor, Operation.VIEW_LOAN)
        loan = self._load_loan(loan_id)
        self._check_owner(loan, actor)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None, customer_id: Optional[str] = None,
                   actor: Optional[Actor] = None) -> List[Loan]:
        self.policy.require(actor, Operation.VIEW_LOAN)
        if actor is not None and actor.role == Role.CUSTOMER:
            customer_id = actor.customer_id
            if customer_id is None:
                return []
        return self.loans.list(status=status, customer_id=customer_id)

    # -- commands ----------------------------------------------------------

    def apply_for_loan(
        self,
        customer_id: str,
        amount: Decimal,
        interest_rate: Decimal,
        tenure: int,
        processing_fee: Optional[Decimal] = None,
        actor: Optional[Actor] = None
    ) -> Loan:
        """
        Create a Pending loan application with no schedule

        Raises:
            CustomerNotFound: unknown borrower
            InvalidParameters: terms outside the configured bounds
        """
        self.policy.require(actor, Operation.APPLY_LOAN)
        terms = self.build_terms(amount, interest_rate, tenure, processing_fee)
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            customer = self._load_customer(customer_id)
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                customer_id=customer.id,
                customer_name=customer.name,
                amount=terms.amount,
                interest_rate=terms.interest_rate,
                tenure=terms.tenure,
                processing_fee=terms.processing_fee,
            )
            self.lifecycle.note(loan, now.date(), loan.amount, "Loan application submitted")
            self.loans.save(loan)
            self._audit(AuditEventType.LOAN_APPLIED, "loan", loan.id, {
                "customer_id": customer.id,
                "amount": loan.amount.amount,
                "interest_rate": loan.interest_rate,
                "tenure": loan.tenure,
                "processing_fee": loan.processing_fee,
            }, actor)

        self._log("Loan application submitted", Operation.APPLY_LOAN, f"loan:{loan.id}", actor,
                  extra={"customer_id": customer.id, "amount": str(loan.amount.amount)})
        return loan

    def _apply(
        self,
        loan_id: str,
        operation: Operation,
        actor: Optional[Actor],
        change: Callable[[Loan], Loan],
        event_type: AuditEventType,
        message: str,
        metadata: Optional[Callable[[Loan], Dict[str, Any]]] = None
    ) -> Loan:
        """Load, transition, save and audit one loan atomically"""
        self.policy.require(actor, operation)
        with self.storage.atomic():
            loan = self._load_loan(loan_id)
            previous = loan.status
            change(loan)
            self.loans.save(loan)

            details = {"from": previous.value, "to": loan.status.value}
            if metadata:
                details.update(metadata(loan))
            self._audit(event_type, "loan", loan.id, details, actor)

            closed = previous != LoanStatus.CLOSED and loan.status == LoanStatus.CLOSED
            if closed:
                self._audit(AuditEventType.LOAN_CLOSED, "loan", loan.id, {}, actor)

        self._log(message, operation, f"loan:{loan.id}", actor, extra=details)
        if closed:
            self._log("Loan closed", operation, f"loan:{loan.id}", actor)
        return loan

    def approve_loan(self, loan_id: str, actor: Optional[Actor] = None) -> Loan:
        return self._apply(loan_id, Operation.APPROVE_LOAN, actor,
                           self.lifecycle.approve,
                           AuditEventType.LOAN_APPROVED, "Loan approved")

    def reject_loan(self, loan_id: str, reason: Optional[str] = None,
                    actor: Optional[Actor] = None) -> Loan:
        return self._apply(loan_id, Operation.REJECT_LOAN, actor,
                           lambda loan: self.lifecycle.reject(loan, reason=reason),
                           AuditEventType.LOAN_REJECTED, "Loan rejected",
                           lambda loan: {"reason": reason})

    def disburse_loan(self, loan_id: str, disbursal_date: Optional[date] = None,
                      actor: Optional[Actor] = None) -> Loan:
        """
        Release funds and generate the EMI schedule

        Raises:
            InvalidTransition: loan is not Approved
        """
        on = disbursal_date or date.today()
        return self._apply(loan_id, Operation.DISBURSE_LOAN, actor,
                           lambda loan: self.lifecycle.disburse(loan, on),
                           AuditEventType.LOAN_DISBURSED, "Loan disbursed",
                           lambda loan: {
                               "disbursal_date": loan.disbursal_date,
                               "installments": len(loan.emis),
                               "installment_amount": loan.emis[0].amount.amount,
                               "net_disbursed": loan.net_disbursed.amount,
                           })

    def record_payment(
        self,
        loan_id: str,
        installment_id: str,
        payment_date: Optional[date] = None,
        receipt_number: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        actor: Optional[Actor] = None
    ) -> Loan:
        """
        Mark an EMI collected; the loan closes with its last EMI

        Raises:
            InstallmentNotFound, AlreadyPaid, InvalidTransition
        """
        on = payment_date or date.today()

        def details(loan: Loan) -> Dict[str, Any]:
            emi = loan.find_installment(installment_id)
            return {
                "installment_id": installment_id,
                "amount": emi.amount.amount,
                "payment_date": on,
                "receipt_number": receipt_number,
                "payment_method": payment_method,
            }

        return self._apply(loan_id, Operation.RECORD_PAYMENT, actor,
                           lambda loan: self.lifecycle.record_payment(
                               loan, installment_id, on,
                               receipt_number=receipt_number, payment_method=payment_method),
                           AuditEventType.EMI_COLLECTED, "EMI collected", details)

    def edit_loan(
        self,
        loan_id: str,
        amount: Optional[Decimal] = None,
        interest_rate: Optional[Decimal] = None,
        tenure: Optional[int] = None,
        processing_fee: Optional[Decimal] = None,
        actor: Optional[Actor] = None
    ) -> Loan:
        """
        Change terms of a Pending or Approved loan; unspecified terms are kept

        Raises:
            ImmutableAfterDisbursal: loan is Disbursed or Closed
        """
        def change(loan: Loan) -> Loan:
            self.lifecycle.check_editable(loan)
            current = loan.terms
            terms = self.build_terms(
                amount if amount is not None else current.amount.amount,
                interest_rate if interest_rate is not None else current.interest_rate,
                tenure if tenure is not None else current.tenure,
                processing_fee if processing_fee is not None else current.processing_fee,
            )
            return self.lifecycle.edit(loan, terms)

        return self._apply(loan_id, Operation.EDIT_LOAN, actor, change,
                           AuditEventType.LOAN_EDITED, "Loan terms edited",
                           lambda loan: {
                               "amount": loan.amount.amount,
                               "interest_rate": loan.interest_rate,
                               "tenure": loan.tenure,
                               "processing_fee": loan.processing_fee,
                           })

    def delete_loan(self, loan_id: str, actor: Optional[Actor] = None) -> None:
        """
        Remove a loan and its EMIs permanently. No soft delete.

        Raises:
            LoanNotFound: no such loan
        """
        self.policy.require(actor, Operation.DELETE_LOAN)
        with self.storage.atomic():
            loan = self._load_loan(loan_id)
            self.loans.delete(loan_id)
            self._audit(AuditEventType.LOAN_DELETED, "loan", loan_id, {
                "status": loan.status.value,
                "customer_id": loan.customer_id,
                "installments": len(loan.emis),
            }, actor)

        self._log("Loan deleted", Operation.DELETE_LOAN, f"loan:{loan_id}", actor,
                  extra={"status": loan.status.value})

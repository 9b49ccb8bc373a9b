"""
Loan desk error taxonomy.

Every failure is local and recoverable: raised synchronously to the caller,
never retried here. All derive from ValueError so callers that only know
about bad-input errors still catch them.
"""


class LoanDeskError(ValueError):
    """Base class for all loan desk failures"""


class InvalidParameters(LoanDeskError):
    """Amortization or loan terms are out of range"""


class InvalidTransition(LoanDeskError):
    """Illegal loan status change"""

    def __init__(self, operation: str, current_status, allowed=()):
        self.operation = operation
        self.current_status = current_status
        self.allowed = tuple(allowed)
        allowed_text = ", ".join(s.value for s in self.allowed) or "none"
        super().__init__(
            f"Cannot {operation} a loan in status {current_status.value} "
            f"(allowed from: {allowed_text})"
        )


class ImmutableAfterDisbursal(LoanDeskError):
    """Financial terms are frozen once money has moved"""


class InstallmentNotFound(LoanDeskError):
    def __init__(self, loan_id: str, installment_id: str):
        self.loan_id = loan_id
        self.installment_id = installment_id
        super().__init__(f"Installment {installment_id} not found on loan {loan_id}")


class AlreadyPaid(LoanDeskError):
    def __init__(self, installment_id: str):
        self.installment_id = installment_id
        super().__init__(f"Installment {installment_id} is already paid")


class NotFound(LoanDeskError):
    """Base for missing records"""


class LoanNotFound(NotFound):
    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found")


class CustomerNotFound(NotFound):
    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class CustomerHasLoans(LoanDeskError):
    def __init__(self, customer_id: str, loan_count: int):
        self.customer_id = customer_id
        self.loan_count = loan_count
        super().__init__(f"Cannot delete customer {customer_id} with {loan_count} existing loan(s)")


class KYCImmutable(LoanDeskError):
    """KYC references cannot change once attached"""


class PermissionDenied(LoanDeskError):
    def __init__(self, role, operation):
        self.role = role
        self.operation = operation
        super().__init__(f"Role {role.value} may not {operation.value}")

"""
Role-Based Access Control Module

Declares which roles may invoke each loan desk operation. Enforcement lives
here, outside the loan lifecycle; managers and API routes consult the
policy before calling into the core.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import PermissionDenied


class Role(Enum):
    """Desk roles"""
    ADMIN = "admin"
    AGENT = "agent"
    CUSTOMER = "customer"


class Operation(Enum):
    """Guarded operations"""
    # Customer operations
    REGISTER_CUSTOMER = "register_customer"
    VIEW_CUSTOMER = "view_customer"
    EDIT_CUSTOMER = "edit_customer"
    ATTACH_KYC = "attach_kyc"
    DELETE_CUSTOMER = "delete_customer"

    # Loan operations
    APPLY_LOAN = "apply_loan"
    VIEW_LOAN = "view_loan"
    EDIT_LOAN = "edit_loan"
    APPROVE_LOAN = "approve_loan"
    REJECT_LOAN = "reject_loan"
    DISBURSE_LOAN = "disburse_loan"
    RECORD_PAYMENT = "record_payment"
    DELETE_LOAN = "delete_loan"

    # Reporting
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_COLLECTION_SHEET = "view_collection_sheet"
    VIEW_OWN_SUMMARY = "view_own_summary"
    VERIFY_AUDIT = "verify_audit"


DEFAULT_GRANTS: Dict[Role, FrozenSet[Operation]] = {
    Role.ADMIN: frozenset(Operation),
    Role.AGENT: frozenset({
        Operation.REGISTER_CUSTOMER, Operation.VIEW_CUSTOMER, Operation.EDIT_CUSTOMER,
        Operation.ATTACH_KYC,
        Operation.VIEW_LOAN, Operation.RECORD_PAYMENT,
        Operation.VIEW_DASHBOARD, Operation.VIEW_COLLECTION_SHEET,
    }),
    Role.CUSTOMER: frozenset({
        Operation.VIEW_LOAN, Operation.VIEW_OWN_SUMMARY,
    }),
}


@dataclass(frozen=True)
class Actor:
    """Whoever is invoking an operation"""
    role: Role
    user_id: Optional[str] = None
    customer_id: Optional[str] = None   # Set for the customer role


class AccessPolicy:
    """Role -> permitted operations"""

    def __init__(self, grants: Optional[Dict[Role, FrozenSet[Operation]]] = None):
        self.grants = dict(grants or DEFAULT_GRANTS)

    def allows(self, role: Role, operation: Operation) -> bool:
        return operation in self.grants.get(role, frozenset())

    def require(self, actor: Optional[Actor], operation: Operation) -> None:
        """
        Raises:
            PermissionDenied: the actor's role is not granted the operation
        """
        if actor is None:
            # Internal callers (scripts, tests) act without a role
            return
        if not self.allows(actor.role, operation):
            raise PermissionDenied(actor.role, operation)

    def roles_for(self, operation: Operation) -> FrozenSet[Role]:
        return frozenset(role for role, ops in self.grants.items() if operation in ops)

"""
System wiring and caller identity dependencies
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from ..audit import AuditTrail
from ..config import LoanDeskConfig, get_config
from ..rbac import AccessPolicy, Actor, Role
from ..reporting import ReportingEngine
from ..services import CustomerManager, LoanManager
from ..storage import InMemoryStorage, SQLiteStorage, StorageInterface


class LoanDeskSystem:
    """All loan desk components wired to one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LoanDeskConfig] = None):
        self.config = config or get_config()

        if storage is None:
            if self.config.use_sqlite:
                storage = SQLiteStorage(self.config.database_path)
            else:
                storage = InMemoryStorage()
        self.storage = storage

        self.policy = AccessPolicy()
        self.audit_trail = AuditTrail(self.storage)
        self.customer_manager = CustomerManager(
            self.storage, self.audit_trail, policy=self.policy, config=self.config
        )
        self.loan_manager = LoanManager(
            self.storage, self.audit_trail, policy=self.policy, config=self.config,
            loans=self.customer_manager.loans, customers=self.customer_manager.customers
        )
        self.reporting_engine = ReportingEngine(
            self.loan_manager.loans, self.loan_manager.customers,
            policy=self.policy, config=self.config
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[LoanDeskSystem] = None


def get_system() -> LoanDeskSystem:
    """Process-wide system, created on first use"""
    global _system
    if _system is None:
        _system = LoanDeskSystem()
    return _system


def get_actor(
    x_role: str = Header(..., description="admin, agent or customer"),
    x_user_id: Optional[str] = Header(None),
    x_customer_id: Optional[str] = Header(None),
) -> Actor:
    """Caller identity as asserted by the front end; there is no real login"""
    try:
        role = Role(x_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_role}"
        )
    if role == Role.CUSTOMER and not x_customer_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer role requires X-Customer-Id"
        )
    return Actor(role=role, user_id=x_user_id, customer_id=x_customer_id)

"""
Tests for role-based access control
"""

import pytest

from loan_desk.errors import PermissionDenied
from loan_desk.rbac import AccessPolicy, Actor, Operation, Role


class TestAccessPolicy:
    """Test default grants and enforcement"""

    def setup_method(self):
        self.policy = AccessPolicy()

    def test_admin_may_do_everything(self):
        assert all(self.policy.allows(Role.ADMIN, op) for op in Operation)

    @pytest.mark.parametrize("operation", [
        Operation.REGISTER_CUSTOMER, Operation.EDIT_CUSTOMER, Operation.VIEW_LOAN,
        Operation.RECORD_PAYMENT, Operation.VIEW_DASHBOARD, Operation.VIEW_COLLECTION_SHEET,
    ])
    def test_agent_grants(self, operation):
        assert self.policy.allows(Role.AGENT, operation)

    @pytest.mark.parametrize("operation", [
        Operation.APPLY_LOAN, Operation.APPROVE_LOAN, Operation.REJECT_LOAN,
        Operation.DISBURSE_LOAN, Operation.EDIT_LOAN, Operation.DELETE_LOAN,
        Operation.DELETE_CUSTOMER, Operation.VERIFY_AUDIT,
    ])
    def test_agent_denials(self, operation):
        assert not self.policy.allows(Role.AGENT, operation)

    def test_customer_grants(self):
        allowed = {op for op in Operation if self.policy.allows(Role.CUSTOMER, op)}
        assert allowed == {Operation.VIEW_LOAN, Operation.VIEW_OWN_SUMMARY}

    def test_require_raises_for_denied_role(self):
        actor = Actor(role=Role.AGENT, user_id="agent-1")
        with pytest.raises(PermissionDenied) as exc_info:
            self.policy.require(actor, Operation.APPROVE_LOAN)
        assert exc_info.value.role == Role.AGENT
        assert exc_info.value.operation == Operation.APPROVE_LOAN
        assert "agent" in str(exc_info.value)

    def test_require_passes_without_actor(self):
        self.policy.require(None, Operation.DELETE_LOAN)

    def test_roles_for(self):
        assert self.policy.roles_for(Operation.RECORD_PAYMENT) == {Role.ADMIN, Role.AGENT}
        assert self.policy.roles_for(Operation.DISBURSE_LOAN) == {Role.ADMIN}

    def test_custom_grants(self):
        policy = AccessPolicy({Role.AGENT: frozenset({Operation.APPROVE_LOAN})})
        assert policy.allows(Role.AGENT, Operation.APPROVE_LOAN)
        assert not policy.allows(Role.ADMIN, Operation.APPROVE_LOAN)

"""
Reporting and audit endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .auth import LoanDeskSystem, get_actor, get_system
from .schemas import loans_to_response
from ..audit import AuditEventType
from ..rbac import Actor, Operation


router = APIRouter()


@router.get("/reports/dashboard")
async def dashboard(
    as_of: Optional[date] = None,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Portfolio dashboard for admins and agents"""
    stats = system.reporting_engine.dashboard(as_of=as_of, actor=actor)
    return stats.to_dict()


@router.get("/reports/emi-collection")
async def emi_collection(
    year: Optional[int] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Pending EMIs due in a month, current month by default"""
    today = date.today()
    sheet = system.reporting_engine.emi_collection_sheet(
        year or today.year, month or today.month, actor=actor
    )
    return sheet.to_dict()


@router.get("/reports/customers/{customer_id}/summary")
async def customer_summary(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    summary = system.reporting_engine.customer_summary(customer_id, actor=actor)
    return summary.to_dict()


@router.get("/reports/applications")
async def applications(
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Loan applications grouped by decision"""
    queue = system.reporting_engine.applications(actor=actor)
    return {name: loans_to_response(loans) for name, loans in queue.items()}


@router.get("/audit/events/{entity_type}/{entity_id}")
async def audit_events(
    entity_type: str,
    entity_id: str,
    limit: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Audit history of one customer or loan, oldest first"""
    system.policy.require(actor, Operation.VERIFY_AUDIT)
    events = system.audit_trail.get_events_for_entity(entity_type, entity_id, limit=limit)
    return {"events": [event.to_dict() for event in events]}


@router.get("/audit/verify")
async def verify_audit(
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Re-hash the audit chain and report any breaks"""
    system.policy.require(actor, Operation.VERIFY_AUDIT)
    result = system.audit_trail.verify_integrity()
    system.audit_trail.log_event(
        AuditEventType.AUDIT_INTEGRITY_CHECK, "audit", "chain",
        {"valid": result["valid"], "total_events": result["total_events"]},
        user_id=actor.user_id, role=actor.role.value
    )
    return result

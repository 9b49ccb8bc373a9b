"""
Loan management endpoints
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .auth import LoanDeskSystem, get_actor, get_system
from .schemas import (
    DisburseLoanRequest,
    EditLoanRequest,
    LoanApplicationRequest,
    MoneyModel,
    RecordPaymentRequest,
    RejectLoanRequest,
    loan_to_response,
    loans_to_response,
)
from ..amortization import PaymentMethod
from ..loans import LoanStatus
from ..rbac import Actor


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    request: LoanApplicationRequest,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Submit a loan application; it starts Pending with no schedule"""
    loan = system.loan_manager.apply_for_loan(
        customer_id=request.customer_id,
        amount=request.amount,
        interest_rate=request.interest_rate,
        tenure=request.tenure,
        processing_fee=request.processing_fee,
        actor=actor
    )
    return {
        "loan_id": loan.id,
        "message": "Loan application submitted",
        "loan": loan_to_response(loan),
    }


@router.get("")
async def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    loans = system.loan_manager.list_loans(status=status_filter, customer_id=customer_id, actor=actor)
    return {"loans": loans_to_response(loans)}


@router.get("/quote")
async def quote(
    amount: Decimal = Query(..., gt=0),
    interest_rate: Decimal = Query(..., ge=0),
    tenure: int = Query(..., ge=1),
    system: LoanDeskSystem = Depends(get_system)
):
    """EMI preview for the application form; nothing is stored"""
    figures = system.loan_manager.quote(amount, interest_rate, tenure)
    return {name: MoneyModel.from_money(value).model_dump() for name, value in figures.items()}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    loan = system.loan_manager.get_loan(loan_id, actor=actor)
    return loan_to_response(loan)


@router.patch("/{loan_id}")
async def edit_loan(
    loan_id: str,
    request: EditLoanRequest,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Change terms before disbursal"""
    loan = system.loan_manager.edit_loan(loan_id, actor=actor, **request.model_dump(exclude_unset=True))
    return loan_to_response(loan)


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    loan = system.loan_manager.approve_loan(loan_id, actor=actor)
    return loan_to_response(loan)


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: Optional[RejectLoanRequest] = None,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    reason = request.reason if request else None
    loan = system.loan_manager.reject_loan(loan_id, reason=reason, actor=actor)
    return loan_to_response(loan)


@router.post("/{loan_id}/disburse")
async def disburse_loan(
    loan_id: str,
    request: Optional[DisburseLoanRequest] = None,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Release funds and generate the EMI schedule"""
    disbursal_date = request.disbursal_date if request else None
    loan = system.loan_manager.disburse_loan(loan_id, disbursal_date=disbursal_date, actor=actor)
    return loan_to_response(loan)


@router.post("/{loan_id}/emis/{installment_id}/pay")
async def record_payment(
    loan_id: str,
    installment_id: str,
    request: Optional[RecordPaymentRequest] = None,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Mark one EMI collected"""
    request = request or RecordPaymentRequest()
    loan = system.loan_manager.record_payment(
        loan_id,
        installment_id,
        payment_date=request.payment_date,
        receipt_number=request.receipt_number,
        payment_method=PaymentMethod(request.payment_method) if request.payment_method else None,
        actor=actor
    )
    return loan_to_response(loan)


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Remove a loan and its schedule permanently"""
    system.loan_manager.delete_loan(loan_id, actor=actor)
    return {"loan_id": loan_id, "message": "Loan deleted"}

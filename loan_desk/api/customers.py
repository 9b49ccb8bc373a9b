"""
Customer management endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import LoanDeskSystem, get_actor, get_system
from .schemas import (
    AttachKYCRequest,
    CreateCustomerRequest,
    UpdateCustomerRequest,
    customer_to_response,
)
from ..rbac import Actor


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_customer(
    request: CreateCustomerRequest,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Register a new borrower"""
    customer = system.customer_manager.register_customer(actor=actor, **request.model_dump())
    return {
        "customer_id": customer.id,
        "message": "Customer registered successfully",
        "customer": customer_to_response(customer),
    }


@router.get("")
async def list_customers(
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    customers = system.customer_manager.list_customers(actor=actor)
    return {"customers": [customer_to_response(c) for c in customers]}


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    customer = system.customer_manager.get_customer(customer_id, actor=actor)
    return customer_to_response(customer)


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Edit profile fields; KYC references already on file stay fixed"""
    changes = request.model_dump(exclude_unset=True)
    customer = system.customer_manager.update_profile(customer_id, changes, actor=actor)
    return customer_to_response(customer)


@router.post("/{customer_id}/kyc")
async def attach_kyc(
    customer_id: str,
    request: AttachKYCRequest,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    customer = system.customer_manager.attach_kyc(
        customer_id,
        aadhaar_number=request.aadhaar_number,
        pan_number=request.pan_number,
        actor=actor
    )
    return customer_to_response(customer)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    system: LoanDeskSystem = Depends(get_system)
):
    """Delete a customer with no loan records"""
    system.customer_manager.delete_customer(customer_id, actor=actor)
    return {"customer_id": customer_id, "message": "Customer deleted"}

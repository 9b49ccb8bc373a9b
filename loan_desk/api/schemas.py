"""
Pydantic schemas for API requests and responses

Requests are parsed and validated here once; managers only ever see
well-formed values.
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..amortization import Installment
from ..currency import Money
from ..customers import Customer
from ..loans import Loan


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (INR, USD, etc.)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Customer schemas
class CreateCustomerRequest(BaseModel):
    name: str = Field(..., min_length=2)
    phone: str = Field(..., pattern=r'^\d{10}$')
    address: str = Field(..., min_length=10)
    aadhaar_number: Optional[str] = Field(None, pattern=r'^\d{12}$')
    pan_number: Optional[str] = Field(None, min_length=5, description="PAN or Voter ID")
    guarantor_name: Optional[str] = Field(None, min_length=2)
    guarantor_phone: Optional[str] = Field(None, pattern=r'^\d{10}$')


class UpdateCustomerRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = Field(None, pattern=r'^\d{10}$')
    address: Optional[str] = Field(None, min_length=10)
    guarantor_name: Optional[str] = Field(None, min_length=2)
    guarantor_phone: Optional[str] = Field(None, pattern=r'^\d{10}$')
    aadhaar_number: Optional[str] = Field(None, pattern=r'^\d{12}$')
    pan_number: Optional[str] = Field(None, min_length=5)


class AttachKYCRequest(BaseModel):
    aadhaar_number: Optional[str] = Field(None, pattern=r'^\d{12}$')
    pan_number: Optional[str] = Field(None, min_length=5)


# Loan schemas
class LoanApplicationRequest(BaseModel):
    customer_id: str
    amount: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(..., gt=0, description="Annual percent")
    tenure: int = Field(..., ge=1, description="Months")
    processing_fee: Optional[Decimal] = Field(None, ge=0, description="Percent of amount")


class EditLoanRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    interest_rate: Optional[Decimal] = Field(None, gt=0)
    tenure: Optional[int] = Field(None, ge=1)
    processing_fee: Optional[Decimal] = Field(None, ge=0)


class RejectLoanRequest(BaseModel):
    reason: Optional[str] = None


class DisburseLoanRequest(BaseModel):
    disbursal_date: Optional[date] = None


class RecordPaymentRequest(BaseModel):
    payment_date: Optional[date] = None
    receipt_number: Optional[str] = None
    payment_method: Optional[Literal["Cash", "Online"]] = None


# Responses
def customer_to_response(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "address": customer.address,
        "aadhaar_number": customer.aadhaar_number,
        "pan_number": customer.pan_number,
        "guarantor_name": customer.guarantor_name,
        "guarantor_phone": customer.guarantor_phone,
        "has_kyc": customer.has_kyc,
        "created_at": customer.created_at.isoformat(),
    }


def installment_to_response(emi: Installment) -> Dict[str, Any]:
    return {
        "id": emi.id,
        "number": emi.number,
        "due_date": emi.due_date.isoformat(),
        "amount": str(emi.amount.amount),
        "principal": str(emi.principal.amount),
        "interest": str(emi.interest.amount),
        "balance": str(emi.balance.amount),
        "status": emi.status.value,
        "payment_date": emi.payment_date.isoformat() if emi.payment_date else None,
        "receipt_number": emi.receipt_number,
        "payment_method": emi.payment_method.value if emi.payment_method else None,
    }


def loan_to_response(loan: Loan, include_schedule: bool = True) -> Dict[str, Any]:
    result = {
        "id": loan.id,
        "customer_id": loan.customer_id,
        "customer_name": loan.customer_name,
        "amount": MoneyModel.from_money(loan.amount).model_dump(),
        "interest_rate": str(loan.interest_rate),
        "tenure": loan.tenure,
        "processing_fee": str(loan.processing_fee),
        "processing_fee_amount": MoneyModel.from_money(loan.processing_fee_amount).model_dump(),
        "net_disbursed": MoneyModel.from_money(loan.net_disbursed).model_dump(),
        "status": loan.status.value,
        "disbursal_date": loan.disbursal_date.isoformat() if loan.disbursal_date else "",
        "principal_remaining": MoneyModel.from_money(loan.principal_remaining).model_dump(),
        "outstanding_amount": MoneyModel.from_money(loan.outstanding_amount).model_dump(),
        "history": [
            {"date": h.date.isoformat(), "amount": str(h.amount.amount), "description": h.description}
            for h in loan.history
        ],
    }
    if include_schedule:
        result["emis"] = [installment_to_response(emi) for emi in loan.emis]
    return result


def loans_to_response(loans: List[Loan]) -> List[Dict[str, Any]]:
    return [loan_to_response(loan, include_schedule=False) for loan in loans]

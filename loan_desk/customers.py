"""
Customer Module

Borrower profiles with KYC references and an optional guarantor.
KYC references are fixed once attached; only profile fields are editable.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import re

from .errors import InvalidParameters, KYCImmutable
from .storage import StorageInterface, StorageRecord


PHONE_PATTERN = re.compile(r'^\d{10}$')
AADHAAR_PATTERN = re.compile(r'^\d{12}$')

PROFILE_FIELDS = ("name", "phone", "address", "guarantor_name", "guarantor_phone")
KYC_FIELDS = ("aadhaar_number", "pan_number")


def _check_name(value: str, label: str) -> None:
    if not value or len(value.strip()) < 2:
        raise InvalidParameters(f"{label} must be at least 2 characters")


def _check_phone(value: str, label: str) -> None:
    if not PHONE_PATTERN.match(value or ""):
        raise InvalidParameters(f"{label} must be 10 digits")


@dataclass
class Customer(StorageRecord):
    """Borrower profile"""
    name: str
    phone: str
    address: str
    aadhaar_number: Optional[str] = None
    pan_number: Optional[str] = None    # PAN or Voter ID
    guarantor_name: Optional[str] = None
    guarantor_phone: Optional[str] = None

    def __post_init__(self):
        _check_name(self.name, "Name")
        _check_phone(self.phone, "Phone number")
        if not self.address or len(self.address.strip()) < 10:
            raise InvalidParameters("Address must be at least 10 characters")

        if self.aadhaar_number is not None and not AADHAAR_PATTERN.match(self.aadhaar_number):
            raise InvalidParameters("Aadhaar number must be 12 digits")
        if self.pan_number is not None and len(self.pan_number.strip()) < 5:
            raise InvalidParameters("PAN/Voter ID must be at least 5 characters")

        # Guarantor is optional, but all-or-nothing
        if self.guarantor_name is not None or self.guarantor_phone is not None:
            _check_name(self.guarantor_name or "", "Guarantor name")
            _check_phone(self.guarantor_phone or "", "Guarantor phone")

    @property
    def has_kyc(self) -> bool:
        return bool(self.aadhaar_number or self.pan_number)

    @property
    def has_guarantor(self) -> bool:
        return self.guarantor_name is not None

    def attach_kyc(self, aadhaar_number: Optional[str] = None,
                   pan_number: Optional[str] = None) -> None:
        """
        Attach KYC references.

        Raises:
            KYCImmutable: a reference is already on file
            InvalidParameters: malformed reference
        """
        if self.has_kyc:
            raise KYCImmutable(f"Customer {self.id} already has KYC on file")
        if not aadhaar_number and not pan_number:
            raise InvalidParameters("At least one KYC reference is required")

        previous = (self.aadhaar_number, self.pan_number)
        self.aadhaar_number = aadhaar_number
        self.pan_number = pan_number
        try:
            self.__post_init__()
        except InvalidParameters:
            self.aadhaar_number, self.pan_number = previous
            raise
        self.updated_at = datetime.now(timezone.utc)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


class CustomerRepository(ABC):
    """Persistence collaborator for customers"""

    @abstractmethod
    def load(self, customer_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    def save(self, customer: Customer) -> None:
        pass

    @abstractmethod
    def delete(self, customer_id: str) -> bool:
        pass

    @abstractmethod
    def list(self) -> List[Customer]:
        pass


class StorageCustomerRepository(CustomerRepository):
    """CustomerRepository over a StorageInterface table"""

    def __init__(self, storage: StorageInterface, table_name: str = "customers"):
        self.storage = storage
        self.table_name = table_name

    def load(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return Customer.from_dict(data)
        return None

    def save(self, customer: Customer) -> None:
        self.storage.save(self.table_name, customer.id, customer.to_dict())

    def delete(self, customer_id: str) -> bool:
        return self.storage.delete(self.table_name, customer_id)

    def list(self) -> List[Customer]:
        customers = [Customer.from_dict(data) for data in self.storage.load_all(self.table_name)]
        customers.sort(key=lambda c: c.created_at)
        return customers

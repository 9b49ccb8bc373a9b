"""
Audit Trail Module

Hash-chained immutable audit log with SHA-256 for tamper detection.
Every customer and loan state change is logged here.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Customer events
    CUSTOMER_REGISTERED = "customer_registered"
    CUSTOMER_UPDATED = "customer_updated"
    CUSTOMER_KYC_ATTACHED = "customer_kyc_attached"
    CUSTOMER_DELETED = "customer_deleted"

    # Loan events
    LOAN_APPLIED = "loan_applied"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_EDITED = "loan_edited"
    LOAN_DISBURSED = "loan_disbursed"
    EMI_COLLECTED = "emi_collected"
    LOAN_CLOSED = "loan_closed"
    LOAN_DELETED = "loan_deleted"

    # System events
    AUDIT_INTEGRITY_CHECK = "audit_integrity_check"


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    event_type: AuditEventType
    entity_type: str        # customer or loan
    entity_id: str
    previous_hash: str      # Hash of previous audit event for chaining
    current_hash: str       # SHA-256 hash of this event
    metadata: Dict[str, Any]
    user_id: Optional[str] = None
    role: Optional[str] = None

    def __post_init__(self):
        self.metadata = _json_safe(self.metadata or {})

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash
        """
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'role': self.role,
            'metadata': self.metadata
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['event_type'] = AuditEventType(data['event_type'])
        return cls(**data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._last_hash: Optional[str] = None
        self._sequence = 0
        self._lock = threading.Lock()
        self._load_last_hash()

    def _sorted_events(self) -> List[Dict[str, Any]]:
        events = self.storage.load_all(self.table_name)
        return sorted(events, key=lambda x: (x.get('metadata', {}).get('_seq', 0), x.get('created_at', '')))

    def _load_last_hash(self) -> None:
        """Load the hash and sequence of the most recent audit event"""
        events = self._sorted_events()
        if events:
            self._last_hash = events[-1].get('current_hash')
            self._sequence = events[-1].get('metadata', {}).get('_seq', len(events))
        else:
            self._last_hash = None
            self._sequence = 0

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        role: Optional[str] = None
    ) -> AuditEvent:
        """
        Log an audit event with hash chaining

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity
            metadata: Additional event-specific data
            user_id: ID of user who initiated the action
            role: Role the user acted under

        Returns:
            Created AuditEvent
        """
        # Storage transaction before the chain lock, never the other way round
        with self.storage.atomic(), self._lock:
            now = datetime.now(timezone.utc)
            # A rolled-back transaction may have discarded our last event
            self._load_last_hash()
            self._sequence += 1
            # _seq orders events that share a timestamp
            payload = dict(metadata or {})
            payload['_seq'] = self._sequence

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=self._last_hash or "",
                current_hash="",
                metadata=payload,
                user_id=user_id,
                role=role
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self._last_hash = event.current_hash

            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str,
                              limit: Optional[int] = None) -> List[AuditEvent]:
        """All audit events for one entity, oldest first"""
        events = [
            AuditEvent.from_dict(data) for data in self._sorted_events()
            if data['entity_type'] == entity_type and data['entity_id'] == entity_id
        ]
        if limit:
            events = events[-limit:]
        return events

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [
            AuditEvent.from_dict(data) for data in self._sorted_events()
            if data['event_type'] == event_type.value
        ]

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = [AuditEvent.from_dict(data) for data in self._sorted_events()]
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

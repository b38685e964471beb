"""
Audit Trail Module

Append-only record of what was done to each loan and payment holiday.
Entries are SHA-256 hash-chained so an edited or removed entry shows up
when the chain is verified.
"""

import hashlib
import json
import threading
from datetime import datetime, date, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid


class AuditEventType(Enum):
    """Types of audit events"""
    LOAN_ORIGINATED = "loan_originated"
    SCHEDULE_RECALCULATED = "schedule_recalculated"

    # Borrower events
    PAYMENT_SKIPPED = "payment_skipped"
    EXTRA_PAYMENT_APPLIED = "extra_payment_applied"
    PARTIAL_PAYMENT_APPLIED = "partial_payment_applied"
    ARREARS_PAYMENT_APPLIED = "arrears_payment_applied"
    PENALTY_APPLIED = "penalty_applied"
    RATE_CHANGED = "rate_changed"
    GRACE_PERIOD_GRANTED = "grace_period_granted"

    # Payment holidays
    HOLIDAY_CREATED = "holiday_created"
    HOLIDAY_STATUS_CHANGED = "holiday_status_changed"
    HOLIDAY_APPLIED = "holiday_applied"


def _json_safe(value: Any) -> Any:
    """Amounts, dates and enums as the strings they hash as"""
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
class AuditEvent:
    """One chained audit entry; current_hash covers every other field"""
    event_type: AuditEventType
    entity_type: str  # loan or payment_holiday
    entity_id: str
    previous_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_hash: str = ""

    def __post_init__(self):
        self.metadata = _json_safe(self.metadata or {})
        if not self.current_hash:
            self.current_hash = self.calculate_hash()

    def _hashed_fields(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata,
        }

    def calculate_hash(self) -> str:
        payload = json.dumps(self._hashed_fields(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {**self._hashed_fields(), 'current_hash': self.current_hash}


class AuditTrail:
    """
    In-memory hash-chained audit trail.

    Entries are kept in insertion order; each one carries the hash of its
    predecessor, the first one an empty string.
    """

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an entry chained to the latest one.

        Args:
            event_type: What happened
            entity_type: Kind of entity it happened to
            entity_id: Entity identifier (unsaved loans are recorded as "")
            metadata: Event details; Decimals, dates and enums are stored as strings
            user_id: Who initiated it, if known

        Returns:
            The new AuditEvent
        """
        with self._lock:
            event = AuditEvent(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id or "",
                previous_hash=self._events[-1].current_hash if self._events else "",
                metadata=metadata or {},
                user_id=user_id
            )
            self._events.append(event)
            return event

    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Entries for one entity, oldest first; limit keeps the most recent"""
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        if limit:
            events = events[-limit:]
        return events

    def count_events(self) -> int:
        with self._lock:
            return len(self._events)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Recompute every hash and check each link of the chain.

        Returns:
            Dict with 'valid', 'total_events', and the positions of any
            'hash_errors' (entry altered) or 'chain_breaks' (entry removed,
            inserted or reordered)
        """
        with self._lock:
            events = list(self._events)

        hash_errors = []
        chain_breaks = []
        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                hash_errors.append({'event_id': event.id, 'position': position})
            if event.previous_hash != previous_hash:
                chain_breaks.append({'event_id': event.id, 'position': position})
            previous_hash = event.current_hash

        return {
            'valid': not hash_errors and not chain_breaks,
            'total_events': len(events),
            'hash_errors': hash_errors,
            'chain_breaks': chain_breaks,
        }

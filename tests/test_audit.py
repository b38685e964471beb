"""
Test suite for audit module

Tests hash chaining, tamper detection and lookups.
"""

from decimal import Decimal
from datetime import date

from amortization_core.audit import AuditTrail, AuditEventType


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        self.audit_trail = AuditTrail()

    def test_first_event_has_empty_previous_hash(self):
        event = self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        assert event.previous_hash == ""
        assert len(event.current_hash) == 64
        assert event.verify_hash()

    def test_events_are_chained(self):
        first = self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        second = self.audit_trail.log_event(AuditEventType.PENALTY_APPLIED, "loan", "LOAN001")
        assert second.previous_hash == first.current_hash

        result = self.audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 2

    def test_metadata_made_serializable(self):
        event = self.audit_trail.log_event(
            AuditEventType.RATE_CHANGED, "loan", "LOAN001",
            metadata={
                'new_rate': Decimal('0.07'),
                'effective': date(2025, 7, 1),
                'event_type': AuditEventType.RATE_CHANGED,
                'history': [Decimal('0.05')],
            }
        )
        assert event.metadata == {
            'new_rate': '0.07',
            'effective': '2025-07-01',
            'event_type': 'rate_changed',
            'history': ['0.05'],
        }

    def test_tampering_detected(self):
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        event = self.audit_trail.log_event(
            AuditEventType.EXTRA_PAYMENT_APPLIED, "loan", "LOAN001", metadata={'amount': '100.00'}
        )
        event.metadata['amount'] = '1000000.00'

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['position'] == 1

    def test_unsaved_entity_recorded_as_empty_id(self):
        event = self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", None)
        assert event.entity_id == ""

    def test_lookups(self):
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "A")
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "B")
        self.audit_trail.log_event(AuditEventType.PENALTY_APPLIED, "loan", "A")

        assert len(self.audit_trail.get_events_for_entity("loan", "A")) == 2
        latest = self.audit_trail.get_events_for_entity("loan", "A", limit=1)
        assert latest[0].event_type == AuditEventType.PENALTY_APPLIED
        assert self.audit_trail.count_events() == 3

    def test_to_dict(self):
        event = self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001", user_id="ops")
        data = event.to_dict()
        assert data['event_type'] == 'loan_originated'
        assert data['user_id'] == 'ops'
        assert data['current_hash'] == event.current_hash

    def test_removed_entry_breaks_chain(self):
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        self.audit_trail.log_event(AuditEventType.PENALTY_APPLIED, "loan", "LOAN001")
        self.audit_trail.log_event(AuditEventType.SCHEDULE_RECALCULATED, "loan", "LOAN001")
        del self.audit_trail._events[1]

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'] == []
        assert [b['position'] for b in result['chain_breaks']] == [1]

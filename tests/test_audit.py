"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection, integrity verification,
and that audit writes roll back with the mutation they belong to.
"""

import pytest
from datetime import datetime, timezone, date
from decimal import Decimal

from installment_ledger.storage import InMemoryStorage, SQLiteStorage
from installment_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimals, dates and enums are stored as JSON-friendly values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.INSTALLMENT_RECORDED,
            entity_type="installment",
            entity_id="L1_1",
            previous_hash="",
            current_hash="",
            metadata={
                "amount_paid": Decimal('500.00'),
                "paid_date": date(2024, 1, 7),
                "status": AuditEventType.LOAN_CLOSED,
                "nested": {"values": [Decimal('1.1'), Decimal('2.2')]}
            }
        )

        assert event.metadata["amount_paid"] == "500.00"
        assert event.metadata["paid_date"] == "2024-01-07"
        assert event.metadata["status"] == "loan_closed"
        assert event.metadata["nested"]["values"] == ["1.1", "2.2"]

    def test_hash_covers_metadata(self):
        """Test changing metadata changes the event hash"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT002", created_at=now, updated_at=now,
            event_type=AuditEventType.LOAN_CREATED, entity_type="loan",
            entity_id="L1", previous_hash="", current_hash="",
            metadata={"principal_amount": "10000.00"}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["principal_amount"] = "1.00"
        assert not event.verify_hash()


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_event_chains_hashes(self):
        """Test each event links to the previous hash"""
        first = self.audit_trail.log_event(
            AuditEventType.LOAN_CREATED, "loan", "L1", {"loan_number": 1}, user_id="agent-1"
        )
        second = self.audit_trail.log_event(
            AuditEventType.SCHEDULE_GENERATED, "loan", "L1", {"installments": 24}
        )

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.count_events() == 2

    def test_verify_integrity_clean_chain(self):
        """Test integrity check passes on an untouched chain"""
        for week in range(1, 6):
            self.audit_trail.log_event(
                AuditEventType.INSTALLMENT_RECORDED, "installment", f"L1_{week}",
                {"amount_paid": Decimal('500')}
            )

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampering_detected(self):
        """Test editing a stored event breaks integrity"""
        event = self.audit_trail.log_event(
            AuditEventType.INSTALLMENT_RECORDED, "installment", "L1_1", {"amount_paid": "500.00"}
        )
        self.audit_trail.log_event(
            AuditEventType.INSTALLMENT_RECORDED, "installment", "L1_2", {"amount_paid": "500.00"}
        )

        record = self.storage.load("audit_events", event.id)
        record["metadata"]["amount_paid"] = "5000.00"
        self.storage.save("audit_events", event.id, record)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_events_for_entity_and_type(self):
        """Test filtering events by entity and type"""
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {})
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2", {})
        self.audit_trail.log_event(AuditEventType.LOAN_CLOSED, "loan", "L1", {})

        events = self.audit_trail.get_events_for_entity("loan", "L1")
        assert [e.event_type for e in events] == [AuditEventType.LOAN_CREATED, AuditEventType.LOAN_CLOSED]
        assert len(self.audit_trail.get_events_for_entity("loan", "L1", limit=1)) == 1
        assert len(self.audit_trail.get_events_by_type(AuditEventType.LOAN_CREATED)) == 2

    def test_rollback_removes_event_and_keeps_chain_valid(self):
        """Test a rolled back event leaves the chain valid"""
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {})

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.LOAN_FORECLOSED, "loan", "L1", {})
                raise RuntimeError("foreclosure failed")

        self.audit_trail.log_event(AuditEventType.LOAN_UPDATED, "loan", "L1", {})

        assert self.audit_trail.count_events() == 2
        assert self.audit_trail.verify_integrity()["valid"]

    def test_disabled_trail_writes_nothing(self):
        """Test a disabled trail stores no events"""
        trail = AuditTrail(self.storage, enabled=False)
        assert trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {}) is None
        assert trail.count_events() == 0

    def test_sqlite_backed_trail(self):
        """Test the audit trail on SQLite storage"""
        storage = SQLiteStorage(":memory:")
        trail = AuditTrail(storage)
        for n in range(3):
            trail.log_event(AuditEventType.BORROWER_CREATED, "borrower", f"B{n}", {"n": n})
        assert trail.verify_integrity()["valid"]
        storage.close()

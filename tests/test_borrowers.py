"""
Tests for the borrower registry
"""

import pytest

from installment_ledger.audit import AuditTrail, AuditEventType
from installment_ledger.borrowers import BorrowerManager
from installment_ledger.exceptions import ValidationError, EntityNotFoundError
from installment_ledger.storage import InMemoryStorage


class TestBorrowerManager:
    """Test borrower creation and lookup"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.manager = BorrowerManager(self.storage, self.audit_trail)

    def test_create_borrower(self):
        """Test creating a borrower"""
        borrower = self.manager.create_borrower(
            "agent-1", "  Lakshmi  ", area="North", phone="98450", leader_tag="Group A"
        )

        assert borrower.name == "Lakshmi"
        assert borrower.is_active
        assert self.manager.require_borrower(borrower.id) == borrower

        events = self.audit_trail.get_events_for_entity("borrower", borrower.id)
        assert events[0].event_type == AuditEventType.BORROWER_CREATED

    def test_blank_name_rejected(self):
        """Test blank borrower names are rejected"""
        with pytest.raises(ValidationError):
            self.manager.create_borrower("agent-1", "   ")
        assert self.storage.count("borrowers") == 0

    def test_require_missing(self):
        assert self.manager.get_borrower("missing") is None
        with pytest.raises(EntityNotFoundError):
            self.manager.require_borrower("missing")

    def test_list_scoped_to_agent_and_sorted(self):
        """Test listing is scoped to the agent and sorted by name"""
        self.manager.create_borrower("agent-1", "meena")
        self.manager.create_borrower("agent-1", "Asha")
        self.manager.create_borrower("agent-2", "Ravi")

        names = [b.name for b in self.manager.list_borrowers("agent-1")]
        assert names == ["Asha", "meena"]

    def test_set_active(self):
        """Test deactivating and reactivating a borrower"""
        borrower = self.manager.create_borrower("agent-1", "Asha")
        self.manager.set_active(borrower.id, False)

        assert self.manager.list_borrowers("agent-1", active_only=True) == []
        assert len(self.manager.list_borrowers("agent-1")) == 1

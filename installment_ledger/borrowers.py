"""
Borrower Registry Module

Borrower records referenced by loans. Each borrower belongs to the field
agent (user) who registered them.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError, EntityNotFoundError
from .logging_config import get_logger, log_action


@dataclass
class Borrower(StorageRecord):
    """Borrower identity and classification"""
    user_id: str
    name: str
    area: Optional[str] = None
    phone: Optional[str] = None
    leader_tag: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Borrower name is required")

    @classmethod
    def from_dict(cls, data: Dict) -> 'Borrower':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


class BorrowerManager:
    """Creates and looks up borrowers"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "borrowers"
        self.logger = get_logger("ledger.borrowers")

    def create_borrower(
        self,
        user_id: str,
        name: str,
        area: Optional[str] = None,
        phone: Optional[str] = None,
        leader_tag: Optional[str] = None
    ) -> Borrower:
        now = datetime.now(timezone.utc)
        borrower = Borrower(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            name=name.strip(),
            area=area,
            phone=phone,
            leader_tag=leader_tag,
        )

        with self.storage.atomic():
            self.storage.save(self.table_name, borrower.id, borrower.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.BORROWER_CREATED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={"name": borrower.name, "area": area, "leader_tag": leader_tag},
                user_id=user_id
            )

        log_action(
            self.logger, "info", "Borrower created",
            user_id=user_id, action="create_borrower", borrower_id=borrower.id
        )
        return borrower

    def get_borrower(self, borrower_id: str) -> Optional[Borrower]:
        data = self.storage.load(self.table_name, borrower_id)
        if data:
            return Borrower.from_dict(data)
        return None

    def require_borrower(self, borrower_id: str) -> Borrower:
        borrower = self.get_borrower(borrower_id)
        if not borrower:
            raise EntityNotFoundError(f"Borrower {borrower_id} not found")
        return borrower

    def list_borrowers(self, user_id: str, active_only: bool = False) -> List[Borrower]:
        """Borrowers of one field agent, sorted by name"""
        borrowers = [
            Borrower.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        if active_only:
            borrowers = [b for b in borrowers if b.is_active]
        borrowers.sort(key=lambda b: b.name.lower())
        return borrowers

    def set_active(self, borrower_id: str, is_active: bool) -> Borrower:
        borrower = self.require_borrower(borrower_id)
        borrower.is_active = is_active
        borrower.touch()

        with self.storage.atomic():
            self.storage.save(self.table_name, borrower.id, borrower.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.BORROWER_UPDATED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={"is_active": is_active},
                user_id=borrower.user_id
            )
        return borrower

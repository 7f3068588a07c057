"""
Ledger system wiring and request dependencies
"""

from typing import Optional

from fastapi import HTTPException

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..borrowers import BorrowerManager
from ..installments import InstallmentLedger
from ..loans import LoanManager
from ..lifecycle import LoanLifecycleController
from ..allocation import PaymentAllocationEngine
from ..reporting import AggregationEngine
from ..config import LedgerConfig, LendingSettings, get_config
from ..exceptions import LedgerError, LoanStateError, EntityNotFoundError


class LedgerSystem:
    """Installment ledger with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        ledger_config: Optional[LedgerConfig] = None,
        settings: Optional[LendingSettings] = None
    ):
        self.config = ledger_config or get_config()
        self.settings = settings or LendingSettings.from_config(self.config)

        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_url)
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.installments = InstallmentLedger(self.storage)
        self.borrower_manager = BorrowerManager(self.storage, self.audit_trail)
        self.loan_manager = LoanManager(
            self.storage, self.installments, self.borrower_manager,
            self.audit_trail, self.settings
        )
        self.lifecycle = LoanLifecycleController(
            self.storage, self.loan_manager, self.installments, self.audit_trail
        )
        self.loan_manager.lifecycle = self.lifecycle
        self.payment_engine = PaymentAllocationEngine(
            self.storage, self.loan_manager, self.installments,
            self.lifecycle, self.audit_trail, self.settings
        )
        self.aggregation_engine = AggregationEngine(
            self.loan_manager, self.installments, self.borrower_manager,
            currency=self.settings.currency
        )

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def http_error(exc: LedgerError) -> HTTPException:
    """Map a ledger error onto an HTTP error response"""
    if isinstance(exc, EntityNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, LoanStateError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))

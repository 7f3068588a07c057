"""Exception hierarchy for the installment ledger."""


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class ValidationError(LedgerError, ValueError):
    """Raised when input is rejected before any record is touched."""


class LoanStateError(LedgerError, ValueError):
    """Raised when a loan is in the wrong status for the operation."""


class EntityNotFoundError(LedgerError):
    """Raised when a borrower, loan or installment id does not exist."""


class ConsistencyError(LedgerError):
    """Raised when stored records contradict each other."""

"""Custom exceptions for the ledger backend.

All store, rule-table and scheduling exceptions live here to avoid
circular imports between modules.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class ValidationError(LedgerError):
    """Raised when caller input is malformed. No state is changed."""


class NotFoundError(LedgerError):
    """Raised when a rule or account id does not exist."""


class ConflictError(LedgerError):
    """Raised when a profit rule range collides with another active rule."""


class StoreError(LedgerError):
    """Raised when the underlying database operation fails."""


class ConcurrencyConflictError(StoreError):
    """Raised when an account version check keeps failing past the retry limit."""

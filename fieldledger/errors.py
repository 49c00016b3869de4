"""
Ledger Error Hierarchy

DESIGN DECISION: Every failure a collaborator can see is one of a small
set of typed errors. Callers branch on the type, never on message text.

- ValidationError: caller data broke a domain rule, nothing was written
- NotFoundError: a referenced id does not exist
- CascadeIntegrityError: a delete could not cascade cleanly, nothing was written
- StorageError: the store itself failed, the whole operation was aborted
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger failures."""
    pass


class ValidationError(LedgerError):
    """Caller-supplied data fails a domain constraint."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(LedgerError):
    """Referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class NothingToRestoreError(NotFoundError):
    """The job is not in the trash (never deleted, restored or expired)."""

    def __init__(self, job_id: str):
        super().__init__("trash entry", job_id)
        self.args = (f"Nothing to restore for job {job_id}",)


class CascadeIntegrityError(LedgerError):
    """A deletion cannot safely cascade to its dependents."""
    pass


class StorageError(LedgerError):
    """Underlying persistence operation failed."""
    pass


class StoreOpenError(StorageError):
    """The store could not be opened or migrated. Fatal to the process."""
    pass


class TransientStorageError(StorageError):
    """The database was busy or locked. Safe to retry the whole unit of work."""
    pass

"""
Storage Services Package

Provides the abstract store interface and the SQLite implementation.
Designed to be swappable: the ledger only talks to RecordStore.
"""

from fieldledger.services.storage.interface import (
    RecordStore,
    StorageError,
    StoreOpenError,
    StoreOperations,
    StoreTransaction,
    TransientStorageError,
)
from fieldledger.services.storage.schema import (
    ATTACHMENTS,
    AUDIT_LOG,
    COLLECTIONS,
    CUSTOMERS,
    EXPENSES,
    INVENTORY_ITEMS,
    INVOICES,
    JOBS,
    MIGRATIONS,
    PAYMENTS,
    REMINDERS,
    SCHEMA_VERSION,
    SETTINGS,
)
from fieldledger.services.storage.sqlite import SqliteRecordStore, SqliteTransaction

__all__ = [
    # Interfaces
    "RecordStore",
    "StoreOperations",
    "StoreTransaction",
    # Exceptions
    "StorageError",
    "StoreOpenError",
    "TransientStorageError",
    # Schema
    "ATTACHMENTS",
    "AUDIT_LOG",
    "COLLECTIONS",
    "CUSTOMERS",
    "EXPENSES",
    "INVENTORY_ITEMS",
    "INVOICES",
    "JOBS",
    "MIGRATIONS",
    "PAYMENTS",
    "REMINDERS",
    "SCHEMA_VERSION",
    "SETTINGS",
    # SQLite implementation
    "SqliteRecordStore",
    "SqliteTransaction",
]

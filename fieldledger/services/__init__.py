"""Services package."""

from fieldledger.services.storage import (
    RecordStore,
    SqliteRecordStore,
    StorageError,
    StoreOpenError,
    StoreTransaction,
    TransientStorageError,
)

__all__ = [
    "RecordStore",
    "SqliteRecordStore",
    "StorageError",
    "StoreOpenError",
    "StoreTransaction",
    "TransientStorageError",
]

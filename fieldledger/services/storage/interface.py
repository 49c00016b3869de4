"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep business logic decoupled from the SQLite implementation
2. Run several writes as one unit of work (all or nothing)
3. Swap the backend without touching the ledger

The interface is intentionally small - we're not building a full ORM.
Records are addressed by collection name and id, and looked up only
through the named indices declared in the schema.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Optional

from fieldledger.errors import StorageError, StoreOpenError, TransientStorageError
from fieldledger.models import Record


class StoreOperations(ABC):
    """
    Record operations shared by the store and by a transaction.

    All operations raise StorageError (or TransientStorageError for a busy
    database) when the backend fails.
    """

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        """
        Retrieve a record by id.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def put(self, collection: str, record: Record) -> None:
        """
        Insert or replace a record under its id.

        A single put is atomic: the record and its index entries are
        written together or not at all.
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def query_by_index(
        self,
        collection: str,
        index_name: str,
        value: Any,
    ) -> list[Record]:
        """
        Records whose index value equals `value`, ordered by id.
        """
        pass

    @abstractmethod
    async def query_by_index_range(
        self,
        collection: str,
        index_name: str,
        lower: Any = None,
        upper: Any = None,
    ) -> list[Record]:
        """
        Records whose index value lies within [lower, upper].

        Either bound may be None for an open range. Ordered by index value,
        then id.
        """
        pass

    @abstractmethod
    async def list_all(self, collection: str) -> list[Record]:
        """Every record in a collection, ordered by id."""
        pass

    @abstractmethod
    async def clear(self, collection: str) -> int:
        """
        Remove every record in a collection.

        Returns:
            Number of records removed
        """
        pass


class StoreTransaction(StoreOperations):
    """
    A unit of work.

    Every operation issued through one transaction commits together when
    the transaction block exits normally, and is rolled back if it raises.
    """
    pass


class RecordStore(StoreOperations):
    """
    The durable store.

    Operations called directly on the store each run in their own
    transaction. Use `transaction()` to group several writes.
    """

    @property
    @abstractmethod
    def schema_version(self) -> int:
        """Schema version the open store is at."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """
        Open a unit of work.

        Usage:
            async with store.transaction() as tx:
                await tx.put(JOBS, job)
                await tx.put(AUDIT_LOG, entry)
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the backend. The store is unusable afterwards."""
        pass


__all__ = [
    "RecordStore",
    "StoreOperations",
    "StoreTransaction",
    "StorageError",
    "StoreOpenError",
    "TransientStorageError",
]

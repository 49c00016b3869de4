"""
Audit Logger

DESIGN DECISION: Every state-changing ledger call is audited.
This provides:
1. Complete traceability of every money movement
2. Debugging capability
3. A history the owner can read without diffing records

The audit logger:
- Writes inside the caller's unit of work, so an audit entry and the
  change it describes commit together or not at all
- Propagates write failures; the surrounding operation then fails as a whole
- Mirrors every entry to the structured process log
- Exposes no update or delete for single entries, only a bulk purge
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from fieldledger.models.audit import AuditEntryBuilder, AuditLog
from fieldledger.services.storage import AUDIT_LOG, RecordStore, StoreTransaction


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs entries both to:
    1. The durable store (the audit trail proper)
    2. Structured local log (for debugging)
    """

    def __init__(self, store: RecordStore):
        self._store = store
        self._logger = structlog.get_logger(__name__)

    async def append(self, tx: StoreTransaction, entry: AuditLog) -> AuditLog:
        """
        Append an entry within the caller's transaction.

        Raises whatever the store raises; the caller's unit of work is then
        rolled back with the business change it was describing.
        """
        await tx.put(AUDIT_LOG, entry)
        self._logger.info("audit_entry", **entry.to_log_dict())
        return entry

    async def record_failure(
        self,
        operation: str,
        entity_id: Optional[str],
        error: Exception,
    ) -> bool:
        """
        Best-effort record of a failed operation, in its own transaction.

        Never raises: the caller is already handling the primary error and
        must surface that one. Returns True if the entry was stored.
        """
        entry = AuditEntryBuilder.operation_failed(operation, entity_id or "", error)
        self._logger.error("ledger_operation_failed", **entry.to_log_dict())
        try:
            async with self._store.transaction() as tx:
                await tx.put(AUDIT_LOG, entry)
            return True
        except Exception as e:
            self._logger.warning(
                "audit_failure_record_failed",
                operation=operation,
                error=str(e),
                primary_error=str(error),
            )
            return False

    async def recent(self, limit: int = 100) -> list[AuditLog]:
        """Most recent entries, newest first."""
        entries = await self._store.list_all(AUDIT_LOG)
        entries.sort(key=lambda e: (e.timestamp, e.id), reverse=True)
        return entries[:limit]

    async def for_entity(self, entity_id: str) -> list[AuditLog]:
        """Every entry about one entity, oldest first."""
        entries = await self._store.query_by_index(AUDIT_LOG, "by-entity", entity_id)
        entries.sort(key=lambda e: (e.timestamp, e.id))
        return entries

    async def between(self, start: datetime, end: datetime) -> list[AuditLog]:
        """
        Entries with start <= timestamp <= end, oldest first.

        Timestamps are stored in UTC; naive bounds are taken as UTC and
        aware ones are converted.
        """
        return await self._store.query_by_index_range(
            AUDIT_LOG, "by-timestamp", _as_utc(start), _as_utc(end)
        )

    async def purge(self) -> int:
        """
        Remove the whole audit trail.

        Administrative action: it is not itself audited, only logged.
        """
        removed = await self._store.clear(AUDIT_LOG)
        self._logger.warning("audit_log_purged", removed=removed)
        return removed


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""
Settings, Audit, Report and Backup Operations

Backups are a JSON document of every business collection plus the
settings record. The audit trail is not part of a backup; an import
writes one `imported` entry describing what it replaced.
"""

import json
from datetime import date, datetime
from typing import Any, Optional

import structlog

from fieldledger import __version__
from fieldledger.billing import CustomerBalance, is_overdue, summarize_customer
from fieldledger.errors import ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork, apply_changes
from fieldledger.models import AppSettings, AuditEntryBuilder, AuditLog, Invoice, utc_now
from fieldledger.services.storage import (
    ATTACHMENTS,
    COLLECTIONS,
    CUSTOMERS,
    EXPENSES,
    INVENTORY_ITEMS,
    INVOICES,
    JOBS,
    PAYMENTS,
    REMINDERS,
    SETTINGS,
)


logger = structlog.get_logger(__name__)

SETTINGS_FIELDS = (
    "default_labor_rate_cents",
    "default_tax_rate",
    "invoice_prefix",
    "invoice_number_width",
    "next_invoice_number",
    "invoice_due_days",
    "company",
)

BACKUP_FORMAT = "fieldledger-backup"
BACKUP_VERSION = 1

# Order matters on import: referenced records first
BACKUP_COLLECTIONS = (
    SETTINGS,
    CUSTOMERS,
    INVENTORY_ITEMS,
    JOBS,
    INVOICES,
    PAYMENTS,
    REMINDERS,
    ATTACHMENTS,
    EXPENSES,
)


class AdminOperations(LedgerCore):

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def get_app_settings(self) -> AppSettings:
        return await self._load_app_settings(self._store)

    async def update_app_settings(self, **changes) -> AppSettings:
        """
        Change business settings.

        The invoice counter may only move forward, so an issued number
        can never be handed out again.
        """
        async def work(uow: UnitOfWork) -> AppSettings:
            current = await self._load_app_settings(uow.tx)
            updated, changed = apply_changes(current, changes, SETTINGS_FIELDS)
            if updated.next_invoice_number < current.next_invoice_number:
                raise ValidationError(
                    f"Invoice counter cannot go back from {current.next_invoice_number} "
                    f"to {updated.next_invoice_number}",
                    field="next_invoice_number",
                )
            if not changed:
                return current
            await uow.tx.put(SETTINGS, updated)
            await uow.audit(AuditEntryBuilder.settings_updated(changed))
            return updated

        return await self._mutate("update_app_settings", work, "default")

    # =========================================================================
    # AUDIT TRAIL
    # =========================================================================

    async def list_audit_log(self, limit: int = 100) -> list[AuditLog]:
        """Most recent audit entries, newest first."""
        if limit < 1:
            raise ValidationError("Limit must be at least 1", field="limit")
        return await self._audit.recent(limit)

    async def audit_for_entity(self, entity_id: str) -> list[AuditLog]:
        return await self._audit.for_entity(entity_id)

    async def audit_between(self, start: datetime, end: datetime) -> list[AuditLog]:
        return await self._audit.between(start, end)

    async def purge_audit_log(self) -> int:
        """Delete the whole audit trail. Administrative; not itself audited."""
        return await self._audit.purge()

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def customer_balance(self, customer_id: str) -> CustomerBalance:
        await self._require(self._store, CUSTOMERS, customer_id, "customer")
        invoices = await self._store.query_by_index(INVOICES, "by-customer", customer_id)
        return summarize_customer(customer_id, invoices)

    async def list_overdue_invoices(self, today: Optional[date] = None) -> list[Invoice]:
        """Unsettled invoices past their due date, oldest due date first."""
        invoices = await self._store.list_all(INVOICES)
        overdue = [i for i in invoices if is_overdue(i, today)]
        return sorted(overdue, key=lambda i: (i.due_date, i.invoice_number))

    # =========================================================================
    # BACKUP
    # =========================================================================

    async def export_data(self) -> str:
        """
        Serialize every business record to a JSON backup document.

        All collections are read in one transaction so the snapshot is
        consistent.
        """
        collections: dict[str, list[dict[str, Any]]] = {}
        async with self._store.transaction() as tx:
            for name in BACKUP_COLLECTIONS:
                records = await tx.list_all(name)
                collections[name] = [r.model_dump(mode="json", by_alias=True) for r in records]

        document = {
            "format": BACKUP_FORMAT,
            "version": BACKUP_VERSION,
            "schemaVersion": self._store.schema_version,
            "appVersion": __version__,
            "exportedAt": utc_now().isoformat(),
            "collections": collections,
        }
        logger.info(
            "ledger_exported",
            counts={name: len(records) for name, records in collections.items()},
        )
        return json.dumps(document, indent=2)

    async def import_data(self, text: str) -> dict[str, int]:
        """
        Replace every business collection with the contents of a backup.

        The replacement is one unit of work: on any invalid record nothing
        changes. Pending undo entries are discarded afterwards since they
        describe data the import replaced.

        Returns:
            Number of records imported per collection
        """
        raw = _parse_backup(text)

        async def work(uow: UnitOfWork) -> dict[str, int]:
            counts = {}
            for name in BACKUP_COLLECTIONS:
                model = COLLECTIONS[name].model
                records = [model.model_validate(item) for item in raw.get(name, [])]
                await uow.tx.clear(name)
                for record in records:
                    await uow.tx.put(name, record)
                counts[name] = len(records)
            await uow.audit(AuditEntryBuilder.ledger_imported(counts))
            return counts

        counts = await self._mutate("import_data", work, "backup")
        discarded = self._trash.expire_all()
        logger.info("ledger_imported", counts=counts, discarded_trash_entries=discarded)
        return counts


def _parse_backup(text: str) -> dict[str, list]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Backup is not valid JSON: {e}")

    if not isinstance(document, dict) or document.get("format") != BACKUP_FORMAT:
        raise ValidationError("Not a Field Ledger backup", field="format")
    if document.get("version") != BACKUP_VERSION:
        raise ValidationError(
            f"Unsupported backup version: {document.get('version')}",
            field="version",
        )

    collections = document.get("collections")
    if not isinstance(collections, dict):
        raise ValidationError("Backup has no collections", field="collections")
    unknown = sorted(set(collections) - set(BACKUP_COLLECTIONS))
    if unknown:
        raise ValidationError(f"Unknown collection(s) in backup: {', '.join(unknown)}", field="collections")
    for name, items in collections.items():
        if not isinstance(items, list):
            raise ValidationError(f"Collection {name} must be a list", field=name)
    return collections

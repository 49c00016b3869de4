"""
Ledger Facade

The only entry point collaborators use. Each operation composes the
invoice engine, the store, the audit logger and (for deletes) the trash
manager so that a mutation either happens completely, with its audit
entry, or not at all.

Usage:
    ledger = await open_ledger(settings)
    customer = await ledger.add_customer("Dana Reyes")
    job = await ledger.add_job(customer.id, labor_hours=2)
    invoice = await ledger.invoice_job(job.id)
    await ledger.record_payment(invoice.id, invoice.total_cents, "card")
    await ledger.shutdown()
"""

from typing import Optional

import structlog

from fieldledger.config import Settings, get_settings
from fieldledger.ledger.admin import AdminOperations
from fieldledger.ledger.customers import CustomerOperations
from fieldledger.ledger.inventory import InventoryOperations
from fieldledger.ledger.jobs import JobOperations
from fieldledger.ledger.payments import PaymentOperations
from fieldledger.ledger.records import RecordOperations
from fieldledger.ledger.statements import StatementImportOperations
from fieldledger.services.storage import SqliteRecordStore


logger = structlog.get_logger(__name__)


class Ledger(
    CustomerOperations,
    JobOperations,
    PaymentOperations,
    RecordOperations,
    InventoryOperations,
    StatementImportOperations,
    AdminOperations,
):
    """
    Handle to an open ledger.

    Create with `open_ledger`; call `shutdown` when done. Must be used
    from inside a running event loop.
    """
    pass


async def open_ledger(settings: Optional[Settings] = None) -> Ledger:
    """
    Open the store, migrate it, and seed first-run business settings.

    Args:
        settings: Process settings. Defaults to the cached environment
            settings from get_settings().

    Raises:
        StoreOpenError: the database cannot be opened or migrated. There
            is no usable ledger after this.
    """
    settings = settings or get_settings()
    store = SqliteRecordStore.open(settings.store)
    ledger = Ledger(store, settings)
    try:
        await ledger._ensure_app_settings()
    except Exception:
        await store.close()
        raise
    logger.info(
        "ledger_opened",
        database_path=settings.store.database_path,
        schema_version=store.schema_version,
        undo_window_seconds=settings.trash.undo_window_seconds,
    )
    return ledger

"""
Store Schema and Migrations

DESIGN DECISION: Records are stored as documents. Each collection is a
table holding the record's canonical JSON plus one plain column per named
index, filled in from the record on every put. Lookups only ever go
through these named indices; there is no general query language.

Schema changes are numbered migration steps. Opening a store runs every
step between the stored version and SCHEMA_VERSION. Each step creates its
tables and indices check-first, so replaying a step is a no-op.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import Column, Connection, Index, MetaData, String, Table, Text

from fieldledger.models import (
    AppSettings,
    Attachment,
    AuditLog,
    Customer,
    Expense,
    InventoryItem,
    Invoice,
    Job,
    Payment,
    Record,
    Reminder,
)


# Collection names
CUSTOMERS = "customers"
JOBS = "jobs"
INVOICES = "invoices"
PAYMENTS = "payments"
REMINDERS = "reminders"
ATTACHMENTS = "attachments"
INVENTORY_ITEMS = "inventory_items"
EXPENSES = "expenses"
SETTINGS = "settings"
AUDIT_LOG = "audit_log"


@dataclass(frozen=True)
class Collection:
    """A record type, its table, and its named indices (index name -> attribute)."""

    name: str
    model: type[Record]
    indexes: dict[str, str] = field(default_factory=dict)


COLLECTIONS: dict[str, Collection] = {
    c.name: c
    for c in (
        Collection(CUSTOMERS, Customer, {"by-name": "name", "by-archived": "archived"}),
        Collection(JOBS, Job, {
            "by-customer": "customer_id",
            "by-status": "status",
            "by-date": "date_of_service",
        }),
        Collection(INVOICES, Invoice, {
            "by-customer": "customer_id",
            "by-job": "job_id",
            "by-status": "payment_status",
            "by-number": "invoice_number",
        }),
        Collection(PAYMENTS, Payment, {"by-invoice": "invoice_id", "by-date": "date"}),
        Collection(REMINDERS, Reminder, {
            "by-job": "job_id",
            "by-customer": "customer_id",
            "by-due-date": "due_date",
            "by-completed": "completed",
        }),
        Collection(ATTACHMENTS, Attachment, {"by-job": "job_id"}),
        Collection(INVENTORY_ITEMS, InventoryItem, {"by-name": "name", "by-category": "category"}),
        Collection(EXPENSES, Expense, {"by-date": "date", "by-category": "category"}),
        Collection(SETTINGS, AppSettings),
        Collection(AUDIT_LOG, AuditLog, {"by-entity": "entity_id", "by-timestamp": "timestamp"}),
    )
}


metadata = MetaData()

schema_meta = Table(
    "schema_meta",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", String, nullable=False),
)


def _index_key(collection: str, index_name: str) -> str:
    return f"ix_{collection}_{index_name.replace('-', '_')}"


def _build_table(collection: Collection) -> Table:
    columns = sorted(set(collection.indexes.values()))
    return Table(
        collection.name,
        metadata,
        Column("id", String, primary_key=True),
        Column("data", Text, nullable=False),
        *(Column(name, String, nullable=True) for name in columns),
    )


TABLES: dict[str, Table] = {name: _build_table(c) for name, c in COLLECTIONS.items()}

INDEXES: dict[tuple[str, str], Index] = {
    (name, index_name): Index(_index_key(name, index_name), TABLES[name].c[attribute])
    for name, c in COLLECTIONS.items()
    for index_name, attribute in c.indexes.items()
}


def index_value(value: Any) -> Any:
    """
    Normalize a record attribute (or a lookup value) to its index column form.

    Dates and datetimes become ISO-8601 strings so that string order is
    chronological; enums use their value; booleans become '1' / '0'.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def index_columns(collection: Collection, record: Record) -> dict[str, Any]:
    """Index column values for a record about to be written."""
    return {
        attribute: index_value(getattr(record, attribute))
        for attribute in set(collection.indexes.values())
    }


# =============================================================================
# MIGRATIONS
# =============================================================================

@dataclass(frozen=True)
class MigrationStep:
    """One schema version: tables and indices that must exist from here on."""

    description: str
    tables: tuple[str, ...] = ()
    indexes: tuple[tuple[str, str], ...] = ()

    def apply(self, conn: Connection) -> None:
        for name in self.tables:
            TABLES[name].create(conn, checkfirst=True)
        for key in self.indexes:
            INDEXES[key].create(conn, checkfirst=True)


MIGRATIONS: dict[int, MigrationStep] = {
    1: MigrationStep(
        "core ledger tables",
        tables=(CUSTOMERS, JOBS, INVOICES, EXPENSES, SETTINGS, AUDIT_LOG),
    ),
    2: MigrationStep(
        "payments, reminders and attachments",
        tables=(PAYMENTS, REMINDERS, ATTACHMENTS),
    ),
    3: MigrationStep(
        "inventory",
        tables=(INVENTORY_ITEMS,),
    ),
    4: MigrationStep(
        "invoice number lookup",
        indexes=((INVOICES, "by-number"),),
    ),
}

SCHEMA_VERSION = max(MIGRATIONS)

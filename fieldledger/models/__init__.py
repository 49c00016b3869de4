"""
Data Models Package

This package contains all Pydantic models used in Field Ledger.
All data flowing through the system must conform to these schemas.
"""

from fieldledger.models.base import LedgerModel, Record, new_id, utc_now
from fieldledger.models.customer import Customer
from fieldledger.models.job import (
    Attachment,
    Job,
    JobStatus,
    Part,
    PartSource,
)
from fieldledger.models.invoice import (
    Invoice,
    Payment,
    PaymentKind,
    PaymentStatus,
)
from fieldledger.models.inventory import (
    Expense,
    ExpenseCategory,
    InventoryItem,
)
from fieldledger.models.reminder import Reminder, ReminderType
from fieldledger.models.settings import APP_SETTINGS_ID, AppSettings, CompanyProfile
from fieldledger.models.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntryBuilder,
    AuditLog,
    format_cents,
)
from fieldledger.models.trash import DeletedJobAggregate, InventoryAdjustment

__all__ = [
    # Base
    "LedgerModel",
    "Record",
    "new_id",
    "utc_now",
    # Business records
    "Attachment",
    "Customer",
    "Expense",
    "ExpenseCategory",
    "InventoryItem",
    "Invoice",
    "Job",
    "JobStatus",
    "Part",
    "PartSource",
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "Reminder",
    "ReminderType",
    # Settings
    "APP_SETTINGS_ID",
    "AppSettings",
    "CompanyProfile",
    # Audit models
    "AuditAction",
    "AuditEntityType",
    "AuditEntryBuilder",
    "AuditLog",
    "format_cents",
    # Trash
    "DeletedJobAggregate",
    "InventoryAdjustment",
]

"""
Audit Models for Field Ledger

Every state-changing ledger call writes one audit entry, in the same unit
of work as the change it describes. The details text is written so the
change can be reconstructed without diffing records.

DESIGN DECISION: Audit entries are append-only. The only removal path is
an explicit administrative purge of the whole trail.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import Field

from fieldledger.models.base import Record, utc_now

if TYPE_CHECKING:
    from fieldledger.models.customer import Customer
    from fieldledger.models.inventory import Expense, InventoryItem
    from fieldledger.models.invoice import Invoice, Payment
    from fieldledger.models.job import Attachment, Job, JobStatus
    from fieldledger.models.reminder import Reminder
    from fieldledger.models.trash import DeletedJobAggregate


class AuditEntityType(str, Enum):
    """Kinds of entity an audit entry can describe."""
    CUSTOMER = "customer"
    JOB = "job"
    INVOICE = "invoice"
    PAYMENT = "payment"
    EXPENSE = "expense"
    REMINDER = "reminder"
    ATTACHMENT = "attachment"
    INVENTORY = "inventory"
    SETTINGS = "settings"
    LEDGER = "ledger"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ARCHIVED = "archived"
    RESTORED = "restored"
    STATUS_CHANGED = "status-changed"
    PAID = "paid"
    REFUNDED = "refunded"
    VOIDED = "voided"
    COMPLETED = "completed"
    ADJUSTED = "adjusted"
    IMPORTED = "imported"
    FAILED = "failed"


class AuditLog(Record):
    """A single immutable audit entry."""

    entity_type: AuditEntityType
    entity_id: str = Field(..., min_length=1)
    action: AuditAction
    details: str = Field(..., max_length=2000)
    timestamp: datetime = Field(default_factory=utc_now)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "audit_id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "action": self.action.value,
            "details": self.details,
        }


def format_cents(cents: int) -> str:
    """Render cents as dollars, e.g. 22733 -> '$227.33', -10000 -> '-$100.00'."""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}${cents // 100:,}.{cents % 100:02d}"


class AuditEntryBuilder:
    """
    Helper class to build audit entries with common patterns.

    Usage:
        entry = AuditEntryBuilder.customer_created(customer)
        entry = AuditEntryBuilder.payment_recorded(invoice, payment)
    """

    @staticmethod
    def entry(
        entity_type: AuditEntityType,
        entity_id: str,
        action: AuditAction,
        details: str,
    ) -> AuditLog:
        return AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=details[:2000],
        )

    @staticmethod
    def customer_created(customer: "Customer") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.CUSTOMER,
            customer.id,
            AuditAction.CREATED,
            f'Customer "{customer.name}" created',
        )

    @staticmethod
    def customer_updated(customer: "Customer", changed: list[str]) -> AuditLog:
        action = AuditAction.ARCHIVED if changed == ["archived"] and customer.archived else AuditAction.UPDATED
        return AuditEntryBuilder.entry(
            AuditEntityType.CUSTOMER,
            customer.id,
            action,
            f'Customer "{customer.name}" {action.value}: {", ".join(changed) or "no changes"}',
        )

    @staticmethod
    def job_created(job: "Job", stock_usage: dict[str, int]) -> AuditLog:
        details = f"Job created for customer {job.customer_id} with {len(job.parts)} part line(s)"
        if stock_usage:
            used = ", ".join(f"{item_id} x{qty}" for item_id, qty in sorted(stock_usage.items()))
            details += f"; inventory consumed: {used}"
        return AuditEntryBuilder.entry(AuditEntityType.JOB, job.id, AuditAction.CREATED, details)

    @staticmethod
    def job_updated(job: "Job", changed: list[str]) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.JOB,
            job.id,
            AuditAction.UPDATED,
            f"Job updated: {', '.join(changed) or 'no changes'}",
        )

    @staticmethod
    def job_status_changed(job: "Job", previous: "JobStatus") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.JOB,
            job.id,
            AuditAction.STATUS_CHANGED,
            f"Job status {previous.value} -> {job.status.value}",
        )

    @staticmethod
    def job_deleted(aggregate: "DeletedJobAggregate") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.JOB,
            aggregate.job.id,
            AuditAction.DELETED,
            f"Job deleted; {aggregate.describe()}",
        )

    @staticmethod
    def job_restored(aggregate: "DeletedJobAggregate") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.JOB,
            aggregate.job.id,
            AuditAction.RESTORED,
            f"Job restored from trash; {aggregate.describe()}",
        )

    @staticmethod
    def invoice_issued(invoice: "Invoice") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.INVOICE,
            invoice.id,
            AuditAction.CREATED,
            f"Invoice {invoice.invoice_number} generated for job {invoice.job_id}: "
            f"total {format_cents(invoice.total_cents)}, tax {format_cents(invoice.tax_cents)}, "
            f"income {format_cents(invoice.income_amount_cents)}",
        )

    @staticmethod
    def invoice_repriced(invoice: "Invoice", previous_total: int) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.INVOICE,
            invoice.id,
            AuditAction.UPDATED,
            f"Invoice {invoice.invoice_number} repriced: total {format_cents(previous_total)} -> "
            f"{format_cents(invoice.total_cents)}, status {invoice.payment_status.value}",
        )

    @staticmethod
    def payment_recorded(invoice: "Invoice", payment: "Payment") -> AuditLog:
        action = AuditAction.REFUNDED if payment.amount_cents < 0 else AuditAction.PAID
        verb = "Refund" if payment.amount_cents < 0 else "Payment"
        return AuditEntryBuilder.entry(
            AuditEntityType.INVOICE,
            invoice.id,
            action,
            f"{verb} of {format_cents(abs(payment.amount_cents))} via {payment.method} recorded "
            f"(payment {payment.id}); paid {format_cents(invoice.paid_amount_cents)} of "
            f"{format_cents(invoice.total_cents)}, status {invoice.payment_status.value}",
        )

    @staticmethod
    def payment_voided(invoice: "Invoice", payment: "Payment") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.PAYMENT,
            payment.id,
            AuditAction.VOIDED,
            f"Payment of {format_cents(payment.amount_cents)} on invoice {invoice.invoice_number} voided; "
            f"paid now {format_cents(invoice.paid_amount_cents)}, status {invoice.payment_status.value}",
        )

    @staticmethod
    def reminder_created(reminder: "Reminder") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.REMINDER,
            reminder.id,
            AuditAction.CREATED,
            f'Reminder "{reminder.title}" due {reminder.due_date.isoformat()} for job {reminder.job_id}',
        )

    @staticmethod
    def reminder_completed(reminder: "Reminder") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.REMINDER,
            reminder.id,
            AuditAction.COMPLETED,
            f'Reminder "{reminder.title}" completed',
        )

    @staticmethod
    def reminder_deleted(reminder: "Reminder") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.REMINDER,
            reminder.id,
            AuditAction.DELETED,
            f'Reminder "{reminder.title}" deleted from job {reminder.job_id}',
        )

    @staticmethod
    def attachment_added(attachment: "Attachment") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.ATTACHMENT,
            attachment.id,
            AuditAction.CREATED,
            f"Attachment {attachment.file_name} ({attachment.size_bytes} bytes, "
            f"{attachment.mime_type}) added to job {attachment.job_id}",
        )

    @staticmethod
    def attachment_deleted(attachment: "Attachment") -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.ATTACHMENT,
            attachment.id,
            AuditAction.DELETED,
            f"Attachment {attachment.file_name} removed from job {attachment.job_id}",
        )

    @staticmethod
    def inventory_saved(item: "InventoryItem", action: AuditAction, changed: list[str] | None = None) -> AuditLog:
        details = f'Inventory item "{item.name}" {action.value}, on hand {item.quantity}'
        if changed:
            details += f": {', '.join(changed)}"
        return AuditEntryBuilder.entry(AuditEntityType.INVENTORY, item.id, action, details)

    @staticmethod
    def inventory_adjusted(item: "InventoryItem", delta: int, reason: str) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.INVENTORY,
            item.id,
            AuditAction.ADJUSTED,
            f'Inventory item "{item.name}" adjusted by {delta:+d} to {item.quantity}: {reason or "no reason given"}',
        )

    @staticmethod
    def expense_saved(expense: "Expense", action: AuditAction) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.EXPENSE,
            expense.id,
            action,
            f"Expense {action.value}: {expense.vendor} {format_cents(expense.amount_cents)} "
            f"({expense.category.value}) on {expense.date.isoformat()}",
        )

    @staticmethod
    def settings_updated(changed: list[str]) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.SETTINGS,
            "default",
            AuditAction.UPDATED,
            f"Settings updated: {', '.join(changed) or 'no changes'}",
        )

    @staticmethod
    def ledger_imported(counts: dict[str, int]) -> AuditLog:
        summary = ", ".join(f"{name}={count}" for name, count in sorted(counts.items()))
        return AuditEntryBuilder.entry(
            AuditEntityType.LEDGER,
            "backup",
            AuditAction.IMPORTED,
            f"Ledger data replaced from backup: {summary}",
        )

    @staticmethod
    def statement_imported(source: str, counts: dict[str, int]) -> AuditLog:
        summary = ", ".join(f"{name}={count}" for name, count in counts.items())
        return AuditEntryBuilder.entry(
            AuditEntityType.LEDGER,
            f"{source}-csv",
            AuditAction.IMPORTED,
            f"Sales transactions imported from {source} CSV: {summary}",
        )

    @staticmethod
    def operation_failed(operation: str, entity_id: str, error: Exception) -> AuditLog:
        return AuditEntryBuilder.entry(
            AuditEntityType.LEDGER,
            entity_id or "unknown",
            AuditAction.FAILED,
            f"{operation} failed: {type(error).__name__}: {error}",
        )

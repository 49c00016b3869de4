"""
Deleted Job Aggregate

Everything removed from the store when a job is deleted, captured exactly
as it was stored, plus the inventory quantities the delete put back.
Restoring writes these records back unchanged (same ids, same timestamps)
and takes the restocked quantities out again.
"""

from typing import Optional

from pydantic import Field

from fieldledger.models.base import LedgerModel
from fieldledger.models.invoice import Invoice, Payment
from fieldledger.models.job import Attachment, Job
from fieldledger.models.reminder import Reminder


class InventoryAdjustment(LedgerModel):
    """Units returned to one inventory item by a job delete."""

    item_id: str = Field(..., min_length=1)
    quantity_restored: int = Field(..., gt=0)


class DeletedJobAggregate(LedgerModel):
    """A job and every dependent record removed with it."""

    job: Job
    invoice: Optional[Invoice] = None
    payments: list[Payment] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    inventory_adjustments: list[InventoryAdjustment] = Field(default_factory=list)

    @property
    def job_id(self) -> str:
        return self.job.id

    def describe(self) -> str:
        parts = [
            f"invoice {self.invoice.invoice_number}" if self.invoice else "no invoice",
            f"{len(self.payments)} payment(s)",
            f"{len(self.reminders)} reminder(s)",
            f"{len(self.attachments)} attachment(s)",
        ]
        if self.inventory_adjustments:
            restocked = ", ".join(
                f"{adj.item_id} x{adj.quantity_restored}" for adj in self.inventory_adjustments
            )
            parts.append(f"restocked {restocked}")
        return ", ".join(parts)

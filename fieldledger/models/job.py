"""
Job, Part and Attachment Models

A Job is one visit or piece of work for one customer. Its money fields
(labor, parts, misc fee, tax rate) are the inputs the invoice engine
prices; the job itself never stores computed totals.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from fieldledger.models.base import LedgerModel, Record, new_id


class JobStatus(str, Enum):
    """
    Job lifecycle.

    quoted → in-progress → completed → invoiced → paid
    """
    QUOTED = "quoted"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    PAID = "paid"

    @property
    def is_billed(self) -> bool:
        return self in (JobStatus.INVOICED, JobStatus.PAID)


class PartSource(str, Enum):
    """Where a part came from."""
    INVENTORY = "inventory"                  # Our stock, marked up, counts as income
    CUSTOMER_PROVIDED = "customer-provided"  # Pass-through, not income, not taxed


class Part(LedgerModel):
    """
    One part line on a job.

    inventory_item_id is a weak reference: it is used to decrement and
    restock inventory, never to own the item.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)
    unit_cost_cents: int = Field(
        default=0,
        ge=0,
        description="What we paid per unit"
    )
    unit_price_cents: int = Field(
        default=0,
        ge=0,
        description="What we charge per unit"
    )
    source: PartSource = PartSource.INVENTORY
    inventory_item_id: Optional[str] = None

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def consumes_stock(self) -> bool:
        """True if adding this part takes units out of tracked inventory."""
        return self.source == PartSource.INVENTORY and bool(self.inventory_item_id)


class Job(Record):
    """A unit of work for a customer."""

    customer_id: str = Field(..., min_length=1)
    date_of_service: date = Field(default_factory=date.today)
    problem_description: str = Field(default="", max_length=2000)
    work_performed: str = Field(default="", max_length=2000)
    labor_hours: float = Field(default=0.0, ge=0.0, le=10000.0)
    labor_rate_cents: int = Field(default=0, ge=0)
    parts: list[Part] = Field(default_factory=list)
    misc_fees_cents: int = Field(default=0, ge=0)
    misc_fees_description: str = Field(default="", max_length=200)
    tax_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Percentage, e.g. 8.25"
    )
    status: JobStatus = JobStatus.QUOTED
    technician_notes: str = Field(default="", max_length=2000)
    invoice_id: Optional[str] = None

    @field_validator('parts')
    @classmethod
    def validate_unique_part_ids(cls, v: list[Part]) -> list[Part]:
        ids = [p.id for p in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Part ids must be unique within a job")
        return v

    @model_validator(mode='after')
    def validate_invoice_link(self) -> 'Job':
        if self.status.is_billed and not self.invoice_id:
            raise ValueError(f"A {self.status.value} job must reference its invoice")
        return self

    def stock_usage(self) -> dict[str, int]:
        """Units consumed per inventory item id."""
        usage: dict[str, int] = {}
        for part in self.parts:
            if part.consumes_stock:
                usage[part.inventory_item_id] = usage.get(part.inventory_item_id, 0) + part.quantity
        return usage


class Attachment(Record):
    """
    A file attached to a job.

    Only the filesystem reference and metadata are stored; reading and
    writing the bytes belongs to the caller.
    """

    job_id: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=1024)
    size_bytes: int = Field(..., ge=0)
    mime_type: str = Field(..., min_length=3, max_length=100)

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        if "/" not in v:
            raise ValueError(f"Invalid mime type: {v}")
        return v.lower()

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

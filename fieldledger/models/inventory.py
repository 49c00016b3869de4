"""Inventory and expense models."""

import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from fieldledger.models.base import Record


class InventoryItem(Record):
    """
    A stocked part.

    Quantity only moves through the ledger: job creation takes units out,
    job deletion puts them back, manual adjustments cover purchases and
    shrinkage.
    """

    name: str = Field(..., min_length=1, max_length=100)
    sku: str = Field(default="", max_length=50)
    description: str = Field(default="", max_length=500)
    category: str = Field(default="", max_length=50)
    unit_cost_cents: int = Field(default=0, ge=0)
    unit_price_cents: int = Field(default=0, ge=0)
    quantity: int = Field(default=0, ge=0, description="Units on hand")
    reorder_level: int = Field(default=0, ge=0)

    @property
    def needs_reorder(self) -> bool:
        return self.quantity <= self.reorder_level


class ExpenseCategory(str, Enum):
    PARTS = "parts"
    TOOLS = "tools"
    CONSUMABLES = "consumables"
    VEHICLE = "vehicle"
    FUEL = "fuel"
    MISC = "misc"


class Expense(Record):
    """Money spent by the business, optionally tied to a job or customer."""

    date: datetime.date
    vendor: str = Field(..., min_length=1, max_length=100)
    category: ExpenseCategory
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    job_id: Optional[str] = None
    customer_id: Optional[str] = None
    notes: str = Field(default="", max_length=500)

"""
Invoice and Payment Models

CRITICAL: Every money field on an Invoice is derived. The invoice engine
computes them from the Job and the full Payment list; nothing else in the
system is allowed to edit them directly.

Invariants (checked on every construction):
- total = labor + parts + pass-through parts + misc fees + tax
- income = total - pass-through parts
- payment status is a pure function of paid vs total
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from fieldledger.models.base import Record, utc_now


class PaymentStatus(str, Enum):
    """Payment status of an invoice."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"

    @property
    def is_settled(self) -> bool:
        return self in (PaymentStatus.PAID, PaymentStatus.OVERPAID)


class PaymentKind(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"


class Invoice(Record):
    """Derived billing aggregate for exactly one Job."""

    invoice_number: str = Field(..., min_length=1, max_length=50)
    job_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    invoice_date: date
    due_date: date

    # Derived amounts, all in cents
    labor_total_cents: int = Field(default=0, ge=0)
    parts_total_cents: int = Field(
        default=0,
        ge=0,
        description="Inventory-sourced parts, counted as income"
    )
    pass_through_parts_cents: int = Field(
        default=0,
        ge=0,
        description="Customer-provided parts, not income, not taxed"
    )
    misc_fees_cents: int = Field(default=0, ge=0)
    subtotal_cents: int = Field(
        default=0,
        ge=0,
        description="Taxable base: labor + parts + misc"
    )
    tax_cents: int = Field(default=0, ge=0)
    total_cents: int = Field(default=0, ge=0)
    income_amount_cents: int = Field(default=0, ge=0)
    paid_amount_cents: int = Field(
        default=0,
        description="Signed sum of non-voided payments"
    )
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    # Legacy single-payment fields. Read-only history from older records;
    # the Payment list is authoritative and the core never writes these.
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None
    payment_notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_money(self) -> 'Invoice':
        expected_total = (
            self.labor_total_cents
            + self.parts_total_cents
            + self.pass_through_parts_cents
            + self.misc_fees_cents
            + self.tax_cents
        )
        if self.total_cents != expected_total:
            raise ValueError(
                f"Invoice total {self.total_cents} does not equal its parts {expected_total}"
            )
        if self.subtotal_cents != self.labor_total_cents + self.parts_total_cents + self.misc_fees_cents:
            raise ValueError("Invoice subtotal does not equal labor + parts + misc fees")
        if self.income_amount_cents != self.total_cents - self.pass_through_parts_cents:
            raise ValueError("Invoice income does not equal total minus pass-through parts")
        if self.due_date < self.invoice_date:
            raise ValueError("Due date cannot be before invoice date")
        return self

    @property
    def outstanding_cents(self) -> int:
        """Amount still owed; negative when overpaid."""
        return self.total_cents - self.paid_amount_cents


class Payment(Record):
    """
    One money movement against an invoice.

    Payments carry a positive amount, refunds a negative one. A voided
    payment is kept for history but ignored by every sum.
    """

    invoice_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., description="Signed: refunds are negative")
    kind: PaymentKind = PaymentKind.PAYMENT
    method: str = Field(..., min_length=1, max_length=50)
    date: datetime = Field(default_factory=utc_now)
    notes: str = Field(default="", max_length=500)
    voided: bool = False

    @model_validator(mode='after')
    def validate_sign(self) -> 'Payment':
        if self.amount_cents == 0:
            raise ValueError("Payment amount cannot be zero")
        if self.kind == PaymentKind.PAYMENT and self.amount_cents < 0:
            raise ValueError("A payment must have a positive amount")
        if self.kind == PaymentKind.REFUND and self.amount_cents > 0:
            raise ValueError("A refund must have a negative amount")
        return self

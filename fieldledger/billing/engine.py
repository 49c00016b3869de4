"""
Invoice Engine

DESIGN DECISION: Pricing is PURE and DETERMINISTIC.
Given the same Job (and the same Payments) the engine always produces the
same cents, so re-running it can never drift from a previous result.

RULES:
- labor    = round(hours * rate)
- parts    = sum(qty * price) over inventory-sourced parts (income)
- pass     = sum(qty * price) over customer-provided parts (not income)
- base     = labor + parts + misc          (pass-through is never taxed)
- tax      = round(base * tax_rate / 100)
- total    = base + tax + pass
- income   = total - pass

Rounding is half-up to the cent at every sub-total, computed in Decimal
from the decimal text of the float inputs, so 17.325 becomes 17.33 and
8.25 % is exactly 8.25 %.

Paid amount is always re-summed from the full Payment list, never patched
incrementally.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from fieldledger.models import (
    AppSettings,
    Invoice,
    Job,
    PartSource,
    Payment,
    PaymentStatus,
)


class InvoiceTotals(BaseModel):
    """Cent amounts derived from one job."""

    model_config = ConfigDict(frozen=True)

    labor_total_cents: int
    parts_total_cents: int
    pass_through_parts_cents: int
    misc_fees_cents: int
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    income_amount_cents: int


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to a whole cent."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _decimal(value: float | int) -> Decimal:
    # str() keeps the decimal the user typed (8.25), not the binary float
    return Decimal(str(value))


def compute_totals(job: Job) -> InvoiceTotals:
    """Price a job."""
    labor = round_cents(_decimal(job.labor_hours) * job.labor_rate_cents)

    parts = 0
    pass_through = 0
    for part in job.parts:
        if part.source == PartSource.CUSTOMER_PROVIDED:
            pass_through += part.line_total_cents
        else:
            parts += part.line_total_cents

    taxable_base = labor + parts + job.misc_fees_cents
    tax = round_cents(taxable_base * _decimal(job.tax_rate) / 100)
    total = taxable_base + tax + pass_through

    return InvoiceTotals(
        labor_total_cents=labor,
        parts_total_cents=parts,
        pass_through_parts_cents=pass_through,
        misc_fees_cents=job.misc_fees_cents,
        subtotal_cents=taxable_base,
        tax_cents=tax,
        total_cents=total,
        income_amount_cents=total - pass_through,
    )


def derive_payment_status(paid_amount_cents: int, total_cents: int) -> PaymentStatus:
    """
    Payment status from paid vs total.

    unpaid:   nothing (net) paid
    partial:  0 < paid < total
    paid:     paid == total
    overpaid: paid > total
    """
    if paid_amount_cents > total_cents:
        return PaymentStatus.OVERPAID
    # Checked before unpaid: a zero-total invoice has nothing owing
    if paid_amount_cents == total_cents:
        return PaymentStatus.PAID
    if paid_amount_cents <= 0:
        return PaymentStatus.UNPAID
    return PaymentStatus.PARTIAL


def sum_payments(payments: Iterable[Payment]) -> int:
    """Signed sum of non-voided payments (refunds are negative)."""
    return sum(p.amount_cents for p in payments if not p.voided)


def format_invoice_number(prefix: str, counter: int, width: int) -> str:
    """Prefix plus zero-padded counter, e.g. ('INV-', 7, 4) -> 'INV-0007'."""
    return f"{prefix}{counter:0{width}d}"


def issue_invoice_number(settings: AppSettings) -> tuple[str, AppSettings]:
    """
    Take the next invoice number from settings.

    Returns:
        (invoice_number, settings with the counter advanced by exactly one)

    The caller must persist the returned settings in the same unit of work
    as the invoice, so a number is never issued twice.
    """
    number = format_invoice_number(
        settings.invoice_prefix,
        settings.next_invoice_number,
        settings.invoice_number_width,
    )
    return number, settings.revised(next_invoice_number=settings.next_invoice_number + 1)


def build_invoice(
    job: Job,
    invoice_number: str,
    due_days: int,
    invoice_date: Optional[date] = None,
    payments: Iterable[Payment] = (),
) -> Invoice:
    """Create a new invoice snapshot for a job."""
    invoice_date = invoice_date or date.today()
    totals = compute_totals(job)
    paid = sum_payments(payments)
    return Invoice(
        invoice_number=invoice_number,
        job_id=job.id,
        customer_id=job.customer_id,
        invoice_date=invoice_date,
        due_date=invoice_date + timedelta(days=due_days),
        paid_amount_cents=paid,
        payment_status=derive_payment_status(paid, totals.total_cents),
        **totals.model_dump(),
    )


def reprice_invoice(invoice: Invoice, job: Job, payments: Iterable[Payment]) -> Invoice:
    """
    Recompute every derived field of an existing invoice.

    Keeps identity (id, number, dates); amounts come from the job, paid
    amount from the full payment list.
    """
    totals = compute_totals(job)
    paid = sum_payments(payments)
    return invoice.revised(
        customer_id=job.customer_id,
        paid_amount_cents=paid,
        payment_status=derive_payment_status(paid, totals.total_cents),
        **totals.model_dump(),
    )


def apply_payments(invoice: Invoice, payments: Iterable[Payment]) -> Invoice:
    """Re-derive paid amount and status from the full payment list."""
    paid = sum_payments(payments)
    return invoice.revised(
        paid_amount_cents=paid,
        payment_status=derive_payment_status(paid, invoice.total_cents),
    )


def realized_income_cents(invoice: Invoice) -> int:
    """
    Income actually received on an invoice.

    Payments are split pro rata between income and pass-through parts.
    """
    if invoice.total_cents <= 0:
        return 0
    ratio = Decimal(invoice.income_amount_cents) / Decimal(invoice.total_cents)
    return round_cents(Decimal(invoice.paid_amount_cents) * ratio)


def is_overdue(invoice: Invoice, today: Optional[date] = None) -> bool:
    today = today or datetime.now().date()
    return not invoice.payment_status.is_settled and invoice.due_date < today


class CustomerBalance(BaseModel):
    """Money summary for one customer across all their invoices."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    invoice_count: int
    total_billed_cents: int
    total_spend_cents: int
    outstanding_cents: int
    realized_income_cents: int


def summarize_customer(customer_id: str, invoices: Iterable[Invoice]) -> CustomerBalance:
    """
    Balance report for a customer.

    - spend:       sum of paid amounts (net of refunds)
    - outstanding: sum of total - paid over invoices not yet settled
    - income:      paid amount scaled by income / total per invoice
    """
    invoices = list(invoices)
    return CustomerBalance(
        customer_id=customer_id,
        invoice_count=len(invoices),
        total_billed_cents=sum(i.total_cents for i in invoices),
        total_spend_cents=sum(i.paid_amount_cents for i in invoices),
        outstanding_cents=sum(
            i.outstanding_cents for i in invoices if not i.payment_status.is_settled
        ),
        realized_income_cents=sum(realized_income_cents(i) for i in invoices),
    )

"""Invoice pricing and payment rules."""

from fieldledger.billing.engine import (
    CustomerBalance,
    InvoiceTotals,
    apply_payments,
    build_invoice,
    compute_totals,
    derive_payment_status,
    format_invoice_number,
    is_overdue,
    issue_invoice_number,
    realized_income_cents,
    reprice_invoice,
    round_cents,
    sum_payments,
    summarize_customer,
)

__all__ = [
    "CustomerBalance",
    "InvoiceTotals",
    "apply_payments",
    "build_invoice",
    "compute_totals",
    "derive_payment_status",
    "format_invoice_number",
    "is_overdue",
    "issue_invoice_number",
    "realized_income_cents",
    "reprice_invoice",
    "round_cents",
    "sum_payments",
    "summarize_customer",
]

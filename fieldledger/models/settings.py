"""
Persisted Business Settings

DESIGN DECISION: AppSettings is a singleton record under a fixed id.
It owns the invoice counter, so issuing an invoice number is a read and
an increment of this one record inside the invoicing unit of work.
"""

from pydantic import Field

from fieldledger.models.base import LedgerModel, Record


APP_SETTINGS_ID = "default"


class CompanyProfile(LedgerModel):
    """Company details printed on invoices."""

    name: str = Field(default="", max_length=200)
    address: str = Field(default="", max_length=500)
    phone: str = Field(default="", max_length=20)
    email: str = Field(default="", max_length=200)


class AppSettings(Record):
    """Business-level settings stored in the ledger."""

    id: str = Field(default=APP_SETTINGS_ID, pattern=f"^{APP_SETTINGS_ID}$")
    default_labor_rate_cents: int = Field(default=8500, ge=0)
    default_tax_rate: float = Field(default=8.25, ge=0.0, le=100.0)
    invoice_prefix: str = Field(default="INV-", max_length=20)
    invoice_number_width: int = Field(default=4, ge=1, le=12)
    next_invoice_number: int = Field(
        default=1001,
        ge=1,
        description="Counter for the next invoice; only ever increases"
    )
    invoice_due_days: int = Field(default=30, ge=0, le=365)
    company: CompanyProfile = Field(default_factory=CompanyProfile)

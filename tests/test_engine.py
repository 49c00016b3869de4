"""
Tests for the invoice engine

Pure functions only: no store, no event loop.
"""

from datetime import date
from decimal import Decimal

import pytest

from fieldledger.billing import (
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
from fieldledger.models import (
    AppSettings,
    Job,
    Part,
    PartSource,
    Payment,
    PaymentKind,
    PaymentStatus,
)


def _service_call(**overrides) -> Job:
    """2 hours at $85/hr, one $40 inventory part, 8.25 % tax."""
    fields = dict(
        customer_id="cust-1",
        labor_hours=2,
        labor_rate_cents=8500,
        parts=[Part(name="Valve", quantity=1, unit_cost_cents=2500, unit_price_cents=4000)],
        tax_rate=8.25,
    )
    fields.update(overrides)
    return Job(**fields)


def _payment(invoice_id: str, amount_cents: int, **kwargs) -> Payment:
    kind = PaymentKind.REFUND if amount_cents < 0 else PaymentKind.PAYMENT
    return Payment(invoice_id=invoice_id, amount_cents=amount_cents, kind=kind, method="card", **kwargs)


class TestComputeTotals:
    """Tests for pricing a job."""

    def test_example_service_call(self):
        totals = compute_totals(_service_call())
        assert totals.labor_total_cents == 17000
        assert totals.parts_total_cents == 4000
        assert totals.subtotal_cents == 21000
        assert totals.tax_cents == 1733
        assert totals.total_cents == 22733
        assert totals.income_amount_cents == 22733

    def test_pass_through_parts_are_not_taxed_or_income(self):
        job = _service_call(parts=[
            Part(name="Valve", quantity=1, unit_price_cents=4000),
            Part(name="Faucet", quantity=1, unit_price_cents=5000, source=PartSource.CUSTOMER_PROVIDED),
        ])
        totals = compute_totals(job)
        assert totals.pass_through_parts_cents == 5000
        assert totals.tax_cents == 1733
        assert totals.total_cents == 27733
        assert totals.income_amount_cents == 22733

    def test_misc_fee_is_taxed(self):
        totals = compute_totals(_service_call(misc_fees_cents=1000))
        assert totals.subtotal_cents == 22000
        assert totals.tax_cents == 1815

    def test_rounding_is_half_up(self):
        assert round_cents(Decimal("1732.5")) == 1733
        assert round_cents(Decimal("1732.49")) == 1732
        totals = compute_totals(_service_call(labor_hours=1.5, labor_rate_cents=1155, parts=[], tax_rate=0))
        assert totals.labor_total_cents == 1733

    def test_float_inputs_use_their_decimal_text(self):
        # 1.15 * 1000 is 1149.999... in binary floating point
        totals = compute_totals(_service_call(labor_hours=1.15, labor_rate_cents=1000, parts=[], tax_rate=0))
        assert totals.labor_total_cents == 1150

    def test_totals_are_deterministic(self):
        job = _service_call()
        assert compute_totals(job) == compute_totals(job)
        assert compute_totals(Job.model_validate_json(job.to_json())) == compute_totals(job)

    def test_empty_job_is_zero(self):
        totals = compute_totals(Job(customer_id="cust-1"))
        assert totals.total_cents == 0


class TestPaymentStatus:
    """Tests for the four-way payment status rule."""

    @pytest.mark.parametrize("paid,total,expected", [
        (0, 22733, PaymentStatus.UNPAID),
        (-500, 22733, PaymentStatus.UNPAID),
        (100, 22733, PaymentStatus.PARTIAL),
        (22733, 22733, PaymentStatus.PAID),
        (30000, 22733, PaymentStatus.OVERPAID),
        (0, 0, PaymentStatus.PAID),
    ])
    def test_derive_payment_status(self, paid, total, expected):
        assert derive_payment_status(paid, total) == expected

    def test_sum_payments_ignores_voided(self):
        payments = [
            _payment("inv-1", 10000),
            _payment("inv-1", 5000, voided=True),
            _payment("inv-1", -2000),
        ]
        assert sum_payments(payments) == 8000

    def test_payment_then_refund_scenario(self):
        invoice = build_invoice(_service_call(), "INV-1001", 30, invoice_date=date(2026, 3, 1))
        payment = _payment(invoice.id, 22733)
        paid = apply_payments(invoice, [payment])
        assert paid.payment_status == PaymentStatus.PAID

        refund = _payment(invoice.id, -10000)
        refunded = apply_payments(paid, [payment, refund])
        assert refunded.payment_status == PaymentStatus.PARTIAL
        assert refunded.paid_amount_cents == 12733


class TestInvoiceBuilding:
    """Tests for numbering and building invoices."""

    def test_format_invoice_number(self):
        assert format_invoice_number("INV-", 7, 4) == "INV-0007"
        assert format_invoice_number("INV-", 1001, 4) == "INV-1001"
        assert format_invoice_number("", 12345, 4) == "12345"

    def test_issue_invoice_number_advances_counter_once(self):
        number, settings = issue_invoice_number(AppSettings())
        assert number == "INV-1001"
        assert settings.next_invoice_number == 1002
        number, settings = issue_invoice_number(settings)
        assert number == "INV-1002"
        assert settings.next_invoice_number == 1003

    def test_build_invoice_dates(self):
        invoice = build_invoice(_service_call(), "INV-1001", 30, invoice_date=date(2026, 3, 1))
        assert invoice.invoice_date == date(2026, 3, 1)
        assert invoice.due_date == date(2026, 3, 31)
        assert invoice.total_cents == 22733
        assert invoice.payment_status == PaymentStatus.UNPAID

    def test_reprice_keeps_identity(self):
        job = _service_call()
        invoice = build_invoice(job, "INV-1001", 30, invoice_date=date(2026, 3, 1))
        payment = _payment(invoice.id, 22733)
        repriced = reprice_invoice(invoice, job.revised(labor_hours=3), [payment])
        assert repriced.id == invoice.id
        assert repriced.invoice_number == "INV-1001"
        assert repriced.labor_total_cents == 25500
        assert repriced.paid_amount_cents == 22733
        assert repriced.payment_status == PaymentStatus.PARTIAL

    def test_overdue(self):
        invoice = build_invoice(_service_call(), "INV-1001", 30, invoice_date=date(2026, 3, 1))
        assert not is_overdue(invoice, date(2026, 3, 31))
        assert is_overdue(invoice, date(2026, 4, 1))
        paid = apply_payments(invoice, [_payment(invoice.id, 22733)])
        assert not is_overdue(paid, date(2026, 4, 1))


class TestReports:
    """Tests for income and balance summaries."""

    def test_realized_income_is_pro_rata(self):
        job = _service_call(parts=[
            Part(name="Valve", quantity=1, unit_price_cents=4000),
            Part(name="Faucet", quantity=1, unit_price_cents=5000, source=PartSource.CUSTOMER_PROVIDED),
        ])
        invoice = build_invoice(job, "INV-1001", 30, invoice_date=date(2026, 3, 1))
        full = apply_payments(invoice, [_payment(invoice.id, invoice.total_cents)])
        assert realized_income_cents(full) == 22733
        assert realized_income_cents(invoice) == 0

    def test_summarize_customer(self):
        first = build_invoice(_service_call(), "INV-1001", 30, invoice_date=date(2026, 3, 1))
        second = build_invoice(_service_call(), "INV-1002", 30, invoice_date=date(2026, 3, 2))
        first = apply_payments(first, [_payment(first.id, 22733)])
        second = apply_payments(second, [_payment(second.id, 10000)])

        balance = summarize_customer("cust-1", [first, second])
        assert balance.invoice_count == 2
        assert balance.total_billed_cents == 45466
        assert balance.total_spend_cents == 32733
        assert balance.outstanding_cents == 12733
        assert balance.realized_income_cents == 32733


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

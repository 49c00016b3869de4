"""
Tests for Field Ledger models

Test strategy:
1. Unit tests for record schemas and their validators
2. Serialization shape (camelCase keys, round trip through JSON)
3. Audit entry builders
"""

import json
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from fieldledger.models import (
    AppSettings,
    AuditAction,
    AuditEntityType,
    AuditEntryBuilder,
    AuditLog,
    Customer,
    DeletedJobAggregate,
    Expense,
    ExpenseCategory,
    InventoryAdjustment,
    InventoryItem,
    Invoice,
    Job,
    JobStatus,
    Part,
    PartSource,
    Payment,
    PaymentKind,
    PaymentStatus,
    Reminder,
    format_cents,
)


def _invoice(**overrides) -> Invoice:
    fields = dict(
        invoice_number="INV-1001",
        job_id="job-1",
        customer_id="cust-1",
        invoice_date=date(2026, 3, 1),
        due_date=date(2026, 3, 31),
        labor_total_cents=17000,
        parts_total_cents=4000,
        subtotal_cents=21000,
        tax_cents=1733,
        total_cents=22733,
        income_amount_cents=22733,
    )
    fields.update(overrides)
    return Invoice(**fields)


class TestCustomerModel:
    """Tests for the Customer record."""

    def test_customer_strips_whitespace(self):
        """Test that whitespace is stripped from the name."""
        customer = Customer(name="  Dana Reyes  ")
        assert customer.name == "Dana Reyes"

    def test_customer_rejects_empty_name(self):
        with pytest.raises(ValidationError):
            Customer(name="   ")

    def test_customer_rejects_invalid_email(self):
        with pytest.raises(ValidationError, match="Invalid email"):
            Customer(name="Dana", email="not-an-email")

    def test_tags_are_deduplicated_case_insensitively(self):
        customer = Customer(name="Dana", tags=["VIP", " vip ", "", "Commercial"])
        assert customer.tags == ["VIP", "Commercial"]
        assert customer.has_tag("commercial")
        assert not customer.has_tag("residential")

    def test_record_serializes_with_camel_case_keys(self):
        customer = Customer(name="Dana")
        data = json.loads(customer.to_json())
        assert "createdAt" in data
        assert "updatedAt" in data
        assert "created_at" not in data

    def test_record_round_trips_through_json(self):
        customer = Customer(name="Dana", tags=["vip"])
        restored = Customer.model_validate_json(customer.to_json())
        assert restored == customer
        assert restored.to_json() == customer.to_json()

    def test_revised_bumps_updated_at_and_keeps_identity(self):
        customer = Customer(name="Dana")
        revised = customer.revised(phone="555-0100")
        assert revised.id == customer.id
        assert revised.created_at == customer.created_at
        assert revised.updated_at >= customer.updated_at
        assert revised.phone == "555-0100"

    def test_revised_still_validates(self):
        customer = Customer(name="Dana")
        with pytest.raises(ValidationError):
            customer.revised(name="")


class TestJobModels:
    """Tests for Job and Part."""

    def test_part_line_total(self):
        part = Part(name="Valve", quantity=3, unit_price_cents=4000)
        assert part.line_total_cents == 12000

    def test_part_rejects_zero_quantity(self):
        with pytest.raises(ValidationError):
            Part(name="Valve", quantity=0)

    def test_only_inventory_parts_with_reference_consume_stock(self):
        stocked = Part(name="Valve", quantity=1, inventory_item_id="item-1")
        unlinked = Part(name="Valve", quantity=1)
        provided = Part(
            name="Faucet",
            quantity=1,
            source=PartSource.CUSTOMER_PROVIDED,
            inventory_item_id="item-1",
        )
        assert stocked.consumes_stock
        assert not unlinked.consumes_stock
        assert not provided.consumes_stock

    def test_stock_usage_sums_per_item(self):
        job = Job(
            customer_id="cust-1",
            parts=[
                Part(name="Valve", quantity=2, inventory_item_id="item-1"),
                Part(name="Valve", quantity=1, inventory_item_id="item-1"),
                Part(name="Hose", quantity=4, inventory_item_id="item-2"),
            ],
        )
        assert job.stock_usage() == {"item-1": 3, "item-2": 4}

    def test_billed_job_requires_invoice(self):
        with pytest.raises(ValidationError, match="must reference its invoice"):
            Job(customer_id="cust-1", status=JobStatus.INVOICED)

    def test_duplicate_part_ids_rejected(self):
        part = Part(name="Valve", quantity=1)
        with pytest.raises(ValidationError, match="unique"):
            Job(customer_id="cust-1", parts=[part, part])

    def test_tax_rate_bounds(self):
        with pytest.raises(ValidationError):
            Job(customer_id="cust-1", tax_rate=101)

    def test_status_values(self):
        assert JobStatus.IN_PROGRESS.value == "in-progress"
        assert JobStatus.PAID.is_billed
        assert not JobStatus.COMPLETED.is_billed


class TestInvoiceModels:
    """Tests for Invoice and Payment."""

    def test_invoice_creation(self):
        invoice = _invoice()
        assert invoice.payment_status == PaymentStatus.UNPAID
        assert invoice.outstanding_cents == 22733

    def test_invoice_total_must_match_parts(self):
        with pytest.raises(ValidationError, match="does not equal its parts"):
            _invoice(total_cents=22000, income_amount_cents=22000)

    def test_invoice_income_excludes_pass_through(self):
        with pytest.raises(ValidationError, match="income"):
            _invoice(
                pass_through_parts_cents=5000,
                total_cents=27733,
                income_amount_cents=27733,
            )

    def test_invoice_due_date_validation(self):
        """Test that due_date cannot be before invoice_date."""
        with pytest.raises(ValidationError, match="Due date cannot be before invoice date"):
            _invoice(due_date=date(2026, 2, 1))

    def test_payment_sign_must_match_kind(self):
        with pytest.raises(ValidationError):
            Payment(invoice_id="inv-1", amount_cents=-100, method="cash")
        with pytest.raises(ValidationError):
            Payment(invoice_id="inv-1", amount_cents=100, kind=PaymentKind.REFUND, method="cash")
        with pytest.raises(ValidationError):
            Payment(invoice_id="inv-1", amount_cents=0, method="cash")

    def test_refund_is_negative(self):
        refund = Payment(invoice_id="inv-1", amount_cents=-100, kind=PaymentKind.REFUND, method="card")
        assert refund.amount_cents == -100

    def test_settled_statuses(self):
        assert PaymentStatus.PAID.is_settled
        assert PaymentStatus.OVERPAID.is_settled
        assert not PaymentStatus.PARTIAL.is_settled


class TestOtherRecords:
    """Tests for inventory, expense, reminder and settings records."""

    def test_inventory_reorder(self):
        item = InventoryItem(name="Valve", quantity=2, reorder_level=2)
        assert item.needs_reorder
        assert not item.revised(quantity=3).needs_reorder

    def test_inventory_quantity_cannot_go_negative(self):
        with pytest.raises(ValidationError):
            InventoryItem(name="Valve", quantity=-1)

    def test_expense_requires_positive_amount(self):
        with pytest.raises(ValidationError):
            Expense(
                date=date(2026, 3, 1),
                vendor="Supply House",
                category=ExpenseCategory.PARTS,
                description="Valves",
                amount_cents=0,
            )

    def test_reminder_completion_needs_timestamp(self):
        with pytest.raises(ValidationError, match="completion time"):
            Reminder(
                job_id="job-1",
                customer_id="cust-1",
                title="Follow up",
                due_date=date(2026, 4, 1),
                completed=True,
            )

    def test_app_settings_defaults(self):
        settings = AppSettings()
        assert settings.id == "default"
        assert settings.next_invoice_number == 1001
        assert settings.invoice_prefix == "INV-"

    def test_app_settings_id_is_fixed(self):
        with pytest.raises(ValidationError):
            AppSettings(id="other")


class TestAuditModels:
    """Tests for audit entries and their builder."""

    def test_audit_log_to_log_dict(self):
        """Test conversion to log dictionary."""
        entry = AuditLog(
            entity_type=AuditEntityType.CUSTOMER,
            entity_id="cust-1",
            action=AuditAction.CREATED,
            details="Customer created",
            timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        )
        log_dict = entry.to_log_dict()
        assert log_dict["entity_type"] == "customer"
        assert log_dict["action"] == "created"
        assert log_dict["timestamp"].startswith("2026-03-01T12:00:00")

    def test_format_cents(self):
        assert format_cents(22733) == "$227.33"
        assert format_cents(-10000) == "-$100.00"
        assert format_cents(5) == "$0.05"
        assert format_cents(123456789) == "$1,234,567.89"

    def test_customer_updated_archive_action(self):
        customer = Customer(name="Dana", archived=True)
        entry = AuditEntryBuilder.customer_updated(customer, ["archived"])
        assert entry.action == AuditAction.ARCHIVED

        entry = AuditEntryBuilder.customer_updated(customer, ["phone"])
        assert entry.action == AuditAction.UPDATED
        assert "phone" in entry.details

    def test_payment_recorded_uses_refunded_for_negative(self):
        invoice = _invoice(paid_amount_cents=12733, payment_status=PaymentStatus.PARTIAL)
        refund = Payment(invoice_id=invoice.id, amount_cents=-10000, kind=PaymentKind.REFUND, method="card")
        entry = AuditEntryBuilder.payment_recorded(invoice, refund)
        assert entry.action == AuditAction.REFUNDED
        assert "$100.00" in entry.details
        assert entry.entity_id == invoice.id

    def test_job_created_lists_inventory(self):
        job = Job(customer_id="cust-1")
        entry = AuditEntryBuilder.job_created(job, {"item-1": 3})
        assert "item-1 x3" in entry.details

    def test_details_are_truncated(self):
        entry = AuditEntryBuilder.entry(
            AuditEntityType.LEDGER, "x", AuditAction.UPDATED, "a" * 5000
        )
        assert len(entry.details) == 2000

    def test_deleted_aggregate_describe(self):
        aggregate = DeletedJobAggregate(
            job=Job(customer_id="cust-1"),
            inventory_adjustments=[InventoryAdjustment(item_id="item-1", quantity_restored=3)],
        )
        description = aggregate.describe()
        assert "no invoice" in description
        assert "item-1 x3" in description


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Sales Statement Import

Turns PayPal and eBay CSV exports into ledger records. Every sale
becomes, in one unit of work for the whole file:
- a customer (matched by name, case-insensitive, or created)
- a job for the sale, with an invoice numbered from the shared counter
- the payment (and any refund) received through the marketplace
- expenses for the marketplace's fees

Re-importing the same file is safe: every job carries its transaction
or order reference in its technician notes, and references already in
the ledger are skipped.
"""

import re
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, ConfigDict

from fieldledger.billing import apply_payments, build_invoice
from fieldledger.errors import ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork
from fieldledger.models import (
    AuditAction,
    AuditEntryBuilder,
    Customer,
    Expense,
    ExpenseCategory,
    Invoice,
    Job,
    JobStatus,
    Part,
    PartSource,
    Payment,
    PaymentKind,
)
from fieldledger.services.statements import (
    EbayOrder,
    PayPalTransaction,
    StatementFormat,
    detect_format,
    parse_ebay,
    parse_paypal,
)
from fieldledger.services.storage import (
    CUSTOMERS,
    EXPENSES,
    INVOICES,
    JOBS,
    PAYMENTS,
    SETTINGS,
)


logger = structlog.get_logger(__name__)

PAYPAL_REFERENCE = re.compile(r"PayPal TX: (\S+)")
EBAY_REFERENCE = re.compile(r"eBay Order: (\S+)")


class StatementImportResult(BaseModel):
    """What a sales statement import added to the ledger."""

    model_config = ConfigDict(frozen=True)

    source: StatementFormat
    customers_created: int = 0
    customers_matched: int = 0
    jobs_created: int = 0
    payments_recorded: int = 0
    expenses_created: int = 0
    total_revenue_cents: int = 0
    total_fees_cents: int = 0
    skipped: int = 0

    def counts(self) -> dict[str, int]:
        return self.model_dump(exclude={"source"})


class _ImportBatch:
    """
    Records produced by one import, written through one unit of work.

    Customers are matched by case-insensitive name; a missing one is
    created and written just before the first sale that needs it.
    """

    def __init__(self, uow: UnitOfWork, customers: list[Customer]):
        self.uow = uow
        self._by_name = {c.name.lower(): c for c in customers}
        self._unsaved: list[Customer] = []
        self.customers_created = 0
        self.customers_matched = 0
        self.jobs = 0
        self.payments: list[Payment] = []
        self.expenses: list[Expense] = []

    def resolve_customer(self, name: str, address: str, tag: str, source: str) -> Customer:
        customer = self._by_name.get(name.lower())
        if customer is not None:
            self.customers_matched += 1
            return customer
        customer = Customer(
            name=name,
            address=address,
            notes=f"Imported from {source} CSV",
            tags=[tag],
        )
        self._by_name[name.lower()] = customer
        self._unsaved.append(customer)
        self.customers_created += 1
        return customer

    async def add_sale(
        self,
        job: Job,
        invoice: Invoice,
        payments: list[Payment],
        expenses: list[Expense],
    ) -> None:
        tx = self.uow.tx
        for customer in self._unsaved:
            await tx.put(CUSTOMERS, customer)
            await self.uow.audit(AuditEntryBuilder.customer_created(customer))
        self._unsaved.clear()

        billed = job.revised(
            invoice_id=invoice.id,
            status=JobStatus.PAID if invoice.payment_status.is_settled else JobStatus.INVOICED,
        )
        await tx.put(JOBS, billed)
        await tx.put(INVOICES, invoice)
        await self.uow.audit(AuditEntryBuilder.job_created(billed, {}))
        await self.uow.audit(AuditEntryBuilder.invoice_issued(invoice))
        for payment in payments:
            await tx.put(PAYMENTS, payment)
            await self.uow.audit(AuditEntryBuilder.payment_recorded(invoice, payment))
        for expense in expenses:
            await tx.put(EXPENSES, expense)
            await self.uow.audit(AuditEntryBuilder.expense_saved(expense, AuditAction.CREATED))
        self.jobs += 1
        self.payments.extend(payments)
        self.expenses.extend(expenses)


class StatementImportOperations(LedgerCore):

    async def import_transactions_csv(self, text: str) -> StatementImportResult:
        """
        Import a PayPal activity download or an eBay earnings/transaction report.

        The whole file is one unit of work: on any invalid row nothing is
        written. Invoice numbers come from the same counter as invoice_job.

        Returns:
            StatementImportResult with what was created and skipped

        Raises:
            ValidationError: unknown format, unparseable row, or no sales
                in the file
        """
        source = detect_format(text)
        if source == StatementFormat.PAYPAL:
            sales = [t for t in parse_paypal(text) if t.is_completed_sale]
            if not sales:
                raise ValidationError("No completed payment transactions found in this CSV", field="csv")
        else:
            sales = parse_ebay(text)
            if not sales:
                raise ValidationError("No order rows found in this eBay CSV", field="csv")

        async def work(uow: UnitOfWork) -> StatementImportResult:
            app_settings = await self._load_app_settings(uow.tx)
            pattern = PAYPAL_REFERENCE if source == StatementFormat.PAYPAL else EBAY_REFERENCE
            seen = set()
            for job in await uow.tx.list_all(JOBS):
                match = pattern.search(job.technician_notes)
                if match:
                    seen.add(match.group(1))

            batch = _ImportBatch(uow, await uow.tx.list_all(CUSTOMERS))
            skipped = 0
            for sale in sales:
                reference = sale.transaction_id if source == StatementFormat.PAYPAL else sale.order_number
                if reference in seen:
                    skipped += 1
                    continue
                seen.add(reference)

                number, app_settings = await self._next_invoice_number(uow, app_settings)
                labor_rate = app_settings.default_labor_rate_cents
                if source == StatementFormat.PAYPAL:
                    await self._import_paypal_sale(batch, sale, number, labor_rate)
                else:
                    await self._import_ebay_order(batch, sale, number, labor_rate)
            await uow.tx.put(SETTINGS, app_settings)

            result = StatementImportResult(
                source=source,
                customers_created=batch.customers_created,
                customers_matched=batch.customers_matched,
                jobs_created=batch.jobs,
                payments_recorded=len(batch.payments),
                expenses_created=len(batch.expenses),
                total_revenue_cents=sum(
                    p.amount_cents for p in batch.payments if p.kind == PaymentKind.PAYMENT
                ),
                total_fees_cents=sum(e.amount_cents for e in batch.expenses),
                skipped=skipped,
            )
            await uow.audit(AuditEntryBuilder.statement_imported(source.value, result.counts()))
            return result

        result = await self._mutate("import_transactions_csv", work, f"{source.value}-csv")
        logger.info("statement_imported", source=source.value, **result.counts())
        return result

    async def _import_paypal_sale(
        self,
        batch: _ImportBatch,
        sale: PayPalTransaction,
        invoice_number: str,
        labor_rate_cents: int,
    ) -> None:
        customer = batch.resolve_customer(sale.name, "", "paypal", "PayPal")
        description = sale.item_title or "PayPal payment"
        reference = f"PayPal TX: {sale.transaction_id}"
        sale_date = sale.occurred_at.date()

        # Flat amount, no tax: the full payment is a misc fee line
        job = Job(
            customer_id=customer.id,
            date_of_service=sale_date,
            problem_description=description,
            work_performed=description,
            labor_rate_cents=labor_rate_cents,
            misc_fees_cents=sale.amount_cents,
            misc_fees_description=f"PayPal payment - {sale.transaction_id}"[:200],
            tax_rate=0,
            technician_notes=reference,
        )
        invoice = build_invoice(job, invoice_number, 0, invoice_date=sale_date)
        payment = Payment(
            invoice_id=invoice.id,
            amount_cents=sale.amount_cents,
            kind=PaymentKind.PAYMENT,
            method="PayPal",
            date=sale.occurred_at,
            notes=reference,
        )
        expenses = []
        if sale.fee_cents:
            expenses.append(Expense(
                date=sale_date,
                vendor="PayPal",
                category=ExpenseCategory.MISC,
                description="PayPal transaction fee",
                amount_cents=sale.fee_cents,
                job_id=job.id,
                customer_id=customer.id,
                notes=reference,
            ))
        await batch.add_sale(job, apply_payments(invoice, [payment]), [payment], expenses)

    async def _import_ebay_order(
        self,
        batch: _ImportBatch,
        order: EbayOrder,
        invoice_number: str,
        labor_rate_cents: int,
    ) -> None:
        customer = batch.resolve_customer(order.buyer_name, order.ship_to, "ebay", "eBay")
        title = order.item_title if order.item_title and order.item_title != "Multi-Item" else ""

        parts = []
        if order.item_subtotal_cents:
            parts.append(_sale_part(title or "eBay Multi-Item Sale", order.quantity, order.item_subtotal_cents))
        if order.shipping_cents:
            parts.append(Part(
                name="Shipping & handling",
                quantity=1,
                unit_cost_cents=order.shipping_cents,
                unit_price_cents=order.shipping_cents,
                source=PartSource.CUSTOMER_PROVIDED,
            ))

        job = Job(
            customer_id=customer.id,
            date_of_service=order.order_date,
            problem_description=title or "eBay Multi-Item Sale",
            work_performed="eBay sale",
            labor_rate_cents=labor_rate_cents,
            parts=parts,
            tax_rate=0,
            technician_notes=_ebay_notes(order),
        )
        invoice = build_invoice(job, invoice_number, 0, invoice_date=order.order_date)
        paid_at = datetime(order.order_date.year, order.order_date.month, order.order_date.day, tzinfo=timezone.utc)
        reference = f"eBay Order: {order.order_number}"

        payments = []
        if invoice.total_cents:
            payments.append(Payment(
                invoice_id=invoice.id,
                amount_cents=invoice.total_cents,
                kind=PaymentKind.PAYMENT,
                method="eBay",
                date=paid_at,
                notes=reference,
            ))
            refund = min(order.refund_cents, invoice.total_cents)
            if refund:
                payments.append(Payment(
                    invoice_id=invoice.id,
                    amount_cents=-refund,
                    kind=PaymentKind.REFUND,
                    method="eBay",
                    date=paid_at,
                    notes=f"eBay Refund - Order: {order.order_number}",
                ))

        expenses = []
        if order.total_fees_cents:
            breakdown = ", ".join(f"{label}: {cents / 100:.2f}" for label, cents in order.fees.items())
            expenses.append(Expense(
                date=order.order_date,
                vendor="eBay",
                category=ExpenseCategory.MISC,
                description=f"eBay selling fees ({breakdown})"[:200],
                amount_cents=order.total_fees_cents,
                job_id=job.id,
                customer_id=customer.id,
                notes=f"eBay Fee: ORDER-{order.order_number}",
            ))
        if order.shipping_label_cents:
            expenses.append(Expense(
                date=order.order_date,
                vendor="eBay",
                category=ExpenseCategory.MISC,
                description="eBay shipping label",
                amount_cents=order.shipping_label_cents,
                job_id=job.id,
                customer_id=customer.id,
                notes=f"eBay Fee: SHIP-{order.order_number}",
            ))
        await batch.add_sale(job, apply_payments(invoice, payments), payments, expenses)


def _sale_part(name: str, quantity: int, subtotal_cents: int) -> Part:
    # A subtotal that does not split evenly stays one line so the total is exact
    if subtotal_cents % quantity:
        return Part(name=f"{name} x{quantity}"[:200], quantity=1, unit_price_cents=subtotal_cents)
    return Part(name=name[:200], quantity=quantity, unit_price_cents=subtotal_cents // quantity)


def _ebay_notes(order: EbayOrder) -> str:
    lines = [f"eBay Order: {order.order_number}"]
    if order.item_title:
        lines.append(f"Item Title: {order.item_title}")
    lines.append(f"Buyer: {order.buyer_name}")
    if order.ship_to:
        lines.append(f"Ship To: {order.ship_to}")
    if order.refund_cents:
        lines.append(f"Refunds: {order.refund_cents / 100:.2f}")
    return "\n".join(lines)[:2000]

"""
Invoice and Payment Operations

CRITICAL: An invoice's paid amount and status are always re-derived from
its full payment list after every payment, refund or void. Nothing here
adds to or subtracts from paid_amount_cents directly.
"""

from datetime import datetime
from typing import Optional

from fieldledger.billing import apply_payments
from fieldledger.errors import ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork
from fieldledger.models import (
    AuditEntryBuilder,
    Invoice,
    Payment,
    PaymentKind,
    PaymentStatus,
)
from fieldledger.services.storage import INVOICES, PAYMENTS


class PaymentOperations(LedgerCore):

    async def get_invoice(self, invoice_id: str) -> Invoice:
        return await self._require(self._store, INVOICES, invoice_id, "invoice")

    async def get_invoice_for_job(self, job_id: str) -> Optional[Invoice]:
        invoices = await self._store.query_by_index(INVOICES, "by-job", job_id)
        return invoices[0] if invoices else None

    async def get_invoice_by_number(self, invoice_number: str) -> Optional[Invoice]:
        invoices = await self._store.query_by_index(INVOICES, "by-number", invoice_number)
        return invoices[0] if invoices else None

    async def list_invoices_for_customer(self, customer_id: str) -> list[Invoice]:
        invoices = await self._store.query_by_index(INVOICES, "by-customer", customer_id)
        return sorted(invoices, key=lambda i: i.invoice_number)

    async def list_invoices_by_status(self, status: PaymentStatus) -> list[Invoice]:
        invoices = await self._store.query_by_index(INVOICES, "by-status", PaymentStatus(status))
        return sorted(invoices, key=lambda i: i.invoice_number)

    async def list_payments(self, invoice_id: str) -> list[Payment]:
        """Every payment on an invoice (voided ones included), oldest first."""
        payments = await self._store.query_by_index(PAYMENTS, "by-invoice", invoice_id)
        return sorted(payments, key=lambda p: (p.date, p.created_at))

    async def record_payment(
        self,
        invoice_id: str,
        amount_cents: int,
        method: str,
        notes: str = "",
        paid_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Record money received against an invoice.

        Returns:
            The invoice with its paid amount and status re-derived
        """
        if amount_cents <= 0:
            raise ValidationError("Payment amount must be positive", field="amount_cents")
        return await self._add_payment(
            "record_payment", invoice_id, amount_cents, PaymentKind.PAYMENT, method, notes, paid_at
        )

    async def record_refund(
        self,
        invoice_id: str,
        amount_cents: int,
        method: str,
        notes: str = "",
        refunded_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Record money given back on an invoice.

        The refund is stored as a negative payment and may not exceed
        what has been paid so far.
        """
        if amount_cents <= 0:
            raise ValidationError("Refund amount must be positive", field="amount_cents")
        return await self._add_payment(
            "record_refund", invoice_id, -amount_cents, PaymentKind.REFUND, method, notes, refunded_at
        )

    async def _add_payment(
        self,
        operation: str,
        invoice_id: str,
        signed_amount_cents: int,
        kind: PaymentKind,
        method: str,
        notes: str,
        when: Optional[datetime],
    ) -> Invoice:
        async def work(uow: UnitOfWork) -> Invoice:
            invoice = await self._require(uow.tx, INVOICES, invoice_id, "invoice")
            if kind == PaymentKind.REFUND and -signed_amount_cents > invoice.paid_amount_cents:
                raise ValidationError(
                    f"Refund of {-signed_amount_cents} cents exceeds the {invoice.paid_amount_cents} cents paid",
                    field="amount_cents",
                )
            payment_fields = {"date": when} if when is not None else {}
            payment = Payment(
                invoice_id=invoice.id,
                amount_cents=signed_amount_cents,
                kind=kind,
                method=method,
                notes=notes,
                **payment_fields,
            )
            existing = await uow.tx.query_by_index(PAYMENTS, "by-invoice", invoice.id)
            updated = apply_payments(invoice, [*existing, payment])

            await uow.tx.put(PAYMENTS, payment)
            await uow.tx.put(INVOICES, updated)
            await uow.audit(AuditEntryBuilder.payment_recorded(updated, payment))
            await self._settle_job(uow, updated)
            return updated

        return await self._mutate(operation, work, invoice_id)

    async def void_payment(self, payment_id: str) -> Invoice:
        """
        Mark a payment as voided.

        The payment stays on record for history but no longer counts
        toward the invoice's paid amount.

        Raises:
            ValidationError: already voided, or voiding would leave the
                invoice with more refunded than paid
        """
        async def work(uow: UnitOfWork) -> Invoice:
            payment = await self._require(uow.tx, PAYMENTS, payment_id, "payment")
            if payment.voided:
                raise ValidationError(f"Payment {payment_id} is already voided", field="payment_id")
            invoice = await self._require(uow.tx, INVOICES, payment.invoice_id, "invoice")

            voided = payment.revised(voided=True)
            existing = await uow.tx.query_by_index(PAYMENTS, "by-invoice", invoice.id)
            payments = [voided if p.id == payment_id else p for p in existing]
            updated = apply_payments(invoice, payments)
            if updated.paid_amount_cents < 0:
                raise ValidationError(
                    f"Voiding payment {payment_id} would leave {updated.paid_amount_cents} cents paid; "
                    "void the refunds first",
                    field="payment_id",
                )

            await uow.tx.put(PAYMENTS, voided)
            await uow.tx.put(INVOICES, updated)
            await uow.audit(AuditEntryBuilder.payment_voided(updated, voided))
            await self._settle_job(uow, updated)
            return updated

        return await self._mutate("void_payment", work, payment_id)

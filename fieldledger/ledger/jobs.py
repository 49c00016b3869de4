"""
Job Operations

Jobs are where inventory, invoicing and the trash meet:
- add_job takes inventory-sourced parts out of stock
- invoice_job issues the one invoice number a job ever gets
- delete_job cascades to every dependent record, restocks, and hands
  the removed aggregate to the trash for undo
- restore_job writes that aggregate back exactly and takes the stock
  out again

STATUS RULES:
    quoted <-> in-progress <-> completed     (free)
    any pre-invoice status -> invoiced       (issues the invoice)
    invoiced <-> paid                        (follows payments only)
    invoiced / paid -> pre-invoice           (rejected)
"""

from datetime import date
from typing import Optional

import structlog

from fieldledger.billing import build_invoice, reprice_invoice
from fieldledger.errors import CascadeIntegrityError, ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork, apply_changes
from fieldledger.models import (
    AuditEntryBuilder,
    DeletedJobAggregate,
    InventoryAdjustment,
    Invoice,
    Job,
    JobStatus,
    Part,
)
from fieldledger.services.storage import (
    ATTACHMENTS,
    CUSTOMERS,
    INVENTORY_ITEMS,
    INVOICES,
    JOBS,
    PAYMENTS,
    REMINDERS,
    SETTINGS,
)


logger = structlog.get_logger(__name__)

JOB_FIELDS = (
    "date_of_service",
    "problem_description",
    "work_performed",
    "labor_hours",
    "labor_rate_cents",
    "parts",
    "misc_fees_cents",
    "misc_fees_description",
    "tax_rate",
    "technician_notes",
)


class JobOperations(LedgerCore):

    async def add_job(
        self,
        customer_id: str,
        date_of_service: Optional[date] = None,
        problem_description: str = "",
        work_performed: str = "",
        labor_hours: float = 0.0,
        labor_rate_cents: Optional[int] = None,
        parts: Optional[list[Part | dict]] = None,
        misc_fees_cents: int = 0,
        misc_fees_description: str = "",
        tax_rate: Optional[float] = None,
        status: JobStatus = JobStatus.QUOTED,
        technician_notes: str = "",
    ) -> Job:
        """
        Create a job for an existing customer.

        Labor rate and tax rate default to the business settings. Every
        inventory-sourced part that references an inventory item takes
        its quantity out of stock in the same unit of work.

        Raises:
            NotFoundError: unknown customer or inventory item
            ValidationError: bad field values, a billed starting status,
                or not enough stock
        """
        status = JobStatus(status)
        if status.is_billed:
            raise ValidationError(
                f"A new job cannot start as {status.value}; invoice it instead",
                field="status",
            )

        async def work(uow: UnitOfWork) -> Job:
            await self._require(uow.tx, CUSTOMERS, customer_id, "customer")
            app_settings = await self._load_app_settings(uow.tx)
            job = Job(
                customer_id=customer_id,
                date_of_service=date_of_service or date.today(),
                problem_description=problem_description,
                work_performed=work_performed,
                labor_hours=labor_hours,
                labor_rate_cents=(
                    app_settings.default_labor_rate_cents
                    if labor_rate_cents is None else labor_rate_cents
                ),
                parts=parts or [],
                misc_fees_cents=misc_fees_cents,
                misc_fees_description=misc_fees_description,
                tax_rate=app_settings.default_tax_rate if tax_rate is None else tax_rate,
                status=status,
                technician_notes=technician_notes,
            )

            usage = job.stock_usage()
            for item_id, quantity in sorted(usage.items()):
                item = await self._require(uow.tx, INVENTORY_ITEMS, item_id, "inventory item")
                if item.quantity < quantity:
                    raise ValidationError(
                        f'Insufficient stock for "{item.name}": {item.quantity} on hand, {quantity} needed',
                        field="parts",
                    )
                await uow.tx.put(INVENTORY_ITEMS, item.revised(quantity=item.quantity - quantity))

            await uow.tx.put(JOBS, job)
            await uow.audit(AuditEntryBuilder.job_created(job, usage))
            return job

        return await self._mutate("add_job", work)

    async def update_job(self, job_id: str, **changes) -> Job:
        """
        Edit a job's description and money fields.

        Editing parts moves stock by the difference between the old and
        new inventory usage, so a later delete restocks exactly what the
        job holds. If the job has an invoice it is re-priced from the
        edited job and its payment list.

        Raises:
            NotFoundError: a newly used inventory item does not exist
            ValidationError: bad field values or not enough stock
        """
        async def work(uow: UnitOfWork) -> Job:
            job = await self._require(uow.tx, JOBS, job_id, "job")
            updated, changed = apply_changes(job, changes, JOB_FIELDS)
            if not changed:
                return job
            if "parts" in changed:
                await self._move_stock(uow, job_id, job.stock_usage(), updated.stock_usage())
            await uow.tx.put(JOBS, updated)
            await uow.audit(AuditEntryBuilder.job_updated(updated, changed))

            if updated.invoice_id:
                invoice = await self._require(uow.tx, INVOICES, updated.invoice_id, "invoice")
                payments = await uow.tx.query_by_index(PAYMENTS, "by-invoice", invoice.id)
                repriced = reprice_invoice(invoice, updated, payments)
                if repriced.model_dump(exclude={"updated_at"}) != invoice.model_dump(exclude={"updated_at"}):
                    await uow.tx.put(INVOICES, repriced)
                    await uow.audit(AuditEntryBuilder.invoice_repriced(repriced, invoice.total_cents))
                    await self._settle_job(uow, repriced)
                    updated = await uow.tx.get(JOBS, job_id)
            return updated

        return await self._mutate("update_job", work, job_id)

    async def _move_stock(
        self,
        uow: UnitOfWork,
        job_id: str,
        before: dict[str, int],
        after: dict[str, int],
    ) -> None:
        """Take out or put back the units a parts edit changed."""
        for item_id in sorted(set(before) | set(after)):
            taken = after.get(item_id, 0) - before.get(item_id, 0)
            if taken == 0:
                continue
            if taken < 0:
                item = await uow.tx.get(INVENTORY_ITEMS, item_id)
                if item is None:
                    logger.warning("restock_skipped", job_id=job_id, item_id=item_id, quantity=-taken)
                    continue
            else:
                item = await self._require(uow.tx, INVENTORY_ITEMS, item_id, "inventory item")
                if item.quantity < taken:
                    raise ValidationError(
                        f'Insufficient stock for "{item.name}": {item.quantity} on hand, {taken} more needed',
                        field="parts",
                    )
            moved = item.revised(quantity=item.quantity - taken)
            await uow.tx.put(INVENTORY_ITEMS, moved)
            await uow.audit(AuditEntryBuilder.inventory_adjusted(moved, -taken, f"parts edited on job {job_id}"))

    async def update_job_status(self, job_id: str, status: JobStatus) -> Job:
        """
        Move a job through its lifecycle.

        Moving to `invoiced` issues the invoice (see invoice_job). `paid`
        can't be set here; it follows the invoice's payments.
        """
        status = JobStatus(status)
        if status == JobStatus.PAID:
            raise ValidationError("A job becomes paid by recording payments", field="status")
        if status == JobStatus.INVOICED:
            await self.invoice_job(job_id)
            return await self.get_job(job_id)

        async def work(uow: UnitOfWork) -> Job:
            job = await self._require(uow.tx, JOBS, job_id, "job")
            if job.status == status:
                return job
            if job.status.is_billed:
                raise ValidationError(
                    f"Cannot move a {job.status.value} job back to {status.value}",
                    field="status",
                )
            moved = job.revised(status=status)
            await uow.tx.put(JOBS, moved)
            await uow.audit(AuditEntryBuilder.job_status_changed(moved, job.status))
            return moved

        return await self._mutate("update_job_status", work, job_id)

    async def invoice_job(self, job_id: str, invoice_date: Optional[date] = None) -> Invoice:
        """
        Issue the invoice for a job.

        The first call prices the job, takes the next invoice number from
        settings, advances the counter and moves the job to `invoiced`
        (or straight to `paid` for a zero-total invoice). Later calls
        return the existing invoice without issuing another number.
        """
        async def work(uow: UnitOfWork) -> Invoice:
            job = await self._require(uow.tx, JOBS, job_id, "job")
            if job.invoice_id:
                return await self._require(uow.tx, INVOICES, job.invoice_id, "invoice")

            app_settings = await self._load_app_settings(uow.tx)
            number, app_settings = await self._next_invoice_number(uow, app_settings)

            invoice = build_invoice(
                job,
                number,
                app_settings.invoice_due_days,
                invoice_date=invoice_date,
            )
            billed = job.revised(
                invoice_id=invoice.id,
                status=JobStatus.PAID if invoice.payment_status.is_settled else JobStatus.INVOICED,
            )

            await uow.tx.put(INVOICES, invoice)
            await uow.tx.put(JOBS, billed)
            await uow.tx.put(SETTINGS, app_settings)
            await uow.audit(AuditEntryBuilder.invoice_issued(invoice))
            await uow.audit(AuditEntryBuilder.job_status_changed(billed, job.status))
            return invoice

        return await self._mutate("invoice_job", work, job_id)

    async def delete_job(self, job_id: str, force: bool = False) -> DeletedJobAggregate:
        """
        Delete a job and everything that depends on it.

        The job, its invoice, payments, reminders and attachments leave
        the store together, inventory-sourced parts go back into stock,
        and the whole aggregate is held in the trash for the undo window.

        Raises:
            ValidationError: the job is invoiced or paid and force is False
            CascadeIntegrityError: the job points at an invoice that is
                missing; nothing is deleted
        """
        async def work(uow: UnitOfWork) -> DeletedJobAggregate:
            job = await self._require(uow.tx, JOBS, job_id, "job")
            if job.status.is_billed and not force:
                raise ValidationError(
                    f"Job is {job.status.value}; pass force=True to delete it with its invoice",
                    field="status",
                )

            invoice = None
            payments = []
            if job.invoice_id:
                invoice = await uow.tx.get(INVOICES, job.invoice_id)
                if invoice is None:
                    raise CascadeIntegrityError(
                        f"Job {job_id} references invoice {job.invoice_id} which does not exist"
                    )
                payments = await uow.tx.query_by_index(PAYMENTS, "by-invoice", invoice.id)
            reminders = await uow.tx.query_by_index(REMINDERS, "by-job", job_id)
            attachments = await uow.tx.query_by_index(ATTACHMENTS, "by-job", job_id)

            adjustments = []
            for item_id, quantity in sorted(job.stock_usage().items()):
                item = await uow.tx.get(INVENTORY_ITEMS, item_id)
                if item is None:
                    logger.warning("restock_skipped", job_id=job_id, item_id=item_id, quantity=quantity)
                    continue
                await uow.tx.put(INVENTORY_ITEMS, item.revised(quantity=item.quantity + quantity))
                adjustments.append(InventoryAdjustment(item_id=item_id, quantity_restored=quantity))

            for payment in payments:
                await uow.tx.delete(PAYMENTS, payment.id)
            for reminder in reminders:
                await uow.tx.delete(REMINDERS, reminder.id)
            for attachment in attachments:
                await uow.tx.delete(ATTACHMENTS, attachment.id)
            if invoice is not None:
                await uow.tx.delete(INVOICES, invoice.id)
            await uow.tx.delete(JOBS, job_id)

            aggregate = DeletedJobAggregate(
                job=job,
                invoice=invoice,
                payments=payments,
                reminders=reminders,
                attachments=attachments,
                inventory_adjustments=adjustments,
            )
            await uow.audit(AuditEntryBuilder.job_deleted(aggregate))
            return aggregate

        aggregate = await self._mutate("delete_job", work, job_id)
        self._trash.stash(aggregate, on_expire=self._on_trash_expired)
        return aggregate

    async def restore_job(self, job_id: str) -> Job:
        """
        Undo a delete_job within the undo window.

        Every record comes back exactly as captured (same ids and
        timestamps) and the restocked quantities are taken out again.

        Raises:
            NothingToRestoreError: not in the trash, already restored, or expired
            ValidationError: the stock to take back is no longer on hand;
                the job stays in the trash
        """
        async def apply(aggregate: DeletedJobAggregate) -> Job:
            return await self._mutate(
                "restore_job",
                lambda uow: self._write_back(uow, aggregate),
                job_id,
            )

        return await self._trash.restore(job_id, apply)

    async def _write_back(self, uow: UnitOfWork, aggregate: DeletedJobAggregate) -> Job:
        job = aggregate.job
        if await uow.tx.get(JOBS, job.id) is not None:
            raise CascadeIntegrityError(f"Job {job.id} already exists; cannot restore over it")

        for adjustment in aggregate.inventory_adjustments:
            item = await uow.tx.get(INVENTORY_ITEMS, adjustment.item_id)
            if item is None:
                logger.warning("restock_reversal_skipped", job_id=job.id, item_id=adjustment.item_id)
                continue
            if item.quantity < adjustment.quantity_restored:
                raise ValidationError(
                    f'Cannot restore job: only {item.quantity} of "{item.name}" left, '
                    f"{adjustment.quantity_restored} needed",
                    field="parts",
                )
            await uow.tx.put(
                INVENTORY_ITEMS,
                item.revised(quantity=item.quantity - adjustment.quantity_restored),
            )

        await uow.tx.put(JOBS, job)
        if aggregate.invoice is not None:
            await uow.tx.put(INVOICES, aggregate.invoice)
        for payment in aggregate.payments:
            await uow.tx.put(PAYMENTS, payment)
        for reminder in aggregate.reminders:
            await uow.tx.put(REMINDERS, reminder)
        for attachment in aggregate.attachments:
            await uow.tx.put(ATTACHMENTS, attachment)
        await uow.audit(AuditEntryBuilder.job_restored(aggregate))
        return job

    def is_job_in_trash(self, job_id: str) -> bool:
        return self._trash.is_trashed(job_id)

    def trashed_job_ids(self) -> list[str]:
        return self._trash.pending_ids()

    async def get_job(self, job_id: str) -> Job:
        return await self._require(self._store, JOBS, job_id, "job")

    async def list_jobs_for_customer(self, customer_id: str) -> list[Job]:
        """A customer's jobs, most recent service date first."""
        jobs = await self._store.query_by_index(JOBS, "by-customer", customer_id)
        return sorted(jobs, key=lambda j: (j.date_of_service, j.created_at), reverse=True)

    async def list_jobs_by_status(self, status: JobStatus) -> list[Job]:
        return await self._store.query_by_index(JOBS, "by-status", JobStatus(status))

    async def list_jobs_between(self, start: date, end: date) -> list[Job]:
        """Jobs with start <= date_of_service <= end, oldest first."""
        if end < start:
            raise ValidationError("End date is before start date", field="end")
        return await self._store.query_by_index_range(JOBS, "by-date", start, end)

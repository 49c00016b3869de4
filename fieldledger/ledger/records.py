"""
Reminder and Attachment Operations

Both hang off a job by id. They are removed with the job by delete_job
and come back with it on restore.
"""

from datetime import date
from typing import Optional

from fieldledger.errors import ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork
from fieldledger.models import (
    Attachment,
    AuditEntryBuilder,
    Reminder,
    ReminderType,
    utc_now,
)
from fieldledger.services.storage import ATTACHMENTS, JOBS, REMINDERS


class RecordOperations(LedgerCore):

    # =========================================================================
    # REMINDERS
    # =========================================================================

    async def add_reminder(
        self,
        job_id: str,
        title: str,
        due_date: date,
        reminder_type: ReminderType = ReminderType.FOLLOW_UP,
        description: str = "",
    ) -> Reminder:
        """Schedule a reminder for a job. The customer is taken from the job."""
        async def work(uow: UnitOfWork) -> Reminder:
            job = await self._require(uow.tx, JOBS, job_id, "job")
            reminder = Reminder(
                job_id=job.id,
                customer_id=job.customer_id,
                type=reminder_type,
                title=title,
                description=description,
                due_date=due_date,
            )
            await uow.tx.put(REMINDERS, reminder)
            await uow.audit(AuditEntryBuilder.reminder_created(reminder))
            return reminder

        return await self._mutate("add_reminder", work, job_id)

    async def complete_reminder(self, reminder_id: str) -> Reminder:
        async def work(uow: UnitOfWork) -> Reminder:
            reminder = await self._require(uow.tx, REMINDERS, reminder_id, "reminder")
            if reminder.completed:
                return reminder
            completed = reminder.revised(completed=True, completed_at=utc_now())
            await uow.tx.put(REMINDERS, completed)
            await uow.audit(AuditEntryBuilder.reminder_completed(completed))
            return completed

        return await self._mutate("complete_reminder", work, reminder_id)

    async def delete_reminder(self, reminder_id: str) -> Reminder:
        async def work(uow: UnitOfWork) -> Reminder:
            reminder = await self._require(uow.tx, REMINDERS, reminder_id, "reminder")
            await uow.tx.delete(REMINDERS, reminder_id)
            await uow.audit(AuditEntryBuilder.reminder_deleted(reminder))
            return reminder

        return await self._mutate("delete_reminder", work, reminder_id)

    async def list_reminders_for_job(self, job_id: str) -> list[Reminder]:
        reminders = await self._store.query_by_index(REMINDERS, "by-job", job_id)
        return sorted(reminders, key=lambda r: (r.due_date, r.created_at))

    async def list_due_reminders(self, on_or_before: Optional[date] = None) -> list[Reminder]:
        """Open reminders due on or before the given day (default today), soonest first."""
        cutoff = on_or_before or date.today()
        reminders = await self._store.query_by_index_range(REMINDERS, "by-due-date", None, cutoff)
        return [r for r in reminders if not r.completed]

    # =========================================================================
    # ATTACHMENTS
    # =========================================================================

    async def add_attachment(
        self,
        job_id: str,
        file_name: str,
        file_path: str,
        size_bytes: int,
        mime_type: str,
    ) -> Attachment:
        """
        Reference a file on disk from a job.

        Only the path and metadata are stored; the caller owns the bytes.
        """
        limit = self._settings.defaults.max_attachment_bytes
        if size_bytes > limit:
            raise ValidationError(
                f"Attachment is {size_bytes} bytes; the limit is {limit}",
                field="size_bytes",
            )

        async def work(uow: UnitOfWork) -> Attachment:
            await self._require(uow.tx, JOBS, job_id, "job")
            attachment = Attachment(
                job_id=job_id,
                file_name=file_name,
                file_path=file_path,
                size_bytes=size_bytes,
                mime_type=mime_type,
            )
            await uow.tx.put(ATTACHMENTS, attachment)
            await uow.audit(AuditEntryBuilder.attachment_added(attachment))
            return attachment

        return await self._mutate("add_attachment", work, job_id)

    async def delete_attachment(self, attachment_id: str) -> Attachment:
        async def work(uow: UnitOfWork) -> Attachment:
            attachment = await self._require(uow.tx, ATTACHMENTS, attachment_id, "attachment")
            await uow.tx.delete(ATTACHMENTS, attachment_id)
            await uow.audit(AuditEntryBuilder.attachment_deleted(attachment))
            return attachment

        return await self._mutate("delete_attachment", work, attachment_id)

    async def list_attachments(self, job_id: str) -> list[Attachment]:
        attachments = await self._store.query_by_index(ATTACHMENTS, "by-job", job_id)
        return sorted(attachments, key=lambda a: a.created_at)

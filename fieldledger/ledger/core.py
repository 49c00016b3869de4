"""
Ledger Core

This module holds the machinery every facade operation runs through:
1. Unit of work (store transaction + audit entries, all or nothing)
2. Retry of a whole unit of work when the database is busy
3. Error translation (pydantic -> ValidationError) and failure auditing
4. Change notification to registered observers

DESIGN DECISION: A mutation is a coroutine `work(uow)` run inside one
store transaction. The business writes and the audit entry go through
the same transaction, so the audit trail can never disagree with the
data. Observers hear about a change only after it has committed.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from fieldledger.audit import AuditLogger
from fieldledger.billing import issue_invoice_number
from fieldledger.config import Settings
from fieldledger.errors import (
    CascadeIntegrityError,
    NotFoundError,
    StorageError,
    TransientStorageError,
    ValidationError,
)
from fieldledger.models import (
    APP_SETTINGS_ID,
    AppSettings,
    AuditAction,
    AuditEntityType,
    AuditEntryBuilder,
    AuditLog,
    CompanyProfile,
    DeletedJobAggregate,
    Invoice,
    JobStatus,
    Record,
)
from fieldledger.services.storage import (
    INVOICES,
    JOBS,
    SETTINGS,
    RecordStore,
    StoreOperations,
    StoreTransaction,
)
from fieldledger.trash import TrashManager


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class LedgerEvent(BaseModel):
    """Notification sent to observers after a committed change."""

    model_config = ConfigDict(frozen=True)

    entity_type: AuditEntityType
    entity_id: str
    action: AuditAction


Listener = Callable[[LedgerEvent], None]


class UnitOfWork:
    """One attempt at a mutation: a store transaction plus its audit entries."""

    def __init__(self, tx: StoreTransaction, audit_logger: AuditLogger):
        self.tx = tx
        self._audit_logger = audit_logger
        self.entries: list[AuditLog] = []

    async def audit(self, entry: AuditLog) -> None:
        await self._audit_logger.append(self.tx, entry)
        self.entries.append(entry)


def _validation_message(error: PydanticValidationError) -> tuple[str, Optional[str]]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location}: {item['msg']}" if location else item["msg"])
    first = error.errors()[0]["loc"] if error.errors() else ()
    field = str(first[0]) if first else None
    return f"Invalid {error.title}: " + "; ".join(problems), field


def apply_changes(
    record: Record,
    changes: dict[str, Any],
    allowed: Iterable[str],
) -> tuple[Record, list[str]]:
    """
    Apply caller edits to a record.

    Returns:
        (revised record, names of fields whose value actually changed)

    Raises:
        ValidationError: a field is not editable through this call
    """
    allowed = set(allowed)
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(unknown)}", field=unknown[0])
    revised = record.revised(**changes)
    changed = [name for name in changes if getattr(revised, name) != getattr(record, name)]
    return revised, changed


class LedgerCore:
    """
    Shared state and helpers for the ledger facade.

    Holds the store, the audit logger, the trash manager and the
    observer list. Operations live in the mixins built on top of this.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Settings,
        audit_logger: Optional[AuditLogger] = None,
        trash: Optional[TrashManager] = None,
    ):
        self._store = store
        self._settings = settings
        self._audit = audit_logger or AuditLogger(store)
        self._trash = trash or TrashManager(settings.trash.undo_window_seconds)
        self._listeners: list[Listener] = []

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def settings(self) -> Settings:
        return self._settings

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callable to hear about every committed change.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, entries: Iterable[AuditLog]) -> None:
        for entry in entries:
            event = LedgerEvent(
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
            )
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(
                        "ledger_listener_failed",
                        listener=getattr(listener, "__name__", repr(listener)),
                        error=str(e),
                    )

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    async def _mutate(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[T]],
        entity_id: Optional[str] = None,
    ) -> T:
        """
        Run `work` as one atomic, audited unit of work.

        - Each attempt gets a fresh transaction; a busy database retries
          the whole attempt with exponential backoff.
        - pydantic validation failures surface as ValidationError.
        - Storage and cascade failures get a best-effort `failed` audit
          record, then propagate unchanged.
        """
        store_settings = self._settings.store
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientStorageError),
            stop=stop_after_attempt(store_settings.write_retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.05, max=store_settings.retry_wait_max_seconds),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with self._store.transaction() as tx:
                        uow = UnitOfWork(tx, self._audit)
                        result = await work(uow)
        except PydanticValidationError as e:
            message, field = _validation_message(e)
            logger.info("ledger_validation_failed", operation=operation, error=message)
            raise ValidationError(message, field=field) from e
        except (StorageError, CascadeIntegrityError) as e:
            await self._audit.record_failure(operation, entity_id, e)
            raise

        logger.info(
            "ledger_mutation",
            operation=operation,
            entity_id=entity_id,
            audit_entries=len(uow.entries),
        )
        self._emit(uow.entries)
        return result

    async def _require(
        self,
        ops: StoreOperations,
        collection: str,
        record_id: str,
        entity_type: str,
    ) -> Record:
        record = await ops.get(collection, record_id)
        if record is None:
            raise NotFoundError(entity_type, record_id)
        return record

    # =========================================================================
    # SHARED HELPERS
    # =========================================================================

    def _default_app_settings(self) -> AppSettings:
        defaults = self._settings.defaults
        return AppSettings(
            default_labor_rate_cents=defaults.labor_rate_cents,
            default_tax_rate=defaults.tax_rate,
            invoice_prefix=defaults.invoice_prefix,
            invoice_number_width=defaults.invoice_number_width,
            next_invoice_number=defaults.first_invoice_number,
            invoice_due_days=defaults.invoice_due_days,
            company=CompanyProfile(name=defaults.company_name),
        )

    async def _load_app_settings(self, ops: StoreOperations) -> AppSettings:
        stored = await ops.get(SETTINGS, APP_SETTINGS_ID)
        return stored if stored is not None else self._default_app_settings()

    async def _ensure_app_settings(self) -> AppSettings:
        """Write first-run defaults if the ledger has no settings record yet."""
        async with self._store.transaction() as tx:
            stored = await tx.get(SETTINGS, APP_SETTINGS_ID)
            if stored is not None:
                return stored
            seeded = self._default_app_settings()
            await tx.put(SETTINGS, seeded)
        logger.info("app_settings_seeded", next_invoice_number=seeded.next_invoice_number)
        return seeded

    async def _next_invoice_number(self, uow: UnitOfWork, app_settings: AppSettings) -> tuple[str, AppSettings]:
        """
        Issue the next unused invoice number.

        Numbers already present (for example after an import) are
        skipped, never reused. The caller writes the advanced settings
        back in the same unit of work.
        """
        number, app_settings = issue_invoice_number(app_settings)
        while await uow.tx.query_by_index(INVOICES, "by-number", number):
            logger.warning("invoice_number_taken", invoice_number=number)
            number, app_settings = issue_invoice_number(app_settings)
        return number, app_settings

    async def _settle_job(self, uow: UnitOfWork, invoice: Invoice) -> None:
        """
        Keep a billed job's status in step with its invoice.

        A settled invoice (paid or overpaid) makes the job `paid`;
        anything less puts it back to `invoiced`.
        """
        job = await uow.tx.get(JOBS, invoice.job_id)
        if job is None or not job.status.is_billed:
            return
        target = JobStatus.PAID if invoice.payment_status.is_settled else JobStatus.INVOICED
        if job.status == target:
            return
        settled = job.revised(status=target)
        await uow.tx.put(JOBS, settled)
        await uow.audit(AuditEntryBuilder.job_status_changed(settled, job.status))

    def _on_trash_expired(self, aggregate: DeletedJobAggregate) -> None:
        logger.info("job_purged", job_id=aggregate.job_id, contents=aggregate.describe())

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def shutdown(self) -> None:
        """
        Close the ledger.

        Pending trash entries are discarded (their jobs stay deleted) and
        the store is released. The ledger is unusable afterwards.
        """
        discarded = self._trash.expire_all()
        self._listeners.clear()
        await self._store.close()
        logger.info("ledger_shutdown", discarded_trash_entries=discarded)

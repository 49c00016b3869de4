"""
Customer Operations

Customers are never hard-deleted: archiving flips a flag and keeps every
job and invoice that points at them.
"""

from typing import Optional

from fieldledger.ledger.core import LedgerCore, UnitOfWork, apply_changes
from fieldledger.models import AuditEntryBuilder, Customer
from fieldledger.services.storage import CUSTOMERS


CUSTOMER_FIELDS = ("name", "email", "phone", "address", "notes", "tags")


class CustomerOperations(LedgerCore):

    async def add_customer(
        self,
        name: str,
        email: str = "",
        phone: str = "",
        address: str = "",
        notes: str = "",
        tags: Optional[list[str]] = None,
    ) -> Customer:
        async def work(uow: UnitOfWork) -> Customer:
            customer = Customer(
                name=name,
                email=email,
                phone=phone,
                address=address,
                notes=notes,
                tags=tags or [],
            )
            await uow.tx.put(CUSTOMERS, customer)
            await uow.audit(AuditEntryBuilder.customer_created(customer))
            return customer

        return await self._mutate("add_customer", work)

    async def update_customer(self, customer_id: str, **changes) -> Customer:
        """
        Edit contact details or tags.

        Only fields in CUSTOMER_FIELDS may be changed; use
        archive_customer to archive.
        """
        async def work(uow: UnitOfWork) -> Customer:
            customer = await self._require(uow.tx, CUSTOMERS, customer_id, "customer")
            updated, changed = apply_changes(customer, changes, CUSTOMER_FIELDS)
            if not changed:
                return customer
            await uow.tx.put(CUSTOMERS, updated)
            await uow.audit(AuditEntryBuilder.customer_updated(updated, changed))
            return updated

        return await self._mutate("update_customer", work, customer_id)

    async def archive_customer(self, customer_id: str) -> Customer:
        async def work(uow: UnitOfWork) -> Customer:
            customer = await self._require(uow.tx, CUSTOMERS, customer_id, "customer")
            if customer.archived:
                return customer
            archived = customer.revised(archived=True)
            await uow.tx.put(CUSTOMERS, archived)
            await uow.audit(AuditEntryBuilder.customer_updated(archived, ["archived"]))
            return archived

        return await self._mutate("archive_customer", work, customer_id)

    async def get_customer(self, customer_id: str) -> Customer:
        return await self._require(self._store, CUSTOMERS, customer_id, "customer")

    async def list_customers(self, include_archived: bool = False) -> list[Customer]:
        """Customers sorted by name (case-insensitive)."""
        if include_archived:
            customers = await self._store.list_all(CUSTOMERS)
        else:
            customers = await self._store.query_by_index(CUSTOMERS, "by-archived", False)
        return sorted(customers, key=lambda c: (c.name.lower(), c.id))

    async def find_customers_by_tag(self, tag: str) -> list[Customer]:
        customers = await self.list_customers(include_archived=True)
        return [c for c in customers if c.has_tag(tag)]

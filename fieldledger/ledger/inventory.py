"""
Inventory and Expense Operations

Stock levels change in three places only: add_job (out), delete_job /
restore_job (back in and out again), and adjust_inventory_quantity for
purchases and shrinkage. update_inventory_item never touches quantity.
"""

from datetime import date
from typing import Optional

from fieldledger.errors import ValidationError
from fieldledger.ledger.core import LedgerCore, UnitOfWork, apply_changes
from fieldledger.models import (
    AuditAction,
    AuditEntryBuilder,
    Expense,
    ExpenseCategory,
    InventoryItem,
)
from fieldledger.services.storage import CUSTOMERS, EXPENSES, INVENTORY_ITEMS, JOBS


INVENTORY_FIELDS = (
    "name",
    "sku",
    "description",
    "category",
    "unit_cost_cents",
    "unit_price_cents",
    "reorder_level",
)

EXPENSE_FIELDS = (
    "date",
    "vendor",
    "category",
    "description",
    "amount_cents",
    "job_id",
    "customer_id",
    "notes",
)


class InventoryOperations(LedgerCore):

    # =========================================================================
    # INVENTORY
    # =========================================================================

    async def add_inventory_item(
        self,
        name: str,
        sku: str = "",
        description: str = "",
        category: str = "",
        unit_cost_cents: int = 0,
        unit_price_cents: int = 0,
        quantity: int = 0,
        reorder_level: int = 0,
    ) -> InventoryItem:
        async def work(uow: UnitOfWork) -> InventoryItem:
            item = InventoryItem(
                name=name,
                sku=sku,
                description=description,
                category=category,
                unit_cost_cents=unit_cost_cents,
                unit_price_cents=unit_price_cents,
                quantity=quantity,
                reorder_level=reorder_level,
            )
            await uow.tx.put(INVENTORY_ITEMS, item)
            await uow.audit(AuditEntryBuilder.inventory_saved(item, AuditAction.CREATED))
            return item

        return await self._mutate("add_inventory_item", work)

    async def update_inventory_item(self, item_id: str, **changes) -> InventoryItem:
        """Edit an item's details. Quantity goes through adjust_inventory_quantity."""
        if "quantity" in changes:
            raise ValidationError(
                "Use adjust_inventory_quantity to change stock on hand",
                field="quantity",
            )

        async def work(uow: UnitOfWork) -> InventoryItem:
            item = await self._require(uow.tx, INVENTORY_ITEMS, item_id, "inventory item")
            updated, changed = apply_changes(item, changes, INVENTORY_FIELDS)
            if not changed:
                return item
            await uow.tx.put(INVENTORY_ITEMS, updated)
            await uow.audit(AuditEntryBuilder.inventory_saved(updated, AuditAction.UPDATED, changed))
            return updated

        return await self._mutate("update_inventory_item", work, item_id)

    async def adjust_inventory_quantity(self, item_id: str, delta: int, reason: str = "") -> InventoryItem:
        """
        Add (positive delta) or remove (negative delta) stock by hand.

        Raises:
            ValidationError: zero delta, or the result would go below zero
        """
        if delta == 0:
            raise ValidationError("Adjustment must change the quantity", field="delta")

        async def work(uow: UnitOfWork) -> InventoryItem:
            item = await self._require(uow.tx, INVENTORY_ITEMS, item_id, "inventory item")
            if item.quantity + delta < 0:
                raise ValidationError(
                    f'Cannot remove {-delta} of "{item.name}": only {item.quantity} on hand',
                    field="delta",
                )
            adjusted = item.revised(quantity=item.quantity + delta)
            await uow.tx.put(INVENTORY_ITEMS, adjusted)
            await uow.audit(AuditEntryBuilder.inventory_adjusted(adjusted, delta, reason))
            return adjusted

        return await self._mutate("adjust_inventory_quantity", work, item_id)

    async def delete_inventory_item(self, item_id: str) -> InventoryItem:
        """
        Remove an item from inventory.

        Job parts keep their reference to it; deleting such a job later
        skips the restock for this item.
        """
        async def work(uow: UnitOfWork) -> InventoryItem:
            item = await self._require(uow.tx, INVENTORY_ITEMS, item_id, "inventory item")
            await uow.tx.delete(INVENTORY_ITEMS, item_id)
            await uow.audit(AuditEntryBuilder.inventory_saved(item, AuditAction.DELETED))
            return item

        return await self._mutate("delete_inventory_item", work, item_id)

    async def get_inventory_item(self, item_id: str) -> InventoryItem:
        return await self._require(self._store, INVENTORY_ITEMS, item_id, "inventory item")

    async def list_inventory(self) -> list[InventoryItem]:
        items = await self._store.list_all(INVENTORY_ITEMS)
        return sorted(items, key=lambda i: (i.name.lower(), i.id))

    async def list_low_stock_items(self) -> list[InventoryItem]:
        return [item for item in await self.list_inventory() if item.needs_reorder]

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_expense(
        self,
        expense_date: date,
        vendor: str,
        category: ExpenseCategory,
        description: str,
        amount_cents: int,
        job_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        notes: str = "",
    ) -> Expense:
        async def work(uow: UnitOfWork) -> Expense:
            await self._check_expense_links(uow, job_id, customer_id)
            expense = Expense(
                date=expense_date,
                vendor=vendor,
                category=category,
                description=description,
                amount_cents=amount_cents,
                job_id=job_id,
                customer_id=customer_id,
                notes=notes,
            )
            await uow.tx.put(EXPENSES, expense)
            await uow.audit(AuditEntryBuilder.expense_saved(expense, AuditAction.CREATED))
            return expense

        return await self._mutate("add_expense", work)

    async def update_expense(self, expense_id: str, **changes) -> Expense:
        async def work(uow: UnitOfWork) -> Expense:
            expense = await self._require(uow.tx, EXPENSES, expense_id, "expense")
            updated, changed = apply_changes(expense, changes, EXPENSE_FIELDS)
            if not changed:
                return expense
            await self._check_expense_links(
                uow,
                updated.job_id if "job_id" in changed else None,
                updated.customer_id if "customer_id" in changed else None,
            )
            await uow.tx.put(EXPENSES, updated)
            await uow.audit(AuditEntryBuilder.expense_saved(updated, AuditAction.UPDATED))
            return updated

        return await self._mutate("update_expense", work, expense_id)

    async def delete_expense(self, expense_id: str) -> Expense:
        async def work(uow: UnitOfWork) -> Expense:
            expense = await self._require(uow.tx, EXPENSES, expense_id, "expense")
            await uow.tx.delete(EXPENSES, expense_id)
            await uow.audit(AuditEntryBuilder.expense_saved(expense, AuditAction.DELETED))
            return expense

        return await self._mutate("delete_expense", work, expense_id)

    async def list_expenses_between(self, start: date, end: date) -> list[Expense]:
        if end < start:
            raise ValidationError("End date is before start date", field="end")
        return await self._store.query_by_index_range(EXPENSES, "by-date", start, end)

    async def list_expenses_by_category(self, category: ExpenseCategory) -> list[Expense]:
        expenses = await self._store.query_by_index(EXPENSES, "by-category", ExpenseCategory(category))
        return sorted(expenses, key=lambda e: (e.date, e.created_at))

    async def _check_expense_links(
        self,
        uow: UnitOfWork,
        job_id: Optional[str],
        customer_id: Optional[str],
    ) -> None:
        if job_id:
            await self._require(uow.tx, JOBS, job_id, "job")
        if customer_id:
            await self._require(uow.tx, CUSTOMERS, customer_id, "customer")

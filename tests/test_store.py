"""
Tests for the SQLite record store

Covers CRUD, named index lookups, transactions and schema migration.
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy import create_engine, inspect

from fieldledger.config import StoreSettings
from fieldledger.models import Customer, InventoryItem, Job, JobStatus
from fieldledger.services.storage import (
    CUSTOMERS,
    INVENTORY_ITEMS,
    JOBS,
    MIGRATIONS,
    SCHEMA_VERSION,
    SqliteRecordStore,
    StorageError,
    StoreOpenError,
)
from fieldledger.services.storage.schema import metadata, schema_meta
from fieldledger.services.storage.sqlite import _write_schema_version, read_schema_version


@pytest.fixture
def store_settings(tmp_path):
    return StoreSettings(database_path=str(tmp_path / "store.db"))


def _run_with_store(store_settings, scenario):
    async def main():
        store = SqliteRecordStore.open(store_settings)
        try:
            return await scenario(store)
        finally:
            await store.close()

    return asyncio.run(main())


class TestRecordOperations:
    """Tests for get / put / delete / list."""

    def test_put_and_get(self, store_settings):
        async def scenario(store):
            customer = Customer(name="Dana Reyes", tags=["vip"])
            await store.put(CUSTOMERS, customer)
            loaded = await store.get(CUSTOMERS, customer.id)
            assert loaded == customer
            assert isinstance(loaded, Customer)

        _run_with_store(store_settings, scenario)

    def test_get_missing_returns_none(self, store_settings):
        async def scenario(store):
            assert await store.get(CUSTOMERS, "nope") is None

        _run_with_store(store_settings, scenario)

    def test_put_replaces_existing(self, store_settings):
        async def scenario(store):
            customer = Customer(name="Dana")
            await store.put(CUSTOMERS, customer)
            await store.put(CUSTOMERS, customer.revised(name="Dana Reyes"))
            assert (await store.get(CUSTOMERS, customer.id)).name == "Dana Reyes"
            assert len(await store.list_all(CUSTOMERS)) == 1

        _run_with_store(store_settings, scenario)

    def test_delete_reports_whether_record_existed(self, store_settings):
        async def scenario(store):
            customer = Customer(name="Dana")
            await store.put(CUSTOMERS, customer)
            assert await store.delete(CUSTOMERS, customer.id) is True
            assert await store.delete(CUSTOMERS, customer.id) is False
            assert await store.get(CUSTOMERS, customer.id) is None

        _run_with_store(store_settings, scenario)

    def test_put_rejects_wrong_record_type(self, store_settings):
        async def scenario(store):
            with pytest.raises(StorageError, match="Cannot store Customer"):
                await store.put(JOBS, Customer(name="Dana"))

        _run_with_store(store_settings, scenario)

    def test_unknown_collection(self, store_settings):
        async def scenario(store):
            with pytest.raises(StorageError, match="Unknown collection"):
                await store.get("widgets", "x")

        _run_with_store(store_settings, scenario)

    def test_clear(self, store_settings):
        async def scenario(store):
            for name in ("A", "B", "C"):
                await store.put(CUSTOMERS, Customer(name=name))
            assert await store.clear(CUSTOMERS) == 3
            assert await store.list_all(CUSTOMERS) == []

        _run_with_store(store_settings, scenario)

    def test_in_memory_store(self):
        async def scenario(store):
            customer = Customer(name="Dana")
            await store.put(CUSTOMERS, customer)
            assert await store.get(CUSTOMERS, customer.id) == customer

        _run_with_store(StoreSettings(database_path=":memory:"), scenario)

    def test_closed_store_raises(self, store_settings):
        async def scenario():
            store = SqliteRecordStore.open(store_settings)
            await store.close()
            with pytest.raises(StorageError, match="closed"):
                await store.get(CUSTOMERS, "x")

        asyncio.run(scenario())


class TestIndexQueries:
    """Tests for named index lookups."""

    def test_query_by_index(self, store_settings):
        async def scenario(store):
            first = Job(customer_id="cust-1")
            second = Job(customer_id="cust-1", status=JobStatus.COMPLETED)
            other = Job(customer_id="cust-2")
            for job in (first, second, other):
                await store.put(JOBS, job)

            by_customer = await store.query_by_index(JOBS, "by-customer", "cust-1")
            assert {j.id for j in by_customer} == {first.id, second.id}

            completed = await store.query_by_index(JOBS, "by-status", JobStatus.COMPLETED)
            assert [j.id for j in completed] == [second.id]

        _run_with_store(store_settings, scenario)

    def test_query_by_index_orders_by_id(self, store_settings):
        async def scenario(store):
            jobs = [Job(id=f"job-{n}", customer_id="cust-1") for n in (3, 1, 2)]
            for job in jobs:
                await store.put(JOBS, job)
            found = await store.query_by_index(JOBS, "by-customer", "cust-1")
            assert [j.id for j in found] == ["job-1", "job-2", "job-3"]

        _run_with_store(store_settings, scenario)

    def test_boolean_index(self, store_settings):
        async def scenario(store):
            active = Customer(name="Active")
            archived = Customer(name="Gone", archived=True)
            await store.put(CUSTOMERS, active)
            await store.put(CUSTOMERS, archived)
            assert [c.id for c in await store.query_by_index(CUSTOMERS, "by-archived", False)] == [active.id]
            assert [c.id for c in await store.query_by_index(CUSTOMERS, "by-archived", True)] == [archived.id]

        _run_with_store(store_settings, scenario)

    def test_index_follows_updates(self, store_settings):
        async def scenario(store):
            job = Job(customer_id="cust-1")
            await store.put(JOBS, job)
            await store.put(JOBS, job.revised(status=JobStatus.IN_PROGRESS))
            assert await store.query_by_index(JOBS, "by-status", JobStatus.QUOTED) == []
            assert len(await store.query_by_index(JOBS, "by-status", JobStatus.IN_PROGRESS)) == 1

        _run_with_store(store_settings, scenario)

    def test_range_query_is_inclusive_and_ordered(self, store_settings):
        async def scenario(store):
            days = [date(2026, 3, d) for d in (5, 1, 10, 20)]
            for day in days:
                await store.put(JOBS, Job(customer_id="cust-1", date_of_service=day))

            jobs = await store.query_by_index_range(JOBS, "by-date", date(2026, 3, 1), date(2026, 3, 10))
            assert [j.date_of_service.day for j in jobs] == [1, 5, 10]

            open_ended = await store.query_by_index_range(JOBS, "by-date", date(2026, 3, 6))
            assert [j.date_of_service.day for j in open_ended] == [10, 20]

        _run_with_store(store_settings, scenario)

    def test_unknown_index(self, store_settings):
        async def scenario(store):
            with pytest.raises(StorageError, match="Unknown index"):
                await store.query_by_index(JOBS, "by-colour", "red")

        _run_with_store(store_settings, scenario)


class TestTransactions:
    """Tests for units of work."""

    def test_transaction_commits_together(self, store_settings):
        async def scenario(store):
            customer = Customer(name="Dana")
            job = Job(customer_id=customer.id)
            async with store.transaction() as tx:
                await tx.put(CUSTOMERS, customer)
                await tx.put(JOBS, job)
                assert await tx.get(JOBS, job.id) == job
            assert await store.get(CUSTOMERS, customer.id) == customer
            assert await store.get(JOBS, job.id) == job

        _run_with_store(store_settings, scenario)

    def test_transaction_rolls_back_on_error(self, store_settings):
        async def scenario(store):
            customer = Customer(name="Dana")
            with pytest.raises(RuntimeError):
                async with store.transaction() as tx:
                    await tx.put(CUSTOMERS, customer)
                    raise RuntimeError("boom")
            assert await store.get(CUSTOMERS, customer.id) is None

        _run_with_store(store_settings, scenario)


class TestMigrations:
    """Tests for opening and migrating the store."""

    def test_fresh_store_is_at_latest_version(self, store_settings):
        store = SqliteRecordStore.open(store_settings)
        try:
            assert store.schema_version == SCHEMA_VERSION == 4
        finally:
            asyncio.run(store.close())

        engine = create_engine(f"sqlite:///{store_settings.database_path}")
        inspector = inspect(engine)
        assert {"customers", "jobs", "invoices", "payments", "inventory_items"} <= set(inspector.get_table_names())
        assert "ix_invoices_by_number" in {ix["name"] for ix in inspector.get_indexes("invoices")}
        engine.dispose()

    def test_reopen_keeps_data(self, store_settings):
        customer = Customer(name="Dana")

        async def write(store):
            await store.put(CUSTOMERS, customer)

        async def read(store):
            return await store.get(CUSTOMERS, customer.id)

        _run_with_store(store_settings, write)
        assert _run_with_store(store_settings, read) == customer

    def test_migration_steps_are_idempotent(self, store_settings):
        asyncio.run(SqliteRecordStore.open(store_settings).close())
        engine = create_engine(f"sqlite:///{store_settings.database_path}")
        with engine.begin() as conn:
            for step in MIGRATIONS.values():
                step.apply(conn)
            assert read_schema_version(conn) == SCHEMA_VERSION
        engine.dispose()

    def test_upgrade_from_older_version(self, store_settings):
        engine = create_engine(f"sqlite:///{store_settings.database_path}")
        with engine.begin() as conn:
            schema_meta.create(conn)
            MIGRATIONS[1].apply(conn)
            MIGRATIONS[2].apply(conn)
            _write_schema_version(conn, 2)
        engine.dispose()

        async def scenario(store):
            assert store.schema_version == SCHEMA_VERSION
            item = InventoryItem(name="Valve", quantity=3)
            await store.put(INVENTORY_ITEMS, item)
            assert await store.get(INVENTORY_ITEMS, item.id) == item

        _run_with_store(store_settings, scenario)

    def test_newer_schema_refuses_to_open(self, store_settings):
        asyncio.run(SqliteRecordStore.open(store_settings).close())
        engine = create_engine(f"sqlite:///{store_settings.database_path}")
        with engine.begin() as conn:
            _write_schema_version(conn, SCHEMA_VERSION + 1)
        engine.dispose()

        with pytest.raises(StoreOpenError, match="newer"):
            SqliteRecordStore.open(store_settings)

    def test_unopenable_path(self, tmp_path):
        bad = StoreSettings(database_path=str(tmp_path / "missing-dir" / "store.db"))
        with pytest.raises(StoreOpenError):
            SqliteRecordStore.open(bad)

    def test_metadata_covers_every_collection(self):
        assert set(metadata.tables) >= {"schema_meta", CUSTOMERS, JOBS, INVENTORY_ITEMS}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

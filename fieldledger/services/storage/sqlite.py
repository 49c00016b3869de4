"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is used as the on-device backend because:
1. It is a single local file, no server to run
2. Multi-statement transactions give us all-or-nothing units of work
3. Real indices back the fixed set of lookups the ledger needs
4. It ships with Python

TRADEOFFS:
- Calls are synchronous under async method signatures. A unit of work
  never yields to the event loop part-way through, so two ledger calls
  cannot interleave their writes.
- Records are JSON documents; only indexed attributes are queryable.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import structlog
from sqlalchemy import Engine, create_engine, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from fieldledger.config import StoreSettings
from fieldledger.errors import StorageError, StoreOpenError, TransientStorageError
from fieldledger.models import Record
from fieldledger.services.storage.interface import RecordStore, StoreTransaction
from fieldledger.services.storage.schema import (
    COLLECTIONS,
    MIGRATIONS,
    SCHEMA_VERSION,
    TABLES,
    Collection,
    index_columns,
    index_value,
    schema_meta,
)


logger = structlog.get_logger(__name__)

SCHEMA_VERSION_KEY = "schema_version"


def _translate(error: SQLAlchemyError, action: str) -> StorageError:
    """Map a SQLAlchemy failure to the ledger's storage errors."""
    message = str(error).lower()
    if isinstance(error, OperationalError) and ("locked" in message or "busy" in message):
        return TransientStorageError(f"Database busy while trying to {action}: {error}")
    return StorageError(f"Failed to {action}: {error}")


def _collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise StorageError(f"Unknown collection: {name}")


def _index_attribute(collection: Collection, index_name: str) -> str:
    try:
        return collection.indexes[index_name]
    except KeyError:
        raise StorageError(f"Unknown index {collection.name}.{index_name}")


class SqliteTransaction(StoreTransaction):
    """All operations on one SQLite connection inside one transaction."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def _execute(self, statement, action: str):
        try:
            return self._conn.execute(statement)
        except SQLAlchemyError as e:
            raise _translate(e, action)

    def _to_records(self, collection: Collection, rows) -> list[Record]:
        return [collection.model.model_validate_json(row.data) for row in rows]

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        coll = _collection(collection)
        table = TABLES[collection]
        row = self._execute(
            select(table.c.data).where(table.c.id == record_id),
            f"get {collection}/{record_id}",
        ).first()
        return coll.model.model_validate_json(row.data) if row else None

    async def put(self, collection: str, record: Record) -> None:
        coll = _collection(collection)
        if not isinstance(record, coll.model):
            raise StorageError(
                f"Cannot store {type(record).__name__} in {collection} "
                f"(expects {coll.model.__name__})"
            )
        table = TABLES[collection]
        values = {"id": record.id, "data": record.to_json(), **index_columns(coll, record)}
        stmt = sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={name: stmt.excluded[name] for name in values if name != "id"},
        )
        self._execute(stmt, f"put {collection}/{record.id}")

    async def delete(self, collection: str, record_id: str) -> bool:
        _collection(collection)
        table = TABLES[collection]
        result = self._execute(
            table.delete().where(table.c.id == record_id),
            f"delete {collection}/{record_id}",
        )
        return result.rowcount > 0

    async def query_by_index(self, collection: str, index_name: str, value: Any) -> list[Record]:
        coll = _collection(collection)
        column = TABLES[collection].c[_index_attribute(coll, index_name)]
        table = TABLES[collection]
        rows = self._execute(
            select(table.c.data).where(column == index_value(value)).order_by(column, table.c.id),
            f"query {collection}.{index_name}",
        )
        return self._to_records(coll, rows)

    async def query_by_index_range(
        self,
        collection: str,
        index_name: str,
        lower: Any = None,
        upper: Any = None,
    ) -> list[Record]:
        coll = _collection(collection)
        table = TABLES[collection]
        column = table.c[_index_attribute(coll, index_name)]
        stmt = select(table.c.data).where(column.is_not(None))
        if lower is not None:
            stmt = stmt.where(column >= index_value(lower))
        if upper is not None:
            stmt = stmt.where(column <= index_value(upper))
        rows = self._execute(
            stmt.order_by(column, table.c.id),
            f"range query {collection}.{index_name}",
        )
        return self._to_records(coll, rows)

    async def list_all(self, collection: str) -> list[Record]:
        coll = _collection(collection)
        table = TABLES[collection]
        rows = self._execute(select(table.c.data).order_by(table.c.id), f"list {collection}")
        return self._to_records(coll, rows)

    async def clear(self, collection: str) -> int:
        _collection(collection)
        result = self._execute(TABLES[collection].delete(), f"clear {collection}")
        return result.rowcount


class SqliteRecordStore(RecordStore):
    """
    SQLite implementation of the durable store.

    Create with `SqliteRecordStore.open(settings)`, which also brings the
    schema up to date.
    """

    def __init__(self, engine: Engine, schema_version: int):
        self._engine: Optional[Engine] = engine
        self._schema_version = schema_version

    @classmethod
    @retry(
        retry=retry_if_exception_type(TransientStorageError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        reraise=True,
    )
    def open(cls, settings: StoreSettings) -> "SqliteRecordStore":
        """
        Open (or create) the database and apply pending migrations.

        Raises:
            StoreOpenError: the file cannot be opened or migrated. There is
                no usable store after this; callers should stop.
        """
        engine = _create_engine(settings)
        try:
            with engine.begin() as conn:
                version = migrate(conn)
        except SQLAlchemyError as e:
            engine.dispose()
            error = _translate(e, f"open store at {settings.database_path}")
            if isinstance(error, TransientStorageError):
                raise error
            raise StoreOpenError(str(error)) from e
        except StoreOpenError:
            engine.dispose()
            raise

        logger.info(
            "store_opened",
            database_path=settings.database_path,
            schema_version=version,
        )
        return cls(engine, version)

    @property
    def schema_version(self) -> int:
        return self._schema_version

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise StorageError("Store is closed")
        return self._engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqliteTransaction]:
        engine = self._require_engine()
        try:
            with engine.begin() as conn:
                yield SqliteTransaction(conn)
        except SQLAlchemyError as e:
            # Raised by BEGIN or COMMIT; statement errors are translated earlier
            raise _translate(e, "commit transaction")

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        async with self.transaction() as tx:
            return await tx.get(collection, record_id)

    async def put(self, collection: str, record: Record) -> None:
        async with self.transaction() as tx:
            await tx.put(collection, record)

    async def delete(self, collection: str, record_id: str) -> bool:
        async with self.transaction() as tx:
            return await tx.delete(collection, record_id)

    async def query_by_index(self, collection: str, index_name: str, value: Any) -> list[Record]:
        async with self.transaction() as tx:
            return await tx.query_by_index(collection, index_name, value)

    async def query_by_index_range(
        self,
        collection: str,
        index_name: str,
        lower: Any = None,
        upper: Any = None,
    ) -> list[Record]:
        async with self.transaction() as tx:
            return await tx.query_by_index_range(collection, index_name, lower, upper)

    async def list_all(self, collection: str) -> list[Record]:
        async with self.transaction() as tx:
            return await tx.list_all(collection)

    async def clear(self, collection: str) -> int:
        async with self.transaction() as tx:
            return await tx.clear(collection)

    async def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("store_closed")


def _create_engine(settings: StoreSettings) -> Engine:
    if settings.is_memory:
        # One shared connection, or every checkout would see an empty database
        return create_engine(
            "sqlite://",
            echo=settings.echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    path = Path(settings.database_path).expanduser()
    return create_engine(
        f"sqlite:///{path}",
        echo=settings.echo,
        connect_args={"timeout": 5},
    )


def read_schema_version(conn: Connection) -> int:
    row = conn.execute(
        select(schema_meta.c.value).where(schema_meta.c.key == SCHEMA_VERSION_KEY)
    ).first()
    return int(row.value) if row else 0


def _write_schema_version(conn: Connection, version: int) -> None:
    stmt = sqlite_insert(schema_meta).values(key=SCHEMA_VERSION_KEY, value=str(version))
    conn.execute(stmt.on_conflict_do_update(
        index_elements=[schema_meta.c.key],
        set_={"value": stmt.excluded.value},
    ))


def migrate(conn: Connection) -> int:
    """
    Bring the schema up to SCHEMA_VERSION, one step per version gap.

    Returns:
        The schema version after migrating
    """
    schema_meta.create(conn, checkfirst=True)
    current = read_schema_version(conn)
    if current > SCHEMA_VERSION:
        raise StoreOpenError(
            f"Database schema version {current} is newer than this build supports ({SCHEMA_VERSION})"
        )
    for version in range(current + 1, SCHEMA_VERSION + 1):
        step = MIGRATIONS[version]
        step.apply(conn)
        _write_schema_version(conn, version)
        logger.info("schema_migrated", version=version, step=step.description)
    return SCHEMA_VERSION

"""
Relational store adapter with dual database support.
Supports SQLite (default) and PostgreSQL.

Callers work with ``AssetStore``; SQL dialect differences live in small
``SqlDialect`` strategies and never leak past this module.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, Transaction
from sqlalchemy.exc import SQLAlchemyError

from asset_relocator.core.exceptions import StoreUnavailable
from asset_relocator.core.logging_config import LogCategory, _sanitize_data, log_debug, log_info
from asset_relocator.models.enums import DatabaseClient
from asset_relocator.schemas.asset import AssetRecord

Row = Dict[str, Any]
Params = Optional[Mapping[str, Any]]


@dataclass(frozen=True)
class SqlDialect:
    """Backend-specific SQL fragments."""
    client: DatabaseClient
    now_function: str


SQLITE_DIALECT = SqlDialect(client=DatabaseClient.SQLITE, now_function="datetime('now')")
POSTGRES_DIALECT = SqlDialect(client=DatabaseClient.POSTGRES, now_function="NOW()")

DIALECTS = {
    DatabaseClient.SQLITE.value: SQLITE_DIALECT,
    DatabaseClient.POSTGRES.value: POSTGRES_DIALECT,
}


def create_store_engine(settings) -> Engine:
    """
    Create the SQLAlchemy engine for the configured backend.

    Raises:
        StoreUnavailable: If the database file is missing or the server is unreachable
    """
    client = settings.database_client

    if client == DatabaseClient.SQLITE.value:
        db_path = settings.sqlite_path
        if not db_path.exists():
            raise StoreUnavailable(f"SQLite database not found at: {db_path}")

        engine = create_engine(
            settings.effective_database_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Let concurrent workers wait on the write lock instead of failing."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

        log_info(f"Configured SQLite engine: {db_path}", category=LogCategory.DB)

    elif client == DatabaseClient.POSTGRES.value:
        try:
            url = settings.effective_database_url
        except ValueError as exc:
            raise StoreUnavailable(str(exc)) from exc
        engine = create_engine(
            url,
            echo=False,
            pool_pre_ping=True,
            pool_size=max(5, settings.migration_concurrency + 1),
            max_overflow=5,
        )
        log_info(
            f"Configured PostgreSQL engine: {_sanitize_data(url)}",
            category=LogCategory.DB,
        )
    else:
        raise StoreUnavailable(f"Unsupported database client: {client}")

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise StoreUnavailable(f"Could not connect to {client} database: {exc}") from exc

    return engine


class AssetStore:
    """
    Query/transaction interface over one database connection.

    Each worker must use its own store (see ``clone``); a store never
    interleaves two records under one transaction.
    """

    def __init__(
        self,
        engine: Engine,
        dialect: SqlDialect,
        *,
        table: str = "files",
        source_provider: str = "cloudinary",
        destination_provider: str = "aws-s3",
    ):
        self.engine = engine
        self.dialect = dialect
        self.table = table
        self.source_provider = source_provider
        self.destination_provider = destination_provider
        self._connection: Optional[Connection] = None
        self._transaction: Optional[Transaction] = None

    @classmethod
    def from_settings(cls, settings) -> "AssetStore":
        """Connect to the configured backend; raises StoreUnavailable on failure."""
        engine = create_store_engine(settings)
        return cls(
            engine,
            DIALECTS[settings.database_client],
            table=settings.asset_table,
            source_provider=settings.source_provider,
            destination_provider=settings.destination_provider,
        )

    @property
    def client(self) -> str:
        return self.dialect.client.value

    @property
    def connection(self) -> Connection:
        if self._connection is None or self._connection.closed:
            try:
                self._connection = self.engine.connect()
            except SQLAlchemyError as exc:
                raise StoreUnavailable(f"Could not open database connection: {exc}") from exc
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def clone(self) -> "AssetStore":
        """New store sharing the engine but owning a separate connection."""
        return AssetStore(
            self.engine,
            self.dialect,
            table=self.table,
            source_provider=self.source_provider,
            destination_provider=self.destination_provider,
        )

    # ------------------------------------------------------------------
    # Generic query interface
    # ------------------------------------------------------------------

    def _run(self, sql: str, params: Params):
        try:
            return self.connection.execute(text(sql), dict(params or {}))
        except SQLAlchemyError:
            # Inside an explicit transaction the caller decides; otherwise reset the connection
            if self._transaction is None and self._connection is not None and self._connection.in_transaction():
                self._connection.rollback()
            raise

    def query_all(self, sql: str, params: Params = None) -> List[Row]:
        result = self._run(sql, params)
        rows = [dict(row._mapping) for row in result]
        self._end_implicit_transaction()
        return rows

    def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        result = self._run(sql, params)
        row = result.first()
        self._end_implicit_transaction()
        return dict(row._mapping) if row is not None else None

    def execute(self, sql: str, params: Params = None) -> int:
        """Run a statement and return the affected row count."""
        result = self._run(sql, params)
        affected = result.rowcount
        self._end_implicit_transaction()
        return affected

    def begin_transaction(self) -> None:
        if self._transaction is not None:
            raise RuntimeError("A transaction is already open on this store")
        self._end_implicit_transaction()
        self._transaction = self.connection.begin()

    def commit(self) -> None:
        if self._transaction is None:
            raise RuntimeError("No open transaction to commit")
        transaction, self._transaction = self._transaction, None
        transaction.commit()

    def rollback(self) -> None:
        """Roll back the open transaction; a no-op when none is open."""
        if self._transaction is None:
            return
        transaction, self._transaction = self._transaction, None
        transaction.rollback()

    def close(self) -> None:
        self.rollback()
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def dispose(self) -> None:
        """Close this store and release every pooled connection of the engine."""
        self.close()
        self.engine.dispose()

    def __enter__(self) -> "AssetStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _end_implicit_transaction(self) -> None:
        # SQLAlchemy autobegins; outside an explicit transaction every call is its own unit
        if self._transaction is None and self._connection is not None and self._connection.in_transaction():
            self._connection.commit()

    # ------------------------------------------------------------------
    # Asset table operations
    # ------------------------------------------------------------------

    def get_source_files(self) -> List[AssetRecord]:
        """All records still tagged with the source provider, ordered by id."""
        rows = self.query_all(
            f"SELECT * FROM {self.table} WHERE provider = :provider ORDER BY id",
            {"provider": self.source_provider},
        )
        log_debug(f"Fetched {len(rows)} source records", category=LogCategory.DB)
        return [AssetRecord.from_row(row) for row in rows]

    def update_file_to_destination(self, file_id: Union[int, str], new_url: str) -> int:
        """Point one record at the destination store and clear provider-specific blobs."""
        return self.execute(
            f"""
            UPDATE {self.table}
            SET
                url = :url,
                provider = :provider,
                provider_metadata = NULL,
                formats = NULL,
                updated_at = {self.dialect.now_function}
            WHERE id = :id
            """,
            {"url": new_url, "provider": self.destination_provider, "id": file_id},
        )

    def get_file_by_id(self, file_id: Union[int, str]) -> Optional[AssetRecord]:
        row = self.query_one(f"SELECT * FROM {self.table} WHERE id = :id", {"id": file_id})
        return AssetRecord.from_row(row) if row is not None else None

    def count_by_provider(self, provider: str) -> int:
        row = self.query_one(
            f"SELECT COUNT(*) AS count FROM {self.table} WHERE provider = :provider",
            {"provider": provider},
        )
        return int(row["count"]) if row else 0

    def database_path(self) -> Optional[Path]:
        """Location of the embedded database file (SQLite only)."""
        if self.dialect.client is not DatabaseClient.SQLITE:
            return None
        database = self.engine.url.database
        return Path(database) if database else None

"""Async SQLite database manager for the ledger.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance. The connection runs in autocommit
mode; multi-statement writes go through transaction(), which issues
BEGIN IMMEDIATE and serializes writers on this connection.
"""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Self

import aiosqlite

from tradeledger.exceptions import LedgerError, StoreError
from tradeledger.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    balance TEXT NOT NULL DEFAULT '0',
    participating INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0,
    profit_amount TEXT NOT NULL DEFAULT '0',
    profit_percentage TEXT NOT NULL DEFAULT '0',
    profit_computed_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id TEXT NOT NULL REFERENCES accounts(id),
    amount TEXT NOT NULL,
    kind TEXT NOT NULL,
    description TEXT NOT NULL,
    rule_id INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS profit_rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    min_balance TEXT NOT NULL,
    max_balance TEXT NOT NULL,
    profit TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schedule_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_time TEXT NOT NULL,
    time_zone TEXT NOT NULL,
    market_off_days TEXT NOT NULL,
    updated_by TEXT,
    created_at TEXT NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_accounts_participating
    ON accounts(participating);

CREATE INDEX IF NOT EXISTS idx_ledger_account
    ON ledger_entries(account_id, id);
"""


class LedgerDatabase:
    """Async SQLite connection manager for the ledger.

    Manages database lifecycle including schema creation, WAL mode
    configuration, write transactions and clean resource cleanup.

    Usage:
        async with LedgerDatabase("data/ledger.db") as database:
            async with database.transaction() as db:
                await db.execute("UPDATE ...")
    """

    def __init__(self, db_path: str = "data/ledger.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self._db_path, isolation_level=None)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            await self._create_tables()
            await self._ensure_schema_version()
        except aiosqlite.Error as e:
            raise StoreError(f"cannot open ledger database: {e}") from e

        logger.info("ledger_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("ledger_db_closed", db_path=self._db_path)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the block as one atomic write transaction.

        Re-entrant for the task that already owns the transaction: nested
        blocks join the outer one. Any exception rolls back; aiosqlite errors
        surface as StoreError, domain errors propagate unchanged.
        """
        current = asyncio.current_task()
        if self._tx_owner is not None and self._tx_owner is current:
            yield self.db
            return

        async with self._write_lock:
            self._tx_owner = current
            try:
                await self.db.execute("BEGIN IMMEDIATE")
                try:
                    yield self.db
                except BaseException:
                    await self.db.rollback()
                    raise
                try:
                    await self.db.commit()
                except aiosqlite.Error:
                    await self._rollback_quietly()
                    raise
            except aiosqlite.Error as e:
                logger.warning("ledger_transaction_failed", error=str(e))
                raise StoreError(str(e)) from e
            finally:
                self._tx_owner = None

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[aiosqlite.Connection]:
        """Translate aiosqlite failures on plain reads into StoreError."""
        try:
            yield self.db
        except LedgerError:
            raise
        except aiosqlite.Error as e:
            raise StoreError(str(e)) from e

    async def _rollback_quietly(self) -> None:
        """Leave the connection outside any transaction after a failed COMMIT."""
        try:
            await self.db.rollback()
        except aiosqlite.Error as e:
            logger.warning("ledger_rollback_failed", error=str(e))

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not exist."""
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()

"""Typed SQLite read/write abstraction for accounts and their ledgers.

Every balance mutation and its ledger entry are written in one transaction.
Balance and flag mutations bump the account version so settlement can run
an optimistic read-modify-write without holding locks across round trips.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

import uuid
from datetime import datetime
from decimal import Decimal

import aiosqlite

from tradeledger.data.database import LedgerDatabase
from tradeledger.exceptions import NotFoundError, ValidationError
from tradeledger.logging import get_logger
from tradeledger.models import Account, ProfitStats, Transaction, TransactionKind

logger = get_logger(__name__)

_ACCOUNT_COLUMNS = (
    "id, balance, participating, version, profit_amount, "
    "profit_percentage, profit_computed_at, created_at"
)


def _row_to_account(row: aiosqlite.Row | tuple) -> Account:
    return Account(
        id=row[0],
        balance=Decimal(row[1]),
        participating=bool(row[2]),
        version=row[3],
        profit_stats=ProfitStats(
            amount=Decimal(row[4]),
            percentage=Decimal(row[5]),
            last_computed_at=datetime.fromisoformat(row[6]) if row[6] else None,
        ),
        created_at=datetime.fromisoformat(row[7]),
    )


def _row_to_transaction(row: aiosqlite.Row | tuple) -> Transaction:
    return Transaction(
        id=row[0],
        amount=Decimal(row[1]),
        kind=TransactionKind(row[2]),
        description=row[3],
        rule_id=row[4],
        created_at=datetime.fromisoformat(row[5]),
    )


class AccountStore:
    """Async SQLite store for accounts, ledger entries and profit snapshots.

    Usage:
        async with LedgerDatabase("data/ledger.db") as database:
            store = AccountStore(database)
            account = await store.create_account(now)
    """

    def __init__(self, database: LedgerDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def create_account(self, now: datetime, account_id: str | None = None) -> Account:
        """Create an account with zero balance and participation off."""
        account_id = account_id or uuid.uuid4().hex
        async with self._database.transaction() as db:
            await db.execute(
                "INSERT INTO accounts (id, balance, participating, version, created_at) "
                "VALUES (?, '0', 0, 0, ?)",
                (account_id, now.isoformat()),
            )
        logger.info("account_created", account_id=account_id)
        return Account(
            id=account_id,
            balance=Decimal("0"),
            participating=False,
            version=0,
            created_at=now,
        )

    async def set_participating(self, account_id: str, participating: bool) -> Account:
        """Set the AI-trading flag. Returns the updated account."""
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "UPDATE accounts SET participating = ?, version = version + 1 WHERE id = ?",
                (1 if participating else 0, account_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"account {account_id} not found")
            account = await self._fetch(db, account_id)
        logger.info(
            "account_participation_set",
            account_id=account_id,
            participating=participating,
        )
        return account

    async def toggle_participation(self, account_id: str) -> Account:
        """Flip the AI-trading flag atomically."""
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "UPDATE accounts SET participating = 1 - participating, "
                "version = version + 1 WHERE id = ?",
                (account_id,),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"account {account_id} not found")
            account = await self._fetch(db, account_id)
        logger.info(
            "account_participation_toggled",
            account_id=account_id,
            participating=account.participating,
        )
        return account

    async def apply_adjustment(
        self,
        account_id: str,
        amount: Decimal,
        description: str,
        now: datetime,
    ) -> Account:
        """Credit (amount > 0) or debit (amount < 0) a balance with one ledger entry.

        Used by deposit approval, withdrawal, refund and commission flows.
        Balance floors are enforced by those callers, not here.
        """
        if amount == 0:
            raise ValidationError("adjustment amount must be non-zero")
        kind = TransactionKind.CREDIT if amount > 0 else TransactionKind.DEBIT

        async with self._database.transaction() as db:
            account = await self._fetch(db, account_id)
            new_balance = account.balance + amount
            await db.execute(
                "UPDATE accounts SET balance = ?, version = version + 1 WHERE id = ?",
                (str(new_balance), account_id),
            )
            await self._append(
                db,
                account_id,
                Transaction(
                    amount=abs(amount),
                    kind=kind,
                    description=description,
                    created_at=now,
                ),
            )
            account = await self._fetch(db, account_id)

        logger.info(
            "balance_adjusted",
            account_id=account_id,
            amount=str(amount),
            new_balance=str(account.balance),
        )
        return account

    async def apply_settlement(
        self,
        account_id: str,
        expected_version: int,
        profit: Decimal,
        percentage: Decimal,
        entry: Transaction,
        now: datetime,
    ) -> Account | None:
        """Apply one settlement outcome if the account is still at expected_version.

        Balance increment, ledger append and profit snapshot are written in a
        single transaction. Returns the updated account, or None when the
        version moved (a concurrent writer got there first) or the account
        stopped participating; the caller re-reads and retries.
        """
        async with self._database.transaction() as db:
            cursor = await db.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts "
                "WHERE id = ? AND version = ? AND participating = 1",
                (account_id, expected_version),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            account = _row_to_account(row)
            new_balance = account.balance + profit
            await db.execute(
                "UPDATE accounts SET balance = ?, version = version + 1, "
                "profit_amount = ?, profit_percentage = ?, profit_computed_at = ? "
                "WHERE id = ? AND version = ?",
                (
                    str(new_balance),
                    str(profit),
                    str(percentage),
                    now.isoformat(),
                    account_id,
                    expected_version,
                ),
            )
            await self._append(db, account_id, entry)
            return await self._fetch(db, account_id)

    async def reset_profit_stats(self, account_id: str, now: datetime) -> None:
        """Overwrite the profit snapshot with zeros. Balance and version are untouched."""
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "UPDATE accounts SET profit_amount = '0', profit_percentage = '0', "
                "profit_computed_at = ? WHERE id = ?",
                (now.isoformat(), account_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"account {account_id} not found")

    async def deactivate_all(self, description: str, now: datetime) -> int:
        """Clear the participation flag on every participating account.

        Each affected account gains one zero-amount system entry. Runs as a
        single transaction: either every account is flipped or none is.
        Returns the number of accounts deactivated.
        """
        async with self._database.transaction() as db:
            await db.execute(
                "INSERT INTO ledger_entries "
                "(account_id, amount, kind, description, rule_id, created_at) "
                "SELECT id, '0', ?, ?, NULL, ? FROM accounts WHERE participating = 1",
                (TransactionKind.SYSTEM.value, description, now.isoformat()),
            )
            cursor = await db.execute(
                "UPDATE accounts SET participating = 0, version = version + 1 "
                "WHERE participating = 1"
            )
            return cursor.rowcount

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_account(self, account_id: str) -> Account:
        """Return one account or raise NotFoundError."""
        async with self._database.reading() as db:
            return await self._fetch(db, account_id)

    async def list_participating(self) -> list[Account]:
        """Return all accounts with the AI-trading flag set, oldest first."""
        async with self._database.reading() as db:
            cursor = await db.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts "
                "WHERE participating = 1 ORDER BY created_at ASC, id ASC"
            )
            rows = await cursor.fetchall()
        return [_row_to_account(row) for row in rows]

    async def list_ledger(self, account_id: str, limit: int | None = None) -> list[Transaction]:
        """Return the account's ledger in append order."""
        async with self._database.reading() as db:
            await self._fetch(db, account_id)
            query = (
                "SELECT id, amount, kind, description, rule_id, created_at "
                "FROM ledger_entries WHERE account_id = ? ORDER BY id ASC"
            )
            params: list = [account_id]
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [_row_to_transaction(row) for row in rows]

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    async def _fetch(self, db: aiosqlite.Connection, account_id: str) -> Account:
        cursor = await db.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = ?",
            (account_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"account {account_id} not found")
        return _row_to_account(row)

    async def _append(
        self, db: aiosqlite.Connection, account_id: str, entry: Transaction
    ) -> None:
        await db.execute(
            "INSERT INTO ledger_entries "
            "(account_id, amount, kind, description, rule_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                account_id,
                str(entry.amount),
                entry.kind.value,
                entry.description,
                entry.rule_id,
                entry.created_at.isoformat(),
            ),
        )

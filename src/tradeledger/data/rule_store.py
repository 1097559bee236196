"""Typed SQLite read/write abstraction for profit rules.

Range validation lives in RuleTable; this store only persists. Callers that
need check-then-write atomicity wrap both in LedgerDatabase.transaction().
"""

from datetime import datetime
from decimal import Decimal

import aiosqlite

from tradeledger.data.database import LedgerDatabase
from tradeledger.exceptions import NotFoundError
from tradeledger.logging import get_logger
from tradeledger.models import ProfitRule

logger = get_logger(__name__)

_RULE_COLUMNS = "id, min_balance, max_balance, profit, is_active, created_at, updated_at"


def _row_to_rule(row: aiosqlite.Row | tuple) -> ProfitRule:
    return ProfitRule(
        id=row[0],
        min_balance=Decimal(row[1]),
        max_balance=Decimal(row[2]),
        profit=Decimal(row[3]),
        is_active=bool(row[4]),
        created_at=datetime.fromisoformat(row[5]),
        updated_at=datetime.fromisoformat(row[6]),
    )


class RuleStore:
    """Async SQLite store for the profit rule table."""

    def __init__(self, database: LedgerDatabase) -> None:
        self._database = database

    @property
    def database(self) -> LedgerDatabase:
        return self._database

    async def insert_rule(
        self,
        min_balance: Decimal,
        max_balance: Decimal,
        profit: Decimal,
        is_active: bool,
        now: datetime,
    ) -> ProfitRule:
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "INSERT INTO profit_rules "
                "(min_balance, max_balance, profit, is_active, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(min_balance),
                    str(max_balance),
                    str(profit),
                    1 if is_active else 0,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            rule_id = cursor.lastrowid
        logger.info(
            "profit_rule_inserted",
            rule_id=rule_id,
            min_balance=str(min_balance),
            max_balance=str(max_balance),
            profit=str(profit),
        )
        return ProfitRule(
            id=rule_id,
            min_balance=min_balance,
            max_balance=max_balance,
            profit=profit,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )

    async def save_rule(self, rule: ProfitRule) -> ProfitRule:
        """Overwrite every mutable field of an existing rule."""
        async with self._database.transaction() as db:
            cursor = await db.execute(
                "UPDATE profit_rules SET min_balance = ?, max_balance = ?, profit = ?, "
                "is_active = ?, updated_at = ? WHERE id = ?",
                (
                    str(rule.min_balance),
                    str(rule.max_balance),
                    str(rule.profit),
                    1 if rule.is_active else 0,
                    rule.updated_at.isoformat(),
                    rule.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"profit rule {rule.id} not found")
        logger.info("profit_rule_saved", rule_id=rule.id, is_active=rule.is_active)
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        async with self._database.transaction() as db:
            cursor = await db.execute("DELETE FROM profit_rules WHERE id = ?", (rule_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"profit rule {rule_id} not found")
        logger.info("profit_rule_deleted", rule_id=rule_id)

    async def get_rule(self, rule_id: int) -> ProfitRule:
        async with self._database.reading() as db:
            cursor = await db.execute(
                f"SELECT {_RULE_COLUMNS} FROM profit_rules WHERE id = ?", (rule_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"profit rule {rule_id} not found")
        return _row_to_rule(row)

    async def list_rules(self, active_only: bool = False) -> list[ProfitRule]:
        """Return rules ordered by min_balance ascending, then id.

        Bounds are TEXT, so ordering is done on the Decimal values here rather
        than in SQL.
        """
        query = f"SELECT {_RULE_COLUMNS} FROM profit_rules"
        if active_only:
            query += " WHERE is_active = 1"
        async with self._database.reading() as db:
            cursor = await db.execute(query)
            rows = await cursor.fetchall()
        rules = [_row_to_rule(row) for row in rows]
        return sorted(rules, key=lambda r: (r.min_balance, r.id))

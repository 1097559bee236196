"""Persistence for the settlement schedule.

Every update appends a row; the most recently written row is the effective
schedule. Older rows are kept as an audit trail of schedule changes.
"""

import json
from datetime import datetime

from tradeledger.data.database import LedgerDatabase
from tradeledger.exceptions import StoreError
from tradeledger.logging import get_logger
from tradeledger.models import ScheduleConfig

logger = get_logger(__name__)


class ScheduleStore:
    """Async SQLite store for ScheduleConfig records."""

    def __init__(self, database: LedgerDatabase) -> None:
        self._database = database

    async def get_current(self) -> ScheduleConfig | None:
        """Return the latest persisted schedule, or None if none was ever saved."""
        async with self._database.reading() as db:
            cursor = await db.execute(
                "SELECT run_time, time_zone, market_off_days FROM schedule_settings "
                "ORDER BY id DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            market_off_days = frozenset(json.loads(row[2]))
        except (ValueError, TypeError) as e:
            raise StoreError(f"corrupt market_off_days in schedule row: {row[2]!r}") from e
        return ScheduleConfig(
            run_time=row[0],
            time_zone=row[1],
            market_off_days=market_off_days,
        )

    async def save(
        self,
        config: ScheduleConfig,
        now: datetime,
        updated_by: str | None = None,
    ) -> None:
        async with self._database.transaction() as db:
            await db.execute(
                "INSERT INTO schedule_settings "
                "(run_time, time_zone, market_off_days, updated_by, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    config.run_time,
                    config.time_zone,
                    json.dumps(sorted(config.market_off_days)),
                    updated_by,
                    now.isoformat(),
                ),
            )
        logger.info(
            "schedule_saved",
            run_time=config.run_time,
            time_zone=config.time_zone,
            market_off_days=sorted(config.market_off_days),
            updated_by=updated_by,
        )

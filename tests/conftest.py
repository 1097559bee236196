"""Shared test fixtures for the ledger settlement service."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tradeledger.config import AppSettings, ScheduleSettings, SettlementSettings
from tradeledger.data.account_store import AccountStore
from tradeledger.data.database import LedgerDatabase
from tradeledger.data.rule_store import RuleStore
from tradeledger.data.schedule_store import ScheduleStore
from tradeledger.models import Account
from tradeledger.rules.table import RuleTable

# Monday 2026-10-19 05:00 UTC
MONDAY_MORNING = datetime(2026, 10, 19, 5, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock returning a settable aware datetime."""

    def __init__(self, start: datetime = MONDAY_MORNING) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def set(self, moment: datetime) -> None:
        self.now = moment


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> AppSettings:
    """Return AppSettings with test defaults."""
    return AppSettings(
        log_level="DEBUG",
        schedule=ScheduleSettings(
            default_run_time="06:00",
            default_time_zone="UTC",
            default_market_off_days=[0, 6],
        ),
        settlement=SettlementSettings(max_conflict_retries=3),
    )


@pytest_asyncio.fixture
async def database(tmp_path):  # type: ignore[no-untyped-def]
    """Connected LedgerDatabase in a temporary directory."""
    db = LedgerDatabase(str(tmp_path / "ledger.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def account_store(database: LedgerDatabase) -> AccountStore:
    return AccountStore(database)


@pytest.fixture
def rule_store(database: LedgerDatabase) -> RuleStore:
    return RuleStore(database)


@pytest.fixture
def schedule_store(database: LedgerDatabase) -> ScheduleStore:
    return ScheduleStore(database)


@pytest.fixture
def rule_table(rule_store: RuleStore, clock: FakeClock) -> RuleTable:
    return RuleTable(rule_store, clock=clock)


async def make_account(
    store: AccountStore,
    clock: FakeClock,
    balance: str = "0",
    participating: bool = True,
) -> Account:
    """Create an account funded via a deposit-style adjustment."""
    account = await store.create_account(clock())
    if Decimal(balance) != 0:
        await store.apply_adjustment(account.id, Decimal(balance), "Deposit approved", clock())
    if participating:
        await store.set_participating(account.id, True)
    return await store.get_account(account.id)


@pytest_asyncio.fixture
async def timer():  # type: ignore[no-untyped-def]
    """APScheduler started paused: jobs are registered but never woken by real time."""
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.start(paused=True)
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)

"""Shared data models for the ledger backend.

CRITICAL: All monetary values use Decimal. Never use float for balances, profits or percentages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

# 0=Sunday ... 6=Saturday
WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class TransactionKind(str, Enum):
    """Direction of a ledger entry. The amount itself is always unsigned."""

    CREDIT = "credit"
    DEBIT = "debit"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transaction:
    """Immutable ledger entry."""

    amount: Decimal
    kind: TransactionKind
    description: str
    created_at: datetime
    rule_id: int | None = None
    id: int | None = None  # assigned by the store on append

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this entry on the balance."""
        if self.kind is TransactionKind.CREDIT:
            return self.amount
        if self.kind is TransactionKind.DEBIT:
            return -self.amount
        return Decimal("0")


@dataclass
class ProfitStats:
    """Rolling snapshot of the most recent settlement outcome for an account."""

    amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")
    last_computed_at: datetime | None = None


@dataclass
class Account:
    """A user's balance, AI-trading flag and settlement snapshot.

    `version` is bumped on every balance or flag mutation and is used for
    optimistic concurrency on read-modify-write cycles.
    """

    id: str
    balance: Decimal
    participating: bool
    version: int
    created_at: datetime
    profit_stats: ProfitStats = field(default_factory=ProfitStats)


@dataclass
class ProfitRule:
    """Balance range to daily profit mapping. Both bounds are inclusive."""

    id: int
    min_balance: Decimal
    max_balance: Decimal
    profit: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    def contains(self, balance: Decimal) -> bool:
        return self.min_balance <= balance <= self.max_balance

    def overlaps(self, min_balance: Decimal, max_balance: Decimal) -> bool:
        return self.min_balance <= max_balance and min_balance <= self.max_balance


@dataclass(frozen=True)
class RuleResolution:
    """Outcome of a rule lookup. rule_id is None when no active rule matched."""

    profit: Decimal
    rule_id: int | None = None

    @property
    def matched(self) -> bool:
        return self.rule_id is not None


@dataclass(frozen=True)
class ScheduleConfig:
    """Effective settlement schedule.

    run_time is zero-padded "HH:mm" in time_zone; market_off_days are weekday
    numbers with 0=Sunday.
    """

    run_time: str
    time_zone: str
    market_off_days: frozenset[int]

    @property
    def hour(self) -> int:
        return int(self.run_time.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.run_time.split(":")[1])

    @property
    def market_off_day_names(self) -> list[str]:
        return [WEEKDAY_NAMES[day] for day in sorted(self.market_off_days)]


@dataclass
class SettlementResult:
    """Aggregate counts for one settlement cycle."""

    cycle_id: str
    users_processed: int
    users_updated: int
    users_failed: int
    total_delta: Decimal
    started_at: datetime
    finished_at: datetime


@dataclass
class DeactivationResult:
    """Aggregate counts for one deactivation run."""

    cycle_id: str
    users_deactivated: int
    finished_at: datetime


@dataclass
class ScheduleUpdateResult:
    """Structured outcome handed back to administrative callers."""

    success: bool
    message: str
    market_off_days: list[int] | None = None

"""Ledger persistence layer.

Provides the SQLite database manager and typed stores for accounts with
their ledgers, profit rules, and the settlement schedule.
"""

from tradeledger.data.account_store import AccountStore
from tradeledger.data.database import LedgerDatabase
from tradeledger.data.rule_store import RuleStore
from tradeledger.data.schedule_store import ScheduleStore

__all__ = [
    "AccountStore",
    "LedgerDatabase",
    "RuleStore",
    "ScheduleStore",
]

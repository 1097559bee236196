"""Daily settlement engine -- applies rule-based profit/loss to participating accounts.

Each cycle walks every participating account independently:
  1. CAPTURE: read balance and version
  2. RESOLVE: look up the active rule for that balance
  3. ZERO: no rule (or a zero-profit rule) resets the profit snapshot only
  4. APPLY: balance += profit, one ledger entry, snapshot -- one transaction,
     conditional on the version read in step 1
  5. RETRY: a version conflict means another writer touched the account;
     re-read and go back to step 1 with the fresh balance

Rules are resolved per account, so a rule edited mid-cycle applies to the
accounts evaluated after the edit. A failing account is logged and counted;
the rest of the cycle continues.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

from tradeledger.config import SettlementSettings
from tradeledger.data.account_store import AccountStore
from tradeledger.exceptions import ConcurrencyConflictError, NotFoundError
from tradeledger.logging import cycle_context, get_logger
from tradeledger.models import (
    Account,
    SettlementResult,
    Transaction,
    TransactionKind,
)
from tradeledger.rules.table import RuleTable
from tradeledger.settlement.calculator import calculate_percentage

logger = get_logger(__name__)


class SettlementEngine:
    """Computes and applies one day's profit/loss for every participating account.

    Args:
        accounts: Account persistence.
        rule_table: Balance range to profit lookup.
        settings: Retry limit and ledger descriptions.
        clock: Returns the current aware datetime (injected for tests).
    """

    def __init__(
        self,
        accounts: AccountStore,
        rule_table: RuleTable,
        settings: SettlementSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._accounts = accounts
        self._rule_table = rule_table
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> SettlementResult:
        """Run one settlement cycle and return aggregate counts.

        Safe to call repeatedly: each call is an independent cycle with its own
        ledger entries. Once-per-day cadence is the scheduler's job.
        """
        with cycle_context("settlement") as cycle_id:
            started_at = self._clock()
            logger.info("settlement_cycle_started")

            accounts = await self._accounts.list_participating()
            if not accounts:
                logger.info("settlement_no_participating_accounts")

            updated = 0
            failed = 0
            total_delta = Decimal("0")

            for account in accounts:
                try:
                    delta = await self._settle_account(account)
                except Exception as e:
                    failed += 1
                    logger.error(
                        "settlement_account_failed",
                        account_id=account.id,
                        error=str(e),
                        exc_info=True,
                    )
                    continue
                if delta is not None:
                    updated += 1
                    total_delta += delta

            result = SettlementResult(
                cycle_id=cycle_id,
                users_processed=len(accounts),
                users_updated=updated,
                users_failed=failed,
                total_delta=total_delta,
                started_at=started_at,
                finished_at=self._clock(),
            )
            logger.info(
                "settlement_cycle_finished",
                users_processed=result.users_processed,
                users_updated=result.users_updated,
                users_failed=result.users_failed,
                total_delta=str(result.total_delta),
            )
            return result

    async def _settle_account(self, account: Account) -> Decimal | None:
        """Settle one account. Returns the applied delta, or None if nothing was applied."""
        max_attempts = self._settings.max_conflict_retries + 1

        for attempt in range(1, max_attempts + 1):
            previous_balance = account.balance
            resolution = await self._rule_table.resolve(previous_balance)
            now = self._clock()

            if resolution.profit == 0:
                await self._accounts.reset_profit_stats(account.id, now)
                logger.debug(
                    "settlement_no_profit",
                    account_id=account.id,
                    balance=str(previous_balance),
                    rule_id=resolution.rule_id,
                )
                return None

            profit = resolution.profit
            percentage = calculate_percentage(profit, previous_balance)
            entry = Transaction(
                amount=abs(profit),
                kind=TransactionKind.CREDIT if profit > 0 else TransactionKind.DEBIT,
                description=(
                    self._settings.profit_description
                    if profit > 0
                    else self._settings.loss_description
                ),
                rule_id=resolution.rule_id,
                created_at=now,
            )

            updated = await self._accounts.apply_settlement(
                account.id, account.version, profit, percentage, entry, now
            )
            if updated is not None:
                logger.info(
                    "settlement_account_applied",
                    account_id=account.id,
                    previous_balance=str(previous_balance),
                    profit=str(profit),
                    percentage=str(percentage),
                    new_balance=str(updated.balance),
                    rule_id=resolution.rule_id,
                )
                return profit

            logger.info(
                "settlement_version_conflict",
                account_id=account.id,
                attempt=attempt,
                expected_version=account.version,
            )
            try:
                account = await self._accounts.get_account(account.id)
            except NotFoundError:
                return None
            if not account.participating:
                # Opted out between listing and writing: nothing to settle
                logger.info("settlement_account_opted_out", account_id=account.id)
                return None

        raise ConcurrencyConflictError(
            f"account {account.id} changed concurrently {max_attempts} times"
        )

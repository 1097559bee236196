"""Post-settlement deactivation of AI trading participation."""

from collections.abc import Callable
from datetime import datetime, timezone

from tradeledger.config import SettlementSettings
from tradeledger.data.account_store import AccountStore
from tradeledger.logging import cycle_context, get_logger
from tradeledger.models import DeactivationResult

logger = get_logger(__name__)


class DeactivationEngine:
    """Clears the participation flag on every participating account in one bulk write.

    Not isolated per account: a store failure fails the whole run. Nothing
    monetary changes here, so a failed run can simply be retried.
    """

    def __init__(
        self,
        accounts: AccountStore,
        settings: SettlementSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._accounts = accounts
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> DeactivationResult:
        with cycle_context("deactivation") as cycle_id:
            now = self._clock()
            count = await self._accounts.deactivate_all(
                self._settings.deactivation_description, now
            )
            logger.info("deactivation_finished", users_deactivated=count)
            return DeactivationResult(
                cycle_id=cycle_id,
                users_deactivated=count,
                finished_at=now,
            )

"""Administrative access to the settlement schedule (GetSchedule / UpdateSchedule)."""

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from tradeledger.config import ScheduleSettings
from tradeledger.data.schedule_store import ScheduleStore
from tradeledger.exceptions import StoreError, ValidationError
from tradeledger.logging import get_logger
from tradeledger.models import ScheduleConfig, ScheduleUpdateResult
from tradeledger.scheduling.calendar import build_schedule, default_schedule, shift_run_time
from tradeledger.scheduling.scheduler import Scheduler

logger = get_logger(__name__)


class ScheduleService:
    """Reads and updates the persisted schedule and keeps the Scheduler in step.

    update() persists first and then re-arms the scheduler synchronously, so a
    successful update governs the very next firing. A rejected update changes
    neither the store nor the armed jobs.
    """

    def __init__(
        self,
        store: ScheduleStore,
        scheduler: Scheduler,
        settings: ScheduleSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def current(self) -> ScheduleConfig:
        """Latest persisted schedule, or the configured defaults if none exists."""
        config = await self._store.get_current()
        return config if config is not None else default_schedule(self._settings)

    async def get_schedule(self) -> dict:
        config = await self.current()
        settlement = self._scheduler.settlement_job
        deactivation = self._scheduler.deactivation_job
        return {
            "settlementTime": config.run_time,
            "deactivationTime": shift_run_time(
                config.run_time, self._settings.deactivation_offset_minutes
            ),
            "timeZone": config.time_zone,
            "marketOffDays": sorted(config.market_off_days),
            "marketOffDayNames": config.market_off_day_names,
            "nextSettlementAt": (
                settlement.next_fire_time.isoformat() if settlement.next_fire_time else None
            ),
            "nextDeactivationAt": (
                deactivation.next_fire_time.isoformat() if deactivation.next_fire_time else None
            ),
            "degraded": self._scheduler.degraded,
        }

    async def update(
        self,
        run_time: str,
        time_zone: str,
        market_off_days: Iterable[object] | None = None,
        updated_by: str | None = None,
    ) -> ScheduleUpdateResult:
        """Validate, persist and apply a new schedule."""
        try:
            current = await self.current()
            config = build_schedule(run_time, time_zone, market_off_days, current.market_off_days)
            await self._store.save(config, self._clock(), updated_by=updated_by)
        except ValidationError as e:
            logger.warning("schedule_update_rejected", error=str(e), run_time=run_time)
            return ScheduleUpdateResult(success=False, message=str(e))
        except StoreError as e:
            logger.error("schedule_update_store_failed", error=str(e))
            return ScheduleUpdateResult(success=False, message=f"Could not save schedule: {e}")

        if self._scheduler.is_running:
            self._scheduler.reconfigure(config)
            self._scheduler.clear_degraded()
        else:
            # Stopped schedulers stay stopped; the row is picked up on next start()
            logger.info("schedule_saved_scheduler_stopped", run_time=config.run_time)
        logger.info(
            "schedule_updated",
            run_time=config.run_time,
            time_zone=config.time_zone,
            market_off_days=sorted(config.market_off_days),
        )
        return ScheduleUpdateResult(
            success=True,
            message=f"Settlement schedule updated to {config.run_time} {config.time_zone}",
            market_off_days=sorted(config.market_off_days),
        )

"""Owns the settlement and deactivation jobs and keeps them on one schedule.

The deactivation job always fires deactivation_offset_minutes (default 1)
after the settlement job, with hour/day rollover, and waits for an
in-flight settlement cycle before switching accounts off.

If the persisted schedule cannot be read or is unusable at startup the
scheduler arms with the configured defaults and reports degraded=True
instead of staying unarmed: a settlement that runs on default parameters
beats one that silently never runs.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tradeledger.config import ScheduleSettings
from tradeledger.data.schedule_store import ScheduleStore
from tradeledger.exceptions import LedgerError
from tradeledger.logging import get_logger
from tradeledger.models import DeactivationResult, ScheduleConfig, SettlementResult
from tradeledger.scheduling.calendar import build_schedule, default_schedule
from tradeledger.scheduling.job import ScheduledJob
from tradeledger.settlement.deactivation import DeactivationEngine
from tradeledger.settlement.engine import SettlementEngine

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """Explicit owner of the two daily jobs.

    Args:
        settlement_engine: Body of the settlement job.
        deactivation_engine: Body of the deactivation job.
        schedule_store: Source of the persisted schedule at startup.
        settings: Defaults, deactivation offset and misfire grace.
        clock: Returns the current aware datetime.
        timer: APScheduler scheduler delivering wake-ups. Created (and started
            on start()) when not given; a timer that is already running is
            used as-is and left running on stop().
    """

    def __init__(
        self,
        settlement_engine: SettlementEngine,
        deactivation_engine: DeactivationEngine,
        schedule_store: ScheduleStore,
        settings: ScheduleSettings,
        clock: Callable[[], datetime] = _utc_now,
        timer: AsyncIOScheduler | None = None,
    ) -> None:
        self._schedule_store = schedule_store
        self._settings = settings
        self._config: ScheduleConfig | None = None
        self._degraded = False
        self._timer = timer or AsyncIOScheduler(timezone=timezone.utc)
        self._owns_timer = False

        self.settlement_job = ScheduledJob(
            "settlement",
            settlement_engine.run,
            self._timer,
            clock=clock,
            misfire_grace_seconds=settings.misfire_grace_seconds,
        )
        self.deactivation_job = ScheduledJob(
            "deactivation",
            deactivation_engine.run,
            self._timer,
            offset_minutes=settings.deactivation_offset_minutes,
            follows=self.settlement_job,
            clock=clock,
            misfire_grace_seconds=settings.misfire_grace_seconds,
        )

    @property
    def config(self) -> ScheduleConfig | None:
        """The schedule both jobs are currently armed with."""
        return self._config

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def is_running(self) -> bool:
        return self._config is not None

    async def start(self) -> None:
        """Load the persisted schedule and arm both jobs."""
        try:
            config = await self._load_schedule()
        except LedgerError as e:
            config = default_schedule(self._settings)
            self._degraded = True
            logger.error(
                "scheduler_degraded_mode",
                error=str(e),
                fallback_run_time=config.run_time,
                fallback_time_zone=config.time_zone,
                fallback_market_off_days=sorted(config.market_off_days),
            )
        else:
            self._degraded = False

        if not self._timer.running:
            self._timer.start()
            self._owns_timer = True
        self.reconfigure(config)
        logger.info(
            "scheduler_started",
            settlement_time=self.settlement_job.run_time,
            deactivation_time=self.deactivation_job.run_time,
            time_zone=config.time_zone,
            degraded=self._degraded,
        )

    def reconfigure(self, config: ScheduleConfig) -> None:
        """Re-arm both jobs for config. Takes effect from the next firing."""
        self.settlement_job.arm(config)
        self.deactivation_job.arm(config)
        self._config = config

    def clear_degraded(self) -> None:
        """Called once a schedule has been successfully persisted and applied."""
        if self._degraded:
            logger.info("scheduler_degraded_mode_cleared")
        self._degraded = False

    async def stop(self) -> None:
        """Stop both jobs. In-flight cycles are allowed to finish."""
        await self.settlement_job.stop()
        await self.deactivation_job.stop()
        self._config = None
        if self._owns_timer and self._timer.running:
            self._timer.shutdown(wait=False)
            self._owns_timer = False
        logger.info("scheduler_stopped")

    async def trigger_settlement_manually(self) -> SettlementResult:
        logger.info("settlement_manual_trigger")
        return await self.settlement_job.run_now()

    async def trigger_deactivation_manually(self) -> DeactivationResult:
        logger.info("deactivation_manual_trigger")
        return await self.deactivation_job.run_now()

    def get_status(self) -> dict:
        """Return scheduler status for the operations endpoint."""
        return {
            "running": self.is_running,
            "degraded": self._degraded,
            "jobs": [self._job_status(job) for job in (self.settlement_job, self.deactivation_job)],
        }

    async def _load_schedule(self) -> ScheduleConfig:
        """Persisted schedule, re-validated, or the defaults when none was saved."""
        stored = await self._schedule_store.get_current()
        if stored is None:
            config = default_schedule(self._settings)
            logger.info("scheduler_using_default_schedule", run_time=config.run_time)
            return config
        # Rows may predate validation or name a zone this host cannot load
        return build_schedule(
            stored.run_time, stored.time_zone, stored.market_off_days, frozenset()
        )

    @staticmethod
    def _job_status(job: ScheduledJob) -> dict:
        return {
            "name": job.name,
            "state": job.state.value,
            "run_time": job.run_time,
            "next_fire_time": job.next_fire_time.isoformat() if job.next_fire_time else None,
            "executing": job.is_executing,
            "last_outcome": job.last_outcome.value if job.last_outcome else None,
            "last_fired_at": job.last_fired_at.isoformat() if job.last_fired_at else None,
        }

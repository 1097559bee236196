"""A single timezone-aware daily job: Stopped <-> Armed(next_fire_time).

Wake-ups come from an APScheduler AsyncIOScheduler running a daily
CronTrigger in the schedule's zone, with coalescing (missed days collapse
into one run) and at most one running instance. Each wake-up calls
run_pending(), which checks the armed instant, the market calendar and the
cycle lock before running the body.

The body is shielded from cancellation of the APScheduler task: stop() and
arm() never interrupt a cycle that has already started.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tradeledger.logging import get_logger
from tradeledger.models import ScheduleConfig
from tradeledger.scheduling.calendar import (
    daily_trigger,
    is_market_off_day,
    next_fire_time,
    shift_run_time,
)

logger = get_logger(__name__)


class JobState(str, Enum):
    STOPPED = "stopped"
    ARMED = "armed"


class FireOutcome(str, Enum):
    """What run_pending() did with a firing."""

    NOT_DUE = "not_due"
    STOPPED = "stopped"
    FIRED = "fired"
    FAILED = "failed"
    SKIPPED_OFF_DAY = "skipped_off_day"
    DROPPED = "dropped"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledJob:
    """Daily job that fires its body at the configured wall-clock time.

    Args:
        name: Job name used in logs and as the APScheduler job id.
        body: Async callable executed on each firing.
        timer: APScheduler scheduler that delivers the wake-ups.
        offset_minutes: Minutes after the schedule's run_time this job fires.
            Market off days are judged on the un-shifted slot, so a job at
            run_time + 1 min belongs to the same market day as the settlement
            even when the shift crosses midnight.
        follows: Job whose in-flight cycle this job waits for before running
            its own body (deactivation follows settlement).
        clock: Returns the current aware datetime.
        misfire_grace_seconds: How late a wake-up may still run; None for no limit.
    """

    def __init__(
        self,
        name: str,
        body: Callable[[], Awaitable[Any]],
        timer: AsyncIOScheduler,
        offset_minutes: int = 0,
        follows: ScheduledJob | None = None,
        clock: Callable[[], datetime] = _utc_now,
        misfire_grace_seconds: int | None = None,
    ) -> None:
        self._name = name
        self._body = body
        self._timer = timer
        self._offset = timedelta(minutes=offset_minutes)
        self._offset_minutes = offset_minutes
        self._follows = follows
        self._clock = clock
        self._misfire_grace = misfire_grace_seconds

        self._state = JobState.STOPPED
        self._config: ScheduleConfig | None = None
        self._next_fire_time: datetime | None = None
        self._cycle_lock = asyncio.Lock()

        self.last_outcome: FireOutcome | None = None
        self.last_fired_at: datetime | None = None
        self.last_result: Any = None

    # ──────────────────────────────────────────────
    # State
    # ──────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def next_fire_time(self) -> datetime | None:
        return self._next_fire_time

    @property
    def run_time(self) -> str | None:
        """This job's own wall-clock time (schedule run_time plus offset)."""
        if self._config is None:
            return None
        return shift_run_time(self._config.run_time, self._offset_minutes)

    @property
    def is_executing(self) -> bool:
        return self._cycle_lock.locked()

    # ──────────────────────────────────────────────
    # Transitions
    # ──────────────────────────────────────────────

    def arm(self, config: ScheduleConfig) -> None:
        """Arm (or re-arm) the job for config. Replaces any previous arm.

        Raises ValidationError for an unusable config, leaving the job as it was.
        """
        run_time = shift_run_time(config.run_time, self._offset_minutes)
        fire_at = next_fire_time(run_time, config.time_zone, self._clock())
        trigger = daily_trigger(run_time, config.time_zone)

        self._timer.add_job(
            self._fire,
            trigger,
            id=self._name,
            name=self._name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=self._misfire_grace,
        )
        self._config = config
        self._next_fire_time = fire_at
        self._state = JobState.ARMED
        logger.info(
            "job_armed",
            job=self._name,
            run_time=run_time,
            time_zone=config.time_zone,
            next_fire_time=fire_at.isoformat(),
        )

    async def stop(self) -> None:
        """Move to Stopped. An in-flight cycle finishes; no further firings."""
        self._state = JobState.STOPPED
        self._next_fire_time = None
        if self._timer.get_job(self._name) is not None:
            self._timer.remove_job(self._name)
        # The body is shielded from the timer task; wait for it here instead
        async with self._cycle_lock:
            pass
        logger.info("job_stopped", job=self._name)

    async def run_pending(self, now: datetime) -> FireOutcome:
        """Fire the job if its armed instant has been reached.

        Late firings that arrive while a cycle is still executing are dropped,
        not queued. After firing (or skipping) the job re-arms for the next
        slot strictly after now, so missed days coalesce into one firing.
        """
        if self._state is JobState.STOPPED or self._config is None:
            return FireOutcome.STOPPED
        assert self._next_fire_time is not None
        if now < self._next_fire_time:
            return FireOutcome.NOT_DUE

        slot = self._next_fire_time
        config = self._config

        if self._cycle_lock.locked():
            logger.warning("scheduled_firing_dropped", job=self._name, slot=slot.isoformat())
            self._rearm(now)
            return self._record(FireOutcome.DROPPED, None)

        async with self._exclusive():
            try:
                if is_market_off_day(slot - self._offset, config):
                    logger.info(
                        "scheduled_firing_skipped_off_day",
                        job=self._name,
                        slot=slot.isoformat(),
                        market_off_days=sorted(config.market_off_days),
                    )
                    return self._record(FireOutcome.SKIPPED_OFF_DAY, None)

                logger.info("scheduled_firing", job=self._name, slot=slot.isoformat())
                try:
                    result = await self._body()
                except Exception as e:
                    logger.error(
                        "scheduled_job_failed",
                        job=self._name,
                        error=str(e),
                        exc_info=True,
                    )
                    return self._record(FireOutcome.FAILED, None)
                return self._record(FireOutcome.FIRED, result)
            finally:
                self._rearm(max(now, self._clock()))

    async def run_now(self) -> Any:
        """Run the body immediately, outside the schedule.

        Waits for an in-flight cycle of the same job (and of the job it
        follows) rather than overlapping it. Ignores market off days and does
        not change the armed instant. Exceptions from the body propagate.
        """
        async with self._exclusive():
            logger.info("manual_firing", job=self._name)
            result = await self._body()
            self.last_result = result
            return result

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold this job's cycle lock, then the followed job's."""
        async with self._cycle_lock:
            if self._follows is None:
                yield
                return
            if self._follows.is_executing:
                logger.info(
                    "job_waiting_for_predecessor",
                    job=self._name,
                    predecessor=self._follows.name,
                )
            async with self._follows._cycle_lock:
                yield

    async def _fire(self) -> None:
        """APScheduler entry point."""
        await asyncio.shield(self.run_pending(self._clock()))

    def _record(self, outcome: FireOutcome, result: Any) -> FireOutcome:
        self.last_outcome = outcome
        self.last_fired_at = self._clock()
        if outcome is FireOutcome.FIRED:
            self.last_result = result
        return outcome

    def _rearm(self, after: datetime) -> None:
        if self._state is not JobState.ARMED or self._config is None:
            return
        self._next_fire_time = next_fire_time(self.run_time, self._config.time_zone, after)
        logger.debug(
            "job_rearmed",
            job=self._name,
            next_fire_time=self._next_fire_time.isoformat(),
        )

"""Wall-clock arithmetic for the daily schedule: run-time parsing, zone lookup,
daily cron triggers, next-fire computation and market-off-day checks.

Weekdays use 0=Sunday ... 6=Saturday throughout.
"""

import re
from collections.abc import Iterable
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from tradeledger.config import ScheduleSettings
from tradeledger.exceptions import ValidationError
from tradeledger.models import ScheduleConfig

_RUN_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
_MINUTES_PER_DAY = 24 * 60


def parse_run_time(value: str) -> tuple[int, int]:
    """Parse "H:mm" / "HH:mm" into (hour, minute)."""
    match = _RUN_TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValidationError("Invalid time format. Use HH:mm (e.g., 06:00)")
    return int(match.group(1)), int(match.group(2))


def format_run_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def normalize_run_time(value: str) -> str:
    return format_run_time(*parse_run_time(value))


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ValidationError(f"Unknown time zone: {name!r}") from None


def validate_market_off_days(days: Iterable[object]) -> frozenset[int]:
    """Return the days as a frozenset, rejecting anything that is not an int 0-6."""
    result: set[int] = set()
    for day in days:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            raise ValidationError(
                "Market off days must be numbers between 0 (Sunday) and 6 (Saturday)"
            )
        result.add(day)
    return frozenset(result)


def shift_run_time(run_time: str, minutes: int) -> str:
    """Shift an "HH:mm" time by minutes, wrapping past midnight (23:59 + 1 -> 00:00)."""
    hour, minute = parse_run_time(run_time)
    total = (hour * 60 + minute + minutes) % _MINUTES_PER_DAY
    return format_run_time(total // 60, total % 60)


def market_weekday(moment: datetime) -> int:
    """Weekday of moment with 0=Sunday."""
    return moment.isoweekday() % 7


def is_market_off_day(moment: datetime, config: ScheduleConfig) -> bool:
    """Whether moment falls on a market off day in the schedule's own time zone."""
    local = moment.astimezone(load_zone(config.time_zone))
    return market_weekday(local) in config.market_off_days


def daily_trigger(run_time: str, time_zone: str) -> CronTrigger:
    """Cron trigger firing every day at run_time, wall-clock, in time_zone."""
    hour, minute = parse_run_time(run_time)
    return CronTrigger(hour=hour, minute=minute, second=0, timezone=load_zone(time_zone))


def next_fire_time(run_time: str, time_zone: str, after: datetime) -> datetime:
    """Next instant strictly after `after` at which local wall-clock time equals run_time.

    `after` must be timezone-aware. The result is aware, in the schedule's zone.
    Candidates are compared in UTC: during a repeated (fall-back) hour the
    trigger can hand back the earlier occurrence of a wall-clock time that
    has already passed. A wall-clock time that occurs twice fires only at
    its first occurrence.
    """
    trigger = daily_trigger(run_time, time_zone)
    after_utc = after.astimezone(timezone.utc)
    candidate = trigger.get_next_fire_time(None, after)
    while candidate.astimezone(timezone.utc) <= after_utc or _is_repeated_wall_time(candidate):
        candidate = trigger.get_next_fire_time(candidate, candidate)
    return candidate


def _is_repeated_wall_time(moment: datetime) -> bool:
    """Whether moment is the second pass through an ambiguous local time."""
    return moment.fold == 1 and moment.replace(fold=0).utcoffset() != moment.utcoffset()


def default_schedule(settings: ScheduleSettings) -> ScheduleConfig:
    return ScheduleConfig(
        run_time=normalize_run_time(settings.default_run_time),
        time_zone=settings.default_time_zone,
        market_off_days=validate_market_off_days(settings.default_market_off_days),
    )


def build_schedule(
    run_time: str,
    time_zone: str,
    market_off_days: Iterable[object] | None,
    fallback_off_days: frozenset[int],
) -> ScheduleConfig:
    """Validate raw administrative input into a ScheduleConfig.

    Omitted market_off_days keep fallback_off_days (the currently effective set).
    """
    normalized = normalize_run_time(run_time)
    if not isinstance(time_zone, str) or not time_zone.strip():
        raise ValidationError("timeZone is required")
    load_zone(time_zone.strip())
    off_days = (
        fallback_off_days
        if market_off_days is None
        else validate_market_off_days(market_off_days)
    )
    return ScheduleConfig(
        run_time=normalized,
        time_zone=time_zone.strip(),
        market_off_days=off_days,
    )

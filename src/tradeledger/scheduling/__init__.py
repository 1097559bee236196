"""Daily scheduling of the settlement and deactivation jobs."""

from tradeledger.scheduling.job import FireOutcome, JobState, ScheduledJob
from tradeledger.scheduling.scheduler import Scheduler
from tradeledger.scheduling.service import ScheduleService

__all__ = [
    "FireOutcome",
    "JobState",
    "ScheduleService",
    "ScheduledJob",
    "Scheduler",
]

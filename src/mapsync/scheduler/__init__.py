"""
Cron-driven scheduling of sync runs.
"""

from mapsync.scheduler.cron import CronExpression, next_run_time, parse_cron
from mapsync.scheduler.scheduler import RunLocks, Scheduler
from mapsync.scheduler.state import ScheduleConfig, ScheduleStateStore, schedules_from_config

__all__ = [
    "CronExpression",
    "RunLocks",
    "ScheduleConfig",
    "ScheduleStateStore",
    "Scheduler",
    "next_run_time",
    "parse_cron",
    "schedules_from_config",
]

"""Recurring schedules: trigger resolution and the timer thread."""

from jobspine.scheduling.scheduler import JobScheduler, ScheduledJob
from jobspine.scheduling.triggers import CronExpression, NamedAlias, Trigger, resolve_schedule

__all__ = [
    "CronExpression",
    "JobScheduler",
    "NamedAlias",
    "ScheduledJob",
    "Trigger",
    "resolve_schedule",
]

"""Schedule triggers.

A definition's ``schedule`` string is resolved once, when schedules are
started, into one of two trigger kinds:

- :class:`CronExpression`: a 5-field cron expression, or 6 fields with
  seconds first (``"*/10 * * * * *"`` = every ten seconds)
- :class:`NamedAlias`: one of a closed set of phrases (``"every day"``,
  ``"every minute"``...)

Both produce the next fire time through croniter. Times are evaluated in the
local timezone of the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from croniter import croniter

from jobspine.errors import ConfigurationError


class NamedAlias(str, Enum):
    """Named schedules and the cron expression each stands for."""

    EVERY_SECOND = "every second"
    EVERY_MINUTE = "every minute"
    EVERY_HOUR = "every hour"
    EVERY_DAY = "every day"
    EVERY_WEEK = "every week"
    EVERY_MONTH = "every month"
    EVERY_YEAR = "every year"

    @property
    def expression(self) -> str:
        return _ALIAS_EXPRESSIONS[self]

    def next_fire(self, after: datetime) -> datetime:
        return CronExpression(self.expression).next_fire(after)


_ALIAS_EXPRESSIONS = {
    NamedAlias.EVERY_SECOND: "* * * * * *",
    NamedAlias.EVERY_MINUTE: "* * * * *",
    NamedAlias.EVERY_HOUR: "0 * * * *",
    NamedAlias.EVERY_DAY: "0 0 * * *",
    NamedAlias.EVERY_WEEK: "0 0 * * 0",
    NamedAlias.EVERY_MONTH: "0 0 1 * *",
    NamedAlias.EVERY_YEAR: "0 0 1 1 *",
}


@dataclass(frozen=True)
class CronExpression:
    """A cron expression, 5 fields or 6 with seconds first."""

    expression: str

    @property
    def has_seconds(self) -> bool:
        return len(self.expression.split()) == 6

    def next_fire(self, after: datetime) -> datetime:
        cron = croniter(self.expression, after, second_at_beginning=self.has_seconds)
        return cron.get_next(datetime)


Trigger = CronExpression | NamedAlias


def resolve_schedule(schedule: str) -> Trigger:
    """Resolve a schedule string into a trigger.

    Raises:
        ConfigurationError: If the string is neither a known alias nor a
            valid cron expression.
    """
    normalized = " ".join(schedule.lower().split())
    try:
        return NamedAlias(normalized)
    except ValueError:
        pass

    trigger = CronExpression(schedule.strip())
    if len(trigger.expression.split()) not in (5, 6):
        raise ConfigurationError(f"Invalid schedule {schedule!r}")
    try:
        trigger.next_fire(datetime.now().astimezone())
    except (ValueError, KeyError) as e:
        raise ConfigurationError(f"Invalid schedule {schedule!r}", cause=e) from e
    return trigger

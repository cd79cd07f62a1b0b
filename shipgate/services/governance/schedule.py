"""Release calendar: business hours, weekends and freeze periods.

The calendar only describes time; policies decide what to do with it::

    [[governance.rules]]
    name = "no-releases-during-freeze"
    when = [{ field = "in_freeze_period", op = "eq", value = true }]
    then = [{ action = "block", reason = "release freeze" }]
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from typing import Literal

FreezeSeverity = Literal["soft", "hard"]

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True, slots=True)
class FreezePeriod:
    """A blackout window; ``start`` inclusive, ``end`` exclusive."""

    name: str
    start: datetime
    end: datetime
    reason: str = ""
    severity: FreezeSeverity = "hard"

    def covers(self, at: datetime) -> bool:
        return self.start <= at < self.end


@dataclass(frozen=True, slots=True)
class ReleaseCalendar:
    start_hour: int = 9
    end_hour: int = 17
    timezone: tzinfo | None = None
    allow_weekends: bool = False
    freezes: tuple[FreezePeriod, ...] = ()

    def local(self, now: datetime) -> datetime:
        """``now`` in the calendar's timezone (system local time when unset)."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.astimezone(self.timezone)

    def is_weekend(self, now: datetime) -> bool:
        return self.local(now).weekday() >= 5

    def is_business_hours(self, now: datetime) -> bool:
        if not self.allow_weekends and self.is_weekend(now):
            return False
        return self.start_hour <= self.local(now).hour < self.end_hour

    def active_freeze(self, now: datetime) -> FreezePeriod | None:
        at = self.local(now)
        for freeze in self.freezes:
            if freeze.covers(at):
                return freeze
        return None

    def context(self, now: datetime) -> dict[str, object]:
        local = self.local(now)
        freeze = self.active_freeze(now)
        return {
            "is_business_hours": self.is_business_hours(now),
            "is_weekend": self.is_weekend(now),
            "in_freeze_period": freeze is not None,
            "freeze_severity": freeze.severity if freeze is not None else "",
            "hour": local.hour,
            "weekday": _WEEKDAYS[local.weekday()],
        }

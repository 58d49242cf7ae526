"""
Availability Model

Resolves a provider's open hours for a single date from three sources:
- TimeOff ranges (multi-day closures)
- DateOverride rows (special hours or a closure for one date)
- WeeklyAvailability rows (recurring hours per weekday)

An override replaces the weekly row for its date, it is never merged with it.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

from ...shared.clock import get_zone
from ...shared.errors import InvariantViolation


@dataclass(frozen=True)
class WeeklyHours:
    day_of_week: int  # date.weekday(): 0 = Monday
    start: time
    end: time

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise InvariantViolation(f"day_of_week must be within 0..6, got {self.day_of_week}")
        if self.end <= self.start:
            raise InvariantViolation("Weekly hours must end after they start")


@dataclass(frozen=True)
class DateOverrideRule:
    date: date
    is_closed: bool
    start: Optional[time] = None
    end: Optional[time] = None

    def __post_init__(self):
        if self.is_closed:
            return
        if self.start is None or self.end is None:
            raise InvariantViolation("Special hours need both a start and an end time")
        if self.end <= self.start:
            raise InvariantViolation("Special hours must end after they start")


@dataclass(frozen=True)
class TimeOffRange:
    start_date: date
    end_date: date  # inclusive

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise InvariantViolation("Time off must end on or after its start date")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class OpenInterval:
    date: date
    start: time
    end: time

    def __post_init__(self):
        if self.end <= self.start:
            raise InvariantViolation("An open interval must end after it starts")

    def start_at(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.date, self.start, tzinfo=tz)

    def end_at(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.date, self.end, tzinfo=tz)


@dataclass(frozen=True)
class Closed:
    date: date
    reason: str  # time_off | override_closed | no_weekly_hours


Resolution = Union[OpenInterval, Closed]


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Immutable copy of everything needed to resolve a provider's hours"""

    timezone: str = "UTC"
    weekly: tuple = field(default_factory=tuple)
    overrides: tuple = field(default_factory=tuple)
    time_off: tuple = field(default_factory=tuple)

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)

    @classmethod
    def build(
        cls,
        timezone: str,
        weekly: Iterable[WeeklyHours] = (),
        overrides: Iterable[DateOverrideRule] = (),
        time_off: Iterable[TimeOffRange] = (),
    ) -> "AvailabilitySnapshot":
        weekly = tuple(weekly)
        days = [w.day_of_week for w in weekly]
        if len(days) != len(set(days)):
            raise InvariantViolation("At most one weekly entry per day of week")
        overrides = tuple(overrides)
        dates = [o.date for o in overrides]
        if len(dates) != len(set(dates)):
            raise InvariantViolation("At most one override per date")
        get_zone(timezone)
        return cls(timezone=timezone, weekly=weekly, overrides=overrides, time_off=tuple(time_off))

    @classmethod
    def from_provider(cls, provider) -> "AvailabilitySnapshot":
        """Snapshot a Provider ORM row and its loaded availability relationships"""
        return cls.build(
            provider.timezone,
            weekly=[
                WeeklyHours(row.day_of_week, row.start_time, row.end_time)
                for row in provider.weekly_availability
            ],
            overrides=[
                DateOverrideRule(row.date, row.is_closed, row.start_time, row.end_time)
                for row in provider.date_overrides
            ],
            time_off=[TimeOffRange(row.start_date, row.end_date) for row in provider.time_off],
        )


def resolve_open_interval(availability: AvailabilitySnapshot, on_date: date) -> Resolution:
    """
    Resolve the open hours for ``on_date``.

    Args:
        availability: provider availability snapshot
        on_date: date in the provider's local calendar

    Returns:
        OpenInterval, or Closed with the reason the day is unavailable
    """
    # 1. Time off wins over everything
    if any(off.covers(on_date) for off in availability.time_off):
        return Closed(on_date, "time_off")

    # 2. A date override fully replaces weekly hours
    for override in availability.overrides:
        if override.date == on_date:
            if override.is_closed:
                return Closed(on_date, "override_closed")
            return OpenInterval(on_date, override.start, override.end)

    # 3. Weekly hours for this weekday
    weekday = on_date.weekday()
    for hours in availability.weekly:
        if hours.day_of_week == weekday:
            return OpenInterval(on_date, hours.start, hours.end)

    return Closed(on_date, "no_weekly_hours")

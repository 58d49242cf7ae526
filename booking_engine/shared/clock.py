"""Injected time source so slot generation and status classification stay deterministic"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvariantViolation


class Clock:
    """Returns the current instant as a timezone-aware UTC datetime"""

    def now(self) -> datetime:
        raise NotImplementedError

    def today_in(self, tz: ZoneInfo) -> date:
        return self.now().astimezone(tz).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to an instant; ``advance`` moves it forward"""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise InvariantViolation("FixedClock needs a timezone-aware instant")
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def advance(self, **kwargs) -> None:
        self._instant = self._instant + timedelta(**kwargs)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvariantViolation(f"Unknown time zone: {name}") from e


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a FixedClock"""
    return system_clock

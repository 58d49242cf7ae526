"""
Slot Generation

Generates candidate start times for a provider, date and service duration.

The output is advisory: it only reflects open hours and the clock. Whether a
slot is still free is decided at reserve time by the conflict detector.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from ...shared.errors import InvariantViolation
from .availability import AvailabilitySnapshot, Closed, resolve_open_interval

DEFAULT_GRANULARITY_MINUTES = 30


@dataclass(frozen=True)
class BookingWindow:
    """How far ahead, and whether same day, a provider accepts bookings"""

    advance_booking_days: Optional[int] = None
    same_day_booking_enabled: bool = True

    @classmethod
    def from_provider(cls, provider) -> "BookingWindow":
        return cls(
            advance_booking_days=provider.advance_booking_days,
            same_day_booking_enabled=provider.same_day_booking_enabled,
        )

    def allows(self, on_date: date, today: date) -> bool:
        if on_date < today:
            return False
        if on_date == today and not self.same_day_booking_enabled:
            return False
        if self.advance_booking_days is not None and on_date > today + timedelta(
            days=self.advance_booking_days
        ):
            return False
        return True


def generate_slots(
    availability: AvailabilitySnapshot,
    on_date: date,
    service_duration_minutes: int,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    *,
    now: datetime,
    window: Optional[BookingWindow] = None,
) -> List[datetime]:
    """
    Generate ordered candidate start times for ``on_date``.

    Args:
        availability: provider availability snapshot
        on_date: date in the provider's local calendar
        service_duration_minutes: length of the service being booked
        granularity_minutes: spacing between candidate starts
        now: current instant (timezone-aware)
        window: optional booking window restrictions

    Returns:
        list[datetime]: starts in the provider's zone, from the open start up to
        and including open end minus the service duration. Empty when the day
        is closed, outside the booking window, or already over.
    """
    if service_duration_minutes <= 0:
        raise InvariantViolation("Service duration must be positive")
    if granularity_minutes <= 0:
        raise InvariantViolation("Slot granularity must be positive")

    tz = availability.zone
    today = now.astimezone(tz).date()

    window = window or BookingWindow()
    if not window.allows(on_date, today):
        return []

    interval = resolve_open_interval(availability, on_date)
    if isinstance(interval, Closed):
        return []

    duration = timedelta(minutes=service_duration_minutes)
    step = timedelta(minutes=granularity_minutes)

    # Step in UTC so every slot spans real elapsed time across DST changes
    last_start = interval.end_at(tz).astimezone(timezone.utc) - duration
    now_utc = now.astimezone(timezone.utc)

    slots = []
    cursor = interval.start_at(tz).astimezone(timezone.utc)
    while cursor <= last_start:
        # Only today can have starts already behind the clock
        if on_date != today or cursor >= now_utc:
            slots.append(cursor.astimezone(tz))
        cursor = cursor + step

    return slots


def slot_end(start: datetime, service_duration_minutes: int) -> datetime:
    """End of a slot after the given elapsed minutes, in the start's zone"""
    if service_duration_minutes <= 0:
        raise InvariantViolation("Service duration must be positive")
    end = start.astimezone(timezone.utc) + timedelta(minutes=service_duration_minutes)
    return end.astimezone(start.tzinfo)

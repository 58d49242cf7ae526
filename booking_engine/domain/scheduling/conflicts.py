"""
Conflict Detector

Decides whether a candidate interval can be booked and, if so, inserts the
appointment in the same transaction that checked it.

Intervals are half-open: [start, end). Two intervals overlap when
``existing.start < candidate_end and candidate_start < existing.end``, so
back-to-back appointments never conflict. Only appointments whose status still
blocks time (everything except cancelled, failed, expired) are considered.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import STORE_TIMEOUT_SECONDS
from ...database import bounded_transaction
from ...models import Appointment, Provider
from ...security_utils import RESERVATION_SALT, generate_timed_token
from ...shared.clock import get_zone
from ...shared.errors import ConflictError, InvariantViolation, NotFoundError
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """A committed hold on [start, end) for a provider"""

    token: str
    appointment: Appointment


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def _require_interval(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise InvariantViolation("Appointment times must be timezone-aware")
    if end <= start:
        raise InvariantViolation("Appointment end must be after its start")


def local_day_bounds(provider: Provider, instant: datetime) -> tuple[datetime, datetime]:
    """UTC bounds of the provider-local calendar day containing ``instant``"""
    tz = get_zone(provider.timezone)
    local_date = instant.astimezone(tz).date()
    day_start = datetime.combine(local_date, time.min, tzinfo=tz)
    day_end = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return day_start, day_end


class ConflictDetector:
    """Overlap checks and the atomic reserve-and-insert for one session"""

    def __init__(self, db: Session, timeout_seconds: Optional[float] = STORE_TIMEOUT_SECONDS):
        self.db = db
        self.timeout_seconds = timeout_seconds
        self.repo = AppointmentRepository()

    def find_conflicts(self, provider: Provider, start: datetime, end: datetime) -> list[Appointment]:
        """Non-locking overlap check, for advisory listings only"""
        _require_interval(start, end)
        buffer = timedelta(minutes=provider.buffer_minutes or 0)
        return self.repo.find_overlapping(self.db, provider.id, start - buffer, end + buffer)

    def reserve(
        self,
        provider: Provider,
        start: datetime,
        end: datetime,
        appointment: Appointment,
    ) -> Reservation:
        """
        Check the interval and insert ``appointment`` under the provider lock.

        Exactly one of several concurrent overlapping reservations succeeds; the
        others get ConflictError. Nothing is written unless the insert commits.

        Raises:
            ConflictError: the interval overlaps a blocking appointment, or the
                provider's daily booking limit is reached
            RepositoryError: the store timed out or was unavailable
        """
        _require_interval(start, end)

        with bounded_transaction(self.db, self.timeout_seconds):
            locked = self.repo.lock_provider(self.db, provider.id)
            if locked is None:
                raise NotFoundError("Provider not found", reason="provider_not_found")

            if locked.max_bookings_per_day:
                day_start, day_end = local_day_bounds(locked, start)
                booked = self.repo.count_blocking_starting_between(
                    self.db, locked.id, day_start, day_end
                )
                if booked >= locked.max_bookings_per_day:
                    logger.info(f"Provider {locked.id} reached its daily limit for {day_start.date()}")
                    raise ConflictError(
                        "No more bookings are available on this day", reason="daily_limit"
                    )

            appointment.provider_id = locked.id
            appointment.start_time = start
            appointment.end_time = end
            self.repo.insert(self.db, appointment, buffer_minutes=locked.buffer_minutes or 0)

            token = generate_timed_token(
                {
                    "appointment_id": appointment.id,
                    "provider_id": locked.id,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                },
                salt=RESERVATION_SALT,
            )

        logger.info(f"Reserved {start.isoformat()} - {end.isoformat()} for provider {provider.id}")
        return Reservation(token=token, appointment=appointment)

"""Scheduling service - Availability management, advisory slot listing and appointment lifecycle"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_SLOT_GRANULARITY_MINUTES, STORE_TIMEOUT_SECONDS
from ...database import bounded_transaction
from ...models import (
    Appointment,
    AppointmentStatus,
    DateOverride,
    Provider,
    TimeOff,
    WeeklyAvailability,
)
from ...shared.clock import Clock, system_clock
from ...shared.errors import ClosedPeriodError, NotFoundError, ValidationError
from ..catalog.repository import ServiceCatalog
from .availability import AvailabilitySnapshot, Closed, WeeklyHours, resolve_open_interval
from .conflicts import ConflictDetector, overlaps
from .repository import AppointmentRepository, AvailabilityRepository
from .schemas import DateOverrideIn, TimeOffIn, WeeklyScheduleUpdate
from .slots import BookingWindow, generate_slots, slot_end

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = {
    AppointmentStatus.PENDING.value,
    AppointmentStatus.PAYMENT_PENDING.value,
    AppointmentStatus.CONFIRMED.value,
}


class SchedulingService:
    """Service layer for provider availability and appointment transitions"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = AvailabilityRepository()
        self.appointments = AppointmentRepository()
        self.catalog = ServiceCatalog()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def get_provider(self, provider_id: int) -> Provider:
        provider = self.repo.get_provider_with_availability(self.db, provider_id)
        if not provider:
            raise NotFoundError("Provider not found", reason="provider_not_found")
        return provider

    def _require_provider(self, provider_id: int) -> Provider:
        provider = self.catalog.get_provider(self.db, provider_id)
        if not provider:
            raise NotFoundError("Provider not found", reason="provider_not_found")
        return provider

    def get_snapshot(self, provider_id: int) -> AvailabilitySnapshot:
        return AvailabilitySnapshot.from_provider(self.get_provider(provider_id))

    def replace_weekly(self, provider_id: int, data: WeeklyScheduleUpdate) -> list[WeeklyAvailability]:
        """Replace all weekly hours in one transaction"""
        hours = [WeeklyHours(d.day_of_week, d.start_time, d.end_time) for d in data.days]
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            self._require_provider(provider_id)
            rows = self.repo.replace_weekly(
                self.db,
                provider_id,
                [
                    WeeklyAvailability(day_of_week=h.day_of_week, start_time=h.start, end_time=h.end)
                    for h in hours
                ],
            )
        logger.info(f"Provider {provider_id} weekly hours replaced ({len(rows)} days open)")
        return rows

    def upsert_override(self, provider_id: int, data: DateOverrideIn) -> DateOverride:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            self._require_provider(provider_id)
            override = self.repo.upsert_override(self.db, provider_id, **data.model_dump())
        return override

    def delete_override(self, provider_id: int, on_date: date) -> None:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            if not self.repo.delete_override(self.db, provider_id, on_date):
                raise NotFoundError("No override for that date", reason="override_not_found")

    def add_time_off(self, provider_id: int, data: TimeOffIn) -> TimeOff:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            self._require_provider(provider_id)
            time_off = self.repo.add_time_off(self.db, provider_id, **data.model_dump())
        return time_off

    def delete_time_off(self, provider_id: int, time_off_id: int) -> None:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            if not self.repo.delete_time_off(self.db, provider_id, time_off_id):
                raise NotFoundError("Time off not found", reason="time_off_not_found")

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def ensure_open(self, provider: Provider, on_date: date) -> None:
        resolution = resolve_open_interval(AvailabilitySnapshot.from_provider(provider), on_date)
        if isinstance(resolution, Closed):
            raise ClosedPeriodError(
                f"{provider.display_name} is closed on {on_date.isoformat()}", reason=resolution.reason
            )

    def candidate_slots(
        self,
        provider: Provider,
        duration_minutes: int,
        on_date: date,
        granularity_minutes: Optional[int] = None,
    ) -> list[datetime]:
        """Starts allowed by open hours, the booking window and the clock"""
        return generate_slots(
            AvailabilitySnapshot.from_provider(provider),
            on_date,
            duration_minutes,
            granularity_minutes or DEFAULT_SLOT_GRANULARITY_MINUTES,
            now=self.clock.now(),
            window=BookingWindow.from_provider(provider),
        )

    def list_open_slots(
        self,
        provider_id: int,
        service_id: int,
        on_date: date,
        granularity_minutes: Optional[int] = None,
    ) -> list[datetime]:
        """
        Candidate starts minus those that currently collide with appointments.

        Display only. Another client may take any of these before commit; the
        conflict detector decides at reserve time.
        """
        provider = self.get_provider(provider_id)
        if not provider.is_active:
            raise NotFoundError("Provider not found", reason="provider_not_found")
        service = self.catalog.get_service(self.db, provider_id, service_id)
        if not service or not service.is_active:
            raise NotFoundError("Service not found", reason="service_not_found")

        candidates = self.candidate_slots(provider, service.duration_minutes, on_date, granularity_minutes)
        if not candidates:
            return []

        detector = ConflictDetector(self.db)
        day_end = slot_end(candidates[-1], service.duration_minutes)
        busy = detector.find_conflicts(provider, candidates[0], day_end)
        if not busy:
            return candidates

        buffer = timedelta(minutes=provider.buffer_minutes or 0)
        free = []
        for start in candidates:
            end = slot_end(start, service.duration_minutes)
            if not any(overlaps(a.start_time - buffer, a.end_time + buffer, start, end) for a in busy):
                free.append(start)
        return free

    # ------------------------------------------------------------------
    # Provider-driven appointment transitions
    # ------------------------------------------------------------------

    def _load_owned(self, provider_id: int, appointment_id: int) -> Appointment:
        appointment = self.appointments.get_for_update(self.db, appointment_id)
        if not appointment or appointment.provider_id != provider_id:
            raise NotFoundError("Appointment not found", reason="appointment_not_found")
        return appointment

    def mark_completed(self, provider_id: int, appointment_id: int) -> Appointment:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            appointment = self._load_owned(provider_id, appointment_id)
            if appointment.status == AppointmentStatus.COMPLETED.value:
                return appointment
            if appointment.status != AppointmentStatus.CONFIRMED.value:
                raise ValidationError(
                    f"Only confirmed appointments can be completed (status is {appointment.status})",
                    reason="invalid_transition",
                )
            self.appointments.update_status(self.db, appointment, AppointmentStatus.COMPLETED.value)
        logger.info(f"Appointment {appointment_id} marked completed")
        return appointment

    def mark_missed(self, provider_id: int, appointment_id: int) -> Appointment:
        """Record a no-show. Only possible once the appointment has started."""
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            appointment = self._load_owned(provider_id, appointment_id)
            if appointment.status == AppointmentStatus.MISSED.value:
                return appointment
            if appointment.status != AppointmentStatus.CONFIRMED.value:
                raise ValidationError(
                    f"Only confirmed appointments can be marked missed (status is {appointment.status})",
                    reason="invalid_transition",
                )
            if appointment.start_time > self.clock.now():
                raise ValidationError(
                    "An appointment cannot be marked missed before it starts", reason="not_started"
                )
            self.appointments.update_status(self.db, appointment, AppointmentStatus.MISSED.value)
        logger.info(f"Appointment {appointment_id} marked missed")
        return appointment

    def cancel(self, provider_id: int, appointment_id: int) -> Appointment:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            appointment = self._load_owned(provider_id, appointment_id)
            if appointment.status == AppointmentStatus.CANCELLED.value:
                return appointment
            if appointment.status not in CANCELLABLE_STATUSES:
                raise ValidationError(
                    f"Appointment cannot be cancelled (status is {appointment.status})",
                    reason="invalid_transition",
                )
            self.appointments.update_status(self.db, appointment, AppointmentStatus.CANCELLED.value)
        logger.info(f"Appointment {appointment_id} cancelled by provider {provider_id}")
        return appointment

"""Scheduling repositories - Database operations for availability and appointments"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ...models import (
    NON_BLOCKING_STATUSES,
    Appointment,
    DateOverride,
    Provider,
    TimeOff,
    WeeklyAvailability,
)
from ...shared.errors import ConflictError

logger = logging.getLogger(__name__)


class AvailabilityRepository:
    """Repository for provider availability. Callers own the transaction."""

    @staticmethod
    def get_provider_with_availability(db: Session, provider_id: int) -> Optional[Provider]:
        """Get a provider with weekly hours, overrides and time off loaded"""
        return (
            db.query(Provider)
            .options(
                selectinload(Provider.weekly_availability),
                selectinload(Provider.date_overrides),
                selectinload(Provider.time_off),
            )
            .populate_existing()
            .filter(Provider.id == provider_id)
            .first()
        )

    @staticmethod
    def replace_weekly(
        db: Session, provider_id: int, rows: Iterable[WeeklyAvailability]
    ) -> list[WeeklyAvailability]:
        """Replace every weekly row for a provider (delete + reinsert, never patched)"""
        db.query(WeeklyAvailability).filter(WeeklyAvailability.provider_id == provider_id).delete(
            synchronize_session=False
        )
        new_rows = []
        for row in rows:
            row.provider_id = provider_id
            db.add(row)
            new_rows.append(row)
        db.flush()
        return new_rows

    @staticmethod
    def upsert_override(db: Session, provider_id: int, **values) -> DateOverride:
        """Create or replace the override for ``values['date']``"""
        override = (
            db.query(DateOverride)
            .filter(DateOverride.provider_id == provider_id, DateOverride.date == values["date"])
            .first()
        )
        if override is None:
            override = DateOverride(provider_id=provider_id)
            db.add(override)
        override.date = values["date"]
        override.is_closed = values.get("is_closed", False)
        override.start_time = values.get("start_time")
        override.end_time = values.get("end_time")
        override.note = values.get("note")
        db.flush()
        return override

    @staticmethod
    def delete_override(db: Session, provider_id: int, on_date: date) -> bool:
        deleted = (
            db.query(DateOverride)
            .filter(DateOverride.provider_id == provider_id, DateOverride.date == on_date)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    @staticmethod
    def add_time_off(db: Session, provider_id: int, **values) -> TimeOff:
        time_off = TimeOff(provider_id=provider_id, **values)
        db.add(time_off)
        db.flush()
        return time_off

    @staticmethod
    def delete_time_off(db: Session, provider_id: int, time_off_id: int) -> bool:
        deleted = (
            db.query(TimeOff)
            .filter(TimeOff.provider_id == provider_id, TimeOff.id == time_off_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def lock_provider(db: Session, provider_id: int) -> Optional[Provider]:
        """
        Take the per-provider booking lock for the current transaction.

        Renders SELECT ... FOR UPDATE on PostgreSQL. SQLite has no row locks;
        there the engine opens every transaction with BEGIN IMMEDIATE instead.
        """
        return db.query(Provider).filter(Provider.id == provider_id).with_for_update().first()

    @staticmethod
    def find_overlapping(
        db: Session,
        provider_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Blocking appointments whose [start, end) intersects [start, end)"""
        query = db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.status.notin_(NON_BLOCKING_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time).all()

    @staticmethod
    def count_blocking_starting_between(
        db: Session, provider_id: int, start: datetime, end: datetime
    ) -> int:
        return (
            db.query(func.count(Appointment.id))
            .filter(
                Appointment.provider_id == provider_id,
                Appointment.status.notin_(NON_BLOCKING_STATUSES),
                Appointment.start_time >= start,
                Appointment.start_time < end,
            )
            .scalar()
        )

    @staticmethod
    def insert(db: Session, appointment: Appointment, *, buffer_minutes: int = 0) -> Appointment:
        """
        Insert an appointment unless it overlaps a blocking one.

        Must run inside a transaction that already holds the provider lock
        (see lock_provider). The insert is flushed inside a savepoint so a
        database exclusion-constraint violation can still be reported with the
        appointments it collided with.

        Raises:
            ConflictError: with the overlapping appointments
        """
        # The buffer is a gap after every appointment, the new one and existing ones
        buffer = timedelta(minutes=buffer_minutes)
        overlapping = AppointmentRepository.find_overlapping(
            db, appointment.provider_id, appointment.start_time - buffer, appointment.end_time + buffer
        )
        if overlapping:
            raise ConflictError(overlapping=overlapping)

        try:
            with db.begin_nested():
                db.add(appointment)
                db.flush()
        except IntegrityError as e:
            logger.info(f"Overlap rejected by database constraint for provider {appointment.provider_id}: {e}")
            overlapping = AppointmentRepository.find_overlapping(
                db, appointment.provider_id, appointment.start_time, appointment.end_time
            )
            raise ConflictError(overlapping=overlapping) from e

        return appointment

    @staticmethod
    def get_for_update(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment).filter(Appointment.id == appointment_id).with_for_update().first()
        )

    @staticmethod
    def update_status(
        db: Session,
        appointment: Appointment,
        status: str,
        payment_status: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> Appointment:
        appointment.status = status
        if payment_status is not None:
            appointment.payment_status = payment_status
        if payment_reference is not None:
            appointment.payment_reference = payment_reference
        db.flush()
        return appointment

    @staticmethod
    def list_by_provider(
        db: Session, provider_id: int, start: datetime, end: datetime
    ) -> list[Appointment]:
        """Appointments of any status that intersect [start, end)"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.provider_id == provider_id,
                Appointment.start_time < end,
                Appointment.end_time > start,
            )
            .order_by(Appointment.start_time)
            .all()
        )

    @staticmethod
    def list_by_client(db: Session, client_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.client_id == client_id)
            .order_by(Appointment.start_time.desc())
            .all()
        )

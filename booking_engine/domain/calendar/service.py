"""Calendar service - Loads appointments and projects them for a viewer"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...shared.clock import Clock, get_zone, system_clock
from ...shared.errors import NotFoundError, ValidationError
from ..catalog.repository import ServiceCatalog
from ..scheduling.repository import AppointmentRepository
from .projector import VIEWER_CLIENT, VIEWER_PROVIDER, CalendarEvent, project

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_RANGE_DAYS = 42
MAX_RANGE_DAYS = 366


class CalendarService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.appointments = AppointmentRepository()
        self.catalog = ServiceCatalog()

    def provider_calendar(
        self, provider_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[CalendarEvent]:
        """Events for [start, end] in the provider's local calendar, both dates inclusive"""
        provider = self.catalog.get_provider(self.db, provider_id)
        if not provider:
            raise NotFoundError("Provider not found", reason="provider_not_found")

        tz = get_zone(provider.timezone)
        today = self.clock.today_in(tz)
        start = start or today - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        end = end or start + timedelta(days=DEFAULT_RANGE_DAYS)
        if end < start:
            raise ValidationError("end must not be before start", field="end", reason="invalid_range")
        if (end - start).days > MAX_RANGE_DAYS:
            raise ValidationError(f"Ranges are limited to {MAX_RANGE_DAYS} days", field="end", reason="invalid_range")

        range_start = datetime.combine(start, time.min, tzinfo=tz)
        range_end = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz)
        appointments = self.appointments.list_by_provider(self.db, provider_id, range_start, range_end)

        return project(
            appointments,
            self.catalog.get_services(self.db, (a.service_id for a in appointments)),
            None,
            VIEWER_PROVIDER,
            now=self.clock.now(),
            clients=self.catalog.get_clients(self.db, (a.client_id for a in appointments)),
        )

    def client_calendar(self, client_id: str) -> list[CalendarEvent]:
        appointments = self.appointments.list_by_client(self.db, client_id)
        return project(
            appointments,
            self.catalog.get_services(self.db, (a.service_id for a in appointments)),
            None,
            VIEWER_CLIENT,
            now=self.clock.now(),
            providers=self.catalog.get_providers(self.db, (a.provider_id for a in appointments)),
        )

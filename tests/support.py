"""Shared fixtures for tests that need a database"""

import os
import tempfile
import unittest
from datetime import datetime, time, timezone

from sqlalchemy.orm import sessionmaker

from booking_engine import models  # noqa: F401
from booking_engine.database import Base, build_engine
from booking_engine.models import AddOn, Provider, Service, WeeklyAvailability
from booking_engine.shared.clock import FixedClock

# Monday 2030-06-03, 08:00 UTC
NOW = datetime(2030, 6, 3, 8, 0, tzinfo=timezone.utc)

NINE_TO_FIVE = {day: (time(9, 0), time(17, 0)) for day in range(7)}


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


class DatabaseTestCase(unittest.TestCase):
    """
    Fresh file-backed SQLite database per test.

    A file (not :memory:) so several sessions, and threads, share one database
    and contend on the same write lock.
    """

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_url = f"sqlite:///{os.path.join(self._tmpdir.name, 'booking.db')}"
        self.engine = build_engine(self.db_url, busy_timeout=30)
        Base.metadata.create_all(bind=self.engine)
        self.SessionFactory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self.db = self.SessionFactory()
        self.clock = FixedClock(NOW)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        self._tmpdir.cleanup()

    def make_provider(self, hours=None, **overrides) -> Provider:
        values = {
            "display_name": "Fade Studio",
            "timezone": "UTC",
            "buffer_minutes": 0,
            "same_day_booking_enabled": True,
        }
        values.update(overrides)
        provider = Provider(**values)
        self.db.add(provider)
        self.db.flush()
        for day, (start, end) in (NINE_TO_FIVE if hours is None else hours).items():
            self.db.add(
                WeeklyAvailability(provider_id=provider.id, day_of_week=day, start_time=start, end_time=end)
            )
        self.db.commit()
        return provider

    def make_service(self, provider, name="Haircut", duration=60, price=5000, **overrides) -> Service:
        service = Service(
            provider_id=provider.id, name=name, duration_minutes=duration, price_cents=price, **overrides
        )
        self.db.add(service)
        self.db.commit()
        return service

    def make_addon(self, provider, name="Beard trim", price=1500, **overrides) -> AddOn:
        addon = AddOn(provider_id=provider.id, name=name, price_cents=price, **overrides)
        self.db.add(addon)
        self.db.commit()
        return addon

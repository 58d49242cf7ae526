import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores instants as naive UTC and hands back timezone-aware UTC datetimes"""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MISSED = "missed"  # no-show, kept distinct from a cancellation
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    FAILED = "failed"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMode(str, Enum):
    FULL = "full"
    FEE_ONLY = "fee_only"


class SubjectKind(str, Enum):
    REGISTERED = "registered"
    GUEST = "guest"
    OPERATOR = "operator"


# Appointments in these states no longer hold the provider's time
NON_BLOCKING_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.FAILED.value,
    AppointmentStatus.EXPIRED.value,
)


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, index=True, default=generate_public_id)
    display_name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA zone name
    is_operator = Column(Boolean, default=False, nullable=False)  # records bookings without payment
    is_active = Column(Boolean, default=True, nullable=False)

    # Booking restrictions
    buffer_minutes = Column(Integer, default=0, nullable=False)  # gap required after each appointment
    max_bookings_per_day = Column(Integer, nullable=True)  # None = unlimited
    advance_booking_days = Column(Integer, nullable=True)  # None = no booking horizon
    same_day_booking_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    weekly_availability = relationship(
        "WeeklyAvailability", back_populates="provider", cascade="all, delete-orphan"
    )
    date_overrides = relationship("DateOverride", back_populates="provider", cascade="all, delete-orphan")
    time_off = relationship("TimeOff", back_populates="provider", cascade="all, delete-orphan")
    services = relationship("Service", back_populates="provider")
    addons = relationship("AddOn", back_populates="provider")


class Client(Base):
    """Display data for an authenticated client; the id comes from the identity provider"""

    __tablename__ = "clients"

    id = Column(String(128), primary_key=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class WeeklyAvailability(Base):
    __tablename__ = "weekly_availability"
    __table_args__ = (
        UniqueConstraint("provider_id", "day_of_week", name="uq_weekly_availability_day"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_weekly_availability_dow"),
        CheckConstraint("end_time > start_time", name="ck_weekly_availability_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    provider = relationship("Provider", back_populates="weekly_availability")


class DateOverride(Base):
    __tablename__ = "date_overrides"
    __table_args__ = (UniqueConstraint("provider_id", "date", name="uq_date_override_day"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)
    start_time = Column(Time, nullable=True)  # special hours, required unless closed
    end_time = Column(Time, nullable=True)
    note = Column(String(255), nullable=True)

    provider = relationship("Provider", back_populates="date_overrides")


class TimeOff(Base):
    __tablename__ = "time_off"
    __table_args__ = (CheckConstraint("end_date >= start_date", name="ck_time_off_order"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # inclusive
    reason = Column(String(255), nullable=True)

    provider = relationship("Provider", back_populates="time_off")


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_service_duration"),
        CheckConstraint("price_cents >= 0", name="ck_service_price"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("Provider", back_populates="services")


class AddOn(Base):
    __tablename__ = "addons"
    __table_args__ = (CheckConstraint("price_cents >= 0", name="ck_addon_price"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("Provider", back_populates="addons")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_appointment_order"),
        Index("ix_appointments_provider_window", "provider_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, index=True, default=generate_public_id)

    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    client_id = Column(String(128), nullable=True, index=True)  # opaque id from the identity provider

    # Who the booking is for: registered client, guest, or a provider-entered walk-in
    subject_kind = Column(String(20), nullable=False, default=SubjectKind.REGISTERED.value)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)

    # [start_time, end_time) as UTC instants; end is persisted, never recomputed
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)

    status = Column(String(30), nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    payment_status = Column(String(30), nullable=False, default=PaymentStatus.PENDING.value)
    payment_mode = Column(String(20), nullable=False, default=PaymentMode.FULL.value)
    is_operator_bypass = Column(Boolean, nullable=False, default=False)
    payment_reference = Column(String(255), nullable=True, index=True)

    # Captured pricing, in cents
    base_price = Column(Integer, nullable=False, default=0)
    addon_total = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    platform_fee = Column(Integer, nullable=False, default=0)
    provider_payout = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("Provider")
    service = relationship("Service")
    addons = relationship(
        "AppointmentAddOn", back_populates="appointment", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def is_guest(self) -> bool:
        return self.client_id is None


class AppointmentAddOn(Base):
    """Add-on attached to an appointment with the name and price captured at booking time"""

    __tablename__ = "appointment_addons"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    addon_id = Column(Integer, ForeignKey("addons.id"), nullable=False)
    name = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)

    appointment = relationship("Appointment", back_populates="addons")

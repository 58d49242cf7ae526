"""Booking domain schemas - Pydantic models for the booking wizard and manual entry"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import PaymentMode
from ...shared.validators import validate_display_name, validate_email, validate_us_phone
from ..billing.schemas import ChargeResponse, PaymentRequest


class ContactIn(BaseModel):
    """Guest or walk-in contact details"""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v


class WizardStart(BaseModel):
    provider_id: int


class WizardTokenIn(BaseModel):
    token: str


class ServiceSelection(WizardTokenIn):
    service_id: int
    addon_ids: list[int] = Field(default_factory=list)


class TimeSelection(WizardTokenIn):
    date: date
    start: datetime

    @field_validator("start")
    @classmethod
    def require_offset(cls, v):
        if v.tzinfo is None:
            raise ValueError("start must include a UTC offset")
        return v


class IdentitySelection(WizardTokenIn):
    """Leave ``guest`` empty to book as the signed-in client"""

    guest: Optional[ContactIn] = None


class PaymentModeSelection(WizardTokenIn):
    payment_mode: PaymentMode


class CommitRequest(WizardTokenIn):
    notes: Optional[str] = Field(default=None, max_length=2000)


class WizardResponse(BaseModel):
    token: str
    step: str
    provider_id: int
    service_id: Optional[int] = None
    addon_ids: list[int] = Field(default_factory=list)
    chosen_date: Optional[date] = None
    start: Optional[datetime] = None
    subject_kind: Optional[str] = None
    payment_mode: str
    excluded_starts: list[datetime] = Field(default_factory=list)
    appointment_id: Optional[int] = None


class WizardTimesResponse(BaseModel):
    token: str
    date: date
    slots: list[datetime]


class ReviewResponse(BaseModel):
    token: str
    service_name: str
    duration_minutes: int
    addon_names: list[str]
    start: datetime
    end: datetime
    payment_mode: str
    is_operator_bypass: bool
    charge: ChargeResponse


class AppointmentResponse(BaseModel):
    id: int
    public_id: str
    provider_id: int
    service_id: int
    client_id: Optional[str] = None
    subject_kind: str
    guest_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    payment_status: str
    payment_mode: str
    is_operator_bypass: bool
    payment_reference: Optional[str] = None
    base_price: int
    addon_total: int
    total: int
    platform_fee: int
    provider_payout: int
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class CommitResponse(BaseModel):
    token: str
    appointment: AppointmentResponse
    reservation_token: str
    payment: Optional[PaymentRequest] = None  # absent for operator bookings


class ManualAppointmentCreate(BaseModel):
    service_id: int
    start: datetime
    contact: ContactIn
    addon_ids: list[int] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("start")
    @classmethod
    def require_offset(cls, v):
        if v.tzinfo is None:
            raise ValueError("start must include a UTC offset")
        return v

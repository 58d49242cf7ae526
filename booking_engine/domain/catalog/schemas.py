"""Catalog domain schemas - Pydantic models for providers, services, add-ons and clients"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.clock import get_zone
from ...shared.errors import InvariantViolation
from ...shared.validators import validate_display_name, validate_email, validate_us_phone


def _check_timezone(v):
    if v is None:
        return v
    try:
        get_zone(v)
    except InvariantViolation as e:
        raise ValueError(e.message)
    return v


class ProviderCreate(BaseModel):
    display_name: str
    timezone: str = "UTC"
    buffer_minutes: int = Field(default=0, ge=0, le=24 * 60)
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)
    advance_booking_days: Optional[int] = Field(default=None, ge=0)
    same_day_booking_enabled: bool = True

    @field_validator("display_name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        return _check_timezone(v)


class ProviderUpdate(BaseModel):
    """Booking restrictions and profile fields; omitted fields are left unchanged"""

    display_name: Optional[str] = None
    timezone: Optional[str] = None
    is_active: Optional[bool] = None
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=24 * 60)
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)
    advance_booking_days: Optional[int] = Field(default=None, ge=0)
    same_day_booking_enabled: Optional[bool] = None

    @field_validator("display_name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        return _check_timezone(v)


class OperatorFlagUpdate(BaseModel):
    """Admin-only switch; operators record bookings without taking payment"""

    is_operator: bool


class ProviderResponse(BaseModel):
    id: int
    public_id: str
    display_name: str
    timezone: str
    is_operator: bool
    is_active: bool
    buffer_minutes: int
    max_bookings_per_day: Optional[int] = None
    advance_booking_days: Optional[int] = None
    same_day_booking_enabled: bool

    class Config:
        from_attributes = True


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    duration_minutes: int = Field(gt=0, le=24 * 60)
    price_cents: int = Field(ge=0)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)


class ServiceUpdate(BaseModel):
    """Price and duration edits only affect bookings made afterwards"""

    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    price_cents: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)


class ServiceResponse(BaseModel):
    id: int
    provider_id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price_cents: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AddOnCreate(BaseModel):
    name: str
    price_cents: int = Field(ge=0)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)


class AddOnUpdate(BaseModel):
    name: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return validate_display_name(v)


class AddOnResponse(BaseModel):
    id: int
    provider_id: int
    name: str
    price_cents: int
    is_active: bool

    class Config:
        from_attributes = True


class ClientProfileUpdate(BaseModel):
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("display_name")
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


class ClientProfileResponse(BaseModel):
    id: str
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        from_attributes = True

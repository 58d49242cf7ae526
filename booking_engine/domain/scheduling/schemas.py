"""Scheduling domain schemas - Pydantic models for availability and appointment lifecycle"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class WeeklyHoursIn(BaseModel):
    """One open interval for a day of week (0 = Monday ... 6 = Sunday)"""

    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_order(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class WeeklyScheduleUpdate(BaseModel):
    """Full replacement of a provider's weekly hours; days left out are closed"""

    days: list[WeeklyHoursIn]

    @field_validator("days")
    @classmethod
    def unique_days(cls, v):
        seen = [d.day_of_week for d in v]
        if len(seen) != len(set(seen)):
            raise ValueError("Each day of week may appear at most once")
        return v


class WeeklyHoursResponse(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class DateOverrideIn(BaseModel):
    date: date
    is_closed: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    note: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def check_hours(self):
        if self.is_closed:
            self.start_time = None
            self.end_time = None
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("Special hours need both start_time and end_time")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DateOverrideResponse(BaseModel):
    date: date
    is_closed: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    note: Optional[str] = None

    class Config:
        from_attributes = True


class TimeOffIn(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class TimeOffResponse(BaseModel):
    id: int
    start_date: date
    end_date: date
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    provider_id: int
    timezone: str
    weekly: list[WeeklyHoursResponse]
    overrides: list[DateOverrideResponse]
    time_off: list[TimeOffResponse]


class SlotListResponse(BaseModel):
    provider_id: int
    service_id: int
    date: date
    timezone: str
    slots: list[datetime]


class AppointmentStatusResponse(BaseModel):
    id: int
    public_id: str
    status: str
    payment_status: str
    start_time: datetime
    end_time: datetime

    class Config:
        from_attributes = True

"""Scheduling router - FastAPI endpoints for availability, slots and appointment transitions"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_provider_id
from ...database import get_db
from ...shared.clock import Clock, get_clock
from .schemas import (
    AppointmentStatusResponse,
    AvailabilityResponse,
    DateOverrideIn,
    DateOverrideResponse,
    SlotListResponse,
    TimeOffIn,
    TimeOffResponse,
    WeeklyHoursResponse,
    WeeklyScheduleUpdate,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_scheduling_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db, clock)


# ============================================================================
# PUBLIC AVAILABILITY
# ============================================================================


@router.get("/providers/{provider_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    provider_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    provider = service.get_provider(provider_id)
    return AvailabilityResponse(
        provider_id=provider.id,
        timezone=provider.timezone,
        weekly=sorted(provider.weekly_availability, key=lambda w: w.day_of_week),
        overrides=sorted(provider.date_overrides, key=lambda o: o.date),
        time_off=sorted(provider.time_off, key=lambda t: t.start_date),
    )


@router.get("/providers/{provider_id}/slots", response_model=SlotListResponse)
async def list_slots(
    provider_id: int,
    service_id: int = Query(...),
    on_date: date = Query(..., alias="date"),
    granularity: Optional[int] = Query(None, gt=0, le=240),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Advisory list of open start times; a slot is only guaranteed at commit"""
    slots = service.list_open_slots(provider_id, service_id, on_date, granularity)
    provider = service.get_provider(provider_id)
    return SlotListResponse(
        provider_id=provider_id,
        service_id=service_id,
        date=on_date,
        timezone=provider.timezone,
        slots=slots,
    )


# ============================================================================
# PROVIDER AVAILABILITY MANAGEMENT
# ============================================================================


@router.put("/availability/weekly", response_model=list[WeeklyHoursResponse])
async def replace_weekly_hours(
    data: WeeklyScheduleUpdate,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Replace the whole weekly schedule; days not sent are closed"""
    return service.replace_weekly(provider_id, data)


@router.put("/availability/overrides", response_model=DateOverrideResponse)
async def upsert_override(
    data: DateOverrideIn,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.upsert_override(provider_id, data)


@router.delete("/availability/overrides/{on_date}", status_code=204)
async def delete_override(
    on_date: date,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_override(provider_id, on_date)


@router.post("/availability/time-off", response_model=TimeOffResponse, status_code=201)
async def add_time_off(
    data: TimeOffIn,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.add_time_off(provider_id, data)


@router.delete("/availability/time-off/{time_off_id}", status_code=204)
async def delete_time_off(
    time_off_id: int,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_time_off(provider_id, time_off_id)


# ============================================================================
# APPOINTMENT TRANSITIONS
# ============================================================================


@router.post("/appointments/{appointment_id}/complete", response_model=AppointmentStatusResponse)
async def complete_appointment(
    appointment_id: int,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.mark_completed(provider_id, appointment_id)


@router.post("/appointments/{appointment_id}/missed", response_model=AppointmentStatusResponse)
async def mark_appointment_missed(
    appointment_id: int,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.mark_missed(provider_id, appointment_id)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentStatusResponse)
async def cancel_appointment(
    appointment_id: int,
    provider_id: int = Depends(get_current_provider_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.cancel(provider_id, appointment_id)

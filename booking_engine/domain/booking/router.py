"""Booking router - FastAPI endpoints for the booking wizard and manual entry"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import ROLE_CLIENT, ROLE_PROVIDER, Identity, get_current_provider_id, get_optional_identity
from ...database import get_db
from ...shared.clock import Clock, get_clock
from ..billing.schemas import ChargeResponse
from .schemas import (
    AppointmentResponse,
    CommitRequest,
    CommitResponse,
    ContactIn,
    IdentitySelection,
    ManualAppointmentCreate,
    PaymentModeSelection,
    ReviewResponse,
    ServiceSelection,
    TimeSelection,
    WizardResponse,
    WizardStart,
    WizardTimesResponse,
    WizardTokenIn,
)
from .service import BookingService, WizardSession
from .wizard import GuestContact, OperatorEntry, RegisteredClient, Subject, subject_kind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/booking", tags=["Booking"])


def get_booking_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, clock)


def _wizard_response(session: WizardSession) -> WizardResponse:
    wizard = session.wizard
    return WizardResponse(
        token=session.token,
        step=wizard.step.value,
        provider_id=wizard.provider_id,
        service_id=wizard.service_id,
        addon_ids=list(wizard.addon_ids),
        chosen_date=wizard.chosen_date,
        start=wizard.start,
        subject_kind=subject_kind(wizard.subject).value if wizard.subject else None,
        payment_mode=wizard.payment_mode.value,
        excluded_starts=sorted(wizard.excluded_starts),
        appointment_id=wizard.appointment_id,
    )


def _contact(data: ContactIn) -> GuestContact:
    return GuestContact(name=data.name, email=data.email, phone=data.phone)


def _resolve_subject(
    identity: Optional[Identity], guest: Optional[ContactIn], provider_id: int
) -> Optional[Subject]:
    """Signed-in provider entering for someone else, guest contact, or the signed-in client"""
    if guest and identity and identity.role == ROLE_PROVIDER and identity.subject == str(provider_id):
        return OperatorEntry(_contact(guest))
    if guest:
        return _contact(guest)
    if identity and identity.role == ROLE_CLIENT:
        return RegisteredClient(identity.subject)
    return None


# ============================================================================
# WIZARD
# ============================================================================


@router.post("/wizard", response_model=WizardResponse, status_code=201)
async def start_wizard(
    data: WizardStart,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.start(data.provider_id))


@router.post("/wizard/service", response_model=WizardResponse)
async def select_service(
    data: ServiceSelection,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.select_service(data.token, data.service_id, data.addon_ids))


@router.get("/wizard/times", response_model=WizardTimesResponse)
async def list_times(
    token: str = Query(...),
    on_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    session, slots = service.list_times(token, on_date)
    return WizardTimesResponse(token=session.token, date=on_date, slots=slots)


@router.post("/wizard/time", response_model=WizardResponse)
async def choose_time(
    data: TimeSelection,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.choose_time(data.token, data.date, data.start))


@router.post("/wizard/identity", response_model=WizardResponse)
async def set_identity(
    data: IdentitySelection,
    identity: Optional[Identity] = Depends(get_optional_identity),
    service: BookingService = Depends(get_booking_service),
):
    wizard = service.load(data.token)
    subject = _resolve_subject(identity, data.guest, wizard.provider_id)
    return _wizard_response(service.set_identity(data.token, subject))


@router.post("/wizard/payment-mode", response_model=WizardResponse)
async def set_payment_mode(
    data: PaymentModeSelection,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.set_payment_mode(data.token, data.payment_mode))


@router.post("/wizard/advance", response_model=WizardResponse)
async def advance(
    data: WizardTokenIn,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.advance(data.token))


@router.post("/wizard/back", response_model=WizardResponse)
async def back(
    data: WizardTokenIn,
    service: BookingService = Depends(get_booking_service),
):
    return _wizard_response(service.back(data.token))


@router.get("/wizard/review", response_model=ReviewResponse)
async def review(
    token: str = Query(...),
    service: BookingService = Depends(get_booking_service),
):
    summary = service.review(token)
    return ReviewResponse(
        token=summary.session.token,
        service_name=summary.service.name,
        duration_minutes=summary.service.duration_minutes,
        addon_names=[a.name for a in summary.addons],
        start=summary.start,
        end=summary.end,
        payment_mode=summary.session.wizard.payment_mode.value,
        is_operator_bypass=summary.session.wizard.is_operator_bypass,
        charge=ChargeResponse(**summary.charge.to_dict()),
    )


@router.post("/wizard/commit", response_model=CommitResponse, status_code=201)
async def commit(
    data: CommitRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Book the reviewed slot. 409 responses carry a wizard_token pointing back at the time step."""
    result = service.commit(data.token, data.notes)
    return CommitResponse(
        token=result.session.token,
        appointment=AppointmentResponse.model_validate(result.appointment),
        reservation_token=result.reservation_token,
        payment=result.payment,
    )


# ============================================================================
# MANUAL ENTRY
# ============================================================================


@router.post("/manual", response_model=AppointmentResponse, status_code=201)
async def create_manual_appointment(
    data: ManualAppointmentCreate,
    provider_id: int = Depends(get_current_provider_id),
    service: BookingService = Depends(get_booking_service),
):
    """Record a walk-in or phone booking without payment"""
    return service.create_manual_appointment(
        provider_id,
        data.service_id,
        data.start,
        _contact(data.contact),
        notes=data.notes,
        addon_ids=data.addon_ids,
    )

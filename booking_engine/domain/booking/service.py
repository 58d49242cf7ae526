"""Booking service - Drives the booking wizard and commits appointments"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import WIZARD_TOKEN_MAX_AGE
from ...models import (
    AddOn,
    Appointment,
    AppointmentAddOn,
    AppointmentStatus,
    PaymentMode,
    PaymentStatus,
    Provider,
    Service,
)
from ...security_utils import WIZARD_SALT, generate_timed_token, verify_timed_token
from ...shared.clock import Clock, get_zone, system_clock
from ...shared.errors import ConflictError, NotFoundError, ValidationError
from ..billing.pricing import DEFAULT_FEES, ChargeBreakdown, FeeSchedule, compute_charge
from ..billing.schemas import PaymentRequest
from ..billing.service import build_payment_request
from ..catalog.repository import ServiceCatalog
from ..scheduling.conflicts import ConflictDetector
from ..scheduling.service import SchedulingService
from ..scheduling.slots import slot_end
from .wizard import (
    BookingWizard,
    GuestContact,
    OperatorEntry,
    RegisteredClient,
    Subject,
    WizardStep,
    subject_contact,
    subject_kind,
)

logger = logging.getLogger(__name__)


@dataclass
class WizardSession:
    wizard: BookingWizard
    token: str


@dataclass
class ReviewSummary:
    session: WizardSession
    service: Service
    addons: list[AddOn]
    start: datetime
    end: datetime
    charge: ChargeBreakdown


@dataclass
class CommitResult:
    session: WizardSession
    appointment: Appointment
    charge: ChargeBreakdown
    reservation_token: str
    payment: Optional[PaymentRequest]


class BookingService:
    """Service layer for the booking wizard"""

    def __init__(self, db: Session, clock: Clock = system_clock, fees: FeeSchedule = DEFAULT_FEES):
        self.db = db
        self.clock = clock
        self.fees = fees
        self.catalog = ServiceCatalog()
        self.scheduling = SchedulingService(db, clock)

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    def issue(self, wizard: BookingWizard) -> WizardSession:
        return WizardSession(wizard=wizard, token=generate_timed_token(wizard.to_dict(), salt=WIZARD_SALT))

    def load(self, token: str) -> BookingWizard:
        data = verify_timed_token(token, salt=WIZARD_SALT, max_age=WIZARD_TOKEN_MAX_AGE)
        if data is None:
            raise ValidationError(
                "Your booking session has expired, please start again", reason="session_expired"
            )
        try:
            return BookingWizard.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable wizard state: {e}")
            raise ValidationError(
                "Your booking session has expired, please start again", reason="session_expired"
            ) from e

    # ------------------------------------------------------------------
    # Catalog helpers
    # ------------------------------------------------------------------

    def _active_provider(self, provider_id: int) -> Provider:
        provider = self.catalog.get_provider(self.db, provider_id)
        if not provider or not provider.is_active:
            raise NotFoundError("Provider not found", reason="provider_not_found")
        return provider

    def _service_and_addons(
        self, provider_id: int, service_id: int, addon_ids: Iterable[int]
    ) -> tuple[Optional[Service], list[AddOn]]:
        addon_ids = list(addon_ids)
        service = self.catalog.get_service(self.db, provider_id, service_id)
        addons = self.catalog.get_addons(self.db, provider_id, addon_ids)
        if len(addons) != len(set(addon_ids)):
            raise ValidationError(
                "One of the selected add-ons is not available", step="service", reason="addon_unavailable"
            )
        return service, addons

    def _current_selection(self, wizard: BookingWizard) -> tuple[Service, list[AddOn]]:
        """Re-read the selected service and add-ons; prices are taken from here, never from the token"""
        service, addons = self._service_and_addons(wizard.provider_id, wizard.service_id, wizard.addon_ids)
        if not service or not service.is_active:
            raise ValidationError(
                "The selected service is no longer available", step="service", reason="service_unavailable"
            )
        if any(not a.is_active for a in addons):
            raise ValidationError(
                "One of the selected add-ons is no longer available", step="service", reason="addon_unavailable"
            )
        return service, addons

    # ------------------------------------------------------------------
    # Wizard steps
    # ------------------------------------------------------------------

    def start(self, provider_id: int) -> WizardSession:
        provider = self._active_provider(provider_id)
        wizard = BookingWizard(provider_id=provider.id, provider_is_operator=provider.is_operator)
        logger.info(f"Booking wizard started for provider {provider.id}")
        return self.issue(wizard)

    def select_service(self, token: str, service_id: int, addon_ids: Iterable[int] = ()) -> WizardSession:
        wizard = self.load(token)
        service, addons = self._service_and_addons(wizard.provider_id, service_id, addon_ids)
        wizard.select_service(service, addons)
        return self.issue(wizard)

    def list_times(self, token: str, on_date: date) -> tuple[WizardSession, list[datetime]]:
        """Advisory open starts for the chosen service, minus starts lost earlier in this session"""
        wizard = self.load(token)
        if wizard.service_id is None:
            raise ValidationError("Please choose a service first", step="service", reason="service_required")
        slots = self.scheduling.list_open_slots(wizard.provider_id, wizard.service_id, on_date)
        return self.issue(wizard), [s for s in slots if s not in wizard.excluded_starts]

    def choose_time(self, token: str, on_date: date, start: datetime) -> WizardSession:
        wizard = self.load(token)
        if wizard.step is WizardStep.TIME and wizard.duration_minutes:
            provider = self.scheduling.get_provider(wizard.provider_id)
            self.scheduling.ensure_open(provider, on_date)
            available = self.scheduling.candidate_slots(provider, wizard.duration_minutes, on_date)
        else:
            available = []
        wizard.choose_time(on_date, start, available)
        return self.issue(wizard)

    def set_identity(self, token: str, subject: Optional[Subject]) -> WizardSession:
        wizard = self.load(token)
        wizard.set_identity(subject)
        return self.issue(wizard)

    def set_payment_mode(self, token: str, mode) -> WizardSession:
        wizard = self.load(token)
        wizard.set_payment_mode(mode)
        return self.issue(wizard)

    def advance(self, token: str) -> WizardSession:
        wizard = self.load(token)
        wizard.advance()
        return self.issue(wizard)

    def back(self, token: str) -> WizardSession:
        wizard = self.load(token)
        wizard.back()
        return self.issue(wizard)

    def review(self, token: str) -> ReviewSummary:
        wizard = self.load(token)
        wizard.ensure_ready_for_commit()
        service, addons = self._current_selection(wizard)
        charge = compute_charge(
            service.price_cents,
            [a.price_cents for a in addons],
            wizard.payment_mode,
            wizard.is_operator_bypass,
            self.fees,
        )
        return ReviewSummary(
            session=self.issue(wizard),
            service=service,
            addons=addons,
            start=wizard.start,
            end=slot_end(wizard.start, service.duration_minutes),
            charge=charge,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, token: str, notes: Optional[str] = None) -> CommitResult:
        """
        Reserve the chosen interval and persist the appointment.

        The slot is re-validated against current availability and re-checked
        for overlap under the provider lock. On a lost race the error carries a
        wizard token that is back on TIME with the taken start excluded.

        Raises:
            ConflictError: the interval was taken (``context['wizard_token']`` is set)
            ValidationError: a gate no longer passes
        """
        wizard = self.load(token)
        wizard.ensure_ready_for_commit()

        provider = self.scheduling.get_provider(wizard.provider_id)
        if not provider.is_active:
            raise NotFoundError("Provider not found", reason="provider_not_found")
        service, addons = self._current_selection(wizard)

        still_open = self.scheduling.candidate_slots(provider, service.duration_minutes, wizard.chosen_date)
        if wizard.start not in still_open:
            wizard.return_to_time()
            error = ValidationError(
                "That time is no longer available, please choose another", step="time", reason="slot_unavailable"
            )
            error.context["wizard_token"] = self.issue(wizard).token
            raise error

        bypass = wizard.is_operator_bypass
        charge = compute_charge(
            service.price_cents, [a.price_cents for a in addons], wizard.payment_mode, bypass, self.fees
        )
        appointment = self._build_appointment(
            wizard.subject, service, addons, charge, wizard.payment_mode, bypass, "operator", notes
        )

        start = wizard.start
        end = slot_end(start, service.duration_minutes)
        try:
            reservation = ConflictDetector(self.db).reserve(provider, start, end, appointment)
        except ConflictError as e:
            logger.info(f"Commit lost the race for provider {provider.id} at {start.isoformat()}")
            wizard.handle_conflict()
            e.context["wizard_token"] = self.issue(wizard).token
            raise

        appointment = reservation.appointment
        wizard.mark_committed(appointment.id)
        payment = None
        if not bypass:
            payment = build_payment_request(appointment.id, reservation.token, charge)

        logger.info(
            f"Appointment {appointment.id} booked with provider {provider.id} "
            f"({subject_kind(wizard.subject).value}, total={charge.total})"
        )
        return CommitResult(
            session=self.issue(wizard),
            appointment=appointment,
            charge=charge,
            reservation_token=reservation.token,
            payment=payment,
        )

    def create_manual_appointment(
        self,
        provider_id: int,
        service_id: int,
        start: datetime,
        contact: GuestContact,
        notes: Optional[str] = None,
        addon_ids: Iterable[int] = (),
    ) -> Appointment:
        """
        Record a walk-in or phone booking entered by the provider.

        Skips the wizard and payment, but not the overlap check.
        """
        if start.tzinfo is None:
            raise ValidationError("Start time must include a UTC offset", step="time", reason="naive_start")
        if not contact.name:
            raise ValidationError("A name is required for the booking", step="identity", reason="name_required")

        provider = self._active_provider(provider_id)
        service, addons = self._service_and_addons(provider_id, service_id, addon_ids)
        if not service or not service.is_active:
            raise ValidationError("Please choose an active service", step="service", reason="service_unavailable")

        now = self.clock.now()
        if start < now:
            raise ValidationError("Appointments cannot be created in the past", step="time", reason="in_past")

        charge = compute_charge(
            service.price_cents, [a.price_cents for a in addons], PaymentMode.FULL, True, self.fees
        )
        appointment = self._build_appointment(
            OperatorEntry(contact), service, addons, charge, PaymentMode.FULL, True, "manual", notes
        )
        end = slot_end(start, service.duration_minutes)
        reservation = ConflictDetector(self.db).reserve(provider, start, end, appointment)

        local_start = start.astimezone(get_zone(provider.timezone))
        logger.info(f"Manual appointment {reservation.appointment.id} for provider {provider.id} at {local_start}")
        return reservation.appointment

    def _build_appointment(
        self,
        subject: Subject,
        service: Service,
        addons: list[AddOn],
        charge: ChargeBreakdown,
        payment_mode: PaymentMode,
        bypass: bool,
        reference_prefix: str,
        notes: Optional[str],
    ) -> Appointment:
        contact = subject_contact(subject)
        return Appointment(
            service_id=service.id,
            client_id=subject.client_id if isinstance(subject, RegisteredClient) else None,
            subject_kind=subject_kind(subject).value,
            guest_name=contact.name if contact else None,
            guest_email=contact.email if contact else None,
            guest_phone=contact.phone if contact else None,
            status=(AppointmentStatus.CONFIRMED if bypass else AppointmentStatus.PAYMENT_PENDING).value,
            payment_status=(PaymentStatus.SUCCEEDED if bypass else PaymentStatus.PENDING).value,
            payment_mode=PaymentMode(payment_mode).value,
            is_operator_bypass=bypass,
            payment_reference=f"{reference_prefix}_{uuid.uuid4().hex}" if bypass else None,
            base_price=charge.base_price,
            addon_total=charge.addon_total,
            total=charge.total,
            platform_fee=charge.platform_fee,
            provider_payout=charge.provider_payout,
            notes=notes,
            addons=[
                AppointmentAddOn(addon_id=a.id, name=a.name, price_cents=a.price_cents) for a in addons
            ],
        )

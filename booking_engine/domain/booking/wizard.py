"""
Booking Wizard

Explicit state machine for a single booking attempt:

    SERVICE -> TIME -> IDENTITY -> REVIEW -> COMMITTED

Every gate lives here. The wizard never touches the database; the booking
service feeds it catalog rows and slot lists and performs the commit. Between
HTTP calls the wizard travels as a signed token (see to_dict / from_dict), so
abandoning it leaves nothing behind.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Union

from ...models import PaymentMode, SubjectKind
from ...shared.errors import InvariantViolation, ValidationError


class WizardStep(str, Enum):
    SERVICE = "service"
    TIME = "time"
    IDENTITY = "identity"
    REVIEW = "review"
    COMMITTED = "committed"


STEP_ORDER = (WizardStep.SERVICE, WizardStep.TIME, WizardStep.IDENTITY, WizardStep.REVIEW)


# ============================================================================
# SUBJECT VARIANTS
# ============================================================================


@dataclass(frozen=True)
class RegisteredClient:
    client_id: str


@dataclass(frozen=True)
class GuestContact:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.name and self.email and self.phone)


@dataclass(frozen=True)
class OperatorEntry:
    """A provider recording a booking on someone else's behalf"""

    contact: GuestContact


Subject = Union[RegisteredClient, GuestContact, OperatorEntry]


def subject_kind(subject: Subject) -> SubjectKind:
    if isinstance(subject, RegisteredClient):
        return SubjectKind.REGISTERED
    if isinstance(subject, GuestContact):
        return SubjectKind.GUEST
    if isinstance(subject, OperatorEntry):
        return SubjectKind.OPERATOR
    raise InvariantViolation(f"Unknown booking subject: {subject!r}")


def subject_contact(subject: Subject) -> Optional[GuestContact]:
    if isinstance(subject, GuestContact):
        return subject
    if isinstance(subject, OperatorEntry):
        return subject.contact
    return None


def _contact_to_dict(contact: GuestContact) -> dict:
    return {"name": contact.name, "email": contact.email, "phone": contact.phone}


def subject_to_dict(subject: Optional[Subject]) -> Optional[dict]:
    if subject is None:
        return None
    kind = subject_kind(subject)
    if isinstance(subject, RegisteredClient):
        return {"kind": kind.value, "client_id": subject.client_id}
    return {"kind": kind.value, "contact": _contact_to_dict(subject_contact(subject))}


def subject_from_dict(data: Optional[dict]) -> Optional[Subject]:
    if not data:
        return None
    kind = SubjectKind(data["kind"])
    if kind is SubjectKind.REGISTERED:
        return RegisteredClient(data["client_id"])
    contact = GuestContact(**data["contact"])
    if kind is SubjectKind.GUEST:
        return contact
    return OperatorEntry(contact)


# ============================================================================
# WIZARD
# ============================================================================


@dataclass
class BookingWizard:
    provider_id: int
    provider_is_operator: bool = False
    step: WizardStep = WizardStep.SERVICE
    service_id: Optional[int] = None
    duration_minutes: Optional[int] = None
    addon_ids: tuple = ()
    chosen_date: Optional[date] = None
    start: Optional[datetime] = None
    subject: Optional[Subject] = None
    payment_mode: PaymentMode = PaymentMode.FULL
    excluded_starts: set = field(default_factory=set)
    revisiting_service: bool = False  # set by back() when it lands on SERVICE
    appointment_id: Optional[int] = None

    # ------------------------------------------------------------------
    # Step operations
    # ------------------------------------------------------------------

    def select_service(self, service, addons: Iterable = ()) -> None:
        """Pick the service and optional add-ons (ORM rows or anything with the same attributes)"""
        self._require_step(WizardStep.SERVICE)

        if service is None or service.provider_id != self.provider_id or not service.is_active:
            raise ValidationError(
                "Please choose one of this provider's services", step="service", reason="service_unavailable"
            )

        addon_ids = []
        for addon in addons:
            if addon.provider_id != self.provider_id or not addon.is_active:
                raise ValidationError(
                    f"Add-on '{addon.name}' is not available", step="service", reason="addon_unavailable"
                )
            addon_ids.append(addon.id)

        if self.service_id != service.id or self.duration_minutes != service.duration_minutes:
            self._clear_time()

        self.service_id = service.id
        self.duration_minutes = service.duration_minutes
        self.addon_ids = tuple(sorted(set(addon_ids)))

    def choose_time(self, on_date: date, start: datetime, available: Iterable[datetime]) -> None:
        """
        Pick a start among ``available``, the slots generated for ``on_date``.

        Starts that lost a race earlier in this session stay excluded.
        """
        self._require_step(WizardStep.TIME)
        if start.tzinfo is None:
            raise InvariantViolation("Start time must be timezone-aware")

        if start in self.excluded_starts:
            raise ValidationError(
                "That time was just booked by someone else, please choose another",
                step="time",
                reason="slot_taken",
            )
        if start not in set(available):
            raise ValidationError(
                "That time is not available, please choose another", step="time", reason="slot_unavailable"
            )

        self.chosen_date = on_date
        self.start = start

    def set_identity(self, subject: Optional[Subject]) -> None:
        self._require_step(WizardStep.IDENTITY)
        error = self._identity_error(subject)
        if error:
            raise error
        self.subject = subject

    def set_payment_mode(self, mode: Union[PaymentMode, str]) -> None:
        self._require_step(WizardStep.REVIEW)
        try:
            self.payment_mode = PaymentMode(mode)
        except ValueError as e:
            raise ValidationError(
                f"Unknown payment option: {mode}", step="review", reason="invalid_payment_mode"
            ) from e

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self) -> WizardStep:
        """Move forward one step if the current step's gate passes. No skipping."""
        self._require_not_committed()
        if self.step is WizardStep.REVIEW:
            raise ValidationError("Review is the last step; commit to book", step="review", reason="no_next_step")

        error = self._gate_error(self.step)
        if error:
            raise error

        if self.step is WizardStep.SERVICE and self.revisiting_service:
            self._clear_time()
            self.revisiting_service = False

        self.step = STEP_ORDER[STEP_ORDER.index(self.step) + 1]
        return self.step

    def back(self) -> WizardStep:
        """Move back one step. Always allowed before commit; a no-op on SERVICE."""
        self._require_not_committed()
        index = STEP_ORDER.index(self.step)
        if index > 0:
            self.step = STEP_ORDER[index - 1]
            if self.step is WizardStep.SERVICE:
                self.revisiting_service = True
        return self.step

    def handle_conflict(self) -> None:
        """Return to TIME after a lost race, excluding the start that was taken"""
        self._require_not_committed()
        if self.start is not None:
            self.excluded_starts.add(self.start)
        self.return_to_time()

    def return_to_time(self) -> None:
        self._clear_time()
        self.revisiting_service = False
        self.step = WizardStep.TIME

    def mark_committed(self, appointment_id: int) -> None:
        self._require_step(WizardStep.REVIEW)
        self.appointment_id = appointment_id
        self.step = WizardStep.COMMITTED

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    @property
    def is_operator_bypass(self) -> bool:
        return self.provider_is_operator or isinstance(self.subject, OperatorEntry)

    def is_valid(self, step: WizardStep) -> bool:
        return self._gate_error(step) is None

    def ensure_ready_for_commit(self) -> None:
        self._require_step(WizardStep.REVIEW)
        for step in STEP_ORDER[:-1]:
            error = self._gate_error(step)
            if error:
                raise error

    def _gate_error(self, step: WizardStep) -> Optional[ValidationError]:
        if step is WizardStep.SERVICE:
            if self.service_id is None:
                return ValidationError("Please choose a service", step="service", reason="service_required")
        elif step is WizardStep.TIME:
            if self.start is None or self.chosen_date is None:
                return ValidationError("Please choose a time", step="time", reason="time_required")
            if self.start in self.excluded_starts:
                return ValidationError(
                    "That time was just booked by someone else, please choose another",
                    step="time",
                    reason="slot_taken",
                )
        elif step is WizardStep.IDENTITY:
            return self._identity_error(self.subject)
        return None

    def _identity_error(self, subject: Optional[Subject]) -> Optional[ValidationError]:
        sign_in = ValidationError("Please sign in to book", step="identity", reason="sign_in_required")

        if isinstance(subject, RegisteredClient):
            return None if subject.client_id else sign_in
        if isinstance(subject, GuestContact):
            if not self.provider_is_operator:
                return sign_in
            if not subject.is_complete():
                return ValidationError(
                    "Guest bookings need a name, email and phone",
                    step="identity",
                    reason="guest_contact_incomplete",
                )
            return None
        if isinstance(subject, OperatorEntry):
            if not subject.contact.name:
                return ValidationError(
                    "A name is required for the booking", step="identity", reason="name_required"
                )
            return None
        return sign_in

    def _require_not_committed(self) -> None:
        if self.step is WizardStep.COMMITTED:
            raise ValidationError(
                "This booking has already been placed", step="committed", reason="already_committed"
            )

    def _require_step(self, step: WizardStep) -> None:
        self._require_not_committed()
        if self.step is not step:
            raise ValidationError(
                f"This action belongs to the {step.value} step (current step: {self.step.value})",
                step=self.step.value,
                reason="wrong_step",
            )

    def _clear_time(self) -> None:
        self.chosen_date = None
        self.start = None

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "provider_is_operator": self.provider_is_operator,
            "step": self.step.value,
            "service_id": self.service_id,
            "duration_minutes": self.duration_minutes,
            "addon_ids": list(self.addon_ids),
            "date": self.chosen_date.isoformat() if self.chosen_date else None,
            "start": self.start.isoformat() if self.start else None,
            "subject": subject_to_dict(self.subject),
            "payment_mode": self.payment_mode.value,
            "excluded_starts": sorted(s.isoformat() for s in self.excluded_starts),
            "revisiting_service": self.revisiting_service,
            "appointment_id": self.appointment_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BookingWizard":
        return cls(
            provider_id=data["provider_id"],
            provider_is_operator=data.get("provider_is_operator", False),
            step=WizardStep(data["step"]),
            service_id=data.get("service_id"),
            duration_minutes=data.get("duration_minutes"),
            addon_ids=tuple(data.get("addon_ids") or ()),
            chosen_date=date.fromisoformat(data["date"]) if data.get("date") else None,
            start=datetime.fromisoformat(data["start"]) if data.get("start") else None,
            subject=subject_from_dict(data.get("subject")),
            payment_mode=PaymentMode(data.get("payment_mode", PaymentMode.FULL.value)),
            excluded_starts={datetime.fromisoformat(s) for s in data.get("excluded_starts") or ()},
            revisiting_service=data.get("revisiting_service", False),
            appointment_id=data.get("appointment_id"),
        )

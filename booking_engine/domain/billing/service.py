"""Payment service - Applies payment collaborator outcomes to appointments"""

import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...config import STORE_TIMEOUT_SECONDS
from ...database import bounded_transaction
from ...models import Appointment, AppointmentStatus, PaymentStatus
from ...shared.errors import NotFoundError, ValidationError
from ..scheduling.repository import AppointmentRepository
from .pricing import ChargeBreakdown
from .schemas import PaymentOutcome, PaymentRequest

logger = logging.getLogger(__name__)

# outcome -> (appointment status, payment status)
OUTCOME_TRANSITIONS = {
    PaymentOutcome.SUCCEEDED: (AppointmentStatus.CONFIRMED, PaymentStatus.SUCCEEDED),
    PaymentOutcome.FAILED: (AppointmentStatus.FAILED, PaymentStatus.FAILED),
    PaymentOutcome.EXPIRED: (AppointmentStatus.EXPIRED, PaymentStatus.FAILED),
    PaymentOutcome.REFUNDED: (AppointmentStatus.REFUNDED, PaymentStatus.REFUNDED),
    PaymentOutcome.PARTIALLY_REFUNDED: (
        AppointmentStatus.PARTIALLY_REFUNDED,
        PaymentStatus.PARTIALLY_REFUNDED,
    ),
}

_AWAITING_PAYMENT = {AppointmentStatus.PENDING.value, AppointmentStatus.PAYMENT_PENDING.value}
_PAID = {
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.MISSED.value,
    AppointmentStatus.PARTIALLY_REFUNDED.value,
}

# Statuses an outcome may be applied from
ALLOWED_FROM = {
    PaymentOutcome.SUCCEEDED: _AWAITING_PAYMENT,
    PaymentOutcome.FAILED: _AWAITING_PAYMENT,
    PaymentOutcome.EXPIRED: _AWAITING_PAYMENT,
    PaymentOutcome.REFUNDED: _PAID,
    PaymentOutcome.PARTIALLY_REFUNDED: _PAID,
}


def build_payment_request(
    appointment_id: int, reservation_token: str, charge: ChargeBreakdown
) -> PaymentRequest:
    return PaymentRequest(
        appointment_id=appointment_id,
        reservation_token=reservation_token,
        total=charge.total,
        platform_fee=charge.platform_fee,
        provider_payout=charge.provider_payout,
    )


class PaymentService:
    """Service layer for payment status updates"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    def apply_payment_update(
        self,
        appointment_id: int,
        outcome: Union[PaymentOutcome, str],
        reference: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment to the status implied by a payment outcome.

        Repeating an update that was already applied is a no-op. Operator
        bypass appointments never go through payment and reject every outcome.

        Raises:
            NotFoundError: unknown appointment
            ValidationError: bypass appointment, unknown outcome, or an outcome
                that does not apply to the current status
        """
        try:
            outcome = PaymentOutcome(outcome)
        except ValueError as e:
            raise ValidationError(f"Unknown payment outcome: {outcome}", reason="unknown_outcome") from e

        status, payment_status = OUTCOME_TRANSITIONS[outcome]

        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            appointment = self.repo.get_for_update(self.db, appointment_id)
            if not appointment:
                raise NotFoundError("Appointment not found", reason="appointment_not_found")

            if appointment.is_operator_bypass:
                raise ValidationError(
                    "Operator bookings are not paid through the payment collaborator",
                    reason="operator_bypass",
                )

            if appointment.status == status.value and appointment.payment_status == payment_status.value:
                logger.info(f"Payment update {outcome.value} already applied to appointment {appointment_id}")
                return appointment

            if appointment.status not in ALLOWED_FROM[outcome]:
                raise ValidationError(
                    f"Cannot apply {outcome.value} to an appointment that is {appointment.status}",
                    reason="invalid_transition",
                )

            self.repo.update_status(
                self.db,
                appointment,
                status.value,
                payment_status=payment_status.value,
                payment_reference=reference,
            )

        logger.info(f"Appointment {appointment_id} -> {status.value}/{payment_status.value} ({outcome.value})")
        return appointment

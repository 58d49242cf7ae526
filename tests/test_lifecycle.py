"""Tests for appointment transitions: provider actions and payment outcomes"""

from datetime import date, time

from booking_engine.domain.billing.schemas import PaymentOutcome
from booking_engine.domain.billing.service import PaymentService
from booking_engine.domain.scheduling.availability import Closed, OpenInterval, resolve_open_interval
from booking_engine.domain.scheduling.schemas import (
    DateOverrideIn,
    TimeOffIn,
    WeeklyHoursIn,
    WeeklyScheduleUpdate,
)
from booking_engine.domain.scheduling.service import SchedulingService
from booking_engine.models import Appointment, AppointmentStatus, PaymentStatus
from booking_engine.shared.errors import NotFoundError, ValidationError

from .support import DatabaseTestCase, utc


class LifecycleTestCase(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.provider = self.make_provider()
        self.service = self.make_service(self.provider)
        self.scheduling = SchedulingService(self.db, self.clock)
        self.payments = PaymentService(self.db)

    def add_appointment(self, status, start=None, **values) -> Appointment:
        start = start or utc(2030, 6, 3, 14)
        values.setdefault("payment_status", PaymentStatus.PENDING.value)
        appointment = Appointment(
            provider_id=self.provider.id,
            service_id=self.service.id,
            client_id="client-1",
            start_time=start,
            end_time=start.replace(hour=start.hour + 1),
            status=status.value,
            **values,
        )
        self.db.add(appointment)
        self.db.commit()
        return appointment


class TestProviderTransitions(LifecycleTestCase):
    def test_complete_confirmed(self):
        appointment = self.add_appointment(AppointmentStatus.CONFIRMED)
        result = self.scheduling.mark_completed(self.provider.id, appointment.id)
        self.assertEqual(result.status, AppointmentStatus.COMPLETED.value)

        # Repeating is harmless
        again = self.scheduling.mark_completed(self.provider.id, appointment.id)
        self.assertEqual(again.status, AppointmentStatus.COMPLETED.value)

    def test_cannot_complete_unpaid(self):
        appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
        with self.assertRaises(ValidationError) as ctx:
            self.scheduling.mark_completed(self.provider.id, appointment.id)
        self.assertEqual(ctx.exception.reason, "invalid_transition")

    def test_missed_only_after_start(self):
        appointment = self.add_appointment(AppointmentStatus.CONFIRMED)
        with self.assertRaises(ValidationError) as ctx:
            self.scheduling.mark_missed(self.provider.id, appointment.id)
        self.assertEqual(ctx.exception.reason, "not_started")

        self.clock.advance(hours=6, minutes=30)
        result = self.scheduling.mark_missed(self.provider.id, appointment.id)
        self.assertEqual(result.status, AppointmentStatus.MISSED.value)

    def test_missed_is_distinct_from_cancelled(self):
        missed = self.add_appointment(AppointmentStatus.CONFIRMED, start=utc(2030, 6, 3, 6))
        cancelled = self.add_appointment(AppointmentStatus.CONFIRMED, start=utc(2030, 6, 3, 10))

        self.scheduling.mark_missed(self.provider.id, missed.id)
        self.scheduling.cancel(self.provider.id, cancelled.id)

        self.assertEqual(self.db.get(Appointment, missed.id).status, "missed")
        self.assertEqual(self.db.get(Appointment, cancelled.id).status, "cancelled")

    def test_cancel(self):
        for status in (AppointmentStatus.PAYMENT_PENDING, AppointmentStatus.CONFIRMED):
            with self.subTest(status=status):
                appointment = self.add_appointment(status)
                result = self.scheduling.cancel(self.provider.id, appointment.id)
                self.assertEqual(result.status, AppointmentStatus.CANCELLED.value)
                self.scheduling.cancel(self.provider.id, appointment.id)

    def test_cannot_cancel_completed(self):
        appointment = self.add_appointment(AppointmentStatus.COMPLETED)
        with self.assertRaises(ValidationError):
            self.scheduling.cancel(self.provider.id, appointment.id)

    def test_other_providers_appointment_is_not_found(self):
        other = self.make_provider(display_name="Other")
        appointment = self.add_appointment(AppointmentStatus.CONFIRMED)
        with self.assertRaises(NotFoundError):
            self.scheduling.cancel(other.id, appointment.id)


class TestPaymentUpdates(LifecycleTestCase):
    def test_outcome_mapping(self):
        cases = [
            (PaymentOutcome.SUCCEEDED, "confirmed", "succeeded"),
            (PaymentOutcome.FAILED, "failed", "failed"),
            (PaymentOutcome.EXPIRED, "expired", "failed"),
        ]
        for outcome, status, payment_status in cases:
            with self.subTest(outcome=outcome):
                appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
                result = self.payments.apply_payment_update(appointment.id, outcome, reference="pay_123")
                self.assertEqual((result.status, result.payment_status), (status, payment_status))
                self.assertEqual(result.payment_reference, "pay_123")

    def test_refunds_apply_to_paid_appointments(self):
        appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
        self.payments.apply_payment_update(appointment.id, "succeeded")
        self.payments.apply_payment_update(appointment.id, "partially_refunded")
        result = self.payments.apply_payment_update(appointment.id, "refunded")
        self.assertEqual((result.status, result.payment_status), ("refunded", "refunded"))

    def test_refund_before_payment_is_rejected(self):
        appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
        with self.assertRaises(ValidationError) as ctx:
            self.payments.apply_payment_update(appointment.id, "refunded")
        self.assertEqual(ctx.exception.reason, "invalid_transition")

    def test_repeated_update_is_idempotent(self):
        appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
        self.payments.apply_payment_update(appointment.id, "succeeded")
        result = self.payments.apply_payment_update(appointment.id, "succeeded")
        self.assertEqual(result.status, "confirmed")

    def test_failure_after_success_is_rejected(self):
        appointment = self.add_appointment(AppointmentStatus.PAYMENT_PENDING)
        self.payments.apply_payment_update(appointment.id, "succeeded")
        with self.assertRaises(ValidationError):
            self.payments.apply_payment_update(appointment.id, "failed")
        self.assertEqual(self.db.get(Appointment, appointment.id).status, "confirmed")

    def test_operator_bypass_rejects_payment_updates(self):
        appointment = self.add_appointment(
            AppointmentStatus.CONFIRMED,
            payment_status=PaymentStatus.SUCCEEDED.value,
            is_operator_bypass=True,
        )
        with self.assertRaises(ValidationError) as ctx:
            self.payments.apply_payment_update(appointment.id, "refunded")
        self.assertEqual(ctx.exception.reason, "operator_bypass")

    def test_unknown_outcome_and_appointment(self):
        with self.assertRaises(ValidationError):
            self.payments.apply_payment_update(1, "chargeback")
        with self.assertRaises(NotFoundError):
            self.payments.apply_payment_update(424242, "succeeded")


class TestAvailabilityAdmin(LifecycleTestCase):
    def test_replace_weekly(self):
        update = WeeklyScheduleUpdate(
            days=[WeeklyHoursIn(day_of_week=0, start_time=time(10), end_time=time(14))]
        )
        self.scheduling.replace_weekly(self.provider.id, update)

        snapshot = self.scheduling.get_snapshot(self.provider.id)
        self.assertEqual(len(snapshot.weekly), 1)
        self.assertEqual(resolve_open_interval(snapshot, date(2030, 6, 3)).end, time(14))
        self.assertIsInstance(resolve_open_interval(snapshot, date(2030, 6, 4)), Closed)

    def test_override_and_time_off(self):
        self.scheduling.upsert_override(
            self.provider.id, DateOverrideIn(date=date(2030, 6, 4), start_time=time(12), end_time=time(13))
        )
        self.scheduling.upsert_override(self.provider.id, DateOverrideIn(date=date(2030, 6, 5), is_closed=True))
        time_off = self.scheduling.add_time_off(
            self.provider.id, TimeOffIn(start_date=date(2030, 6, 10), end_date=date(2030, 6, 12))
        )

        snapshot = self.scheduling.get_snapshot(self.provider.id)
        self.assertEqual(resolve_open_interval(snapshot, date(2030, 6, 4)), OpenInterval(date(2030, 6, 4), time(12), time(13)))
        self.assertEqual(resolve_open_interval(snapshot, date(2030, 6, 5)).reason, "override_closed")
        self.assertEqual(resolve_open_interval(snapshot, date(2030, 6, 11)).reason, "time_off")

        self.scheduling.delete_override(self.provider.id, date(2030, 6, 4))
        self.scheduling.delete_time_off(self.provider.id, time_off.id)
        snapshot = self.scheduling.get_snapshot(self.provider.id)
        self.assertEqual(resolve_open_interval(snapshot, date(2030, 6, 4)).end, time(17))
        self.assertIsInstance(resolve_open_interval(snapshot, date(2030, 6, 11)), OpenInterval)

        with self.assertRaises(NotFoundError):
            self.scheduling.delete_override(self.provider.id, date(2030, 6, 4))

"""Tests for domain/booking/wizard.py, independent of the database"""

import unittest
from datetime import date, datetime, time, timezone
from types import SimpleNamespace

from booking_engine.domain.booking.wizard import (
    BookingWizard,
    GuestContact,
    OperatorEntry,
    RegisteredClient,
    WizardStep,
)
from booking_engine.domain.scheduling.availability import AvailabilitySnapshot, WeeklyHours
from booking_engine.domain.scheduling.slots import generate_slots
from booking_engine.models import PaymentMode
from booking_engine.shared.errors import ValidationError

MONDAY = date(2030, 6, 3)
BEFORE = datetime(2030, 6, 2, 12, 0, tzinfo=timezone.utc)
AVAILABILITY = AvailabilitySnapshot.build("UTC", weekly=[WeeklyHours(0, time(9), time(17))])

HAIRCUT = SimpleNamespace(id=1, provider_id=7, duration_minutes=30, is_active=True, name="Haircut")
COLOR = SimpleNamespace(id=2, provider_id=7, duration_minutes=90, is_active=True, name="Color")
BEARD = SimpleNamespace(id=11, provider_id=7, is_active=True, name="Beard trim")


def at(hour, minute=0):
    return datetime(2030, 6, 3, hour, minute, tzinfo=timezone.utc)


def slots_for(service):
    return generate_slots(AVAILABILITY, MONDAY, service.duration_minutes, 30, now=BEFORE)


def wizard_at_identity(**kwargs):
    wizard = BookingWizard(provider_id=7, **kwargs)
    wizard.select_service(HAIRCUT)
    wizard.advance()
    wizard.choose_time(MONDAY, at(10), slots_for(HAIRCUT))
    wizard.advance()
    return wizard


class TestWizardNavigation(unittest.TestCase):
    def test_starts_on_service(self):
        self.assertIs(BookingWizard(provider_id=7).step, WizardStep.SERVICE)

    def test_cannot_advance_without_a_service(self):
        wizard = BookingWizard(provider_id=7)
        with self.assertRaises(ValidationError) as ctx:
            wizard.advance()
        self.assertEqual(ctx.exception.reason, "service_required")
        self.assertIs(wizard.step, WizardStep.SERVICE)

    def test_cannot_skip_ahead(self):
        wizard = BookingWizard(provider_id=7)
        wizard.select_service(HAIRCUT)
        with self.assertRaises(ValidationError) as ctx:
            wizard.choose_time(MONDAY, at(10), slots_for(HAIRCUT))
        self.assertEqual(ctx.exception.reason, "wrong_step")

    def test_cannot_leave_time_without_a_time(self):
        wizard = BookingWizard(provider_id=7)
        wizard.select_service(HAIRCUT)
        wizard.advance()
        with self.assertRaises(ValidationError) as ctx:
            wizard.advance()
        self.assertEqual(ctx.exception.reason, "time_required")

    def test_full_walk_to_review(self):
        wizard = wizard_at_identity()
        wizard.set_identity(RegisteredClient("client-1"))
        self.assertIs(wizard.advance(), WizardStep.REVIEW)
        wizard.set_payment_mode("fee_only")
        self.assertIs(wizard.payment_mode, PaymentMode.FEE_ONLY)
        wizard.ensure_ready_for_commit()

        with self.assertRaises(ValidationError) as ctx:
            wizard.advance()
        self.assertEqual(ctx.exception.reason, "no_next_step")

    def test_back_keeps_choices_when_nothing_changes(self):
        wizard = wizard_at_identity()
        self.assertIs(wizard.back(), WizardStep.TIME)
        self.assertEqual(wizard.start, at(10))
        self.assertIs(wizard.advance(), WizardStep.IDENTITY)

    def test_back_on_service_is_a_no_op(self):
        wizard = BookingWizard(provider_id=7)
        self.assertIs(wizard.back(), WizardStep.SERVICE)

    def test_returning_through_service_clears_the_time(self):
        wizard = wizard_at_identity()
        wizard.back()
        wizard.back()
        wizard.advance()
        self.assertIs(wizard.step, WizardStep.TIME)
        self.assertIsNone(wizard.start)

    def test_unavailable_slot_rejected(self):
        wizard = BookingWizard(provider_id=7)
        wizard.select_service(HAIRCUT)
        wizard.advance()
        with self.assertRaises(ValidationError) as ctx:
            wizard.choose_time(MONDAY, at(17), slots_for(HAIRCUT))
        self.assertEqual(ctx.exception.reason, "slot_unavailable")

    def test_committed_wizard_is_frozen(self):
        wizard = wizard_at_identity()
        wizard.set_identity(RegisteredClient("client-1"))
        wizard.advance()
        wizard.mark_committed(42)

        self.assertIs(wizard.step, WizardStep.COMMITTED)
        for action in (wizard.back, wizard.advance, wizard.handle_conflict):
            with self.assertRaises(ValidationError) as ctx:
                action()
            self.assertEqual(ctx.exception.reason, "already_committed")


class TestServiceChangeInvalidatesTime(unittest.TestCase):
    def test_longer_service_resets_time_and_drops_the_old_slot(self):
        wizard = BookingWizard(provider_id=7)
        wizard.select_service(HAIRCUT)
        wizard.advance()
        late = at(16, 30)
        self.assertIn(late, slots_for(HAIRCUT))
        wizard.choose_time(MONDAY, late, slots_for(HAIRCUT))

        wizard.back()
        wizard.select_service(COLOR)

        self.assertIsNone(wizard.start)
        self.assertFalse(wizard.is_valid(WizardStep.TIME))
        self.assertNotIn(late, slots_for(COLOR))

        wizard.advance()
        with self.assertRaises(ValidationError) as ctx:
            wizard.choose_time(MONDAY, late, slots_for(COLOR))
        self.assertEqual(ctx.exception.reason, "slot_unavailable")

    def test_foreign_or_inactive_service_rejected(self):
        wizard = BookingWizard(provider_id=7)
        for service in (
            SimpleNamespace(id=3, provider_id=8, duration_minutes=30, is_active=True),
            SimpleNamespace(id=4, provider_id=7, duration_minutes=30, is_active=False),
            None,
        ):
            with self.assertRaises(ValidationError) as ctx:
                wizard.select_service(service)
            self.assertEqual(ctx.exception.reason, "service_unavailable")

    def test_inactive_addon_rejected(self):
        wizard = BookingWizard(provider_id=7)
        retired = SimpleNamespace(id=12, provider_id=7, is_active=False, name="Hot towel")
        with self.assertRaises(ValidationError) as ctx:
            wizard.select_service(HAIRCUT, [BEARD, retired])
        self.assertEqual(ctx.exception.reason, "addon_unavailable")
        self.assertIsNone(wizard.service_id)


class TestIdentityGate(unittest.TestCase):
    def test_registered_client(self):
        wizard = wizard_at_identity()
        wizard.set_identity(RegisteredClient("client-1"))
        self.assertFalse(wizard.is_operator_bypass)

    def test_anonymous_needs_sign_in(self):
        wizard = wizard_at_identity()
        for subject in (None, RegisteredClient("")):
            with self.assertRaises(ValidationError) as ctx:
                wizard.set_identity(subject)
            self.assertEqual(ctx.exception.reason, "sign_in_required")

    def test_guest_needs_an_operator_provider(self):
        wizard = wizard_at_identity()
        with self.assertRaises(ValidationError) as ctx:
            wizard.set_identity(GuestContact("Ana", "ana@example.com", "555-0100"))
        self.assertEqual(ctx.exception.reason, "sign_in_required")

    def test_guest_contact_must_be_complete(self):
        wizard = wizard_at_identity(provider_is_operator=True)
        with self.assertRaises(ValidationError) as ctx:
            wizard.set_identity(GuestContact("Ana", "ana@example.com"))
        self.assertEqual(ctx.exception.reason, "guest_contact_incomplete")

        wizard.set_identity(GuestContact("Ana", "ana@example.com", "555-0100"))
        self.assertTrue(wizard.is_operator_bypass)

    def test_operator_entry_needs_a_name(self):
        wizard = wizard_at_identity()
        with self.assertRaises(ValidationError) as ctx:
            wizard.set_identity(OperatorEntry(GuestContact("")))
        self.assertEqual(ctx.exception.reason, "name_required")

        wizard.set_identity(OperatorEntry(GuestContact("Walk-in")))
        self.assertTrue(wizard.is_operator_bypass)


class TestConflictRecovery(unittest.TestCase):
    def test_lost_race_returns_to_time_and_excludes_the_start(self):
        wizard = wizard_at_identity()
        wizard.set_identity(RegisteredClient("client-1"))
        wizard.advance()

        wizard.handle_conflict()

        self.assertIs(wizard.step, WizardStep.TIME)
        self.assertIsNone(wizard.start)
        self.assertEqual(wizard.subject, RegisteredClient("client-1"))
        with self.assertRaises(ValidationError) as ctx:
            wizard.choose_time(MONDAY, at(10), slots_for(HAIRCUT))
        self.assertEqual(ctx.exception.reason, "slot_taken")

        wizard.choose_time(MONDAY, at(10, 30), slots_for(HAIRCUT))
        self.assertIs(wizard.advance(), WizardStep.IDENTITY)


class TestSerialisation(unittest.TestCase):
    def test_round_trip(self):
        wizard = BookingWizard(provider_id=7, provider_is_operator=True)
        wizard.select_service(HAIRCUT, [BEARD])
        wizard.advance()
        wizard.choose_time(MONDAY, at(9), slots_for(HAIRCUT))
        wizard.handle_conflict()
        wizard.choose_time(MONDAY, at(11), slots_for(HAIRCUT))
        wizard.advance()
        wizard.set_identity(OperatorEntry(GuestContact("Walk-in", phone="555-0100")))

        restored = BookingWizard.from_dict(wizard.to_dict())

        self.assertEqual(restored, wizard)
        self.assertEqual(restored.addon_ids, (11,))
        self.assertEqual(restored.excluded_starts, {at(9)})
        self.assertIsInstance(restored.subject, OperatorEntry)


if __name__ == "__main__":
    unittest.main()

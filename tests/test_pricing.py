"""Tests for domain/billing/pricing.py"""

import unittest

from booking_engine.domain.billing.pricing import FeeSchedule, compute_charge
from booking_engine.models import PaymentMode
from booking_engine.shared.errors import InvariantViolation

FEES = FeeSchedule(booking_fee=338, platform_share=203, platform_share_reduced=203)


class TestComputeCharge(unittest.TestCase):
    def test_fee_only_charges_just_the_booking_fee(self):
        charge = compute_charge(5000, [], PaymentMode.FEE_ONLY, False, FEES)

        self.assertEqual(charge.total, 338)
        self.assertNotEqual(charge.total, 5338)
        self.assertEqual(charge.platform_fee, 203)
        self.assertEqual(charge.provider_payout, 135)

    def test_fee_only_ignores_addons_in_total(self):
        charge = compute_charge(5000, [1500, 500], "fee_only", False, FEES)
        self.assertEqual(charge.total, 338)
        self.assertEqual(charge.addon_total, 2000)

    def test_full_mode(self):
        charge = compute_charge(5000, [1500], PaymentMode.FULL, False, FEES)

        self.assertEqual(charge.total, 6838)
        self.assertEqual(charge.platform_fee, 203)
        self.assertEqual(charge.provider_payout, 6635)
        self.assertEqual(charge.total, charge.platform_fee + charge.provider_payout)

    def test_operator_bypass_charges_nothing(self):
        for mode in PaymentMode:
            charge = compute_charge(5000, [1500], mode, True, FEES)
            self.assertEqual((charge.total, charge.platform_fee, charge.provider_payout), (0, 0, 5000))

    def test_free_service(self):
        charge = compute_charge(0, [], PaymentMode.FULL, False, FEES)
        self.assertEqual(charge.total, 338)

    def test_invalid_amounts(self):
        for bad in (-1, 10.5, "5000", True):
            with self.subTest(price=bad), self.assertRaises(InvariantViolation):
                compute_charge(bad, [], PaymentMode.FULL, False, FEES)
        with self.assertRaises(InvariantViolation):
            compute_charge(5000, [-100], PaymentMode.FULL, False, FEES)

    def test_unknown_mode(self):
        with self.assertRaises(InvariantViolation):
            compute_charge(5000, [], "installments", False, FEES)


class TestFeeSchedule(unittest.TestCase):
    def test_share_cannot_exceed_fee(self):
        with self.assertRaises(InvariantViolation):
            FeeSchedule(booking_fee=100, platform_share=200, platform_share_reduced=50)

    def test_negative_fee(self):
        with self.assertRaises(InvariantViolation):
            FeeSchedule(booking_fee=-1, platform_share=0, platform_share_reduced=0)


if __name__ == "__main__":
    unittest.main()

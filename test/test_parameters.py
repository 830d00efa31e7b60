"""
Unit tests for the system parameters and their touch.
"""

import unittest
import sys
import os
from dataclasses import replace
from fractions import Fraction

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker.constants import HIGH_ACCELERATION, IMBALANCE_LIMIT, LOW_ACCELERATION, SECONDS_IN_A_YEAR
from checker.errors import CheckerError, InvalidPrice
from checker.parameters import (
    Parameters,
    compute_current_protected_index,
    compute_drift_derivative,
    compute_imbalance,
    touch,
)


class TestParameters(unittest.TestCase):
    def setUp(self):
        self.params = Parameters.make_initial(0)

    def test_initial_prices(self):
        """Everything starts at one tez per kit"""
        self.assertEqual(self.params.minting_price(), 1)
        self.assertEqual(self.params.liquidation_price(), 1)
        self.assertEqual(self.params.compute_adjustment_index(), 1)

    def test_minting_and_liquidation_indices(self):
        """Minting uses the higher index, liquidation the lower one"""
        params = replace(self.params, index=Fraction(3, 2), protected_index=Fraction(5, 4))
        self.assertEqual(params.tz_minting(), Fraction(3, 2))
        self.assertEqual(params.tz_liquidation(), Fraction(5, 4))
        self.assertEqual(params.minting_price(), Fraction(3, 2))

    def test_kit_accounting(self):
        params = self.params.add_circulating_kit(10).add_outstanding_kit(10)
        params = params.remove_circulating_kit(4).remove_outstanding_kit(20)
        self.assertEqual(params.circulating_kit, 6)
        self.assertEqual(params.outstanding_kit, 0)
        with self.assertRaises(AssertionError):
            params.remove_circulating_kit(7)

    def test_compute_imbalance(self):
        self.assertEqual(compute_imbalance(100, 100), 0)
        self.assertEqual(compute_imbalance(0, 100), -IMBALANCE_LIMIT)
        self.assertEqual(compute_imbalance(100, 0), IMBALANCE_LIMIT)
        self.assertEqual(compute_imbalance(100, 99), Fraction(3, 400))
        self.assertEqual(compute_imbalance(100, 101), Fraction(-3, 400))
        self.assertEqual(compute_imbalance(100, 1000), -IMBALANCE_LIMIT)

    def test_compute_drift_derivative(self):
        self.assertEqual(compute_drift_derivative(Fraction(1)), 0)
        self.assertEqual(compute_drift_derivative(Fraction(101, 100)), LOW_ACCELERATION)
        self.assertEqual(compute_drift_derivative(Fraction(99, 100)), -LOW_ACCELERATION)
        self.assertEqual(compute_drift_derivative(Fraction(11, 10)), HIGH_ACCELERATION)
        self.assertEqual(compute_drift_derivative(Fraction(9, 10)), -HIGH_ACCELERATION)

    def test_protected_index_follows_slowly(self):
        """The protected index moves at most epsilon per second towards the index"""
        self.assertEqual(compute_current_protected_index(Fraction(1), Fraction(2), 60), Fraction(103, 100))
        self.assertEqual(compute_current_protected_index(Fraction(1), Fraction(1, 2), 60), Fraction(97, 100))
        self.assertEqual(compute_current_protected_index(Fraction(1), Fraction(101, 100), 60), Fraction(101, 100))

    def test_touch_rejects_bad_prices(self):
        """A non-positive oracle or market price is a typed failure"""
        with self.assertRaises(InvalidPrice):
            touch(60, 0, Fraction(1), self.params)
        with self.assertRaises(InvalidPrice):
            touch(60, -1_000_000, Fraction(1), self.params)
        with self.assertRaises(CheckerError):
            touch(60, 1_000_000, Fraction(0), self.params)

    def test_touch_without_time_passing(self):
        """No time, no fees; only the index is refreshed"""
        accrual, params = touch(0, 1_200_000, Fraction(1), self.params)
        self.assertEqual(accrual, 0)
        self.assertEqual(params.index, Fraction(6, 5))
        self.assertEqual(params.protected_index, 1)
        self.assertEqual(params.q, 1)

    def test_touch_accrues_burrowing_fees(self):
        """A year of burrowing fees on balanced kit is about half a percent"""
        params = replace(self.params, outstanding_kit=1_000_000_000, circulating_kit=1_000_000_000)
        accrual, updated = touch(SECONDS_IN_A_YEAR, 1_000_000, Fraction(1), params)

        self.assertAlmostEqual(accrual, 5_000_000, delta=1)
        self.assertEqual(updated.circulating_kit, params.circulating_kit + accrual)
        self.assertAlmostEqual(updated.outstanding_kit, 1_005_000_000, delta=1)
        self.assertAlmostEqual(float(updated.burrow_fee_index), 1.005, places=12)
        self.assertEqual(updated.imbalance_index, 1)
        self.assertEqual(updated.last_touched, SECONDS_IN_A_YEAR)

    def test_touch_moves_target(self):
        """The target is q * index over the market price of kit"""
        _, params = touch(60, 1_100_000, Fraction(1), self.params)
        self.assertAlmostEqual(float(params.target), 1.1, places=12)
        _, params = touch(120, 1_100_000, Fraction(1), params)
        # The target now sits above the high bracket, so the drift accelerates upwards.
        self.assertEqual(params.drift_derivative, HIGH_ACCELERATION)
        self.assertGreater(params.drift, 0)


if __name__ == '__main__':
    unittest.main()

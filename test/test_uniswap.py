"""
Unit tests for the tez/kit market maker.
"""

import unittest
import sys
import os
import math
from fractions import Fraction

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker import uniswap
from checker.constants import UNISWAP_FEE
from checker.errors import (
    NoKitGiven,
    NoLiquidityBurned,
    NoTezGiven,
    PoolDepleted,
    SlippageExceeded,
    TooLowExpectation,
    UniswapTooLate,
    UnwantedTezGiven,
)
from checker.tezos import Tezos
from checker.uniswap import Uniswap


class TestUniswap(unittest.TestCase):
    def setUp(self):
        self.tezos = Tezos(now=100, level=10)
        self.pool = Uniswap(
            tez=1_000_000_000, kit=2_000_000_000, lqt=1_000_000,
            kit_in_tez_in_prev_block=Fraction(1, 2), last_level=10,
        )

    def product(self, pool):
        return pool.tez * pool.kit

    def test_initial_pool(self):
        pool = Uniswap.make_initial(0)
        pool.assert_invariants()
        self.assertEqual(pool.kit_in_tez(), 1)

    def test_buy_kit(self):
        amount = 1_000_000
        bought, pool = uniswap.buy_kit(self.pool, self.tezos, amount, 1, 100)

        effective = amount * (1 - UNISWAP_FEE)
        self.assertEqual(bought, math.floor(effective * self.pool.kit / (self.pool.tez + effective)))
        self.assertEqual(pool.tez, self.pool.tez + amount)
        self.assertEqual(pool.kit, self.pool.kit - bought)
        self.assertGreaterEqual(self.product(pool), self.product(self.pool))

    def test_buy_kit_failures(self):
        with self.assertRaises(NoTezGiven):
            uniswap.buy_kit(self.pool, self.tezos, 0, 1, 100)
        with self.assertRaises(UniswapTooLate):
            uniswap.buy_kit(self.pool, self.tezos, 1_000_000, 1, 99)
        with self.assertRaises(TooLowExpectation):
            uniswap.buy_kit(self.pool, self.tezos, 1_000_000, 0, 100)
        with self.assertRaises(SlippageExceeded):
            uniswap.buy_kit(self.pool, self.tezos, 1_000_000, 2_000_000, 100)

    def test_sell_kit(self):
        kit = 2_000_000
        bought, pool = uniswap.sell_kit(self.pool, self.tezos, 0, kit, 1, 100)

        effective = kit * (1 - UNISWAP_FEE)
        self.assertEqual(bought, math.floor(effective * self.pool.tez / (self.pool.kit + effective)))
        self.assertEqual(pool.kit, self.pool.kit + kit)
        self.assertGreaterEqual(self.product(pool), self.product(self.pool))

    def test_sell_kit_failures(self):
        with self.assertRaises(UnwantedTezGiven):
            uniswap.sell_kit(self.pool, self.tezos, 1, 2_000_000, 1, 100)
        with self.assertRaises(NoKitGiven):
            uniswap.sell_kit(self.pool, self.tezos, 0, 0, 1, 100)
        with self.assertRaises(SlippageExceeded):
            uniswap.sell_kit(self.pool, self.tezos, 0, 2_000_000, 1_000_000, 100)

    def test_round_trip_loses_fees(self):
        """Buying and selling straight back never returns more tez than was paid"""
        bought, pool = uniswap.buy_kit(self.pool, self.tezos, 10_000_000, 1, 100)
        tez_back, pool = uniswap.sell_kit(pool, self.tezos, 0, bought, 1, 100)
        self.assertLess(tez_back, 10_000_000)

    def test_add_liquidity(self):
        """Liquidity is added at the pool ratio; unused kit is returned"""
        lqt, leftover_tez, leftover_kit, pool = uniswap.add_liquidity(
            self.pool, self.tezos, 100_000_000, 250_000_000, 1, 100
        )
        self.assertEqual(lqt, 100_000)
        self.assertEqual(leftover_tez, 0)
        self.assertEqual(leftover_kit, 50_000_000)
        self.assertEqual(pool.tez, 1_100_000_000)
        self.assertEqual(pool.kit, 2_200_000_000)
        self.assertEqual(pool.lqt, 1_100_000)

    def test_add_liquidity_failures(self):
        with self.assertRaises(NoTezGiven):
            uniswap.add_liquidity(self.pool, self.tezos, 0, 1, 1, 100)
        with self.assertRaises(NoKitGiven):
            uniswap.add_liquidity(self.pool, self.tezos, 100_000_000, 0, 1, 100)
        with self.assertRaises(SlippageExceeded):
            uniswap.add_liquidity(self.pool, self.tezos, 100_000_000, 199_999_999, 1, 100)
        with self.assertRaises(SlippageExceeded):
            uniswap.add_liquidity(self.pool, self.tezos, 100_000_000, 200_000_000, 100_001, 100)

    def test_remove_liquidity(self):
        tez, kit, pool = uniswap.remove_liquidity(self.pool, self.tezos, 0, 500_000, 1, 1, 100)
        self.assertEqual(tez, 500_000_000)
        self.assertEqual(kit, 1_000_000_000)
        self.assertEqual(pool.lqt, 500_000)
        pool.assert_invariants()

    def test_remove_liquidity_failures(self):
        with self.assertRaises(UnwantedTezGiven):
            uniswap.remove_liquidity(self.pool, self.tezos, 1, 500_000, 1, 1, 100)
        with self.assertRaises(NoLiquidityBurned):
            uniswap.remove_liquidity(self.pool, self.tezos, 0, 0, 1, 1, 100)
        with self.assertRaises(PoolDepleted):
            uniswap.remove_liquidity(self.pool, self.tezos, 0, 1_000_000, 1, 1, 100)
        with self.assertRaises(SlippageExceeded):
            uniswap.remove_liquidity(self.pool, self.tezos, 0, 500_000, 500_000_001, 1, 100)

    def test_add_accrued_kit(self):
        pool = uniswap.add_accrued_kit(self.pool, self.tezos, 1_000)
        self.assertEqual(pool.kit, self.pool.kit + 1_000)
        self.assertEqual(pool.tez, self.pool.tez)

    def test_previous_block_price(self):
        """The observed price only moves when a new block starts"""
        _, pool = uniswap.buy_kit(self.pool, self.tezos, 100_000_000, 1, 100)
        self.assertEqual(pool.kit_in_tez_in_prev_block, Fraction(1, 2))

        later = self.tezos.advance(60)
        synced = pool.sync_last_observed(later)
        self.assertEqual(synced.kit_in_tez_in_prev_block, pool.kit_in_tez())
        self.assertEqual(synced.last_level, later.level)
        self.assertIs(synced.sync_last_observed(later), synced)


if __name__ == '__main__':
    unittest.main()
